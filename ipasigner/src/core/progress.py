import queue
import threading
from typing import Optional

from ipasigner.logger import get_console
from ipasigner.src.core.models import ProgressEvent, ProgressSink

_STOP = object()


class QueuedProgressSink:
    """Delivers progress events to a callback on a background thread.

    The pipeline only enqueues, so a slow or blocking callback never stalls it.
    Events reach the callback in the order they were emitted. ``close()`` waits
    until everything queued so far has been delivered.
    """

    def __init__(self, callback: ProgressSink):
        self.callback = callback
        self.console = get_console()
        self._queue: "queue.Queue" = queue.Queue()
        self._thread = threading.Thread(
            target=self._run, name="ipasigner-progress", daemon=True
        )
        self._thread.start()

    def __call__(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                return
            try:
                self.callback(event)
            except Exception as e:
                self.console.log(
                    f"[yellow]Progress callback raised {type(e).__name__}: {e}[/]"
                )

    def close(self, timeout: Optional[float] = None) -> None:
        self._queue.put(_STOP)
        self._thread.join(timeout)

    def __enter__(self) -> "QueuedProgressSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
