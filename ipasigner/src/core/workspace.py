import shutil
import tempfile
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from ipasigner.src.core.errors import CleanupError, FilesystemError

WORKSPACE_PREFIX = "ipasigner-"


class Workspace:
    """Scratch directory owned by exactly one resign operation"""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.cleaned_up = False

    @property
    def extracted(self) -> Path:
        return self.root / "extracted"

    @property
    def payload_dir(self) -> Path:
        return self.extracted / "Payload"

    @classmethod
    def create(cls, parent: Optional[Path] = None) -> "Workspace":
        """Create a uniquely named workspace (timestamp plus random suffix)"""
        try:
            if parent is not None:
                Path(parent).mkdir(parents=True, exist_ok=True)
            root = tempfile.mkdtemp(
                prefix=f"{WORKSPACE_PREFIX}{int(time.time() * 1000)}-",
                dir=str(parent) if parent is not None else None,
            )
        except OSError as e:
            raise FilesystemError(f"Failed to create workspace: {e}") from e

        workspace = cls(Path(root))
        try:
            workspace.extracted.mkdir()
        except OSError as e:
            shutil.rmtree(root, ignore_errors=True)
            raise FilesystemError(f"Failed to create workspace: {e}") from e
        return workspace

    def cleanup(self) -> None:
        """Delete the whole tree. Runs at most once; failures raise CleanupError."""
        if self.cleaned_up:
            return
        self.cleaned_up = True
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(f"Failed to remove workspace {self.root}: {e}") from e


def unique_output_path(output_dir: Path, archive_path: Path) -> Path:
    """Name for a new signed archive that does not collide with an existing file"""
    output_dir = Path(output_dir)
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    while True:
        candidate = (
            output_dir / f"{Path(archive_path).stem}-signed-{stamp}-{uuid.uuid4().hex[:8]}.ipa"
        )
        if not candidate.exists():
            return candidate
