from pathlib import Path

from ipasigner.logger import get_console
from ipasigner.src.core.errors import AmbiguousBundle, NoAppBundle

APP_BUNDLE_SUFFIX = ".app"


def locate(payload_dir: Path) -> Path:
    """Return the single .app directory directly inside payload_dir"""
    payload_dir = Path(payload_dir)
    if not payload_dir.is_dir():
        raise NoAppBundle(f"No Payload directory found in IPA: {payload_dir.name}")

    candidates = sorted(
        entry
        for entry in payload_dir.iterdir()
        if entry.name.endswith(APP_BUNDLE_SUFFIX) and entry.is_dir()
    )

    if not candidates:
        raise NoAppBundle("No .app directory found in IPA")
    if len(candidates) > 1:
        names = ", ".join(c.name for c in candidates)
        raise AmbiguousBundle(
            f"Found {len(candidates)} app bundles in IPA ({names}); expected exactly one",
            candidates=candidates,
        )

    get_console().log(f"[green]Found app bundle:[/] {candidates[0].name}")
    return candidates[0]
