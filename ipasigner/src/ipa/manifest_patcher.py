import plistlib
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from xml.sax.saxutils import escape

from ipasigner.logger import get_console
from ipasigner.src.core.errors import FilesystemError, ManifestMalformed, ManifestMissing

MANIFEST_NAME = "Info.plist"
BUNDLE_ID_KEY = "CFBundleIdentifier"

_XML_BUNDLE_ID = re.compile(
    rb"<key>\s*" + BUNDLE_ID_KEY.encode() + rb"\s*</key>(\s*)"
    rb"(<string>[^<]*</string>|<string\s*/>)"
)


def manifest_path_for(bundle_dir: Path) -> Path:
    return Path(bundle_dir) / MANIFEST_NAME


def _load(manifest_path: Path) -> Tuple[bytes, Dict[str, Any]]:
    manifest_path = Path(manifest_path)
    if not manifest_path.is_file():
        raise ManifestMissing(f"No {manifest_path.name} found in app bundle")

    try:
        data = manifest_path.read_bytes()
    except OSError as e:
        raise FilesystemError(f"Failed to read {manifest_path}: {e}") from e

    try:
        info = plistlib.loads(data)
    except Exception as e:
        raise ManifestMalformed(f"{manifest_path.name} is not a valid plist: {e}") from e

    if not isinstance(info, dict):
        raise ManifestMalformed(f"{manifest_path.name} does not contain a dictionary")
    return data, info


def read_bundle_id(manifest_path: Path) -> Optional[str]:
    """Return the manifest's current bundle identifier, if it has one"""
    _, info = _load(manifest_path)
    value = info.get(BUNDLE_ID_KEY)
    return value if isinstance(value, str) else None


def _patch_xml_in_place(
    data: bytes, expected: Dict[str, Any], bundle_id: str
) -> Optional[bytes]:
    """Swap only the identifier's <string> element, leaving every other byte alone.

    Each candidate is parsed back and accepted only if the result equals the
    expected dictionary, so a same-named key in a nested dict is never touched.
    """
    replacement = b"<string>" + escape(bundle_id).encode("utf-8") + b"</string>"
    for match in _XML_BUNDLE_ID.finditer(data):
        candidate = data[: match.start(2)] + replacement + data[match.end(2) :]
        try:
            if plistlib.loads(candidate) == expected:
                return candidate
        except Exception:
            continue
    return None


def apply_bundle_id(manifest_path: Path, bundle_id: str) -> Optional[str]:
    """Set CFBundleIdentifier in the manifest and return the previous value.

    XML manifests are edited textually so only the identifier changes; binary
    manifests (and XML ones without an editable identifier element) are
    re-serialised in their original format with key order kept. Applying the
    same identifier twice gives byte-identical output.
    """
    manifest_path = Path(manifest_path)
    data, info = _load(manifest_path)
    old_bundle_id = info.get(BUNDLE_ID_KEY)

    expected = dict(info)
    expected[BUNDLE_ID_KEY] = bundle_id

    is_binary = data.startswith(b"bplist")
    patched = None if is_binary else _patch_xml_in_place(data, expected, bundle_id)
    if patched is None:
        fmt = plistlib.FMT_BINARY if is_binary else plistlib.FMT_XML
        patched = plistlib.dumps(expected, fmt=fmt, sort_keys=False)

    if patched != data:
        try:
            manifest_path.write_bytes(patched)
        except OSError as e:
            raise FilesystemError(f"Failed to write {manifest_path}: {e}") from e

    get_console().log(
        f"[green]Updated {manifest_path.name} bundle ID:[/] {old_bundle_id} -> {bundle_id}"
    )
    return old_bundle_id if isinstance(old_bundle_id, str) else None
