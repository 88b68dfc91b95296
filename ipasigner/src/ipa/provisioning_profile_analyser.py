import plistlib
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from asn1crypto.cms import ContentInfo

from ipasigner.logger import get_console
from ipasigner.src.core.errors import FilesystemError

# Filename the iOS code signing runtime looks for inside the app bundle
EMBEDDED_PROFILE_NAME = "embedded.mobileprovision"

# Used when the profile carries no recognisable application identifier
FALLBACK_BUNDLE_ID = "com.signer.app"

APP_ID_PATTERN = re.compile(
    rb"<key>\s*application-identifier\s*</key>\s*"
    rb"<string>\s*([^.<\s]+)\.([^<]+?)\s*</string>"
)


def is_wildcard_bundle_id(bundle_id: str) -> bool:
    return bundle_id == "*" or bundle_id.endswith(".*")


@dataclass(frozen=True)
class ApplicationIdentifier:
    """An ``application-identifier`` entitlement split into its two halves"""

    team_id: str
    bundle_id: str

    @property
    def is_wildcard(self) -> bool:
        return is_wildcard_bundle_id(self.bundle_id)

    def __str__(self) -> str:
        return f"{self.team_id}.{self.bundle_id}"


@dataclass(frozen=True)
class ProfileSummary:
    name: Optional[str]
    team_id: Optional[str]
    app_id: Optional[str]
    bundle_id: str
    expiration: Optional[datetime]
    used_fallback: bool

    @property
    def expired(self) -> bool:
        if self.expiration is None:
            return False
        expiration = self.expiration
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return expiration < datetime.now(timezone.utc)


def _as_bytes(profile_bytes: Union[bytes, bytearray, str, None]) -> bytes:
    if profile_bytes is None:
        return b""
    if isinstance(profile_bytes, str):
        return profile_bytes.encode("utf-8", errors="replace")
    return bytes(profile_bytes)


def load_profile_plist(profile_bytes: bytes) -> Optional[Dict[str, Any]]:
    """Decode a provisioning profile into its plist dictionary.

    Accepts the usual CMS (PKCS#7 signed-data) envelope as well as a bare plist.
    Returns None instead of raising when neither form can be decoded.
    """
    data = _as_bytes(profile_bytes)
    if not data:
        return None

    try:
        content_info = ContentInfo.load(data)
        signed_data = content_info["content"]
        # The plist is the encapsulated content of the signed data
        plist_data = signed_data["encap_content_info"]["content"].native
        parsed = plistlib.loads(plist_data)
        if isinstance(parsed, dict):
            return parsed
    except Exception:
        pass  # not a CMS envelope

    try:
        parsed = plistlib.loads(data)
        if isinstance(parsed, dict):
            return parsed
    except Exception:
        pass  # not a bare plist either

    return None


def _split_app_id(app_id: Any) -> Optional[ApplicationIdentifier]:
    if not isinstance(app_id, str) or "." not in app_id:
        return None
    team_id, bundle_id = app_id.strip().split(".", 1)
    if not team_id or not bundle_id:
        return None
    return ApplicationIdentifier(team_id=team_id, bundle_id=bundle_id)


def parse_application_identifier(
    profile_bytes: bytes,
) -> Optional[ApplicationIdentifier]:
    """Find the application identifier, structured parse first, regex second"""
    data = _as_bytes(profile_bytes)

    profile = load_profile_plist(data)
    if profile:
        entitlements = profile.get("Entitlements")
        if isinstance(entitlements, dict):
            found = _split_app_id(entitlements.get("application-identifier"))
            if found:
                return found

    match = APP_ID_PATTERN.search(data)
    if match:
        return ApplicationIdentifier(
            team_id=match.group(1).decode("utf-8", errors="replace"),
            bundle_id=match.group(2).decode("utf-8", errors="replace"),
        )
    return None


def extract_bundle_id(profile_bytes: bytes) -> str:
    """Return the bundle identifier authorised by a profile.

    This never raises: when no identifier can be found, FALLBACK_BUNDLE_ID is
    returned instead.
    """
    identifier = parse_application_identifier(profile_bytes)
    if identifier is None:
        return FALLBACK_BUNDLE_ID
    return identifier.bundle_id


def describe_profile(profile_bytes: bytes) -> ProfileSummary:
    data = _as_bytes(profile_bytes)
    profile = load_profile_plist(data) or {}
    identifier = parse_application_identifier(data)

    team_ids = profile.get("TeamIdentifier")
    team_id = team_ids[0] if isinstance(team_ids, list) and team_ids else None
    if team_id is None and identifier is not None:
        team_id = identifier.team_id

    expiration = profile.get("ExpirationDate")
    name = profile.get("Name")
    return ProfileSummary(
        name=name if isinstance(name, str) else None,
        team_id=team_id,
        app_id=str(identifier) if identifier else None,
        bundle_id=identifier.bundle_id if identifier else FALLBACK_BUNDLE_ID,
        expiration=expiration if isinstance(expiration, datetime) else None,
        used_fallback=identifier is None,
    )


def install(profile_path: Path, bundle_dir: Path) -> Path:
    """Copy the profile verbatim into the bundle as embedded.mobileprovision"""
    embedded_path = Path(bundle_dir) / EMBEDDED_PROFILE_NAME
    try:
        shutil.copyfile(profile_path, embedded_path)
    except OSError as e:
        raise FilesystemError(
            f"Failed to install provisioning profile into {bundle_dir}: {e}"
        ) from e
    get_console().log(f"[green]Provisioning profile installed:[/] {embedded_path}")
    return embedded_path
