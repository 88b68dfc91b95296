from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Union

from ipasigner.src.core.errors import FilesystemError, InputError


class Stage(Enum):
    """Pipeline states, in the only order they can be reached"""

    INIT = "Init"
    WORKSPACE_READY = "WorkspaceReady"
    EXTRACTED = "Extracted"
    BUNDLE_LOCATED = "BundleLocated"
    PROFILE_INSTALLED = "ProfileInstalled"
    MANIFEST_PATCHED = "ManifestPatched"
    SIGNED = "Signed"
    REPACKAGED = "Repackaged"
    CLEANED_UP = "CleanedUp"
    DONE = "Done"

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_LABELS = {
    Stage.INIT: "Starting signing process...",
    Stage.WORKSPACE_READY: "Preparing workspace...",
    Stage.EXTRACTED: "Extracting IPA...",
    Stage.BUNDLE_LOCATED: "Locating app bundle...",
    Stage.PROFILE_INSTALLED: "Installing provisioning profile...",
    Stage.MANIFEST_PATCHED: "Updating app configuration...",
    Stage.SIGNED: "Signing app with certificate...",
    Stage.REPACKAGED: "Repackaging IPA...",
    Stage.CLEANED_UP: "Cleaning up...",
    Stage.DONE: "Signing completed",
}


class EventKind(Enum):
    PROGRESS = "progress"
    LOG = "log"


@dataclass(frozen=True)
class ProgressEvent:
    """A notification delivered to the progress sink"""

    kind: EventKind
    stage: Stage
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class SigningIdentity:
    """Certificate and passphrase, passed through to the signer untouched"""

    certificate_path: Path
    passphrase: str = field(default="", repr=False)

    def certificate_bytes(self) -> bytes:
        try:
            return self.certificate_path.read_bytes()
        except OSError as e:
            raise FilesystemError(
                f"Failed to read certificate {self.certificate_path}: {e}"
            ) from e


@dataclass(frozen=True)
class ResignRequest:
    """Everything one resign operation needs; the caller builds it once"""

    archive: Path
    certificate: Path
    profile: Path
    passphrase: str = field(default="", repr=False)

    @property
    def identity(self) -> SigningIdentity:
        return SigningIdentity(Path(self.certificate), self.passphrase)

    def validate(self) -> None:
        """Check every selected file exists"""
        missing = []
        for label, path in (
            ("IPA", self.archive),
            ("Certificate", self.certificate),
            ("Provisioning profile", self.profile),
        ):
            if path is None or not Path(path).is_file():
                missing.append(f"{label}: {path}")
        if missing:
            raise InputError(
                "Please select all required files. Not found: " + ", ".join(missing)
            )


class SignatureKind(Enum):
    SIGNED = "signed"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class SignOutcome:
    kind: SignatureKind
    detail: str = ""

    @property
    def degraded(self) -> bool:
        return self.kind == SignatureKind.DEGRADED


@dataclass(frozen=True)
class Signed:
    """The archive was resigned with a real signature"""

    output_path: Path
    size_bytes: int
    bundle_id: str = ""
    warnings: List[str] = field(default_factory=list)

    ok = True
    degraded = False


@dataclass(frozen=True)
class SignedDegraded:
    """The archive was repackaged, but its signature is NOT cryptographically valid"""

    output_path: Path
    size_bytes: int
    bundle_id: str = ""
    warnings: List[str] = field(default_factory=list)
    reason: str = (
        "Signing capability unavailable: certificate was injected without "
        "producing a valid code signature"
    )

    ok = True
    degraded = True


@dataclass(frozen=True)
class Failed:
    stage: str
    message: str
    error: str = "ResignError"
    category: str = "ResignError"

    ok = False
    degraded = False


ResignResult = Union[Signed, SignedDegraded, Failed]


def describe_result(result: "ResignResult") -> str:
    """One-line summary of a terminal result"""
    if isinstance(result, Failed):
        return f"Failed at {result.stage} ({result.category}): {result.message}"
    kind = "Signed (degraded)" if result.degraded else "Signed"
    size_mb = result.size_bytes / 1024 / 1024
    return f"{kind}: {result.output_path} ({size_mb:.2f} MB)"
