"""Signing capabilities the orchestrator can be handed.

Which one is used is decided by the caller (see ``select_signer``); the
pipeline itself never checks for a tool's presence.
"""

import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from ipasigner.logger import get_console
from ipasigner.src.core.errors import FilesystemError, SigningFailed, SigningUnavailable
from ipasigner.src.core.models import SignatureKind, SigningIdentity, SignOutcome
from ipasigner.src.ipa.provisioning_profile_analyser import EMBEDDED_PROFILE_NAME

SIGNATURE_DIR_NAME = "_CodeSignature"
INJECTED_CERT_NAME = "cert.p12"


class Signer(ABC):
    """A capability that signs an app bundle directory in place"""

    name = "signer"

    @abstractmethod
    def sign(
        self, bundle_dir: Path, identity: SigningIdentity, bundle_id: str
    ) -> SignOutcome:
        raise NotImplementedError


class ZSignSigner(Signer):
    """Real code signing through the zsign command line tool"""

    name = "zsign"

    def __init__(self, zsign_path: str = "zsign"):
        self.zsign_path = zsign_path
        self.console = get_console()

    def resolve(self) -> str:
        """Return the absolute path of the zsign binary or raise SigningUnavailable"""
        resolved = shutil.which(self.zsign_path)
        if not resolved:
            raise SigningUnavailable(
                f"Signing tool not found: {self.zsign_path}. "
                "Install zsign or allow degraded signing."
            )
        return resolved

    @classmethod
    def is_available(cls, zsign_path: str = "zsign") -> bool:
        return shutil.which(zsign_path) is not None

    def build_command(
        self, tool: str, bundle_dir: Path, identity: SigningIdentity, bundle_id: str
    ) -> list:
        """Command line for zsign.

        zsign only accepts the certificate passphrase as ``-p``, so it is visible
        to other local users in the process list while signing runs. Only the
        console log masks it.
        """
        cmd = [
            tool,
            "-k",
            str(identity.certificate_path),
            "-p",
            identity.passphrase,
        ]
        profile = Path(bundle_dir) / EMBEDDED_PROFILE_NAME
        if profile.exists():
            cmd.extend(["-m", str(profile)])
        cmd.extend(["-b", bundle_id, str(bundle_dir)])
        return cmd

    def sign(
        self, bundle_dir: Path, identity: SigningIdentity, bundle_id: str
    ) -> SignOutcome:
        tool = self.resolve()
        cmd = self.build_command(tool, bundle_dir, identity, bundle_id)

        # Never log the passphrase
        shown = ["***" if i == 4 else part for i, part in enumerate(cmd)]
        self.console.log(f"[cyan]Running signing command:[/] {' '.join(shown)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise SigningUnavailable(f"Could not run {tool}: {e}") from e

        if result.returncode != 0:
            reason = (result.stderr or result.stdout or "").strip()
            raise SigningFailed(reason or f"{tool} exited with status {result.returncode}")

        output = (result.stdout or "").strip()
        if output:
            self.console.log(f"[green]Signing output:[/]\n{output}")
        return SignOutcome(SignatureKind.SIGNED, output)


def inject_identity_fallback(bundle_dir: Path, certificate_bytes: bytes) -> Path:
    """Drop the certificate into _CodeSignature/ without signing anything.

    The bundle produced this way is NOT validly signed.
    """
    signature_dir = Path(bundle_dir) / SIGNATURE_DIR_NAME
    target = signature_dir / INJECTED_CERT_NAME
    try:
        signature_dir.mkdir(exist_ok=True)
        target.write_bytes(certificate_bytes)
    except OSError as e:
        raise FilesystemError(f"Failed to inject certificate into {signature_dir}: {e}") from e
    return target


class IdentityInjectionSigner(Signer):
    """Degraded mode: records the certificate, produces no valid signature"""

    name = "identity-injection"

    def __init__(self):
        self.console = get_console()

    def sign(
        self, bundle_dir: Path, identity: SigningIdentity, bundle_id: str
    ) -> SignOutcome:
        self.console.log(
            "[yellow]Using simplified certificate injection (no signing tool)[/]"
        )
        target = inject_identity_fallback(bundle_dir, identity.certificate_bytes())
        return SignOutcome(
            SignatureKind.DEGRADED,
            f"Certificate injected at {target.relative_to(bundle_dir)}; "
            "the app is not cryptographically signed",
        )


def select_signer(zsign_path: str = "zsign", allow_degraded: bool = True) -> Signer:
    """Pick the signing capability for this run.

    Without the tool and without permission to degrade, a ZSignSigner is still
    returned so the run fails at the signing stage with SigningUnavailable.
    """
    if ZSignSigner.is_available(zsign_path):
        return ZSignSigner(zsign_path)
    if allow_degraded:
        return IdentityInjectionSigner()
    return ZSignSigner(zsign_path)
