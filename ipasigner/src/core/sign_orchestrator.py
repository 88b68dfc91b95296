from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ipasigner.logger import get_console
from ipasigner.src.core.errors import (
    CleanupError,
    FilesystemError,
    ResignError,
    SigningFailed,
)
from ipasigner.src.core.models import (
    EventKind,
    Failed,
    ProgressEvent,
    ProgressSink,
    ResignRequest,
    ResignResult,
    Signed,
    SignedDegraded,
    SignOutcome,
    Stage,
)
from ipasigner.src.core.signers import Signer
from ipasigner.src.core.workspace import Workspace, unique_output_path
from ipasigner.src.ipa import archive, bundle_locator
from ipasigner.src.ipa.manifest_patcher import (
    apply_bundle_id,
    manifest_path_for,
    read_bundle_id,
)
from ipasigner.src.ipa.provisioning_profile_analyser import (
    FALLBACK_BUNDLE_ID,
    describe_profile,
    extract_bundle_id,
    install as install_profile,
    is_wildcard_bundle_id,
)


class SignOrchestrator:
    """Runs one resign operation from selected files to a signed IPA.

    The pipeline moves strictly forward through ``Stage``; the first error stops
    it and becomes a ``Failed`` result naming the stage that was being
    attempted. The workspace is removed on every exit path. An instance keeps
    per-run state, so concurrent operations each need their own orchestrator.

    ``progress`` is called synchronously and must return promptly; wrap a
    callback that may block in ``QueuedProgressSink``.
    """

    def __init__(
        self,
        signer: Signer,
        progress: Optional[ProgressSink] = None,
        workspace_root: Optional[Path] = None,
        output_dir: Optional[Path] = None,
    ):
        self.console = get_console()
        self.signer = signer
        self.progress = progress
        self.workspace_root = Path(workspace_root) if workspace_root else None
        self.output_dir = Path(output_dir) if output_dir else None

        self.state = Stage.INIT
        self.attempting = Stage.INIT
        self.warnings: List[str] = []

    def _emit(self, kind: EventKind, stage: Stage, message: str) -> None:
        """Hand an event to the sink without letting the sink stop the pipeline"""
        if self.progress is None:
            return
        try:
            self.progress(ProgressEvent(kind, stage, message))
        except Exception as e:
            self.console.log(f"[yellow]Progress sink raised {type(e).__name__}: {e}[/]")

    def _log(self, message: str, style: Optional[str] = None) -> None:
        self.console.log(f"[{style}]{message}[/]" if style else message)
        self._emit(EventKind.LOG, self.attempting, message)

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self._log(f"Warning: {message}", "yellow")

    def _advance(self, stage: Stage, action: Callable, *args):
        """Run one step; on success move to ``stage``, otherwise tag the error with it"""
        self.attempting = stage
        self._emit(EventKind.PROGRESS, stage, stage.label)
        try:
            value = action(*args)
        except ResignError as e:
            if e.stage is None:
                e.stage = stage.value
            raise
        except OSError as e:
            raise FilesystemError(str(e), stage=stage.value) from e
        self.state = stage
        return value

    def _resolve_bundle_id(self, embedded_profile: Path, bundle_dir: Path) -> str:
        """Read the installed profile and write its bundle ID into Info.plist"""
        profile_bytes = embedded_profile.read_bytes()
        bundle_id = extract_bundle_id(profile_bytes)

        summary = describe_profile(profile_bytes)
        if summary.name:
            self._log(f"Provisioning profile: {summary.name} (team {summary.team_id})")
        if summary.expired:
            self._log(f"Provisioning profile expired on {summary.expiration}", "yellow")
        if summary.used_fallback:
            self._warn(
                "No application identifier found in provisioning profile; "
                f"using fallback bundle ID {FALLBACK_BUNDLE_ID}"
            )

        manifest = manifest_path_for(bundle_dir)
        if is_wildcard_bundle_id(bundle_id):
            current = read_bundle_id(manifest)
            if current:
                self._warn(
                    f"Provisioning profile uses wildcard identifier '{bundle_id}'; "
                    f"keeping app bundle ID {current}"
                )
                bundle_id = current
            else:
                self._warn(
                    f"Provisioning profile uses wildcard identifier '{bundle_id}' and the "
                    f"app has no bundle ID; using fallback bundle ID {FALLBACK_BUNDLE_ID}"
                )
                bundle_id = FALLBACK_BUNDLE_ID

        self._log(f"Bundle ID: {bundle_id}")
        apply_bundle_id(manifest, bundle_id)
        self._log(f"Updated {manifest.name} with new bundle ID")
        return bundle_id

    def _sign(self, bundle_dir: Path, request: ResignRequest, bundle_id: str) -> SignOutcome:
        self._log(f"Signing with {self.signer.name}")
        try:
            outcome = self.signer.sign(bundle_dir, request.identity, bundle_id)
        except (ResignError, OSError):
            raise
        except Exception as e:
            raise SigningFailed(f"{type(e).__name__}: {e}") from e
        if outcome.degraded:
            self._warn(
                "App was NOT cryptographically signed; the certificate was only "
                "copied into the bundle"
            )
        elif outcome.detail:
            self._log(f"Signing result: {outcome.detail}")
        return outcome

    def _repackage(self, request: ResignRequest, workspace: Workspace) -> Tuple[Path, int]:
        output_dir = self.output_dir or Path(request.archive).parent
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = unique_output_path(output_dir, request.archive)

        self._log("Creating signed IPA...")
        archive.create(workspace.payload_dir, output_path)
        try:
            size = output_path.stat().st_size
        except OSError:
            output_path.unlink(missing_ok=True)
            raise
        self._log(f"Signed IPA created: {output_path}", "green")
        return output_path, size

    def _cleanup(self, workspace: Workspace) -> None:
        self._emit(EventKind.PROGRESS, Stage.CLEANED_UP, Stage.CLEANED_UP.label)
        try:
            workspace.cleanup()
        except CleanupError as e:
            # Never replaces the result that was already determined
            self._log(f"Cleanup failed: {e.message}", "yellow")
        else:
            self._log("Temporary files removed")

    def resign(self, request: ResignRequest) -> ResignResult:
        """Run the whole pipeline once and return its terminal result"""
        self.state = Stage.INIT
        self.attempting = Stage.INIT
        self.warnings = []
        workspace: Optional[Workspace] = None
        result: Optional[ResignResult] = None

        self._emit(EventKind.PROGRESS, Stage.INIT, Stage.INIT.label)
        self._log("=== SIGNING STARTED ===", "bold blue")

        try:
            try:
                request.validate()
            except ResignError as e:
                e.stage = Stage.INIT.value
                raise

            workspace = self._advance(
                Stage.WORKSPACE_READY, Workspace.create, self.workspace_root
            )
            self._log("Extracting IPA archive...")
            self._advance(
                Stage.EXTRACTED, archive.extract, Path(request.archive), workspace.extracted
            )
            bundle_dir = self._advance(
                Stage.BUNDLE_LOCATED, bundle_locator.locate, workspace.payload_dir
            )
            self._log(f"Found app bundle: {bundle_dir.name}")
            embedded_profile = self._advance(
                Stage.PROFILE_INSTALLED, install_profile, Path(request.profile), bundle_dir
            )
            self._log("Provisioning profile installed")
            bundle_id = self._advance(
                Stage.MANIFEST_PATCHED, self._resolve_bundle_id, embedded_profile, bundle_dir
            )
            outcome = self._advance(
                Stage.SIGNED, self._sign, bundle_dir, request, bundle_id
            )
            output_path, size = self._advance(
                Stage.REPACKAGED, self._repackage, request, workspace
            )

            if outcome.degraded:
                result = SignedDegraded(
                    output_path=output_path,
                    size_bytes=size,
                    bundle_id=bundle_id,
                    warnings=list(self.warnings),
                )
            else:
                result = Signed(
                    output_path=output_path,
                    size_bytes=size,
                    bundle_id=bundle_id,
                    warnings=list(self.warnings),
                )
        except ResignError as e:
            result = Failed(
                stage=e.stage or self.attempting.value,
                message=e.message,
                error=type(e).__name__,
                category=e.category,
            )
            self._log(f"ERROR: {e.message}", "red")
        except Exception as e:
            # Last resort: every invocation still ends in exactly one result
            result = Failed(
                stage=self.attempting.value,
                message=f"Unexpected error: {e}",
                error=type(e).__name__,
            )
            self._log(f"ERROR: unexpected {type(e).__name__}: {e}", "red")
        finally:
            if workspace is not None:
                self._cleanup(workspace)

        if isinstance(result, Failed):
            return result

        self.state = Stage.CLEANED_UP
        self.attempting = Stage.DONE
        self._emit(EventKind.PROGRESS, Stage.DONE, Stage.DONE.label)
        self._log("=== SIGNING COMPLETED ===", "bold green")
        self._log(f"Signed IPA: {result.output_path}")
        self.state = Stage.DONE
        return result


def resign_ipa(
    request: ResignRequest,
    signer: Signer,
    progress: Optional[ProgressSink] = None,
    workspace_root: Optional[Path] = None,
    output_dir: Optional[Path] = None,
) -> ResignResult:
    """Resign one IPA with a fresh orchestrator (safe to call from several threads)"""
    orchestrator = SignOrchestrator(
        signer,
        progress=progress,
        workspace_root=workspace_root,
        output_dir=output_dir,
    )
    return orchestrator.resign(request)
