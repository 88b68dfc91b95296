from typing import Optional


class ResignError(Exception):
    """Base class for everything the resigning pipeline reports as a failure"""

    category = "ResignError"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class InputError(ResignError):
    """A selected file is missing or unusable, or the archive holds no usable app"""

    category = "InputError"


class NoAppBundle(InputError):
    pass


class AmbiguousBundle(InputError):
    def __init__(self, message: str, candidates=None, stage: Optional[str] = None):
        super().__init__(message, stage)
        self.candidates = list(candidates or [])


class ArchiveError(ResignError):
    category = "ArchiveError"


class ArchiveCorrupt(ArchiveError):
    pass


class ManifestError(ResignError):
    category = "ManifestError"


class ManifestMissing(ManifestError):
    pass


class ManifestMalformed(ManifestError):
    pass


class SigningError(ResignError):
    category = "SigningError"


class SigningFailed(SigningError):
    def __init__(self, reason: str, stage: Optional[str] = None):
        super().__init__(f"Signing failed: {reason}", stage)
        self.reason = reason


class SigningUnavailable(SigningError):
    pass


class FilesystemError(ResignError):
    """Generic filesystem failure (read, write, copy) inside a component"""

    category = "IOError"


class CleanupError(ResignError):
    """Workspace teardown failed. Never replaces a pipeline result."""

    category = "CleanupError"


class InstallError(ResignError):
    category = "InstallError"
