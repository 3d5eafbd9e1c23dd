"""Error taxonomy for the snapshot upgrade pipeline."""

from snapup.models import CopyReport


class SnapupError(Exception):
    """Base class for every fatal condition surfaced to the operator."""


class TransferFailure(SnapupError):
    """A remote fetch did not complete."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class NoPublicKey(SnapupError):
    """The verification key for a release is not installed."""

    def __init__(self, key_path: str):
        self.key_path = key_path
        super().__init__(
            f"Public key {key_path} not found. Install the signify key for this "
            "release (or use -S to skip signature verification at your own risk)"
        )


class SignatureInvalid(SnapupError):
    """A detached signature did not match the files it covers."""

    def __init__(self, files: list[str], detail: str = ""):
        self.files = files
        self.detail = detail
        message = f"Signature verification failed for {len(files)} file(s)"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CopyFailure(SnapupError):
    """One or more local file copies failed."""

    def __init__(self, operation: str, report: CopyReport):
        self.operation = operation
        self.report = report
        failed = ", ".join(f"{src} -> {dst}" for src, dst, _ in report.failed)
        super().__init__(f"{operation} failed for: {failed}")


class ExtractionFailure(SnapupError):
    """An archive could not be unpacked onto the root filesystem."""

    def __init__(self, archive: str, reason: str):
        self.archive = archive
        self.reason = reason
        super().__init__(f"Failed to extract {archive}: {reason}")


class PrivilegeError(SnapupError):
    """The process lacks the privileges required to upgrade the system."""


class ConfigConflict(SnapupError):
    """Mutually exclusive options were requested together."""


class UpdateError(SnapupError):
    """The self-updater could not query or install a release."""


class OperatorAbort(SnapupError):
    """The operator declined to continue an interactive run."""
