"""Signature verification for release artifacts and for the upgrader itself."""

import logging
import tempfile
from enum import Enum
from pathlib import Path

from snapup.config import (
    SELF_PUBLIC_KEY,
    SELF_RELEASE_DOWNLOAD,
    SELF_SIGNATURE_NAME,
    SIGNATURE_MANIFEST,
)
from snapup.fetcher import Fetcher
from snapup.tools.base import Verifier
from snapup.utils import is_unversioned, version_digits

logger = logging.getLogger(__name__)


class VerifyStatus(Enum):
    VALID = "valid"
    INVALID = "invalid"
    NO_KEY = "no-key"


class SignatureVerifier:
    """Validates downloaded release files against the release's signed manifest."""

    def __init__(self, verifier: Verifier, signify_dir: Path):
        """Initialize the verifier.

        Args:
            verifier: Capability that checks signatures
            signify_dir: Directory holding the per-release public keys
        """
        self.verifier = verifier
        self.signify_dir = Path(signify_dir)

    def public_key_path(self, release_version: str) -> Path:
        return self.signify_dir / f"openbsd-{version_digits(release_version)}-base.pub"

    def verify(self, files: list[Path], release_version: str) -> VerifyStatus:
        """Verify a batch of files against ``SHA256.sig`` in their directory.

        A single mismatch invalidates the whole batch.

        Args:
            files: Downloaded files, all in the same directory as the manifest
            release_version: Release the files belong to, e.g. "7.5"

        Returns:
            VALID, INVALID, or NO_KEY when the release key is not installed

        Raises:
            ValueError: If ``files`` is empty
        """
        if not files:
            raise ValueError("Refusing to verify an empty file set")

        public_key = self.public_key_path(release_version)
        if not public_key.exists():
            logger.error(f"Public key {public_key} is missing")
            return VerifyStatus.NO_KEY

        files = [Path(f) for f in files]
        manifest = files[0].parent / SIGNATURE_MANIFEST
        logger.info(f"Verifying {len(files)} file(s) against {manifest} with {public_key}")

        if not manifest.exists():
            logger.error(f"Signature manifest {manifest} is missing")
            return VerifyStatus.INVALID

        if self.verifier.check_manifest(public_key, manifest, files):
            logger.info("Signature verification passed")
            return VerifyStatus.VALID

        return VerifyStatus.INVALID


class IntegrityChecker:
    """Checks the installed upgrader against its own release signature.

    This uses a key and signature source separate from the operating system
    release, and never touches anything outside a scratch directory.
    """

    def __init__(
        self,
        verifier: Verifier,
        fetcher: Fetcher,
        signify_dir: Path,
        version: str,
        download_base: str = SELF_RELEASE_DOWNLOAD,
    ):
        self.verifier = verifier
        self.fetcher = fetcher
        self.public_key = Path(signify_dir) / SELF_PUBLIC_KEY
        self.version = version
        self.download_base = download_base.rstrip("/")

    def signature_url(self) -> str:
        if is_unversioned(self.version):
            return f"{self.download_base.rsplit('/download', 1)[0]}/latest/download/{SELF_SIGNATURE_NAME}"
        return f"{self.download_base}/{self.version}/{SELF_SIGNATURE_NAME}"

    def check_self(self, executable: Path, signature: Path | None = None) -> VerifyStatus:
        """Verify ``executable`` against its detached signature.

        Args:
            executable: Installed upgrader to check
            signature: Local signature file; fetched from the release channel if omitted

        Returns:
            VALID, INVALID, or NO_KEY

        Raises:
            TransferFailure: If the signature has to be fetched and cannot be
        """
        if not self.public_key.exists():
            logger.error(f"Public key {self.public_key} is missing")
            return VerifyStatus.NO_KEY

        if signature is not None:
            return self._check(executable, Path(signature))

        with tempfile.TemporaryDirectory(prefix="snapup-sig.") as scratch:
            fetched = self.fetcher.fetch(self.signature_url(), Path(scratch))
            return self._check(executable, fetched)

    def _check(self, executable: Path, signature: Path) -> VerifyStatus:
        logger.info(f"Checking {executable} against {signature}")
        if self.verifier.verify_message(self.public_key, signature, Path(executable)):
            logger.info(f"{executable} is intact")
            return VerifyStatus.VALID
        return VerifyStatus.INVALID
