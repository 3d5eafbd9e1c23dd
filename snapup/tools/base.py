"""Abstract capabilities the upgrade pipeline depends on."""

from abc import ABC, abstractmethod
from pathlib import Path


class Transferer(ABC):
    """Moves one remote object to a local path.

    Implementations raise ``TransferFailure`` when the transfer does not
    complete. They write exactly to ``destination`` and nothing else.
    """

    @abstractmethod
    def transfer(self, url: str, destination: Path) -> None:
        """Download ``url`` into ``destination``."""


class Verifier(ABC):
    """Checks files against signify-style detached signatures."""

    @abstractmethod
    def check_manifest(self, public_key: Path, manifest: Path, files: list[Path]) -> bool:
        """Check that every file matches its entry in a signed checksum manifest.

        Args:
            public_key: Key the manifest is signed with
            manifest: Signed checksum manifest (e.g. SHA256.sig)
            files: Files listed in the manifest, located next to it

        Returns:
            True when the manifest signature and every checksum match
        """

    @abstractmethod
    def verify_message(self, public_key: Path, signature: Path, message: Path) -> bool:
        """Check a single file against its detached signature."""


class Archiver(ABC):
    """Unpacks an archive onto a root directory."""

    @abstractmethod
    def unpack(self, archive: Path, root: Path) -> None:
        """Extract ``archive`` below ``root``, preserving permissions and ownership.

        Raises:
            ExtractionFailure: If the archive could not be unpacked
        """


class Merger(ABC):
    """Merges configuration files shipped by a new release."""

    @abstractmethod
    def merge(self) -> None:
        """Run the merge tool.

        Raises:
            SnapupError: If the merge tool exits unsuccessfully
        """
