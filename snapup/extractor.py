"""Unpacking of verified sets onto the live root filesystem."""

import logging
from pathlib import Path

from snapup.errors import ExtractionFailure
from snapup.tools.base import Archiver

logger = logging.getLogger(__name__)


class SetExtractor:
    """Extracts set archives over the root filesystem, in order."""

    def __init__(self, archiver: Archiver, root: Path = Path("/")):
        self.archiver = archiver
        self.root = Path(root)

    def extract(self, archive: Path) -> None:
        """Extract one archive onto the root.

        Raises:
            ExtractionFailure: If the archive is missing or cannot be unpacked
        """
        archive = Path(archive)
        if not archive.is_file():
            raise ExtractionFailure(str(archive), "archive not found")

        logger.info(f"Extracting {archive.name} onto {self.root}")
        self.archiver.unpack(archive, self.root)

    def extract_all(self, archives: list[Path]) -> None:
        """Extract archives in the given order, stopping at the first failure.

        A failure leaves the filesystem as-is; earlier sets stay extracted.
        """
        for archive in archives:
            self.extract(archive)
        logger.info(f"Extracted {len(archives)} set(s)")
