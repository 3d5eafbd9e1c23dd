"""Idempotent retrieval of release artifacts into a download directory."""

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import urlparse

from snapup.errors import TransferFailure
from snapup.models import DownloadRecord
from snapup.tools.base import Transferer

logger = logging.getLogger(__name__)


class Fetcher:
    """Downloads remote files, skipping any that are already present."""

    def __init__(self, transferer: Transferer):
        """Initialize the fetcher.

        Args:
            transferer: Capability that performs the actual transfer
        """
        self.transferer = transferer

    def fetch(self, url: str, dest_dir: Path, refresh: bool = False) -> Path:
        """Fetch a single remote file into ``dest_dir``.

        A file with the same base name already in ``dest_dir`` counts as
        fetched and nothing is transferred, unless ``refresh`` is set. New
        files land under a temporary name first and are renamed into place
        only once complete, so an interrupted transfer never looks like a
        finished one.

        Args:
            url: Remote object to retrieve
            dest_dir: Directory receiving the file
            refresh: Transfer even if the file is already present, replacing it

        Returns:
            Path to the local file

        Raises:
            TransferFailure: If the transfer fails
        """
        dest_dir = Path(dest_dir)
        filename = self._extract_filename_from_url(url)
        target_path = dest_dir / filename

        if target_path.exists() and not refresh:
            logger.info(f"{filename} already present in {dest_dir}, not fetching")
            return target_path

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{filename}.", suffix=".part", dir=dest_dir
            )
            os.close(fd)
        except OSError as e:
            raise TransferFailure(url, f"cannot create file in {dest_dir}: {e}") from e

        temp_path = Path(temp_name)
        logger.info(f"Fetching {filename} from {url}")

        try:
            self.transferer.transfer(url, temp_path)
            os.replace(temp_path, target_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise TransferFailure(url, str(e)) from e
        except TransferFailure:
            temp_path.unlink(missing_ok=True)
            raise

        file_size = target_path.stat().st_size
        logger.info(f"Fetched {filename} ({file_size} bytes)")
        return target_path

    def fetch_all(
        self, urls: list[str], dest_dir: Path, refresh: bool = False
    ) -> list[DownloadRecord]:
        """Fetch several files in order, stopping at the first failure."""
        records = []
        for url in urls:
            path = self.fetch(url, dest_dir, refresh=refresh)
            records.append(DownloadRecord(url=url, path=path))
        return records

    def _extract_filename_from_url(self, url: str) -> str:
        filename = Path(urlparse(url).path).name
        if not filename:
            raise TransferFailure(url, "URL does not name a file")
        return filename
