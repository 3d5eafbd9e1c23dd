"""Self-update of the installed upgrader from its release feed."""

import json
import logging
import os
import stat
import tempfile
from pathlib import Path

import requests

from snapup.config import SELF_EXECUTABLE_NAME, SELF_RELEASE_DOWNLOAD, SELF_RELEASES_API
from snapup.errors import UpdateError
from snapup.models import UpdateCheck
from snapup.tools.http import create_session
from snapup.utils import is_unversioned, normalize_version

logger = logging.getLogger(__name__)


class SelfUpdater:
    """Checks for and installs newer releases of the upgrader."""

    def __init__(
        self,
        releases_api: str = SELF_RELEASES_API,
        download_base: str = SELF_RELEASE_DOWNLOAD,
        timeout: int = 30,
        max_retries: int = 3,
    ):
        """Initialize the updater.

        Args:
            releases_api: URL returning the latest release as JSON
            download_base: Base URL serving release assets per tag
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
        """
        self.releases_api = releases_api
        self.download_base = download_base.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = create_session(max_retries)

    def fetch_latest_tag(self) -> str:
        """Fetch the tag of the latest published release.

        Raises:
            UpdateError: If the feed cannot be fetched or has no tag
        """
        logger.info(f"Fetching latest release from {self.releases_api}")

        try:
            response = self.session.get(self.releases_api, timeout=self.timeout)
            response.raise_for_status()
            release = response.json()
        except requests.exceptions.RequestException as e:
            raise UpdateError(f"Failed to query {self.releases_api}: {e}") from e
        except json.JSONDecodeError as e:
            logger.error(f"Response content: {response.text[:500]}...")
            raise UpdateError(f"Release feed returned invalid JSON: {e}") from e

        tag = release.get("tag_name") if isinstance(release, dict) else None
        if not tag:
            raise UpdateError("Release feed has no tag_name")
        return tag

    def check_for_update(self, current_version: str) -> UpdateCheck:
        """Compare the running version with the latest release.

        Versions are compared as normalized integers ("6.1" -> 61). An
        unversioned build such as "master" is never compared and is always
        eligible for an update.
        """
        latest = self.fetch_latest_tag()

        if is_unversioned(current_version):
            logger.info(f"Running unversioned build {current_version!r}, latest is {latest}")
            return UpdateCheck(current=current_version, latest=latest, update_available=True)

        available = normalize_version(latest) > normalize_version(current_version)
        if available:
            logger.info(f"Update available: {current_version} -> {latest}")
        else:
            logger.info(f"{current_version} is up to date")
        return UpdateCheck(current=current_version, latest=latest, update_available=available)

    def executable_url(self, tag: str) -> str:
        return f"{self.download_base}/{tag}/{SELF_EXECUTABLE_NAME}"

    def install_update(self, tag: str, target: Path) -> Path:
        """Replace the installed executable with the one published for ``tag``.

        The body is written to a temporary file beside ``target`` and then
        moved over it. Its signature is not checked here.

        Raises:
            UpdateError: If the download or the replacement fails
        """
        target = Path(target)
        url = self.executable_url(tag)
        logger.info(f"Installing {url} over {target}")

        try:
            mode = stat.S_IMODE(target.stat().st_mode)
        except FileNotFoundError:
            mode = 0o755

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise UpdateError(f"Failed to download {url}: {e}") from e

        if not response.content:
            raise UpdateError(f"{url} returned an empty body")

        temp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=f".{target.name}.", delete=False
            ) as f:
                temp_name = f.name
                f.write(response.content)
            os.chmod(temp_name, mode)
            os.replace(temp_name, target)
        except OSError as e:
            if temp_name:
                Path(temp_name).unlink(missing_ok=True)
            raise UpdateError(f"Failed to replace {target}: {e}") from e

        logger.info(f"Installed {tag} at {target}")
        return target
