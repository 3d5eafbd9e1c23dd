"""HTTP(S) transfer backed by a retrying requests session."""

import logging
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from snapup.errors import TransferFailure
from snapup.tools.base import Transferer

logger = logging.getLogger(__name__)

USER_AGENT = "snapup/1.0"


def create_session(max_retries: int = 3) -> requests.Session:
    """Create a requests session with retry configuration.

    Returns:
        Configured requests session with exponential backoff retry
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=1,  # 1, 2, 4 seconds
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})

    return session


class HttpTransferer(Transferer):
    """Streams remote files over HTTP(S)."""

    def __init__(self, timeout: int = 300, session: requests.Session | None = None):
        """Initialize the transferer.

        Args:
            timeout: Request timeout in seconds
            session: Session to reuse; a retrying session is created if omitted
        """
        self.timeout = timeout
        self.session = session or create_session()

    def transfer(self, url: str, destination: Path) -> None:
        logger.debug(f"GET {url} -> {destination}")

        try:
            with self.session.get(url, timeout=self.timeout, stream=True) as response:
                response.raise_for_status()

                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=65536):
                        if chunk:  # Filter out keep-alive chunks
                            f.write(chunk)

        except requests.RequestException as e:
            raise TransferFailure(url, str(e)) from e
        except OSError as e:
            raise TransferFailure(url, f"cannot write {destination}: {e}") from e
