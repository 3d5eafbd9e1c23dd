"""Persistence of the last applied build identifier."""

import logging
from pathlib import Path

from snapup.errors import SnapupError

logger = logging.getLogger(__name__)


class LastUpgradeMarker:
    """Remembers which build was applied last, to spot runs with nothing new."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def read(self) -> str | None:
        """Return the recorded build identifier, or None if nothing was recorded.

        Raises:
            SnapupError: If the marker exists but cannot be read
        """
        try:
            value = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise SnapupError(f"Cannot read build marker {self.path}: {e}") from e
        return value or None

    def is_applied(self, build_id: str) -> bool:
        applied = self.read() == build_id.strip()
        logger.debug(f"Build {build_id!r} already applied: {applied}")
        return applied

    def write(self, build_id: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(build_id.strip() + "\n")
        except OSError as e:
            raise SnapupError(f"Cannot record build in {self.path}: {e}") from e
        logger.info(f"Recorded build {build_id!r} in {self.path}")
