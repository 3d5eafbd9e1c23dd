"""Configuration constants and logging setup for the snapshot upgrader."""

import logging
import os
import sys
from importlib import metadata


def setup_logging(level: str | None = None) -> None:
    """Set up operator-facing logging on stdout.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to INFO.
    """
    log_level = level or os.getenv(ENV_LOG_LEVEL, "INFO")

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Retry chatter from the HTTP stack is not useful to an operator
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_env_var(name: str, default: str | None = None, required: bool = False) -> str:
    """Get environment variable with optional default and validation.

    Args:
        name: Environment variable name
        default: Default value if not set
        required: Whether the variable is required

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set
    """
    value = os.getenv(name, default)

    if required and not value:
        raise ValueError(f"Required environment variable {name} is not set")

    return value or ""


# Environment variable names
ENV_LOG_LEVEL = "SNAPUP_LOG_LEVEL"
ENV_ROOT = "SNAPUP_ROOT"
ENV_REPOSITORY = "SNAPUP_REPOSITORY"

DEFAULT_CONFIG_FILE = "/etc/snap.conf"
DEFAULT_MIRROR = "cdn.openbsd.org"
DEFAULT_SCHEME = "https"
DEFAULT_DST = "/tmp/upgrade"
DEFAULT_FTP_OPTS = ""
DEFAULT_MARKER_FILE = "~/.last_snap"
SNAPSHOTS = "snapshots"

SIGNATURE_MANIFEST = "SHA256.sig"
BUILD_INFO = "BUILDINFO"

# Release channel of the upgrader itself. Each release publishes the
# single-file executable "snapup" and its signify signature "snapup.sig".
SELF_REPOSITORY = os.getenv(ENV_REPOSITORY, "snapup/snapup")
SELF_RELEASES_API = f"https://api.github.com/repos/{SELF_REPOSITORY}/releases/latest"
SELF_RELEASE_DOWNLOAD = f"https://github.com/{SELF_REPOSITORY}/releases/download"
SELF_DISTRIBUTION = "snapup"
SELF_EXECUTABLE_NAME = "snapup"
SELF_SIGNATURE_NAME = "snapup.sig"
SELF_PUBLIC_KEY = "snapup.pub"
# Reported by builds that are not installed from a release
DEVELOPMENT_VERSION = "master"


def installed_version() -> str:
    """Version of the installed snapup distribution.

    A source checkout that was never installed has no distribution metadata
    and reports the development version, which is never compared.
    """
    try:
        return metadata.version(SELF_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return DEVELOPMENT_VERSION
