"""Loading and resolution of the upgrade configuration."""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from snapup.config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_DST,
    DEFAULT_FTP_OPTS,
    DEFAULT_MARKER_FILE,
    DEFAULT_MIRROR,
    installed_version,
)
from snapup.errors import ConfigConflict
from snapup.models import ArtifactSet, KernelBundle, ReleaseTarget
from snapup.release import release_channel, resolve_target
from snapup.system import SystemLayout, SystemTools

logger = logging.getLogger(__name__)

BOOL_KEYS = (
    "INTERACTIVE",
    "MERGE",
    "NO_X11",
    "CHK_UPDATE",
    "INS_UPDATE",
    "REBOOT",
    "WEXIT",
    "EXTRACT_ONLY",
)
PATH_OR_FALSE_KEYS = ("INSTBOOT", "AFTER")
STRING_KEYS = ("DST", "MIRROR", "FTP_OPTS")
KNOWN_KEYS = BOOL_KEYS + PATH_OR_FALSE_KEYS + STRING_KEYS

DEFAULTS: dict[str, Any] = {
    "INTERACTIVE": False,
    "DST": DEFAULT_DST,
    "MERGE": False,
    "MIRROR": DEFAULT_MIRROR,
    "NO_X11": False,
    "FTP_OPTS": DEFAULT_FTP_OPTS,
    "CHK_UPDATE": False,
    "INS_UPDATE": False,
    "INSTBOOT": None,
    "REBOOT": False,
    "AFTER": None,
    "WEXIT": False,
    "EXTRACT_ONLY": False,
}


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_path_or_false(value: Any) -> str | None:
    """Read a key that holds either a path or ``false``."""
    if value is None or value is False:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("false", "no", "0"):
        return None
    return text


@dataclass(frozen=True)
class UpgradeConfig:
    """Everything a run needs, resolved once at startup.

    Attributes:
        target: Where releases are fetched from
        dst: Download directory
        root: Root of the filesystem being upgraded
        cpu_count: CPUs found on the host, used to pick the kernel variant
        self_version: Version of the installed upgrader
    """

    target: ReleaseTarget
    dst: Path
    root: Path = Path("/")
    interactive: bool = False
    merge: bool = False
    no_x11: bool = False
    ftp_opts: str = ""
    check_update: bool = False
    install_update: bool = False
    instboot: str | None = None
    reboot: bool = False
    after: str | None = None
    warn_exit: bool = False
    extract_only: bool = False
    download_only: bool = False
    force_snapshot: bool = False
    skip_signature_check: bool = False
    kernel_only: bool = False
    sets_only: bool = False
    no_kernel_backup: bool = False
    force_single_processor: bool = False
    integrity_check: bool = False
    signature: Path | None = None
    executable: Path | None = None
    cpu_count: int = 1
    marker_file: Path = Path(DEFAULT_MARKER_FILE)
    self_version: str = field(default_factory=installed_version)
    artifacts: ArtifactSet = field(default_factory=ArtifactSet)
    kernel: KernelBundle = field(default_factory=KernelBundle)

    def __post_init__(self) -> None:
        # NO_X11 wins over the artifact set so fetch and extract agree
        if self.no_x11 and self.artifacts.include_extended:
            object.__setattr__(self, "artifacts", replace(self.artifacts, include_extended=False))

    @property
    def layout(self) -> SystemLayout:
        return SystemLayout(root=self.root)

    @property
    def include_extended(self) -> bool:
        return self.artifacts.include_extended

    def check_conflicts(self) -> None:
        """Reject mutually exclusive modes.

        Raises:
            ConfigConflict: If two exclusive modes are enabled together
        """
        exclusive = [
            ("kernel_only", "sets_only"),
            ("download_only", "extract_only"),
            ("kernel_only", "extract_only"),
            ("check_update", "install_update"),
        ]
        for first, second in exclusive:
            if getattr(self, first) and getattr(self, second):
                raise ConfigConflict(
                    f"{first.replace('_', '-')} and {second.replace('_', '-')} "
                    "are mutually exclusive"
                )


class ConfigManager:
    """Reads the configuration file and merges it with command-line options.

    Attributes:
        config_file: Path to the flat YAML configuration mapping
    """

    def __init__(self, config_file: str | None = None) -> None:
        """Initialize ConfigManager.

        Args:
            config_file: Explicit configuration file; the default file is
                optional, an explicit one must exist
        """
        self.explicit = config_file is not None
        self.config_file = Path(config_file or DEFAULT_CONFIG_FILE)

    def load_file(self) -> dict[str, Any]:
        """Load the flat key/value mapping from the configuration file.

        Returns:
            Mapping of recognized keys to their raw values

        Raises:
            FileNotFoundError: If an explicitly given file does not exist
            ValueError: If the file does not hold a flat mapping
        """
        if not self.config_file.exists():
            if self.explicit:
                raise FileNotFoundError(f"Config file {self.config_file} not found")
            logger.debug(f"No config file at {self.config_file}, using defaults")
            return {}

        with open(self.config_file) as f:
            data = yaml.safe_load(f)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_file} must contain a key/value mapping")

        values = {}
        for key, value in data.items():
            key = str(key).upper()
            if key not in KNOWN_KEYS:
                logger.warning(f"Ignoring unknown config key {key} in {self.config_file}")
                continue
            if isinstance(value, (dict, list)):
                raise ValueError(f"Config key {key} must hold a single value")
            values[key] = value

        logger.info(f"Loaded {len(values)} setting(s) from {self.config_file}")
        return values

    def resolve_values(self, file_values: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
        """Apply defaults, then the file, then command-line overrides."""
        merged = dict(DEFAULTS)
        merged.update(file_values)
        merged.update({k: v for k, v in overrides.items() if v is not None})

        resolved: dict[str, Any] = {}
        for key in BOOL_KEYS:
            resolved[key] = parse_bool(merged.get(key), DEFAULTS[key])
        for key in PATH_OR_FALSE_KEYS:
            resolved[key] = parse_path_or_false(merged.get(key))
        for key in STRING_KEYS:
            value = merged.get(key)
            resolved[key] = "" if value is None else str(value)
        return resolved

    def build_config(
        self,
        tools: SystemTools,
        overrides: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> UpgradeConfig:
        """Build the immutable configuration for one run.

        Args:
            tools: Host queries for machine, release and CPU count
            overrides: Command-line values for configuration-file keys
            options: Command-line only settings (modes, machine, version)

        Returns:
            Resolved UpgradeConfig
        """
        options = options or {}
        values = self.resolve_values(self.load_file(), overrides or {})

        machine = options.get("machine") or tools.machine()
        set_version = options.get("set_version") or tools.os_release()
        force_snapshot = bool(options.get("force_snapshot"))
        running_snapshot = False if force_snapshot else tools.running_snapshot()
        release = release_channel(force_snapshot, running_snapshot, set_version)

        target = resolve_target(values["MIRROR"], release, machine, set_version)
        logger.info(f"Using {target.base_url}")

        return UpgradeConfig(
            target=target,
            dst=Path(values["DST"]),
            root=tools.layout.root,
            interactive=values["INTERACTIVE"],
            merge=values["MERGE"],
            no_x11=values["NO_X11"],
            ftp_opts=values["FTP_OPTS"],
            check_update=values["CHK_UPDATE"],
            install_update=values["INS_UPDATE"],
            instboot=values["INSTBOOT"],
            reboot=values["REBOOT"],
            after=values["AFTER"],
            warn_exit=values["WEXIT"],
            extract_only=values["EXTRACT_ONLY"],
            download_only=bool(options.get("download_only")),
            force_snapshot=force_snapshot,
            skip_signature_check=bool(options.get("skip_signature_check")),
            kernel_only=bool(options.get("kernel_only")),
            sets_only=bool(options.get("sets_only")),
            no_kernel_backup=bool(options.get("no_kernel_backup")),
            force_single_processor=bool(options.get("force_single_processor")),
            integrity_check=bool(options.get("integrity_check")),
            signature=Path(options["signature"]) if options.get("signature") else None,
            executable=Path(options["executable"]) if options.get("executable") else None,
            cpu_count=tools.cpu_count(),
            marker_file=Path(options.get("marker_file") or DEFAULT_MARKER_FILE).expanduser(),
            artifacts=ArtifactSet(include_extended=not values["NO_X11"]),
            kernel=KernelBundle.for_machine(machine),
        )
