"""Access to the host: fixed system paths, privilege and hardware queries, boot tools."""

import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path

from snapup.errors import PrivilegeError, SnapupError
from snapup.tools.external import run_tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemLayout:
    """Fixed filesystem locations, relative to a root directory."""

    root: Path = Path("/")

    def path(self, relative: str) -> Path:
        return self.root / relative

    @property
    def bsd(self) -> Path:
        return self.path("bsd")

    @property
    def bsd_mp(self) -> Path:
        return self.path("bsd.mp")

    @property
    def bsd_sp(self) -> Path:
        return self.path("bsd.sp")

    @property
    def bsd_rd(self) -> Path:
        return self.path("bsd.rd")

    @property
    def obsd(self) -> Path:
        return self.path("obsd")

    @property
    def obsd_mp(self) -> Path:
        return self.path("obsd.mp")

    @property
    def obsd_rd(self) -> Path:
        return self.path("obsd.rd")

    @property
    def reboot(self) -> Path:
        return self.path("sbin/reboot")

    @property
    def oreboot(self) -> Path:
        return self.path("sbin/oreboot")

    @property
    def kernel_checksum(self) -> Path:
        return self.path("var/db/kernel.SHA256")

    @property
    def signify_dir(self) -> Path:
        return self.path("etc/signify")

    @property
    def merge_reminder(self) -> Path:
        return self.path("etc/rc.sysmerge")

    @property
    def first_boot(self) -> Path:
        return self.path("etc/rc.firsttime")


class SystemTools:
    """Thin wrapper over the host queries and commands the orchestrator needs."""

    def __init__(self, layout: SystemLayout):
        self.layout = layout

    def require_root(self) -> None:
        """Raise PrivilegeError unless running with root privileges."""
        if os.geteuid() != 0:
            raise PrivilegeError("snapup must be run as root")

    def cpu_count(self) -> int:
        result = run_tool(["sysctl", "-n", "hw.ncpufound"])
        if result.returncode == 0 and result.stdout.strip().isdigit():
            return int(result.stdout.strip())
        return os.cpu_count() or 1

    def machine(self) -> str:
        return platform.machine()

    def os_release(self) -> str:
        return platform.release()

    def running_snapshot(self) -> bool:
        """True when the running kernel is a -current or -beta build."""
        result = run_tool(["sysctl", "-n", "kern.version"])
        version = result.stdout if result.returncode == 0 else ""
        return "-current" in version or "-beta" in version

    def install_boot(self, device: str) -> None:
        logger.info(f"Installing bootstrap on {device}")
        result = run_tool(["installboot", device])
        if result.returncode != 0:
            raise SnapupError(f"installboot {device} failed: {result.stderr.strip()}")

    def reboot(self) -> None:
        # The freshly extracted reboot(8) may not run on the old kernel.
        program = self.layout.oreboot if self.layout.oreboot.exists() else self.layout.reboot
        logger.info(f"Rebooting with {program}")
        result = run_tool([str(program)])
        if result.returncode != 0:
            raise SnapupError(f"{program} failed: {result.stderr.strip()}")
