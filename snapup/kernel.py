"""Backup, restore and installation of the running kernel."""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from snapup.errors import CopyFailure
from snapup.models import BackupSnapshot, CopyReport, KernelBundle
from snapup.system import SystemLayout
from snapup.utils import calculate_sha256

logger = logging.getLogger(__name__)

NO_BACKUP = "no backup taken in this run"


def copy_into_place(source: Path, destination: Path) -> None:
    """Copy ``source`` over ``destination`` without a window where neither exists.

    The data goes to a temporary sibling first, which is renamed onto the
    destination once complete.
    """
    if not source.is_file():
        raise FileNotFoundError(f"{source} does not exist")

    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=destination.parent)
    os.close(fd)
    try:
        shutil.copy2(source, temp_name)
        os.replace(temp_name, destination)
    except OSError:
        Path(temp_name).unlink(missing_ok=True)
        raise


class KernelBackupManager:
    """Keeps one previous generation of the kernel and reboot binary."""

    def __init__(self, layout: SystemLayout, cpu_count: int = 1, force_single_processor: bool = False):
        """Initialize the manager.

        Args:
            layout: Filesystem locations of the kernels and their backups
            cpu_count: Number of CPUs found on the host
            force_single_processor: Never select the multiprocessor kernel
        """
        self.layout = layout
        self.cpu_count = cpu_count
        self.force_single_processor = force_single_processor
        self.snapshot: BackupSnapshot | None = None
        self.kernel_written = False

    def backup_pairs(self) -> list[tuple[Path, Path]]:
        layout = self.layout
        pairs = [
            (layout.bsd, layout.obsd),
            (layout.bsd_rd, layout.obsd_rd),
            (layout.reboot, layout.oreboot),
        ]
        if layout.bsd_mp.exists():
            pairs.append((layout.bsd_mp, layout.obsd_mp))
        return pairs

    def backup(self) -> CopyReport:
        """Copy the active kernels and reboot binary to their backup paths.

        Every copy is attempted even if an earlier one failed. Nothing is
        rolled back on failure since no canonical path has been touched.
        """
        report = CopyReport()
        pairs = self.backup_pairs()

        for original, backup in pairs:
            try:
                copy_into_place(original, backup)
                report.record(original, backup)
                logger.info(f"Backed up {original} to {backup}")
            except OSError as e:
                report.record(original, backup, e)
                logger.error(f"Failed to back up {original} to {backup}: {e}")

        if report.ok:
            self.snapshot = BackupSnapshot(pairs=tuple(pairs))
        else:
            self.snapshot = None
        return report

    def rollback(self) -> CopyReport:
        """Restore the backed-up files to their canonical paths.

        Every restoration is attempted once; failures are collected in the
        returned report rather than retried. Without a backup taken by this
        manager nothing is restored, since whatever sits at the backup paths
        may be older than the running userland.
        """
        report = CopyReport()

        if self.snapshot is None:
            for original, backup in self.backup_pairs():
                report.record(backup, original, NO_BACKUP)
            logger.error("No kernel backup was taken in this run, nothing to restore")
            return report

        for backup, original in self.snapshot.reversed_pairs():
            try:
                copy_into_place(backup, original)
                report.record(backup, original)
                logger.info(f"Restored {original} from {backup}")
            except OSError as e:
                report.record(backup, original, e)
                logger.error(f"Failed to restore {original} from {backup}: {e}")

        return report

    def use_multiprocessor(self, bundle: KernelBundle) -> bool:
        return bool(bundle.multiprocessor) and self.cpu_count > 1 and not self.force_single_processor

    def install_kernel(self, bundle: KernelBundle, source_dir: Path, backup_first: bool = True) -> CopyReport:
        """Install freshly fetched kernel images from ``source_dir``.

        Args:
            bundle: Kernel image names
            source_dir: Directory holding the downloaded images
            backup_first: Back up the running kernel before writing anything

        Returns:
            Report of the install copies

        Raises:
            CopyFailure: If the backup or any install copy fails
        """
        source_dir = Path(source_dir)
        layout = self.layout

        if backup_first:
            backup_report = self.backup()
            if not backup_report.ok:
                raise CopyFailure("Kernel backup", backup_report)

        if self.use_multiprocessor(bundle):
            logger.info(f"{self.cpu_count} CPUs found, installing {bundle.multiprocessor}")
            copies = [
                (source_dir / bundle.multiprocessor, layout.bsd_mp),
                (source_dir / bundle.multiprocessor, layout.bsd),
                (source_dir / bundle.primary, layout.bsd_sp),
            ]
        else:
            logger.info(f"Installing {bundle.primary}")
            copies = [(source_dir / bundle.primary, layout.bsd)]
            if bundle.multiprocessor and (source_dir / bundle.multiprocessor).exists():
                copies.append((source_dir / bundle.multiprocessor, layout.bsd_mp))
        copies.append((source_dir / bundle.ramdisk, layout.bsd_rd))

        report = CopyReport()
        for source, destination in copies:
            self.kernel_written = True
            try:
                copy_into_place(source, destination)
                report.record(source, destination)
            except OSError as e:
                report.record(source, destination, e)
                logger.error(f"Failed to install {source} as {destination}: {e}")

        if not report.ok:
            raise CopyFailure("Kernel install", report)

        try:
            self.write_checksum()
        except OSError as e:
            report.record(layout.bsd, layout.kernel_checksum, e)
            raise CopyFailure("Kernel checksum", report) from e
        return report

    def write_checksum(self) -> None:
        """Record the checksum of the canonical kernel for boot-time relinking."""
        checksum = calculate_sha256(self.layout.bsd)
        target = self.layout.kernel_checksum
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"SHA256 (/bsd) = {checksum}\n")
        logger.info(f"Wrote kernel checksum to {target}")
