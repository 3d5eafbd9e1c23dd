"""State machine driving a complete system upgrade."""

import logging
import os
from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from pathlib import Path

from snapup.config import BUILD_INFO
from snapup.config_manager import UpgradeConfig
from snapup.errors import (
    CopyFailure,
    NoPublicKey,
    OperatorAbort,
    SignatureInvalid,
    SnapupError,
)
from snapup.extractor import SetExtractor
from snapup.fetcher import Fetcher
from snapup.kernel import KernelBackupManager
from snapup.marker import LastUpgradeMarker
from snapup.release import kernel_urls, meta_urls, set_urls
from snapup.system import SystemTools
from snapup.tools.base import Merger
from snapup.utils import parse_build_info
from snapup.verifier import SignatureVerifier, VerifyStatus

logger = logging.getLogger(__name__)

MERGE_REMINDER = """#!/bin/sh
# Written by snapup after an upgrade; rc(8) runs it once at boot.
echo "The system was upgraded to a new snapshot. Run sysmerge(8) to merge configuration changes." | \\
    mail -s "snapup: configuration merge pending" root
"""


class State(Enum):
    INIT = "init"
    RESOLVE_CONFIG = "resolve-config"
    FETCH_META = "fetch-meta"
    FETCH_KERNEL = "fetch-kernel"
    BACKUP_KERNEL = "backup-kernel"
    INSTALL_KERNEL = "install-kernel"
    FETCH_SETS = "fetch-sets"
    FETCH_EXTENDED_SETS = "fetch-extended-sets"
    VERIFY_ALL = "verify-all"
    EXTRACT_SETS = "extract-sets"
    MERGE = "merge"
    FINALIZE = "finalize"
    ROLLBACK = "rollback"
    DONE = "done"
    ABORT = "abort"


# A failure in one of these states, once kernel files were written, restores
# the previous kernel before aborting.
ROLLBACK_STATES = frozenset(
    {State.INSTALL_KERNEL, State.FETCH_SETS, State.FETCH_EXTENDED_SETS, State.VERIFY_ALL}
)
TERMINAL_STATES = frozenset({State.DONE, State.ABORT})


def ask_operator(question: str) -> bool:
    answer = input(f"{question} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


class UpgradeOrchestrator:
    """Sequences fetch, verification, kernel install and set extraction.

    Each handler performs one state's work and returns the next state; the
    guards deciding which optional states run are evaluated there, once per
    transition. ``history`` records every state visited.
    """

    def __init__(
        self,
        config: UpgradeConfig,
        fetcher: Fetcher,
        verifier: SignatureVerifier,
        kernels: KernelBackupManager,
        extractor: SetExtractor,
        merger: Merger,
        marker: LastUpgradeMarker,
        system: SystemTools,
        confirm: Callable[[str], bool] = ask_operator,
    ):
        self.config = config
        self.fetcher = fetcher
        self.verifier = verifier
        self.kernels = kernels
        self.extractor = extractor
        self.merger = merger
        self.marker = marker
        self.system = system
        self.confirm = confirm

        self.history: list[State] = []
        self.build_id: str | None = None
        self.kernel_files: list[Path] = []
        self.set_files: list[Path] = []
        self.verified = False
        self.error: SnapupError | None = None
        self._failed_state: State | None = None

        self._handlers = {
            State.INIT: self._init,
            State.RESOLVE_CONFIG: self._resolve_config,
            State.FETCH_META: self._fetch_meta,
            State.FETCH_KERNEL: self._fetch_kernel,
            State.BACKUP_KERNEL: self._backup_kernel,
            State.INSTALL_KERNEL: self._install_kernel,
            State.FETCH_SETS: self._fetch_sets,
            State.FETCH_EXTENDED_SETS: self._fetch_extended_sets,
            State.VERIFY_ALL: self._verify_all,
            State.EXTRACT_SETS: self._extract_sets,
            State.MERGE: self._merge,
            State.FINALIZE: self._finalize,
            State.ROLLBACK: self._rollback,
        }

    @property
    def dst(self) -> Path:
        return self.config.dst

    def run(self) -> int:
        """Run the upgrade to completion.

        Returns:
            Process exit status: 0 on success, 1 on any fatal error
        """
        state = State.INIT
        while state not in TERMINAL_STATES:
            self.history.append(state)
            logger.info(f"Entering {state.value}")
            try:
                state = self._handlers[state]()
            except SnapupError as e:
                state = self._on_failure(state, e)

        self.history.append(state)

        if state is State.ABORT:
            logger.error(f"Upgrade aborted: {self.error}")
            return 1

        logger.info("Upgrade finished")
        return 0

    def _on_failure(self, state: State, error: SnapupError) -> State:
        logger.error(f"{state.value} failed: {error}")
        self.error = error
        self._failed_state = state
        if not self.kernels.kernel_written:
            return State.ABORT
        if state in ROLLBACK_STATES or isinstance(error, OperatorAbort):
            return State.ROLLBACK
        return State.ABORT

    def _ask(self, question: str) -> None:
        if self.config.interactive and not self.confirm(question):
            raise OperatorAbort(f"Operator declined: {question}")

    # States

    def _init(self) -> State:
        logger.info(f"Upgrading from {self.config.target.base_url}")
        return State.RESOLVE_CONFIG

    def _resolve_config(self) -> State:
        self.config.check_conflicts()
        self.system.require_root()

        if self.config.extract_only:
            return State.EXTRACT_SETS
        return State.FETCH_META

    def _fetch_meta(self) -> State:
        cached_build = self._cached_build_id()
        records = self.fetcher.fetch_all(meta_urls(self.config.target), self.dst, refresh=True)
        build_info = records[-1].path
        self.build_id = self._read_build_id(build_info)
        logger.info(f"Remote build: {self.build_id}")

        if cached_build is not None and cached_build != self.build_id:
            logger.info(f"Downloads in {self.dst} are from build {cached_build}, discarding them")
            self._discard_artifacts()

        if self.marker.is_applied(self.build_id) and not self.config.force_snapshot:
            logger.info(f"Build {self.build_id} was already applied")
            if not (self.config.interactive and self.confirm("Upgrade to the same build again?")):
                return State.DONE

        if self.config.sets_only:
            return State.FETCH_SETS
        return State.FETCH_KERNEL

    def _fetch_kernel(self) -> State:
        records = self.fetcher.fetch_all(
            kernel_urls(self.config.target, self.config.kernel), self.dst
        )
        self.kernel_files = [r.path for r in records]

        if self.config.download_only:
            return State.VERIFY_ALL if self.config.kernel_only else State.FETCH_SETS
        if self.config.no_kernel_backup:
            logger.warning("Kernel backup disabled, rollback will not be possible")
            return State.INSTALL_KERNEL
        return State.BACKUP_KERNEL

    def _backup_kernel(self) -> State:
        report = self.kernels.backup()
        if not report.ok:
            raise CopyFailure("Kernel backup", report)
        return State.INSTALL_KERNEL

    def _install_kernel(self) -> State:
        self._ask("Install the new kernel?")
        self.kernels.install_kernel(self.config.kernel, self.dst, backup_first=False)

        if self.config.instboot:
            self.system.install_boot(self.config.instboot)

        if self.config.kernel_only:
            return State.VERIFY_ALL
        return State.FETCH_SETS

    def _fetch_sets(self) -> State:
        records = self.fetcher.fetch_all(
            set_urls(self.config.target, self.config.artifacts), self.dst
        )
        self.set_files.extend(r.path for r in records)

        if self.config.include_extended:
            return State.FETCH_EXTENDED_SETS
        return State.VERIFY_ALL

    def _fetch_extended_sets(self) -> State:
        records = self.fetcher.fetch_all(
            set_urls(self.config.target, self.config.artifacts, extended=True), self.dst
        )
        self.set_files.extend(r.path for r in records)
        return State.VERIFY_ALL

    def _verify_all(self) -> State:
        files = self.kernel_files + self.set_files

        if self.config.skip_signature_check:
            logger.warning("Signature verification disabled, not checking downloaded files")
        else:
            version = self.config.target.set_version
            status = self.verifier.verify(files, version)
            if status is VerifyStatus.NO_KEY:
                raise NoPublicKey(str(self.verifier.public_key_path(version)))
            if status is not VerifyStatus.VALID:
                raise SignatureInvalid([str(f) for f in files])
            self.verified = True

        if self.config.kernel_only or self.config.download_only:
            logger.info(f"Artifacts are in {self.dst}")
            return State.DONE
        return State.EXTRACT_SETS

    def _extract_sets(self) -> State:
        # extract-only runs assume a previous download-only run verified DST
        if not (self.verified or self.config.skip_signature_check or self.config.extract_only):
            raise SnapupError("Refusing to extract sets that were not verified")

        names = self.config.artifacts.file_names(self.config.target.set_version)
        archives = [self.dst / name for name in names]

        self._ask(f"Extract {len(archives)} set(s) onto {self.config.root}?")
        self.extractor.extract_all(archives)
        return State.MERGE

    def _merge(self) -> State:
        if self.config.merge:
            logger.info("Merging configuration files")
            self.merger.merge()
        else:
            reminder = self.config.layout.merge_reminder
            self._write_script(reminder, MERGE_REMINDER)
            logger.info(f"Configuration merge deferred to next boot ({reminder})")
        return State.FINALIZE

    def _finalize(self) -> State:
        if self.build_id is None:
            build_info = self.dst / BUILD_INFO
            if build_info.exists():
                self.build_id = self._read_build_id(build_info)
        if self.build_id:
            self.marker.write(self.build_id)

        if self.config.after:
            self._append_first_boot(self.config.after)

        if self.config.reboot:
            self.system.reboot()
        elif self.config.warn_exit:
            logger.warning(
                "New userland is installed but the old kernel is still running; reboot now"
            )
        return State.DONE

    def _rollback(self) -> State:
        logger.warning(f"Restoring previous kernel after {self._failed_state.value} failure")
        report = self.kernels.rollback()
        if report.ok:
            logger.info("Previous kernel restored")
        else:
            for source, destination, reason in report.failed:
                logger.error(f"Could not restore {destination} from {source}: {reason}")
        return State.ABORT

    # Helpers

    def _cached_build_id(self) -> str | None:
        """Build the files already in DST belong to, if it can be told."""
        build_info = self.dst / BUILD_INFO
        if not build_info.exists():
            return None
        try:
            return self._read_build_id(build_info)
        except SnapupError as e:
            logger.warning(f"Ignoring unreadable {build_info}: {e}")
            return None

    def _discard_artifacts(self) -> None:
        artifacts = self.config.artifacts
        version = self.config.target.set_version
        names = (
            self.config.kernel.file_names()
            + artifacts.mandatory_file_names(version)
            + replace(artifacts, include_extended=True).extended_file_names(version)
        )
        for name in names:
            path = self.dst / name
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise SnapupError(f"Cannot remove stale download {path}: {e}") from e

    def _read_build_id(self, build_info: Path) -> str:
        try:
            return parse_build_info(build_info.read_text())
        except (OSError, ValueError) as e:
            raise SnapupError(f"Cannot read build info {build_info}: {e}") from e

    def _write_script(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            os.chmod(path, 0o755)
        except OSError as e:
            raise SnapupError(f"Cannot write {path}: {e}") from e

    def _append_first_boot(self, command: str) -> None:
        path = self.config.layout.first_boot
        try:
            content = path.read_text()
        except FileNotFoundError:
            content = "#!/bin/sh\n"
        except OSError as e:
            raise SnapupError(f"Cannot read {path}: {e}") from e
        if not content.endswith("\n"):
            content += "\n"
        self._write_script(path, f"{content}{command}\n")
        logger.info(f"Scheduled {command} for first boot in {path}")
