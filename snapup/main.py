"""Command-line entry point for the snapshot upgrader."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from snapup.config import ENV_ROOT, get_env_var, setup_logging
from snapup.config_manager import ConfigManager, UpgradeConfig
from snapup.errors import ConfigConflict, NoPublicKey, SnapupError
from snapup.extractor import SetExtractor
from snapup.fetcher import Fetcher
from snapup.kernel import KernelBackupManager
from snapup.marker import LastUpgradeMarker
from snapup.orchestrator import UpgradeOrchestrator
from snapup.self_update import SelfUpdater
from snapup.system import SystemLayout, SystemTools
from snapup.tools.base import Transferer
from snapup.tools.external import FtpTransferer, SignifyVerifier, SysmergeMerger, TarArchiver
from snapup.tools.http import HttpTransferer
from snapup.verifier import IntegrityChecker, SignatureVerifier, VerifyStatus

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapup",
        description="Upgrade the running system to the latest snapshot or release.",
    )
    parser.add_argument("-s", dest="force_snapshot", action="store_true", help="force an upgrade to the latest snapshot")
    parser.add_argument("-S", dest="skip_signature_check", action="store_true", help="skip signature verification")
    parser.add_argument("-c", dest="config", metavar="FILE", help="configuration file")
    parser.add_argument("-e", dest="extract_only", action="store_true", default=None, help="only extract sets already in DST")
    parser.add_argument("-d", dest="download_only", action="store_true", help="only download and verify")
    parser.add_argument("-m", dest="machine", metavar="MACHINE", help="machine architecture to fetch")
    parser.add_argument("-v", dest="set_version", metavar="VERSION", help="set version, e.g. 7.5")
    parser.add_argument("-M", dest="mirror", metavar="MIRROR", help="mirror host name or URL")
    parser.add_argument("-x", dest="no_x11", action="store_true", default=None, help="do not fetch or extract the X sets")
    parser.add_argument("-I", dest="integrity_check", action="store_true", help="check the integrity of this program and exit")
    parser.add_argument("--signature", metavar="PATH", help="local signature for -I instead of fetching one")
    parser.add_argument("--executable", metavar="PATH", help="installed program checked by -I and replaced by -U")
    parser.add_argument("-i", dest="interactive", action="store_true", default=None, help="ask before each destructive step")
    parser.add_argument("-p", dest="force_single_processor", action="store_true", help="install the single-processor kernel; otherwise bsd.mp is picked automatically on multi-CPU hosts")
    parser.add_argument("-k", dest="kernel_only", action="store_true", help="only upgrade the kernel")
    parser.add_argument("-K", dest="sets_only", action="store_true", help="only upgrade the sets")
    parser.add_argument("-B", dest="no_kernel_backup", action="store_true", help="do not back up the running kernel")
    parser.add_argument("-u", dest="check_update", action="store_true", default=None, help="check for a new version of this program")
    parser.add_argument("-U", dest="install_update", action="store_true", default=None, help="install a new version of this program")
    parser.add_argument("-b", dest="instboot", metavar="DEVICE", help="run installboot on DEVICE after installing the kernel")
    parser.add_argument("-r", dest="reboot", action="store_true", default=None, help="reboot after upgrading")
    parser.add_argument("-W", dest="warn_exit", action="store_true", default=None, help="warn on exit when a reboot is pending")
    parser.add_argument("--merge", dest="merge", action="store_true", default=None, help="run sysmerge right after extraction")
    return parser


def check_flag_conflicts(args: argparse.Namespace) -> None:
    """Reject exclusive flags before anything touches the disk or network."""
    if args.kernel_only and args.sets_only:
        raise ConfigConflict("-k and -K are mutually exclusive")
    if args.download_only and args.extract_only:
        raise ConfigConflict("-d and -e are mutually exclusive")
    if args.check_update and args.install_update:
        raise ConfigConflict("-u and -U are mutually exclusive")


def config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Map command-line flags onto configuration-file keys."""
    return {
        "INTERACTIVE": args.interactive,
        "MERGE": args.merge,
        "MIRROR": args.mirror,
        "NO_X11": args.no_x11,
        "CHK_UPDATE": args.check_update,
        "INS_UPDATE": args.install_update,
        "INSTBOOT": args.instboot,
        "REBOOT": args.reboot,
        "WEXIT": args.warn_exit,
        "EXTRACT_ONLY": args.extract_only,
    }


def command_options(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "force_snapshot": args.force_snapshot,
        "skip_signature_check": args.skip_signature_check,
        "download_only": args.download_only,
        "machine": args.machine,
        "set_version": args.set_version,
        "kernel_only": args.kernel_only,
        "sets_only": args.sets_only,
        "no_kernel_backup": args.no_kernel_backup,
        "force_single_processor": args.force_single_processor,
        "integrity_check": args.integrity_check,
        "signature": args.signature,
        "executable": args.executable or sys.argv[0],
    }


def create_transferer(config: UpgradeConfig) -> Transferer:
    if config.target.scheme == "ftp" or config.ftp_opts.strip():
        return FtpTransferer(config.ftp_opts)
    return HttpTransferer()


def check_integrity(config: UpgradeConfig) -> int:
    checker = IntegrityChecker(
        verifier=SignifyVerifier(),
        fetcher=Fetcher(HttpTransferer()),
        signify_dir=config.layout.signify_dir,
        version=config.self_version,
    )
    status = checker.check_self(config.executable, config.signature)
    if status is VerifyStatus.NO_KEY:
        raise NoPublicKey(str(checker.public_key))
    if status is not VerifyStatus.VALID:
        logger.error(f"{config.executable} failed its integrity check")
        return 1
    return 0


def self_update(config: UpgradeConfig) -> int:
    updater = SelfUpdater()
    result = updater.check_for_update(config.self_version)

    if config.install_update:
        if result.update_available:
            updater.install_update(result.latest, config.executable)
        else:
            logger.info(f"Already running {result.current}, nothing to install")
    elif result.update_available:
        logger.info(f"Version {result.latest} is available, run with -U to install it")
    return 0


def create_orchestrator(config: UpgradeConfig, system: SystemTools) -> UpgradeOrchestrator:
    """Wire the concrete tools into an orchestrator for one run."""
    fetcher = Fetcher(create_transferer(config))
    return UpgradeOrchestrator(
        config=config,
        fetcher=fetcher,
        verifier=SignatureVerifier(SignifyVerifier(), config.layout.signify_dir),
        kernels=KernelBackupManager(
            config.layout,
            cpu_count=config.cpu_count,
            force_single_processor=config.force_single_processor,
        ),
        extractor=SetExtractor(TarArchiver(), config.root),
        merger=SysmergeMerger(),
        marker=LastUpgradeMarker(config.marker_file),
        system=system,
    )


def main(argv: list[str] | None = None) -> int:
    """Run snapup and return the process exit status."""
    setup_logging()
    args = build_parser().parse_args(argv)

    try:
        check_flag_conflicts(args)

        layout = SystemLayout(root=Path(get_env_var(ENV_ROOT, "/")))
        system = SystemTools(layout)
        config = ConfigManager(args.config).build_config(
            system, config_overrides(args), command_options(args)
        )
        config.check_conflicts()

        if config.integrity_check:
            return check_integrity(config)

        if config.check_update or config.install_update:
            return self_update(config)

        return create_orchestrator(config, system).run()

    except (SnapupError, FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
