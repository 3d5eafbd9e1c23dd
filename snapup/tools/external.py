"""Capabilities implemented by running the base system's own tools."""

import logging
import shlex
import subprocess
from pathlib import Path

from snapup.errors import ExtractionFailure, SnapupError, TransferFailure
from snapup.tools.base import Archiver, Merger, Transferer, Verifier

logger = logging.getLogger(__name__)


def run_tool(command: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess:
    """Run an external program and capture its output.

    A missing executable is reported like any other failing run, with
    return code 127.
    """
    logger.debug(f"Running: {shlex.join(command)}")
    try:
        return subprocess.run(
            command, cwd=cwd, capture_output=True, text=True, check=False
        )
    except FileNotFoundError as e:
        return subprocess.CompletedProcess(command, 127, "", str(e))


def _failure_reason(result: subprocess.CompletedProcess) -> str:
    detail = (result.stderr or result.stdout or "").strip()
    if detail:
        return f"exit status {result.returncode}: {detail}"
    return f"exit status {result.returncode}"


class FtpTransferer(Transferer):
    """Transfers files with ftp(1), passing operator options through untouched."""

    def __init__(self, options: str = "", program: str = "ftp"):
        self.options = shlex.split(options or "")
        self.program = program

    def transfer(self, url: str, destination: Path) -> None:
        command = [self.program, *self.options, "-o", str(destination), url]
        result = run_tool(command)
        if result.returncode != 0:
            raise TransferFailure(url, _failure_reason(result))


class SignifyVerifier(Verifier):
    """Verifies signatures with signify(1)."""

    def __init__(self, program: str = "signify"):
        self.program = program

    def check_manifest(self, public_key: Path, manifest: Path, files: list[Path]) -> bool:
        # signify -C looks files up by the names recorded in the manifest,
        # so it must run next to them.
        command = [
            self.program,
            "-C",
            "-p",
            str(public_key),
            "-x",
            manifest.name,
            *[f.name for f in files],
        ]
        result = run_tool(command, cwd=manifest.parent)
        if result.returncode != 0:
            logger.error(f"signify rejected {manifest}: {_failure_reason(result)}")
            return False
        return True

    def verify_message(self, public_key: Path, signature: Path, message: Path) -> bool:
        command = [
            self.program,
            "-V",
            "-p",
            str(public_key),
            "-x",
            str(signature),
            "-m",
            str(message),
        ]
        result = run_tool(command)
        if result.returncode != 0:
            logger.error(f"signify rejected {message}: {_failure_reason(result)}")
            return False
        return True


class TarArchiver(Archiver):
    """Unpacks gzipped tarballs with tar(1)."""

    def __init__(self, program: str = "tar"):
        self.program = program

    def unpack(self, archive: Path, root: Path) -> None:
        # -p keeps permissions and ownership, -h follows symlinks the way the
        # archive itself dictates.
        command = [self.program, "-C", str(root), "-xzphf", str(archive)]
        result = run_tool(command)
        if result.returncode != 0:
            raise ExtractionFailure(str(archive), _failure_reason(result))


class SysmergeMerger(Merger):
    """Runs sysmerge(8) to merge configuration files."""

    def __init__(self, program: str = "sysmerge"):
        self.program = program

    def merge(self) -> None:
        result = run_tool([self.program])
        if result.returncode != 0:
            raise SnapupError(f"{self.program} failed: {_failure_reason(result)}")
