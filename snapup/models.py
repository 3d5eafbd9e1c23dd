"""Data models for the snapshot upgrade pipeline."""

from dataclasses import dataclass, field
from pathlib import Path

from snapup.utils import version_digits

DOCUMENTATION_SET = "man"
BASE_SET = "base"

DEFAULT_SETS = ("comp", "game", "man", "base")
DEFAULT_EXTENDED_SETS = ("xbase", "xshare", "xfont", "xserv")

# Architectures that ship a multiprocessor kernel next to the primary one.
MP_ARCHITECTURES = frozenset(
    {"amd64", "arm64", "i386", "macppc", "octeon", "powerpc64", "riscv64", "sparc64"}
)


@dataclass(frozen=True)
class ReleaseTarget:
    """Where a release is fetched from."""

    mirror: str
    scheme: str
    release: str
    machine: str
    set_version: str
    prefix: str = "pub/OpenBSD"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.mirror}/{self.prefix}/{self.release}/{self.machine}/"

    @property
    def digits(self) -> str:
        return version_digits(self.set_version)

    def url_for(self, name: str) -> str:
        return self.base_url + name


@dataclass(frozen=True)
class ArtifactSet:
    """Named archives to fetch and extract, in extraction order.

    The extended group is interleaved right after the documentation set so
    that ``base`` is always unpacked last.
    """

    mandatory: tuple[str, ...] = DEFAULT_SETS
    extended: tuple[str, ...] = DEFAULT_EXTENDED_SETS
    include_extended: bool = True

    def ordered(self) -> list[str]:
        names = list(self.mandatory)
        if not self.include_extended or not self.extended:
            return names

        if DOCUMENTATION_SET in names:
            position = names.index(DOCUMENTATION_SET) + 1
        elif BASE_SET in names:
            position = names.index(BASE_SET)
        else:
            position = len(names)

        return names[:position] + list(self.extended) + names[position:]

    def file_names(self, set_version: str) -> list[str]:
        digits = version_digits(set_version)
        return [f"{name}{digits}.tgz" for name in self.ordered()]

    def mandatory_file_names(self, set_version: str) -> list[str]:
        digits = version_digits(set_version)
        return [f"{name}{digits}.tgz" for name in self.mandatory]

    def extended_file_names(self, set_version: str) -> list[str]:
        if not self.include_extended:
            return []
        digits = version_digits(set_version)
        return [f"{name}{digits}.tgz" for name in self.extended]


@dataclass(frozen=True)
class KernelBundle:
    """Kernel images published for one machine architecture."""

    primary: str = "bsd"
    multiprocessor: str | None = "bsd.mp"
    ramdisk: str = "bsd.rd"

    @classmethod
    def for_machine(cls, machine: str) -> "KernelBundle":
        if machine in MP_ARCHITECTURES:
            return cls()
        return cls(multiprocessor=None)

    def file_names(self) -> list[str]:
        names = [self.primary]
        if self.multiprocessor:
            names.append(self.multiprocessor)
        names.append(self.ramdisk)
        return names


@dataclass
class DownloadRecord:
    """A local file and the remote object it was fetched from."""

    url: str
    path: Path

    @property
    def complete(self) -> bool:
        return self.path.exists()


@dataclass(frozen=True)
class BackupSnapshot:
    """Pairs of (original path, backup path) making up the pre-upgrade kernel."""

    pairs: tuple[tuple[Path, Path], ...]

    def reversed_pairs(self) -> list[tuple[Path, Path]]:
        return [(backup, original) for original, backup in self.pairs]


@dataclass
class CopyReport:
    """Outcome of a batch of independent file copies."""

    attempted: list[tuple[str, str]] = field(default_factory=list)
    failed: list[tuple[str, str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def record(self, source: Path, destination: Path, error: Exception | str | None = None) -> None:
        self.attempted.append((str(source), str(destination)))
        if error is not None:
            self.failed.append((str(source), str(destination), str(error)))

    def merge(self, other: "CopyReport") -> None:
        self.attempted.extend(other.attempted)
        self.failed.extend(other.failed)


@dataclass(frozen=True)
class UpdateCheck:
    """Result of comparing the installed version against the latest release."""

    current: str
    latest: str
    update_available: bool
