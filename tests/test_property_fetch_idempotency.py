"""Property-based tests for at-most-once fetching."""

import tempfile
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from snapup.errors import TransferFailure
from snapup.fetcher import Fetcher
from snapup.tools.base import Transferer

file_names = st.text(
    min_size=1,
    max_size=20,
    alphabet="abcdefghijklmnopqrstuvwxyz0123456789._-",
).filter(lambda x: x not in (".", ".."))


class CountingTransferer(Transferer):
    def __init__(self, content: bytes, fail: bool = False):
        self.content = content
        self.fail = fail
        self.count = 0

    def transfer(self, url: str, destination: Path) -> None:
        self.count += 1
        destination.write_bytes(self.content[: len(self.content) // 2])
        if self.fail:
            raise TransferFailure(url, "interrupted")
        destination.write_bytes(self.content)


@given(
    name=file_names,
    content=st.binary(min_size=1, max_size=2048),
    repeats=st.integers(min_value=2, max_value=5),
)
def test_repeated_fetch_transfers_once(name, content, repeats):
    """For any artifact, fetching it N times into one directory transfers it once."""
    url = f"https://example.org/pub/OpenBSD/snapshots/amd64/{name}"

    with tempfile.TemporaryDirectory() as temp_dir:
        transferer = CountingTransferer(content)
        fetcher = Fetcher(transferer)

        paths = [fetcher.fetch(url, Path(temp_dir)) for _ in range(repeats)]

        assert transferer.count == 1
        assert len(set(paths)) == 1
        assert paths[0].read_bytes() == content


@given(name=file_names, content=st.binary(min_size=2, max_size=2048))
def test_interrupted_fetch_never_counts_as_fetched(name, content):
    """For any artifact, an interrupted transfer leaves nothing at the final name."""
    url = f"https://example.org/{name}"

    with tempfile.TemporaryDirectory() as temp_dir:
        fetcher = Fetcher(CountingTransferer(content, fail=True))

        with pytest.raises(TransferFailure):
            fetcher.fetch(url, Path(temp_dir))

        assert not (Path(temp_dir) / name).exists()
        assert list(Path(temp_dir).iterdir()) == []
