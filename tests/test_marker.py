"""Tests for the last-upgrade marker."""

import pytest

from snapup.errors import SnapupError
from snapup.marker import LastUpgradeMarker


def test_missing_marker_reads_as_nothing(tmp_path):
    marker = LastUpgradeMarker(tmp_path / "last_snap")

    assert marker.read() is None
    assert not marker.is_applied("Tue Nov 14 06:10:45 MST 2023")


def test_write_then_compare(tmp_path):
    marker = LastUpgradeMarker(tmp_path / "state" / "last_snap")

    marker.write(" Tue Nov 14 06:10:45 MST 2023 ")

    assert marker.read() == "Tue Nov 14 06:10:45 MST 2023"
    assert marker.is_applied("Tue Nov 14 06:10:45 MST 2023\n")
    assert not marker.is_applied("Wed Nov 15 06:12:01 MST 2023")


def test_empty_marker_reads_as_nothing(tmp_path):
    path = tmp_path / "last_snap"
    path.write_text("\n")

    assert LastUpgradeMarker(path).read() is None


def test_unwritable_marker_is_reported(tmp_path):
    blocker = tmp_path / "state"
    blocker.write_text("not a directory")
    marker = LastUpgradeMarker(blocker / "last_snap")

    with pytest.raises(SnapupError, match="Cannot record build"):
        marker.write("Tue Nov 14 06:10:45 MST 2023")
