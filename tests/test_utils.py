"""Unit tests for snapup/utils.py."""

import hashlib

import pytest

from snapup.utils import (
    calculate_sha256,
    is_unversioned,
    normalize_version,
    parse_build_info,
    version_digits,
)


class TestVersionDigits:
    def test_dotted_version(self):
        assert version_digits("6.1") == "61"

    def test_two_digit_major(self):
        assert version_digits("10.5") == "105"

    def test_suffix_is_dropped(self):
        assert version_digits("7.0-beta") == "70"

    def test_empty_string(self):
        assert version_digits("") == ""

    def test_none_input(self):
        assert version_digits(None) == ""


class TestNormalizeVersion:
    def test_dotted_version(self):
        assert normalize_version("6.1") == 61

    def test_leading_v(self):
        assert normalize_version("v6.1") == 61

    def test_no_digits(self):
        assert normalize_version("master") == 0

    def test_newer_release_compares_greater(self):
        assert normalize_version("6.0") < normalize_version("6.1")

    def test_equal_versions(self):
        assert normalize_version("6.0") == normalize_version("6.0")


class TestIsUnversioned:
    @pytest.mark.parametrize("version", ["master", "MASTER", "", None, "  "])
    def test_unversioned_builds(self, version):
        assert is_unversioned(version)

    @pytest.mark.parametrize("version", ["6.1", "v1.0", "0"])
    def test_versioned_builds(self, version):
        assert not is_unversioned(version)


class TestParseBuildInfo:
    def test_second_field_is_build_identifier(self):
        content = "Build date: 1498258434 - Fri Jun 23 22:53:54 UTC 2017\n"
        assert parse_build_info(content) == "Fri Jun 23 22:53:54 UTC 2017"

    def test_only_first_line_is_used(self):
        content = "Build date: 1 - first\nBuild date: 2 - second\n"
        assert parse_build_info(content) == "first"

    def test_missing_separator(self):
        with pytest.raises(ValueError, match="Malformed build info"):
            parse_build_info("Build date: 1498258434")

    def test_empty_content(self):
        with pytest.raises(ValueError):
            parse_build_info("")


def test_calculate_sha256(tmp_path):
    path = tmp_path / "bsd"
    path.write_bytes(b"kernel image")
    assert calculate_sha256(path) == hashlib.sha256(b"kernel image").hexdigest()
