"""Tests for release resolution and artifact naming."""

import pytest

from snapup.models import ArtifactSet, KernelBundle
from snapup.release import kernel_urls, meta_urls, release_channel, resolve_target, set_urls


class TestResolveTarget:
    def test_host_name_mirror(self):
        target = resolve_target("example.org", "snapshots", "amd64", "10.5")

        assert target.base_url == "https://example.org/pub/OpenBSD/snapshots/amd64/"
        assert target.digits == "105"

    def test_full_url_mirror_keeps_scheme_and_path(self):
        target = resolve_target("ftp://mirror.example.org/pub/OpenBSD/", "7.5", "arm64", "7.5")

        assert target.scheme == "ftp"
        assert target.base_url == "ftp://mirror.example.org/pub/OpenBSD/7.5/arm64/"

    def test_url_without_host(self):
        with pytest.raises(ValueError, match="no host"):
            resolve_target("https:///pub/OpenBSD", "7.5", "amd64", "7.5")


@pytest.mark.parametrize(
    "force_snapshot,running_snapshot,expected",
    [(True, False, "snapshots"), (False, True, "snapshots"), (False, False, "7.5")],
)
def test_release_channel(force_snapshot, running_snapshot, expected):
    assert release_channel(force_snapshot, running_snapshot, "7.5") == expected


class TestArtifactSet:
    def test_extended_group_follows_documentation(self):
        assert ArtifactSet().ordered() == [
            "comp",
            "game",
            "man",
            "xbase",
            "xshare",
            "xfont",
            "xserv",
            "base",
        ]

    def test_extended_group_before_base_without_documentation(self):
        artifacts = ArtifactSet(mandatory=("comp", "base"), extended=("xbase",))
        assert artifacts.ordered() == ["comp", "xbase", "base"]

    def test_extended_group_last_without_anchors(self):
        artifacts = ArtifactSet(mandatory=("comp",), extended=("xbase",))
        assert artifacts.ordered() == ["comp", "xbase"]

    def test_without_extended(self):
        artifacts = ArtifactSet(include_extended=False)

        assert artifacts.file_names("7.5") == ["comp75.tgz", "game75.tgz", "man75.tgz", "base75.tgz"]
        assert artifacts.extended_file_names("7.5") == []


class TestUrls:
    def test_meta_urls(self):
        target = resolve_target("example.org", "snapshots", "amd64", "7.5")
        assert meta_urls(target) == [
            "https://example.org/pub/OpenBSD/snapshots/amd64/SHA256.sig",
            "https://example.org/pub/OpenBSD/snapshots/amd64/BUILDINFO",
        ]

    def test_kernel_urls_without_mp_kernel(self):
        target = resolve_target("example.org", "7.5", "armv7", "7.5")
        urls = kernel_urls(target, KernelBundle.for_machine("armv7"))

        assert [u.rsplit("/", 1)[-1] for u in urls] == ["bsd", "bsd.rd"]

    def test_set_urls_split_mandatory_and_extended(self):
        target = resolve_target("example.org", "snapshots", "amd64", "7.5")
        artifacts = ArtifactSet()

        assert set_urls(target, artifacts)[-1].endswith("/base75.tgz")
        assert [u.rsplit("/", 1)[-1] for u in set_urls(target, artifacts, extended=True)] == [
            "xbase75.tgz",
            "xshare75.tgz",
            "xfont75.tgz",
            "xserv75.tgz",
        ]
