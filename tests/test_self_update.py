"""Tests for the self-updater."""

import json
import os
from importlib import metadata
from unittest.mock import Mock, patch

import pytest
import requests

from snapup.config import installed_version
from snapup.errors import UpdateError
from snapup.self_update import SelfUpdater


def release_response(tag):
    response = Mock()
    response.status_code = 200
    response.raise_for_status = Mock()
    response.json.return_value = {"tag_name": tag, "name": f"snap {tag}"}
    return response


class TestCheckForUpdate:
    def test_newer_release_is_available(self):
        updater = SelfUpdater()
        with patch.object(updater.session, "get", return_value=release_response("6.1")):
            result = updater.check_for_update("6.0")

        assert result.update_available
        assert result.latest == "6.1"

    def test_same_release_is_up_to_date(self):
        updater = SelfUpdater()
        with patch.object(updater.session, "get", return_value=release_response("6.0")):
            result = updater.check_for_update("6.0")

        assert not result.update_available

    def test_older_release_is_not_offered(self):
        updater = SelfUpdater()
        with patch.object(updater.session, "get", return_value=release_response("5.9")):
            assert not updater.check_for_update("6.0").update_available

    def test_master_build_is_always_eligible(self):
        updater = SelfUpdater()
        with patch.object(updater.session, "get", return_value=release_response("0.1")):
            result = updater.check_for_update("master")

        assert result.update_available
        assert result.current == "master"

    def test_network_error(self):
        updater = SelfUpdater()
        with patch.object(
            updater.session, "get", side_effect=requests.RequestException("Network error")
        ):
            with pytest.raises(UpdateError, match="Network error"):
                updater.check_for_update("6.0")

    def test_invalid_json(self):
        updater = SelfUpdater()
        response = Mock()
        response.raise_for_status = Mock()
        response.json.side_effect = json.JSONDecodeError("Invalid JSON", "", 0)
        response.text = "<html>rate limited</html>"

        with patch.object(updater.session, "get", return_value=response):
            with pytest.raises(UpdateError, match="invalid JSON"):
                updater.check_for_update("6.0")

    def test_missing_tag(self):
        updater = SelfUpdater()
        response = release_response(None)

        with patch.object(updater.session, "get", return_value=response):
            with pytest.raises(UpdateError, match="tag_name"):
                updater.fetch_latest_tag()


class TestInstallUpdate:
    def test_replaces_installed_script_and_keeps_mode(self, tmp_path):
        target = tmp_path / "bin" / "snap"
        target.parent.mkdir()
        target.write_text("#!/bin/sh\necho old\n")
        os.chmod(target, 0o555)
        updater = SelfUpdater(download_base="https://github.com/example/snapup/releases/download")
        response = Mock()
        response.raise_for_status = Mock()
        response.content = b"#!/bin/sh\necho new\n"

        with patch.object(updater.session, "get", return_value=response) as get:
            updater.install_update("6.1", target)

        assert get.call_args[0][0] == "https://github.com/example/snapup/releases/download/6.1/snapup"
        assert target.read_bytes() == b"#!/bin/sh\necho new\n"
        assert (target.stat().st_mode & 0o777) == 0o555
        assert [p.name for p in target.parent.iterdir()] == ["snap"]

    def test_new_install_is_executable(self, tmp_path):
        target = tmp_path / "snap"
        updater = SelfUpdater()
        response = Mock()
        response.raise_for_status = Mock()
        response.content = b"#!/bin/sh\n"

        with patch.object(updater.session, "get", return_value=response):
            updater.install_update("master", target)

        assert (target.stat().st_mode & 0o777) == 0o755

    def test_download_failure_leaves_target_untouched(self, tmp_path):
        target = tmp_path / "snap"
        target.write_text("old")
        updater = SelfUpdater()
        response = Mock()
        response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")

        with patch.object(updater.session, "get", return_value=response):
            with pytest.raises(UpdateError, match="404"):
                updater.install_update("9.9", target)

        assert target.read_text() == "old"

    def test_empty_body_is_rejected(self, tmp_path):
        target = tmp_path / "snap"
        target.write_text("old")
        updater = SelfUpdater()
        response = Mock()
        response.raise_for_status = Mock()
        response.content = b""

        with patch.object(updater.session, "get", return_value=response):
            with pytest.raises(UpdateError, match="empty"):
                updater.install_update("6.1", target)

        assert target.read_text() == "old"


class TestInstalledVersion:
    def test_version_from_distribution_metadata(self):
        with patch("snapup.config.metadata.version", return_value="1.2.0"):
            assert installed_version() == "1.2.0"

    def test_uninstalled_checkout_is_unversioned(self):
        with patch(
            "snapup.config.metadata.version",
            side_effect=metadata.PackageNotFoundError("snapup"),
        ):
            assert installed_version() == "master"

    def test_released_build_is_compared(self):
        updater = SelfUpdater()
        with patch("snapup.config.metadata.version", return_value="1.2.0"), patch.object(
            updater.session, "get", return_value=release_response("1.2.0")
        ):
            result = updater.check_for_update(installed_version())

        assert not result.update_available
