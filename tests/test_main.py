"""Tests for the command-line entry point."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from snapup.config_manager import UpgradeConfig
from snapup.main import build_parser, command_options, config_overrides, create_transferer, main
from snapup.models import UpdateCheck
from snapup.release import resolve_target
from snapup.tools.external import FtpTransferer
from snapup.tools.http import HttpTransferer


def make_config(mirror="example.org", **kwargs):
    target = resolve_target(mirror, "snapshots", "amd64", "7.5")
    return UpgradeConfig(target=target, dst=Path("/tmp/upgrade"), **kwargs)


@pytest.fixture
def config_manager():
    with patch("snapup.main.ConfigManager") as manager:
        yield manager


class TestArguments:
    def test_flags_map_to_config_keys(self):
        args = build_parser().parse_args(["-x", "-M", "mirror.example.org", "-b", "sd0", "-r"])
        overrides = config_overrides(args)

        assert overrides["NO_X11"] is True
        assert overrides["MIRROR"] == "mirror.example.org"
        assert overrides["INSTBOOT"] == "sd0"
        assert overrides["REBOOT"] is True

    def test_unset_flags_do_not_override_file(self):
        overrides = config_overrides(build_parser().parse_args([]))
        assert all(value is None for value in overrides.values())

    def test_command_options(self):
        args = build_parser().parse_args(["-s", "-v", "7.6", "-m", "arm64", "--executable", "/usr/local/bin/snapup"])
        options = command_options(args)

        assert options["force_snapshot"] is True
        assert options["set_version"] == "7.6"
        assert options["machine"] == "arm64"
        assert options["executable"] == "/usr/local/bin/snapup"


class TestCreateTransferer:
    def test_https_mirror(self):
        assert isinstance(create_transferer(make_config()), HttpTransferer)

    def test_ftp_mirror(self):
        config = make_config(mirror="ftp://ftp.example.org/pub/OpenBSD")
        assert isinstance(create_transferer(config), FtpTransferer)

    def test_ftp_options_select_ftp(self):
        transferer = create_transferer(make_config(ftp_opts="-V"))

        assert isinstance(transferer, FtpTransferer)
        assert transferer.options == ["-V"]


class TestMain:
    @pytest.mark.parametrize("flags", [["-k", "-K"], ["-d", "-e"], ["-u", "-U"]])
    def test_conflicting_flags_fail_before_config(self, config_manager, flags):
        assert main(flags) == 1
        config_manager.assert_not_called()

    def test_missing_config_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SNAPUP_ROOT", str(tmp_path))
        assert main(["-c", str(tmp_path / "absent.conf")]) == 1

    def test_conflict_from_config_file(self, config_manager):
        config_manager.return_value.build_config.return_value = make_config(
            extract_only=True, kernel_only=True
        )
        assert main(["-k"]) == 1

    def test_runs_orchestrator(self, config_manager):
        config_manager.return_value.build_config.return_value = make_config()
        orchestrator = MagicMock()
        orchestrator.run.return_value = 0

        with patch("snapup.main.create_orchestrator", return_value=orchestrator) as create:
            assert main([]) == 0

        create.assert_called_once()
        orchestrator.run.assert_called_once_with()

    def test_orchestrator_failure_sets_exit_status(self, config_manager):
        config_manager.return_value.build_config.return_value = make_config()
        orchestrator = MagicMock()
        orchestrator.run.return_value = 1

        with patch("snapup.main.create_orchestrator", return_value=orchestrator):
            assert main([]) == 1

    def test_check_update_does_not_upgrade(self, config_manager):
        config_manager.return_value.build_config.return_value = make_config(check_update=True)

        with patch("snapup.main.SelfUpdater") as updater, patch(
            "snapup.main.create_orchestrator"
        ) as create:
            updater.return_value.check_for_update.return_value = UpdateCheck("6.0", "6.1", True)
            assert main(["-u"]) == 0

        updater.return_value.install_update.assert_not_called()
        create.assert_not_called()

    def test_install_update(self, config_manager):
        config_manager.return_value.build_config.return_value = make_config(
            install_update=True, executable=Path("/usr/local/bin/snapup")
        )

        with patch("snapup.main.SelfUpdater") as updater:
            updater.return_value.check_for_update.return_value = UpdateCheck("6.0", "6.1", True)
            assert main(["-U"]) == 0

        updater.return_value.install_update.assert_called_once_with("6.1", Path("/usr/local/bin/snapup"))

    def test_integrity_check_failure(self, config_manager, tmp_path):
        config_manager.return_value.build_config.return_value = make_config(
            integrity_check=True,
            root=tmp_path,
            executable=tmp_path / "snapup",
            signature=tmp_path / "snapup.sig",
        )
        (tmp_path / "etc" / "signify").mkdir(parents=True)
        (tmp_path / "etc" / "signify" / "snapup.pub").write_text("key")

        with patch("snapup.main.SignifyVerifier") as signify:
            signify.return_value.verify_message.return_value = False
            assert main(["-I"]) == 1

    def test_integrity_check_without_key(self, config_manager, tmp_path):
        config_manager.return_value.build_config.return_value = make_config(
            integrity_check=True, root=tmp_path, executable=tmp_path / "snapup"
        )

        assert main(["-I"]) == 1
