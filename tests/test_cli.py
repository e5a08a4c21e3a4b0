"""Tests for the RoleRetriever entry script."""

from unittest.mock import patch

import pytest

import RoleRetriever


def test_parse_arguments():
    args = RoleRetriever.fncParseArguments(
        ["azure", "--scan", "drift_report", "--env", "dev, prod,", "--export", "csv,md", "--fail-on-drift"]
    )

    assert args.scan == "drift_report"
    assert args.env_list == ["dev", "prod"]
    assert args.export == ["csv,md"]
    assert args.fail_on_drift is True
    assert args.parallel is None


def test_scan_or_list_required():
    with pytest.raises(SystemExit):
        RoleRetriever.fncParseArguments(["azure"])


def test_list_modules(tmp_path, capsys):
    code = RoleRetriever.main(["azure", "--list", "--config", str(tmp_path / "config.json")])

    assert code == 0
    assert capsys.readouterr().out.split()[-2:] == ["bootstrap_import", "drift_report"]


def test_exit_code_follows_module(tmp_path):
    with patch("RoleRetriever.fncInitClient", return_value={"arm": object(), "graph": None}), \
            patch("RoleRetriever.fncRunModule", return_value={"exit_code": 1}) as run:
        code = RoleRetriever.main(["azure", "--scan", "drift_report", "--config", str(tmp_path / "c.json")])

    assert code == 1
    assert run.call_args.args[:2] == ("azure", "drift_report")


def test_no_client_exits_2(tmp_path):
    with patch("RoleRetriever.fncInitClient", return_value=None):
        assert RoleRetriever.main(["azure", "--scan", "drift_report", "--config", str(tmp_path / "c.json")]) == 2
