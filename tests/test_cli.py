"""Tests for the kohakunet CLI."""

import json

import pytest
from typer.testing import CliRunner

from kohakunet.cli import main as cli_main

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: None)


@pytest.fixture
def network_file(tmp_path):
    path = tmp_path / "network.json"
    path.write_text(json.dumps({"Network": "192.168.0.0/24", "Backend": {"Type": "vxlan"}}))
    return path


def test_key_encode():
    result = runner.invoke(cli_main.app, ["key", "encode", "10.16.0.0/16"])
    assert result.exit_code == 0
    assert "10.16.0.0-16" in result.output


def test_key_decode():
    result = runner.invoke(cli_main.app, ["key", "decode", "10.16.0.0-16"])
    assert result.exit_code == 0
    assert "10.16.0.0/16" in result.output


def test_key_decode_invalid():
    result = runner.invoke(cli_main.app, ["key", "decode", "10.16.0.0/16"])
    assert result.exit_code == 1


def test_config_validate(network_file):
    result = runner.invoke(cli_main.app, ["config", "validate", str(network_file)])
    assert result.exit_code == 0
    assert "192.168.0.64" in result.output
    assert "192.168.0.192" in result.output


def test_config_validate_invalid(tmp_path):
    path = tmp_path / "network.json"
    path.write_text(json.dumps({"Network": "10.0.0.0/29"}))

    result = runner.invoke(cli_main.app, ["config", "validate", str(path)])
    assert result.exit_code == 1


def test_lease_init_and_list(tmp_path, network_file):
    db_path = str(tmp_path / "leases.db")
    result = runner.invoke(cli_main.app, ["lease", "init", str(network_file), "--db", db_path])
    assert result.exit_code == 0
    assert "192.168.0.0/24" in result.output

    result = runner.invoke(cli_main.app, ["lease", "list", "--db", db_path])
    assert result.exit_code == 0
    assert "No leases found" in result.output


def test_lease_list_unusable_db(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    result = runner.invoke(cli_main.app, ["lease", "list", "--db", str(blocker / "leases.db")])
    assert result.exit_code == 1
    # Reported as an error message, not an uncaught exception
    assert isinstance(result.exception, SystemExit)
