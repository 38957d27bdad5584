"""Tests for the devforward command line."""

import json

import pytest
from typer.testing import CliRunner

from devforward import __version__
from devforward.cli.main import app
from devforward.utils.logger import configure_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    # forward installs a sink on the stream CliRunner swaps in for stderr
    yield
    configure_logging()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_shows_forward_ports(tmp_path):
    config_dir = tmp_path / ".devcontainer"
    config_dir.mkdir()
    (config_dir / "devcontainer.json").write_text(
        json.dumps({"name": "web", "forwardPorts": [8000, 5432]})
    )

    result = runner.invoke(app, ["config", "--workspace-folder", str(tmp_path)])

    assert result.exit_code == 0
    assert "8000, 5432" in result.output


def test_forward_fails_without_devcontainer_json(tmp_path):
    result = runner.invoke(
        app, ["forward", "--workspace-folder", str(tmp_path), "--no-log-file"]
    )

    assert result.exit_code == 1
