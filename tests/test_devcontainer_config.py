"""Tests for devcontainer.json loading."""

import pytest

from devforward.devcontainer.config import (
    ConfigError,
    ForwardPortsConfig,
    load_forward_ports_config,
    parse_forward_ports_config,
    strip_line_comments,
)

DEVCONTAINER_JSON = """\
// For format details, see https://aka.ms/devcontainer.json
{
    "name": "Python 3",
    "image": "mcr.microsoft.com/devcontainers/python:3.12",
    // Forward the database and the cache
    "forwardPorts": [5432, 6379, 5432],
    "remoteUser": "vscode"
}
"""


def test_strip_line_comments_keeps_urls_inside_values():
    text = '  // comment\n{"url": "http://example.com"}\n'
    assert strip_line_comments(text) == '{"url": "http://example.com"}'


def test_parse_devcontainer_json():
    forward_config = parse_forward_ports_config(DEVCONTAINER_JSON)

    assert forward_config.name == "Python 3"
    assert forward_config.remote_user == "vscode"
    assert forward_config.forward_ports == [5432, 6379]
    assert str(forward_config) == "name=Python 3, remote user=vscode, forward ports=[5432, 6379]"


def test_missing_fields_default_to_empty():
    forward_config = parse_forward_ports_config('{"image": "ubuntu"}')

    assert forward_config.name == ""
    assert forward_config.remote_user == ""
    assert forward_config.forward_ports == []


def test_field_names_are_accepted():
    forward_config = ForwardPortsConfig(forward_ports=[8000], remote_user="dev")
    assert forward_config.forward_ports == [8000]
    assert forward_config.remote_user == "dev"


@pytest.mark.parametrize(
    "text, message",
    [
        ('{"forwardPorts": [0]}', "port out of range"),
        ('{"forwardPorts": [70000]}', "port out of range"),
        ('{"forwardPorts": ["db"]}', "invalid forwarding settings"),
        ("[5432]", "top level must be a JSON object"),
        ('{"forwardPorts": [5432],}', "invalid JSON"),
    ],
)
def test_invalid_config(text, message):
    with pytest.raises(ConfigError, match=message) as exc_info:
        parse_forward_ports_config(text, path="devcontainer.json")
    assert exc_info.value.path == "devcontainer.json"


def test_load_from_file(tmp_path):
    path = tmp_path / "devcontainer.json"
    path.write_text(DEVCONTAINER_JSON)

    forward_config = load_forward_ports_config(str(path))

    assert forward_config.forward_ports == [5432, 6379]


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="file not found"):
        load_forward_ports_config(str(tmp_path / "devcontainer.json"))
