"""
devcontainer.json loading.

Only the fields the forwarder needs are read: the container name, the
remote user override and the list of ports to forward. devcontainer.json
allows comments; whole-line ``//`` comments are removed before parsing.
"""

import json
import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from devforward.utils.logger import get_logger

logger = get_logger(__name__)


class ConfigError(Exception):
    """devcontainer.json is missing or invalid."""

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class ForwardPortsConfig(BaseModel):
    """Forwarding-related subset of devcontainer.json."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(default="", description="Devcontainer display name")
    remote_user: str = Field(
        default="",
        alias="remoteUser",
        description="User to connect as inside the container (empty = from metadata)",
    )
    forward_ports: list[int] = Field(
        default_factory=list,
        alias="forwardPorts",
        description="Ports to forward, in listen order",
    )

    @field_validator("forward_ports")
    @classmethod
    def _check_ports(cls, ports: list[int]) -> list[int]:
        result: list[int] = []
        for port in ports:
            if port <= 0 or port > 65535:
                raise ValueError(f"port out of range: {port}")
            if port not in result:
                result.append(port)
        return result

    def __str__(self) -> str:
        return (
            f"name={self.name}, remote user={self.remote_user}, "
            f"forward ports={self.forward_ports}"
        )


def strip_line_comments(text: str) -> str:
    """Remove lines whose first non-blank characters are ``//``."""
    return "\n".join(
        line for line in text.splitlines() if not line.strip().startswith("//")
    )


def parse_forward_ports_config(text: str, path: str = "<string>") -> ForwardPortsConfig:
    """
    Parse devcontainer.json content.

    Raises:
        ConfigError: If the content is not valid JSON or fails validation.
    """
    try:
        data = json.loads(strip_line_comments(text))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON: {e}", path) from e

    if not isinstance(data, dict):
        raise ConfigError("top level must be a JSON object", path)

    try:
        return ForwardPortsConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid forwarding settings: {e}", path) from e


def load_forward_ports_config(path: str) -> ForwardPortsConfig:
    """
    Load the forwarding settings from a devcontainer.json file.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    if not os.path.isfile(path):
        raise ConfigError("file not found", path)

    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise ConfigError(f"failed to read: {e}", path) from e

    forward_config = parse_forward_ports_config(text, path)
    logger.debug(f"Loaded {path}: {forward_config}")
    return forward_config
