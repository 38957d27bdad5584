"""
Devcontainer forwarding.

Reads devcontainer.json, follows the container's lifecycle and forwards the
configured ports into it.
"""

from devforward.devcontainer.config import (
    ConfigError,
    ForwardPortsConfig,
    load_forward_ports_config,
    parse_forward_ports_config,
)
from devforward.devcontainer.forwarder import DevContainerForwarder
from devforward.devcontainer.reactor import (
    ContainerLifecycleReactor,
    ContainerSnapshot,
    ContainerState,
)

__all__ = [
    "ConfigError",
    "ForwardPortsConfig",
    "load_forward_ports_config",
    "parse_forward_ports_config",
    "DevContainerForwarder",
    "ContainerLifecycleReactor",
    "ContainerSnapshot",
    "ContainerState",
]
