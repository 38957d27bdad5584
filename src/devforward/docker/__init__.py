"""
Docker integration for devcontainer forwarding.

Provides the pieces that talk to Docker:
- Resolving the running devcontainer of a workspace (docker SDK)
- Streaming container lifecycle events (docker events)
- Tunnelling connections into the container (docker exec + socat)
"""

from devforward.docker.client import ContainerResolver, get_container_resolver
from devforward.docker.events import DockerEventSource, LifecycleEvent, parse_events
from devforward.docker.exceptions import (
    ContainerNotFoundError,
    DockerConnectionError,
    DockerError,
    EventSourceError,
    TunnelError,
)
from devforward.docker.line_stream import LineFramingDecoder, LineTooLongError, iter_lines
from devforward.docker.tunnel import DockerExecTunnel

__all__ = [
    "ContainerResolver",
    "get_container_resolver",
    "DockerEventSource",
    "LifecycleEvent",
    "parse_events",
    "LineFramingDecoder",
    "LineTooLongError",
    "iter_lines",
    "DockerExecTunnel",
    "DockerError",
    "DockerConnectionError",
    "ContainerNotFoundError",
    "EventSourceError",
    "TunnelError",
]
