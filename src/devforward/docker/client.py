"""
Docker client wrapper using docker-py SDK.

This module provides the ContainerResolver class, which looks up the running
devcontainer of a workspace and the user the forwarded ports should be
reached as.
"""

import docker
from docker.errors import APIError, NotFound

from devforward.docker.exceptions import (
    ContainerNotFoundError,
    DockerConnectionError,
    DockerError,
)
from devforward.docker.labels import (
    LABEL_METADATA,
    label_filters,
    remote_user_from_metadata,
)
from devforward.utils.logger import get_logger

log = get_logger(__name__)


# =============================================================================
# ContainerResolver Class
# =============================================================================


class ContainerResolver:
    """
    Resolves devcontainer identity through the Docker daemon.

    Attributes:
        client: The docker-py client instance.
    """

    def __init__(self, timeout: int | None = None):
        """
        Initialize Docker client.

        Args:
            timeout: Request timeout in seconds. None means no timeout.

        Raises:
            DockerConnectionError: If connection to Docker daemon fails.
        """
        try:
            self.client = docker.from_env(timeout=timeout)
            self.client.ping()
            log.debug("Docker client initialized successfully")
        except Exception as e:
            log.error(f"Failed to connect to Docker daemon: {e}")
            raise DockerConnectionError(f"Failed to connect to Docker: {e}") from e

    def get_container_id(self, workspace: str, config_file: str) -> str:
        """
        Get the ID of the running devcontainer belonging to a workspace.

        Args:
            workspace: Workspace folder the devcontainer was created for.
            config_file: Path of the devcontainer.json it was built from.

        Returns:
            Full container ID.

        Raises:
            ContainerNotFoundError: If no running container matches.
            DockerError: If the Docker API call fails.
        """
        try:
            containers = self.client.containers.list(
                filters={
                    "label": label_filters(workspace, config_file),
                    "status": "running",
                }
            )
        except APIError as e:
            raise DockerError(f"Failed to list containers: {e}") from e

        if not containers:
            raise ContainerNotFoundError(workspace)

        if len(containers) > 1:
            log.warning(
                f"Found {len(containers)} running containers for {workspace}, "
                f"using {containers[0].short_id}"
            )
        return containers[0].id

    def get_remote_user(self, container_id: str, override: str = "") -> str:
        """
        Get the remote user configured for the devcontainer.

        Args:
            container_id: Container to inspect.
            override: Remote user from devcontainer.json; wins when non-empty.

        Returns:
            The remote user, or an empty string if none is configured.

        Raises:
            ContainerNotFoundError: If the container no longer exists.
            DockerError: If the metadata label cannot be read.
        """
        if override:
            return override

        try:
            container = self.client.containers.get(container_id)
        except NotFound as e:
            raise ContainerNotFoundError(container_id) from e
        except APIError as e:
            raise DockerError(f"Failed to inspect container {container_id}: {e}") from e

        try:
            return remote_user_from_metadata(container.labels.get(LABEL_METADATA))
        except ValueError as e:
            raise DockerError(
                f"Invalid {LABEL_METADATA} label on {container_id}: {e}"
            ) from e


# =============================================================================
# Global Instance
# =============================================================================

_container_resolver: ContainerResolver | None = None


def get_container_resolver() -> ContainerResolver:
    """
    Get the global ContainerResolver instance.

    Returns:
        Lazily initialized ContainerResolver singleton.
    """
    global _container_resolver
    if _container_resolver is None:
        _container_resolver = ContainerResolver()
    return _container_resolver
