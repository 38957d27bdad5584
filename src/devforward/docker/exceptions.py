"""Docker-related exception classes."""


class DockerError(Exception):
    """Base exception for Docker operations."""

    pass


class DockerConnectionError(DockerError):
    """Failed to connect to the Docker daemon."""

    pass


class ContainerNotFoundError(DockerError):
    """No running devcontainer matches the workspace."""

    def __init__(self, workspace: str):
        self.workspace = workspace
        super().__init__(f"failed to find a running container for {workspace}")


class EventSourceError(DockerError):
    """The docker events process could not be started or failed early."""

    pass


class TunnelError(DockerError):
    """Tunnelling a connection into the container failed."""

    def __init__(self, message: str, container_id: str, port: int):
        self.container_id = container_id
        self.port = port
        super().__init__(f"tunnel to {container_id[:12]}:{port} failed: {message}")
