"""Tests for ContainerResolver against a stubbed docker-py client."""

import json

import pytest
from docker.errors import APIError, NotFound

from devforward.docker import client as client_module
from devforward.docker.client import ContainerResolver
from devforward.docker.exceptions import (
    ContainerNotFoundError,
    DockerConnectionError,
    DockerError,
)


class StubContainer:
    def __init__(self, container_id: str, labels: dict | None = None):
        self.id = container_id
        self.short_id = container_id[:12]
        self.labels = labels or {}


class StubContainers:
    def __init__(self, containers: list[StubContainer], list_error: Exception | None = None):
        self.containers = containers
        self.list_error = list_error
        self.filters = None

    def list(self, filters=None):
        self.filters = filters
        if self.list_error is not None:
            raise self.list_error
        return self.containers

    def get(self, container_id):
        for container in self.containers:
            if container.id == container_id:
                return container
        raise NotFound(f"No such container: {container_id}")


class StubClient:
    def __init__(self, containers: StubContainers):
        self.containers = containers

    def ping(self):
        return True


@pytest.fixture
def stub_containers(monkeypatch):
    containers = StubContainers([])
    monkeypatch.setattr(
        client_module.docker, "from_env", lambda timeout=None: StubClient(containers)
    )
    return containers


def test_connection_failure(monkeypatch):
    def unreachable(timeout=None):
        raise ConnectionError("Cannot connect to the Docker daemon")

    monkeypatch.setattr(client_module.docker, "from_env", unreachable)

    with pytest.raises(DockerConnectionError):
        ContainerResolver()


def test_get_container_id_filters_by_labels(stub_containers):
    stub_containers.containers = [StubContainer("abc123def4567890")]
    resolver = ContainerResolver()

    container_id = resolver.get_container_id("/ws", "/ws/.devcontainer/devcontainer.json")

    assert container_id == "abc123def4567890"
    assert stub_containers.filters == {
        "label": [
            "devcontainer.local_folder=/ws",
            "devcontainer.config_file=/ws/.devcontainer/devcontainer.json",
        ],
        "status": "running",
    }


def test_get_container_id_not_running(stub_containers):
    resolver = ContainerResolver()

    with pytest.raises(ContainerNotFoundError):
        resolver.get_container_id("/ws", "/ws/.devcontainer/devcontainer.json")


def test_get_container_id_api_error(stub_containers):
    stub_containers.list_error = APIError("server error")
    resolver = ContainerResolver()

    with pytest.raises(DockerError, match="Failed to list containers"):
        resolver.get_container_id("/ws", "/ws/.devcontainer/devcontainer.json")


def test_get_remote_user_from_metadata(stub_containers):
    metadata = json.dumps([{"onCreateCommand": "make"}, {"remoteUser": "vscode"}])
    stub_containers.containers = [
        StubContainer("abc123", {"devcontainer.metadata": metadata})
    ]
    resolver = ContainerResolver()

    assert resolver.get_remote_user("abc123") == "vscode"
    assert resolver.get_remote_user("abc123", override="dev") == "dev"


def test_get_remote_user_of_missing_container(stub_containers):
    resolver = ContainerResolver()

    with pytest.raises(ContainerNotFoundError):
        resolver.get_remote_user("gone")


def test_get_remote_user_with_bad_metadata(stub_containers):
    stub_containers.containers = [
        StubContainer("abc123", {"devcontainer.metadata": '{"remoteUser": "x"}'})
    ]
    resolver = ContainerResolver()

    with pytest.raises(DockerError, match="Invalid devcontainer.metadata"):
        resolver.get_remote_user("abc123")
