"""
Shared fixtures and helpers for devforward tests.

Nothing here talks to Docker: event sources, tunnels and resolvers are
replaced with in-memory doubles, and the few tests that need a process use a
small shell script standing in for the docker binary.
"""

import asyncio
import os
import socket
import stat
import sys

import pytest

from devforward.docker.events import LifecycleEvent
from devforward.docker.exceptions import ContainerNotFoundError
from devforward.forwarding.cancellation import CancellationSignal

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")


def free_port() -> int:
    """Find a currently unused local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def free_ports(count: int) -> list[int]:
    ports: list[int] = []
    while len(ports) < count:
        port = free_port()
        if port not in ports:
            ports.append(port)
    return ports


def write_script(path, body: str) -> str:
    """Write an executable shell script and return its path."""
    path.write_text("#!/bin/sh\n" + body)
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


class EventFeed:
    """In-memory event source; push events, end() finishes the stream."""

    def __init__(self):
        self.queue: asyncio.Queue[LifecycleEvent | None] = asyncio.Queue()
        self.started = False
        self.closed = False

    def push(self, action: str, identifier: str = "abc123", remote_user: str = ""):
        self.queue.put_nowait(
            LifecycleEvent(
                action=action,
                identifier=identifier,
                status=action,
                remote_user=remote_user,
            )
        )

    def end(self):
        self.queue.put_nowait(None)

    async def start(self):
        self.started = True

    async def events(self):
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event

    async def close(self):
        self.closed = True
        self.end()


class RecordingTunnel:
    """Tunnel double that echoes one read back and records each call."""

    def __init__(self):
        self.calls: list[tuple[str, int, str]] = []

    async def forward(self, connection, container_id, port, remote_user=""):
        self.calls.append((container_id, port, remote_user))
        data = await connection.reader.read(1024)
        connection.writer.write(data)
        await connection.writer.drain()
        await connection.wait_closed()


class FakeResolver:
    def __init__(self, container_id: str | None = None, remote_user: str = ""):
        self.container_id = container_id
        self.remote_user = remote_user

    def get_container_id(self, workspace, config_file):
        if self.container_id is None:
            raise ContainerNotFoundError(workspace)
        return self.container_id

    def get_remote_user(self, container_id, override=""):
        return override or self.remote_user


class CountingSignal(CancellationSignal):
    """CancellationSignal that counts cancel() calls."""

    def __init__(self):
        super().__init__()
        self.cancel_calls = 0

    def cancel(self, reason: str = "cancelled") -> bool:
        self.cancel_calls += 1
        return super().cancel(reason)


@pytest.fixture
def cancellation() -> CancellationSignal:
    return CancellationSignal()


@pytest.fixture
def event_feed() -> EventFeed:
    return EventFeed()
