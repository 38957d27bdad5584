"""
Devcontainer port forwarder.

Wires the pieces together for one workspace:
    docker events -> lifecycle reactor -> cancellation signal
    local ports   -> forwarding engine -> docker exec tunnel

``start()`` returns a single task that completes once the event source,
the reactor and the engine have all shut down.
"""

import asyncio
import os

from devforward.config import config
from devforward.devcontainer.config import ForwardPortsConfig, load_forward_ports_config
from devforward.devcontainer.reactor import ContainerLifecycleReactor
from devforward.docker.client import ContainerResolver, get_container_resolver
from devforward.docker.events import DockerEventSource
from devforward.docker.exceptions import DockerError, EventSourceError, TunnelError
from devforward.docker.tunnel import DockerExecTunnel
from devforward.forwarding.cancellation import CancellationSignal
from devforward.forwarding.engine import Connection, PortForwardingEngine
from devforward.forwarding.exceptions import ForwardingError
from devforward.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


class DevContainerForwarder:
    """
    Forwards the ports listed in devcontainer.json into the workspace's container.

    Attributes:
        workspace: Absolute workspace folder.
        json_path: Path of the workspace's devcontainer.json.
        forward_config: Parsed forwarding settings.
        reactor: Lifecycle reactor owning the container state.
        engine: Local port forwarding engine.
    """

    def __init__(
        self,
        workspace: str,
        cancellation: CancellationSignal,
        forward_config: ForwardPortsConfig | None = None,
        event_source: DockerEventSource | None = None,
        tunnel: DockerExecTunnel | None = None,
        resolver: ContainerResolver | None = None,
        resolve_running: bool = True,
        listen_host: str | None = None,
        grace_period: float | None = None,
    ):
        """
        Load the configuration and build the components. Nothing is started.

        Raises:
            ConfigError: If devcontainer.json cannot be loaded.
            NoPortsError: If devcontainer.json lists no ports to forward.
        """
        self.workspace = os.path.abspath(workspace)
        self.json_path = config.get_devcontainer_json_path(self.workspace)
        self.forward_config = forward_config or load_forward_ports_config(self.json_path)
        self.cancellation = cancellation

        self.reactor = ContainerLifecycleReactor(
            grace_period=grace_period,
            remote_user_override=self.forward_config.remote_user,
        )
        self.engine = PortForwardingEngine(
            self.forward_config.forward_ports,
            self.forward_to_container,
            listen_host=listen_host,
        )
        self.event_source = event_source or DockerEventSource(
            self.workspace, self.json_path
        )
        self.tunnel = tunnel or DockerExecTunnel()
        self._resolver = resolver
        self._resolve_running = resolve_running

    async def start(self) -> asyncio.Task:
        """
        Start watching the container and forwarding ports.

        Returns:
            A task that completes when forwarding has fully stopped.

        Raises:
            EventSourceError: If container events cannot be watched.
            ForwardingError: If the ports cannot be bound or forwarding was
                already cancelled.
        """
        logger.info(f"Forwarding {self.forward_config}")

        if self._resolve_running:
            await self._seed_running_container()

        try:
            await self.event_source.start()
        except EventSourceError:
            self.cancellation.cancel("failed to watch container events")
            raise

        try:
            engine_done = await self.engine.start(self.cancellation)
        except ForwardingError:
            self.cancellation.cancel("failed to start port forwarding")
            await self.event_source.close()
            raise

        reactor_task = asyncio.create_task(
            self.reactor.run(self.event_source.events(), self.cancellation),
            name="lifecycle-reactor",
        )
        reactor_task.add_done_callback(self._on_reactor_done)
        return asyncio.create_task(
            self._wait_done(reactor_task, engine_done), name="forwarder-done"
        )

    async def _seed_running_container(self) -> None:
        """Pick up a container that was started before the event replay window."""
        try:
            resolver = self._resolver or await asyncio.to_thread(get_container_resolver)
            container_id = await asyncio.to_thread(
                resolver.get_container_id, self.workspace, self.json_path
            )
            remote_user = await asyncio.to_thread(
                resolver.get_remote_user, container_id, self.forward_config.remote_user
            )
        except DockerError as e:
            logger.info(f"No running container yet, waiting for it to start ({e})")
            return

        self.reactor.seed(container_id, remote_user)

    def _on_reactor_done(self, task: asyncio.Task) -> None:
        """Stop forwarding when the reactor dies without cancelling anything."""
        if task.cancelled() or task.exception() is None:
            return
        self.cancellation.cancel(f"lifecycle reactor failed: {task.exception()}")

    async def _wait_done(
        self, reactor_task: asyncio.Task, engine_done: asyncio.Task
    ) -> None:
        await self.cancellation.wait()
        await self.event_source.close()

        results = await asyncio.gather(reactor_task, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Lifecycle reactor failed: {result}")
                logger.debug(format_traceback(result))

        await engine_done
        logger.info(f"Stopped forwarder ({self.cancellation.reason})")

    async def forward_to_container(self, connection: Connection, port: int) -> None:
        """Tunnel one connection into the container, as it is right now."""
        snapshot = self.reactor.snapshot()
        if not snapshot.identifier:
            logger.warning(
                f"No container to forward port {port} to yet, dropping connection"
            )
            await connection.wait_closed()
            return

        try:
            await self.tunnel.forward(
                connection, snapshot.identifier, port, snapshot.remote_user
            )
        except TunnelError as e:
            logger.error(f"Failed to forward port {port} to container: {e}")
