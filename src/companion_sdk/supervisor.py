"""Lifecycle management for the local companion service process."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable

from companion_sdk.client import CompanionClient
from companion_sdk.config import get_sdk_config, set_base_url
from companion_sdk.errors import CompanionServerTimeoutError, CompanionServiceError
from companion_sdk.logger import logger
from companion_sdk.schemas import ServiceHealthState
from companion_sdk.utils import (
    LOCAL_PORT_RESERVATION_HOST,
    ServiceEndpoint,
    pick_free_tcp_port,
    resolve_working_dir,
    service_dir_candidates,
)

Spawner = Callable[..., Awaitable[asyncio.subprocess.Process]]
ClientFactory = Callable[[str], CompanionClient]


async def spawn_service_process(program: str, *args: str, cwd: str, env: dict[str, str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        program,
        *args,
        cwd=cwd,
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


_OUTPUT_CHUNK_SIZE = 64 * 1024


def _log_output_line(level: int, line: bytes) -> None:
    logger.log(level, f"[companion] {line.decode('utf-8', errors='replace').rstrip()}")


async def drain_output(stream: asyncio.StreamReader, level: int) -> None:
    """Log child output line by line until EOF.

    Reads fixed-size chunks so that a line longer than the reader's limit is
    logged in pieces instead of stopping the drain.
    """
    pending = b""
    while chunk := await stream.read(_OUTPUT_CHUNK_SIZE):
        *lines, pending = (pending + chunk).split(b"\n")
        for line in lines:
            _log_output_line(level, line)
        if len(pending) >= _OUTPUT_CHUNK_SIZE:
            _log_output_line(level, pending)
            pending = b""
    if pending:
        _log_output_line(level, pending)


class ServiceSupervisor:
    """Starts the companion service once and keeps it until disposed.

    State moves IDLE -> STARTING -> HEALTHY or FAILED; DISPOSED is terminal and
    reachable from any state. A failed start is not retried: later calls to
    ``start_if_needed`` re-raise the original error.

    Args:
        spawner: Coroutine used to launch the process; receives the program,
            its arguments and ``cwd``/``env`` keywords.
        client_factory: Builds the health-check client for a base URL.
    """

    def __init__(self, spawner: Spawner | None = None, client_factory: ClientFactory | None = None):
        sdk_config = get_sdk_config()
        self.config = sdk_config.supervisor
        self.host = sdk_config.connection.host
        self.port = sdk_config.connection.port

        self.spawner = spawner or spawn_service_process
        self.client_factory = client_factory or (lambda base_url: CompanionClient(base_url=base_url))

        self.state = ServiceHealthState.IDLE
        self.base_url: str | None = None
        self.candidates: list[str] = []
        self.process: asyncio.subprocess.Process | None = None

        self._error: CompanionServiceError | None = None
        self._start_task: asyncio.Task | None = None
        self._dispose_task: asyncio.Task | None = None
        self._pump_tasks: list[asyncio.Task] = []

    async def start_if_needed(self) -> str | None:
        """Start the service unless it is already running or starting.

        Concurrent callers share one start attempt.

        Returns:
            The published base URL, or None once disposed.

        Raises:
            CompanionServiceError: If the service could not be started, or the
                supervisor was disposed while starting.
            CompanionServerTimeoutError: If it did not become healthy in time.
        """
        if self.state == ServiceHealthState.DISPOSED:
            logger.warning("Companion service supervisor is disposed; not starting")
            return None
        if self.state == ServiceHealthState.HEALTHY:
            return self.base_url
        if self.state == ServiceHealthState.FAILED and self._error is not None:
            raise self._error

        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._start())
        start_task = self._start_task
        try:
            return await asyncio.shield(start_task)
        except asyncio.CancelledError:
            # dispose() cancelled the shared start; cancelling this caller propagates as is.
            if start_task.cancelled():
                raise CompanionServiceError("Companion service supervisor was disposed during start") from None
            raise

    async def _start(self) -> str:
        self.state = ServiceHealthState.STARTING
        try:
            if self.config.external_base_url:
                base_url = self.config.external_base_url
                logger.info(f"Using externally managed companion service at {base_url}")
                await self._wait_healthy(base_url)
            else:
                base_url = await self._spawn_and_wait()
        except CompanionServiceError as exc:
            if self.state == ServiceHealthState.STARTING:
                self.state = ServiceHealthState.FAILED
                self._error = exc
            raise

        if self.state == ServiceHealthState.STARTING:
            self.state = ServiceHealthState.HEALTHY
            self.base_url = base_url
            set_base_url(base_url)
        return base_url

    async def _spawn_and_wait(self) -> str:
        self.candidates = service_dir_candidates(self.config.app_root, self.config.service_dir_name, self.config.cwd)
        if (cwd := resolve_working_dir(self.candidates)) is None:
            raise CompanionServiceError(
                f"Companion service directory not found. Tried: {', '.join(self.candidates)}"
            )

        port = self.port or pick_free_tcp_port(LOCAL_PORT_RESERVATION_HOST)
        endpoint = ServiceEndpoint(host=self.host, port=port)
        env = {**os.environ, "PROVIDER_SERVICE_HOST": self.host, "PROVIDER_SERVICE_PORT": str(port)}

        logger.info(f"Starting companion service: {self.config.python_command} -m {self.config.module} (cwd={cwd})")
        try:
            self.process = await self.spawner(self.config.python_command, "-m", self.config.module, cwd=cwd, env=env)
        except OSError as exc:
            raise CompanionServiceError(f"Failed to launch companion service: {exc}") from exc

        self._pump_output(self.process)

        try:
            await self._wait_healthy(endpoint.url, self.process)
        except CompanionServiceError:
            logger.error(f"Companion service failed health check at {endpoint.health_url}")
            logger.error(f"Working directory candidates: {', '.join(self.candidates)}")
            await self._terminate()
            raise
        return endpoint.url

    def _pump_output(self, process: asyncio.subprocess.Process) -> None:
        for stream, level in ((process.stdout, logging.INFO), (process.stderr, logging.WARNING)):
            if stream is not None:
                self._pump_tasks.append(asyncio.ensure_future(drain_output(stream, level)))

    async def _wait_healthy(self, base_url: str, process: asyncio.subprocess.Process | None = None) -> None:
        client = self.client_factory(base_url)

        async def wait_healthy() -> None:
            while True:
                if process is not None and process.returncode is not None:
                    raise CompanionServiceError(
                        f"Server process exited with code {process.returncode} before becoming healthy."
                    )
                if await client.is_healthy():
                    return
                await asyncio.sleep(self.config.health_poll_interval)

        try:
            await asyncio.wait_for(wait_healthy(), timeout=self.config.start_timeout)
        except asyncio.TimeoutError:
            raise CompanionServerTimeoutError(
                f"Server failed to become healthy within {self.config.start_timeout:g} seconds"
            ) from None
        finally:
            await client.aclose()

    async def _terminate(self) -> None:
        process = self.process
        if process is None:
            return
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.shutdown_grace_period)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Companion service did not exit within {self.config.shutdown_grace_period:g}s; killing it"
                )
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
        self.process = None

        for task in self._pump_tasks:
            task.cancel()
        await asyncio.gather(*self._pump_tasks, return_exceptions=True)
        self._pump_tasks = []

    async def dispose(self) -> None:
        """Stop the service and reap the process; safe to call repeatedly."""
        if self._dispose_task is None:
            self._dispose_task = asyncio.ensure_future(self._dispose())
        await asyncio.shield(self._dispose_task)

    async def _dispose(self) -> None:
        self.state = ServiceHealthState.DISPOSED
        if self._start_task is not None and not self._start_task.done():
            self._start_task.cancel()
            await asyncio.wait([self._start_task])
        await self._terminate()
        logger.info("Companion service supervisor disposed")

    async def __aenter__(self) -> ServiceSupervisor:
        await self.start_if_needed()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.dispose()
        return False
