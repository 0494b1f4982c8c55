import asyncio
import logging
import os
import time

import httpx
import pytest

import companion_sdk.supervisor as sdk_supervisor
from companion_sdk.client import CompanionClient
from companion_sdk.config import get_base_url, settings
from companion_sdk.errors import CompanionServerTimeoutError, CompanionServiceError
from companion_sdk.schemas import ServiceHealthState
from companion_sdk.supervisor import ServiceSupervisor


class _FakeProcess:
    def __init__(self, returncode: int | None = None, exit_on_terminate: bool = True):
        self.returncode = returncode
        self.stdout = None
        self.stderr = None
        self.terminated = False
        self.killed = False
        self.exit_on_terminate = exit_on_terminate
        self._exited = asyncio.Event()
        if returncode is not None:
            self._exited.set()

    def _exit(self, code: int):
        self.returncode = code
        self._exited.set()

    def terminate(self):
        self.terminated = True
        if self.exit_on_terminate:
            self._exit(-15)

    def kill(self):
        self.killed = True
        self._exit(-9)

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class _FakeSpawner:
    def __init__(self, process: _FakeProcess):
        self.process = process
        self.calls: list[dict] = []

    async def __call__(self, program, *args, cwd, env):
        self.calls.append({"argv": [program, *args], "cwd": cwd, "env": env})
        await asyncio.sleep(0)
        return self.process


def _health_client_factory(healthy_after: int = 0, seen: list[str] | None = None):
    attempts = {"count": 0}

    def _handler(request):
        if seen is not None:
            seen.append(str(request.url))
        attempts["count"] += 1
        if attempts["count"] > healthy_after:
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(503, json={"ok": False, "error": "starting"})

    return lambda base_url: CompanionClient(base_url=base_url, transport=httpx.MockTransport(_handler))


def _never_healthy(base_url):
    def _refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    return CompanionClient(base_url=base_url, transport=httpx.MockTransport(_refuse))


@pytest.mark.asyncio
async def test_concurrent_starts_share_one_process(service_root):
    process = _FakeProcess()
    spawner = _FakeSpawner(process)
    supervisor = ServiceSupervisor(spawner=spawner, client_factory=_health_client_factory(healthy_after=3))

    urls = await asyncio.gather(*(supervisor.start_if_needed() for _ in range(5)))

    assert urls == ["http://127.0.0.1:8765"] * 5
    assert len(spawner.calls) == 1
    assert supervisor.state == ServiceHealthState.HEALTHY
    assert get_base_url() == "http://127.0.0.1:8765"

    call = spawner.calls[0]
    assert call["argv"] == [settings.supervisor.python_command, "-m", settings.supervisor.module]
    assert call["cwd"] == os.path.join(str(service_root), "companion")
    assert call["env"]["PROVIDER_SERVICE_HOST"] == "127.0.0.1"
    assert call["env"]["PROVIDER_SERVICE_PORT"] == "8765"

    assert await supervisor.start_if_needed() == "http://127.0.0.1:8765"
    assert len(spawner.calls) == 1
    await supervisor.dispose()


@pytest.mark.asyncio
async def test_explicit_cwd_is_probed_first(service_root):
    explicit = service_root / "custom"
    explicit.mkdir()
    settings.supervisor.cwd = str(explicit)
    spawner = _FakeSpawner(_FakeProcess())

    async with ServiceSupervisor(spawner=spawner, client_factory=_health_client_factory()):
        pass

    assert spawner.calls[0]["cwd"] == str(explicit)


@pytest.mark.asyncio
async def test_start_fails_fast_when_process_exits(service_root):
    settings.supervisor.start_timeout = 5.0
    spawner = _FakeSpawner(_FakeProcess(returncode=17))
    supervisor = ServiceSupervisor(spawner=spawner, client_factory=_never_healthy)

    start_time = time.monotonic()
    with pytest.raises(CompanionServiceError, match="exited with code 17") as first:
        await supervisor.start_if_needed()
    assert time.monotonic() - start_time < 1.0
    assert supervisor.state == ServiceHealthState.FAILED

    with pytest.raises(CompanionServiceError) as second:
        await supervisor.start_if_needed()
    assert second.value is first.value
    assert len(spawner.calls) == 1


@pytest.mark.asyncio
async def test_start_times_out_and_terminates_process(service_root):
    settings.supervisor.start_timeout = 0.1
    process = _FakeProcess()
    supervisor = ServiceSupervisor(spawner=_FakeSpawner(process), client_factory=_never_healthy)

    with pytest.raises(CompanionServerTimeoutError, match="within 0.1 seconds"):
        await supervisor.start_if_needed()

    assert process.terminated is True
    assert supervisor.process is None
    assert supervisor.state == ServiceHealthState.FAILED


@pytest.mark.asyncio
async def test_missing_service_directory_fails_without_spawning(tmp_path):
    settings.supervisor.app_root = str(tmp_path / "nowhere" / "deep" / "app")
    settings.supervisor.cwd = None
    spawner = _FakeSpawner(_FakeProcess())
    supervisor = ServiceSupervisor(spawner=spawner, client_factory=_never_healthy)

    with pytest.raises(CompanionServiceError, match="directory not found"):
        await supervisor.start_if_needed()
    assert spawner.calls == []


@pytest.mark.asyncio
async def test_spawn_oserror_is_service_error(service_root):
    async def _missing_python(program, *args, cwd, env):
        raise FileNotFoundError(program)

    supervisor = ServiceSupervisor(spawner=_missing_python, client_factory=_never_healthy)
    with pytest.raises(CompanionServiceError, match="Failed to launch"):
        await supervisor.start_if_needed()


@pytest.mark.asyncio
async def test_port_zero_picks_free_port(service_root, monkeypatch):
    settings.connection.port = 0
    monkeypatch.setattr(sdk_supervisor, "pick_free_tcp_port", lambda host: 45123)
    spawner = _FakeSpawner(_FakeProcess())
    supervisor = ServiceSupervisor(spawner=spawner, client_factory=_health_client_factory())

    assert await supervisor.start_if_needed() == "http://127.0.0.1:45123"
    assert spawner.calls[0]["env"]["PROVIDER_SERVICE_PORT"] == "45123"
    await supervisor.dispose()


@pytest.mark.asyncio
async def test_external_service_is_only_health_checked(service_root):
    settings.supervisor.external_base_url = "http://remote.test:9000"
    seen: list[str] = []
    spawner = _FakeSpawner(_FakeProcess())
    supervisor = ServiceSupervisor(spawner=spawner, client_factory=_health_client_factory(healthy_after=1, seen=seen))

    assert await supervisor.start_if_needed() == "http://remote.test:9000"
    assert spawner.calls == []
    assert seen[-1] == "http://remote.test:9000/api/health"
    assert get_base_url() == "http://remote.test:9000"


@pytest.mark.asyncio
async def test_dispose_kills_process_after_grace_period(service_root):
    settings.supervisor.shutdown_grace_period = 0.05
    process = _FakeProcess(exit_on_terminate=False)
    supervisor = ServiceSupervisor(spawner=_FakeSpawner(process), client_factory=_health_client_factory())
    await supervisor.start_if_needed()

    await supervisor.dispose()

    assert process.terminated is True
    assert process.killed is True
    assert process.returncode == -9
    assert supervisor.state == ServiceHealthState.DISPOSED

    await supervisor.dispose()
    assert await supervisor.start_if_needed() is None


@pytest.mark.asyncio
async def test_dispose_during_start_fails_waiting_callers(service_root):
    settings.supervisor.start_timeout = 5.0
    process = _FakeProcess()
    supervisor = ServiceSupervisor(spawner=_FakeSpawner(process), client_factory=_never_healthy)

    start = asyncio.ensure_future(supervisor.start_if_needed())
    await asyncio.sleep(0.05)
    await supervisor.dispose()

    with pytest.raises(CompanionServiceError, match="disposed during start"):
        await start
    assert process.terminated is True
    assert supervisor.state == ServiceHealthState.DISPOSED


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_start(service_root):
    settings.supervisor.start_timeout = 5.0
    supervisor = ServiceSupervisor(spawner=_FakeSpawner(_FakeProcess()), client_factory=_health_client_factory(20))

    impatient = asyncio.ensure_future(supervisor.start_if_needed())
    await asyncio.sleep(0.02)
    impatient.cancel()
    with pytest.raises(asyncio.CancelledError):
        await impatient

    assert await supervisor.start_if_needed() == "http://127.0.0.1:8765"
    await supervisor.dispose()


@pytest.mark.asyncio
async def test_drain_output_survives_lines_over_reader_limit(caplog):
    stream = asyncio.StreamReader(limit=1024)
    stream.feed_data(b"x" * 200_000 + b"\nready\npartial")
    stream.feed_eof()

    with caplog.at_level(logging.INFO, logger="companion_sdk"):
        await sdk_supervisor.drain_output(stream, logging.INFO)

    messages = [record.getMessage() for record in caplog.records]
    assert messages[-2:] == ["[companion] ready", "[companion] partial"]
    assert sum(message.count("x") for message in messages) == 200_000
