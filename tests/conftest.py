"""Shared fixtures and fakes for SkillsMP tests."""

import asyncio
import base64

import httpx
import pytest

from skillsmp.core.config import Config
from skillsmp.scanner import lifecycle
from skillsmp.scanner.launcher import Launcher
from skillsmp.scanner.lifecycle import SidecarSupervisor


class FakeProcess:
    """In-memory stand-in for asyncio.subprocess.Process. Create inside a running loop."""

    def __init__(self, pid: int = 4242):
        self.pid = pid
        self.returncode = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.kill_calls = 0
        self.terminate_calls = 0
        self._exited = asyncio.Event()

    def exit(self, code: int = 0) -> None:
        if self.returncode is None:
            self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def kill(self) -> None:
        self.kill_calls += 1
        self.exit(-9)

    def terminate(self) -> None:
        self.terminate_calls += 1
        self.exit(-15)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeSpawner:
    """Records spawn calls and hands out FakeProcess objects."""

    def __init__(self, on_spawn=None):
        self.calls = []
        self.processes = []
        self.on_spawn = on_spawn

    async def __call__(self, launcher, args):
        self.calls.append((launcher, list(args)))
        process = FakeProcess(pid=1000 + len(self.processes))
        self.processes.append(process)
        if self.on_spawn:
            self.on_spawn(process)
        return process


class FakeHealth:
    """httpx.MockTransport handler answering /health according to a flag."""

    def __init__(self, healthy: bool = False):
        self.healthy = healthy
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.healthy:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"status": "ok"})


def make_supervisor(config, health, spawner=None, launcher=Launcher("uvx"), **kwargs):
    """Supervisor wired to fakes with short timings."""
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("startup_timeout", 1.0)
    return SidecarSupervisor(
        config,
        resolver=lambda: launcher,
        spawner=spawner or FakeSpawner(),
        transport=httpx.MockTransport(health),
        **kwargs,
    )


def github_contents(text) -> dict:
    """Contents API payload for a file."""
    data = text if isinstance(text, bytes) else text.encode("utf-8")
    return {"encoding": "base64", "content": base64.b64encode(data).decode("ascii")}


@pytest.fixture
def config():
    """Managed-mode config on the default port."""
    return Config()


@pytest.fixture
def external_config():
    return Config(scanner_api_url="http://scanner.test")


@pytest.fixture(autouse=True)
def _isolate_supervisor(monkeypatch):
    """Keep tests away from the process-wide supervisor and exit hooks."""
    monkeypatch.setattr(lifecycle, "_supervisor", None)
    monkeypatch.setattr(lifecycle, "_hooks_installed", True)
    # POSIX stop semantics unless a test patches Windows in
    monkeypatch.setattr(lifecycle, "_is_windows", lambda: False)
    yield
