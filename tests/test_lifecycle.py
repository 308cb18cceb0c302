"""
Tests for the Skill Scanner sidecar supervisor.

Processes and HTTP are faked; no real scanner is started.
Run with: pytest tests/test_lifecycle.py -v
"""

import asyncio
import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest

from skillsmp.core.config import Config
from skillsmp.scanner import lifecycle
from skillsmp.scanner.launcher import Launcher
from skillsmp.scanner.lifecycle import SupervisorState, kill_process

from conftest import FakeHealth, FakeProcess, FakeSpawner, make_supervisor

MANAGED_URL = "http://localhost:8000"


class GatedHealth(FakeHealth):
    """FakeHealth whose next check can be held open and then fails."""

    def __init__(self):
        super().__init__()
        self.release = None
        self.holding = False
        self._hold_next = False

    def arm(self):
        self.release = asyncio.Event()
        self._hold_next = True

    async def __call__(self, request):
        if self._hold_next:
            self._hold_next = False
            self.holding = True
            await self.release.wait()
            raise httpx.ConnectError("connection reset", request=request)
        return super().__call__(request)


def comes_up(health):
    """on_spawn hook: the scanner becomes healthy as soon as it is spawned."""
    def _on_spawn(process):
        health.healthy = True
    return _on_spawn


class TestExternalEndpoint:
    """A configured URL is only health-checked, never spawned."""

    def test_healthy_external_returned(self, external_config):
        """Healthy external scanner URL is returned as-is."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(external_config, FakeHealth(healthy=True), spawner)

        url = asyncio.run(supervisor.ensure_endpoint())

        assert url == "http://scanner.test"
        assert spawner.calls == []
        assert supervisor.state == SupervisorState.EXTERNAL

    def test_unhealthy_external_gives_empty(self, external_config):
        """Unhealthy external scanner yields "" without any spawn."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(external_config, FakeHealth(healthy=False), spawner)

        assert asyncio.run(supervisor.ensure_endpoint()) == ""
        assert spawner.calls == []

    def test_health_checks_hit_health_path(self, external_config):
        health = FakeHealth(healthy=True)
        supervisor = make_supervisor(external_config, health)

        asyncio.run(supervisor.ensure_endpoint())

        assert str(health.requests[0].url) == "http://scanner.test/health"


class TestManagedStartup:
    """Lazy start of the managed sidecar."""

    def test_adopts_scanner_already_listening(self, config):
        """A healthy scanner on the managed port is used without spawning."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(config, FakeHealth(healthy=True), spawner)

        url = asyncio.run(supervisor.ensure_endpoint())

        assert url == MANAGED_URL
        assert spawner.calls == []
        assert supervisor.state == SupervisorState.READY
        assert supervisor.process is None

    def test_no_launcher_gives_empty(self, config):
        """Without uvx/uv nothing is spawned and the state stays IDLE."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(config, FakeHealth(), spawner, launcher=None)

        assert asyncio.run(supervisor.ensure_endpoint()) == ""
        assert spawner.calls == []
        assert supervisor.state == SupervisorState.IDLE

    def test_auto_start_success(self, config):
        """Spawn with the scanner arguments, then report READY."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            url = await supervisor.ensure_endpoint()
            state = supervisor.state
            supervisor.shutdown()
            return url, state

        url, state = asyncio.run(_run())

        assert url == MANAGED_URL
        assert state == SupervisorState.READY
        assert len(spawner.calls) == 1
        launcher, args = spawner.calls[0]
        assert launcher == Launcher("uvx")
        assert args == ["--from", "cisco-ai-skill-scanner", "skill-scanner-api", "--port", "8000"]

    def test_custom_port(self):
        """The managed URL and --port follow scanner_api_port."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(Config(scanner_api_port=9123), health, spawner)

        async def _run():
            url = await supervisor.ensure_endpoint()
            supervisor.shutdown()
            return url

        assert asyncio.run(_run()) == "http://localhost:9123"
        assert spawner.calls[0][1][-1] == "9123"

    def test_uv_fallback_launcher_args(self, config):
        """`uv x` launchers put their leading argument before the package args."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner, launcher=Launcher("uv", ("x",)))

        async def _run():
            await supervisor.ensure_endpoint()
            supervisor.shutdown()

        asyncio.run(_run())

        launcher, args = spawner.calls[0]
        assert launcher.argv(args)[:3] == ["uv", "x", "--from"]

    def test_concurrent_callers_spawn_once(self, config):
        """Simultaneous requests share one startup and one process."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            urls = await asyncio.gather(*(supervisor.ensure_endpoint() for _ in range(5)))
            supervisor.shutdown()
            return urls

        urls = asyncio.run(_run())

        assert urls == [MANAGED_URL] * 5
        assert len(spawner.calls) == 1

    def test_concurrent_callers_without_launcher(self, config):
        """Every concurrent caller gets "" when no launcher exists."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(config, FakeHealth(), spawner, launcher=None)

        async def _run():
            return await asyncio.gather(*(supervisor.ensure_endpoint() for _ in range(5)))

        assert asyncio.run(_run()) == [""] * 5
        assert spawner.calls == []
        assert supervisor.state == SupervisorState.IDLE

    def test_concurrent_callers_share_startup_timeout(self, config):
        """A failed startup is reported to every waiter; only one process was spawned."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(config, FakeHealth(), spawner, startup_timeout=0.1)

        async def _run():
            return await asyncio.gather(*(supervisor.ensure_endpoint() for _ in range(5)))

        assert asyncio.run(_run()) == [""] * 5
        assert len(spawner.calls) == 1
        assert spawner.processes[0].terminate_calls == 1
        assert supervisor.process is None

    def test_cancelled_startup_stops_process(self, config):
        """Cancelling the caller mid-startup stops the spawned process."""
        health = FakeHealth()
        spawner = FakeSpawner()
        supervisor = make_supervisor(config, health, spawner, startup_timeout=30.0)

        async def _run():
            task = asyncio.create_task(supervisor.ensure_endpoint())
            while not spawner.processes:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            state, process = supervisor.state, supervisor.process

            spawner.on_spawn = comes_up(health)
            url = await supervisor.ensure_endpoint()
            supervisor.shutdown()
            return state, process, url

        state, process, url = asyncio.run(_run())

        assert spawner.processes[0].terminate_calls == 1
        assert state == SupervisorState.IDLE
        assert process is None
        assert url == MANAGED_URL
        assert len(spawner.calls) == 2

    def test_stale_health_check_keeps_replacement(self, config):
        """A late failed check does not stop a process another caller started."""
        health = GatedHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            await supervisor.ensure_endpoint()
            health.healthy = False
            health.arm()

            slow = asyncio.create_task(supervisor.ensure_endpoint())
            while not health.holding:
                await asyncio.sleep(0)

            fast = await supervisor.ensure_endpoint()
            health.release.set()
            slow_url = await slow

            result = (fast, slow_url, supervisor.state, supervisor.process)
            supervisor.shutdown()
            return result

        fast, slow_url, state, process = asyncio.run(_run())

        assert fast == slow_url == MANAGED_URL
        assert len(spawner.calls) == 2
        assert spawner.processes[0].terminate_calls == 1
        assert spawner.processes[1].terminate_calls == 1  # only from the final shutdown
        assert state == SupervisorState.READY
        assert process is spawner.processes[1]

    def test_reuses_healthy_process(self, config):
        """A second request while healthy does not spawn again."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            first = await supervisor.ensure_endpoint()
            second = await supervisor.ensure_endpoint()
            supervisor.shutdown()
            return first, second

        assert asyncio.run(_run()) == (MANAGED_URL, MANAGED_URL)
        assert len(spawner.calls) == 1

    def test_unhealthy_process_is_restarted(self, config):
        """A running but unhealthy process is killed and replaced."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            await supervisor.ensure_endpoint()
            health.healthy = False
            url = await supervisor.ensure_endpoint()
            supervisor.shutdown()
            return url

        assert asyncio.run(_run()) == MANAGED_URL
        assert len(spawner.calls) == 2
        assert spawner.processes[0].terminate_calls == 1

    def test_startup_timeout_kills_process(self, config):
        """A scanner that never becomes healthy is killed and "" returned."""
        spawner = FakeSpawner()
        supervisor = make_supervisor(config, FakeHealth(), spawner, startup_timeout=0.1)

        assert asyncio.run(supervisor.ensure_endpoint()) == ""
        assert spawner.processes[0].terminate_calls == 1
        assert supervisor.state == SupervisorState.IDLE
        assert supervisor.process is None

    def test_process_exit_during_startup(self, config):
        """Startup gives up early when the process dies."""
        spawner = FakeSpawner(on_spawn=lambda p: p.exit(1))
        supervisor = make_supervisor(config, FakeHealth(), spawner, startup_timeout=5.0)

        assert asyncio.run(supervisor.ensure_endpoint()) == ""
        assert supervisor.state == SupervisorState.IDLE

    def test_spawn_error_gives_empty(self, config):
        """OSError from the spawner leaves the supervisor IDLE."""
        async def failing_spawner(launcher, args):
            raise FileNotFoundError("uvx")

        supervisor = make_supervisor(config, FakeHealth(), failing_spawner)

        assert asyncio.run(supervisor.ensure_endpoint()) == ""
        assert supervisor.state == SupervisorState.IDLE
        assert supervisor.process is None


class TestProcessMonitoring:
    """Exit watching and output forwarding."""

    def test_exit_resets_state(self, config):
        """When the managed process exits the supervisor goes back to IDLE."""
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            await supervisor.ensure_endpoint()
            spawner.processes[0].exit(1)
            for _ in range(5):
                await asyncio.sleep(0)
            return supervisor.state, supervisor.process

        state, process = asyncio.run(_run())

        assert state == SupervisorState.IDLE
        assert process is None

    def test_output_is_logged(self, config):
        """stdout/stderr lines are forwarded to the debug log."""
        from loguru import logger

        messages = []
        sink_id = logger.add(lambda m: messages.append(str(m)), level="DEBUG", format="{message}")

        health = FakeHealth()

        def _on_spawn(process):
            health.healthy = True
            process.stdout.feed_data(b"Uvicorn running\n")
            process.stderr.feed_data(b"warming up\n")

        spawner = FakeSpawner(on_spawn=_on_spawn)
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            await supervisor.ensure_endpoint()
            for _ in range(5):
                await asyncio.sleep(0)
            supervisor.shutdown()

        try:
            asyncio.run(_run())
        finally:
            logger.remove(sink_id)

        assert any("[Skill Scanner API stdout] Uvicorn running" in m for m in messages)
        assert any("[Skill Scanner API stderr] warming up" in m for m in messages)


class TestShutdown:
    """Shutdown and process kill."""

    def test_shutdown_kills_and_is_idempotent(self, config):
        health = FakeHealth()
        spawner = FakeSpawner(on_spawn=comes_up(health))
        supervisor = make_supervisor(config, health, spawner)

        async def _run():
            await supervisor.ensure_endpoint()
            supervisor.shutdown()
            supervisor.shutdown()

        asyncio.run(_run())

        assert spawner.processes[0].terminate_calls == 1
        assert supervisor.process is None
        assert supervisor.state == SupervisorState.IDLE

    def test_shutdown_without_process(self, config):
        supervisor = make_supervisor(config, FakeHealth())
        supervisor.shutdown()
        assert supervisor.state == SupervisorState.IDLE

    def test_kill_skips_exited_process(self):
        process = MagicMock(returncode=0, pid=10)
        kill_process(process)
        process.kill.assert_not_called()

    def test_posix_sends_terminate(self):
        """SIGTERM, not SIGKILL, so uv can forward it to the scanner."""
        process = MagicMock(returncode=None, pid=10)
        kill_process(process)
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    def test_terminate_tolerates_vanished_process(self):
        process = MagicMock(returncode=None, pid=10)
        process.terminate.side_effect = ProcessLookupError
        kill_process(process)
        process.kill.assert_not_called()

    def test_terminate_failure_falls_back_to_kill(self):
        process = MagicMock(returncode=None, pid=10)
        process.terminate.side_effect = PermissionError("denied")
        kill_process(process)
        process.kill.assert_called_once()


class TestWindowsKill:
    """taskkill is tried first on Windows, direct kill is the fallback."""

    @patch("skillsmp.scanner.lifecycle._is_windows", return_value=True)
    @patch("skillsmp.scanner.lifecycle.subprocess.run")
    def test_taskkill_success(self, mock_run, _mock_windows):
        mock_run.return_value = MagicMock(returncode=0)
        process = MagicMock(returncode=None, pid=321)

        kill_process(process)

        assert mock_run.call_args[0][0] == ["taskkill", "/F", "/T", "/PID", "321"]
        process.kill.assert_not_called()

    @patch("skillsmp.scanner.lifecycle._is_windows", return_value=True)
    @patch("skillsmp.scanner.lifecycle.subprocess.run")
    def test_taskkill_failure_falls_back(self, mock_run, _mock_windows):
        mock_run.return_value = MagicMock(returncode=128)
        process = MagicMock(returncode=None, pid=321)

        kill_process(process)

        process.kill.assert_called_once()

    @patch("skillsmp.scanner.lifecycle._is_windows", return_value=True)
    @patch("skillsmp.scanner.lifecycle.subprocess.run")
    def test_taskkill_missing_falls_back(self, mock_run, _mock_windows):
        mock_run.side_effect = subprocess.TimeoutExpired("taskkill", 10)
        process = MagicMock(returncode=None, pid=321)

        kill_process(process)

        process.kill.assert_called_once()


class TestProcessWideSupervisor:
    """Module-level accessors."""

    def test_configure_and_get(self, config):
        supervisor = lifecycle.configure_supervisor(config)
        assert lifecycle.get_supervisor() is supervisor

    def test_get_creates_from_env(self, monkeypatch):
        monkeypatch.setenv("SKILL_SCANNER_API_URL", "http://env-scanner.test")
        supervisor = lifecycle.get_supervisor()
        assert supervisor.state == SupervisorState.EXTERNAL
        assert supervisor.config.scanner_api_url == "http://env-scanner.test"

    def test_reconfigure_shuts_down_previous(self, config):
        first = lifecycle.configure_supervisor(config)
        first.shutdown = MagicMock()
        lifecycle.configure_supervisor(config)
        first.shutdown.assert_called_once()

    def test_reset(self, config):
        lifecycle.configure_supervisor(config)
        lifecycle.reset_supervisor()
        assert lifecycle._supervisor is None
