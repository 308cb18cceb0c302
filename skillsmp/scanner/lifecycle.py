"""
Skill Scanner Sidecar Lifecycle

Ensures exactly one healthy Skill Scanner API endpoint is available:
- External mode: a user-configured URL, only health-checked
- Managed mode: a local `skill-scanner-api` process, started lazily via
  uvx / `uv x`, reused while healthy, restarted when it goes bad and
  killed when the host process exits

Concurrent callers that arrive while a managed start is in flight share a
single startup future instead of spawning their own process.
"""

import asyncio
import atexit
import signal
import subprocess
import sys
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import httpx
from loguru import logger

from ..core.config import Config
from .launcher import Launcher, resolve_launcher
from .protocol import HEALTH_PATH, endpoint, sidecar_arguments

HEALTH_TIMEOUT_SECONDS = 3.0
HEALTH_POLL_INTERVAL_SECONDS = 0.5
STARTUP_TIMEOUT_SECONDS = 30.0
TASKKILL_TIMEOUT_SECONDS = 10.0

UV_INSTALL_URL = "https://docs.astral.sh/uv/getting-started/installation/"


class SupervisorState(str, Enum):
    """Supervisor lifecycle state."""

    EXTERNAL = "external"  # External endpoint configured, nothing owned
    IDLE = "idle"  # No managed process known to be running
    STARTING = "starting"  # Spawn in flight
    READY = "ready"  # Managed endpoint healthy


def _is_windows() -> bool:
    return sys.platform == "win32"


async def spawn_sidecar(launcher: Launcher, args: List[str]) -> asyncio.subprocess.Process:
    """Start the scanner process. Arguments are passed as a vector, never through a shell."""
    return await asyncio.create_subprocess_exec(
        *launcher.argv(args),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


def kill_process(process) -> None:
    """
    Stop a managed process.

    On POSIX the launcher gets SIGTERM, which uv forwards to the scanner it
    runs; SIGKILL would leave that child holding the port. On Windows children
    are not cleaned up with their parent, so the whole tree is killed with
    taskkill. A direct kill is the fallback on both.
    """
    if process.returncode is not None:
        return

    if _is_windows() and process.pid:
        try:
            result = subprocess.run(
                ["taskkill", "/F", "/T", "/PID", str(process.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=TASKKILL_TIMEOUT_SECONDS,
            )
            if result.returncode == 0:
                return
            logger.warning(
                f"taskkill failed for scanner process tree (exit code {result.returncode}); "
                "falling back to direct kill"
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"taskkill unavailable ({e}); falling back to direct kill")
    else:
        try:
            process.terminate()
            return
        except ProcessLookupError:
            return
        except OSError as e:
            logger.warning(f"terminate failed for scanner process ({e}); falling back to direct kill")

    try:
        process.kill()
    except ProcessLookupError:
        # Process already gone
        pass


class SidecarSupervisor:
    """
    Process-wide owner of the Skill Scanner endpoint.

    Usage:
        supervisor = SidecarSupervisor(Config.from_env())
        url = await supervisor.ensure_endpoint()  # "" when unavailable
        ...
        supervisor.shutdown()
    """

    def __init__(
        self,
        config: Config,
        resolver: Optional[Callable[[], Optional[Launcher]]] = None,
        spawner: Callable[[Launcher, List[str]], Awaitable] = spawn_sidecar,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        health_timeout: float = HEALTH_TIMEOUT_SECONDS,
        poll_interval: float = HEALTH_POLL_INTERVAL_SECONDS,
        startup_timeout: float = STARTUP_TIMEOUT_SECONDS,
    ):
        """
        Initialize supervisor.

        Args:
            config: Scanner URL / port configuration
            resolver: Finds a launcher (default: resolve_launcher(config))
            spawner: Starts the sidecar process
            transport: Optional httpx transport for health checks
            health_timeout: Timeout of a single health check
            poll_interval: Delay between health polls during startup
            startup_timeout: Overall startup deadline
        """
        self.config = config
        self._resolver = resolver or (lambda: resolve_launcher(config))
        self._spawner = spawner
        self._transport = transport
        self.health_timeout = health_timeout
        self.poll_interval = poll_interval
        self.startup_timeout = startup_timeout

        self._state = SupervisorState.EXTERNAL if config.scanner_api_url else SupervisorState.IDLE
        self._process = None
        self._starting: Optional[asyncio.Future] = None
        self._background: List[asyncio.Task] = []

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def managed_url(self) -> str:
        return self.config.managed_api_url

    @property
    def process(self):
        """The managed process handle, if any (read-only view for diagnostics)."""
        return self._process

    # =========================================================================
    # Health
    # =========================================================================

    async def is_healthy(self, base_url: str) -> bool:
        """GET {base_url}/health; any 2xx is healthy, everything else is not."""
        try:
            async with httpx.AsyncClient(
                timeout=self.health_timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(endpoint(base_url, HEALTH_PATH))
            return response.is_success
        except httpx.HTTPError:
            return False

    async def _wait_until_healthy(self, process) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_timeout
        while loop.time() < deadline:
            if await self.is_healthy(self.managed_url):
                return True
            if process.returncode is not None:
                logger.error(f"Skill Scanner API process exited during startup (code {process.returncode})")
                return False
            await asyncio.sleep(self.poll_interval)
        return False

    # =========================================================================
    # Endpoint
    # =========================================================================

    async def ensure_endpoint(self) -> str:
        """
        Return the base URL of a healthy scanner, starting one if needed.

        Returns:
            Base URL, or "" if no scanner could be made available
        """
        # 1. External endpoint: check only, never spawn
        external = self.config.scanner_api_url
        if external:
            if await self.is_healthy(external):
                return external
            logger.error(f"Skill Scanner API at {external} is not healthy")
            return ""

        # 2. Reuse the managed process while healthy
        process = self._process
        if (
            self._state == SupervisorState.READY
            and process is not None
            and process.returncode is None
        ):
            if await self.is_healthy(self.managed_url):
                return self.managed_url
            # Only discard the process that was checked; another caller may have replaced it
            if self._process is process:
                logger.warning("Managed Skill Scanner API is unhealthy, restarting")
                self._discard_process()

        # 3. Attach to a startup already in flight
        if self._starting is not None:
            return await self._join_startup()

        # 4. Adopt a scanner already listening on the port
        if await self.is_healthy(self.managed_url):
            if self._starting is None:
                self._state = SupervisorState.READY
            return self.managed_url
        if self._state == SupervisorState.READY and self._process is None:
            # An adopted scanner went away
            self._state = SupervisorState.IDLE

        # Another caller may have begun a startup while we were checking
        if self._starting is not None:
            return await self._join_startup()

        # 5. Start a managed scanner
        return await self._lead_startup()

    async def _join_startup(self) -> str:
        ok = await asyncio.shield(self._starting)
        return self.managed_url if ok and self._state == SupervisorState.READY else ""

    async def _lead_startup(self) -> str:
        starting = asyncio.get_running_loop().create_future()
        self._starting = starting
        self._state = SupervisorState.STARTING

        ok = False
        try:
            ok = await self._start_managed()
        except Exception as e:
            logger.exception(f"Failed to auto-start Skill Scanner API: {e}")
        finally:
            self._starting = None
            if self._state == SupervisorState.STARTING:
                self._state = SupervisorState.READY if ok else SupervisorState.IDLE
            starting.set_result(ok)

        return self.managed_url if ok else ""

    async def _start_managed(self) -> bool:
        logger.info("Auto-starting Skill Scanner API server via uvx...")

        launcher = await asyncio.to_thread(self._resolver)
        if launcher is None:
            logger.error(
                "uvx is not installed. Security scanning is disabled. "
                f"Install uv to enable: {UV_INSTALL_URL}"
            )
            return False

        args = sidecar_arguments(self.config.scanner_api_port)
        try:
            process = await self._spawner(launcher, args)
        except (OSError, ValueError) as e:
            logger.error(f"Skill Scanner API process error: {e}")
            self._process = None
            self._state = SupervisorState.IDLE
            return False

        self._process = process
        logger.info(f"Skill Scanner API started (PID: {process.pid}): {' '.join(launcher.argv(args))}")

        ok = False
        try:
            self._watch(process)
            ok = await self._wait_until_healthy(process)
        finally:
            # Also reached on cancellation: never leave a half-started process behind
            if not ok:
                kill_process(process)
                if self._process is process:
                    self._process = None

        if ok:
            logger.info(f"Skill Scanner API server ready at {self.managed_url}")
        else:
            logger.error("Skill Scanner API server failed to start within timeout")
        return ok

    # =========================================================================
    # Process monitoring
    # =========================================================================

    def _watch(self, process) -> None:
        loop = asyncio.get_running_loop()
        self._background = [
            loop.create_task(self._pipe_output(process.stdout, "stdout")),
            loop.create_task(self._pipe_output(process.stderr, "stderr")),
            loop.create_task(self._watch_exit(process)),
        ]

    async def _pipe_output(self, stream, name: str) -> None:
        if stream is None:
            return
        async for line in stream:
            message = line.decode("utf-8", errors="replace").strip()
            if message:
                logger.debug(f"[Skill Scanner API {name}] {message}")

    async def _watch_exit(self, process) -> None:
        code = await process.wait()
        logger.warning(f"Skill Scanner API process exited (code {code})")
        if self._process is process:
            self._process = None
            if self._state == SupervisorState.READY:
                self._state = SupervisorState.IDLE

    def _discard_process(self) -> None:
        if self._process is not None:
            kill_process(self._process)
        self._process = None
        self._state = SupervisorState.IDLE

    # =========================================================================
    # Shutdown
    # =========================================================================

    def shutdown(self) -> None:
        """Terminate the managed process, if any. Safe to call repeatedly."""
        process = self._process
        if process is None:
            return
        logger.info(f"Stopping managed Skill Scanner API (PID: {process.pid})")
        try:
            kill_process(process)
        except Exception as e:
            logger.error(f"Error stopping Skill Scanner API: {e}")
        self._process = None
        if self._state != SupervisorState.EXTERNAL:
            self._state = SupervisorState.IDLE


# =============================================================================
# Process-wide instance
# =============================================================================

_supervisor: Optional[SidecarSupervisor] = None
_hooks_installed = False


def _exit_on_signal(signum, frame):
    """Turn SIGTERM into a normal exit so atexit hooks run."""
    sys.exit(0)


def install_shutdown_hooks() -> None:
    """Kill the managed sidecar on interpreter exit, including SIGTERM."""
    global _hooks_installed
    if _hooks_installed:
        return
    atexit.register(shutdown_supervisor)
    try:
        signal.signal(signal.SIGTERM, _exit_on_signal)
    except ValueError:
        # Not in the main thread
        logger.debug("Cannot install SIGTERM handler outside the main thread")
    _hooks_installed = True


def configure_supervisor(config: Config, **kwargs) -> SidecarSupervisor:
    """Replace the process-wide supervisor (shutting down the old one)."""
    global _supervisor
    if _supervisor is not None:
        _supervisor.shutdown()
    _supervisor = SidecarSupervisor(config, **kwargs)
    install_shutdown_hooks()
    return _supervisor


def get_supervisor() -> SidecarSupervisor:
    """Get the process-wide supervisor, creating it from the environment on first use."""
    if _supervisor is None:
        return configure_supervisor(Config.from_env())
    return _supervisor


def shutdown_supervisor() -> None:
    if _supervisor is not None:
        _supervisor.shutdown()


def reset_supervisor() -> None:
    """Shut down and forget the process-wide supervisor."""
    global _supervisor
    shutdown_supervisor()
    _supervisor = None


async def ensure_scanner_api() -> str:
    """Shortcut for get_supervisor().ensure_endpoint()."""
    return await get_supervisor().ensure_endpoint()
