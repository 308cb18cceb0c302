"""
Scanner Launcher Resolution

Locates an executable that can run the Skill Scanner package on demand.

Resolution order:
1. `uvx` (runs the package directly)
2. `uv x` (same thing for users who only have `uv` on hand)

For each command an ordered list of candidate producers is consulted and
every candidate is checked with `--version`; the first clean exit wins.
Platform differences live only in the producers.
"""

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from loguru import logger

from ..core.config import Config

VERSION_CHECK_TIMEOUT_SECONDS = 5.0

WINDOWS_SUFFIXES = (".exe", ".cmd", ".bat")


@dataclass(frozen=True)
class Launcher:
    """A resolved launcher: executable plus arguments placed before the package args."""

    command: str
    leading_args: Tuple[str, ...] = ()

    def argv(self, args: Iterable[str]) -> List[str]:
        return [self.command, *self.leading_args, *args]


@dataclass(frozen=True)
class CommandSpec:
    """A command to search for and how to invoke it once found."""

    name: str
    override: Optional[str] = None
    leading_args: Tuple[str, ...] = ()


CandidateProducer = Callable[[CommandSpec], Iterable[str]]


def _is_windows() -> bool:
    return sys.platform == "win32"


def _executable_names(name: str) -> List[str]:
    if _is_windows():
        return [name + suffix for suffix in WINDOWS_SUFFIXES] + [name]
    return [name]


# =========================================================================
# Candidate producers
# =========================================================================

def from_override(spec: CommandSpec) -> Iterator[str]:
    """Explicit path from configuration/environment."""
    if spec.override:
        yield spec.override


def from_bare_name(spec: CommandSpec) -> Iterator[str]:
    """The command name as-is, resolved by the OS."""
    yield spec.name


def from_install_dirs(spec: CommandSpec) -> Iterator[str]:
    """Well-known per-platform install locations of uv/uvx."""
    if _is_windows():
        profile = os.environ.get("USERPROFILE")
        if not profile:
            return
        local_bin = Path(profile) / ".local" / "bin"
        for suffix in WINDOWS_SUFFIXES:
            yield str(local_bin / f"{spec.name}{suffix}")
        return

    home = Path.home()
    dirs = [home / ".local" / "bin", home / ".cargo" / "bin"]
    if sys.platform == "darwin":
        dirs += [Path("/opt/homebrew/bin"), Path("/usr/local/bin")]
    for directory in dirs:
        candidate = directory / spec.name
        if candidate.is_file():
            yield str(candidate)


def from_search_path(spec: CommandSpec) -> Iterator[str]:
    """Every PATH directory, with executable suffixes on Windows."""
    raw_path = os.environ.get("PATH", "")
    for raw_dir in raw_path.split(os.pathsep):
        directory = raw_dir.strip()
        if not directory:
            continue
        for executable in _executable_names(spec.name):
            candidate = os.path.join(directory, executable)
            if os.path.isfile(candidate):
                yield candidate


def from_system_lookup(spec: CommandSpec) -> Iterator[str]:
    """Ask the system locate utility (`where` on Windows, `which` elsewhere)."""
    lookup = "where" if _is_windows() else "which"
    try:
        result = subprocess.run(
            [lookup, spec.name],
            capture_output=True,
            text=True,
            timeout=VERSION_CHECK_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError):
        return
    if result.returncode != 0 or not result.stdout:
        return
    for line in result.stdout.splitlines():
        line = line.strip()
        if line:
            yield line


CANDIDATE_PRODUCERS: Tuple[CandidateProducer, ...] = (
    from_override,
    from_bare_name,
    from_install_dirs,
    from_search_path,
    from_system_lookup,
)


# =========================================================================
# Check and resolve
# =========================================================================

def check_command(command: str, args: Tuple[str, ...] = ("--version",)) -> bool:
    """Return True if `command args` runs and exits cleanly."""
    try:
        result = subprocess.run(
            [command, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=VERSION_CHECK_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return result.returncode == 0


def iter_candidates(
    spec: CommandSpec,
    producers: Iterable[CandidateProducer] = CANDIDATE_PRODUCERS,
) -> Iterator[str]:
    """Chain all producers for a command, skipping duplicates."""
    seen = set()
    for producer in producers:
        for candidate in producer(spec):
            if candidate in seen:
                continue
            seen.add(candidate)
            yield candidate


def command_specs(config: Config) -> List[CommandSpec]:
    """Commands to try, in order of preference."""
    return [
        CommandSpec(name="uvx", override=config.uvx_path),
        CommandSpec(name="uv", override=config.uv_path, leading_args=("x",)),
    ]


def resolve_launcher(
    config: Config,
    check: Callable[[str], bool] = check_command,
    producers: Iterable[CandidateProducer] = CANDIDATE_PRODUCERS,
) -> Optional[Launcher]:
    """
    Find a working launcher for the scanner package.

    Args:
        config: Supplies the UVX_PATH / UV_PATH overrides
        check: Validates a candidate executable
        producers: Candidate producers, consulted in order

    Returns:
        The first launcher whose check succeeds, or None
    """
    producers = tuple(producers)
    for spec in command_specs(config):
        for candidate in iter_candidates(spec, producers):
            if check(candidate):
                logger.debug(f"[Launcher] Using {candidate} {' '.join(spec.leading_args)}".rstrip())
                return Launcher(command=candidate, leading_args=spec.leading_args)
            logger.debug(f"[Launcher] Candidate rejected: {candidate}")
    return None
