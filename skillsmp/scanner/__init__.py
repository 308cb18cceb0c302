"""
SkillsMP Security Scanner

Runs skill bundles through the Cisco Skill Scanner API:
- Launcher: locate uvx / `uv x` to run the scanner package
- Lifecycle: supervise one local scanner sidecar (or use an external one)
- Client: package files as ZIP, upload, normalize the result

Architecture:
- Skill Scanner API: separate process, HTTP on localhost
- Communication: multipart/form-data upload, JSON response
"""

from .models import (
    FileSet,
    Finding,
    ScanResult,
    ScanStatus,
    CORE_ANALYZERS,
    STATIC_ANALYZER,
    BEHAVIORAL_ANALYZER,
    LLM_ANALYZER,
    normalize_analyzer_name,
    unique_analyzers,
)
from .launcher import Launcher, resolve_launcher
from .lifecycle import (
    SidecarSupervisor,
    SupervisorState,
    configure_supervisor,
    ensure_scanner_api,
    get_supervisor,
    reset_supervisor,
)
from .client import ScannerClient, run_skill_scanner

__all__ = [
    # Models
    "FileSet",
    "Finding",
    "ScanResult",
    "ScanStatus",
    "CORE_ANALYZERS",
    "STATIC_ANALYZER",
    "BEHAVIORAL_ANALYZER",
    "LLM_ANALYZER",
    "normalize_analyzer_name",
    "unique_analyzers",
    # Launcher
    "Launcher",
    "resolve_launcher",
    # Lifecycle
    "SidecarSupervisor",
    "SupervisorState",
    "configure_supervisor",
    "ensure_scanner_api",
    "get_supervisor",
    "reset_supervisor",
    # Client
    "ScannerClient",
    "run_skill_scanner",
]
