"""
SkillsMP Logging Framework

Centralized logging configuration using loguru.

All console output goes to stderr: in MCP stdio mode stdout carries the
JSON-RPC stream and must never receive log lines.
"""

import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


# Global exception handler to ensure all errors are logged
def _global_exception_handler(exc_type, exc_value, exc_tb):
    """Handle uncaught exceptions globally."""
    if issubclass(exc_type, KeyboardInterrupt):
        # Don't log keyboard interrupts
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return

    error_msg = ''.join(traceback.format_exception(exc_type, exc_value, exc_tb))
    logger.error(f"Uncaught exception:\n{error_msg}")

sys.excepthook = _global_exception_handler


CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Global log directory for current session
_current_log_dir: Optional[Path] = None


def _create_session_header(metadata: Dict[str, Any]) -> str:
    """Create a formatted session metadata header"""
    max_key_len = max(len(str(k)) for k in metadata.keys() if metadata[k] is not None)

    content_lines = []
    for key, value in metadata.items():
        if value is not None:
            key_padded = f"{key}:".ljust(max_key_len + 2)
            content_lines.append(f"  {key_padded} {value}")

    width = max(len(line) for line in content_lines) + 2
    width = max(width, 80)  # Minimum width of 80

    lines = []
    lines.append("┌" + "─" * width + "┐")
    lines.append("│" + " SKILLSMP SESSION ".center(width) + "│")
    lines.append("├" + "─" * width + "┤")
    for content in content_lines:
        lines.append("│" + content.ljust(width) + "│")
    lines.append("└" + "─" * width + "┘")
    lines.append("")

    return "\n".join(lines)


def get_log_dir() -> Optional[Path]:
    """Get current session's log directory"""
    return _current_log_dir


def setup_logging(
    log_dir: Path,
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Setup console and file logging.

    Creates a session directory: {log_dir}/skillsmp_{timestamp}/

    Args:
        log_dir: Base directory for logs
        console_level: Log level for console (stderr) output
        file_level: Log level for file output
        metadata: Optional session metadata to include in log header

    Returns:
        Path to the session log directory
    """
    global _current_log_dir

    setup_console_only(console_level)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    session_dir = Path(log_dir) / f"skillsmp_{timestamp}"
    session_dir.mkdir(parents=True, exist_ok=True)
    _current_log_dir = session_dir

    log_file = session_dir / "skillsmp.log"
    full_metadata = {
        "Start Time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "Log Directory": str(session_dir),
        **(metadata or {}),
    }
    with open(log_file, "w", encoding="utf-8") as f:
        f.write(_create_session_header(full_metadata))
        f.write("\n")

    logger.add(
        log_file,
        level=file_level,
        format=FILE_FORMAT,
        rotation="50 MB",
        retention="7 days",
        encoding="utf-8",
        mode="a",  # Append after header
    )

    # Error log file - only errors and above
    logger.add(
        session_dir / "error.log",
        level="ERROR",
        format=FILE_FORMAT,
        rotation="10 MB",
        encoding="utf-8",
    )

    logger.info(f"Logging initialized: {session_dir}")

    return session_dir


def setup_console_only(level: str = "INFO"):
    """
    Setup console-only logging (default for MCP server mode).

    Args:
        level: Log level
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=level.upper(),
        format=CONSOLE_FORMAT,
        colorize=True,
    )
