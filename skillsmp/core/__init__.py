"""
SkillsMP Core Module

Configuration, logging and the in-memory archive builder.
"""

from .config import Config
from .archive import build_zip
from .logging import (
    logger,
    setup_logging,
    setup_console_only,
)

__all__ = [
    # Config
    "Config",
    # Archive
    "build_zip",
    # Logging
    "logger",
    "setup_logging",
    "setup_console_only",
]
