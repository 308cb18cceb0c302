"""
SkillsMP Tools

Implementations behind the MCP tools. They can be called via MCP protocol
(see skillsmp.mcp_server) or directly as functions.

Usage:
    from skillsmp.tools import read_skill
    text = await read_skill("owner/repo", "skill-name", enable_scan=False)
"""

from .formatters import format_error, format_read_skill_response
from .skills import (
    MAX_SCAN_FILE_BYTES,
    MAX_SCAN_FILES,
    ReadSkillInput,
    find_skill_path,
    read_skill,
    relative_file_set,
    scan_skill,
    select_scan_files,
)

__all__ = [
    # Formatting
    "format_error",
    "format_read_skill_response",
    # Read skill
    "MAX_SCAN_FILE_BYTES",
    "MAX_SCAN_FILES",
    "ReadSkillInput",
    "find_skill_path",
    "read_skill",
    "relative_file_set",
    "scan_skill",
    "select_scan_files",
]
