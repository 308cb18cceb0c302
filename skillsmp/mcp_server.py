"""
SkillsMP MCP Server

Exposes skill reading (with optional security scanning) as MCP tools.
Served over stdio; nothing but protocol traffic may be written to stdout.
"""

from typing import Annotated

from fastmcp import FastMCP
from pydantic import Field

from .core import Config
from .scanner import configure_supervisor, reset_supervisor
from .tools.skills import REPO_PATTERN, SKILL_NAME_PATTERN, read_skill


# Create MCP server instance
mcp = FastMCP("SkillsMP")


@mcp.tool()
async def skillsmp_read_skill(
    repo: Annotated[
        str,
        Field(
            min_length=1,
            pattern=REPO_PATTERN,
            description="GitHub repository in 'owner/repo' format (e.g., 'existential-birds/beagle')",
        ),
    ],
    skill_name: Annotated[
        str,
        Field(
            min_length=1,
            max_length=100,
            pattern=SKILL_NAME_PATTERN,
            description="Name of the skill to read",
        ),
    ],
    enable_scan: Annotated[
        bool,
        Field(description="Scan the skill with Cisco Skill Scanner before returning it (default: true)"),
    ] = True,
) -> str:
    """
    Read a skill's SKILL.md from GitHub, scanning it for security issues first.

    The whole skill directory is uploaded to the Cisco Skill Scanner (static
    and behavioral analyzers, plus the LLM analyzer when configured). If the
    scanner is unavailable the content is still returned, flagged as
    unverified.

    Args:
        repo: GitHub repository in 'owner/repo' format
        skill_name: Name of the skill directory holding SKILL.md
        enable_scan: Run the security scan (default: true)

    Returns:
        Markdown with scan results followed by the skill instructions

    Examples:
        - repo: "existential-birds/beagle", skill_name: "python-code-review"
        - repo: "LA3D/skillhelper", skill_name: "code-reviewer"
    """
    return await read_skill(repo, skill_name, enable_scan)


class MCPServer:
    """MCP Server wrapper"""

    def __init__(self, config: Config):
        self.config = config
        self.mcp = mcp

    def run(self):
        """Run the MCP server"""
        # The scanner sidecar is started lazily on the first scan
        configure_supervisor(self.config)
        try:
            mcp.run()
        finally:
            reset_supervisor()


def run_server(config: Config):
    """Start the MCP server"""
    server = MCPServer(config)
    server.run()
