"""
SkillsMP MCP - read and verify AI skills

Fetches skill bundles from GitHub and verifies them with the Cisco Skill
Scanner, which runs as a supervised local sidecar when no external scanner
is configured.
"""

__version__ = "1.0.0"
__author__ = "SkillsMP Team"
