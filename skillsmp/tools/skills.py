"""
Read Skill Tool

Fetches a skill's SKILL.md from GitHub and, optionally, runs the whole skill
directory through the Skill Scanner before returning it.

Usage:
    from skillsmp.tools.skills import read_skill
    text = await read_skill("existential-birds/beagle", "python-code-review")
"""

import posixpath
from typing import Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from ..core.config import Config
from ..github import GitHubClient, TreeItem
from ..scanner.client import ScannerClient
from ..scanner.lifecycle import get_supervisor
from ..scanner.models import ScanResult
from .formatters import format_error, format_read_skill_response

SKILL_FILENAME = "SKILL.md"

# Limits applied to the bundle uploaded for scanning
MAX_SCAN_FILE_BYTES = 512 * 1024
MAX_SCAN_FILES = 200

REPO_PATTERN = r"^[A-Za-z0-9._-]+/[A-Za-z0-9._-]+$"
SKILL_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"


class ReadSkillInput(BaseModel):
    """Validated arguments of skillsmp_read_skill."""

    repo: str = Field(
        min_length=1,
        pattern=REPO_PATTERN,
        description="GitHub repository in 'owner/repo' format (e.g., 'existential-birds/beagle')",
    )
    skill_name: str = Field(
        min_length=1,
        max_length=100,
        pattern=SKILL_NAME_PATTERN,
        description="Name of the skill to read",
    )
    enable_scan: bool = Field(
        default=True,
        description="Run the Cisco Skill Scanner on the skill before returning it",
    )


def _describe_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        lines.append(f"- {location}: {item.get('msg', 'invalid value')}")
    return "\n".join(lines)


def find_skill_path(items: List[TreeItem], skill_name: str) -> Tuple[Optional[str], List[str]]:
    """
    Locate the SKILL.md for a skill.

    A SKILL.md whose parent directory is named after the skill wins; a
    repository holding exactly one SKILL.md is accepted as-is.

    Returns:
        (resolved path or None, all SKILL.md paths in the repository)
    """
    candidates = [i.path for i in items if posixpath.basename(i.path) == SKILL_FILENAME]
    for path in candidates:
        if posixpath.basename(posixpath.dirname(path)) == skill_name:
            return path, candidates
    if len(candidates) == 1:
        return candidates[0], candidates
    return None, candidates


def select_scan_files(items: List[TreeItem], skill_dir: str) -> Tuple[List[str], Optional[str]]:
    """
    Pick the files of a skill directory to upload for scanning.

    SKILL.md is always taken first. Oversized files are dropped and the
    selection is capped at MAX_SCAN_FILES.

    Returns:
        (repository paths, scan note or None when nothing was left out)
    """
    prefix = f"{skill_dir}/" if skill_dir else ""
    skill_md = prefix + SKILL_FILENAME

    in_dir = [i for i in items if i.path.startswith(prefix)]
    in_dir.sort(key=lambda i: (i.path != skill_md, i.path))

    oversized = [i for i in in_dir if i.size is not None and i.size > MAX_SCAN_FILE_BYTES]
    eligible = [i.path for i in in_dir if i not in oversized]
    selected = eligible[:MAX_SCAN_FILES]
    dropped = len(eligible) - len(selected)

    if not oversized and not dropped:
        return selected, None

    parts = []
    if oversized:
        parts.append(f"{len(oversized)} file(s) larger than {MAX_SCAN_FILE_BYTES // 1024} KB were skipped")
    if dropped:
        parts.append(f"{dropped} file(s) beyond the {MAX_SCAN_FILES}-file limit were skipped")
    return selected, "Scan scope was limited: " + "; ".join(parts) + "."


def relative_file_set(files: Dict[str, bytes], skill_dir: str) -> Dict[str, bytes]:
    """Re-key fetched files relative to the skill directory."""
    if not skill_dir:
        return dict(files)
    return {posixpath.relpath(path, skill_dir): data for path, data in files.items()}


async def scan_skill(
    repo: str,
    items: List[TreeItem],
    skill_path: str,
    github: GitHubClient,
    scanner: ScannerClient,
) -> Tuple[ScanResult, Optional[str]]:
    """Fetch the skill directory and scan it. Returns (result, scan note)."""
    skill_dir = posixpath.dirname(skill_path)
    paths, scan_note = select_scan_files(items, skill_dir)
    if scan_note:
        logger.info(f"[read_skill] {scan_note}")

    fetched = await github.fetch_files(repo, paths)
    files = relative_file_set(fetched, skill_dir)
    logger.debug(f"[read_skill] Fetched {len(files)}/{len(paths)} file(s) for scanning")

    if SKILL_FILENAME not in files:
        return ScanResult.failed(
            f"Scan preparation failed: {SKILL_FILENAME} could not be fetched for scanning"
        ), scan_note

    return await scanner.scan(files), scan_note


async def read_skill(
    repo: str,
    skill_name: str,
    enable_scan: bool = True,
    github: Optional[GitHubClient] = None,
    scanner: Optional[ScannerClient] = None,
    config: Optional[Config] = None,
) -> str:
    """
    Read a skill from GitHub, optionally scanning it first.

    Args:
        repo: GitHub repository in "owner/repo" form
        skill_name: Skill directory name
        enable_scan: Run the Skill Scanner on the skill directory
        github: GitHub client (default: built from config)
        scanner: Scanner client (default: built from config)
        config: Configuration (default: the process-wide supervisor's)

    Returns:
        Markdown text; failures are reported in the text, never raised
    """
    try:
        params = ReadSkillInput(repo=repo, skill_name=skill_name, enable_scan=enable_scan)
    except ValidationError as e:
        return format_error("Invalid Input", _describe_validation_error(e))

    try:
        if github is None or scanner is None:
            config = config or get_supervisor().config
            github = github or GitHubClient(token=config.github_token)
            scanner = scanner or ScannerClient(config)

        items, tree_error = await github.fetch_tree(params.repo)
        if not items:
            return format_error(
                "Repository Fetch Failed",
                f"Repository: {params.repo}\n\nError:\n{tree_error or 'No files found in repository'}",
            )
        if tree_error:
            logger.warning(f"[read_skill] {params.repo}: {tree_error}")

        skill_path, candidates = find_skill_path(items, params.skill_name)
        if skill_path is None:
            available = "\n".join(f"- {p}" for p in candidates) or "(none)"
            return format_error(
                "Skill Not Found",
                f"Repository: {params.repo}\nSkill: {params.skill_name}\n\n"
                f"Available {SKILL_FILENAME} files:\n{available}",
            )

        content, read_error = await github.fetch_file_content(params.repo, skill_path)
        if read_error:
            return format_error(
                "Read Failed",
                f"Repository: {params.repo}\nPath: {skill_path}\n\nError:\n{read_error}",
            )

        if not params.enable_scan:
            return format_read_skill_response(
                params.repo, params.skill_name, content, skill_path, enable_scan=False
            )

        scan_result, scan_note = await scan_skill(params.repo, items, skill_path, github, scanner)
        return format_read_skill_response(
            params.repo,
            params.skill_name,
            content,
            skill_path,
            scan_result=scan_result,
            enable_scan=True,
            scan_note=scan_note,
        )

    except Exception as e:
        logger.exception(f"[read_skill] Unexpected error for {repo}/{skill_name}: {e}")
        return f"❌ **Error**: {e or 'An unexpected error occurred'}"
