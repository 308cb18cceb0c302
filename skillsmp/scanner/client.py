"""
Skill Scanner Client

Packages a FileSet as a ZIP archive, uploads it to the Skill Scanner API and
maps the response into a ScanResult.

The client never raises: an unreachable scanner yields
``available=False`` and a failing scan yields ``status=ERROR``, so a skipped
scan never blocks delivery of content that was already fetched.
"""

import json
import math
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from loguru import logger

from ..core.archive import build_zip
from ..core.config import Config
from .lifecycle import SidecarSupervisor, get_supervisor
from .models import (
    CORE_ANALYZERS,
    LLM_ANALYZER,
    FileSet,
    Finding,
    ScanResult,
    ScanStatus,
    unique_analyzers,
)
from .protocol import (
    SCAN_UPLOAD_PATH,
    encode_multipart,
    endpoint,
    multipart_content_type,
    new_boundary,
)

SCAN_TIMEOUT_SECONDS = 120.0

SCANNER_UNAVAILABLE_MESSAGE = (
    "Security scanner not available — uvx is not installed.\n"
    "Install uv to enable automatic security scanning:\n"
    "  macOS/Linux: curl -LsSf https://astral.sh/uv/install.sh | sh\n"
    '  Windows: powershell -c "irm https://astral.sh/uv/install.ps1 | iex"\n'
    "Skill content was still read successfully."
)


def _as_number(value: Any) -> Optional[Union[int, float]]:
    """JSON numbers only; booleans, NaN and infinities are rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


def _format_duration(value: Any) -> Optional[str]:
    value = _as_number(value)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}s"


class ScannerClient:
    """
    Client for the Skill Scanner upload API.

    Usage:
        client = ScannerClient(Config.from_env())
        result = await client.scan({"SKILL.md": b"..."})
    """

    def __init__(
        self,
        config: Config,
        supervisor: Optional[SidecarSupervisor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = SCAN_TIMEOUT_SECONDS,
    ):
        """
        Initialize client.

        Args:
            config: Supplies the optional LLM analyzer settings
            supervisor: Endpoint provider (default: process-wide supervisor)
            transport: Optional httpx transport for the upload request
            timeout: Overall upload timeout in seconds
        """
        self.config = config
        self._supervisor = supervisor
        self._transport = transport
        self.timeout = timeout

    @property
    def supervisor(self) -> SidecarSupervisor:
        return self._supervisor or get_supervisor()

    def scan_options(self) -> List[Tuple[str, str]]:
        """Form fields / query flags selecting the analyzers for one upload."""
        options = [("use_behavioral", "true")]
        if self.config.llm_api_key:
            options.append(("use_llm", "true"))
            if self.config.llm_model:
                options.append(("llm_model", self.config.llm_model))
            if self.config.llm_provider:
                options.append(("llm_provider", self.config.llm_provider))
        return options

    def requested_analyzers(self) -> List[str]:
        analyzers = list(CORE_ANALYZERS)
        if self.config.llm_api_key:
            analyzers.append(LLM_ANALYZER)
        return analyzers

    async def scan(self, files: FileSet) -> ScanResult:
        """
        Scan a set of files.

        Args:
            files: Relative path -> content

        Returns:
            ScanResult (never raises)
        """
        api_url = await self.supervisor.ensure_endpoint()
        if not api_url:
            return ScanResult.unavailable(SCANNER_UNAVAILABLE_MESSAGE)
        return await self.upload(files, api_url)

    async def upload(self, files: FileSet, api_url: str) -> ScanResult:
        """Upload files to a known scanner endpoint and parse the result."""
        options = self.scan_options()
        requested = self.requested_analyzers()
        scan_url = endpoint(api_url, SCAN_UPLOAD_PATH)

        logger.debug(f"[Scanner] scan-upload request URL: {httpx.URL(scan_url, params=options)}")
        logger.debug(f"[Scanner] requested analyzers: {', '.join(requested)}")
        logger.debug(f"[Scanner] files in zip: {len(files)}")

        boundary = new_boundary()
        body = encode_multipart(options, build_zip(files), boundary)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    scan_url,
                    params=options,
                    content=body,
                    headers={"Content-Type": multipart_content_type(boundary)},
                )
        except httpx.TimeoutException:
            return ScanResult.failed("Skill Scanner API request timed out")
        except Exception as e:
            return ScanResult.unavailable(f"Skill Scanner API unreachable at {api_url}: {e}")

        if not response.is_success:
            return ScanResult.failed(f"API returned {response.status_code}: {response.text}")

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None
        if not isinstance(payload, dict):
            return ScanResult.failed(f"Skill Scanner API returned invalid JSON from {scan_url}")

        return self.parse_response(payload, requested)

    def parse_response(self, payload: Dict[str, Any], requested: List[str]) -> ScanResult:
        """
        Normalize a successful scan-upload response.

        Executed analyzers are the union of what was requested, what the
        response lists and what individual findings name: the scanner omits
        analyzers that produced no findings.
        """
        raw_findings = payload.get("findings")
        if not isinstance(raw_findings, list):
            raw_findings = []
        findings = tuple(Finding.from_dict(f) for f in raw_findings if isinstance(f, dict))

        reported = payload.get("analyzers_used")
        if not isinstance(reported, list):
            reported = []

        executed = unique_analyzers([*requested, *reported, *(f.analyzer for f in findings)])
        logger.debug(
            f"[Scanner] executed analyzers: {', '.join(executed) if executed else '(none reported)'}"
        )

        findings_count = _as_number(payload.get("findings_count"))
        total = len(findings) if findings_count is None else int(findings_count)

        return ScanResult(
            available=True,
            status=ScanStatus.SAFE if payload.get("is_safe") is True else ScanStatus.UNSAFE,
            max_severity=str(payload.get("max_severity") or "UNKNOWN"),
            total_findings=total,
            findings=findings,
            analyzers_used=tuple(executed),
            scan_duration=_format_duration(payload.get("scan_duration_seconds")),
        )


async def run_skill_scanner(files: FileSet, config: Optional[Config] = None) -> ScanResult:
    """Scan files using the process-wide supervisor."""
    supervisor = get_supervisor()
    return await ScannerClient(config or supervisor.config, supervisor).scan(files)
