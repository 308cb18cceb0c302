"""
Scanner Data Models

Result types returned by the Skill Scanner client and analyzer name
normalization helpers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

# Relative path (forward slashes) -> raw bytes
FileSet = Mapping[str, bytes]


class ScanStatus(str, Enum):
    """Outcome of a completed scan request."""

    SAFE = "SAFE"
    UNSAFE = "UNSAFE"
    ERROR = "ERROR"  # Scanner reached but the scan itself failed


# Canonical analyzer identifiers
STATIC_ANALYZER = "static_analyzer"
BEHAVIORAL_ANALYZER = "behavioral_analyzer"
LLM_ANALYZER = "llm_analyzer"

# Analyzers the scanner runs on every upload
CORE_ANALYZERS: Tuple[str, ...] = (STATIC_ANALYZER, BEHAVIORAL_ANALYZER)

_ANALYZER_ALIASES: Dict[str, str] = {
    "static": STATIC_ANALYZER,
    STATIC_ANALYZER: STATIC_ANALYZER,
    "behavioral": BEHAVIORAL_ANALYZER,
    BEHAVIORAL_ANALYZER: BEHAVIORAL_ANALYZER,
    "llm": LLM_ANALYZER,
    LLM_ANALYZER: LLM_ANALYZER,
}


def normalize_analyzer_name(value: Any) -> Optional[str]:
    """
    Map an analyzer name to its canonical identifier.

    Matching is case-insensitive and ignores surrounding whitespace.
    Short forms ("static") and canonical forms ("static_analyzer") map to
    the same identifier.

    Returns:
        Canonical name, or None for unrecognized values
    """
    if value is None:
        return None
    return _ANALYZER_ALIASES.get(str(value).strip().lower())


def unique_analyzers(values: Iterable[Any]) -> List[str]:
    """Normalize, drop unknown names and collapse duplicates (first wins)."""
    result: List[str] = []
    for value in values:
        name = normalize_analyzer_name(value)
        if name and name not in result:
            result.append(name)
    return result


@dataclass(frozen=True)
class Finding:
    """One issue reported by the scanner. Every field may be missing on the wire."""

    rule_id: str = ""
    severity: str = ""
    description: str = ""
    file_path: str = ""
    analyzer: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Finding":
        return cls(
            rule_id=str(data.get("rule_id") or data.get("ruleId") or ""),
            severity=str(data.get("severity") or ""),
            description=str(data.get("description") or data.get("message") or ""),
            file_path=str(data.get("file_path") or data.get("filePath") or ""),
            analyzer=str(data.get("analyzer") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity,
            "description": self.description,
            "file_path": self.file_path,
            "analyzer": self.analyzer,
        }


@dataclass(frozen=True)
class ScanResult:
    """
    Result of one scan call.

    ``available`` is False when no scanner endpoint could be reached at all.
    ``status`` is only set when the scanner was reached.
    """

    available: bool
    status: Optional[ScanStatus] = None
    max_severity: Optional[str] = None
    total_findings: Optional[int] = None
    findings: Tuple[Finding, ...] = field(default_factory=tuple)
    analyzers_used: Tuple[str, ...] = field(default_factory=tuple)
    scan_duration: Optional[str] = None  # e.g. "1.5s"
    error: Optional[str] = None

    @classmethod
    def unavailable(cls, error: str) -> "ScanResult":
        return cls(available=False, error=error)

    @classmethod
    def failed(cls, error: str) -> "ScanResult":
        return cls(available=True, status=ScanStatus.ERROR, error=error)

    @property
    def is_safe(self) -> bool:
        return self.status == ScanStatus.SAFE

    def count_by_analyzer(self, analyzer: str) -> int:
        """Number of findings attributed to a canonical analyzer name."""
        return sum(1 for f in self.findings if normalize_analyzer_name(f.analyzer) == analyzer)

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "status": self.status.value if self.status else None,
            "max_severity": self.max_severity,
            "total_findings": self.total_findings,
            "findings": [f.to_dict() for f in self.findings],
            "analyzers_used": list(self.analyzers_used),
            "scan_duration": self.scan_duration,
            "error": self.error,
        }
