"""
Tests for scanner result models and analyzer name normalization.

Run with: pytest tests/test_scanner_models.py -v
"""

import pytest

from skillsmp.scanner.models import (
    BEHAVIORAL_ANALYZER,
    LLM_ANALYZER,
    STATIC_ANALYZER,
    Finding,
    ScanResult,
    ScanStatus,
    normalize_analyzer_name,
    unique_analyzers,
)


class TestAnalyzerNames:
    """Short and canonical names collapse to one identifier."""

    @pytest.mark.parametrize("raw,expected", [
        ("static", STATIC_ANALYZER),
        ("STATIC", STATIC_ANALYZER),
        (" static_analyzer ", STATIC_ANALYZER),
        ("Behavioral", BEHAVIORAL_ANALYZER),
        ("llm_analyzer", LLM_ANALYZER),
    ])
    def test_known(self, raw, expected):
        assert normalize_analyzer_name(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "virustotal"])
    def test_unknown(self, raw):
        assert normalize_analyzer_name(raw) is None

    def test_unique_keeps_first_order(self):
        values = ["behavioral", "STATIC", "static_analyzer", "unknown", "behavioral_analyzer"]
        assert unique_analyzers(values) == [BEHAVIORAL_ANALYZER, STATIC_ANALYZER]


class TestFinding:
    """Finding.from_dict accepts both key spellings."""

    def test_snake_case(self):
        finding = Finding.from_dict({
            "rule_id": "R1",
            "severity": "HIGH",
            "description": "bad",
            "file_path": "run.sh",
            "analyzer": "static",
        })
        assert finding == Finding("R1", "HIGH", "bad", "run.sh", "static")

    def test_camel_case_aliases(self):
        finding = Finding.from_dict({"ruleId": "R2", "message": "msg", "filePath": "a.py"})
        assert finding.rule_id == "R2"
        assert finding.description == "msg"
        assert finding.file_path == "a.py"
        assert finding.severity == ""

    def test_empty(self):
        assert Finding.from_dict({}) == Finding()


class TestScanResult:
    """Constructors and helpers."""

    def test_unavailable(self):
        result = ScanResult.unavailable("no scanner")
        assert result.available is False
        assert result.status is None
        assert result.error == "no scanner"

    def test_failed(self):
        result = ScanResult.failed("boom")
        assert result.available is True
        assert result.status == ScanStatus.ERROR
        assert not result.is_safe

    def test_count_by_analyzer_normalizes(self):
        result = ScanResult(
            available=True,
            status=ScanStatus.UNSAFE,
            findings=(
                Finding(analyzer="static"),
                Finding(analyzer="STATIC_ANALYZER"),
                Finding(analyzer="behavioral"),
            ),
        )
        assert result.count_by_analyzer(STATIC_ANALYZER) == 2
        assert result.count_by_analyzer(BEHAVIORAL_ANALYZER) == 1
        assert result.count_by_analyzer(LLM_ANALYZER) == 0

    def test_to_dict(self):
        result = ScanResult(available=True, status=ScanStatus.SAFE, analyzers_used=(STATIC_ANALYZER,))
        data = result.to_dict()
        assert data["status"] == "SAFE"
        assert data["analyzers_used"] == [STATIC_ANALYZER]
