"""
SkillsMP Configuration

Handles configuration from environment variables, JSON files, and CLI arguments.
"""

import json
import os
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_SCANNER_API_PORT = 8000
VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def _parse_port(value: Optional[str], default: int = DEFAULT_SCANNER_API_PORT) -> int:
    """Parse a port number, falling back to default on anything unparsable."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass
class Config:
    """SkillsMP configuration"""

    # Skill Scanner API
    scanner_api_url: str = ""  # External scanner; empty = managed sidecar
    scanner_api_port: int = DEFAULT_SCANNER_API_PORT  # Managed sidecar port

    # Optional LLM analyzer (enabled by presence of the API key)
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None
    llm_provider: Optional[str] = None

    # Launcher overrides
    uvx_path: Optional[str] = None
    uv_path: Optional[str] = None

    # GitHub
    github_token: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @property
    def managed_api_url(self) -> str:
        """Base URL of the locally managed scanner sidecar."""
        return f"http://localhost:{self.scanner_api_port}"

    @property
    def llm_enabled(self) -> bool:
        return bool(self.llm_api_key)

    @classmethod
    def from_json(cls, json_path: str) -> "Config":
        """Load configuration from JSON file"""
        with open(json_path, "r") as f:
            data = json.load(f)

        return cls(
            scanner_api_url=data.get("scanner_api_url", ""),
            scanner_api_port=_parse_port(data.get("scanner_api_port")),
            llm_api_key=data.get("llm_api_key"),
            llm_model=data.get("llm_model"),
            llm_provider=data.get("llm_provider"),
            uvx_path=data.get("uvx_path"),
            uv_path=data.get("uv_path"),
            github_token=data.get("github_token"),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir"),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables"""
        return cls(
            scanner_api_url=os.environ.get("SKILL_SCANNER_API_URL", ""),
            scanner_api_port=_parse_port(os.environ.get("SKILL_SCANNER_API_PORT")),
            llm_api_key=os.environ.get("SKILL_SCANNER_LLM_API_KEY") or None,
            llm_model=os.environ.get("SKILL_SCANNER_LLM_MODEL") or None,
            llm_provider=os.environ.get("SKILL_SCANNER_LLM_PROVIDER") or None,
            uvx_path=os.environ.get("UVX_PATH") or None,
            uv_path=os.environ.get("UV_PATH") or None,
            github_token=os.environ.get("GITHUB_TOKEN") or None,
            log_level=os.environ.get("SKILLSMP_LOG_LEVEL", "INFO"),
            log_dir=os.environ.get("SKILLSMP_LOG_DIR") or None,
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors"""
        errors = []

        if not 0 < self.scanner_api_port < 65536:
            errors.append(f"Invalid scanner_api_port: {self.scanner_api_port}")

        if self.scanner_api_url and not self.scanner_api_url.startswith(("http://", "https://")):
            errors.append(f"scanner_api_url must be an http(s) URL: {self.scanner_api_url}")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"Invalid log_level: {self.log_level}")

        return errors

    def to_dict(self) -> dict:
        """Convert to dictionary (secrets masked)"""
        return {
            "scanner_api_url": self.scanner_api_url,
            "scanner_api_port": self.scanner_api_port,
            "llm_api_key": "***" if self.llm_api_key else None,
            "llm_model": self.llm_model,
            "llm_provider": self.llm_provider,
            "uvx_path": self.uvx_path,
            "uv_path": self.uv_path,
            "github_token": "***" if self.github_token else None,
            "log_level": self.log_level,
            "log_dir": self.log_dir,
        }
