"""
SkillsMP MCP - Main Entry Point

Starts the SkillsMP MCP server on stdio:
    python3 -m skillsmp.main [options]
    skillsmp-mcp [options]

Configuration comes from the environment (or a JSON file via --config);
command line options override either source. stdout carries the MCP
protocol, so all diagnostics go to stderr or the log directory.
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .core import Config, logger, setup_console_only, setup_logging


# =============================================================================
# Argument Parsing
# =============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="skillsmp-mcp",
        description="SkillsMP MCP - read agent skills from GitHub with Cisco Skill Scanner checks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config", type=str, help="JSON configuration file path")

    # Skill Scanner
    parser.add_argument("--scanner-url", type=str, help="External Skill Scanner API URL (disables the managed sidecar)")
    parser.add_argument("--scanner-port", type=int, help="Port for the managed Skill Scanner API (default: 8000)")

    # Logging
    parser.add_argument("--log-level", type=str, help="Log level (default: INFO)")
    parser.add_argument("--log-dir", type=str, help="Also write session logs to this directory")

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> Config:
    """Create Config from parsed arguments"""
    # JSON file replaces the environment as the base
    config = Config.from_json(args.config) if args.config else Config.from_env()

    if args.scanner_url:
        config.scanner_api_url = args.scanner_url
    if args.scanner_port is not None:
        config.scanner_api_port = args.scanner_port
    if args.log_level:
        config.log_level = args.log_level.upper()
    if args.log_dir:
        config.log_dir = args.log_dir

    return config


def init_logging(config: Config) -> None:
    """Route loguru output to stderr, plus session files when a log dir is set."""
    level = config.log_level.upper()
    if config.log_dir:
        setup_logging(
            config.log_dir,
            console_level=level,
            metadata={
                "Version": __version__,
                "Scanner": config.scanner_api_url or config.managed_api_url + " (managed)",
                "LLM Analyzer": "enabled" if config.llm_enabled else "disabled",
            },
        )
    else:
        setup_console_only(level)


# =============================================================================
# Entry
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    config = create_config_from_args(args)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"[ERROR] {error}", file=sys.stderr)
        return 2

    init_logging(config)
    logger.info(f"Starting SkillsMP MCP Server v{__version__}")
    logger.debug(f"Configuration: {config.to_dict()}")
    logger.info("Available MCP Tools:")
    logger.info("  - skillsmp_read_skill")

    from .mcp_server import run_server
    run_server(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
