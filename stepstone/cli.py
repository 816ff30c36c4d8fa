"""
stepstone/cli.py — Command line entry point.

Usage:
    stepstone frontend -c frontend.toml
    stepstone datanode -c datanode.toml --include-performance
    stepstone metasrv  -c metasrv.toml --output json

Exit code is 0 when no check failed (warnings allowed), 1 on a failed check
or an unusable configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from pydantic import ValidationError

from stepstone import __version__
from stepstone.checkers import build_checker
from stepstone.config.roles import Role, load_role_config
from stepstone.config.settings import load_settings
from stepstone.errors import ConfigError
from stepstone.log import configure_logging, get_logger
from stepstone.report import render_human, render_json

logger = get_logger(__name__)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config", required=True, help="Path to the component's TOML configuration file."
    )
    parser.add_argument(
        "--output",
        choices=("human", "json"),
        default="human",
        help="Report format (default: human).",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log check steps at DEBUG to stderr."
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepstone",
        description="Pre-flight self-test for GreptimeDB frontend, datanode and metasrv deployments.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Env file holding STEPSTONE_* settings (default: .env, optional).",
    )
    sub = parser.add_subparsers(dest="component", required=True)

    _add_common(sub.add_parser("frontend", help="Check a frontend configuration."))
    datanode = sub.add_parser("datanode", help="Check a datanode configuration.")
    _add_common(datanode)
    datanode.add_argument(
        "--include-performance",
        action="store_true",
        help="Also run object storage latency/throughput benchmarks.",
    )
    _add_common(sub.add_parser("metasrv", help="Check a metasrv configuration."))
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.env_file)
    except ValidationError as exc:
        print(f"ERROR: invalid STEPSTONE_* settings\n{exc}", file=sys.stderr)
        return 1

    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE, verbose=args.verbose)

    role = Role(args.component)
    try:
        config = load_role_config(args.config, role)
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    checker = build_checker(
        role,
        config,
        settings=settings,
        include_performance=getattr(args, "include_performance", False),
    )
    logger.debug("running %s checks from %s", checker.component_name, args.config)
    result = asyncio.run(checker.check())

    render = render_json if args.output == "json" else render_human
    print(render(result, checker.component_name, args.config))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
