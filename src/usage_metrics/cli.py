"""
Command line entry point.

    usage-metrics render --source docs/usage-metrics.csv --out dashboard/
    usage-metrics render --source https://example.org/usage-metrics.csv
    usage-metrics probe http://localhost:8080/get
"""
from __future__ import annotations
import argparse
import logging
import sys
from typing import List, Optional

from .config import DashboardConfig, parse_timeout
from .dashboard import DashboardState, DirectoryTarget, run_dashboard
from .errors import UsageMetricsError
from .logging_config import add_log_level_argument, configure_logging
from .probe import probe

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="usage-metrics", description="Usage metrics dashboard")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="load the CSV and write the dashboard charts")
    render.add_argument("--source", help="CSV path or http(s) URL (default: $USAGE_METRICS_CSV)")
    render.add_argument("--out", dest="out_dir", help="output directory (default: $USAGE_METRICS_OUT)")
    render.add_argument("--timeout", help="fetch timeout in seconds")
    render.add_argument("--log-file", help="also log to this file")
    add_log_level_argument(render)

    pr = sub.add_parser("probe", help="GET a URL and check it answers 200")
    pr.add_argument("url")
    pr.add_argument("--timeout", help="request timeout in seconds")
    add_log_level_argument(pr)
    return parser


def _render(args: argparse.Namespace, config: DashboardConfig) -> int:
    config = config.override(
        source=args.source,
        out_dir=args.out_dir,
        timeout=parse_timeout(args.timeout, config.timeout),
        log_file=args.log_file,
    )
    configure_logging(log_file=config.log_file, log_level=args.log_level)
    logger.info("Rendering dashboard from %s into %s", config.source, config.out_dir)

    state = DashboardState()
    target = DirectoryTarget(config.out_dir)
    try:
        view = run_dashboard(config.source, target, state, timeout=config.timeout)
    finally:
        state.release_all()
    if view is None:
        return 1
    logger.info("Rendered %d records across %d versions", len(view.records), len(view.categories))
    return 0


def _probe(args: argparse.Namespace) -> int:
    configure_logging(log_level=args.log_level)
    timeout = parse_timeout(args.timeout, 10.0)
    try:
        probe(args.url, timeout=timeout)
    except UsageMetricsError as e:
        logger.error("%s", e)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = DashboardConfig.from_env()
        if args.command == "render":
            return _render(args, config)
        return _probe(args)
    except UsageMetricsError as e:
        print(f"usage-metrics: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
