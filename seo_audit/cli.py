"""Command line entry point: ``seo-audit audit URL`` and ``seo-audit diff A B``."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import build_inputs, load_config
from .diff import build_diff_report, load_report
from .errors import AuditError
from .models import COVERAGE_MODES
from .performance import LighthouseMeasurer, NullPerformanceMeasurer
from .pipeline import AuditPipeline

logger = logging.getLogger("seo_audit.cli")


def render_json(data: dict) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


RENDERERS: Dict[str, Callable[[dict], str]] = {
    "json": render_json,
}


def _write(text: str, out: Optional[str]) -> None:
    if out:
        Path(out).write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote {out}")
    else:
        sys.stdout.write(text + "\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seo-audit", description="Crawl a site and report SEO issues.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    audit = sub.add_parser("audit", help="Run an audit and write the report")
    audit.add_argument("url", help="Target site URL")
    audit.add_argument("--config", help="Path to a seo-audit.config.json")
    audit.add_argument("--coverage", choices=COVERAGE_MODES)
    audit.add_argument("--max-pages", type=int)
    audit.add_argument("--depth", type=int, dest="crawl_depth")
    audit.add_argument("--timeout-ms", type=int)
    audit.add_argument("--no-robots", action="store_true", help="Ignore robots.txt")
    audit.add_argument("--no-serp", action="store_true", help="Skip SERP snippet checks")
    audit.add_argument("--focus-url")
    audit.add_argument("--focus-keyword")
    audit.add_argument("--lighthouse", action="store_true", help="Measure the focus page with Lighthouse")
    audit.add_argument("--format", choices=sorted(RENDERERS), default="json")
    audit.add_argument("--out", help="Report output path (stdout when omitted)")
    audit.add_argument("--baseline", help="Baseline report JSON to diff against")
    audit.add_argument("--diff-out", help="Diff output path (stdout when omitted)")

    diff = sub.add_parser("diff", help="Compare two stored reports")
    diff.add_argument("baseline")
    diff.add_argument("current")
    diff.add_argument("--format", choices=sorted(RENDERERS), default="json")
    diff.add_argument("--out")
    return parser


def cmd_audit(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    inputs = build_inputs(
        args.url,
        config,
        coverage=args.coverage,
        max_pages=args.max_pages,
        crawl_depth=args.crawl_depth,
        timeout_ms=args.timeout_ms,
        respect_robots=False if args.no_robots else None,
        include_serp=False if args.no_serp else None,
        focus_url=args.focus_url,
        focus_keyword=args.focus_keyword,
    )
    measurer = LighthouseMeasurer() if args.lighthouse else NullPerformanceMeasurer()

    report = AuditPipeline(inputs, measurer=measurer).run()
    render = RENDERERS[args.format]
    _write(render(report.to_dict()), args.out)
    logger.info(
        f"{report.run_id}: {report.summary.pages_crawled} pages, score {report.summary.score_total}, "
        f"{report.summary.errors} errors, {report.summary.warnings} warnings"
    )

    if args.baseline:
        diff = build_diff_report(load_report(args.baseline), report)
        _write(render(diff.to_dict()), args.diff_out)
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    diff = build_diff_report(load_report(args.baseline), load_report(args.current))
    _write(RENDERERS[args.format](diff.to_dict()), args.out)
    return 0


COMMANDS = {
    "audit": cmd_audit,
    "diff": cmd_diff,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        return COMMANDS[args.command](args)
    except AuditError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
