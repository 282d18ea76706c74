"""
One audit run end-to-end:

    validate -> discover -> crawl -> extract -> measure -> link graph
             -> rules -> tag/consolidate/sort -> score -> Report
"""

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

import requests

from .config import CRAWL_WORKERS, validate_inputs
from .crawler import CrawlerEngine, dedupe_by_final_url
from .discovery import discover_seeds
from .extractor import extract_page_data
from .link_checker import LinkStatusChecker
from .link_graph import build_link_graph
from .models import AuditInputs, PageExtract, PageSummary, Report, Summary
from .performance import NullPerformanceMeasurer, PerformanceMeasurer
from .progress import CancelToken, ProgressStream
from .rules import RuleContext, RuleEngine, consolidate_issues, sort_issues, tag_issues
from .scoring import score_report
from .session import build_session
from .urls import canonical_or_self

logger = logging.getLogger("seo_audit.pipeline")

# Progress bands per stage (start percent)
PCT_DISCOVERY = 5
PCT_CRAWL = 10
PCT_EXTRACT = 60
PCT_LINK_GRAPH = 68
PCT_RULES = 70
PCT_SCORING = 90


def iso_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def build_run_id(moment: datetime) -> str:
    return "run-" + iso_timestamp(moment).replace(":", "-").replace(".", "-")


class AuditPipeline:
    """Runs a single audit. Not reusable: create one per job."""

    def __init__(self, inputs: AuditInputs,
                 session: Optional[requests.Session] = None,
                 measurer: Optional[PerformanceMeasurer] = None,
                 progress: Optional[ProgressStream] = None,
                 cancel_token: Optional[CancelToken] = None,
                 checker: Optional[LinkStatusChecker] = None,
                 max_workers: int = CRAWL_WORKERS):
        self.inputs = inputs
        self._owns_session = session is None
        self.session = session
        self.measurer = measurer or NullPerformanceMeasurer()
        self.progress = progress or ProgressStream()
        self.cancel_token = cancel_token or CancelToken()
        self.checker = checker
        self.max_workers = max_workers

    def _emit(self, percent: int, stage: str, detail: str = "") -> None:
        self.progress.emit(percent, stage, detail)

    def _crawl_progress(self, event: dict) -> None:
        limit = max(1, event.get("crawlLimit") or 1)
        scanned = event.get("pagesScanned", 0)
        percent = PCT_CRAWL + int((PCT_EXTRACT - PCT_CRAWL) * min(1.0, scanned / limit))
        self._emit(percent, "crawl", f"{scanned}/{limit} {event.get('url', '')}")

    def run(self) -> Report:
        started = datetime.now(timezone.utc)
        t0 = time.time()
        try:
            report = self._run(started)
        except Exception as e:
            self.progress.close(f"failed: {str(e)[:200]}")
            raise
        finally:
            if self._owns_session and self.session is not None:
                self.session.close()
        self.progress.close(f"{report.summary.pages_crawled} pages, score {report.summary.score_total}")
        logger.info(f"Audit {report.run_id} finished in {time.time() - t0:.1f}s")
        return report

    def _run(self, started: datetime) -> Report:
        inputs = validate_inputs(self.inputs)
        if self.session is None:
            self.session = build_session(inputs.user_agent, pool_size=max(16, self.max_workers * 4))
        checker = self.checker or LinkStatusChecker(self.session, inputs.timeout_seconds, self.cancel_token)

        # === DISCOVERY ===
        self._emit(PCT_DISCOVERY, "discovery", inputs.target)
        discovery = discover_seeds(inputs, self.session, self.cancel_token)
        self.cancel_token.raise_if_cancelled()

        # === CRAWL ===
        self._emit(PCT_CRAWL, "crawl", f"{len(discovery.seeds)} seeds")
        crawler = CrawlerEngine(
            inputs,
            session=self.session,
            robots_disallow=discovery.robots_disallow,
            cancel_token=self.cancel_token,
            max_workers=self.max_workers,
        )
        crawl = crawler.crawl(discovery.seeds, progress_callback=self._crawl_progress)
        crawled = dedupe_by_final_url(crawl.pages)

        # === EXTRACT ===
        self._emit(PCT_EXTRACT, "extract", f"{len(crawled)} pages")
        extracts: List[PageExtract] = []
        for page in crawled:
            self.cancel_token.raise_if_cancelled()
            extracts.append(extract_page_data(
                page.html, page.url, page.final_url, page.status,
                page.response_headers, page.response_ms,
            ))
        extracts = self._measure(inputs, extracts)

        # === LINK GRAPH ===
        self._emit(PCT_LINK_GRAPH, "link_graph")
        graph = build_link_graph(extracts, inputs.focus_url, inputs.generic_anchors)
        extracts = graph.pages

        # === RULES ===
        self._emit(PCT_RULES, "rules", f"{len(extracts)} pages")
        context = RuleContext.from_inputs(
            inputs,
            robots_disallow=discovery.robots_disallow,
            sitemap_urls=discovery.sitemap_page_urls,
            checker=checker,
            cancel_token=self.cancel_token,
        )
        issues = RuleEngine(context).run(extracts, graph)
        issues = tag_issues(issues, inputs.focus_url, graph.focus_sources())
        issues = sort_issues(consolidate_issues(issues))

        # === SCORING ===
        self._emit(PCT_SCORING, "scoring", f"{len(issues)} issues")
        focus_page = self._find_page(extracts, inputs.focus_url)
        card = score_report(
            issues,
            graph=graph,
            focus_url=inputs.focus_url,
            focus_inlinks_threshold=inputs.focus_inlinks_threshold,
            focus_performance=focus_page.performance if focus_page else None,
        )

        summary = Summary(
            score_total=card.score_total,
            score_by_category=card.score_by_category,
            pages_crawled=len(extracts),
            errors=sum(1 for issue in issues if issue.severity == "error"),
            warnings=sum(1 for issue in issues if issue.severity == "warning"),
            notices=sum(1 for issue in issues if issue.severity == "notice"),
            focus=card.focus,
            internal_links=graph.summary,
        )
        finished = datetime.now(timezone.utc)
        return Report(
            run_id=build_run_id(started),
            started_at=iso_timestamp(started),
            finished_at=iso_timestamp(finished),
            inputs=inputs,
            summary=summary,
            issues=issues,
            pages=[
                PageSummary(url=page.url, final_url=page.final_url, status=page.status,
                            title=page.title, canonical=page.canonical)
                for page in extracts
            ],
            page_extracts=extracts,
            crawl_events=crawl.events,
            seed_discovery=discovery,
        )

    @staticmethod
    def _find_page(extracts: List[PageExtract], url: Optional[str]) -> Optional[PageExtract]:
        if not url:
            return None
        key = canonical_or_self(url)
        for page in extracts:
            if key in (canonical_or_self(page.url), canonical_or_self(page.final_url)):
                return page
        return None

    def _measure(self, inputs: AuditInputs, extracts: List[PageExtract]) -> List[PageExtract]:
        """Measure the focus page (or the start page) only."""
        target = self._find_page(extracts, inputs.focus_url or inputs.target)
        if target is None:
            return extracts
        metrics = self.measurer.measure(target.final_url)
        if metrics is None:
            return extracts
        return [replace(page, performance=metrics) if page is target else page for page in extracts]


def run_audit(inputs: AuditInputs, **kwargs) -> Report:
    return AuditPipeline(inputs, **kwargs).run()
