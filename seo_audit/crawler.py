"""
Crawl engine: bounded breadth-first fetching under a coverage policy.

Coverage modes:
    quick    - seeds only, no link expansion
    surface  - one URL per structural template, plus the full focus neighborhood
    full     - every reachable internal URL up to crawl_depth
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

import requests

from .config import CRAWL_WORKERS, FOCUS_NEIGHBORHOOD_CAP
from .discovery import resolve_allowed_hosts
from .errors import NoPagesCrawled
from .extractor import collect_link_targets
from .models import AuditInputs, CrawledPage, CrawlEvent, CrawlResult
from .progress import CancelToken
from .session import build_session
from .urls import (
    canonical_or_self, host_of, is_blocked_by_robots, is_crawlable_url,
    matches_any, normalize_url, strip_fragment, surface_pattern,
)

logger = logging.getLogger("seo_audit.crawler")

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

FetchOutcome = Tuple[Optional[CrawledPage], CrawlEvent, List[str]]


def visit_key(url: str) -> str:
    """Identity used for the visited set: normalized URL without fragment."""
    normalized = normalize_url(url)
    return strip_fragment(normalized) if normalized else url


def dedupe_by_final_url(pages: List[CrawledPage]) -> List[CrawledPage]:
    """Keep the first fetch of each canonical final URL."""
    seen: Set[str] = set()
    unique: List[CrawledPage] = []
    for page in pages:
        key = canonical_or_self(page.final_url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(page)
    return unique


class CrawlerEngine:
    """BFS-based web crawler with parallel fetching."""

    def __init__(self, inputs: AuditInputs,
                 session: Optional[requests.Session] = None,
                 robots_disallow: Optional[List[str]] = None,
                 cancel_token: Optional[CancelToken] = None,
                 max_workers: int = CRAWL_WORKERS):
        self.inputs = inputs
        self.session = session or build_session(inputs.user_agent, pool_size=max(10, max_workers * 4))
        self.robots_disallow = list(robots_disallow or [])
        self.cancel_token = cancel_token or CancelToken()
        self.max_workers = max(1, max_workers)
        self.timeout = inputs.timeout_seconds

        self.allowed_hosts = resolve_allowed_hosts(inputs)
        self.focus_url = normalize_url(inputs.focus_url) if inputs.focus_url else None
        self.focus_key = visit_key(self.focus_url) if self.focus_url else None
        expands = inputs.coverage in ("surface", "full")
        self.focus_cap = FOCUS_NEIGHBORHOOD_CAP if (self.focus_url and expands) else 0
        self.crawl_limit = inputs.max_pages + self.focus_cap

        self.queue: Deque[Tuple[str, int]] = deque()
        self.visited: Set[str] = set()
        self.queued: Set[str] = set()
        self.seen_patterns: Set[str] = set()
        self.focus_neighborhood: Set[str] = set()
        self._lock = threading.Lock()
        self._attempts = 0

    # --- Filters ---

    def is_allowed(self, url: str) -> bool:
        return host_of(url) in self.allowed_hosts and not matches_any(url, self.inputs.exclude_patterns)

    def _in_focus_neighborhood(self, key: str) -> bool:
        return key == self.focus_key or key in self.focus_neighborhood

    def _passes_filters(self, url: str) -> bool:
        if not self.is_allowed(url) or not is_crawlable_url(url):
            return False
        return not (self.inputs.respect_robots and is_blocked_by_robots(url, self.robots_disallow))

    def _claim(self, url: str) -> bool:
        """Dequeue filter. Marks the URL visited when it is going to be fetched.

        A rejected URL leaves the queued set so a later focus link can still
        enqueue it.
        """
        key = visit_key(url)
        with self._lock:
            if key in self.visited:
                return False
            if not self.is_allowed(url):
                self.queued.discard(key)
                return False
            pattern = surface_pattern(url)
            if (self.inputs.coverage == "surface"
                    and pattern in self.seen_patterns
                    and not self._in_focus_neighborhood(key)):
                logger.debug(f"Surface sample already taken for {pattern}, skipping {url}")
                self.queued.discard(key)
                return False
            self.seen_patterns.add(pattern)
            self.visited.add(key)
            return True

    def _enqueue(self, url: str, depth: int, front: bool = False) -> bool:
        key = visit_key(url)
        with self._lock:
            if key in self.visited or key in self.queued:
                return False
        if not self._passes_filters(url):
            return False
        with self._lock:
            self.queued.add(key)
        if front:
            self.queue.appendleft((key, depth))
        else:
            self.queue.append((key, depth))
        return True

    def _promote(self, url: str, depth: int) -> None:
        """Enqueue at the front, moving the URL forward if it is already waiting."""
        key = visit_key(url)
        if key in self.queued and key not in self.visited:
            for entry in list(self.queue):
                if entry[0] == key:
                    self.queue.remove(entry)
                    self.queue.appendleft(entry)
                    return
        self._enqueue(key, depth, front=True)

    # --- Fetching ---

    def _fetch(self, url: str, depth: int) -> FetchOutcome:
        started = time.monotonic()
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.exceptions.SSLError as e:
            return None, self._error_event(url, depth, started, f"SSL error: {str(e)[:150]}"), []
        except requests.exceptions.Timeout:
            return None, self._error_event(url, depth, started, f"Timeout after {self.timeout:.1f}s"), []
        except requests.exceptions.TooManyRedirects:
            return None, self._error_event(url, depth, started, "Too many redirects"), []
        except requests.exceptions.ConnectionError as e:
            return None, self._error_event(url, depth, started, f"Connection error: {str(e)[:150]}"), []
        except requests.exceptions.RequestException as e:
            return None, self._error_event(url, depth, started, f"Request failed: {str(e)[:150]}"), []

        elapsed_ms = (time.monotonic() - started) * 1000
        final_url = normalize_url(resp.url or url) or url
        headers = {key.lower(): value for key, value in resp.headers.items()}
        content_type = headers.get("content-type", "")
        is_html = not content_type or any(kind in content_type.lower() for kind in HTML_CONTENT_TYPES)
        html = resp.text if is_html else ""

        page = CrawledPage(
            url=url,
            final_url=final_url,
            status=resp.status_code,
            depth=depth,
            content_type=content_type,
            response_headers=headers,
            html=html,
            response_ms=elapsed_ms,
        )
        event = CrawlEvent(kind="fetched", url=url, depth=depth, status=resp.status_code, elapsed_ms=elapsed_ms)
        links = collect_link_targets(html, final_url) if html else []
        return page, event, links

    @staticmethod
    def _error_event(url: str, depth: int, started: float, message: str) -> CrawlEvent:
        logger.warning(f"Fetch failed for {url}: {message}")
        return CrawlEvent(
            kind="fetch_error",
            url=url,
            depth=depth,
            elapsed_ms=(time.monotonic() - started) * 1000,
            error=message,
        )

    # --- Expansion ---

    def _expand(self, page: CrawledPage, links: List[str]) -> None:
        if self.inputs.coverage not in ("surface", "full"):
            return
        if page.depth >= self.inputs.crawl_depth:
            return

        next_depth = page.depth + 1
        is_focus_page = self.focus_key is not None and self.focus_key in (
            visit_key(page.url), visit_key(page.final_url)
        )
        if is_focus_page:
            forced = []
            for link in links:
                if len(forced) >= self.focus_cap:
                    break
                key = visit_key(link)
                if key == self.focus_key or key in forced or not self._passes_filters(key):
                    continue
                forced.append(key)
            with self._lock:
                self.focus_neighborhood.update(forced)
            # front of the queue, original order preserved
            for key in reversed(forced):
                self._promote(key, next_depth)

        for link in links:
            self._enqueue(link, next_depth)

    # --- Main loop ---

    def crawl(self, seeds: List[str],
              progress_callback: Optional[Callable[[dict], None]] = None) -> CrawlResult:
        """Run the BFS crawl over ``seeds`` and return every fetched page and event."""
        for seed in seeds:
            self._enqueue(seed, 0)
        if self.focus_url:
            self._promote(self.focus_url, 0)

        result = CrawlResult()
        fetched_ok = 0
        started = time.time()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            while self.queue and self._attempts < self.crawl_limit:
                self.cancel_token.raise_if_cancelled()

                batch: List[Tuple[str, int]] = []
                while self.queue and len(batch) < self.max_workers and self._attempts + len(batch) < self.crawl_limit:
                    url, depth = self.queue.popleft()
                    if self._claim(url):
                        batch.append((url, depth))
                if not batch:
                    continue
                self._attempts += len(batch)

                futures = [executor.submit(self._fetch, url, depth) for url, depth in batch]
                # results applied in submission order so the crawl is deterministic
                for future in futures:
                    page, event, links = future.result()
                    result.events.append(event)
                    if page is not None:
                        fetched_ok += 1
                        result.pages.append(page)
                        self._expand(page, links)

                    if progress_callback:
                        progress_callback({
                            "type": "page_done" if page is not None else "page_error",
                            "url": event.url,
                            "statusCode": event.status,
                            "pagesScanned": len(result.events),
                            "crawlLimit": self.crawl_limit,
                            "queueSize": len(self.queue),
                        })

        elapsed = time.time() - started
        logger.info(
            f"Crawl finished: {fetched_ok} pages fetched, "
            f"{len(result.events) - fetched_ok} errors, {elapsed:.1f}s"
        )
        if fetched_ok == 0:
            raise NoPagesCrawled(f"No pages could be fetched from {self.inputs.target}")
        return result
