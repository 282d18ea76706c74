"""HTTP status and redirect-chain probes used by the link-health rules."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests

from .config import HTTP_STATUS_CONCURRENCY, MAX_REDIRECT_HOPS, REDIRECT_CHAIN_CONCURRENCY
from .progress import CancelToken
from .urls import normalize_url

logger = logging.getLogger("seo_audit.link_checker")


@dataclass(frozen=True)
class LinkStatus:
    status: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not None and self.status < 400


class LinkStatusChecker:
    """HEAD-then-GET status resolver with a per-instance result cache.

    A URL is requested at most once for the lifetime of the checker, even
    when several threads ask for it concurrently.
    """

    def __init__(self, session: requests.Session, timeout: float,
                 cancel_token: Optional[CancelToken] = None,
                 max_workers: int = HTTP_STATUS_CONCURRENCY):
        self.session = session
        self.timeout = timeout
        self.cancel_token = cancel_token or CancelToken()
        self.max_workers = max_workers
        self._cache: Dict[str, "Future[LinkStatus]"] = {}
        self._lock = threading.Lock()
        self.requests_made = 0

    def _fetch_status(self, url: str) -> LinkStatus:
        with self._lock:
            self.requests_made += 1
        try:
            head = self.session.head(url, timeout=self.timeout, allow_redirects=True)
            if head.status_code < 400:
                return LinkStatus(status=head.status_code)
        except requests.exceptions.RequestException as e:
            logger.debug(f"HEAD failed for {url}: {e}")

        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True, stream=True)
            resp.close()
            return LinkStatus(status=resp.status_code)
        except requests.exceptions.RequestException as e:
            return LinkStatus(error=str(e)[:200] or e.__class__.__name__)

    def status(self, url: str) -> LinkStatus:
        with self._lock:
            entry = self._cache.get(url)
            owner = entry is None
            if owner:
                entry = Future()
                self._cache[url] = entry
        if owner:
            try:
                entry.set_result(self._fetch_status(url))
            except Exception as e:
                entry.set_exception(e)
        return entry.result()

    def check_many(self, urls: Iterable[str]) -> Dict[str, LinkStatus]:
        unique = sorted(set(urls))
        if not unique:
            return {}
        self.cancel_token.raise_if_cancelled()
        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(unique)))) as executor:
            results = list(executor.map(self.status, unique))
        return dict(zip(unique, results))

    def redirect_chain_length(self, url: str, max_hops: int = MAX_REDIRECT_HOPS) -> int:
        """Number of redirect hops following Location headers manually."""
        hops = 0
        current = url
        seen = set()
        while hops < max_hops and current not in seen:
            seen.add(current)
            try:
                resp = self.session.head(current, timeout=self.timeout, allow_redirects=False)
            except requests.exceptions.RequestException as e:
                logger.debug(f"Redirect probe failed at {current}: {e}")
                return hops
            if not 300 <= resp.status_code < 400:
                return hops
            location = resp.headers.get("location")
            next_url = normalize_url(location, current) if location else None
            if not next_url:
                return hops
            current = next_url
            hops += 1
        return hops

    def redirect_chains(self, urls: List[str]) -> Dict[str, int]:
        if not urls:
            return {}
        self.cancel_token.raise_if_cancelled()
        with ThreadPoolExecutor(max_workers=max(1, min(REDIRECT_CHAIN_CONCURRENCY, len(urls)))) as executor:
            lengths = list(executor.map(self.redirect_chain_length, urls))
        return dict(zip(urls, lengths))
