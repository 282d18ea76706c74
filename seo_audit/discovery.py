"""
Seed discovery: start URL, robots.txt and sitemaps.

Every network step is best-effort; an unreachable robots.txt or sitemap is
treated as absent.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

import requests
from bs4 import BeautifulSoup

from .config import MAX_NESTED_SITEMAPS
from .models import AuditInputs, DiscoveredSeed, SeedDiscoveryResult
from .progress import CancelToken
from .robots import RobotsRules, parse_robots_txt
from .session import fetch_text
from .urls import clean_patterns, host_of, is_blocked_by_robots, matches_any, normalize_url

logger = logging.getLogger("seo_audit.discovery")


def parse_sitemap(xml: str) -> Tuple[bool, List[str]]:
    """(is_index, locs) with every <loc> normalized, unique and sorted."""
    soup = BeautifulSoup(xml, "lxml-xml")
    urls: Set[str] = set()
    for loc in soup.find_all("loc"):
        normalized = normalize_url(loc.get_text(strip=True))
        if normalized:
            urls.add(normalized)
    return soup.find("sitemapindex") is not None, sorted(urls)


def resolve_allowed_hosts(inputs: AuditInputs) -> Set[str]:
    """Configured allow-list, else the target host plus focus hosts."""
    if inputs.allowed_domains:
        return {domain.strip().lower() for domain in inputs.allowed_domains if domain.strip()}

    hosts = {host_of(inputs.target)}
    focus_urls = [inputs.focus.primary_url] if inputs.focus.primary_url else []
    focus_urls.extend(inputs.focus.secondary_urls)
    for focus_url in focus_urls:
        normalized = normalize_url(focus_url, inputs.target)
        if normalized:
            hosts.add(host_of(normalized))
    hosts.discard("")
    return hosts


def passes_seed_filters(url: str, inputs: AuditInputs, allowed_hosts: Set[str], robots_rules: List[str]) -> bool:
    if host_of(url) not in allowed_hosts:
        return False
    if matches_any(url, inputs.exclude_patterns):
        return False
    include = clean_patterns(inputs.include_patterns)
    if include and not matches_any(url, include):
        return False
    if inputs.respect_robots and is_blocked_by_robots(url, robots_rules):
        return False
    return True


class SeedDiscovery:
    """Resolves the initial crawl frontier for one audit."""

    def __init__(self, inputs: AuditInputs, session: requests.Session,
                 cancel_token: Optional[CancelToken] = None):
        self.inputs = inputs
        self.session = session
        self.cancel_token = cancel_token or CancelToken()
        self.timeout = inputs.timeout_seconds

    def fetch_robots(self, start_url: str) -> RobotsRules:
        if not self.inputs.respect_robots:
            return RobotsRules()
        robots_url = normalize_url("/robots.txt", start_url)
        text = fetch_text(self.session, robots_url, self.timeout)
        if not text:
            logger.info(f"robots.txt unavailable at {robots_url}")
            return RobotsRules()
        return parse_robots_txt(text)

    def candidate_sitemaps(self, start_url: str, robots: RobotsRules) -> List[Tuple[str, str]]:
        """(url, source) pairs: robots-declared, /sitemap.xml, configured; first source wins."""
        candidates: List[Tuple[str, str]] = []
        robots_urls = {normalize_url(raw, start_url) for raw in robots.sitemaps}
        for url in sorted(url for url in robots_urls if url):
            candidates.append((url, "robots_sitemap"))

        candidates.append((normalize_url("/sitemap.xml", start_url), "default_sitemap"))

        config_urls = {normalize_url(raw, start_url) for raw in clean_patterns(self.inputs.sitemap_urls)}
        for url in sorted(url for url in config_urls if url):
            candidates.append((url, "config_sitemap"))

        by_url: Dict[str, str] = {}
        for url, source in candidates:
            by_url.setdefault(url, source)
        return list(by_url.items())

    def collect_sitemap_urls(self, sitemaps: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        """Fetch each sitemap (following sitemap indexes) and return (page_url, source)."""
        found: List[Tuple[str, str]] = []
        pending = list(sitemaps)
        fetched: Set[str] = set()
        nested_budget = MAX_NESTED_SITEMAPS

        while pending:
            self.cancel_token.raise_if_cancelled()
            sitemap_url, source = pending.pop(0)
            if sitemap_url in fetched:
                continue
            fetched.add(sitemap_url)

            xml = fetch_text(self.session, sitemap_url, self.timeout)
            if not xml:
                logger.debug(f"Sitemap unavailable: {sitemap_url}")
                continue

            is_index, locs = parse_sitemap(xml)
            if is_index:
                children = []
                for child in locs:
                    if nested_budget <= 0:
                        logger.warning(f"Nested sitemap limit reached, skipping {child}")
                        break
                    nested_budget -= 1
                    children.append((child, source))
                # children before the remaining candidates so source precedence holds
                pending[0:0] = children
                continue

            found.extend((loc, source) for loc in locs)
        return found

    def discover(self) -> SeedDiscoveryResult:
        start_url = normalize_url(self.inputs.target)
        discovered: Dict[str, str] = {start_url: "start_url"}

        robots = self.fetch_robots(start_url)
        sitemaps = self.candidate_sitemaps(start_url, robots)
        entries = self.collect_sitemap_urls(sitemaps)

        allowed_hosts = resolve_allowed_hosts(self.inputs)
        kept = sorted({
            url for url, _ in entries
            if passes_seed_filters(url, self.inputs, allowed_hosts, robots.disallow)
        })
        kept_set = set(kept)
        for url, source in entries:
            if url in kept_set:
                discovered.setdefault(url, source)

        tail = sorted(url for url in discovered if url != start_url)
        seeds = [start_url] + tail
        if self.inputs.coverage == "quick":
            seeds = seeds[:max(1, self.inputs.max_pages)]
        seed_set = set(seeds)

        logger.info(
            f"Discovered {len(discovered)} URLs from {len(sitemaps)} sitemap candidates, "
            f"{len(seeds)} seeds kept"
        )
        return SeedDiscoveryResult(
            seeds=seeds,
            discovered=[
                DiscoveredSeed(url=url, source=source)
                for url, source in sorted(discovered.items())
                if url in seed_set
            ],
            robots_disallow=list(robots.disallow),
            sitemap_urls_checked=[url for url, _ in sitemaps],
            sitemap_page_urls=kept,
        )


def discover_seeds(inputs: AuditInputs, session: requests.Session,
                   cancel_token: Optional[CancelToken] = None) -> SeedDiscoveryResult:
    return SeedDiscovery(inputs, session, cancel_token).discover()
