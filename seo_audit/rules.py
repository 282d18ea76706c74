"""
Rule engine: turns enriched page extracts into a sorted list of Issues.

Per-page checks live in PageRules (one method per check), cross-page checks
in SiteRules. Every check runs isolated so one failing check never hides
the findings of the others.
"""

import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .config import (
    DESC_BAND, FOCUS_INLINKS_THRESHOLD, THIN_CONTENT_WORDS, TITLE_BAND,
    TTFB_CRITICAL_MS, TTFB_WARNING_MS,
)
from .errors import AuditCancelled
from .extractor import ORG_TYPES, has_schema_type, iter_schema_objects
from .link_checker import LinkStatusChecker
from .link_graph import AnchorStats, LinkGraph, build_link_graph
from .models import SEVERITY_ORDER, AuditInputs, Evidence, Issue, PageExtract
from .progress import CancelToken
from .text import jaccard_similarity, normalize_for_compare, normalize_text
from .urls import (
    alias_key, canonical_or_self, is_blocked_by_robots, is_homepage,
    is_http_url, path_depth, strip_fragment, unique_sorted,
)

logger = logging.getLogger("seo_audit.rules")

NOINDEX_RE = re.compile(r"(^|[\s,;])noindex([\s,;]|$)", re.IGNORECASE)
CHUNK_SPLIT_RE = re.compile(r"\n{2,}|(?<=[.?!])\s+")

TITLE_H1_MIN_SIMILARITY = 0.25
HEADING_DUP_SIMILARITY = 0.85
SPAMMY_REPEAT_COUNT = 4
SPAMMY_REPEAT_RATIO = 0.22
DUPLICATE_CHUNK_MIN_CHARS = 80
DUPLICATE_CHUNK_LIMIT = 8
NAV_ONLY_RATIO = 0.5
FOCUS_WEAK_ANCHOR_RATIO = 0.4
SITEMAP_EVIDENCE_LIMIT = 10


# === CONTEXT ===

@dataclass
class RuleContext:
    """Everything the checks need besides the pages themselves."""
    robots_disallow: List[str] = field(default_factory=list)
    timeout: float = 10.0
    focus_url: Optional[str] = None
    sitemap_urls: List[str] = field(default_factory=list)
    focus_inlinks_threshold: int = FOCUS_INLINKS_THRESHOLD
    min_words: int = THIN_CONTENT_WORDS
    generic_anchors: Optional[Tuple[str, ...]] = None
    include_serp: bool = True
    checker: Optional[LinkStatusChecker] = None
    cancel_token: CancelToken = field(default_factory=CancelToken)

    @classmethod
    def from_inputs(cls, inputs: AuditInputs, robots_disallow: Iterable[str] = (),
                    sitemap_urls: Iterable[str] = (),
                    checker: Optional[LinkStatusChecker] = None,
                    cancel_token: Optional[CancelToken] = None) -> "RuleContext":
        return cls(
            robots_disallow=list(robots_disallow),
            timeout=inputs.timeout_seconds,
            focus_url=inputs.focus_url,
            sitemap_urls=list(sitemap_urls),
            focus_inlinks_threshold=inputs.focus_inlinks_threshold,
            min_words=inputs.min_words,
            generic_anchors=inputs.generic_anchors,
            include_serp=inputs.include_serp,
            checker=checker,
            cancel_token=cancel_token or CancelToken(),
        )


# === HELPERS ===

def make_issue(issue_id: str, category: str, severity: str, rank: int, title: str,
               description: str, affected_urls: Iterable[str], evidence: Iterable[Evidence],
               recommendation: str) -> Issue:
    return Issue(
        id=issue_id,
        category=category,
        severity=severity,
        rank=rank,
        title=title,
        description=description,
        affected_urls=tuple(unique_sorted(affected_urls)),
        evidence=tuple(evidence),
        recommendation=recommendation,
    )


def has_noindex(value: Optional[str]) -> bool:
    return bool(value and NOINDEX_RE.search(value))


def length_severity(length: int, band: Tuple[int, int, int, int]) -> Optional[str]:
    """None inside the soft band, warning between bands, error outside the hard band."""
    soft_min, soft_max, hard_min, hard_max = band
    if length < hard_min or length > hard_max:
        return "error"
    if length < soft_min or length > soft_max:
        return "warning"
    return None


def has_heading_skip(page: PageExtract) -> bool:
    levels = [heading.level for heading in page.headings]
    return any(current - previous > 1 for previous, current in zip(levels, levels[1:]))


def top_keyword_repeat(text: str) -> Tuple[str, int, float]:
    tokens = [token for token in normalize_for_compare(text).split(" ") if len(token) >= 3]
    if not tokens:
        return "", 0, 0.0
    histogram = Counter(tokens)
    token, count = min(histogram.items(), key=lambda item: (-item[1], item[0]))
    return token, count, count / len(tokens)


def text_chunks(main_text: str) -> List[str]:
    chunks = (normalize_for_compare(chunk) for chunk in CHUNK_SPLIT_RE.split(main_text or ""))
    return [chunk for chunk in chunks if len(chunk) >= DUPLICATE_CHUNK_MIN_CHARS]


def build_status_map(pages: Iterable[PageExtract]) -> Dict[str, int]:
    statuses: Dict[str, int] = {}
    for page in pages:
        statuses[canonical_or_self(page.url)] = page.status
        statuses[canonical_or_self(page.final_url)] = page.status
    return statuses


def _is_incomplete_org(record: dict) -> bool:
    has_name = isinstance(record.get("name"), str) and bool(normalize_text(record["name"]))
    has_url = isinstance(record.get("url"), str) and bool(normalize_text(record["url"]))
    logo = record.get("logo")
    has_logo = isinstance(logo, str) or isinstance(logo, dict)
    return not (has_name and has_url and has_logo)


def _is_invalid_breadcrumb(record: dict) -> bool:
    elements = record.get("itemListElement")
    if not isinstance(elements, list) or not elements:
        return True
    for element in elements:
        if not isinstance(element, dict):
            return True
        embedded = element.get("item")
        has_name = isinstance(element.get("name"), str) or (
            isinstance(embedded, dict) and isinstance(embedded.get("name"), str)
        )
        has_url = isinstance(embedded, str) or (
            isinstance(embedded, dict) and isinstance(embedded.get("url"), str)
        )
        if not (has_name and has_url):
            return True
    return False


def run_isolated(name: str, check: Callable[[], None]) -> None:
    """Run one check; failures are logged and swallowed, cancellation is not."""
    try:
        check()
    except AuditCancelled:
        raise
    except Exception:
        logger.exception(f"Rule check {name} failed, continuing with the remaining checks")


# === PAGE RULES ===

class PageRules:
    """Performs all per-page checks."""

    CHECKS = (
        "_check_serp",
        "_check_title",
        "_check_description",
        "_check_headings",
        "_check_canonical",
        "_check_indexability",
        "_check_content",
        "_check_images",
        "_check_schema",
        "_check_security",
        "_check_a11y",
        "_check_performance",
        "_check_internal_links",
    )

    def __init__(self, page: PageExtract, context: RuleContext, anchor_stats: Optional[AnchorStats] = None):
        self.page = page
        self.context = context
        self.anchor_stats = anchor_stats or AnchorStats()
        self.issues: List[Issue] = []

    def add_issue(self, issue_id: str, category: str, severity: str, rank: int, title: str,
                  description: str, message: str, recommendation: str,
                  evidence_type: str = "content", details: Optional[dict] = None,
                  evidence: Optional[List[Evidence]] = None):
        if evidence is None:
            evidence = [Evidence(type=evidence_type, message=message, url=self.page.url, details=details)]
        self.issues.append(make_issue(
            issue_id, category, severity, rank, title, description,
            [self.page.url], evidence, recommendation,
        ))

    def analyze_all(self) -> List[Issue]:
        if not self.page.is_ok:
            self.add_issue(
                "page_not_available", "indexability", "warning", 8,
                "Page is not available for indexing",
                "URL returned a non-2xx status, so on-page SEO checks were skipped.",
                f"Status code is {self.page.status}.",
                "If this URL should rank, restore it with HTTP 200. If it was removed on purpose, "
                "point internal links, sitemap entries and canonicals at live pages.",
                evidence_type="http",
            )
            return self.issues

        for name in self.CHECKS:
            run_isolated(f"{name[len('_check_'):]} on {self.page.url}", getattr(self, name))
        return self.issues

    # --- Individual checks ---

    def _check_serp(self):
        if not self.context.include_serp:
            return
        page = self.page
        h1_texts = page.h1_texts
        h1_text = h1_texts[0] if h1_texts else ""
        title = normalize_text(page.title_text)

        if h1_text and title:
            similarity = jaccard_similarity(title, h1_text)
            if similarity < TITLE_H1_MIN_SIMILARITY:
                self.add_issue(
                    "title_h1_mismatch", "serp", "warning", 6,
                    "Title and H1 semantic mismatch",
                    "Title and H1 likely target a different intent or topic.",
                    f"Similarity score: {round(similarity * 100)}%.",
                    "Align <title> and H1 around the same primary intent and phrasing.",
                    details={"title": title, "h1": h1_text},
                )

        first_two = [heading.text for heading in page.headings[:2]]
        heading_similarity = jaccard_similarity(*first_two) if len(first_two) == 2 else 0.0
        if len(h1_texts) > 1 or heading_similarity >= HEADING_DUP_SIMILARITY:
            if len(h1_texts) > 1:
                message = f"Detected {len(h1_texts)} H1 headings."
            else:
                message = f"First heading similarity is {round(heading_similarity * 100)}%."
            self.add_issue(
                "title_overwrite_risk", "serp", "notice", 3,
                "Potential title rewrite risk",
                "Heading structure may increase the risk of the search snippet title being rewritten.",
                message,
                "Use one clear H1 and reduce near-duplicate heading fragments above the fold.",
            )

    def _check_title(self):
        title = normalize_text(self.page.title)
        if not title:
            self.add_issue(
                "missing_title", "seo", "error", 9,
                "Missing <title>",
                "Page does not define a title tag.",
                "No <title> text extracted.",
                "Add a unique, descriptive <title> tag.",
            )
            return

        severity = length_severity(len(title), TITLE_BAND)
        if severity:
            soft_min, soft_max = TITLE_BAND[0], TITLE_BAND[1]
            self.add_issue(
                "title_length_out_of_range", "seo", severity, 6,
                "Title length out of range",
                f"Title length should be between {soft_min} and {soft_max} characters.",
                f"Title length is {len(title)}.",
                "Adjust title length to keep it concise and descriptive.",
            )

    def _check_description(self):
        if not self.context.include_serp:
            return
        description = normalize_text(self.page.meta_description)
        if not description:
            self.add_issue(
                "meta_description_missing", "serp", "warning", 5,
                "Meta description missing",
                "Page does not define a meta description.",
                "No meta description extracted.",
                "Add a concise meta description aligned with search intent.",
            )
            return

        severity = length_severity(len(description), DESC_BAND)
        if severity:
            soft_min, soft_max = DESC_BAND[0], DESC_BAND[1]
            self.add_issue(
                "description_length_out_of_range", "serp", severity, 4,
                "Description length out of range",
                f"Meta description length should be between {soft_min} and {soft_max} characters.",
                f"Description length is {len(description)}.",
                "Adjust description length to improve snippet quality.",
            )

        token, count, ratio = top_keyword_repeat(description)
        if count >= SPAMMY_REPEAT_COUNT or ratio >= SPAMMY_REPEAT_RATIO:
            self.add_issue(
                "meta_description_spammy", "serp", "notice", 3,
                "Meta description may look spammy",
                "Meta description has unusually repetitive keyword usage.",
                f'Top token "{token}" repeats {count} times ({round(ratio * 100)}%).',
                "Rewrite the description in natural language with less repetition.",
            )

    def _check_headings(self):
        h1_count = len(self.page.h1_texts)
        if h1_count == 0:
            self.add_issue(
                "missing_h1", "content", "warning", 6,
                "Missing H1 heading",
                "Page does not include an H1 heading.",
                "No heading level=1 found.",
                "Add a single H1 that reflects the page topic.",
            )
        elif h1_count > 1:
            self.add_issue(
                "multiple_h1", "content", "warning", 5,
                "Multiple H1 headings",
                "Page has more than one H1 heading.",
                f"Detected {h1_count} H1 headings.",
                "Use one H1 and move additional section titles to H2/H3.",
            )

        if has_heading_skip(self.page):
            self.add_issue(
                "heading_level_skips", "content", "notice", 3,
                "Heading level skips detected",
                "Heading levels skip hierarchy steps (e.g. H2 to H4).",
                "Outline contains heading level jumps.",
                "Keep a consistent heading hierarchy for readability and structure.",
            )

    def _check_canonical(self):
        page = self.page
        if not page.canonical:
            self.add_issue(
                "missing_canonical", "seo", "notice", 4,
                "Missing canonical URL",
                "Page does not define rel=canonical.",
                "No canonical tag extracted.",
                "Add rel=canonical pointing to the preferred URL.",
            )
            return

        resolved = page.canonical_url or page.canonical
        if canonical_or_self(resolved) != canonical_or_self(page.final_url):
            self.add_issue(
                "canonical_mismatch", "seo", "warning", 6,
                "Canonical mismatch",
                "Canonical URL differs from the fetched final URL.",
                f"Canonical points to {resolved}.",
                "Align the canonical URL with the intended primary URL.",
            )

    def _check_indexability(self):
        page = self.page
        meta_noindex = has_noindex(page.meta_robots)
        header_noindex = has_noindex(page.x_robots_tag)
        robots_blocked = is_blocked_by_robots(page.url, self.context.robots_disallow)

        if meta_noindex:
            self.add_issue(
                "meta_noindex", "indexability", "error", 10,
                "Meta robots contains noindex",
                "Page is marked as non-indexable by meta robots.",
                "Detected noindex token in robots meta.",
                "Remove noindex if the page should appear in search results.",
            )

        if robots_blocked:
            self.add_issue(
                "blocked_by_robots", "indexability", "warning", 7,
                "Blocked by robots.txt",
                "URL appears blocked by robots.txt disallow rules.",
                "Matched robots disallow rule.",
                "Adjust robots rules if this URL should be crawlable.",
                evidence_type="http",
            )

        if page.meta_robots and page.x_robots_tag and meta_noindex != header_noindex:
            self.add_issue(
                "robots_meta_xrobots_conflict", "indexation_conflicts", "warning", 8,
                "Meta robots and X-Robots-Tag conflict",
                "Meta robots and the X-Robots-Tag header send conflicting indexation directives.",
                f'metaRobots="{page.meta_robots}", xRobotsTag="{page.x_robots_tag}"',
                "Align meta robots and X-Robots-Tag to a single indexation intent.",
                evidence_type="http",
            )

        if not meta_noindex and page.status != 200:
            self.add_issue(
                "non_200_indexable", "indexability", "warning", 7,
                "Indexable page is not HTTP 200",
                "Page appears indexable but returns a non-200 status.",
                f"Status code is {page.status}.",
                "Serve indexable pages with HTTP 200.",
                evidence_type="http",
            )

        if page.schema_types and (meta_noindex or header_noindex or robots_blocked):
            self.add_issue(
                "schema_blocked_or_noindex_conflict", "schema_quality", "notice", 4,
                "Schema present on blocked/noindex page",
                "Structured data is present, but the page is blocked or marked noindex.",
                f"schemaTypes={', '.join(page.schema_types)}",
                "Resolve indexation status first or limit schema to pages intended for indexing.",
                evidence_type="schema",
            )

    def _check_content(self):
        threshold = self.context.min_words
        if self.page.word_count_main < threshold:
            self.add_issue(
                "thin_content", "content_quality", "warning", 5,
                "Thin main content",
                "Main content appears too short for the page to rank on its own.",
                f"wordCountMain={self.page.word_count_main}, threshold={threshold}.",
                "Expand core content with concrete, intent-aligned sections and examples.",
            )

    def _check_images(self):
        page = self.page
        if page.images_missing_alt > 0:
            self.add_issue(
                "images_missing_alt", "content", "warning", 5,
                "Images missing alt text",
                "Page has images without alt attributes.",
                f"{page.images_missing_alt} images missing alt text.",
                "Add descriptive alt text to important images.",
            )
        if page.large_image_candidates:
            self.add_issue(
                "large_images", "performance", "notice", 3,
                "Large images detected",
                "Images declare very large dimensions and may slow down rendering.",
                f"{len(page.large_image_candidates)} images at or above one megapixel.",
                "Serve resized, compressed images with responsive srcset variants.",
                evidence_type="performance",
                details={"images": list(page.large_image_candidates)},
            )

    def _check_schema(self):
        page = self.page
        if page.schema_errors:
            self.add_issue(
                "invalid_jsonld", "schema", "warning", 7,
                "Invalid JSON-LD detected",
                "At least one JSON-LD block could not be parsed.",
                "",
                "Fix JSON syntax and validate structured data.",
                evidence=[
                    Evidence(type="schema", message=error.message, url=page.url, details={"pointer": error.pointer})
                    for error in page.schema_errors
                ],
            )

        if not any(schema_type in ORG_TYPES for schema_type in page.schema_types):
            self.add_issue(
                "missing_org_schema", "schema", "notice", 3,
                "Missing organization schema",
                "Organization-like schema was not detected.",
                "No Organization/LocalBusiness schema type found.",
                "Add Organization or LocalBusiness structured data where relevant.",
                evidence_type="schema",
            )

        depth = path_depth(page.final_url)
        if depth >= 2 and "BreadcrumbList" not in page.schema_types:
            self.add_issue(
                "missing_breadcrumb_schema", "schema", "notice", 2,
                "Missing breadcrumb schema on deep page",
                "Deep page does not expose BreadcrumbList schema.",
                f"Path depth is {depth}.",
                "Add BreadcrumbList schema for deeper content pages.",
                evidence_type="schema",
            )

        objects = list(iter_schema_objects(page.jsonld_parsed))
        incomplete = [
            record for record in objects
            if any(has_schema_type(record, org_type) for org_type in ORG_TYPES) and _is_incomplete_org(record)
        ]
        if incomplete:
            self.add_issue(
                "org_schema_incomplete", "schema_quality", "notice", 4,
                "Organization schema is incomplete",
                "Organization/LocalBusiness schema is missing required minimum fields.",
                f"Incomplete org-like schema blocks: {len(incomplete)}.",
                "Add minimum fields: name, url, logo for organization-like schema objects.",
                evidence_type="schema",
            )

        invalid_breadcrumbs = [
            record for record in objects
            if has_schema_type(record, "BreadcrumbList") and _is_invalid_breadcrumb(record)
        ]
        if invalid_breadcrumbs:
            self.add_issue(
                "breadcrumb_schema_invalid", "schema_quality", "warning", 6,
                "Breadcrumb schema appears invalid",
                "BreadcrumbList schema is missing required item chain fields.",
                f"Invalid BreadcrumbList blocks: {len(invalid_breadcrumbs)}.",
                "Provide a complete itemListElement chain with url and name per breadcrumb item.",
                evidence_type="schema",
            )

    def _check_security(self):
        page = self.page
        if not page.is_https:
            self.add_issue(
                "https_missing", "security", "error", 8,
                "HTTPS missing",
                "Page is served over a non-HTTPS URL.",
                "Final URL is not HTTPS.",
                "Redirect traffic to HTTPS and enforce secure transport.",
                evidence_type="security",
            )

        if page.mixed_content_candidates:
            self.add_issue(
                "mixed_content", "security", "warning", 6,
                "Mixed content candidates detected",
                "HTTPS page references HTTP assets.",
                "",
                "Serve all assets via HTTPS.",
                evidence=[
                    Evidence(type="security", message=f"HTTP asset: {candidate}", url=page.url)
                    for candidate in page.mixed_content_candidates
                ],
            )

        if page.security_headers_missing:
            self.add_issue(
                "missing_security_headers", "security", "warning", 5,
                "Missing security headers",
                "One or more recommended security headers are missing.",
                f"Missing headers: {', '.join(page.security_headers_missing)}",
                "Add baseline security headers at the server or CDN layer.",
                evidence_type="security",
            )

    def _check_a11y(self):
        page = self.page
        if not normalize_text(page.html_lang):
            self.add_issue(
                "missing_html_lang", "a11y", "notice", 2,
                "Missing html[lang]",
                "The root <html> element does not declare a language.",
                "html[lang] is missing or empty.",
                "Set html[lang] to the primary language of the page content.",
            )
        if page.links_without_accessible_name > 0:
            self.add_issue(
                "links_without_accessible_name", "a11y", "notice", 2,
                "Links without accessible name",
                "One or more links are missing visible text and accessibility labels.",
                f"Count: {page.links_without_accessible_name}.",
                "Add descriptive anchor text or aria-label/title for unlabeled links.",
            )

    def _check_performance(self):
        page = self.page
        response_ms = page.response_ms
        if response_ms is not None and response_ms > TTFB_WARNING_MS:
            severity = "error" if response_ms > TTFB_CRITICAL_MS else "warning"
            self.add_issue(
                "slow_response", "performance", severity, 5,
                "Slow server response",
                f"The page took longer than {TTFB_WARNING_MS} ms to respond.",
                f"Response time is {round(response_ms)} ms.",
                "Reduce server response time with caching, a CDN or lighter backend work.",
                evidence_type="performance",
            )

        metrics = page.performance
        if metrics is not None and not metrics.is_good():
            self.add_issue(
                "core_web_vitals_poor", "performance", "warning", 7,
                "Core Web Vitals below recommended thresholds",
                "Measured LCP, INP or CLS exceeds the good thresholds (2500 ms, 200 ms, 0.1).",
                f"LCP={metrics.lcp_ms}, INP={metrics.inp_ms}, CLS={metrics.cls}.",
                "Optimize the largest contentful element, main-thread work and layout stability.",
                evidence_type="performance",
                details=metrics.to_dict(),
            )

    def _check_internal_links(self):
        page = self.page
        if not is_homepage(page.final_url):
            if page.inlinks_count == 0:
                self.add_issue(
                    "orphan_page", "internal_links", "warning", 6,
                    "Orphan page",
                    "Page has no internal inlinks.",
                    "inlinksCount is 0.",
                    "Add contextual internal links from relevant pages.",
                    evidence_type="link",
                )
            elif page.inlinks_count <= 1:
                self.add_issue(
                    "near_orphan_page", "internal_links", "notice", 4,
                    "Near-orphan page",
                    "Page has one or fewer internal inlinks.",
                    f"inlinksCount is {page.inlinks_count}.",
                    "Increase internal link support with intent-relevant anchors.",
                    evidence_type="link",
                )

        stats = self.anchor_stats
        if stats.total > 0 and stats.nav_ratio > NAV_ONLY_RATIO:
            self.add_issue(
                "excessive_nav_only_inlinks", "internal_links", "notice", 3,
                "Inlinks are mostly navigation/footer links",
                "Most inlinks to this page come from nav, header or footer placements.",
                f"navLikelyInlinks={stats.nav_likely}/{stats.total}.",
                "Add contextual in-content links from semantically related pages.",
                evidence_type="link",
            )


# === SITE RULES ===

class SiteRules:
    """Cross-page checks: duplicates, focus support, canonicals and link health."""

    CHECKS = (
        "_check_duplicate_titles",
        "_check_duplicate_blocks",
        "_check_focus",
        "_check_canonical_targets",
        "_check_sitemap_canonicals",
        "_check_duplicate_descriptions",
        "_check_broken_internal_links",
        "_check_broken_external_links",
        "_check_redirect_chains",
    )

    def __init__(self, pages: List[PageExtract], context: RuleContext, graph: LinkGraph):
        self.pages = pages
        self.ok_pages = [page for page in pages if page.is_ok]
        self.context = context
        self.graph = graph
        self.status_map = build_status_map(pages)
        self.issues: List[Issue] = []

    def analyze_all(self) -> List[Issue]:
        for name in self.CHECKS:
            self.context.cancel_token.raise_if_cancelled()
            run_isolated(name[len("_check_"):], getattr(self, name))
        return self.issues

    def _duplicates(self, value_of: Callable[[PageExtract], Optional[str]]) -> List[Tuple[str, List[str]]]:
        """Groups of (value, final URLs) shared by at least two distinct final URLs."""
        groups: Dict[str, Dict[str, str]] = defaultdict(dict)
        for page in self.ok_pages:
            value = normalize_text(value_of(page))
            if not value:
                continue
            groups[value].setdefault(alias_key(page.final_url), page.final_url)
        return [
            (value, sorted(members.values()))
            for value, members in sorted(groups.items())
            if len(members) >= 2
        ]

    def _check_duplicate_titles(self):
        for value, urls in self._duplicates(lambda page: page.title):
            self.issues.append(make_issue(
                "duplicate_title", "seo", "warning", 7,
                "Duplicate titles detected",
                "Multiple pages share identical title text.",
                urls,
                [Evidence(type="content", message=f"Duplicate title found on {len(urls)} pages.",
                          details={"duplicate_value": value})],
                "Make each page title unique and intent-specific.",
            ))

    def _check_duplicate_descriptions(self):
        if not self.context.include_serp:
            return
        for value, urls in self._duplicates(lambda page: page.meta_description):
            self.issues.append(make_issue(
                "meta_description_duplicate", "serp", "notice", 4,
                "Duplicate meta descriptions",
                "Multiple pages share identical meta description text.",
                urls,
                [Evidence(type="content", message=f"Duplicate description found on {len(urls)} pages.",
                          details={"duplicate_value": value})],
                "Use unique descriptions per page.",
            ))

    def _check_duplicate_blocks(self):
        chunk_urls: Dict[str, Dict[str, str]] = defaultdict(dict)
        for page in self.ok_pages:
            for chunk in text_chunks(page.main_text):
                chunk_urls[chunk].setdefault(alias_key(page.final_url), page.final_url)

        shared = sorted(
            ((chunk, sorted(members.values())) for chunk, members in chunk_urls.items() if len(members) >= 2),
            key=lambda item: (-len(item[1]), item[0]),
        )[:DUPLICATE_CHUNK_LIMIT]
        if not shared:
            return
        self.issues.append(make_issue(
            "duplicate_blocks_across_pages", "content_quality", "notice", 3,
            "Repeated content blocks across pages",
            "Similar long text blocks appear on multiple pages.",
            [url for _, urls in shared for url in urls],
            [
                Evidence(type="content", message=f"Shared block across {len(urls)} pages.",
                         details={"sample_text": chunk[:180], "urls": urls})
                for chunk, urls in shared
            ],
            "Differentiate core paragraphs per page intent to avoid template duplication.",
        ))

    def _focus_page(self) -> Optional[PageExtract]:
        if not self.context.focus_url:
            return None
        focus_key = canonical_or_self(self.context.focus_url)
        for page in self.ok_pages:
            if canonical_or_self(page.final_url) == focus_key:
                return page
        return None

    def _check_focus(self):
        page = self._focus_page()
        if page is None:
            return

        threshold = self.context.focus_inlinks_threshold
        if page.inlinks_count < threshold:
            self.issues.append(make_issue(
                "focus_inlinks_count_low", "internal_links", "warning", 7,
                "Focus page has low inlink count",
                "Focus URL has fewer internal inlinks than the recommended baseline.",
                [page.url],
                [Evidence(type="link", message=f"inlinksCount={page.inlinks_count}, threshold={threshold}.",
                          url=page.url)],
                "Add contextual internal links to the focus URL from relevant high-value pages.",
            ))

        stats = self.graph.anchor_stats.get(canonical_or_self(page.final_url))
        if stats and stats.total > 0 and stats.weak_ratio > FOCUS_WEAK_ANCHOR_RATIO:
            weak = stats.generic + stats.empty
            self.issues.append(make_issue(
                "focus_anchor_quality_low", "internal_links", "warning", 6,
                "Focus page anchor quality is low",
                "Generic or empty anchors dominate inlinks to the focus URL.",
                [page.url],
                [Evidence(type="link", message=f"generic+empty={weak}/{stats.total}.", url=page.url)],
                "Improve anchor specificity around topic and user intent.",
            ))

    def _check_canonical_targets(self):
        known: Dict[str, Optional[int]] = {}
        unknown: List[str] = []
        for page in self.ok_pages:
            if not page.canonical_url or page.canonical_url in known or page.canonical_url in unknown:
                continue
            status = self.status_map.get(canonical_or_self(page.canonical_url))
            if status is None:
                unknown.append(page.canonical_url)
            else:
                known[page.canonical_url] = status

        checker = self.context.checker
        if unknown and checker is not None:
            for url, result in checker.check_many(unknown).items():
                known[url] = result.status

        for canonical_url in sorted(known):
            status = known[canonical_url]
            if status is not None and 200 <= status < 300:
                continue
            affected = [page.url for page in self.ok_pages if page.canonical_url == canonical_url]
            self.issues.append(make_issue(
                "canonical_to_non_200", "indexation_conflicts", "warning", 7,
                "Canonical points to non-200 URL",
                "Canonical target URL is not returning HTTP 200.",
                affected,
                [Evidence(type="http", target_url=canonical_url, status=status,
                          message=f"Canonical {canonical_url} status={status if status is not None else 'unreachable'}.")],
                "Update the canonical to a stable, indexable 200 URL.",
            ))

    def _check_sitemap_canonicals(self):
        sitemap_keys = {canonical_or_self(url) for url in self.context.sitemap_urls}
        if not sitemap_keys:
            return
        conflicts = []
        for page in self.ok_pages:
            page_key = canonical_or_self(page.final_url)
            if page_key in sitemap_keys and page.canonical_url and canonical_or_self(page.canonical_url) != page_key:
                conflicts.append(page)
        if not conflicts:
            return
        conflicts.sort(key=lambda page: page.url)
        self.issues.append(make_issue(
            "sitemap_contains_non_canonical", "indexation_conflicts", "notice", 4,
            "Sitemap contains non-canonical URLs",
            "Some sitemap URLs canonicalize to a different destination.",
            [page.url for page in conflicts],
            [
                Evidence(type="http", message=f"Sitemap URL canonicalizes to {page.canonical_url}.",
                         url=page.url, target_url=page.canonical_url)
                for page in conflicts[:SITEMAP_EVIDENCE_LIMIT]
            ],
            "Align sitemap entries with canonical destinations.",
        ))

    def _broken_links(self, internal: bool) -> List[Evidence]:
        failures: List[Evidence] = []
        remote: List[Tuple[str, str]] = []
        for page in self.pages:
            targets = page.internal_targets if internal else page.external_targets
            for raw_target in targets:
                if not is_http_url(raw_target):
                    continue
                target = strip_fragment(raw_target)
                if is_blocked_by_robots(target, self.context.robots_disallow):
                    continue
                status = self.status_map.get(canonical_or_self(target)) if internal else None
                if status is not None:
                    if status >= 400:
                        failures.append(Evidence(type="link", message=f"Status {status}",
                                                 source_url=page.url, target_url=target, status=status))
                    continue
                remote.append((page.url, target))

        checker = self.context.checker
        if remote and checker is not None:
            results = checker.check_many(target for _, target in remote)
            for source, target in remote:
                result = results[target]
                if result.ok:
                    continue
                failures.append(Evidence(
                    type="link",
                    message=result.error or f"Status {result.status}",
                    source_url=source,
                    target_url=target,
                    status=result.status,
                ))

        unique: Dict[Tuple[str, str], Evidence] = {}
        for item in failures:
            unique.setdefault((item.source_url, item.target_url), item)
        return [unique[key] for key in sorted(unique)]

    def _check_broken_internal_links(self):
        failures = self._broken_links(internal=True)
        if failures:
            self.issues.append(make_issue(
                "broken_internal_links", "technical", "error", 8,
                "Broken internal links",
                "Some internal links resolve to errors or unreachable targets.",
                [item.source_url for item in failures],
                failures,
                "Fix or remove broken internal links.",
            ))

    def _check_broken_external_links(self):
        failures = self._broken_links(internal=False)
        if failures:
            self.issues.append(make_issue(
                "broken_external_links", "technical", "warning", 6,
                "Broken external links",
                "Some outbound links return errors or time out.",
                [item.source_url for item in failures],
                failures,
                "Update or remove stale outbound links.",
            ))

    def _check_redirect_chains(self):
        checker = self.context.checker
        if checker is None:
            return
        candidates = unique_sorted(
            page.url for page in self.pages
            if page.url != page.final_url or page.status >= 300
        )
        chains = {url: hops for url, hops in checker.redirect_chains(candidates).items() if hops > 1}
        if not chains:
            return
        self.issues.append(make_issue(
            "redirect_chain", "technical", "warning", 6,
            "Redirect chains detected",
            "One or more URLs require multiple redirect hops.",
            list(chains),
            [Evidence(type="http", message=f"Redirect chain length is {hops}.", url=url)
             for url, hops in sorted(chains.items())],
            "Reduce redirects to a single hop where possible.",
        ))


# === ENGINE ===

class RuleEngine:
    """Runs page and site rules over enriched extracts and sorts the result."""

    def __init__(self, context: RuleContext):
        self.context = context

    def run(self, pages: List[PageExtract], graph: Optional[LinkGraph] = None) -> List[Issue]:
        if graph is None:
            graph = build_link_graph(pages, self.context.focus_url, self.context.generic_anchors)
            pages = graph.pages

        issues: List[Issue] = []
        for page in pages:
            self.context.cancel_token.raise_if_cancelled()
            stats = graph.anchor_stats.get(canonical_or_self(page.final_url))
            issues.extend(PageRules(page, self.context, stats).analyze_all())

        issues.extend(SiteRules(pages, self.context, graph).analyze_all())
        logger.info(f"Rules: {len(issues)} raw issues over {len(pages)} pages")
        return sort_issues(issues)


def run_rules(pages: List[PageExtract], context: RuleContext, graph: Optional[LinkGraph] = None) -> List[Issue]:
    return RuleEngine(context).run(pages, graph)


# === POST-PROCESSING ===

def sort_issues(issues: Iterable[Issue]) -> List[Issue]:
    """Severity desc, rank desc, id asc, first affected URL asc."""
    return sorted(issues, key=lambda issue: (
        -SEVERITY_ORDER.get(issue.severity, 0),
        -issue.rank,
        issue.id,
        issue.affected_urls[0] if issue.affected_urls else "",
    ))


def tag_issues(issues: Iterable[Issue], focus_url: Optional[str],
               inlink_sources: Iterable[str] = ()) -> List[Issue]:
    """New Issue copies tagged focus / inlink / global by affected URLs."""
    issues = list(issues)
    if not focus_url:
        return [replace(issue, tags=("global",)) for issue in issues]

    focus_key = canonical_or_self(focus_url)
    source_keys = {canonical_or_self(url) for url in inlink_sources}
    tagged = []
    for issue in issues:
        affected = {canonical_or_self(url) for url in issue.affected_urls}
        tags = []
        if focus_key in affected:
            tags.append("focus")
        if affected & source_keys:
            tags.append("inlink")
        tagged.append(replace(issue, tags=tuple(tags) if tags else ("global",)))
    return tagged


def _evidence_key(item: Evidence) -> tuple:
    return (item.type, item.message, item.url, item.source_url, item.target_url, item.anchor_text, item.status)


def consolidate_issues(issues: Iterable[Issue]) -> List[Issue]:
    """Merge issues that share their core identity.

    Identity is (id, category, severity, title, description, recommendation).
    Merged issues carry the union of affected URLs and tags, every distinct
    evidence item and the highest rank.
    """
    merged: Dict[tuple, Issue] = {}
    order: List[tuple] = []
    for issue in issues:
        key = (issue.id, issue.category, issue.severity, issue.title, issue.description, issue.recommendation)
        existing = merged.get(key)
        if existing is None:
            merged[key] = issue
            order.append(key)
            continue

        tags: Set[str] = set(existing.tags) | set(issue.tags)
        if len(tags) > 1:
            tags.discard("global")
        seen = {_evidence_key(item) for item in existing.evidence}
        evidence = list(existing.evidence)
        for item in issue.evidence:
            if _evidence_key(item) not in seen:
                seen.add(_evidence_key(item))
                evidence.append(item)

        merged[key] = replace(
            existing,
            rank=max(existing.rank, issue.rank),
            affected_urls=tuple(unique_sorted(existing.affected_urls + issue.affected_urls)),
            evidence=tuple(evidence),
            tags=tuple(sorted(tags)),
        )
    return [merged[key] for key in order]
