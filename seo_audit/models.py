"""
Data classes passed between the audit stages.

Every class exposes ``to_dict()`` producing the persisted JSON contract.
Report-level classes also expose ``from_dict()`` so stored reports can be
loaded back for diffing.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# === SEVERITIES ===

SEVERITIES = ("error", "warning", "notice")
SEVERITY_ORDER = {"error": 3, "warning": 2, "notice": 1}

COVERAGE_MODES = ("quick", "surface", "full")

SEED_SOURCES = ("start_url", "robots_sitemap", "default_sitemap", "config_sitemap")

EVIDENCE_TYPES = ("page", "link", "http", "content", "schema", "security", "performance", "other")


# === INPUTS ===

@dataclass(frozen=True)
class FocusBrief:
    primary_url: Optional[str] = None
    primary_keyword: Optional[str] = None
    goal: Optional[str] = None
    constraints: Tuple[str, ...] = ()
    secondary_urls: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "primary_url": self.primary_url,
            "primary_keyword": self.primary_keyword,
            "goal": self.goal,
            "constraints": list(self.constraints),
            "secondary_urls": list(self.secondary_urls),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "FocusBrief":
        data = data or {}
        return cls(
            primary_url=data.get("primary_url"),
            primary_keyword=data.get("primary_keyword"),
            goal=data.get("goal"),
            constraints=tuple(data.get("constraints") or ()),
            secondary_urls=tuple(data.get("secondary_urls") or ()),
        )


@dataclass(frozen=True)
class AuditInputs:
    target: str
    coverage: str = "surface"
    max_pages: int = 100
    crawl_depth: int = 3
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()
    allowed_domains: Tuple[str, ...] = ()
    respect_robots: bool = True
    user_agent: str = "seo-audit-cli/0.1"
    timeout_ms: int = 10000
    focus: FocusBrief = field(default_factory=FocusBrief)
    sitemap_urls: Tuple[str, ...] = ()
    include_serp: bool = True
    focus_inlinks_threshold: int = 3
    min_words: int = 300
    generic_anchors: Optional[Tuple[str, ...]] = None
    baseline_run_id: Optional[str] = None

    @property
    def focus_url(self) -> Optional[str]:
        return self.focus.primary_url or None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "coverage": self.coverage,
            "max_pages": self.max_pages,
            "crawl_depth": self.crawl_depth,
            "include_patterns": list(self.include_patterns),
            "exclude_patterns": list(self.exclude_patterns),
            "allowed_domains": list(self.allowed_domains),
            "respect_robots": self.respect_robots,
            "user_agent": self.user_agent,
            "timeout_ms": self.timeout_ms,
            "focus": self.focus.to_dict(),
            "sitemap_urls": list(self.sitemap_urls),
            "include_serp": self.include_serp,
            "focus_inlinks_threshold": self.focus_inlinks_threshold,
            "min_words": self.min_words,
            "generic_anchors": list(self.generic_anchors) if self.generic_anchors is not None else None,
            "baseline_run_id": self.baseline_run_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditInputs":
        anchors = data.get("generic_anchors")
        return cls(
            target=data["target"],
            coverage=data.get("coverage", "surface"),
            max_pages=int(data.get("max_pages", 100)),
            crawl_depth=int(data.get("crawl_depth", 3)),
            include_patterns=tuple(data.get("include_patterns") or ()),
            exclude_patterns=tuple(data.get("exclude_patterns") or ()),
            allowed_domains=tuple(data.get("allowed_domains") or ()),
            respect_robots=bool(data.get("respect_robots", True)),
            user_agent=data.get("user_agent", "seo-audit-cli/0.1"),
            timeout_ms=int(data.get("timeout_ms", 10000)),
            focus=FocusBrief.from_dict(data.get("focus")),
            sitemap_urls=tuple(data.get("sitemap_urls") or ()),
            include_serp=bool(data.get("include_serp", True)),
            focus_inlinks_threshold=int(data.get("focus_inlinks_threshold", 3)),
            min_words=int(data.get("min_words", 300)),
            generic_anchors=tuple(anchors) if anchors is not None else None,
            baseline_run_id=data.get("baseline_run_id"),
        )


# === DISCOVERY / CRAWL ===

@dataclass
class DiscoveredSeed:
    url: str
    source: str

    def to_dict(self) -> dict:
        return {"url": self.url, "source": self.source}


@dataclass
class SeedDiscoveryResult:
    seeds: List[str] = field(default_factory=list)
    discovered: List[DiscoveredSeed] = field(default_factory=list)
    robots_disallow: List[str] = field(default_factory=list)
    sitemap_urls_checked: List[str] = field(default_factory=list)
    sitemap_page_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "seeds": list(self.seeds),
            "discovered": [seed.to_dict() for seed in self.discovered],
            "robots_disallow": list(self.robots_disallow),
            "sitemap_urls_checked": list(self.sitemap_urls_checked),
            "sitemap_page_urls": list(self.sitemap_page_urls),
        }


@dataclass
class CrawledPage:
    url: str
    final_url: str
    status: int
    depth: int
    content_type: str = ""
    response_headers: Dict[str, str] = field(default_factory=dict)
    html: str = ""
    response_ms: float = 0.0


@dataclass
class CrawlEvent:
    kind: str           # fetched, fetch_error
    url: str
    depth: int
    status: Optional[int] = None
    elapsed_ms: float = 0.0
    error: str = ""

    def to_dict(self) -> dict:
        data = {
            "kind": self.kind,
            "url": self.url,
            "depth": self.depth,
            "status": self.status,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class CrawlResult:
    pages: List[CrawledPage] = field(default_factory=list)
    events: List[CrawlEvent] = field(default_factory=list)


# === PAGE EXTRACT ===

@dataclass
class HeadingItem:
    level: int
    text: str
    order: int

    def to_dict(self) -> dict:
        return {"level": self.level, "text": self.text, "order": self.order}


@dataclass
class OutlinkInternal:
    target_url: str
    anchor_text: str
    rel: str = ""
    is_nav_likely: bool = False
    occurrences: int = 1

    def to_dict(self) -> dict:
        return {
            "targetUrl": self.target_url,
            "anchorText": self.anchor_text,
            "rel": self.rel,
            "isNavLikely": self.is_nav_likely,
            "occurrences": self.occurrences,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OutlinkInternal":
        return cls(
            target_url=data["targetUrl"],
            anchor_text=data.get("anchorText", ""),
            rel=data.get("rel", ""),
            is_nav_likely=bool(data.get("isNavLikely", False)),
            occurrences=int(data.get("occurrences", 1)),
        )


@dataclass
class OutlinkExternal:
    target_url: str
    anchor_text: str
    rel: str = ""
    occurrences: int = 1

    def to_dict(self) -> dict:
        return {
            "targetUrl": self.target_url,
            "anchorText": self.anchor_text,
            "rel": self.rel,
            "occurrences": self.occurrences,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OutlinkExternal":
        return cls(
            target_url=data["targetUrl"],
            anchor_text=data.get("anchorText", ""),
            rel=data.get("rel", ""),
            occurrences=int(data.get("occurrences", 1)),
        )


@dataclass
class SchemaError:
    message: str
    pointer: str

    def to_dict(self) -> dict:
        return {"message": self.message, "pointer": self.pointer}


@dataclass
class AnchorCount:
    anchor: str
    count: int

    def to_dict(self) -> dict:
        return {"anchor": self.anchor, "count": self.count}


@dataclass
class PerformanceMetrics:
    lcp_ms: Optional[float] = None
    inp_ms: Optional[float] = None
    cls: Optional[float] = None
    tbt_ms: Optional[float] = None
    source: str = "lighthouse"

    def is_good(self) -> bool:
        """Core Web Vitals thresholds; unknown metrics do not fail the gate."""
        if self.lcp_ms is not None and self.lcp_ms > 2500:
            return False
        if self.inp_ms is not None and self.inp_ms > 200:
            return False
        if self.cls is not None and self.cls > 0.1:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "lcp_ms": self.lcp_ms,
            "inp_ms": self.inp_ms,
            "cls": self.cls,
            "tbt_ms": self.tbt_ms,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["PerformanceMetrics"]:
        if not data:
            return None
        return cls(
            lcp_ms=data.get("lcp_ms"),
            inp_ms=data.get("inp_ms"),
            cls=data.get("cls"),
            tbt_ms=data.get("tbt_ms"),
            source=data.get("source", "lighthouse"),
        )


@dataclass
class PageExtract:
    url: str
    final_url: str
    status: int
    title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_robots: Optional[str] = None
    canonical: Optional[str] = None
    canonical_url: Optional[str] = None
    hreflang_links: List[str] = field(default_factory=list)
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    headings: List[HeadingItem] = field(default_factory=list)
    internal_targets: List[str] = field(default_factory=list)
    external_targets: List[str] = field(default_factory=list)
    outlinks_internal: List[OutlinkInternal] = field(default_factory=list)
    outlinks_external: List[OutlinkExternal] = field(default_factory=list)
    image_count: int = 0
    images_missing_alt: int = 0
    large_image_candidates: List[str] = field(default_factory=list)
    jsonld_blocks: List[str] = field(default_factory=list)
    jsonld_parsed: List[Any] = field(default_factory=list)
    schema_types: List[str] = field(default_factory=list)
    schema_errors: List[SchemaError] = field(default_factory=list)
    is_https: bool = False
    mixed_content_candidates: List[str] = field(default_factory=list)
    security_headers_present: List[str] = field(default_factory=list)
    security_headers_missing: List[str] = field(default_factory=list)
    main_text: str = ""
    word_count_main: int = 0
    first_viewport_text: str = ""
    heading_text_concat: str = ""
    brand_signals: List[str] = field(default_factory=list)
    html_lang: Optional[str] = None
    links_without_accessible_name: int = 0
    x_robots_tag: Optional[str] = None
    response_ms: Optional[float] = None
    performance: Optional[PerformanceMetrics] = None
    # filled by the link graph builder
    inlinks_count: int = 0
    inlinks_anchors_top: List[AnchorCount] = field(default_factory=list)

    @property
    def title_text(self) -> str:
        return self.title or ""

    @property
    def meta_description_text(self) -> str:
        return self.meta_description or ""

    @property
    def h1_texts(self) -> List[str]:
        return [heading.text for heading in self.headings if heading.level == 1]

    @property
    def is_ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "final_url": self.final_url,
            "status": self.status,
            "title": self.title,
            "meta_description": self.meta_description,
            "meta_robots": self.meta_robots,
            "canonical": self.canonical,
            "canonicalUrl": self.canonical_url,
            "hreflang_links": list(self.hreflang_links),
            "ogTitle": self.og_title,
            "ogDescription": self.og_description,
            "ogImage": self.og_image,
            "headings_outline": [heading.to_dict() for heading in self.headings],
            "links": {
                "internal_count": len(self.internal_targets),
                "external_count": len(self.external_targets),
                "internal_targets": list(self.internal_targets),
                "external_targets": list(self.external_targets),
            },
            "outlinksInternal": [link.to_dict() for link in self.outlinks_internal],
            "outlinksExternal": [link.to_dict() for link in self.outlinks_external],
            "images": {
                "count": self.image_count,
                "missing_alt_count": self.images_missing_alt,
                "large_image_candidates": list(self.large_image_candidates),
            },
            "schema": {
                "jsonld_blocks": list(self.jsonld_blocks),
                "detected_schema_types": list(self.schema_types),
                "json_parse_failures": [error.message for error in self.schema_errors],
            },
            "jsonLdParsed": list(self.jsonld_parsed),
            "schemaErrors": [error.to_dict() for error in self.schema_errors],
            "security": {
                "is_https": self.is_https,
                "mixed_content_candidates": list(self.mixed_content_candidates),
                "security_headers_present": list(self.security_headers_present),
                "security_headers_missing": list(self.security_headers_missing),
            },
            "mainText": self.main_text,
            "wordCountMain": self.word_count_main,
            "firstViewportText": self.first_viewport_text,
            "headingTextConcat": self.heading_text_concat,
            "brandSignals": list(self.brand_signals),
            "htmlLang": self.html_lang,
            "linksWithoutAccessibleNameCount": self.links_without_accessible_name,
            "xRobotsTagHeader": self.x_robots_tag,
            "responseMs": self.response_ms,
            "performance": self.performance.to_dict() if self.performance else None,
            "inlinksCount": self.inlinks_count,
            "inlinksAnchorsTop": [item.to_dict() for item in self.inlinks_anchors_top],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PageExtract":
        links = data.get("links") or {}
        images = data.get("images") or {}
        schema = data.get("schema") or {}
        security = data.get("security") or {}
        return cls(
            url=data["url"],
            final_url=data.get("final_url", data["url"]),
            status=int(data.get("status", 0)),
            title=data.get("title"),
            meta_description=data.get("meta_description"),
            meta_robots=data.get("meta_robots"),
            canonical=data.get("canonical"),
            canonical_url=data.get("canonicalUrl"),
            hreflang_links=list(data.get("hreflang_links") or []),
            og_title=data.get("ogTitle"),
            og_description=data.get("ogDescription"),
            og_image=data.get("ogImage"),
            headings=[HeadingItem(**item) for item in data.get("headings_outline") or []],
            internal_targets=list(links.get("internal_targets") or []),
            external_targets=list(links.get("external_targets") or []),
            outlinks_internal=[OutlinkInternal.from_dict(item) for item in data.get("outlinksInternal") or []],
            outlinks_external=[OutlinkExternal.from_dict(item) for item in data.get("outlinksExternal") or []],
            image_count=int(images.get("count", 0)),
            images_missing_alt=int(images.get("missing_alt_count", 0)),
            large_image_candidates=list(images.get("large_image_candidates") or []),
            jsonld_blocks=list(schema.get("jsonld_blocks") or []),
            jsonld_parsed=list(data.get("jsonLdParsed") or []),
            schema_types=list(schema.get("detected_schema_types") or []),
            schema_errors=[SchemaError(**item) for item in data.get("schemaErrors") or []],
            is_https=bool(security.get("is_https", False)),
            mixed_content_candidates=list(security.get("mixed_content_candidates") or []),
            security_headers_present=list(security.get("security_headers_present") or []),
            security_headers_missing=list(security.get("security_headers_missing") or []),
            main_text=data.get("mainText", ""),
            word_count_main=int(data.get("wordCountMain", 0)),
            first_viewport_text=data.get("firstViewportText", ""),
            heading_text_concat=data.get("headingTextConcat", ""),
            brand_signals=list(data.get("brandSignals") or []),
            html_lang=data.get("htmlLang"),
            links_without_accessible_name=int(data.get("linksWithoutAccessibleNameCount", 0)),
            x_robots_tag=data.get("xRobotsTagHeader"),
            response_ms=data.get("responseMs"),
            performance=PerformanceMetrics.from_dict(data.get("performance")),
            inlinks_count=int(data.get("inlinksCount", 0)),
            inlinks_anchors_top=[AnchorCount(**item) for item in data.get("inlinksAnchorsTop") or []],
        )


# === ISSUES ===

@dataclass(frozen=True)
class Evidence:
    type: str
    message: str
    url: Optional[str] = None
    source_url: Optional[str] = None
    target_url: Optional[str] = None
    anchor_text: Optional[str] = None
    status: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"type": self.type, "message": self.message}
        for key in ("url", "source_url", "target_url", "anchor_text", "status", "details"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Evidence":
        return cls(
            type=data.get("type", "other"),
            message=data.get("message", ""),
            url=data.get("url"),
            source_url=data.get("source_url"),
            target_url=data.get("target_url"),
            anchor_text=data.get("anchor_text"),
            status=data.get("status"),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class Issue:
    id: str
    category: str
    severity: str
    rank: int
    title: str
    description: str
    affected_urls: Tuple[str, ...] = ()
    evidence: Tuple[Evidence, ...] = ()
    recommendation: str = ""
    tags: Tuple[str, ...] = ("global",)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "rank": self.rank,
            "title": self.title,
            "description": self.description,
            "affected_urls": list(self.affected_urls),
            "evidence": [item.to_dict() for item in self.evidence],
            "recommendation": self.recommendation,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Issue":
        return cls(
            id=data["id"],
            category=data.get("category", "technical"),
            severity=data.get("severity", "notice"),
            rank=int(data.get("rank", 1)),
            title=data.get("title", ""),
            description=data.get("description", ""),
            affected_urls=tuple(data.get("affected_urls") or ()),
            evidence=tuple(Evidence.from_dict(item) for item in data.get("evidence") or ()),
            recommendation=data.get("recommendation", ""),
            tags=tuple(data.get("tags") or ("global",)),
        )


# === SUMMARY / REPORT ===

@dataclass
class InternalLinksSummary:
    orphan_pages_count: int = 0
    near_orphan_pages_count: int = 0
    nav_likely_inlinks_percent: float = 0.0
    percent_generic_anchors: float = 0.0
    percent_empty_anchors: float = 0.0
    top_anchors: List[AnchorCount] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "orphanPagesCount": self.orphan_pages_count,
            "nearOrphanPagesCount": self.near_orphan_pages_count,
            "navLikelyInlinksPercent": self.nav_likely_inlinks_percent,
            "percentGenericAnchors": self.percent_generic_anchors,
            "percentEmptyAnchors": self.percent_empty_anchors,
            "topAnchors": [item.to_dict() for item in self.top_anchors],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["InternalLinksSummary"]:
        if not data:
            return None
        return cls(
            orphan_pages_count=int(data.get("orphanPagesCount", 0)),
            near_orphan_pages_count=int(data.get("nearOrphanPagesCount", 0)),
            nav_likely_inlinks_percent=float(data.get("navLikelyInlinksPercent", 0)),
            percent_generic_anchors=float(data.get("percentGenericAnchors", 0)),
            percent_empty_anchors=float(data.get("percentEmptyAnchors", 0)),
            top_anchors=[AnchorCount(**item) for item in data.get("topAnchors") or []],
        )


@dataclass
class InlinkSource:
    url: str
    count: int

    def to_dict(self) -> dict:
        return {"url": self.url, "count": self.count}


@dataclass
class FocusSummary:
    primary_url: str
    focus_score: float = 100.0
    focus_uplift_score: float = 0.0
    focus_top_issues: List[str] = field(default_factory=list)
    focus_inlinks_count: int = 0
    top_inlink_sources: List[InlinkSource] = field(default_factory=list)
    anchor_quality: Optional[InternalLinksSummary] = None

    def to_dict(self) -> dict:
        return {
            "primary_url": self.primary_url,
            "focus_score": self.focus_score,
            "focus_uplift_score": self.focus_uplift_score,
            "focus_top_issues": list(self.focus_top_issues),
            "focusInlinksCount": self.focus_inlinks_count,
            "topInlinkSourcesToFocus": [item.to_dict() for item in self.top_inlink_sources],
            "focusAnchorQuality": self.anchor_quality.to_dict() if self.anchor_quality else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["FocusSummary"]:
        if not data:
            return None
        return cls(
            primary_url=data.get("primary_url", ""),
            focus_score=float(data.get("focus_score", 100.0)),
            focus_uplift_score=float(data.get("focus_uplift_score", 0.0)),
            focus_top_issues=list(data.get("focus_top_issues") or []),
            focus_inlinks_count=int(data.get("focusInlinksCount", 0)),
            top_inlink_sources=[InlinkSource(**item) for item in data.get("topInlinkSourcesToFocus") or []],
            anchor_quality=InternalLinksSummary.from_dict(data.get("focusAnchorQuality")),
        )


@dataclass
class Summary:
    score_total: float = 100.0
    score_by_category: Dict[str, float] = field(default_factory=dict)
    pages_crawled: int = 0
    errors: int = 0
    warnings: int = 0
    notices: int = 0
    focus: Optional[FocusSummary] = None
    internal_links: Optional[InternalLinksSummary] = None

    def to_dict(self) -> dict:
        data = {
            "score_total": self.score_total,
            "score_by_category": dict(self.score_by_category),
            "pages_crawled": self.pages_crawled,
            "errors": self.errors,
            "warnings": self.warnings,
            "notices": self.notices,
        }
        if self.focus is not None:
            data["focus"] = self.focus.to_dict()
        if self.internal_links is not None:
            data["internal_links"] = self.internal_links.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Summary":
        return cls(
            score_total=float(data.get("score_total", 0)),
            score_by_category={key: float(value) for key, value in (data.get("score_by_category") or {}).items()},
            pages_crawled=int(data.get("pages_crawled", 0)),
            errors=int(data.get("errors", 0)),
            warnings=int(data.get("warnings", 0)),
            notices=int(data.get("notices", 0)),
            focus=FocusSummary.from_dict(data.get("focus")),
            internal_links=InternalLinksSummary.from_dict(data.get("internal_links")),
        )


@dataclass
class PageSummary:
    url: str
    final_url: str
    status: int
    title: Optional[str] = None
    canonical: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "final_url": self.final_url,
            "status": self.status,
            "title": self.title,
            "canonical": self.canonical,
        }


@dataclass
class Report:
    run_id: str
    started_at: str
    finished_at: str
    inputs: AuditInputs
    summary: Summary
    issues: List[Issue] = field(default_factory=list)
    pages: List[PageSummary] = field(default_factory=list)
    page_extracts: List[PageExtract] = field(default_factory=list)
    crawl_events: List[CrawlEvent] = field(default_factory=list)
    seed_discovery: Optional[SeedDiscoveryResult] = None

    def to_dict(self) -> dict:
        data = {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "inputs": self.inputs.to_dict(),
            "summary": self.summary.to_dict(),
            "issues": [issue.to_dict() for issue in self.issues],
            "pages": [page.to_dict() for page in self.pages],
            "page_extracts": [extract.to_dict() for extract in self.page_extracts],
            "crawl_events": [event.to_dict() for event in self.crawl_events],
        }
        if self.seed_discovery is not None:
            data["seed_discovery"] = self.seed_discovery.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        return cls(
            run_id=data["run_id"],
            started_at=data.get("started_at", ""),
            finished_at=data.get("finished_at", ""),
            inputs=AuditInputs.from_dict(data.get("inputs") or {"target": ""}),
            summary=Summary.from_dict(data.get("summary") or {}),
            issues=[Issue.from_dict(item) for item in data.get("issues") or []],
            pages=[PageSummary(**item) for item in data.get("pages") or []],
            page_extracts=[PageExtract.from_dict(item) for item in data.get("page_extracts") or []],
        )


# === DIFF ===

@dataclass
class IssueDelta:
    id: str
    baseline_count: int
    current_count: int
    baseline_max_severity: str
    current_max_severity: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "baseline_count": self.baseline_count,
            "current_count": self.current_count,
            "baseline_max_severity": self.baseline_max_severity,
            "current_max_severity": self.current_max_severity,
        }


@dataclass
class DiffReport:
    baseline_run_id: str
    current_run_id: str
    score_total_delta: float = 0.0
    score_by_category_delta: Dict[str, float] = field(default_factory=dict)
    resolved_issues: List[str] = field(default_factory=list)
    new_issues: List[str] = field(default_factory=list)
    regressed_issues: List[IssueDelta] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "baseline_run_id": self.baseline_run_id,
            "current_run_id": self.current_run_id,
            "score_total_delta": self.score_total_delta,
            "score_by_category_delta": dict(self.score_by_category_delta),
            "resolved_issues": list(self.resolved_issues),
            "new_issues": list(self.new_issues),
            "regressed_issues": [item.to_dict() for item in self.regressed_issues],
        }


# === PROGRESS ===

@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    stage: str
    detail: str = ""

    def to_dict(self) -> dict:
        return {"percent": self.percent, "stage": self.stage, "detail": self.detail}
