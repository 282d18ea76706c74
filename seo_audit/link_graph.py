"""
Internal link graph: inlink counts, anchor histograms and anchor quality.

Graph keys are canonical URLs. Each (source, target) pair counts as one
inlink and each (source, target, anchor) triple as one anchor record, so
repeated links on a page never inflate counts or percentages.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .config import DEFAULT_GENERIC_ANCHORS
from .models import AnchorCount, InlinkSource, InternalLinksSummary, PageExtract
from .text import normalize_anchor, normalize_for_compare
from .urls import canonical_or_self, is_homepage

logger = logging.getLogger("seo_audit.link_graph")

TOP_ANCHORS_LIMIT = 10
TOP_SOURCES_LIMIT = 10


@dataclass
class AnchorRecord:
    source: str
    target: str
    anchor: str
    nav_likely: bool
    occurrences: int


@dataclass
class AnchorStats:
    total: int = 0
    generic: int = 0
    empty: int = 0
    nav_likely: int = 0

    @property
    def weak_ratio(self) -> float:
        return (self.generic + self.empty) / self.total if self.total else 0.0

    @property
    def nav_ratio(self) -> float:
        return self.nav_likely / self.total if self.total else 0.0


@dataclass
class LinkGraph:
    pages: List[PageExtract] = field(default_factory=list)
    inlink_sources: Dict[str, Set[str]] = field(default_factory=dict)
    anchor_stats: Dict[str, AnchorStats] = field(default_factory=dict)
    summary: InternalLinksSummary = field(default_factory=InternalLinksSummary)
    focus_url: Optional[str] = None
    focus_inlinks_count: int = 0
    top_inlink_sources_to_focus: List[InlinkSource] = field(default_factory=list)
    focus_anchor_quality: Optional[InternalLinksSummary] = None

    def inlinks_for(self, url: str) -> Set[str]:
        return self.inlink_sources.get(canonical_or_self(url), set())

    def focus_sources(self) -> Set[str]:
        if not self.focus_url:
            return set()
        return set(self.inlinks_for(self.focus_url))


def generic_anchor_set(anchors: Optional[Iterable[str]] = None) -> Set[str]:
    source = DEFAULT_GENERIC_ANCHORS if anchors is None else anchors
    return {normalize_for_compare(anchor) for anchor in source if normalize_for_compare(anchor)}


def collect_anchor_records(pages: List[PageExtract]) -> List[AnchorRecord]:
    """One record per distinct (source, target, anchor), self-links dropped."""
    merged: Dict[Tuple[str, str, str], AnchorRecord] = {}
    for page in pages:
        source = canonical_or_self(page.final_url)
        for link in page.outlinks_internal:
            target = canonical_or_self(link.target_url)
            if target == source:
                continue
            anchor = normalize_anchor(link.anchor_text)
            key = (source, target, anchor)
            record = merged.get(key)
            if record is None:
                merged[key] = AnchorRecord(source, target, anchor, link.is_nav_likely, link.occurrences)
            else:
                record.nav_likely = record.nav_likely or link.is_nav_likely
                record.occurrences += link.occurrences
    return [merged[key] for key in sorted(merged)]


def _stats_for(records: Iterable[AnchorRecord], generic: Set[str]) -> AnchorStats:
    stats = AnchorStats()
    for record in records:
        stats.total += 1
        compare = normalize_for_compare(record.anchor)
        if not compare:
            stats.empty += 1
        elif compare in generic:
            stats.generic += 1
        if record.nav_likely:
            stats.nav_likely += 1
    return stats


def _percent(part: int, total: int) -> float:
    return round(part * 100.0 / total, 1) if total else 0.0


def _top_anchors(records: Iterable[AnchorRecord], limit: int = TOP_ANCHORS_LIMIT) -> List[AnchorCount]:
    histogram: Dict[str, int] = defaultdict(int)
    for record in records:
        histogram[record.anchor] += 1
    ranked = sorted(histogram.items(), key=lambda item: (-item[1], item[0]))
    return [AnchorCount(anchor=anchor, count=count) for anchor, count in ranked[:limit]]


def summarize_anchor_quality(records: List[AnchorRecord], generic: Set[str]) -> InternalLinksSummary:
    stats = _stats_for(records, generic)
    return InternalLinksSummary(
        nav_likely_inlinks_percent=_percent(stats.nav_likely, stats.total),
        percent_generic_anchors=_percent(stats.generic, stats.total),
        percent_empty_anchors=_percent(stats.empty, stats.total),
        top_anchors=_top_anchors(records),
    )


def build_link_graph(pages: List[PageExtract], focus_url: Optional[str] = None,
                     generic_anchors: Optional[Iterable[str]] = None) -> LinkGraph:
    """Aggregate outlinks of every page into a site-wide inlink graph.

    Returns a LinkGraph whose ``pages`` are copies of the input enriched with
    ``inlinks_count`` and ``inlinks_anchors_top``.
    """
    generic = generic_anchor_set(generic_anchors)
    records = collect_anchor_records(pages)

    inlink_sources: Dict[str, Set[str]] = defaultdict(set)
    records_by_target: Dict[str, List[AnchorRecord]] = defaultdict(list)
    for record in records:
        inlink_sources[record.target].add(record.source)
        records_by_target[record.target].append(record)

    enriched: List[PageExtract] = []
    orphans = 0
    near_orphans = 0
    for page in pages:
        key = canonical_or_self(page.final_url)
        count = len(inlink_sources.get(key, ()))
        if not is_homepage(page.final_url):
            if count == 0:
                orphans += 1
            if count <= 1:
                near_orphans += 1
        enriched.append(replace(
            page,
            inlinks_count=count,
            inlinks_anchors_top=_top_anchors(records_by_target.get(key, [])),
        ))

    summary = summarize_anchor_quality(records, generic)
    summary.orphan_pages_count = orphans
    summary.near_orphan_pages_count = near_orphans

    graph = LinkGraph(
        pages=enriched,
        inlink_sources=dict(inlink_sources),
        anchor_stats={target: _stats_for(items, generic) for target, items in records_by_target.items()},
        summary=summary,
    )

    if focus_url:
        focus_key = canonical_or_self(focus_url)
        focus_records = records_by_target.get(focus_key, [])
        occurrences: Dict[str, int] = defaultdict(int)
        for record in focus_records:
            occurrences[record.source] += record.occurrences
        ranked = sorted(occurrences.items(), key=lambda item: (-item[1], item[0]))
        graph.focus_url = focus_key
        graph.focus_inlinks_count = len(inlink_sources.get(focus_key, ()))
        graph.top_inlink_sources_to_focus = [
            InlinkSource(url=url, count=count) for url, count in ranked[:TOP_SOURCES_LIMIT]
        ]
        graph.focus_anchor_quality = summarize_anchor_quality(focus_records, generic)

    logger.info(
        f"Link graph: {len(records)} anchor records, {orphans} orphans, {near_orphans} near-orphans"
    )
    return graph
