"""
Scoring: converts issues into a 0-100 total, per-category scores and the
focus sub-scores.

deduction = severity_weight * (rank / 10) * ln(1 + affected) * tag_multiplier * issue_weight * 8
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .config import FOCUS_INLINKS_THRESHOLD
from .link_graph import LinkGraph
from .models import FocusSummary, Issue, PerformanceMetrics
from .urls import canonical_or_self

SCALE = 8.0
FOCUS_TOP_ISSUES_LIMIT = 5

SEVERITY_WEIGHTS = {"error": 1.0, "warning": 0.55, "notice": 0.2}
TAG_MULTIPLIERS = {"focus": 2.0, "inlink": 1.3}

INDEXATION_CONFLICT_IDS = (
    "meta_noindex",
    "robots_meta_xrobots_conflict",
    "canonical_to_non_200",
    "sitemap_contains_non_canonical",
    "schema_blocked_or_noindex_conflict",
    "blocked_by_robots",
)

ISSUE_WEIGHTS: Dict[str, float] = {issue_id: 1.35 for issue_id in INDEXATION_CONFLICT_IDS}
ISSUE_WEIGHTS.update({
    "orphan_page": 1.25,
    "near_orphan_page": 1.25,
    "focus_inlinks_count_low": 1.25,
    "title_length_out_of_range": 0.45,
    "description_length_out_of_range": 0.45,
})

SCORE_CATEGORIES = ("seo", "technical", "content", "security", "performance")

CATEGORY_BUCKETS = {
    "seo": "seo",
    "serp": "seo",
    "indexability": "seo",
    "indexation_conflicts": "seo",
    "schema": "seo",
    "schema_quality": "seo",
    "internal_links": "seo",
    "technical": "technical",
    "content": "content",
    "content_quality": "content",
    "intent": "content",
    "a11y": "content",
    "security": "security",
    "performance": "performance",
}

UPLIFT_GATES = 5


@dataclass
class ScoreCard:
    score_total: float = 100.0
    score_by_category: Dict[str, float] = field(default_factory=lambda: {key: 100.0 for key in SCORE_CATEGORIES})
    focus: Optional[FocusSummary] = None


def bucket_for(category: str) -> str:
    return CATEGORY_BUCKETS.get(category, "technical")


def tag_multiplier(tags: Iterable[str]) -> float:
    tags = set(tags)
    if "focus" in tags:
        return TAG_MULTIPLIERS["focus"]
    if "inlink" in tags:
        return TAG_MULTIPLIERS["inlink"]
    return 1.0


def issue_deduction(issue: Issue) -> float:
    rank = min(10, max(1, issue.rank))
    affected = len(issue.affected_urls)
    return (
        SEVERITY_WEIGHTS.get(issue.severity, 0.0)
        * (rank / 10.0)
        * math.log1p(affected)
        * tag_multiplier(issue.tags)
        * ISSUE_WEIGHTS.get(issue.id, 1.0)
        * SCALE
    )


def _to_score(deduction: float) -> float:
    return round(min(100.0, max(0.0, 100.0 - deduction)), 1)


def score_issues(issues: Iterable[Issue]) -> Tuple[float, Dict[str, float]]:
    """Total score and one score per category bucket."""
    total = 0.0
    buckets = {key: 0.0 for key in SCORE_CATEGORIES}
    for issue in issues:
        deduction = issue_deduction(issue)
        total += deduction
        buckets[bucket_for(issue.category)] += deduction
    return _to_score(total), {key: _to_score(value) for key, value in buckets.items()}


def _touches(issue: Issue, keys: set) -> bool:
    return any(canonical_or_self(url) in keys for url in issue.affected_urls)


def focus_score(issues: Iterable[Issue], focus_url: str, inlink_sources: Iterable[str] = ()) -> float:
    keys = {canonical_or_self(focus_url)} | {canonical_or_self(url) for url in inlink_sources}
    return _to_score(sum(issue_deduction(issue) for issue in issues if _touches(issue, keys)))


def focus_uplift_score(issues: Iterable[Issue], focus_url: str, inlinks_count: int,
                       threshold: int = FOCUS_INLINKS_THRESHOLD,
                       performance: Optional[PerformanceMetrics] = None) -> float:
    """Share of the five focus readiness gates that are satisfied, as a percentage."""
    focus_keys = {canonical_or_self(focus_url)}
    focus_ids = {issue.id for issue in issues if _touches(issue, focus_keys)}

    gates = [
        not any(issue_id in focus_ids for issue_id in INDEXATION_CONFLICT_IDS),
        inlinks_count >= threshold,
        "title_h1_mismatch" not in focus_ids,
        "thin_content" not in focus_ids,
        performance is None or performance.is_good(),
    ]
    return round(sum(1 for gate in gates if gate) / UPLIFT_GATES * 100, 1)


def focus_top_issues(issues: Iterable[Issue], limit: int = FOCUS_TOP_ISSUES_LIMIT) -> List[str]:
    """Ids of focus-tagged issues in their given (sorted) order, without repeats."""
    top: List[str] = []
    for issue in issues:
        if "focus" in issue.tags and issue.id not in top:
            top.append(issue.id)
        if len(top) >= limit:
            break
    return top


def score_report(issues: List[Issue], graph: Optional[LinkGraph] = None,
                 focus_url: Optional[str] = None,
                 focus_inlinks_threshold: int = FOCUS_INLINKS_THRESHOLD,
                 focus_performance: Optional[PerformanceMetrics] = None) -> ScoreCard:
    """Score a sorted, tagged issue list. Focus figures need the link graph."""
    total, by_category = score_issues(issues)
    card = ScoreCard(score_total=total, score_by_category=by_category)
    if not focus_url:
        return card

    graph = graph or LinkGraph()
    sources = sorted(graph.focus_sources())
    card.focus = FocusSummary(
        primary_url=canonical_or_self(focus_url),
        focus_score=focus_score(issues, focus_url, sources),
        focus_uplift_score=focus_uplift_score(
            issues, focus_url, graph.focus_inlinks_count,
            threshold=focus_inlinks_threshold, performance=focus_performance,
        ),
        focus_top_issues=focus_top_issues(issues),
        focus_inlinks_count=graph.focus_inlinks_count,
        top_inlink_sources=list(graph.top_inlink_sources_to_focus),
        anchor_quality=graph.focus_anchor_quality,
    )
    return card
