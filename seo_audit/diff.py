"""Compare two audit reports: resolved, new and regressed issues plus score deltas."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .errors import DiffUnavailable
from .models import SEVERITY_ORDER, DiffReport, Issue, IssueDelta, Report

logger = logging.getLogger("seo_audit.diff")


@dataclass
class IssueAggregate:
    count: int
    max_severity: str


def aggregate_issues(issues: Iterable[Issue]) -> Dict[str, IssueAggregate]:
    """Sum affected URL counts and keep the worst severity per issue id."""
    aggregates: Dict[str, IssueAggregate] = {}
    for issue in issues:
        existing = aggregates.get(issue.id)
        if existing is None:
            aggregates[issue.id] = IssueAggregate(len(issue.affected_urls), issue.severity)
            continue
        existing.count += len(issue.affected_urls)
        if SEVERITY_ORDER.get(issue.severity, 0) > SEVERITY_ORDER.get(existing.max_severity, 0):
            existing.max_severity = issue.severity
    return aggregates


def build_diff_report(baseline: Optional[Report], current: Report) -> DiffReport:
    if baseline is None:
        raise DiffUnavailable("Baseline report is not available")

    baseline_issues = aggregate_issues(baseline.issues)
    current_issues = aggregate_issues(current.issues)

    diff = DiffReport(baseline_run_id=baseline.run_id, current_run_id=current.run_id)
    for issue_id in sorted(set(baseline_issues) | set(current_issues)):
        before = baseline_issues.get(issue_id)
        after = current_issues.get(issue_id)
        if after is None:
            diff.resolved_issues.append(issue_id)
            continue
        if before is None:
            diff.new_issues.append(issue_id)
            continue

        worse_severity = SEVERITY_ORDER.get(after.max_severity, 0) > SEVERITY_ORDER.get(before.max_severity, 0)
        if worse_severity or after.count > before.count:
            diff.regressed_issues.append(IssueDelta(
                id=issue_id,
                baseline_count=before.count,
                current_count=after.count,
                baseline_max_severity=before.max_severity,
                current_max_severity=after.max_severity,
            ))

    baseline_scores = baseline.summary.score_by_category
    current_scores = current.summary.score_by_category
    for category in sorted(set(baseline_scores) | set(current_scores)):
        delta = current_scores.get(category, 0.0) - baseline_scores.get(category, 0.0)
        diff.score_by_category_delta[category] = round(delta, 1)
    diff.score_total_delta = round(current.summary.score_total - baseline.summary.score_total, 1)

    logger.info(
        f"Diff {baseline.run_id} -> {current.run_id}: {len(diff.resolved_issues)} resolved, "
        f"{len(diff.new_issues)} new, {len(diff.regressed_issues)} regressed"
    )
    return diff


def load_report(path: Union[str, Path]) -> Report:
    """Load a persisted report JSON; unreadable files surface as DiffUnavailable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Report.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise DiffUnavailable(f"Cannot load report from {path}: {e}") from e
