"""SEO audit core: discover, crawl, extract, rule, score and diff a website."""

from .config import build_inputs, load_config, validate_inputs
from .diff import build_diff_report, load_report
from .errors import (
    AuditCancelled, AuditError, DiffUnavailable, InvalidAuditInputs,
    NoPagesCrawled, PerformanceUnavailable,
)
from .models import AuditInputs, DiffReport, FocusBrief, Issue, Report
from .pipeline import AuditPipeline, run_audit
from .progress import CancelToken, ProgressStream

__version__ = "0.1.0"

__all__ = [
    "AuditCancelled",
    "AuditError",
    "AuditInputs",
    "AuditPipeline",
    "CancelToken",
    "DiffReport",
    "DiffUnavailable",
    "FocusBrief",
    "InvalidAuditInputs",
    "Issue",
    "NoPagesCrawled",
    "PerformanceUnavailable",
    "ProgressStream",
    "Report",
    "build_diff_report",
    "build_inputs",
    "load_config",
    "load_report",
    "run_audit",
    "validate_inputs",
]
