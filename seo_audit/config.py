"""
Thresholds, defaults and input handling.

Defaults can be overridden by ``seo-audit.config.json`` in the working
directory and then by ``SEO_AUDIT_*`` environment variables.
"""

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from .errors import InvalidAuditInputs
from .models import COVERAGE_MODES, AuditInputs, FocusBrief
from .urls import normalize_url, origin_of

logger = logging.getLogger("seo_audit.config")

# === CONSTANTS ===

CONFIG_FILENAME = "seo-audit.config.json"
ENV_PREFIX = "SEO_AUDIT_"

# Length bands: (soft_min, soft_max, hard_min, hard_max)
TITLE_BAND = (20, 60, 10, 70)
DESC_BAND = (70, 160, 50, 200)

THIN_CONTENT_WORDS = 300
TTFB_WARNING_MS = 1500
TTFB_CRITICAL_MS = 3000
LARGE_IMAGE_PIXELS = 1_000_000
FIRST_VIEWPORT_CHARS = 300

MAX_PAGES_LIMIT = 5000
MAX_DEPTH_LIMIT = 20
FOCUS_NEIGHBORHOOD_CAP = 25
FOCUS_INLINKS_THRESHOLD = 3

CRAWL_WORKERS = 5
HTTP_STATUS_CONCURRENCY = 12
REDIRECT_CHAIN_CONCURRENCY = 8
MAX_REDIRECT_HOPS = 8
MAX_NESTED_SITEMAPS = 20

SECURITY_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-content-type-options",
    "x-frame-options",
    "referrer-policy",
)

DEFAULT_GENERIC_ANCHORS = (
    "kliknij",
    "więcej",
    "zobacz",
    "czytaj",
    "tutaj",
    "sprawdź",
    "dowiedz się",
    "link",
    "przejdź",
    "read more",
    "learn more",
    "click here",
    "here",
    "more",
)

DEFAULTS: Dict[str, Any] = {
    "coverage": "surface",
    "max_pages": 100,
    "crawl_depth": 3,
    "include_patterns": [],
    "exclude_patterns": [],
    "allowed_domains": [],
    "sitemap_urls": [],
    "respect_robots": True,
    "user_agent": "seo-audit-cli/0.1",
    "timeout_ms": 10000,
    "include_serp": True,
    "focus_inlinks_threshold": FOCUS_INLINKS_THRESHOLD,
    "min_words": THIN_CONTENT_WORDS,
    "generic_anchors": None,
}

_ENV_FIELDS = {
    "COVERAGE": ("coverage", str),
    "MAX_PAGES": ("max_pages", int),
    "CRAWL_DEPTH": ("crawl_depth", int),
    "RESPECT_ROBOTS": ("respect_robots", "bool"),
    "USER_AGENT": ("user_agent", str),
    "TIMEOUT_MS": ("timeout_ms", int),
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Merge defaults, the JSON config file and environment overrides."""
    config = dict(DEFAULTS)
    config_path = Path(path) if path else Path.cwd() / CONFIG_FILENAME

    if config_path.is_file():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable config {config_path}: {e}")
            data = {}
        # the file may nest its values under "defaults"
        if isinstance(data, dict) and isinstance(data.get("defaults"), dict):
            data = data["defaults"]
        if isinstance(data, dict):
            for key, value in data.items():
                if key in DEFAULTS:
                    config[key] = value
                else:
                    logger.debug(f"Unknown config key ignored: {key}")
    elif path:
        logger.warning(f"Config file not found: {config_path}")

    env = os.environ if environ is None else environ
    for suffix, (key, kind) in _ENV_FIELDS.items():
        raw = env.get(ENV_PREFIX + suffix)
        if raw is None or raw == "":
            continue
        try:
            config[key] = _parse_bool(raw) if kind == "bool" else kind(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {ENV_PREFIX}{suffix}={raw!r}")

    return config


def build_inputs(target: str, config: Optional[Dict[str, Any]] = None, **overrides: Any) -> AuditInputs:
    """Build AuditInputs from a config dict plus explicit overrides.

    Focus fields are passed as ``focus_url``, ``focus_keyword``,
    ``focus_goal``, ``constraints`` and ``secondary_urls``.
    """
    values = dict(DEFAULTS)
    values.update(config or {})
    focus = FocusBrief(
        primary_url=overrides.pop("focus_url", None),
        primary_keyword=overrides.pop("focus_keyword", None),
        goal=overrides.pop("focus_goal", None),
        constraints=tuple(overrides.pop("constraints", None) or ()),
        secondary_urls=tuple(overrides.pop("secondary_urls", None) or ()),
    )
    for key, value in overrides.items():
        if value is not None:
            values[key] = value

    anchors = values.get("generic_anchors")
    return AuditInputs(
        target=target,
        coverage=values["coverage"],
        max_pages=int(values["max_pages"]),
        crawl_depth=int(values["crawl_depth"]),
        include_patterns=tuple(values.get("include_patterns") or ()),
        exclude_patterns=tuple(values.get("exclude_patterns") or ()),
        allowed_domains=tuple(values.get("allowed_domains") or ()),
        respect_robots=bool(values["respect_robots"]),
        user_agent=values["user_agent"],
        timeout_ms=int(values["timeout_ms"]),
        focus=focus,
        sitemap_urls=tuple(values.get("sitemap_urls") or ()),
        include_serp=bool(values.get("include_serp", True)),
        focus_inlinks_threshold=int(values.get("focus_inlinks_threshold", FOCUS_INLINKS_THRESHOLD)),
        min_words=int(values.get("min_words", THIN_CONTENT_WORDS)),
        generic_anchors=tuple(anchors) if anchors is not None else None,
        baseline_run_id=values.get("baseline_run_id"),
    )


def _is_count(value) -> bool:
    # bool is an int subclass; True must not pass as 1
    return isinstance(value, int) and not isinstance(value, bool)


def validate_inputs(inputs: AuditInputs) -> AuditInputs:
    """Reject malformed inputs before any network activity.

    Returns a copy whose target and focus URL are normalized.
    """
    problems: List[str] = []

    target = normalize_url(inputs.target)
    if not target or urlsplit(target).scheme not in ("http", "https"):
        problems.append(f"target must be an absolute http(s) URL: {inputs.target!r}")

    if inputs.coverage not in COVERAGE_MODES:
        problems.append(f"unknown coverage mode: {inputs.coverage!r}")
    if not _is_count(inputs.max_pages) or not 1 <= inputs.max_pages <= MAX_PAGES_LIMIT:
        problems.append(f"max_pages must be within 1..{MAX_PAGES_LIMIT}")
    if not _is_count(inputs.crawl_depth) or not 1 <= inputs.crawl_depth <= MAX_DEPTH_LIMIT:
        problems.append(f"crawl_depth must be within 1..{MAX_DEPTH_LIMIT}")
    if not _is_count(inputs.timeout_ms) or inputs.timeout_ms < 1:
        problems.append("timeout_ms must be a positive integer")
    if inputs.focus_inlinks_threshold < 0:
        problems.append("focus_inlinks_threshold must not be negative")

    focus_url = None
    if inputs.focus.primary_url:
        focus_url = normalize_url(inputs.focus.primary_url, target) if target else None
        if not focus_url:
            problems.append(f"focus URL is not a valid URL: {inputs.focus.primary_url!r}")
        elif target and origin_of(focus_url) != origin_of(target):
            problems.append("focus URL must share the target's origin")

    if problems:
        raise InvalidAuditInputs(problems)

    focus = FocusBrief(
        primary_url=focus_url,
        primary_keyword=inputs.focus.primary_keyword,
        goal=inputs.focus.goal,
        constraints=inputs.focus.constraints,
        secondary_urls=inputs.focus.secondary_urls,
    )
    return replace(inputs, target=target, focus=focus)
