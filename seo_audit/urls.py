"""
URL helpers shared by every stage of the audit.

Two notions of identity are used:
    * normalize_url      - syntactic normalization (scheme/host case, default
                           port, empty path), query and fragment untouched.
    * canonicalize_url   - crawl identity: fragment dropped, only pagination
                           query parameters kept (sorted by name).
"""

import re
from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

PAGINATION_PARAMS = ("page", "p", "paged")

DEFAULT_PORTS = {"http": "80", "https": "443"}

SKIP_EXTENSIONS = {
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".css", ".js", ".json", ".xml", ".txt", ".zip", ".rar", ".gz",
    ".mp3", ".mp4", ".avi", ".mov", ".wmv", ".doc", ".docx", ".xls",
    ".xlsx", ".ppt", ".pptx", ".woff", ".woff2", ".ttf", ".eot",
}

_NUMERIC_SEGMENT = re.compile(r"^\d+$")
_UUID_SEGMENT = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_HEX_SEGMENT = re.compile(r"^[0-9a-f]{16,}$", re.IGNORECASE)
LONG_SLUG_MIN_LENGTH = 40
LONG_SLUG_MIN_HYPHENS = 4


def normalize_url(raw: str, base: Optional[str] = None) -> Optional[str]:
    """Resolve ``raw`` (optionally against ``base``) and normalize it.

    Returns None when the value cannot be turned into an absolute URL.
    """
    if raw is None:
        return None
    candidate = raw.strip()
    if not candidate:
        return None
    try:
        if base:
            candidate = urljoin(base, candidate)
        parts = urlsplit(candidate)
        scheme = parts.scheme.lower()
        if not scheme:
            return None
        if scheme in ("http", "https"):
            if not parts.hostname:
                return None
            host = parts.hostname.lower()
            port = parts.port
        else:
            return urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment))
    except ValueError:
        return None

    netloc = host
    if ":" in host:
        netloc = f"[{host}]"
    if port is not None and str(port) != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def canonical_query(query: str) -> str:
    """Keep only pagination params, sorted by name (stable for repeats)."""
    kept = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key in PAGINATION_PARAMS
    ]
    kept.sort(key=lambda item: item[0])
    return urlencode(kept)


def canonicalize_url(raw: str, base: Optional[str] = None) -> Optional[str]:
    """Crawl identity of a URL. Idempotent."""
    normalized = normalize_url(raw, base)
    if normalized is None:
        return None
    parts = urlsplit(normalized)
    if parts.scheme not in ("http", "https"):
        return strip_fragment(normalized)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, canonical_query(parts.query), ""))


def canonical_or_self(url: str) -> str:
    return canonicalize_url(url) or url


def alias_key(url: str) -> str:
    """Canonical identity with an explicit first page (?page=1) folded away."""
    canonical = canonical_or_self(url)
    parts = urlsplit(canonical)
    if not parts.query:
        return canonical
    kept = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if value != "1"]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), ""))


def _generalize_segment(segment: str) -> str:
    if _NUMERIC_SEGMENT.match(segment):
        return "{id}"
    if _UUID_SEGMENT.match(segment):
        return "{uuid}"
    if _HEX_SEGMENT.match(segment):
        return "{hash}"
    if len(segment) >= LONG_SLUG_MIN_LENGTH and segment.count("-") >= LONG_SLUG_MIN_HYPHENS:
        return "{slug}"
    return segment


def surface_pattern(url: str) -> str:
    """Structural template of a URL used for surface sampling.

    /blog/123 and /blog/456 share "/blog/{id}". Pagination params survive so
    /list?page=2 stays distinct from /list.
    """
    canonical = canonicalize_url(url) or url
    parts = urlsplit(canonical)
    segments = [_generalize_segment(segment) for segment in parts.path.split("/")]
    pattern = "/".join(segments) or "/"
    if parts.query:
        pattern = f"{pattern}?{parts.query}"
    return f"{parts.netloc}{pattern}"


def host_of(url: str) -> str:
    """Lowercased host including a non-default port, '' when unparseable."""
    normalized = normalize_url(url)
    if not normalized:
        return ""
    return urlsplit(normalized).netloc.lower()


def origin_of(url: str) -> str:
    normalized = normalize_url(url)
    if not normalized:
        return ""
    parts = urlsplit(normalized)
    return f"{parts.scheme}://{parts.netloc}"


def path_of(url: str) -> str:
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return "/"


def path_depth(url: str) -> int:
    return len([segment for segment in path_of(url).split("/") if segment])


def is_homepage(url: str) -> bool:
    return path_of(url) in ("", "/")


def is_http_url(url: str) -> bool:
    try:
        return urlsplit(url).scheme.lower() in ("http", "https")
    except ValueError:
        return False


def is_crawlable_url(url: str) -> bool:
    """Skip non-HTML resources by extension."""
    parts = urlsplit(url)
    path_lower = parts.path.lower()
    for ext in SKIP_EXTENSIONS:
        if path_lower.endswith(ext):
            return False
    return parts.scheme in ("http", "https")


def clean_patterns(patterns: Iterable[str]) -> List[str]:
    return [pattern.strip() for pattern in patterns if pattern and pattern.strip()]


def matches_any(url: str, patterns: Iterable[str]) -> bool:
    """Substring match against any non-blank pattern."""
    return any(pattern in url for pattern in clean_patterns(patterns))


def is_blocked_by_robots(url: str, rules: Iterable[str]) -> bool:
    rules = list(rules)
    if not rules:
        return False
    try:
        path = urlsplit(url).path or "/"
    except ValueError:
        return False
    return any(path.startswith(rule) for rule in rules)


def unique_sorted(values: Iterable[str]) -> List[str]:
    return sorted(set(values))
