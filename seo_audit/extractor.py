"""
Page extraction: raw HTML -> PageExtract.

Pure functions only; nothing here touches the network.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Set, Tuple

from bs4 import BeautifulSoup, SoupStrainer
from bs4.element import Tag

from .config import FIRST_VIEWPORT_CHARS, LARGE_IMAGE_PIXELS, SECURITY_HEADERS
from .models import HeadingItem, OutlinkExternal, OutlinkInternal, PageExtract, SchemaError
from .text import normalize_text
from .urls import host_of, normalize_url

logger = logging.getLogger("seo_audit.extractor")

NOISE_SELECTORS = "nav,header,footer,aside,.menu,.nav,.footer"
PREFERRED_MAIN_SELECTORS = ("main", "article", "#content")
FALLBACK_MAIN_SELECTORS = ("section", "div", "main", "article", "body")

NAV_LIKELY_RE = re.compile(r"\b(nav|menu|header|footer|breadcrumbs?)\b", re.IGNORECASE)
TITLE_SEGMENT_RE = re.compile(r"[|\-–—•]")
COPYRIGHT_RE = re.compile(r"(?:©|copyright)\s*\d{2,4}\s*(.+)$", re.IGNORECASE)
LEADING_INT_RE = re.compile(r"^\s*(\d+)")

SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
ORG_TYPES = ("Organization", "LocalBusiness")


def _attr(element: Tag, name: str) -> str:
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _attr_equals(name: str, expected: str):
    def match(tag: Tag) -> bool:
        return _attr(tag, name).lower() == expected
    return match


def _has_rel(tag: Tag, rel: str) -> bool:
    values = tag.get("rel") or []
    if isinstance(values, str):
        values = values.split()
    return rel in [value.lower() for value in values]


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> Optional[str]:
    tag = soup.find(lambda t: t.name == "meta" and _attr(t, attr).lower() == value)
    if tag is None or tag.get("content") is None:
        return None
    return _attr(tag, "content")


def _parse_int(raw: str) -> Optional[int]:
    match = LEADING_INT_RE.match(raw or "")
    return int(match.group(1)) if match else None


def is_nav_likely(element: Tag) -> bool:
    """True when any ancestor looks like navigation by tag, id or class."""
    chain = []
    for parent in element.parents:
        if not isinstance(parent, Tag) or isinstance(parent, BeautifulSoup):
            continue
        chain.append(f"{parent.name} {_attr(parent, 'id')} {_attr(parent, 'class')}")
    return bool(NAV_LIKELY_RE.search(" ".join(chain).lower()))


def _resolve_href(element: Tag, base_url: str) -> Optional[str]:
    href = _attr(element, "href")
    if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
        return None
    return normalize_url(href, base_url)


def collect_link_targets(html: str, final_url: str) -> List[str]:
    """Internal link targets of a page, in document order, without fragments.

    Lightweight variant used by the crawler to grow its frontier.
    """
    soup = BeautifulSoup(html, "lxml", parse_only=SoupStrainer("a"))
    final_host = host_of(final_url)
    targets: List[str] = []
    seen: Set[str] = set()
    for element in soup.find_all("a", href=True):
        resolved = _resolve_href(element, final_url)
        if not resolved or host_of(resolved) != final_host:
            continue
        resolved = resolved.split("#", 1)[0]
        if resolved not in seen:
            seen.add(resolved)
            targets.append(resolved)
    return targets


def _collect_outlinks(soup: BeautifulSoup, final_url: str):
    final_host = host_of(final_url)
    internal: Dict[Tuple[str, str, str, bool], int] = {}
    external: Dict[Tuple[str, str, str], int] = {}
    internal_targets: Set[str] = set()
    external_targets: Set[str] = set()

    for element in soup.find_all("a", href=True):
        resolved = _resolve_href(element, final_url)
        if not resolved:
            continue
        anchor = normalize_text(element.get_text(" "))
        rel = normalize_text(_attr(element, "rel"))
        if host_of(resolved) == final_host:
            internal_targets.add(resolved)
            key = (resolved, anchor, rel, is_nav_likely(element))
            internal[key] = internal.get(key, 0) + 1
        else:
            external_targets.add(resolved)
            key = (resolved, anchor, rel)
            external[key] = external.get(key, 0) + 1

    outlinks_internal = [
        OutlinkInternal(target_url=t, anchor_text=a, rel=r, is_nav_likely=n, occurrences=count)
        for (t, a, r, n), count in internal.items()
    ]
    outlinks_internal.sort(key=lambda link: (link.target_url, link.anchor_text, link.is_nav_likely, link.rel))
    outlinks_external = [
        OutlinkExternal(target_url=t, anchor_text=a, rel=r, occurrences=count)
        for (t, a, r), count in external.items()
    ]
    outlinks_external.sort(key=lambda link: (link.target_url, link.anchor_text, link.rel))
    return outlinks_internal, outlinks_external, sorted(internal_targets), sorted(external_targets)


def _collect_mixed_content(soup: BeautifulSoup, final_url: str) -> List[str]:
    if not final_url.startswith("https://"):
        return []
    candidates: Set[str] = set()
    for tag_name, attr in (("img", "src"), ("script", "src"), ("link", "href"), ("iframe", "src")):
        for element in soup.find_all(tag_name):
            raw = _attr(element, attr)
            if not raw:
                continue
            resolved = normalize_url(raw, final_url)
            if resolved and resolved.startswith("http://"):
                candidates.add(resolved)
    return sorted(candidates)


def _collect_images(soup: BeautifulSoup, final_url: str):
    images = soup.find_all("img")
    missing_alt = 0
    large: Set[str] = set()
    for img in images:
        if not _attr(img, "alt"):
            missing_alt += 1
        src = _attr(img, "src")
        width = _parse_int(_attr(img, "width"))
        height = _parse_int(_attr(img, "height"))
        if not src or width is None or height is None:
            continue
        if width * height >= LARGE_IMAGE_PIXELS:
            resolved = normalize_url(src, final_url)
            if resolved:
                large.add(resolved)
    return len(images), missing_alt, sorted(large)


def _collect_schema_types(value: Any, types: Set[str]) -> None:
    if isinstance(value, list):
        for item in value:
            _collect_schema_types(item, types)
        return
    if not isinstance(value, dict):
        return
    at_type = value.get("@type")
    if isinstance(at_type, str):
        types.add(at_type)
    elif isinstance(at_type, list):
        types.update(item for item in at_type if isinstance(item, str))
    if value.get("@graph"):
        _collect_schema_types(value["@graph"], types)


def parse_jsonld(soup: BeautifulSoup):
    """Parse every JSON-LD block independently.

    Returns (raw_blocks, parsed, types, errors); one broken block never hides
    the others.
    """
    raw_blocks: List[str] = []
    parsed: List[Any] = []
    types: Set[str] = set()
    errors: List[SchemaError] = []

    scripts = soup.find_all(_attr_equals("type", "application/ld+json"))
    for index, script in enumerate(scripts):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        raw_blocks.append(raw)
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.debug(f"JSON-LD block {index} failed to parse: {e}")
            errors.append(SchemaError(message=str(e), pointer=f"script[type=application/ld+json][{index}]"))
            continue
        if isinstance(data, (dict, list)):
            parsed.append(data)
        _collect_schema_types(data, types)

    return raw_blocks, parsed, sorted(types), errors


def iter_schema_objects(parsed: List[Any]):
    """Every dict inside the parsed JSON-LD, descending into lists and @graph."""
    stack = list(reversed(parsed))
    while stack:
        value = stack.pop()
        if isinstance(value, list):
            stack.extend(reversed(value))
        elif isinstance(value, dict):
            yield value
            if value.get("@graph"):
                stack.append(value["@graph"])


def has_schema_type(record: dict, expected: str) -> bool:
    at_type = record.get("@type")
    if isinstance(at_type, str):
        return at_type == expected
    if isinstance(at_type, list):
        return expected in at_type
    return False


def extract_main_text(html: str) -> str:
    """Longest main/article/#content text after removing navigation noise."""
    soup = BeautifulSoup(html, "lxml")
    root = soup.body or soup
    for element in root.select(NOISE_SELECTORS):
        element.extract()

    best = ""
    for selector in PREFERRED_MAIN_SELECTORS:
        for element in root.select(selector):
            text = normalize_text(element.get_text(" "))
            if len(text) > len(best):
                best = text
    if best:
        return best

    candidates = list(root.select(",".join(FALLBACK_MAIN_SELECTORS)))
    if isinstance(root, Tag) and root.name == "body":
        candidates.append(root)
    for element in candidates:
        text = normalize_text(element.get_text(" "))
        if len(text) > len(best):
            best = text
    return best


def _collect_brand_signals(soup: BeautifulSoup, title_text: str, schema_parsed: List[Any]) -> List[str]:
    signals: Set[str] = set()

    def add(candidate: str) -> None:
        candidate = normalize_text(candidate)
        if 2 <= len(candidate) <= 80:
            signals.add(candidate)

    for segment in TITLE_SEGMENT_RE.split(title_text):
        add(segment)

    footer = soup.find("footer")
    if footer is not None:
        match = COPYRIGHT_RE.search(normalize_text(footer.get_text(" ")))
        if match:
            add(match.group(1))

    for img in soup.find_all("img", alt=True):
        alt = normalize_text(_attr(img, "alt"))
        if "logo" in alt.lower():
            add(alt)

    for record in iter_schema_objects(schema_parsed):
        if any(has_schema_type(record, org) for org in ORG_TYPES) and isinstance(record.get("name"), str):
            add(record["name"])

    return sorted(signals)


def _count_links_without_name(soup: BeautifulSoup) -> int:
    count = 0
    for element in soup.find_all("a", href=True):
        if normalize_text(element.get_text(" ")):
            continue
        if _attr(element, "aria-label") or _attr(element, "title"):
            continue
        if any(_attr(img, "alt") for img in element.find_all("img")):
            continue
        count += 1
    return count


def extract_page_data(html: str, requested_url: str, final_url: str, status: int,
                      response_headers: Optional[Dict[str, str]] = None,
                      response_ms: Optional[float] = None) -> PageExtract:
    soup = BeautifulSoup(html or "", "lxml")
    headers = {key.lower(): value for key, value in (response_headers or {}).items()}

    title_tag = soup.find("title")
    title = normalize_text(title_tag.get_text()) if title_tag else ""
    title = title or None

    meta_description = _meta_content(soup, "name", "description")
    meta_robots = _meta_content(soup, "name", "robots")

    canonical_tag = soup.find(lambda t: t.name == "link" and _has_rel(t, "canonical"))
    canonical = (_attr(canonical_tag, "href") or None) if canonical_tag is not None else None
    canonical_url = (normalize_url(canonical, final_url) or canonical) if canonical else None

    og_image_raw = _meta_content(soup, "property", "og:image")
    og_image = (normalize_url(og_image_raw, final_url) or og_image_raw) if og_image_raw else None

    hreflang_links = sorted(
        normalize_url(_attr(tag, "href"), final_url) or _attr(tag, "href")
        for tag in soup.find_all(lambda t: t.name == "link" and _has_rel(t, "alternate") and t.get("hreflang"))
        if _attr(tag, "href")
    )

    headings = [
        HeadingItem(level=int(element.name[1]), text=normalize_text(element.get_text(" ")), order=index + 1)
        for index, element in enumerate(soup.find_all(["h1", "h2", "h3"]))
    ]

    outlinks_internal, outlinks_external, internal_targets, external_targets = _collect_outlinks(soup, final_url)
    image_count, missing_alt, large_images = _collect_images(soup, final_url)
    raw_blocks, parsed, schema_types, schema_errors = parse_jsonld(soup)

    main_text = extract_main_text(html or "")
    html_tag = soup.find("html")
    html_lang = (_attr(html_tag, "lang") or None) if html_tag is not None else None

    return PageExtract(
        url=requested_url,
        final_url=final_url,
        status=status,
        title=title,
        meta_description=meta_description,
        meta_robots=meta_robots,
        canonical=canonical,
        canonical_url=canonical_url,
        hreflang_links=hreflang_links,
        og_title=_meta_content(soup, "property", "og:title"),
        og_description=_meta_content(soup, "property", "og:description"),
        og_image=og_image,
        headings=headings,
        internal_targets=internal_targets,
        external_targets=external_targets,
        outlinks_internal=outlinks_internal,
        outlinks_external=outlinks_external,
        image_count=image_count,
        images_missing_alt=missing_alt,
        large_image_candidates=large_images,
        jsonld_blocks=raw_blocks,
        jsonld_parsed=parsed,
        schema_types=schema_types,
        schema_errors=schema_errors,
        is_https=final_url.startswith("https://"),
        mixed_content_candidates=_collect_mixed_content(soup, final_url),
        security_headers_present=[header for header in SECURITY_HEADERS if headers.get(header)],
        security_headers_missing=[header for header in SECURITY_HEADERS if not headers.get(header)],
        main_text=main_text,
        word_count_main=len(main_text.split()),
        first_viewport_text=main_text[:FIRST_VIEWPORT_CHARS],
        heading_text_concat=" ".join(item.text for item in headings if item.text),
        brand_signals=_collect_brand_signals(soup, title or "", parsed),
        html_lang=html_lang,
        links_without_accessible_name=_count_links_without_name(soup),
        x_robots_tag=headers.get("x-robots-tag"),
        response_ms=response_ms,
    )
