import threading
from typing import Dict, List, Optional, Tuple

import pytest
import requests

from seo_audit.models import AuditInputs, FocusBrief, HeadingItem, PageExtract


# === FAKE HTTP ===

class FakeResponse:
    def __init__(self, url: str, status_code: int = 200, text: str = "",
                 headers: Optional[Dict[str, str]] = None):
        self.url = url
        self.status_code = status_code
        self.text = text
        self.headers = {key.lower(): value for key, value in (headers or {}).items()}
        self.closed = False

    def close(self):
        self.closed = True


class FakeSite:
    """Routing table for FakeSession: pages, redirects and failing URLs."""

    def __init__(self):
        self.pages: Dict[str, Tuple[int, str, Dict[str, str]]] = {}
        self.redirects: Dict[str, Tuple[str, int]] = {}
        self.failures: Dict[str, Exception] = {}

    def page(self, url: str, body: str = "", status: int = 200,
             headers: Optional[Dict[str, str]] = None, content_type: str = "text/html; charset=utf-8"):
        merged = {"content-type": content_type}
        merged.update(headers or {})
        self.pages[url] = (status, body, merged)
        return self

    def redirect(self, url: str, location: str, status: int = 301):
        self.redirects[url] = (location, status)
        return self

    def fail(self, url: str, error: Optional[Exception] = None):
        self.failures[url] = error or requests.exceptions.ConnectionError(f"refused: {url}")
        return self


class FakeSession:
    """Stands in for requests.Session; never touches the network."""

    def __init__(self, site: FakeSite):
        self.site = site
        self.calls: List[Tuple[str, str]] = []
        self.headers: Dict[str, str] = {}
        self.closed = False
        self._lock = threading.Lock()

    def _record(self, method: str, url: str):
        with self._lock:
            self.calls.append((method, url))

    def _resolve(self, url: str, allow_redirects: bool) -> FakeResponse:
        key = url.split("#", 1)[0]
        if key in self.site.failures:
            raise self.site.failures[key]
        hops = 0
        while key in self.site.redirects:
            location, status = self.site.redirects[key]
            if not allow_redirects:
                return FakeResponse(key, status, "", {"location": location})
            hops += 1
            if hops > 10:
                raise requests.exceptions.TooManyRedirects(url)
            key = location
        if key in self.site.pages:
            status, body, headers = self.site.pages[key]
            return FakeResponse(key, status, body, headers)
        return FakeResponse(key, 404, "not found", {"content-type": "text/html"})

    def get(self, url, timeout=None, allow_redirects=True, stream=False, **kwargs):
        self._record("GET", url)
        return self._resolve(url, allow_redirects)

    def head(self, url, timeout=None, allow_redirects=False, **kwargs):
        self._record("HEAD", url)
        response = self._resolve(url, allow_redirects)
        response.text = ""
        return response

    def close(self):
        self.closed = True

    def count(self, method: str, url: str) -> int:
        return sum(1 for call in self.calls if call == (method, url))


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def session(site):
    return FakeSession(site)


# === BUILDERS ===

def html_page(title: str = "Example page title for tests", body: str = "", head: str = "",
              lang: str = "en") -> str:
    return (
        f'<!DOCTYPE html><html lang="{lang}"><head><title>{title}</title>{head}</head>'
        f"<body>{body}</body></html>"
    )


def make_inputs(target: str = "https://example.com/", **overrides) -> AuditInputs:
    focus_url = overrides.pop("focus_url", None)
    values = dict(target=target, focus=FocusBrief(primary_url=focus_url))
    values.update(overrides)
    return AuditInputs(**values)


def make_page(url: str, final_url: Optional[str] = None, status: int = 200, **fields) -> PageExtract:
    """A healthy page extract; override any field to provoke a single rule."""
    values = dict(
        url=url,
        final_url=final_url or url,
        status=status,
        title="Example page title for tests",
        meta_description="A" * 10 + " meta description long enough to sit inside the band for all rules here.",
        canonical=final_url or url,
        canonical_url=final_url or url,
        headings=[HeadingItem(level=1, text="Example page title", order=1)],
        schema_types=["Organization"],
        is_https=url.startswith("https://"),
        security_headers_present=[
            "strict-transport-security", "content-security-policy", "x-content-type-options",
            "x-frame-options", "referrer-policy",
        ],
        word_count_main=1000,
        html_lang="en",
        inlinks_count=3,
    )
    values.update(fields)
    return PageExtract(**values)


HOME = "https://example.com/"


def build_small_site(site: FakeSite) -> FakeSite:
    """Three linked pages, one dead internal link, one dead partner link."""
    site.page(HOME + "robots.txt", "User-agent: *\nDisallow: /admin\n", content_type="text/plain")
    site.page(HOME + "sitemap.xml", (
        "<urlset><url><loc>https://example.com/oferta</loc></url>"
        "<url><loc>https://example.com/kontakt</loc></url></urlset>"
    ), content_type="application/xml")
    site.page(HOME, html_page(
        title="Ośrodek terapii | Strona główna",
        body=(
            "<main><h1>Ośrodek terapii</h1><p>Pomagamy dorosłym i parom.</p>"
            '<a href="/oferta">Oferta terapii</a> <a href="/kontakt">Kontakt</a> '
            '<a href="/missing">Stara strona</a> <a href="/admin/panel">Panel</a> '
            '<a href="https://partner.org/">Partner</a></main>'
        ),
    ))
    site.page(HOME + "oferta", html_page(
        title="Oferta terapii | Ośrodek",
        body='<main><h1>Oferta terapii</h1><a href="/">Strona główna</a> <a href="/kontakt">Kontakt</a></main>',
    ))
    site.page(HOME + "kontakt", html_page(
        title="Kontakt | Ośrodek terapii",
        body='<main><h1>Kontakt</h1><a href="/oferta">Oferta terapii</a></main>',
    ))
    return site


@pytest.fixture
def small_site(site):
    return build_small_site(site)
