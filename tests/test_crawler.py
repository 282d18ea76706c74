import pytest
from conftest import html_page, make_inputs

from seo_audit.crawler import CrawlerEngine, dedupe_by_final_url, visit_key
from seo_audit.errors import AuditCancelled, NoPagesCrawled
from seo_audit.progress import CancelToken

HOME = "https://example.com/"


def links(*hrefs):
    return "".join(f'<a href="{href}">{href}</a>' for href in hrefs)


def crawl(session, seeds=(HOME,), max_workers=1, robots_disallow=None, cancel_token=None, **inputs):
    engine = CrawlerEngine(
        make_inputs(HOME, **inputs),
        session=session,
        robots_disallow=robots_disallow,
        cancel_token=cancel_token,
        max_workers=max_workers,
    )
    return engine.crawl(list(seeds))


def fetched_urls(result):
    return [page.url for page in result.pages]


class TestCoverageModes:
    def test_quick_fetches_seeds_only(self, site, session):
        site.page(HOME, html_page(body=links("/a", "/b")))
        site.page("https://example.com/a", html_page())
        site.page("https://example.com/b", html_page())
        result = crawl(session, seeds=[HOME, "https://example.com/a", "https://example.com/b"],
                       coverage="quick", max_pages=2)
        assert fetched_urls(result) == [HOME, "https://example.com/a"]

    def test_full_respects_depth(self, site, session):
        site.page(HOME, html_page(body=links("/l1")))
        site.page("https://example.com/l1", html_page(body=links("/l2")))
        site.page("https://example.com/l2", html_page(body=links("/l3")))
        site.page("https://example.com/l3", html_page())
        result = crawl(session, coverage="full", crawl_depth=2)
        assert fetched_urls(result) == [HOME, "https://example.com/l1", "https://example.com/l2"]
        assert max(page.depth for page in result.pages) <= 2
        assert session.count("GET", "https://example.com/l3") == 0

    def test_full_respects_max_pages(self, site, session):
        site.page(HOME, html_page(body=links(*[f"/p{i}" for i in range(10)])))
        for i in range(10):
            site.page(f"https://example.com/p{i}", html_page())
        result = crawl(session, coverage="full", max_pages=4, max_workers=3)
        assert len(result.events) == 4

    def test_surface_samples_one_url_per_template(self, site, session):
        site.page(HOME, html_page(body=links("/blog/1", "/blog/2", "/blog/3", "/blog?page=2")))
        for path in ("/blog/1", "/blog/2", "/blog/3", "/blog?page=2"):
            site.page(f"https://example.com{path}", html_page())
        result = crawl(session, coverage="surface")
        assert fetched_urls(result) == [HOME, "https://example.com/blog/1", "https://example.com/blog?page=2"]

    def test_focus_neighborhood_bypasses_sampling(self, site, session):
        site.page(HOME, html_page(body=links("/blog/1", "/blog/2", "/blog/3", "/blog?page=2")))
        site.page("https://example.com/blog/2", html_page(body=links("/blog/3", "/blog/4")))
        for path in ("/blog/1", "/blog/3", "/blog/4", "/blog?page=2"):
            site.page(f"https://example.com{path}", html_page())
        result = crawl(session, coverage="surface", focus_url="https://example.com/blog/2")

        assert fetched_urls(result) == [
            "https://example.com/blog/2",
            "https://example.com/blog/3",
            "https://example.com/blog/4",
            HOME,
            "https://example.com/blog?page=2",
        ]
        assert session.count("GET", "https://example.com/blog/1") == 0

    def test_focus_link_skipped_in_same_batch_is_still_fetched(self, site, session):
        site.page(HOME, html_page())
        site.page("https://example.com/blog/2", html_page(body=links("/blog/3")))
        site.page("https://example.com/blog/1", html_page())
        site.page("https://example.com/blog/3", html_page())
        result = crawl(
            session,
            seeds=[HOME, "https://example.com/blog/1", "https://example.com/blog/3"],
            coverage="surface",
            focus_url="https://example.com/blog/2",
            max_workers=5,
        )

        assert "https://example.com/blog/3" in fetched_urls(result)
        assert session.count("GET", "https://example.com/blog/3") == 1
        assert session.count("GET", "https://example.com/blog/1") == 0

    def test_filtered_focus_links_do_not_use_neighborhood_slots(self, site, session):
        blocked = [f"/admin/x{i}" for i in range(30)]
        site.page(HOME, html_page())
        site.page("https://example.com/blog/2", html_page(body=links(*blocked, "/blog/9")))
        site.page("https://example.com/blog/9", html_page())
        result = crawl(
            session,
            coverage="surface",
            focus_url="https://example.com/blog/2",
            robots_disallow=["/admin"],
        )

        assert fetched_urls(result) == ["https://example.com/blog/2", "https://example.com/blog/9", HOME]
        assert not any(url.startswith("https://example.com/admin") for _, url in session.calls)


class TestCrawlBehaviour:
    def test_same_url_fetched_once(self, site, session):
        site.page(HOME, html_page(body=links("/about", "/about#team", "/kontakt")))
        site.page("https://example.com/kontakt", html_page(body=links("/about", "/")))
        site.page("https://example.com/about", html_page())
        crawl(session, coverage="full")
        assert session.count("GET", "https://example.com/about") == 1
        assert session.count("GET", HOME) == 1

    def test_tracking_variants_collapse_after_crawl(self, site, session):
        site.page(HOME, html_page(body=links("/about", "/about?utm_source=newsletter")))
        site.page("https://example.com/about", html_page())
        site.page("https://example.com/about?utm_source=newsletter", html_page())
        result = crawl(session, coverage="full")
        assert len(result.pages) == 3
        assert [page.url for page in dedupe_by_final_url(result.pages)] == [HOME, "https://example.com/about"]

    def test_redirect_records_final_url(self, site, session):
        site.redirect("https://example.com/old", "https://example.com/new")
        site.page("https://example.com/new", html_page())
        result = crawl(session, seeds=["https://example.com/old"], coverage="quick")
        page = result.pages[0]
        assert page.url == "https://example.com/old"
        assert page.final_url == "https://example.com/new"
        assert page.status == 200

    def test_fetch_errors_do_not_abort(self, site, session):
        site.page(HOME, html_page(body=links("/broken", "/ok")))
        site.fail("https://example.com/broken")
        site.page("https://example.com/ok", html_page())
        result = crawl(session, coverage="full")

        assert fetched_urls(result) == [HOME, "https://example.com/ok"]
        errors = [event for event in result.events if event.kind == "fetch_error"]
        assert [event.url for event in errors] == ["https://example.com/broken"]
        assert errors[0].error.startswith("Connection error")

    def test_http_errors_are_pages_not_failures(self, site, session):
        site.page(HOME, html_page(body=links("/missing")))
        result = crawl(session, coverage="full")
        statuses = {page.url: page.status for page in result.pages}
        assert statuses["https://example.com/missing"] == 404

    def test_filters_external_excluded_and_blocked(self, site, session):
        site.page(HOME, html_page(body=links("https://other.org/x", "/admin/panel", "/tag/seo", "/ok", "/file.pdf")))
        site.page("https://example.com/ok", html_page())
        result = crawl(session, coverage="full", exclude_patterns=("/tag/",), robots_disallow=["/admin"])
        assert fetched_urls(result) == [HOME, "https://example.com/ok"]

    def test_non_html_is_not_expanded(self, site, session):
        site.page(HOME, '{"links": "<a href=\\"/x\\">x</a>"}', content_type="application/json")
        result = crawl(session, coverage="full")
        assert result.pages[0].html == ""
        assert session.count("GET", "https://example.com/x") == 0

    def test_progress_callback(self, site, session):
        site.page(HOME, html_page())
        events = []
        engine = CrawlerEngine(make_inputs(HOME, coverage="quick"), session=session, max_workers=1)
        engine.crawl([HOME], progress_callback=events.append)
        assert events == [{
            "type": "page_done",
            "url": HOME,
            "statusCode": 200,
            "pagesScanned": 1,
            "crawlLimit": 100,
            "queueSize": 0,
        }]

    def test_zero_pages_is_fatal(self, site, session):
        site.fail(HOME)
        with pytest.raises(NoPagesCrawled):
            crawl(session)

    def test_cancelled_before_start(self, site, session):
        site.page(HOME, html_page())
        token = CancelToken()
        token.cancel()
        with pytest.raises(AuditCancelled):
            crawl(session, cancel_token=token)
        assert session.calls == []


class TestHelpers:
    def test_visit_key_keeps_query_drops_fragment(self):
        assert visit_key("HTTPS://Example.com/a?utm_source=x#top") == "https://example.com/a?utm_source=x"
