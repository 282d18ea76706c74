import pytest

from seo_audit.urls import (
    alias_key, canonicalize_url, host_of, is_blocked_by_robots, is_crawlable_url,
    is_homepage, matches_any, normalize_url, path_depth, surface_pattern,
)


class TestNormalizeUrl:
    def test_lowercases_scheme_and_host(self):
        assert normalize_url("HTTPS://Example.COM") == "https://example.com/"

    def test_drops_default_port_only(self):
        assert normalize_url("https://example.com:443/a") == "https://example.com/a"
        assert normalize_url("http://example.com:80/a") == "http://example.com/a"
        assert normalize_url("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_resolves_relative_against_base(self):
        assert normalize_url("../b?x=1#f", "https://example.com/a/c") == "https://example.com/b?x=1#f"

    def test_keeps_query_and_fragment(self):
        assert normalize_url("https://example.com/a?utm_source=x#top") == "https://example.com/a?utm_source=x#top"

    @pytest.mark.parametrize("raw", ["", "   ", "/relative/only", "http://"])
    def test_rejects_unresolvable(self, raw):
        assert normalize_url(raw) is None

    def test_non_http_schemes_pass_through(self):
        assert normalize_url("mailto:hello@example.com") == "mailto:hello@example.com"


class TestCanonicalizeUrl:
    def test_drops_tracking_params_and_fragment(self):
        assert canonicalize_url("https://example.com/a?utm_source=x&page=2#top") == "https://example.com/a?page=2"

    def test_pagination_params_sorted_by_name(self):
        assert canonicalize_url("https://example.com/a?page=3&p=2&sort=asc") == "https://example.com/a?p=2&page=3"

    def test_idempotent(self):
        once = canonicalize_url("HTTP://Example.com:80/list?paged=4&fbclid=1#x")
        assert once == "http://example.com/list?paged=4"
        assert canonicalize_url(once) == once

    def test_relative_with_base(self):
        assert canonicalize_url("kontakt?utm_medium=mail", "https://example.com/o-nas/") == \
            "https://example.com/o-nas/kontakt"


class TestAliasKey:
    def test_first_page_folds_into_bare_url(self):
        assert alias_key("https://example.com/szkolenia?page=1") == "https://example.com/szkolenia"

    def test_later_pages_stay_distinct(self):
        assert alias_key("https://example.com/szkolenia?page=2") == "https://example.com/szkolenia?page=2"


class TestSurfacePattern:
    def test_numeric_segments_collapse(self):
        assert surface_pattern("https://example.com/blog/123") == "example.com/blog/{id}"
        assert surface_pattern("https://example.com/blog/456") == surface_pattern("https://example.com/blog/123")

    def test_uuid_and_hash_segments(self):
        assert surface_pattern("https://example.com/o/0b7c5d3e-1f2a-4b3c-8d9e-0a1b2c3d4e5f") == "example.com/o/{uuid}"
        assert surface_pattern("https://example.com/f/a1b2c3d4e5f60718") == "example.com/f/{hash}"

    def test_long_slugs_collapse(self):
        slug = "jak-wybrac-dobrego-terapeute-dla-siebie-i-rodziny"
        assert surface_pattern(f"https://example.com/blog/{slug}") == "example.com/blog/{slug}"

    def test_pagination_survives(self):
        assert surface_pattern("https://example.com/list?page=2") == "example.com/list?page=2"
        assert surface_pattern("https://example.com/list") == "example.com/list"


class TestHelpers:
    def test_host_of(self):
        assert host_of("https://Example.com:8443/x") == "example.com:8443"
        assert host_of("https://example.com:443/x") == "example.com"
        assert host_of("not a url") == ""

    def test_robots_prefix_match(self):
        assert is_blocked_by_robots("https://example.com/admin/users", ["/admin"])
        assert not is_blocked_by_robots("https://example.com/blog", ["/admin"])
        assert not is_blocked_by_robots("https://example.com/admin", [])

    def test_path_helpers(self):
        assert path_depth("https://example.com/") == 0
        assert path_depth("https://example.com/a/b/") == 2
        assert is_homepage("https://example.com")
        assert not is_homepage("https://example.com/a")

    def test_crawlable(self):
        assert is_crawlable_url("https://example.com/oferta")
        assert not is_crawlable_url("https://example.com/cennik.pdf")
        assert not is_crawlable_url("ftp://example.com/a")

    def test_matches_any_ignores_blank_patterns(self):
        assert not matches_any("https://example.com/a", ["", "  "])
        assert matches_any("https://example.com/blog/a", ["/blog/"])
