from conftest import html_page

from seo_audit.extractor import collect_link_targets, extract_main_text, extract_page_data

URL = "https://example.com/oferta"

FULL_PAGE = """<!DOCTYPE html>
<html lang="pl">
<head>
  <title>  Terapia   indywidualna | Ośrodek  </title>
  <meta name="description" content="Opis usługi terapii indywidualnej.">
  <meta name="robots" content="index, follow">
  <meta property="og:title" content="OG title">
  <meta property="og:image" content="/img/og.png">
  <link rel="canonical" href="/oferta">
  <link rel="alternate" hreflang="en" href="/en/offer">
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "Organization", "name": "Ośrodek"}</script>
  <script type="application/ld+json">{"@type": "BreadcrumbList", </script>
  <script type="application/ld+json">{"@graph": [{"@type": ["WebPage", "MedicalBusiness"]}]}</script>
  <script src="http://cdn.example.com/legacy.js"></script>
</head>
<body>
  <nav><a href="/cennik">Cennik</a></nav>
  <main>
    <h1>Terapia indywidualna</h1>
    <h2>Jak pracujemy</h2>
    <h3>Pierwsza sesja</h3>
    <p>Treść główna strony o terapii.</p>
    <a href="/cennik">Cennik</a>
    <a href="/cennik">Cennik</a>
    <a href="/cennik">Cennik</a>
    <a href="/cennik">Cennik</a>
    <a href="/cennik">Cennik</a>
    <a href="/kontakt#form"><img src="/icon.png" alt="Kontakt"></a>
    <a href="/pusty"></a>
    <a href="/aria" aria-label="Zadzwoń"></a>
    <a href="https://partner.org/">Partner</a>
    <a href="mailto:biuro@example.com">Mail</a>
    <img src="/hero.jpg" width="1600" height="900">
    <img src="/small.jpg" alt="Mały" width="100" height="100">
  </main>
  <footer>© 2024 Ośrodek Terapii</footer>
</body>
</html>"""

HEADERS = {
    "Strict-Transport-Security": "max-age=31536000",
    "X-Content-Type-Options": "nosniff",
    "X-Robots-Tag": "noarchive",
}


def extract(html=FULL_PAGE, url=URL, headers=None):
    return extract_page_data(html, url, url, 200, headers if headers is not None else HEADERS, 120.0)


class TestHeadFields:
    def test_title_and_meta(self):
        page = extract()
        assert page.title == "Terapia indywidualna | Ośrodek"
        assert page.meta_description == "Opis usługi terapii indywidualnej."
        assert page.meta_robots == "index, follow"
        assert page.og_title == "OG title"
        assert page.og_image == "https://example.com/img/og.png"
        assert page.html_lang == "pl"

    def test_canonical_is_resolved(self):
        page = extract()
        assert page.canonical == "/oferta"
        assert page.canonical_url == URL

    def test_hreflang(self):
        assert extract().hreflang_links == ["https://example.com/en/offer"]

    def test_missing_title_is_none(self):
        page = extract(html="<html><body><p>x</p></body></html>")
        assert page.title is None
        assert page.html_lang is None


class TestHeadings:
    def test_outline_in_document_order(self):
        headings = extract().headings
        assert [(item.level, item.text, item.order) for item in headings] == [
            (1, "Terapia indywidualna", 1),
            (2, "Jak pracujemy", 2),
            (3, "Pierwsza sesja", 3),
        ]
        assert extract().heading_text_concat == "Terapia indywidualna Jak pracujemy Pierwsza sesja"


class TestLinks:
    def test_repeated_anchor_becomes_one_outlink(self):
        page = extract()
        content_links = [
            link for link in page.outlinks_internal
            if link.target_url == "https://example.com/cennik" and not link.is_nav_likely
        ]
        assert len(content_links) == 1
        assert content_links[0].occurrences == 5
        assert content_links[0].anchor_text == "Cennik"

    def test_nav_links_are_flagged(self):
        nav_links = [link for link in extract().outlinks_internal if link.is_nav_likely]
        assert [(link.target_url, link.occurrences) for link in nav_links] == [("https://example.com/cennik", 1)]

    def test_targets_split_by_host(self):
        page = extract()
        assert page.external_targets == ["https://partner.org/"]
        assert "https://example.com/kontakt#form" in page.internal_targets
        assert not any(target.startswith("mailto:") for target in page.internal_targets + page.external_targets)

    def test_links_without_accessible_name(self):
        # /pusty only; the image alt and aria-label both name their links
        assert extract().links_without_accessible_name == 1

    def test_collect_link_targets_for_crawler(self):
        targets = collect_link_targets(FULL_PAGE, URL)
        assert targets == [
            "https://example.com/cennik",
            "https://example.com/kontakt",
            "https://example.com/pusty",
            "https://example.com/aria",
        ]


class TestSchema:
    def test_broken_block_does_not_hide_others(self):
        page = extract()
        assert page.schema_types == ["MedicalBusiness", "Organization", "WebPage"]
        assert len(page.jsonld_blocks) == 3
        assert len(page.jsonld_parsed) == 2
        assert len(page.schema_errors) == 1
        assert page.schema_errors[0].pointer == "script[type=application/ld+json][1]"

    def test_brand_signals(self):
        signals = extract().brand_signals
        assert "Ośrodek" in signals
        assert "Terapia indywidualna" in signals
        assert "Ośrodek Terapii" in signals


class TestImagesAndSecurity:
    def test_images(self):
        page = extract()
        assert page.image_count == 3
        assert page.images_missing_alt == 1
        assert page.large_image_candidates == ["https://example.com/hero.jpg"]

    def test_mixed_content_only_on_https(self):
        assert extract().mixed_content_candidates == ["http://cdn.example.com/legacy.js"]
        assert extract(url="http://example.com/oferta").mixed_content_candidates == []

    def test_security_headers_case_insensitive(self):
        page = extract()
        assert page.is_https
        assert page.security_headers_present == ["strict-transport-security", "x-content-type-options"]
        assert page.security_headers_missing == [
            "content-security-policy", "x-frame-options", "referrer-policy",
        ]
        assert page.x_robots_tag == "noarchive"
        assert page.response_ms == 120.0


class TestMainText:
    def test_navigation_noise_removed(self):
        text = extract_main_text(FULL_PAGE)
        assert "Treść główna strony o terapii." in text
        assert "© 2024" not in text

    def test_falls_back_to_longest_block(self):
        html = html_page(body="<div>short</div><section>a much longer block of body text</section>")
        assert extract_main_text(html) == "short a much longer block of body text"

    def test_word_count(self):
        page = extract(html=html_page(body="<main>one two three four</main>"))
        assert page.word_count_main == 4
        assert page.first_viewport_text == "one two three four"
