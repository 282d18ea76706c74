import pytest
from conftest import make_page

from seo_audit.link_graph import build_link_graph, collect_anchor_records
from seo_audit.models import OutlinkInternal

HOME = "https://example.com/"
A = "https://example.com/a"
B = "https://example.com/b"
C = "https://example.com/c"


@pytest.fixture
def pages():
    return [
        make_page(HOME, outlinks_internal=[
            OutlinkInternal(A, "Oferta", is_nav_likely=True),
            OutlinkInternal(A, "Oferta terapii"),
            OutlinkInternal(B, "kliknij", occurrences=2),
        ]),
        make_page(A, outlinks_internal=[
            OutlinkInternal(B, ""),
            OutlinkInternal(HOME, "Home", is_nav_likely=True),
            OutlinkInternal(A + "#top", "self"),
        ]),
        make_page(B),
        make_page(C),
    ]


class TestAnchorRecords:
    def test_self_links_dropped_and_records_sorted(self, pages):
        records = collect_anchor_records(pages)
        assert [(r.source, r.target, r.anchor) for r in records] == [
            (HOME, A, "oferta"),
            (HOME, A, "oferta terapii"),
            (HOME, B, "kliknij"),
            (A, HOME, "home"),
            (A, B, ""),
        ]

    def test_duplicate_triples_merge(self):
        page = make_page(HOME, outlinks_internal=[
            OutlinkInternal(A, "Oferta", is_nav_likely=True, occurrences=2),
            OutlinkInternal(A, "oferta", occurrences=3),
        ])
        records = collect_anchor_records([page])
        assert len(records) == 1
        assert records[0].occurrences == 5
        assert records[0].nav_likely


class TestBuildLinkGraph:
    def test_inlink_counts(self, pages):
        graph = build_link_graph(pages)
        counts = {page.url: page.inlinks_count for page in graph.pages}
        assert counts == {HOME: 1, A: 1, B: 2, C: 0}
        # inputs are not mutated
        assert pages[3].inlinks_count == 3

    def test_summary_snapshot(self, pages):
        summary = build_link_graph(pages).summary
        assert summary.to_dict() == {
            "orphanPagesCount": 1,
            "nearOrphanPagesCount": 2,
            "navLikelyInlinksPercent": 40.0,
            "percentGenericAnchors": 20.0,
            "percentEmptyAnchors": 20.0,
            "topAnchors": [
                {"anchor": "", "count": 1},
                {"anchor": "home", "count": 1},
                {"anchor": "kliknij", "count": 1},
                {"anchor": "oferta", "count": 1},
                {"anchor": "oferta terapii", "count": 1},
            ],
        }

    def test_custom_generic_anchors(self, pages):
        summary = build_link_graph(pages, generic_anchors=("Oferta",)).summary
        assert summary.percent_generic_anchors == 20.0
        stats = build_link_graph(pages, generic_anchors=("Oferta",)).anchor_stats[A]
        assert (stats.total, stats.generic) == (2, 1)

    def test_focus_details(self, pages):
        graph = build_link_graph(pages, focus_url=B)
        assert graph.focus_inlinks_count == 2
        assert [(item.url, item.count) for item in graph.top_inlink_sources_to_focus] == [(HOME, 2), (A, 1)]
        assert graph.focus_sources() == {HOME, A}
        assert graph.focus_anchor_quality.percent_generic_anchors == 50.0
        assert graph.focus_anchor_quality.percent_empty_anchors == 50.0

        stats = graph.anchor_stats[B]
        assert stats.weak_ratio == 1.0
        assert stats.nav_ratio == 0.0

    def test_anchor_histogram_on_pages(self, pages):
        graph = build_link_graph(pages)
        by_url = {page.url: page for page in graph.pages}
        assert [(item.anchor, item.count) for item in by_url[A].inlinks_anchors_top] == [
            ("oferta", 1), ("oferta terapii", 1),
        ]

    def test_without_focus(self, pages):
        graph = build_link_graph(pages)
        assert graph.focus_sources() == set()
        assert graph.top_inlink_sources_to_focus == []
