import json

import pytest
from conftest import HOME, FakeSession, make_inputs

from seo_audit.errors import AuditCancelled, InvalidAuditInputs, NoPagesCrawled
from seo_audit.models import PerformanceMetrics
from seo_audit.performance import PerformanceMeasurer
from seo_audit.pipeline import AuditPipeline, build_run_id, iso_timestamp, run_audit
from seo_audit.progress import CancelToken, ProgressStream
from seo_audit.rules import sort_issues


class FakeMeasurer(PerformanceMeasurer):
    def __init__(self, metrics):
        self.metrics = metrics
        self.urls = []

    def measure(self, url):
        self.urls.append(url)
        return self.metrics


def ids(report):
    return [issue.id for issue in report.issues]


class TestAuditPipeline:
    def test_end_to_end(self, small_site, session):
        report = AuditPipeline(make_inputs(HOME, coverage="full"), session=session).run()

        assert report.run_id.startswith("run-")
        assert report.started_at.endswith("Z")
        assert [page.url for page in report.pages] == [
            HOME,
            "https://example.com/kontakt",
            "https://example.com/oferta",
            "https://example.com/missing",
        ]
        assert report.summary.pages_crawled == 4
        assert report.seed_discovery.robots_disallow == ["/admin"]
        assert session.count("GET", "https://example.com/admin/panel") == 0

        assert "broken_internal_links" in ids(report)
        assert "broken_external_links" in ids(report)
        assert "page_not_available" in ids(report)
        assert report.issues == sort_issues(report.issues)
        assert all(issue.tags == ("global",) for issue in report.issues)
        assert report.summary.errors == sum(1 for issue in report.issues if issue.severity == "error")
        assert 0 <= report.summary.score_total < 100
        assert report.summary.internal_links is not None

        # the provided session stays open for the caller
        assert not session.closed
        json.dumps(report.to_dict())

    def test_issue_ids_are_unique_after_consolidation(self, small_site, session):
        report = AuditPipeline(make_inputs(HOME, coverage="full"), session=session).run()
        keys = [(issue.id, issue.severity) for issue in report.issues]
        assert len(keys) == len(set(keys))

    def test_progress_stream(self, small_site, session):
        progress = ProgressStream()
        AuditPipeline(make_inputs(HOME, coverage="full"), session=session, progress=progress).run()
        events = list(progress.events(timeout=0))
        percents = [event.percent for event in events]
        assert percents == sorted(percents)
        assert events[-1].stage == "done"
        assert events[-1].percent == 100
        assert {"discovery", "crawl", "extract", "rules", "scoring"} <= {event.stage for event in events}

    def test_focus_summary_and_measurement(self, small_site, session):
        measurer = FakeMeasurer(PerformanceMetrics(lcp_ms=4800, cls=0.02))
        inputs = make_inputs(HOME, coverage="full", focus_url="/oferta")
        report = AuditPipeline(inputs, session=session, measurer=measurer).run()

        assert measurer.urls == ["https://example.com/oferta"]
        focus = report.summary.focus
        assert focus.primary_url == "https://example.com/oferta"
        assert focus.focus_inlinks_count == 2
        assert "core_web_vitals_poor" in focus.focus_top_issues
        assert focus.focus_uplift_score < 100.0

        cwv = next(issue for issue in report.issues if issue.id == "core_web_vitals_poor")
        assert "focus" in cwv.tags

    def test_measures_start_page_without_focus(self, small_site, session):
        measurer = FakeMeasurer(None)
        run_audit(make_inputs(HOME, coverage="quick"), session=session, measurer=measurer)
        assert measurer.urls == [HOME]

    def test_invalid_inputs_fail_before_network(self, session):
        with pytest.raises(InvalidAuditInputs):
            AuditPipeline(make_inputs("not-a-url"), session=session).run()
        assert session.calls == []

    def test_no_pages_closes_progress_with_failure(self, site, session):
        site.fail(HOME)
        progress = ProgressStream()
        with pytest.raises(NoPagesCrawled):
            AuditPipeline(make_inputs(HOME), session=session, progress=progress).run()
        assert progress.latest.stage == "done"
        assert progress.latest.detail.startswith("failed:")

    def test_cancelled_run(self, small_site, session):
        token = CancelToken()
        token.cancel()
        with pytest.raises(AuditCancelled):
            AuditPipeline(make_inputs(HOME), session=session, cancel_token=token).run()

    def test_owned_session_is_closed(self, small_site, monkeypatch):
        created = []

        def fake_build_session(user_agent, pool_size=16, retries=2):
            created.append(FakeSession(small_site))
            return created[-1]

        monkeypatch.setattr("seo_audit.pipeline.build_session", fake_build_session)
        run_audit(make_inputs(HOME, coverage="quick"))
        assert len(created) == 1
        assert created[0].closed


class TestTimestamps:
    def test_iso_timestamp_and_run_id(self):
        from datetime import datetime, timezone

        moment = datetime(2026, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc)
        assert iso_timestamp(moment) == "2026-03-04T05:06:07.891Z"
        assert build_run_id(moment) == "run-2026-03-04T05-06-07-891Z"
