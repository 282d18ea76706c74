import pytest

from seo_audit.errors import AuditCancelled
from seo_audit.progress import CancelToken, ProgressStream


class TestProgressStream:
    def test_percent_never_decreases(self):
        stream = ProgressStream()
        stream.emit(40, "crawl")
        stream.emit(10, "crawl", "late worker")
        stream.emit(250, "rules")
        assert [event.percent for event in stream.events(timeout=0)] == [40, 40, 100]

    def test_close_emits_done_and_stops_stream(self):
        stream = ProgressStream()
        stream.emit(10, "discovery")
        stream.close("finished")
        stream.emit(50, "crawl")
        events = list(stream.events(timeout=0))
        assert [(event.percent, event.stage) for event in events] == [(10, "discovery"), (100, "done")]
        assert events[-1].detail == "finished"
        assert stream.closed

    def test_close_is_idempotent(self):
        stream = ProgressStream()
        stream.close()
        stream.close("again")
        assert len(list(stream.events(timeout=0))) == 1

    def test_full_buffer_drops_oldest(self):
        stream = ProgressStream(maxsize=2)
        for percent in (10, 20, 30):
            stream.emit(percent, "crawl")
        assert stream.dropped == 1
        assert [event.percent for event in stream.events(timeout=0)] == [20, 30]
        assert stream.latest.percent == 30

    def test_get_times_out_with_none(self):
        assert ProgressStream().get(timeout=0.01) is None


class TestCancelToken:
    def test_raise_if_cancelled(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(AuditCancelled):
            token.raise_if_cancelled()
