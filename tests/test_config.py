import json

import pytest

from seo_audit.config import DEFAULTS, build_inputs, load_config, validate_inputs
from seo_audit.errors import InvalidAuditInputs
from seo_audit.models import AuditInputs, FocusBrief


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config(environ={}) == DEFAULTS

    def test_file_then_environment(self, tmp_path):
        path = tmp_path / "seo-audit.config.json"
        path.write_text(json.dumps({"defaults": {"max_pages": 20, "coverage": "full", "bogus": 1}}),
                        encoding="utf-8")
        config = load_config(str(path), environ={
            "SEO_AUDIT_MAX_PAGES": "50",
            "SEO_AUDIT_RESPECT_ROBOTS": "false",
            "SEO_AUDIT_CRAWL_DEPTH": "deep",
        })
        assert config["max_pages"] == 50
        assert config["coverage"] == "full"
        assert config["respect_robots"] is False
        assert config["crawl_depth"] == 3
        assert "bogus" not in config

    def test_cwd_file_is_picked_up(self, tmp_path, monkeypatch):
        (tmp_path / "seo-audit.config.json").write_text(json.dumps({"timeout_ms": 5000}), encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        assert load_config(environ={})["timeout_ms"] == 5000

    def test_unreadable_file_falls_back(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        assert load_config(str(path), environ={}) == DEFAULTS


class TestBuildInputs:
    def test_overrides_and_focus(self):
        inputs = build_inputs(
            "https://example.com",
            {"max_pages": 20},
            max_pages=None,
            coverage="quick",
            focus_url="/cennik",
            focus_keyword="cennik terapii",
        )
        assert inputs.max_pages == 20
        assert inputs.coverage == "quick"
        assert inputs.focus == FocusBrief(primary_url="/cennik", primary_keyword="cennik terapii")

    def test_generic_anchors_tuple(self):
        inputs = build_inputs("https://example.com", {"generic_anchors": ["więcej", "here"]})
        assert inputs.generic_anchors == ("więcej", "here")


class TestValidateInputs:
    def test_normalizes_target_and_focus(self):
        inputs = validate_inputs(AuditInputs(target="HTTPS://Example.com", focus=FocusBrief(primary_url="/cennik")))
        assert inputs.target == "https://example.com/"
        assert inputs.focus_url == "https://example.com/cennik"

    def test_collects_every_problem(self):
        with pytest.raises(InvalidAuditInputs) as excinfo:
            validate_inputs(AuditInputs(target="example.com", coverage="deep", max_pages=0, crawl_depth=0))
        assert len(excinfo.value.problems) == 4
        assert "target must be an absolute http(s) URL" in str(excinfo.value)

    def test_focus_must_share_origin(self):
        inputs = AuditInputs(target="https://example.com/", focus=FocusBrief(primary_url="https://other.org/x"))
        with pytest.raises(InvalidAuditInputs, match="origin"):
            validate_inputs(inputs)

    def test_limits(self):
        with pytest.raises(InvalidAuditInputs):
            validate_inputs(AuditInputs(target="https://example.com/", max_pages=5001))
        with pytest.raises(InvalidAuditInputs):
            validate_inputs(AuditInputs(target="https://example.com/", timeout_ms=0))

    def test_booleans_are_not_counts(self):
        with pytest.raises(InvalidAuditInputs) as excinfo:
            validate_inputs(AuditInputs(target="https://example.com/", max_pages=True, crawl_depth=False))
        assert len(excinfo.value.problems) == 2

    def test_invalid_inputs_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_inputs(AuditInputs(target="ftp://example.com/"))
