"""
Pluggable page performance measurement.

The pipeline only ever calls ``measure(url)``; a measurer returning None
means "not measured", which never fails the performance gate.
"""

import json
import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from .errors import PerformanceUnavailable
from .models import PerformanceMetrics

logger = logging.getLogger("seo_audit.performance")

LIGHTHOUSE_TIMEOUT_S = 180

AUDIT_KEYS = {
    "lcp_ms": "largest-contentful-paint",
    "inp_ms": "interaction-to-next-paint",
    "cls": "cumulative-layout-shift",
    "tbt_ms": "total-blocking-time",
}


class PerformanceMeasurer(ABC):
    @abstractmethod
    def measure(self, url: str) -> Optional[PerformanceMetrics]:
        ...


class NullPerformanceMeasurer(PerformanceMeasurer):
    """Never measures anything."""

    def measure(self, url: str) -> Optional[PerformanceMetrics]:
        return None


def parse_lighthouse_json(payload: dict) -> PerformanceMetrics:
    """Read lab metrics from Lighthouse CLI output (or a PageSpeed lighthouseResult)."""
    result = payload.get("lighthouseResult") or payload
    audits = result.get("audits") or {}
    values = {}
    for field_name, audit_key in AUDIT_KEYS.items():
        value = (audits.get(audit_key) or {}).get("numericValue")
        values[field_name] = float(value) if isinstance(value, (int, float)) else None
    return PerformanceMetrics(source="lighthouse", **values)


class LighthouseMeasurer(PerformanceMeasurer):
    """Runs the ``lighthouse`` CLI in headless Chrome for one URL."""

    def __init__(self, binary: str = "lighthouse", timeout: float = LIGHTHOUSE_TIMEOUT_S):
        self.binary = binary
        self.timeout = timeout

    def command(self, url: str) -> List[str]:
        return [
            self.binary, url,
            "--output=json",
            "--quiet",
            "--only-categories=performance",
            "--chrome-flags=--headless",
        ]

    def _run(self, url: str) -> dict:
        if shutil.which(self.binary) is None:
            raise PerformanceUnavailable(f"{self.binary} not found on PATH")
        try:
            proc = subprocess.run(
                self.command(url),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise PerformanceUnavailable(f"Lighthouse timed out after {self.timeout}s") from e
        except OSError as e:
            raise PerformanceUnavailable(f"Lighthouse could not start: {e}") from e
        if proc.returncode != 0:
            raise PerformanceUnavailable(f"Lighthouse exited with {proc.returncode}: {proc.stderr[:200]}")
        try:
            return json.loads(proc.stdout)
        except ValueError as e:
            raise PerformanceUnavailable(f"Lighthouse output is not JSON: {e}") from e

    def measure(self, url: str) -> Optional[PerformanceMetrics]:
        try:
            metrics = parse_lighthouse_json(self._run(url))
        except PerformanceUnavailable as e:
            logger.warning(f"Performance not measured for {url}: {e}")
            return None
        logger.info(f"Lighthouse {url}: LCP={metrics.lcp_ms} INP={metrics.inp_ms} CLS={metrics.cls}")
        return metrics
