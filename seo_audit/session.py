"""Shared HTTP session setup and best-effort text fetching."""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger("seo_audit.session")

MAX_REDIRECTS = 10


def build_session(user_agent: str, pool_size: int = 16, retries: int = 2) -> requests.Session:
    """requests.Session with retry on transient 5xx and a pool sized for the workers."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=0.7,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=frozenset(["GET", "HEAD"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    })
    session.max_redirects = MAX_REDIRECTS
    return session


def fetch_text(session: requests.Session, url: str, timeout: float) -> Optional[str]:
    """GET ``url`` and return its body, or None on any failure or non-2xx."""
    try:
        resp = session.get(url, timeout=timeout, allow_redirects=True)
    except requests.exceptions.RequestException as e:
        logger.debug(f"Fetch failed for {url}: {e}")
        return None
    if not 200 <= resp.status_code < 300:
        logger.debug(f"Fetch of {url} returned {resp.status_code}")
        return None
    return resp.text
