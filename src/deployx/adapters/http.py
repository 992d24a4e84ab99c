"""HTTP health probe."""

from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 10


def http_health_probe(url: str, *, timeout: float = PROBE_TIMEOUT_SECONDS, session: requests.Session | None = None) -> bool:
    """HEAD the URL; any status below 400 is healthy, network errors are not."""
    client = session or requests
    try:
        response = client.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        logger.debug("health probe %s failed: %s", url, exc)
        return False
    logger.debug("health probe %s -> %s", url, response.status_code)
    return response.status_code < 400
