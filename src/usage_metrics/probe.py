from __future__ import annotations
import logging
from typing import Optional

import requests

from .errors import ProbeError

logger = logging.getLogger(__name__)


def probe(url: str, *, timeout: float = 10.0, session: Optional[requests.Session] = None) -> int:
    """One GET against `url`; anything other than a 200 raises ProbeError."""
    http = session or requests
    try:
        resp = http.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise ProbeError(f"GET {url} failed: {e}") from e

    logger.info("GET %s -> %d", url, resp.status_code)
    if resp.status_code != 200:
        raise ProbeError(f"GET {url} returned {resp.status_code}, expected 200")
    return resp.status_code
