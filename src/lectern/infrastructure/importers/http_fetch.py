from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request

from lectern.core.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "Lectern-Bot/1.0"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRIES = 2

# Retrying these will not change the answer.
_PERMANENT_STATUSES = {400, 401, 403, 404, 410}


def fetch_bytes(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retries: int = DEFAULT_RETRIES,
    backoff_seconds: float = 1.0,
) -> bytes:
    """GET ``url`` with a linear back-off between attempts."""
    last_error: FetchError | None = None
    for attempt in range(max(0, retries) + 1):
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                return response.read()
        except urllib.error.HTTPError as exc:
            last_error = FetchError(f"HTTP {exc.code} fetching {url}", status=int(exc.code))
            if exc.code in _PERMANENT_STATUSES:
                raise last_error from exc
        except (urllib.error.URLError, TimeoutError, ValueError) as exc:
            last_error = FetchError(f"Unable to fetch {url}: {exc}")
        if attempt < retries:
            logger.debug("Retrying %s after attempt %d: %s", url, attempt + 1, last_error)
            time.sleep(backoff_seconds * (attempt + 1))
    assert last_error is not None
    raise last_error
