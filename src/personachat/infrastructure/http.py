from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


def build_session(total_retries: int = 2, allowed_methods=("GET",)) -> requests.Session:
    """Pooled session retrying transient failures.

    ``raise_on_status`` is off so the last response is handed back to the
    caller once retries are exhausted and its status can be reported.
    """
    session = requests.Session()
    retry = Retry(
        total=total_retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(allowed_methods),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
