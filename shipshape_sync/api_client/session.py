"""HTTP session factory for track API calls."""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.util.retry import Retry

from ..config import (
    HTTP_GET_RETRIES,
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
    HTTP_RETRY_BACKOFF_FACTOR,
)

__all__ = ["create_session"]


def _build_retry() -> Retry:
    # GET only; uploads are never retried.
    return Retry(
        total=HTTP_GET_RETRIES,
        backoff_factor=HTTP_RETRY_BACKOFF_FACTOR,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )


def create_session(username: str | None = None, password: str | None = None) -> Session:
    """Return a pooled session that sends basic-auth credentials on every request."""

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/json",
        }
    )
    if username:
        session.auth = HTTPBasicAuth(username, password or "")
    return session
