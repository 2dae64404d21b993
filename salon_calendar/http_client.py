"""HTTP session for the REST backend.

Pattern: requests.Session with connection pooling. Only GET is retried
(urllib3 for HTTP status codes, tenacity for connection errors); POST and
PATCH commit appointments and are sent exactly once.
"""
import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


def _checked(send, timeout: int):
    """Wrap a session method with a default timeout and raise_for_status()."""
    def wrapper(*args, **kwargs):
        kwargs.setdefault("timeout", timeout)
        response = send(*args, **kwargs)
        response.raise_for_status()
        return response
    return wrapper


def create_http_session(
    api_key: Optional[str] = None,
    max_retries: int = 3,
    backoff_factor: float = 1.0,
    timeout: int = 15
) -> requests.Session:
    """
    Create HTTP session with read retries and connection pooling.

    Args:
        api_key: Sent as `apikey` header and bearer token (Supabase style)
        max_retries: Maximum retry attempts for GET (default: 3)
        backoff_factor: Backoff multiplier; delays 1s, 2s, 4s
        timeout: Request timeout in seconds (default: 15)

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    session.headers.update({
        "Accept": "application/json",
        "Content-Type": "application/json",
    })
    if api_key:
        session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        })

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )

    adapter = HTTPAdapter(
        max_retries=retry_strategy,
        pool_connections=10,
        pool_maxsize=10,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    retry_connection_errors = retry(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
        )),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )

    session.get = retry_connection_errors(_checked(session.get, timeout))
    session.post = _checked(session.post, timeout)
    session.patch = _checked(session.patch, timeout)

    return session
