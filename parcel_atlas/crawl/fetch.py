"""HTTP utilities shared by the parcel atlas crawlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, TypeVar

import requests
from requests import Session
from tenacity import (  # type: ignore[import-untyped]
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


logger = logging.getLogger(__name__)

_USER_AGENT = "parcel-atlas/0.1"

_session_lock = Lock()
_session: Session | None = None

T = TypeVar("T")


class RetryableHTTPStatusError(Exception):
    """Raised for HTTP status codes that should trigger a retry."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Server returned status {status_code}")
        self.status_code = status_code


TRANSIENT_ERRORS = (requests.Timeout, requests.ConnectionError, RetryableHTTPStatusError)


def get_session() -> Session:
    """Return a shared requests session configured with default headers."""
    global _session
    if _session is None:
        with _session_lock:
            if _session is None:
                session = requests.Session()
                session.headers.update(
                    {
                        "User-Agent": _USER_AGENT,
                        "Accept": "application/json",
                    }
                )
                _session = session
    return _session


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient upstream failures."""

    attempts: int = 3
    backoff_base: float = 1.0
    backoff_cap: float = 10.0

    def retrying(self) -> Retrying:
        """Return a fresh retry controller for a single logical request."""
        return Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_cap),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    def call(self, fn: Callable[[], T]) -> T:
        return self.retrying()(fn)


def _check_status(response: requests.Response) -> requests.Response:
    if 500 <= response.status_code < 600:
        raise RetryableHTTPStatusError(response.status_code)
    return response


def post_json(
    url: str,
    payload: Any,
    timeout: float,
    policy: RetryPolicy,
    session: Session | None = None,
) -> Any:
    """POST *payload* as JSON and return the decoded response body.

    Transient failures are retried according to *policy*; the last error is
    re-raised once the attempts are exhausted. Non-2xx responses below 500
    raise :class:`requests.HTTPError` without retrying.
    """
    http = session or get_session()

    def _once() -> Any:
        response = _check_status(http.post(url, json=payload, timeout=timeout))
        response.raise_for_status()
        return response.json()

    return policy.call(_once)


def head_status(
    url: str,
    timeout: float,
    policy: RetryPolicy,
    session: Session | None = None,
) -> int:
    """Return the status code of a HEAD request to *url*."""
    http = session or get_session()

    def _once() -> int:
        response = _check_status(http.head(url, timeout=timeout, allow_redirects=True))
        return response.status_code

    return policy.call(_once)


def get_json(
    url: str,
    timeout: float,
    policy: RetryPolicy,
    session: Session | None = None,
) -> tuple[int, Any]:
    """GET *url* and return ``(status, body)``.

    ``body`` is ``None`` for non-200 responses and for bodies that are not
    valid JSON.
    """
    http = session or get_session()

    def _once() -> tuple[int, Any]:
        response = _check_status(http.get(url, timeout=timeout))
        if response.status_code != 200:
            return response.status_code, None
        try:
            return response.status_code, response.json()
        except ValueError:
            logger.debug("Response from %s is not valid JSON", url)
            return response.status_code, None

    return policy.call(_once)
