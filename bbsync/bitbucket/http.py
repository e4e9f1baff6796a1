"""HTTP client abstraction for the Bitbucket REST API.

This module provides:
- HttpClient: Protocol for a single authenticated GET (injectable for tests)
- HttpxClient: Real implementation using httpx.AsyncClient
- MockHttpClient: Scripted implementation for testing

The adapter does not interpret status codes or bodies; it only reports what
came back, or that the transport failed (flagging timeouts separately so
the fetcher can retry them).
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass
from types import TracebackType
from typing import Protocol, runtime_checkable

import httpx

from bbsync import __version__
from bbsync.core.result import Err, Ok, Result

__all__ = [
    "HttpClient",
    "HttpError",
    "HttpResponse",
    "HttpxClient",
    "MockHttpClient",
]


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """Raw response.

    Attributes:
        url: The requested URL
        status: HTTP status code
        text: Response body decoded as text
    """

    url: str
    status: int
    text: str

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True, slots=True)
class HttpError:
    """Transport failure (no HTTP response at all).

    Attributes:
        url: The URL that failed
        message: Human-readable error message
        is_timeout: True when the request timed out
    """

    url: str
    message: str
    is_timeout: bool = False

    def __str__(self) -> str:
        return f"{self.message} ({self.url})"


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for the one HTTP operation the catalog fetcher needs."""

    async def get(self, url: str) -> Result[HttpResponse, HttpError]:
        """Issue an authenticated GET.

        Args:
            url: Absolute URL including the query string

        Returns:
            Ok with the raw response (any status), or Err on transport failure
        """
        ...


class HttpxClient:
    """Real HTTP client using httpx.

    Sends ``Accept: application/json`` on every request and HTTP Basic auth
    when credentials are given. Use as an async context manager so the
    connection pool is closed at the end of the run.
    """

    def __init__(
        self,
        *,
        credentials: tuple[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize HTTP client.

        Args:
            credentials: (username, password) for Basic auth, or None
            timeout: Request timeout in seconds
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self._client = httpx.AsyncClient(
            auth=httpx.BasicAuth(*credentials) if credentials else None,
            headers={
                "Accept": "application/json",
                "User-Agent": f"bbsync/{__version__}",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> HttpxClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, url: str) -> Result[HttpResponse, HttpError]:
        try:
            response = await self._client.get(url.strip())
        except httpx.TimeoutException as e:
            return Err(HttpError(url=url, message=f"Request timed out: {e!r}", is_timeout=True))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return Err(HttpError(url=url, message=repr(e)))
        return Ok(HttpResponse(url=url, status=response.status_code, text=response.text))


class MockHttpClient:
    """Mock HTTP client for testing.

    Responses are queued per URL and served in order; the last queued
    response repeats once the queue is drained.

    Usage:
        client = MockHttpClient()
        client.set_json(url, {"isLastPage": True, "size": 0, "values": []})
        client.queue(url, HttpError(url, "timed out", is_timeout=True))
    """

    def __init__(self) -> None:
        self._responses: dict[str, deque[HttpResponse | HttpError]] = {}
        self.calls: list[str] = []

    def queue(self, url: str, *responses: HttpResponse | HttpError) -> None:
        """Append responses for URL."""
        self._responses.setdefault(url, deque()).extend(responses)

    def set_json(self, url: str, payload: object, status: int = 200) -> None:
        """Queue a JSON body for URL."""
        self.queue(url, HttpResponse(url=url, status=status, text=json.dumps(payload)))

    def call_count(self, url: str) -> int:
        return sum(1 for c in self.calls if c == url)

    async def get(self, url: str) -> Result[HttpResponse, HttpError]:
        self.calls.append(url)

        pending = self._responses.get(url)
        if not pending:
            return Ok(HttpResponse(url=url, status=404, text="Not found (mock)"))

        response = pending.popleft() if len(pending) > 1 else pending[0]
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)
