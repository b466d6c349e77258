"""HTTP transport for the operations endpoint.

Performs a single POST with a JSON body, Basic auth, and a per-request
timeout, and hands back the status code with the parsed body. Network
failures and timeouts are raised as TransportError and are never retried
here.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from harperdb_connector import __version__
from harperdb_connector.contracts import InvalidArgumentError, TransportError

logger = structlog.get_logger(__name__)


def basic_auth_token(username: str, password: str) -> str:
    """Build the token used in ``Authorization: Basic <token>``."""
    if not username or not isinstance(username, str) or not isinstance(password, str):
        raise InvalidArgumentError("Invalid credentials!")
    return base64.b64encode(f"{username}:{password}".encode()).decode("ascii")


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Status code and parsed body of one request.

    ``body`` is the decoded JSON value, or the raw text when the server
    answered with something that is not JSON. ``decode_error`` is set in
    that case.
    """

    status_code: int
    body: Any
    latency_ms: float
    decode_error: str | None = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error_message(self) -> str | None:
        """Server message for a failed command, None on success.

        A 2xx response still counts as failed when its body carries an
        ``error`` field or is not JSON.
        """
        if isinstance(self.body, dict) and self.body.get("error"):
            return str(self.body["error"])
        if self.is_success:
            if self.decode_error is not None:
                return f"Malformed response body: {self.decode_error}"
            return None
        if isinstance(self.body, dict) and self.body.get("message"):
            return str(self.body["message"])
        if isinstance(self.body, str) and self.body.strip():
            return self.body.strip()
        return f"HTTP {self.status_code}"


class HarperTransport:
    """Async POST-only client bound to one operations endpoint.

    Example:
        transport = HarperTransport("https://db.example.com:9925", token, timeout_ms=15000)
        response = await transport.send('{"operation": "describe_all"}')
        await transport.aclose()

    Args:
        url: Operations endpoint URL (http or https)
        token: Basic auth token, sent verbatim
        timeout_ms: Per-request timeout in milliseconds
        client: Optional pre-built httpx.AsyncClient (not closed by aclose)
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        timeout_ms: int = 15_000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise InvalidArgumentError("Invalid credentials! url must be an http(s) URL")
        if not isinstance(token, str) or not token.strip():
            raise InvalidArgumentError("Invalid credentials! token must be a non-empty string")
        if timeout_ms <= 0:
            raise InvalidArgumentError(f"timeout_ms must be positive, got {timeout_ms}")

        self._url = url
        self._token = token
        self._timeout_ms = timeout_ms
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "Authorization": f"Basic {token}",
            "User-Agent": f"harperdb-connector/{__version__}",
        }

    @property
    def url(self) -> str:
        return self._url

    @property
    def token(self) -> str:
        return self._token

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    async def send(self, body: str, *, timeout_ms: int | None = None) -> TransportResponse:
        """POST a serialized command.

        Raises:
            TransportError: On timeout or any network-level failure.
        """
        effective_timeout = (timeout_ms if timeout_ms is not None else self._timeout_ms) / 1000
        start = time.perf_counter()
        try:
            response = await self._client.post(
                self._url,
                content=body.encode("utf-8"),
                headers=self._headers,
                timeout=effective_timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("harperdb_request_timeout", url=self._url, timeout_s=effective_timeout)
            raise TransportError(f"Request timed out after {effective_timeout}s: {e}", url=self._url, timed_out=True) from e
        except httpx.HTTPError as e:
            logger.warning("harperdb_request_failed", url=self._url, error=str(e), error_type=type(e).__name__)
            raise TransportError(f"Request failed: {e}", url=self._url) from e

        latency_ms = (time.perf_counter() - start) * 1000
        body, decode_error = self._decode(response)
        return TransportResponse(
            status_code=response.status_code,
            body=body,
            latency_ms=latency_ms,
            decode_error=decode_error,
        )

    def _decode(self, response: httpx.Response) -> tuple[Any, str | None]:
        if not response.content:
            return None, None
        try:
            return response.json(), None
        except ValueError as e:
            if response.is_success:
                logger.warning(
                    "harperdb_malformed_response",
                    url=self._url,
                    status_code=response.status_code,
                    body_preview=response.text[:200],
                    error=str(e),
                )
            return response.text, str(e)

    async def aclose(self) -> None:
        """Close the underlying httpx client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
