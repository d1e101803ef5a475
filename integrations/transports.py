"""
Token-endpoint transports.

All strategies share one contract::

    await transport.post_form(url, form, timeout) -> TransportResponse

They return the provider's HTTP response whatever its status, and raise
``TransportError`` only when no response was obtained (timeout, DNS,
connection reset, missing binary, ...).  ``FallbackTransport`` tries an
ordered list of strategies and moves on only on ``TransportError``.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import math
import socket
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence
from urllib.parse import urlencode, urlsplit

import httpx

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_BASE_HEADERS = {"Content-Type": FORM_CONTENT_TYPE, "Accept": "application/json"}
_CURL_TIMEOUT_EXIT = 28


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    text: str
    transport: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.text)


class TransportError(Exception):
    """No HTTP response could be obtained."""

    def __init__(self, message: str, *, transport: str, timed_out: bool = False):
        super().__init__(message)
        self.transport = transport
        self.timed_out = timed_out


class TokenTransport(ABC):
    name: str = "transport"

    @abstractmethod
    async def post_form(
        self,
        url: str,
        form: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse:
        ...


class HttpxTransport(TokenTransport):
    """
    Standard async HTTP client.

    A timed-out request is retried ``retries_on_timeout`` times; any other
    transport error is not retried.
    """

    name = "httpx"

    def __init__(
        self,
        retries_on_timeout: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._retries = max(0, retries_on_timeout)
        self._transport = transport

    async def post_form(self, url, form, timeout):
        attempts = self._retries + 1
        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    resp = await client.post(url, data=dict(form), headers=_BASE_HEADERS)
                return TransportResponse(resp.status_code, resp.text, self.name)
            except httpx.TimeoutException as exc:
                logger.warning(
                    "Token request to %s timed out (attempt %d/%d)", url, attempt, attempts
                )
                if attempt == attempts:
                    raise TransportError(
                        f"Timed out after {attempts} attempt(s)",
                        transport=self.name,
                        timed_out=True,
                    ) from exc
            except httpx.HTTPError as exc:
                raise TransportError(f"{type(exc).__name__}: {exc}", transport=self.name) from exc
        raise TransportError("No attempt made", transport=self.name)


class CurlTransport(TokenTransport):
    """
    ``curl`` in a subprocess.

    Works around environments where the in-process client stalls on some
    hosts.  The form body goes through stdin so secrets never appear in the
    process list; the status code is appended to stdout by ``-w``.
    """

    name = "curl"

    def __init__(self, binary: str = "curl"):
        self._binary = binary

    async def post_form(self, url, form, timeout):
        args = [
            self._binary,
            "-sS",
            "-X", "POST",
            url,
            "-H", f"Content-Type: {FORM_CONTENT_TYPE}",
            "-H", "Accept: application/json",
            "--data-binary", "@-",
            "--max-time", str(max(1, math.ceil(timeout))),
            "-w", "\n%{http_code}",
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransportError(f"Cannot start curl: {exc}", transport=self.name) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(urlencode(form).encode("utf-8")),
                timeout=timeout + 5,
            )
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise TransportError("curl did not exit in time", transport=self.name, timed_out=True) from exc

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", "replace").strip()
            raise TransportError(
                f"curl exited with {proc.returncode}: {detail}",
                transport=self.name,
                timed_out=proc.returncode == _CURL_TIMEOUT_EXIT,
            )

        body, _, status = stdout.decode("utf-8", "replace").rpartition("\n")
        try:
            status_code = int(status.strip())
        except ValueError as exc:
            raise TransportError("curl returned no status code", transport=self.name) from exc
        if status_code == 0:
            raise TransportError("curl received no HTTP response", transport=self.name)
        return TransportResponse(status_code, body, self.name)


class HttpClientTransport(TokenTransport):
    """Lower-level TLS transport: ``http.client`` run in a worker thread."""

    name = "http.client"

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None):
        self._ssl_context = ssl_context or ssl.create_default_context()

    def _post_blocking(self, url: str, body: bytes, timeout: float) -> TransportResponse:
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        if parts.scheme == "https":
            conn = http.client.HTTPSConnection(
                parts.hostname, parts.port or 443, timeout=timeout, context=self._ssl_context
            )
        else:
            conn = http.client.HTTPConnection(parts.hostname, parts.port or 80, timeout=timeout)
        try:
            conn.request(
                "POST",
                path,
                body=body,
                headers={**_BASE_HEADERS, "Content-Length": str(len(body))},
            )
            resp = conn.getresponse()
            text = resp.read().decode("utf-8", "replace")
            return TransportResponse(resp.status, text, self.name)
        finally:
            conn.close()

    async def post_form(self, url, form, timeout):
        body = urlencode(form).encode("utf-8")
        try:
            return await asyncio.to_thread(self._post_blocking, url, body, timeout)
        except (socket.timeout, TimeoutError) as exc:
            raise TransportError("Request timed out", transport=self.name, timed_out=True) from exc
        except (OSError, http.client.HTTPException) as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", transport=self.name) from exc


class FallbackTransport(TokenTransport):
    """Try each strategy in order until one gets an HTTP response."""

    name = "fallback"

    def __init__(self, strategies: Sequence[TokenTransport]):
        if not strategies:
            raise ValueError("FallbackTransport needs at least one strategy")
        self._strategies: List[TokenTransport] = list(strategies)

    @property
    def strategies(self) -> List[TokenTransport]:
        return list(self._strategies)

    async def post_form(self, url, form, timeout):
        failures = []
        for strategy in self._strategies:
            try:
                resp = await strategy.post_form(url, form, timeout)
                logger.info("Token request to %s answered via %s (HTTP %d)", url, strategy.name, resp.status_code)
                return resp
            except TransportError as exc:
                logger.warning("Transport %s failed for %s: %s", strategy.name, url, exc)
                failures.append(exc)
        raise TransportError(
            "All transports failed: " + "; ".join(f"{e.transport}: {e}" for e in failures),
            transport=self.name,
            timed_out=all(e.timed_out for e in failures),
        )
