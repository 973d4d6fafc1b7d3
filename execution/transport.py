"""Exchange transport — submit one signed envelope, classify the reply.

The transport is a thin boundary: it never retries, batches or rate
limits.  Venue rejections surface as ``ApiRequestError`` with the venue's
text unchanged; network and protocol failures surface as
``TransportError``.

Usage::

    async with HttpTransport(settings.api_url) as transport:
        response = await transport.submit(envelope.to_wire())
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import Any

import httpx
import structlog

from core.cancellation import run_cancellable
from models.response import ExchangeResponse

logger = structlog.get_logger("execution.transport")

__all__ = [
    "ApiErrorKind",
    "ApiRequestError",
    "ExchangeTransport",
    "HttpTransport",
    "TransportError",
    "validate_response",
]


class ApiErrorKind(str, Enum):
    """How the venue refused a request."""

    REJECTED = "rejected"  # whole request refused
    PARTIAL = "partial"  # some order/cancel statuses carry errors


class ApiRequestError(Exception):
    """The venue answered but refused the request."""

    def __init__(
        self,
        message: str,
        kind: ApiErrorKind = ApiErrorKind.REJECTED,
        response: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.response = dict(response or {})


class TransportError(Exception):
    """The request could not be delivered or the reply not decoded."""

    def __init__(self, message: str, last_error: Exception | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


def validate_response(body: Mapping[str, Any]) -> ExchangeResponse:
    """Turn an ``/exchange`` reply into ``ExchangeResponse`` or raise.

    Raises
    ------
    ApiRequestError
        On ``status == "err"``, on any errored order/cancel status, or on an
        errored TWAP status.
    """
    if body.get("status") == "err":
        raise ApiRequestError(str(body.get("response")), ApiErrorKind.REJECTED, body)

    inner = body.get("response")
    if isinstance(inner, Mapping):
        response_type = inner.get("type")
        data = inner.get("data") or {}
        if response_type in ("order", "cancel"):
            errors = [
                f"Order {i}: {status['error']}"
                for i, status in enumerate(data.get("statuses", []))
                if isinstance(status, Mapping) and "error" in status
            ]
            if errors:
                raise ApiRequestError(", ".join(errors), ApiErrorKind.PARTIAL, body)
        elif response_type in ("twapOrder", "twapCancel"):
            status = data.get("status")
            if isinstance(status, Mapping) and "error" in status:
                raise ApiRequestError(str(status["error"]), ApiErrorKind.REJECTED, body)

    return ExchangeResponse.from_body(dict(body))


class ExchangeTransport(ABC):
    """Where signed envelopes go."""

    @abstractmethod
    async def submit(
        self,
        envelope: Mapping[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> ExchangeResponse:
        """Deliver ``envelope`` and return the venue's typed reply."""


class HttpTransport(ExchangeTransport):
    """POSTs envelopes to ``{base_url}/exchange`` over ``httpx``.

    Parameters
    ----------
    base_url:
        API root, e.g. ``https://api.hyperliquid.xyz``.
    timeout:
        Request timeout in seconds.
    client:
        Pre-built ``httpx.AsyncClient`` (tests inject a ``MockTransport``
        client here).  The transport does not close a client it did not
        create.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the HTTP client.  Idempotent."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
            self._owns_client = True
            logger.info("transport.started", base_url=self._base_url)

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("transport.stopped")

    async def __aenter__(self) -> "HttpTransport":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ── Submission ───────────────────────────────────────────────

    async def submit(
        self,
        envelope: Mapping[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> ExchangeResponse:
        if self._client is None:
            raise RuntimeError("Call start() before submitting")

        action_type = (envelope.get("action") or {}).get("type")
        body = await run_cancellable(
            self._post(dict(envelope)),
            cancel,
            lambda: TransportError("submission cancelled"),
        )
        try:
            response = validate_response(body)
        except ApiRequestError as exc:
            logger.warning(
                "transport.rejected",
                action_type=action_type,
                kind=exc.kind.value,
                error=str(exc),
            )
            raise
        logger.info(
            "transport.submitted",
            action_type=action_type,
            nonce=envelope.get("nonce"),
            response_type=response.response_type,
        )
        return response

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/exchange"
        try:
            resp = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("transport.request_failed", url=url, error=str(exc))
            raise TransportError(f"POST {url} failed: {exc}", last_error=exc) from exc

        if resp.status_code >= 400:
            logger.error("transport.http_error", url=url, status=resp.status_code, body=resp.text[:500])
            raise TransportError(f"POST {url} returned HTTP {resp.status_code}: {resp.text}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportError(f"POST {url} returned non-JSON body: {resp.text[:200]}", last_error=exc) from exc
        if not isinstance(body, dict):
            raise TransportError(f"POST {url} returned unexpected body: {body!r}")
        return body
