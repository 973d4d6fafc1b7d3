"""ExchangeResponse — decoded success reply from ``/exchange``."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExchangeResponse(BaseModel):
    """Successful exchange reply.

    ``response_type`` mirrors ``response.type`` (``"order"``, ``"cancel"``,
    ``"default"``…) and ``data`` its ``data`` member, when present.
    """

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    response_type: str | None = None
    data: Any = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "ExchangeResponse":
        inner = body.get("response")
        if isinstance(inner, dict):
            return cls(
                status=str(body.get("status", "ok")),
                response_type=inner.get("type"),
                data=inner.get("data"),
                raw=body,
            )
        return cls(status=str(body.get("status", "ok")), data=inner, raw=body)
