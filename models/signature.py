"""Signature — ECDSA (r, s, v) triple as sent on the wire."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_HEX32 = re.compile(r"^0x[0-9a-f]{64}$")


class Signature(BaseModel):
    """Recoverable secp256k1 signature.

    ``r`` and ``s`` are ``0x``-prefixed, lowercase, 32-byte hex strings;
    ``v`` is the recovery id in Ethereum form (27 or 28).
    """

    model_config = ConfigDict(frozen=True)

    r: str
    s: str
    v: int = Field(..., ge=27, le=28)

    @field_validator("r", "s", mode="before")
    @classmethod
    def _normalize_component(cls, value: Any) -> str:
        if isinstance(value, int):
            value = f"0x{value:064x}"
        if isinstance(value, (bytes, bytearray)):
            value = "0x" + bytes(value).hex().rjust(64, "0")
        value = str(value).lower()
        if not value.startswith("0x"):
            value = "0x" + value
        value = "0x" + value[2:].rjust(64, "0")
        if not _HEX32.match(value):
            raise ValueError(f"not a 32-byte hex value: {value!r}")
        return value

    @classmethod
    def from_hex(cls, signature: str | bytes) -> "Signature":
        """Split a 65-byte ``r ‖ s ‖ v`` signature.

        A recovery id of 0 or 1 is shifted to 27 or 28.
        """
        if isinstance(signature, (bytes, bytearray)):
            signature = "0x" + bytes(signature).hex()
        raw = signature[2:] if signature.startswith("0x") else signature
        if len(raw) != 130:
            raise ValueError(f"expected 65-byte signature, got {len(raw) // 2} bytes")
        v = int(raw[128:130], 16)
        if v < 27:
            v += 27
        return cls(r="0x" + raw[0:64], s="0x" + raw[64:128], v=v)

    def to_hex(self) -> str:
        return "0x" + self.r[2:] + self.s[2:] + f"{self.v:02x}"

    def to_wire(self) -> dict[str, Any]:
        return {"r": self.r, "s": self.s, "v": self.v}
