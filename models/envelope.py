"""Signed envelope and multi-sig payload as posted to ``/exchange``."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .signature import Signature


class MultiSigPayload(BaseModel):
    """The statement every cosigner of a multi-sig round agrees on."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    multi_sig_user: str = Field(..., alias="multiSigUser", min_length=42, max_length=42)
    outer_signer: str = Field(..., alias="outerSigner", min_length=42, max_length=42)
    action: dict[str, Any]

    @field_validator("multi_sig_user", "outer_signer")
    @classmethod
    def _lowercase(cls, v: str) -> str:
        return v.lower()

    def to_wire(self) -> dict[str, Any]:
        return {
            "multiSigUser": self.multi_sig_user,
            "outerSigner": self.outer_signer,
            "action": self.action,
        }


class SignedEnvelope(BaseModel):
    """A signed action ready for submission.

    For a multi-sig round ``action`` is the ``multiSig`` wrapper carrying
    every cosigner signature and ``signature`` is the leader's seal over it.
    """

    model_config = ConfigDict(frozen=True)

    action: dict[str, Any]
    nonce: int = Field(..., ge=0)
    signature: Signature
    vault_address: str | None = None
    expires_after: int | None = None

    @property
    def action_type(self) -> str:
        return str(self.action.get("type", ""))

    def to_wire(self) -> dict[str, Any]:
        """Request body; absent optionals are omitted."""
        body: dict[str, Any] = {
            "action": self.action,
            "signature": self.signature.to_wire(),
            "nonce": self.nonce,
        }
        if self.vault_address is not None:
            body["vaultAddress"] = self.vault_address
        if self.expires_after is not None:
            body["expiresAfter"] = self.expires_after
        return body
