"""ActionAuthorizer — single-signer path from action to signed envelope."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from models.action import ActionKind, ActionType
from models.envelope import SignedEnvelope
from models.response import ExchangeResponse
from signing.canonical import action_type_of, canonicalize, classify
from signing.eip712 import user_signed_types_for
from signing.errors import InvalidActionError
from signing.l1 import sign_l1_action
from signing.user_signed import sign_user_signed_action, user_signed_nonce
from signing.wallet import SignerLike, WalletAdapter, as_signer, default_adapter

from .nonce_manager import NonceManager
from .transport import ExchangeTransport

logger = structlog.get_logger("execution.authorizer")

__all__ = ["ActionAuthorizer", "wire_action"]


def wire_action(canonical: Mapping[str, Any]) -> dict[str, Any]:
    """Action as submitted after signing.

    ``approveAgent`` is signed with ``agentName: ""`` but the venue expects
    an unnamed agent as ``null``.
    """
    out = dict(canonical)
    if out.get("type") == ActionType.APPROVE_AGENT.value and out.get("agentName") == "":
        out["agentName"] = None
    return out


class ActionAuthorizer:
    """Signs actions for one account.

    Parameters
    ----------
    signer:
        Any supported signer.
    is_testnet:
        Selects the phantom-agent source and ``hyperliquidChain``.
    nonce_manager:
        Shared allocator; one is created when omitted.
    transport:
        Required only for :meth:`submit`.
    default_vault_address:
        Applied to L1 actions when the call gives none.
    expires_after_offset_ms:
        When > 0, L1 actions get ``expiresAfter = nonce + offset``.
    """

    def __init__(
        self,
        signer: SignerLike,
        *,
        is_testnet: bool = False,
        nonce_manager: NonceManager | None = None,
        transport: ExchangeTransport | None = None,
        adapter: WalletAdapter | None = None,
        default_vault_address: str | None = None,
        expires_after_offset_ms: int = 0,
    ) -> None:
        self._signer = as_signer(signer)
        self._is_testnet = is_testnet
        self._nonces = nonce_manager or NonceManager()
        self._transport = transport
        self._adapter = adapter or default_adapter()
        self._default_vault = default_vault_address or None
        self._expires_offset = expires_after_offset_ms

    async def address(self) -> str:
        return await self._adapter.resolve_address(self._signer)

    async def authorize(
        self,
        action: Mapping[str, Any],
        *,
        vault_address: str | None = None,
        expires_after: int | None = None,
    ) -> SignedEnvelope:
        """Canonicalize, pick a nonce, sign, and wrap ``action``."""
        tag = action_type_of(action)
        if tag is ActionType.MULTI_SIG:
            raise InvalidActionError("multiSig actions are assembled by MultiSigCoordinator")
        canonical = canonicalize(action)

        if classify(canonical) is ActionKind.USER_SIGNED:
            nonce = user_signed_nonce(canonical)
            signature = await sign_user_signed_action(
                self._signer, canonical, user_signed_types_for(tag.value), adapter=self._adapter
            )
            vault, expires = None, None
        else:
            nonce = await self._nonces.next_nonce(await self.address())
            vault = vault_address or self._default_vault
            expires = expires_after
            if expires is None and self._expires_offset:
                expires = nonce + self._expires_offset
            signature = await sign_l1_action(
                self._signer,
                canonical,
                nonce,
                is_testnet=self._is_testnet,
                vault_address=vault,
                expires_after=expires,
                adapter=self._adapter,
            )

        logger.info("authorizer.signed", action_type=tag.value, nonce=nonce, vault=vault)
        return SignedEnvelope(
            action=wire_action(canonical),
            nonce=nonce,
            signature=signature,
            vault_address=vault,
            expires_after=expires,
        )

    async def submit(
        self,
        action: Mapping[str, Any],
        *,
        vault_address: str | None = None,
        expires_after: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ExchangeResponse:
        if self._transport is None:
            raise RuntimeError("ActionAuthorizer has no transport")
        envelope = await self.authorize(action, vault_address=vault_address, expires_after=expires_after)
        return await self._transport.submit(envelope.to_wire(), cancel)
