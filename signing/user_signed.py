"""User-signed actions — direct EIP-712 over the action's own fields."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from models.signature import Signature

from .eip712 import extend_types_for_multi_sig, primary_type_of, user_signed_domain
from .errors import InvalidActionError
from .wallet import SignerLike, WalletAdapter, default_adapter

__all__ = ["is_multi_sig_message", "sign_user_signed_action", "signed_message_for", "user_signed_nonce"]


def is_multi_sig_message(action: Mapping[str, Any]) -> bool:
    return "payloadMultiSigUser" in action and "outerSigner" in action


def user_signed_nonce(action: Mapping[str, Any]) -> int:
    """The action's own ``nonce`` (or ``time``) field is its nonce."""
    for field_name in ("nonce", "time"):
        value = action.get(field_name)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    raise InvalidActionError(f"{action.get('type')}: user-signed action has no integer nonce or time")


def signed_message_for(types: Mapping[str, Any], action: Mapping[str, Any]) -> dict[str, Any]:
    """Project ``action`` onto the fields declared by the primary type."""
    primary = primary_type_of(types)
    message: dict[str, Any] = {}
    for field in types[primary]:
        name = field["name"]
        if name not in action:
            raise InvalidActionError(f"{primary}: missing field {name!r}")
        value = action[name]
        if field["type"] == "address" and isinstance(value, str):
            value = value.lower()
        message[name] = value
    return message


async def sign_user_signed_action(
    signer: SignerLike,
    action: Mapping[str, Any],
    types: Mapping[str, Any],
    *,
    adapter: WalletAdapter | None = None,
) -> Signature:
    """Sign a user-signed action.

    Parameters
    ----------
    signer:
        Any supported signer.
    action:
        Action carrying ``signatureChainId`` and ``hyperliquidChain``.  When
        it also carries ``payloadMultiSigUser`` and ``outerSigner`` the type
        description is extended for multi-sig before signing.
    types:
        EIP-712 type description whose first key is the primary type.

    Returns
    -------
    Signature
        Recoverable ``(r, s, v)``.
    """
    if "signatureChainId" not in action:
        raise InvalidActionError("user-signed action has no signatureChainId")
    adapter = adapter or default_adapter()
    if is_multi_sig_message(action):
        types = extend_types_for_multi_sig(types)
    primary = primary_type_of(types)
    return await adapter.sign_typed_data(
        signer,
        user_signed_domain(action["signatureChainId"]),
        types,
        primary,
        signed_message_for(types, action),
    )
