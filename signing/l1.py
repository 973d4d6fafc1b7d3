"""L1 action signing — msgpack hash wrapped in a phantom-agent EIP-712 struct.

Trading actions (orders, cancels, leverage…) are not signed field by
field.  The canonical action is msgpack-encoded, the nonce and account
context are appended, and the keccak of that buffer becomes the
``connectionId`` of an ``Agent`` struct signed under the ``Exchange``
domain.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import msgpack
import structlog
from eth_utils import keccak, to_bytes

from models.signature import Signature

from .eip712 import AGENT_TYPES, L1_DOMAIN, SEND_MULTI_SIG_TYPES, primary_type_of, user_signed_domain
from .errors import InvalidActionError
from .wallet import SignerLike, WalletAdapter, default_adapter

logger = structlog.get_logger("signing.l1")

__all__ = ["create_l1_action_hash", "sign_l1_action", "sign_multi_sig_action"]


def _u64(value: int, name: str) -> bytes:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value < 2**64:
        raise InvalidActionError(f"{name} must be an unsigned 64-bit integer, got {value!r}")
    return value.to_bytes(8, "big")


def create_l1_action_hash(
    action: Any,
    nonce: int,
    vault_address: str | None = None,
    expires_after: int | None = None,
) -> bytes:
    """Hash an L1 action with its nonce and account context.

    Layout: ``msgpack(action) ‖ u64be(nonce) ‖ vault_marker ‖ [0x00 ‖
    u64be(expires_after)]`` where ``vault_marker`` is ``0x00`` without a
    vault and ``0x01 ‖ address20`` with one.

    Parameters
    ----------
    action:
        Canonical action (or the multi-sig ``[user, outerSigner, action]``
        tuple).  Key order is preserved by msgpack, so callers must pass the
        canonical form.
    nonce:
        Millisecond nonce.
    vault_address:
        Vault or sub-account the action is executed for.
    expires_after:
        Millisecond timestamp after which the action is rejected.

    Returns
    -------
    bytes
        32-byte keccak256 digest.
    """
    buf = bytearray(msgpack.packb(action))
    buf += _u64(nonce, "nonce")
    if vault_address is None:
        buf += b"\x00"
    else:
        vault = to_bytes(hexstr=vault_address)
        if len(vault) != 20:
            raise InvalidActionError(f"vault address must be 20 bytes, got {vault_address!r}")
        buf += b"\x01" + vault
    if expires_after is not None:
        buf += b"\x00" + _u64(expires_after, "expires_after")
    return keccak(bytes(buf))


async def sign_l1_action(
    signer: SignerLike,
    action: Any,
    nonce: int,
    *,
    is_testnet: bool = False,
    vault_address: str | None = None,
    expires_after: int | None = None,
    adapter: WalletAdapter | None = None,
) -> Signature:
    """Sign an L1 action as the phantom agent ``{source, connectionId}``.

    ``source`` is ``"a"`` on mainnet and ``"b"`` on testnet.
    """
    adapter = adapter or default_adapter()
    connection_id = create_l1_action_hash(action, nonce, vault_address, expires_after)
    phantom_agent = {"source": "b" if is_testnet else "a", "connectionId": connection_id}
    signature = await adapter.sign_typed_data(signer, L1_DOMAIN, AGENT_TYPES, "Agent", phantom_agent)
    logger.debug(
        "l1.signed",
        nonce=nonce,
        connection_id="0x" + connection_id.hex(),
        is_testnet=is_testnet,
    )
    return signature


async def sign_multi_sig_action(
    signer: SignerLike,
    action: Mapping[str, Any],
    nonce: int,
    *,
    is_testnet: bool = False,
    vault_address: str | None = None,
    expires_after: int | None = None,
    adapter: WalletAdapter | None = None,
) -> Signature:
    """Leader's outer signature over a ``multiSig`` wrapper.

    The wrapper minus its ``type`` key is hashed like an L1 action and the
    hash is signed as ``HyperliquidTransaction:SendMultiSig`` under the
    user-signed domain of the wrapper's ``signatureChainId``.
    """
    if action.get("type") != "multiSig":
        raise InvalidActionError(f"expected a multiSig action, got {action.get('type')!r}")
    adapter = adapter or default_adapter()
    without_type = {k: v for k, v in action.items() if k != "type"}
    multi_sig_action_hash = create_l1_action_hash(without_type, nonce, vault_address, expires_after)
    message = {
        "hyperliquidChain": "Testnet" if is_testnet else "Mainnet",
        "multiSigActionHash": multi_sig_action_hash,
        "nonce": nonce,
    }
    return await adapter.sign_typed_data(
        signer,
        user_signed_domain(action["signatureChainId"]),
        SEND_MULTI_SIG_TYPES,
        primary_type_of(SEND_MULTI_SIG_TYPES),
        message,
    )
