"""EIP-712 domains, user-signed type tables and typed-data helpers."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak, to_checksum_address

from models.signature import Signature

from .errors import InvalidActionError

__all__ = [
    "EIP712_DOMAIN_TYPE",
    "L1_DOMAIN",
    "MULTI_SIG_EXTRA_FIELDS",
    "SEND_MULTI_SIG_TYPES",
    "USER_SIGNED_ACTION_TYPES",
    "ZERO_ADDRESS",
    "build_typed_data",
    "extend_types_for_multi_sig",
    "primary_type_of",
    "recover_typed_data_signer",
    "typed_data_digest",
    "typed_data_to_json",
    "user_signed_domain",
    "user_signed_types_for",
]

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

EIP712_DOMAIN_TYPE: tuple[dict[str, str], ...] = (
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
)

# L1 actions sign a phantom agent under a fixed domain.
L1_DOMAIN: Mapping[str, Any] = MappingProxyType(
    {
        "name": "Exchange",
        "version": "1",
        "chainId": 1337,
        "verifyingContract": ZERO_ADDRESS,
    }
)

AGENT_TYPES: Mapping[str, tuple[dict[str, str], ...]] = MappingProxyType(
    {
        "Agent": (
            {"name": "source", "type": "string"},
            {"name": "connectionId", "type": "bytes32"},
        ),
    }
)

MULTI_SIG_EXTRA_FIELDS: tuple[dict[str, str], ...] = (
    {"name": "payloadMultiSigUser", "type": "address"},
    {"name": "outerSigner", "type": "address"},
)

_CHAIN_FIELD = "hyperliquidChain"


def _fields(*pairs: tuple[str, str]) -> tuple[dict[str, str], ...]:
    return tuple({"name": name, "type": type_} for name, type_ in ((_CHAIN_FIELD, "string"), *pairs))


def _table(primary: str, *pairs: tuple[str, str]) -> Mapping[str, tuple[dict[str, str], ...]]:
    return MappingProxyType({f"HyperliquidTransaction:{primary}": _fields(*pairs)})


SEND_MULTI_SIG_TYPES = _table("SendMultiSig", ("multiSigActionHash", "bytes32"), ("nonce", "uint64"))

USER_SIGNED_ACTION_TYPES: Mapping[str, Mapping[str, tuple[dict[str, str], ...]]] = MappingProxyType(
    {
        "approveAgent": _table(
            "ApproveAgent", ("agentAddress", "address"), ("agentName", "string"), ("nonce", "uint64")
        ),
        "approveBuilderFee": _table(
            "ApproveBuilderFee", ("maxFeeRate", "string"), ("builder", "address"), ("nonce", "uint64")
        ),
        "cDeposit": _table("CDeposit", ("wei", "uint64"), ("nonce", "uint64")),
        "convertToMultiSigUser": _table("ConvertToMultiSigUser", ("signers", "string"), ("nonce", "uint64")),
        "cWithdraw": _table("CWithdraw", ("wei", "uint64"), ("nonce", "uint64")),
        "PerpDexClassTransfer": _table(
            "PerpDexClassTransfer",
            ("dex", "string"),
            ("token", "string"),
            ("amount", "string"),
            ("toPerp", "bool"),
            ("nonce", "uint64"),
        ),
        "PerpDexTransfer": _table(
            "PerpDexTransfer",
            ("sourceDex", "string"),
            ("destinationDex", "string"),
            ("amount", "string"),
            ("nonce", "uint64"),
        ),
        "multiSig": SEND_MULTI_SIG_TYPES,
        "spotSend": _table(
            "SpotSend", ("destination", "string"), ("token", "string"), ("amount", "string"), ("time", "uint64")
        ),
        "tokenDelegate": _table(
            "TokenDelegate",
            ("validator", "address"),
            ("wei", "uint64"),
            ("isUndelegate", "bool"),
            ("nonce", "uint64"),
        ),
        "usdClassTransfer": _table("UsdClassTransfer", ("amount", "string"), ("toPerp", "bool"), ("nonce", "uint64")),
        "usdSend": _table("UsdSend", ("destination", "string"), ("amount", "string"), ("time", "uint64")),
        "withdraw3": _table("Withdraw", ("destination", "string"), ("amount", "string"), ("time", "uint64")),
    }
)


# ── Domains and type descriptions ───────────────────────────────────


def user_signed_domain(signature_chain_id: str) -> dict[str, Any]:
    """Domain for user-signed actions; ``signature_chain_id`` is hex (``"0x66eee"``)."""
    try:
        chain_id = int(signature_chain_id, 16)
    except (TypeError, ValueError):
        raise InvalidActionError(f"signatureChainId is not hex: {signature_chain_id!r}") from None
    return {
        "name": "HyperliquidSignTransaction",
        "version": "1",
        "chainId": chain_id,
        "verifyingContract": ZERO_ADDRESS,
    }


def user_signed_types_for(action_type: str) -> dict[str, list[dict[str, str]]]:
    """Fresh, mutable copy of the type description for a user-signed tag."""
    try:
        table = USER_SIGNED_ACTION_TYPES[action_type]
    except KeyError:
        raise InvalidActionError(f"{action_type!r} is not a user-signed action") from None
    return _thaw(table)


def primary_type_of(types: Mapping[str, Any]) -> str:
    """The primary type is the first key of the type description."""
    try:
        return next(iter(types))
    except StopIteration:
        raise InvalidActionError("empty EIP-712 type description") from None


def extend_types_for_multi_sig(types: Mapping[str, Any]) -> dict[str, list[dict[str, str]]]:
    """Return a copy of ``types`` with multi-sig fields after ``hyperliquidChain``.

    ``payloadMultiSigUser`` and ``outerSigner`` (both ``address``) are
    spliced into the primary type immediately after the chain field.  The
    input is not modified, and extending an already extended description
    returns an equal copy.
    """
    extended = _thaw(types)
    primary = primary_type_of(extended)
    fields = extended[primary]
    names = [f["name"] for f in fields]
    if all(extra["name"] in names for extra in MULTI_SIG_EXTRA_FIELDS):
        return extended
    try:
        at = names.index(_CHAIN_FIELD) + 1
    except ValueError:
        raise InvalidActionError(f"{primary} has no {_CHAIN_FIELD!r} field") from None
    extended[primary] = [*fields[:at], *(dict(f) for f in MULTI_SIG_EXTRA_FIELDS), *fields[at:]]
    return extended


def _thaw(types: Mapping[str, Any]) -> dict[str, list[dict[str, str]]]:
    return {name: [dict(f) for f in fields] for name, fields in types.items()}


# ── Typed data ──────────────────────────────────────────────────────


def build_typed_data(
    domain: Mapping[str, Any],
    types: Mapping[str, Any],
    primary_type: str,
    message: Mapping[str, Any],
) -> dict[str, Any]:
    """Assemble an EIP-712 ``full_message`` accepted by ``eth_account``."""
    return {
        "domain": dict(domain),
        "types": {"EIP712Domain": [dict(f) for f in EIP712_DOMAIN_TYPE], **_thaw(types)},
        "primaryType": primary_type,
        "message": copy.deepcopy(dict(message)),
    }


def signable_message(typed_data: Mapping[str, Any]) -> SignableMessage:
    return encode_typed_data(full_message=dict(typed_data))


def typed_data_digest(typed_data: Mapping[str, Any]) -> bytes:
    """``keccak(0x19 ‖ 0x01 ‖ domainSeparator ‖ hashStruct(message))``."""
    signable = signable_message(typed_data)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def recover_typed_data_signer(typed_data: Mapping[str, Any], signature: Signature) -> str:
    """Recover the checksum address that produced ``signature``."""
    address = Account.recover_message(
        signable_message(typed_data),
        vrs=(signature.v, int(signature.r, 16), int(signature.s, 16)),
    )
    return to_checksum_address(address)


def typed_data_to_json(typed_data: Mapping[str, Any]) -> dict[str, Any]:
    """JSON-safe copy for JSON-RPC providers; ``bytes`` become ``0x`` hex."""

    def _encode(value: Any) -> Any:
        if isinstance(value, (bytes, bytearray)):
            return "0x" + bytes(value).hex()
        if isinstance(value, Mapping):
            return {k: _encode(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [_encode(v) for v in value]
        return value

    return _encode(typed_data)
