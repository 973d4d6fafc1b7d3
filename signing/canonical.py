"""Action canonicalization — fixed per-tag field order for signing.

The exchange hashes the msgpack encoding of an action, and msgpack keeps
mapping order, so every signer must emit keys in the same order.  Each
``type`` tag owns a rule that rebuilds the action in its declared order,
normalizing decimal strings and addresses on the way.

Usage::

    canonical = canonicalize({"grouping": "na", "orders": [...], "type": "order"})
    kind = classify(canonical)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from typing import Any

from models.action import ActionKind, ActionType

from .errors import InvalidActionError, UnrecognizedActionTypeError

__all__ = ["canonicalize", "classify", "format_decimal", "strip_leading_zeros"]

Rule = Callable[[Mapping[str, Any]], dict[str, Any]]
Converter = Callable[[Any, str], Any]

_MISSING = object()


# ── Value normalizers ───────────────────────────────────────────────


def format_decimal(value: Any) -> str:
    """Drop trailing fractional zeros from a decimal string.

    ``"30000.0"`` → ``"30000"``, ``"0.10"`` → ``"0.1"``.  Values without a
    fractional part pass through unchanged.  Numbers are rendered through
    ``Decimal`` in positional notation, so ``1e-05`` becomes ``"0.00001"``.

    Raises
    ------
    InvalidActionError
        For booleans, non-finite numbers and non-numeric types.
    """
    if isinstance(value, bool) or not isinstance(value, (str, Decimal, int, float)):
        raise InvalidActionError(f"expected a decimal string, got {value!r}")
    if isinstance(value, float):
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidActionError(f"expected a finite decimal, got {value!r}")
        text = format(value, "f")
    else:
        text = str(value)
    if "." not in text:
        return text
    int_part, frac_part = text.split(".", 1)
    frac_part = frac_part.rstrip("0")
    return f"{int_part}.{frac_part}" if frac_part else int_part


def strip_leading_zeros(component: str) -> str:
    """``0x00ab…`` → ``0xab…`` (lowercased), as multiSig signatures are sent."""
    text = component.lower()
    body = text[2:] if text.startswith("0x") else text
    return "0x" + body.lstrip("0")


def _lower(value: Any, ctx: str) -> str:
    if not isinstance(value, str):
        raise InvalidActionError(f"{ctx}: expected an address string, got {value!r}")
    return value.lower()


def _decimal(value: Any, ctx: str) -> str:
    return format_decimal(value)


def _pairs(value: Any, ctx: str) -> list[list[Any]]:
    return [list(el) for el in value]


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy(v) for v in value]
    return value


# ── Structural helpers ──────────────────────────────────────────────


def _struct(
    src: Mapping[str, Any],
    ctx: str,
    fields: Iterable[str],
    *,
    optional: Iterable[str] = (),
    nullable: Iterable[str] = (),
    defaults: Mapping[str, Any] | None = None,
    convert: Mapping[str, Converter] | None = None,
) -> dict[str, Any]:
    """Rebuild ``src`` with exactly ``fields`` in order.

    ``optional`` fields are omitted when absent or null; ``nullable`` fields
    are emitted as null when absent; ``defaults`` fill absent or null values.
    Converters are skipped for null values.
    """
    if not isinstance(src, Mapping):
        raise InvalidActionError(f"{ctx}: expected an object, got {type(src).__name__}")
    optional = frozenset(optional)
    nullable = frozenset(nullable)
    defaults = defaults or {}
    convert = convert or {}

    out: dict[str, Any] = {}
    for name in fields:
        value = src.get(name, _MISSING)
        if value is _MISSING or value is None:
            if name in defaults:
                value = defaults[name]
            elif name in optional:
                continue
            elif name in nullable:
                out[name] = None
                continue
            else:
                raise InvalidActionError(f"{ctx}: missing field {name!r}")
        conv = convert.get(name)
        out[name] = conv(value, f"{ctx}.{name}") if conv else _copy(value)
    return out


def _list_of(item: Converter) -> Converter:
    def _convert(value: Any, ctx: str) -> list[Any]:
        if not isinstance(value, (list, tuple)):
            raise InvalidActionError(f"{ctx}: expected a list, got {type(value).__name__}")
        return [item(el, f"{ctx}[{i}]") for i, el in enumerate(value)]

    return _convert


def _one_of(src: Mapping[str, Any], ctx: str, variants: Mapping[str, Converter]) -> dict[str, Any]:
    """Emit the single variant key present in ``src``."""
    for key, conv in variants.items():
        if key in src:
            return {key: conv(src[key], f"{ctx}.{key}")}
    raise InvalidActionError(f"{ctx}: expected one of {sorted(variants)}")


def _flat(
    tag: ActionType,
    *fields: str,
    optional: Iterable[str] = (),
    defaults: Mapping[str, Any] | None = None,
    convert: Mapping[str, Converter] | None = None,
) -> Rule:
    def _rule(action: Mapping[str, Any]) -> dict[str, Any]:
        body = _struct(
            action,
            tag.value,
            fields,
            optional=optional,
            defaults=defaults,
            convert=convert,
        )
        return {"type": tag.value, **body}

    return _rule


def _user_signed(tag: ActionType, *fields: str, convert: Mapping[str, Converter] | None = None) -> Rule:
    return _flat(tag, "signatureChainId", "hyperliquidChain", *fields, convert=convert)


def _variant(tag: ActionType, **variants: Converter) -> Rule:
    def _rule(action: Mapping[str, Any]) -> dict[str, Any]:
        return {"type": tag.value, **_one_of(action, tag.value, variants)}

    return _rule


# ── Orders ──────────────────────────────────────────────────────────


def _order_type(value: Any, ctx: str) -> dict[str, Any]:
    return _one_of(
        value,
        ctx,
        {
            "limit": lambda v, c: _struct(v, c, ("tif",)),
            "trigger": lambda v, c: _struct(
                v, c, ("isMarket", "triggerPx", "tpsl"), convert={"triggerPx": _decimal}
            ),
        },
    )


def _order_wire(value: Any, ctx: str) -> dict[str, Any]:
    return _struct(
        value,
        ctx,
        ("a", "b", "p", "s", "r", "t", "c"),
        optional=("c",),
        convert={"p": _decimal, "s": _decimal, "t": _order_type},
    )


def _builder(value: Any, ctx: str) -> dict[str, Any]:
    return _struct(value, ctx, ("b", "f"), convert={"b": _lower})


def _modify_wire(value: Any, ctx: str) -> dict[str, Any]:
    return _struct(value, ctx, ("oid", "order"), convert={"order": _order_wire})


# ── Validator / deploy variants ─────────────────────────────────────


def _change_profile(value: Any, ctx: str) -> dict[str, Any]:
    return _struct(
        value,
        ctx,
        ("node_ip", "name", "description", "unjailed", "disable_delegations", "commission_bps", "signer"),
        nullable=("node_ip", "name", "description", "disable_delegations", "commission_bps", "signer"),
        convert={"signer": _lower},
    )


def _register_validator(value: Any, ctx: str) -> dict[str, Any]:
    def _profile(v: Any, c: str) -> dict[str, Any]:
        return _struct(
            v,
            c,
            ("node_ip", "name", "description", "delegations_disabled", "commission_bps", "signer"),
            convert={"node_ip": lambda ip, cc: _struct(ip, cc, ("Ip",)), "signer": _lower},
        )

    return _struct(value, ctx, ("profile", "unjailed", "initial_wei"), convert={"profile": _profile})


def _register_asset(value: Any, ctx: str) -> dict[str, Any]:
    def _schema(v: Any, c: str) -> dict[str, Any]:
        return _struct(
            v,
            c,
            ("fullName", "collateralToken", "oracleUpdater"),
            nullable=("oracleUpdater",),
            convert={"oracleUpdater": _lower},
        )

    return _struct(
        value,
        ctx,
        ("maxGas", "assetRequest", "dex", "schema"),
        nullable=("maxGas", "schema"),
        convert={
            "assetRequest": lambda v, c: _struct(
                v, c, ("coin", "szDecimals", "oraclePx", "marginTableId", "onlyIsolated")
            ),
            "schema": _schema,
        },
    )


def _set_oracle(value: Any, ctx: str) -> dict[str, Any]:
    return _struct(
        value,
        ctx,
        ("dex", "oraclePxs", "markPxs"),
        convert={"oraclePxs": _pairs, "markPxs": _pairs},
    )


_SPOT_DEPLOY_VARIANTS: dict[str, Converter] = {
    "genesis": lambda v, c: _struct(v, c, ("token", "maxSupply", "noHyperliquidity"), optional=("noHyperliquidity",)),
    "registerHyperliquidity": lambda v, c: _struct(
        v, c, ("spot", "startPx", "orderSz", "nOrders", "nSeededLevels"), optional=("nSeededLevels",)
    ),
    "registerSpot": lambda v, c: _struct(v, c, ("tokens",)),
    "registerToken2": lambda v, c: _struct(
        v,
        c,
        ("spec", "maxGas", "fullName"),
        optional=("fullName",),
        convert={"spec": lambda s, cc: _struct(s, cc, ("name", "szDecimals", "weiDecimals"))},
    ),
    "setDeployerTradingFeeShare": lambda v, c: _struct(v, c, ("token", "share")),
    "userGenesis": lambda v, c: _struct(
        v,
        c,
        ("token", "userAndWei", "existingTokenAndWei", "blacklistUsers"),
        optional=("blacklistUsers",),
        convert={"userAndWei": _pairs, "existingTokenAndWei": _pairs, "blacklistUsers": _pairs},
    ),
}


# ── multiSig wrapper ────────────────────────────────────────────────


def _stripped(value: Any, ctx: str) -> str:
    return strip_leading_zeros(str(value))


def _multi_sig_signature(value: Any, ctx: str) -> dict[str, Any]:
    if hasattr(value, "to_wire"):
        value = value.to_wire()
    return _struct(value, ctx, ("r", "s", "v"), convert={"r": _stripped, "s": _stripped})


def _multi_sig(action: Mapping[str, Any]) -> dict[str, Any]:
    tag = ActionType.MULTI_SIG.value
    body = _struct(
        action,
        tag,
        ("signatureChainId", "signatures", "payload"),
        convert={
            "signatures": _list_of(_multi_sig_signature),
            # inner action was canonicalized when it was signed; copy as-is
            "payload": lambda v, c: _struct(
                v, c, ("multiSigUser", "outerSigner", "action"), convert={"multiSigUser": _lower, "outerSigner": _lower}
            ),
        },
    )
    return {"type": tag, **body}


# ── Rule table ──────────────────────────────────────────────────────

_T = ActionType

_RULES: dict[ActionType, Rule] = {
    _T.APPROVE_AGENT: _flat(
        _T.APPROVE_AGENT,
        "signatureChainId", "hyperliquidChain", "agentAddress", "agentName", "nonce",
        defaults={"agentName": ""},
        convert={"agentAddress": _lower},
    ),
    _T.APPROVE_BUILDER_FEE: _user_signed(
        _T.APPROVE_BUILDER_FEE, "maxFeeRate", "builder", "nonce", convert={"builder": _lower}
    ),
    _T.BATCH_MODIFY: _flat(_T.BATCH_MODIFY, "modifies", convert={"modifies": _list_of(_modify_wire)}),
    _T.CANCEL: _flat(
        _T.CANCEL, "cancels", convert={"cancels": _list_of(lambda v, c: _struct(v, c, ("a", "o")))}
    ),
    _T.CANCEL_BY_CLOID: _flat(
        _T.CANCEL_BY_CLOID, "cancels", convert={"cancels": _list_of(lambda v, c: _struct(v, c, ("asset", "cloid")))}
    ),
    _T.C_DEPOSIT: _user_signed(_T.C_DEPOSIT, "wei", "nonce"),
    _T.CLAIM_REWARDS: _flat(_T.CLAIM_REWARDS),
    _T.CONVERT_TO_MULTI_SIG_USER: _user_signed(_T.CONVERT_TO_MULTI_SIG_USER, "signers", "nonce"),
    _T.CREATE_SUB_ACCOUNT: _flat(_T.CREATE_SUB_ACCOUNT, "name"),
    _T.CREATE_VAULT: _flat(_T.CREATE_VAULT, "name", "description", "initialUsd", "nonce"),
    _T.C_SIGNER_ACTION: _variant(
        _T.C_SIGNER_ACTION,
        jailSelf=lambda v, c: _copy(v),
        unjailSelf=lambda v, c: _copy(v),
    ),
    _T.C_VALIDATOR_ACTION: _variant(
        _T.C_VALIDATOR_ACTION,
        changeProfile=_change_profile,
        register=_register_validator,
        unregister=lambda v, c: _copy(v),
    ),
    _T.C_WITHDRAW: _user_signed(_T.C_WITHDRAW, "wei", "nonce"),
    _T.EVM_USER_MODIFY: _flat(_T.EVM_USER_MODIFY, "usingBigBlocks"),
    _T.MODIFY: _flat(_T.MODIFY, "oid", "order", convert={"order": _order_wire}),
    _T.MULTI_SIG: _multi_sig,
    _T.NOOP: _flat(_T.NOOP),
    _T.ORDER: _flat(
        _T.ORDER,
        "orders", "grouping", "builder",
        optional=("builder",),
        convert={"orders": _list_of(_order_wire), "builder": _builder},
    ),
    _T.PERP_DEPLOY: _variant(_T.PERP_DEPLOY, registerAsset=_register_asset, setOracle=_set_oracle),
    _T.PERP_DEX_CLASS_TRANSFER: _user_signed(_T.PERP_DEX_CLASS_TRANSFER, "dex", "token", "amount", "toPerp", "nonce"),
    _T.PERP_DEX_TRANSFER: _user_signed(_T.PERP_DEX_TRANSFER, "sourceDex", "destinationDex", "amount", "nonce"),
    _T.REGISTER_REFERRER: _flat(_T.REGISTER_REFERRER, "code"),
    _T.RESERVE_REQUEST_WEIGHT: _flat(_T.RESERVE_REQUEST_WEIGHT, "weight"),
    _T.SCHEDULE_CANCEL: _flat(_T.SCHEDULE_CANCEL, "time", optional=("time",)),
    _T.SET_DISPLAY_NAME: _flat(_T.SET_DISPLAY_NAME, "displayName"),
    _T.SET_REFERRER: _flat(_T.SET_REFERRER, "code"),
    _T.SPOT_DEPLOY: _variant(_T.SPOT_DEPLOY, **_SPOT_DEPLOY_VARIANTS),
    _T.SPOT_SEND: _user_signed(
        _T.SPOT_SEND, "destination", "token", "amount", "time", convert={"destination": _lower}
    ),
    _T.SPOT_USER: _variant(
        _T.SPOT_USER, toggleSpotDusting=lambda v, c: _struct(v, c, ("optOut",))
    ),
    _T.SUB_ACCOUNT_SPOT_TRANSFER: _flat(
        _T.SUB_ACCOUNT_SPOT_TRANSFER,
        "subAccountUser", "isDeposit", "token", "amount",
        convert={"subAccountUser": _lower},
    ),
    _T.SUB_ACCOUNT_TRANSFER: _flat(
        _T.SUB_ACCOUNT_TRANSFER, "subAccountUser", "isDeposit", "usd", convert={"subAccountUser": _lower}
    ),
    _T.TOKEN_DELEGATE: _user_signed(
        _T.TOKEN_DELEGATE, "validator", "wei", "isUndelegate", "nonce", convert={"validator": _lower}
    ),
    _T.TWAP_CANCEL: _flat(_T.TWAP_CANCEL, "a", "t"),
    _T.TWAP_ORDER: _flat(
        _T.TWAP_ORDER,
        "twap",
        convert={"twap": lambda v, c: _struct(v, c, ("a", "b", "s", "r", "m", "t"), convert={"s": _decimal})},
    ),
    _T.UPDATE_ISOLATED_MARGIN: _flat(_T.UPDATE_ISOLATED_MARGIN, "asset", "isBuy", "ntli"),
    _T.UPDATE_LEVERAGE: _flat(_T.UPDATE_LEVERAGE, "asset", "isCross", "leverage"),
    _T.USD_CLASS_TRANSFER: _user_signed(_T.USD_CLASS_TRANSFER, "amount", "toPerp", "nonce"),
    _T.USD_SEND: _user_signed(_T.USD_SEND, "destination", "amount", "time", convert={"destination": _lower}),
    _T.VAULT_DISTRIBUTE: _flat(_T.VAULT_DISTRIBUTE, "vaultAddress", "usd"),
    _T.VAULT_MODIFY: _flat(_T.VAULT_MODIFY, "vaultAddress", "allowDeposits", "alwaysCloseOnWithdraw"),
    _T.VAULT_TRANSFER: _flat(_T.VAULT_TRANSFER, "vaultAddress", "isDeposit", "usd"),
    _T.WITHDRAW3: _user_signed(_T.WITHDRAW3, "destination", "amount", "time", convert={"destination": _lower}),
}

_missing_rules = set(ActionType) - set(_RULES)
if _missing_rules:
    raise RuntimeError(f"no canonical rule for: {sorted(t.value for t in _missing_rules)}")


# ── Public API ──────────────────────────────────────────────────────


def action_type_of(action: Mapping[str, Any]) -> ActionType:
    """Resolve the ``type`` tag of ``action`` to an ``ActionType``."""
    if not isinstance(action, Mapping):
        raise InvalidActionError(f"action must be a mapping, got {type(action).__name__}")
    tag = action.get("type")
    try:
        return ActionType(tag)
    except ValueError:
        raise UnrecognizedActionTypeError(tag) from None


def canonicalize(action: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``action``'s fields in canonical order.

    The input is never mutated.  ``canonicalize(canonicalize(a)) ==
    canonicalize(a)`` holds for every tag.

    Raises
    ------
    UnrecognizedActionTypeError
        If ``action["type"]`` is not a known tag.
    InvalidActionError
        If a required field is missing or has the wrong shape.
    """
    return _RULES[action_type_of(action)](action)


def classify(action: Mapping[str, Any]) -> ActionKind:
    """User-signed actions carry ``signatureChainId``; everything else is L1."""
    return ActionKind.USER_SIGNED if "signatureChainId" in action else ActionKind.L1
