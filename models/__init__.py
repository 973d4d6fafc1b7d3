"""hl-multisig — models package."""

from .action import ActionKind, ActionType
from .envelope import MultiSigPayload, SignedEnvelope
from .response import ExchangeResponse
from .signature import Signature

__all__ = [
    "ActionKind",
    "ActionType",
    "ExchangeResponse",
    "MultiSigPayload",
    "Signature",
    "SignedEnvelope",
]
