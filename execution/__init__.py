"""hl-multisig — execution package."""

from .authorizer import ActionAuthorizer
from .multisig import MultiSigCoordinator, coordinate_multi_sig
from .nonce_manager import NonceManager
from .transport import ApiErrorKind, ApiRequestError, ExchangeTransport, HttpTransport, TransportError

__all__ = [
    "ActionAuthorizer",
    "ApiErrorKind",
    "ApiRequestError",
    "ExchangeTransport",
    "HttpTransport",
    "MultiSigCoordinator",
    "NonceManager",
    "TransportError",
    "coordinate_multi_sig",
]
