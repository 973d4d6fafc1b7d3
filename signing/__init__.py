"""hl-multisig — signing package.

- canonical: per-tag field order for hashing
- eip712: domains, user-signed type tables, typed-data helpers
- l1 / user_signed: the two signing strategies
- wallet: signer backends and the adapter over them
"""

from .canonical import canonicalize, classify, format_decimal
from .eip712 import (
    USER_SIGNED_ACTION_TYPES,
    extend_types_for_multi_sig,
    recover_typed_data_signer,
    user_signed_types_for,
)
from .errors import (
    AddressResolutionError,
    CoordinationCancelledError,
    InvalidActionError,
    SigningBackendError,
    SigningError,
    UnrecognizedActionTypeError,
    UnsupportedSignerError,
)
from .l1 import create_l1_action_hash, sign_l1_action, sign_multi_sig_action
from .user_signed import sign_user_signed_action
from .wallet import (
    ExternalSigner,
    LocalAccountSigner,
    PrivateKeySigner,
    ProviderSigner,
    Signer,
    SignerKind,
    WalletAdapter,
    as_signer,
)

__all__ = [
    "AddressResolutionError",
    "CoordinationCancelledError",
    "ExternalSigner",
    "InvalidActionError",
    "LocalAccountSigner",
    "PrivateKeySigner",
    "ProviderSigner",
    "Signer",
    "SignerKind",
    "SigningBackendError",
    "SigningError",
    "USER_SIGNED_ACTION_TYPES",
    "UnrecognizedActionTypeError",
    "UnsupportedSignerError",
    "WalletAdapter",
    "as_signer",
    "canonicalize",
    "classify",
    "create_l1_action_hash",
    "extend_types_for_multi_sig",
    "format_decimal",
    "recover_typed_data_signer",
    "sign_l1_action",
    "sign_multi_sig_action",
    "sign_user_signed_action",
    "user_signed_types_for",
]
