"""Wallet adapter — one interface over heterogeneous signing backends.

Backends:

- ``PrivateKeySigner``: raw secp256k1 key held in process.
- ``LocalAccountSigner``: any ``eth_account`` account object.
- ``ProviderSigner``: EIP-1193 / JSON-RPC wallet reached through ``AsyncWeb3``.
- ``ExternalSigner``: anything implementing ``TypedDataBackend``
  (remote signer daemon, HSM bridge, test double).

``WalletAdapter`` resolves each signer's address once and turns every
backend failure into ``SigningBackendError``.
"""

from __future__ import annotations

import json
import weakref
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Protocol, Union, runtime_checkable

import structlog
from eth_account import Account
from eth_account.signers.base import BaseAccount
from eth_utils import is_address, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3

from models.signature import Signature

from .eip712 import build_typed_data, signable_message, typed_data_digest, typed_data_to_json
from .errors import AddressResolutionError, SigningBackendError, SigningError, UnsupportedSignerError

logger = structlog.get_logger("signing.wallet")

__all__ = [
    "ExternalSigner",
    "LocalAccountSigner",
    "PrivateKeySigner",
    "ProviderSigner",
    "Signer",
    "SignerKind",
    "SignerLike",
    "TypedDataBackend",
    "WalletAdapter",
    "as_signer",
    "default_adapter",
]


class SignerKind(str, Enum):
    """Backend discriminant."""

    PRIVATE_KEY = "private_key"
    LOCAL_ACCOUNT = "local_account"
    PROVIDER = "provider"
    EXTERNAL = "external"


@runtime_checkable
class TypedDataBackend(Protocol):
    """Minimal contract for an external signer."""

    async def get_address(self) -> str: ...

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Any: ...


def _to_signature(result: Any) -> Signature:
    """Accept a ``Signature``, an ``{r, s, v}`` mapping or a 65-byte hex/bytes value."""
    if isinstance(result, Signature):
        return result
    if isinstance(result, Mapping):
        v = int(result["v"])
        return Signature(r=result["r"], s=result["s"], v=v + 27 if v < 27 else v)
    if isinstance(result, (str, bytes, bytearray)):
        return Signature.from_hex(result)
    if all(hasattr(result, attr) for attr in ("r", "s", "v")):
        return Signature(r=result.r, s=result.s, v=result.v)
    raise ValueError(f"unrecognised signature value: {type(result).__name__}")


# ── Signers ─────────────────────────────────────────────────────────


class Signer(ABC):
    """A keyholder able to produce EIP-712 signatures."""

    kind: ClassVar[SignerKind]

    @abstractmethod
    async def get_address(self) -> str:
        """Return the signer's address (any case)."""

    @abstractmethod
    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Signature:
        """Sign a full EIP-712 typed-data structure."""


@dataclass(eq=False)
class PrivateKeySigner(Signer):
    """Raw private key; the only backend that signs arbitrary digests."""

    kind: ClassVar[SignerKind] = SignerKind.PRIVATE_KEY

    private_key: str = field(repr=False)

    def __post_init__(self) -> None:
        try:
            self._account = Account.from_key(self.private_key)
        except Exception as exc:
            raise UnsupportedSignerError(self) from exc

    @property
    def address(self) -> str:
        return self._account.address

    def sign_hash(self, digest: bytes) -> Signature:
        """Sign a 32-byte digest directly (no EIP-191 prefix)."""
        if len(digest) != 32:
            raise ValueError(f"digest must be 32 bytes, got {len(digest)}")
        signed = self._account.unsafe_sign_hash(digest)
        return Signature(r=signed.r, s=signed.s, v=signed.v)

    async def get_address(self) -> str:
        return self.address

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Signature:
        return self.sign_hash(typed_data_digest(typed_data))


@dataclass(eq=False)
class LocalAccountSigner(Signer):
    """Wraps an ``eth_account`` account (``LocalAccount`` or subclass)."""

    kind: ClassVar[SignerKind] = SignerKind.LOCAL_ACCOUNT

    account: BaseAccount

    async def get_address(self) -> str:
        return self.account.address

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Signature:
        signed = self.account.sign_message(signable_message(typed_data))
        return Signature(r=signed.r, s=signed.s, v=signed.v)


@dataclass(eq=False)
class ProviderSigner(Signer):
    """EIP-1193 wallet over JSON-RPC.

    Parameters
    ----------
    w3:
        ``AsyncWeb3`` instance whose provider is the wallet.
    address:
        Account to sign with.  When empty, the first account returned by
        ``eth_requestAccounts`` (or ``eth_accounts``) is used.
    """

    kind: ClassVar[SignerKind] = SignerKind.PROVIDER

    w3: AsyncWeb3
    address: str = ""

    @classmethod
    def from_url(cls, rpc_url: str, address: str = "") -> "ProviderSigner":
        """Wallet reachable over HTTP JSON-RPC (e.g. a local signer node)."""
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)), address)

    async def _request(self, method: str, params: list[Any]) -> Any:
        response = await self.w3.provider.make_request(method, params)
        if isinstance(response, Mapping):
            if response.get("error"):
                raise SigningBackendError(f"{method} failed: {response['error']}")
            return response.get("result")
        return response

    async def get_address(self) -> str:
        if self.address:
            return self.address
        accounts: list[str] = []
        for method in ("eth_requestAccounts", "eth_accounts"):
            try:
                accounts = list(await self._request(method, []) or [])
            except SigningBackendError:
                continue
            if accounts:
                break
        if not accounts:
            raise AddressResolutionError("No Ethereum accounts available")
        self.address = accounts[0]
        return self.address

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Signature:
        address = await self.get_address()
        payload = json.dumps(typed_data_to_json(typed_data))
        result = await self._request("eth_signTypedData_v4", [address, payload])
        return _to_signature(result)


@dataclass(eq=False)
class ExternalSigner(Signer):
    """Delegates to any ``TypedDataBackend``."""

    kind: ClassVar[SignerKind] = SignerKind.EXTERNAL

    backend: TypedDataBackend

    async def get_address(self) -> str:
        return await self.backend.get_address()

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Signature:
        return _to_signature(await self.backend.sign_typed_data(typed_data))


SignerLike = Union[Signer, BaseAccount, TypedDataBackend, str]


def as_signer(value: SignerLike) -> Signer:
    """Coerce a signer-like value into a ``Signer``.

    Hex strings are treated as private keys.

    Raises
    ------
    UnsupportedSignerError
        If the value matches no backend.
    """
    if isinstance(value, Signer):
        return value
    if isinstance(value, str):
        return PrivateKeySigner(value)
    if isinstance(value, BaseAccount):
        return LocalAccountSigner(value)
    if isinstance(value, TypedDataBackend):
        return ExternalSigner(value)
    raise UnsupportedSignerError(value)


# ── Adapter ─────────────────────────────────────────────────────────


class WalletAdapter:
    """Address resolution and typed-data signing over any ``Signer``.

    Addresses are cached per signer instance for the adapter's lifetime.
    """

    def __init__(self) -> None:
        self._addresses: weakref.WeakKeyDictionary[Signer, str] = weakref.WeakKeyDictionary()

    async def resolve_address(self, signer: SignerLike) -> str:
        """Return the EIP-55 checksum address of ``signer``.

        Raises
        ------
        UnsupportedSignerError
            If ``signer`` is not a supported backend.
        AddressResolutionError
            If the backend yields no usable address.
        """
        resolved = as_signer(signer)
        cached = self._addresses.get(resolved)
        if cached is not None:
            return cached

        try:
            raw = await resolved.get_address()
        except SigningError:
            raise
        except Exception as exc:
            logger.error("wallet.address_failed", kind=resolved.kind.value, error=str(exc))
            raise AddressResolutionError(f"{resolved.kind.value} signer failed to resolve address") from exc

        if not raw or not is_address(raw):
            raise AddressResolutionError(f"{resolved.kind.value} signer returned invalid address {raw!r}")
        address = to_checksum_address(raw)
        self._addresses[resolved] = address
        logger.debug("wallet.address_resolved", kind=resolved.kind.value, address=address)
        return address

    async def sign_typed_data(
        self,
        signer: SignerLike,
        domain: Mapping[str, Any],
        types: Mapping[str, Any],
        primary_type: str,
        message: Mapping[str, Any],
    ) -> Signature:
        """Sign ``message`` as ``primary_type`` under ``domain``.

        Raises
        ------
        UnsupportedSignerError
            If ``signer`` is not a supported backend.
        SigningBackendError
            If the backend declines, fails or returns a malformed signature.
        """
        resolved = as_signer(signer)
        typed_data = build_typed_data(domain, types, primary_type, message)
        try:
            return await resolved.sign_typed_data(typed_data)
        except SigningBackendError:
            raise
        except Exception as exc:
            logger.error(
                "wallet.sign_failed",
                kind=resolved.kind.value,
                primary_type=primary_type,
                error=str(exc),
            )
            raise SigningBackendError(
                f"{resolved.kind.value} signer failed to sign {primary_type}",
                last_error=exc,
            ) from exc


_default_adapter = WalletAdapter()


def default_adapter() -> WalletAdapter:
    """Process-wide adapter used when callers do not supply one."""
    return _default_adapter
