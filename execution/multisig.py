"""MultiSigCoordinator — drive N signers over one action, assemble the envelope.

A round:

1. canonicalize the action once;
2. classify it and fix the shared nonce (allocated for L1, read off the
   action for user-signed);
3. resolve the leader's address, which becomes ``outerSigner``;
4. collect every signer's signature concurrently, index-aligned with the
   signer list;
5. wrap everything in a ``multiSig`` action and seal it with the leader.

Usage::

    coordinator = MultiSigCoordinator(transport, [leader_key, cosigner_key], multi_sig_user)
    response = await coordinator.submit({"type": "scheduleCancel", "time": 1700000000000})
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import structlog
from eth_utils import is_address

from core.cancellation import run_cancellable
from models.action import ActionKind, ActionType
from models.envelope import MultiSigPayload, SignedEnvelope
from models.response import ExchangeResponse
from models.signature import Signature
from signing.canonical import action_type_of, canonicalize, classify
from signing.eip712 import user_signed_types_for
from signing.errors import CoordinationCancelledError, InvalidActionError, SigningBackendError
from signing.l1 import sign_l1_action, sign_multi_sig_action
from signing.user_signed import sign_user_signed_action, user_signed_nonce
from signing.wallet import Signer, SignerLike, WalletAdapter, as_signer, default_adapter

from .authorizer import wire_action
from .nonce_manager import NonceManager
from .transport import ExchangeTransport

logger = structlog.get_logger("execution.multisig")

__all__ = ["MultiSigCoordinator", "coordinate_multi_sig", "is_assembled_multi_sig"]

DEFAULT_SIGNATURE_CHAIN_ID = "0x66eee"


def is_assembled_multi_sig(value: Mapping[str, Any]) -> bool:
    """True for an envelope carrying a sealed ``multiSig`` action.

    A bare ``multiSig`` wrapper (no ``nonce`` or leader ``signature``) is
    not assembled.
    """
    inner = value.get("action")
    return (
        isinstance(inner, Mapping)
        and inner.get("type") == ActionType.MULTI_SIG.value
        and "nonce" in value
        and "signature" in value
    )


class MultiSigCoordinator:
    """Collects cosigner signatures for a multi-sig account.

    Parameters
    ----------
    transport:
        Where assembled envelopes go.  May be ``None`` when only
        :meth:`coordinate` is used.
    signers:
        Authorized keyholders.  The first one is the initial leader.  The
        sequence is copied; entries are never modified.
    multi_sig_user:
        Address of the multi-sig account.
    is_testnet:
        Network flag for the phantom agent and ``hyperliquidChain``.
    signature_chain_id:
        Hex chain id for the ``multiSig`` wrapper of L1 actions.
        User-signed actions carry their own.
    nonce_manager:
        Shared allocator for L1 nonces, keyed by the leader's address.
    signer_timeout:
        Seconds to wait for any single signer.  ``None`` or 0 waits forever.
    """

    def __init__(
        self,
        transport: ExchangeTransport | None,
        signers: Sequence[SignerLike],
        multi_sig_user: str,
        *,
        is_testnet: bool = False,
        signature_chain_id: str = DEFAULT_SIGNATURE_CHAIN_ID,
        nonce_manager: NonceManager | None = None,
        adapter: WalletAdapter | None = None,
        default_vault_address: str | None = None,
        expires_after_offset_ms: int = 0,
        signer_timeout: float | None = None,
    ) -> None:
        if not signers:
            raise ValueError("MultiSigCoordinator needs at least one signer")
        if not is_address(multi_sig_user):
            raise ValueError(f"multi_sig_user is not an address: {multi_sig_user!r}")
        self._transport = transport
        self._signers: tuple[Signer, ...] = tuple(as_signer(s) for s in signers)
        self._leader: Signer = self._signers[0]
        self._multi_sig_user = multi_sig_user.lower()
        self._is_testnet = is_testnet
        self._signature_chain_id = signature_chain_id
        self._nonces = nonce_manager or NonceManager()
        self._adapter = adapter or default_adapter()
        self._default_vault = default_vault_address or None
        self._expires_offset = expires_after_offset_ms
        self._signer_timeout = signer_timeout or None

    # ── Accessors ────────────────────────────────────────────────

    @property
    def signers(self) -> tuple[Signer, ...]:
        return self._signers

    @property
    def multi_sig_user(self) -> str:
        return self._multi_sig_user

    def leader(self) -> Signer:
        """Signer whose address is ``outerSigner`` and who seals the envelope."""
        return self._leader

    def set_leader(self, signer: Signer | int) -> None:
        """Rebind the leader for subsequent rounds; the signer list is untouched.

        ``signer`` is one of :attr:`signers` or its index.  The leader must
        also contribute an inner signature, so outsiders are refused.

        Raises
        ------
        ValueError
            If ``signer`` is not one of the coordinator's signers.
        """
        if isinstance(signer, int) and not isinstance(signer, bool):
            if not 0 <= signer < len(self._signers):
                raise ValueError(f"leader index {signer} out of range for {len(self._signers)} signers")
            self._leader = self._signers[signer]
            return
        if not any(signer is s for s in self._signers):
            raise ValueError("leader must be one of the coordinator's signers")
        self._leader = signer

    # ── Coordination ─────────────────────────────────────────────

    async def coordinate(
        self,
        action: Mapping[str, Any],
        *,
        vault_address: str | None = None,
        expires_after: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> SignedEnvelope:
        """Run one signing round and return the sealed envelope.

        ``cancel`` is honoured at every step that waits on a wallet:
        resolving the leader, collecting signatures and the leader's seal.

        Raises
        ------
        InvalidActionError
            If ``action`` is already a ``multiSig`` wrapper or is malformed.
        UnrecognizedActionTypeError
            If the ``type`` tag is unknown.
        SigningBackendError
            If any signer fails or times out.
        CoordinationCancelledError
            If ``cancel`` is set before the envelope is sealed.
        """
        tag = action_type_of(action)
        if tag is ActionType.MULTI_SIG:
            raise InvalidActionError("action is already a multiSig wrapper; use seal() or submit an envelope")
        canonical = canonicalize(action)
        kind = classify(canonical)

        def on_cancel() -> CoordinationCancelledError:
            return CoordinationCancelledError(f"{tag.value} round cancelled")

        leader = self._leader
        outer_signer = (
            await run_cancellable(self._adapter.resolve_address(leader), cancel, on_cancel)
        ).lower()
        user = self._multi_sig_user

        vault = vault_address or self._default_vault
        if kind is ActionKind.L1:
            nonce = await self._nonces.next_nonce(outer_signer)
        else:
            nonce = user_signed_nonce(canonical)
        expires = expires_after
        if expires is None and self._expires_offset:
            expires = nonce + self._expires_offset

        if kind is ActionKind.L1:
            signature_chain_id = self._signature_chain_id
            statement: Any = [user, outer_signer, canonical]

            def sign(signer: Signer) -> Awaitable[Signature]:
                return sign_l1_action(
                    signer,
                    statement,
                    nonce,
                    is_testnet=self._is_testnet,
                    vault_address=vault,
                    expires_after=expires,
                    adapter=self._adapter,
                )
        else:
            signature_chain_id = canonical["signatureChainId"]
            statement = {**canonical, "payloadMultiSigUser": user, "outerSigner": outer_signer}
            types = user_signed_types_for(tag.value)

            def sign(signer: Signer) -> Awaitable[Signature]:
                return sign_user_signed_action(signer, statement, types, adapter=self._adapter)

        log = logger.bind(action_type=tag.value, kind=kind.value, nonce=nonce, signers=len(self._signers))
        log.info("multisig.round_started", outer_signer=outer_signer)

        signatures = await run_cancellable(self._collect(sign), cancel, on_cancel)

        payload = MultiSigPayload(
            multiSigUser=user,
            outerSigner=outer_signer,
            action=wire_action(canonical),
        )
        wrapper = canonicalize(
            {
                "type": ActionType.MULTI_SIG.value,
                "signatureChainId": signature_chain_id,
                "signatures": [s.to_wire() for s in signatures],
                "payload": payload.to_wire(),
            }
        )
        envelope = await self._seal(leader, wrapper, nonce, vault, expires, cancel)
        log.info("multisig.round_sealed")
        return envelope

    async def seal(
        self,
        multi_sig_action: Mapping[str, Any],
        nonce: int,
        *,
        vault_address: str | None = None,
        expires_after: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> SignedEnvelope:
        """Sign a bare ``multiSig`` wrapper as the leader.

        ``nonce``, ``vault_address`` and ``expires_after`` must be the values
        the inner signatures were made with.  The seal is subject to
        ``signer_timeout`` and ``cancel`` like any cosigner.
        """
        if action_type_of(multi_sig_action) is not ActionType.MULTI_SIG:
            raise InvalidActionError(f"expected a multiSig action, got {multi_sig_action.get('type')!r}")
        return await self._seal(
            self._leader, canonicalize(multi_sig_action), nonce, vault_address, expires_after, cancel
        )

    async def _seal(
        self,
        leader: Signer,
        wrapper: dict[str, Any],
        nonce: int,
        vault_address: str | None,
        expires_after: int | None,
        cancel: asyncio.Event | None,
    ) -> SignedEnvelope:
        signature = await run_cancellable(
            self._with_timeout(
                lambda: sign_multi_sig_action(
                    leader,
                    wrapper,
                    nonce,
                    is_testnet=self._is_testnet,
                    vault_address=vault_address,
                    expires_after=expires_after,
                    adapter=self._adapter,
                ),
                "leader seal",
            ),
            cancel,
            lambda: CoordinationCancelledError(f"multiSig seal cancelled at nonce {nonce}"),
        )
        return SignedEnvelope(
            action=wrapper,
            nonce=nonce,
            signature=signature,
            vault_address=vault_address,
            expires_after=expires_after,
        )

    async def submit(
        self,
        action: Mapping[str, Any],
        *,
        vault_address: str | None = None,
        expires_after: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ExchangeResponse:
        """Coordinate ``action`` and hand the envelope to the transport.

        An already assembled envelope (sealed ``multiSig`` action with its
        ``nonce`` and ``signature``) is forwarded unchanged, without another
        signing round.

        Raises
        ------
        InvalidActionError
            For a bare ``multiSig`` wrapper; seal it with :meth:`seal` first.
        """
        if self._transport is None:
            raise RuntimeError("MultiSigCoordinator has no transport")
        if is_assembled_multi_sig(action):
            logger.info("multisig.pass_through", nonce=action.get("nonce"))
            return await self._transport.submit(action, cancel)
        if action.get("type") == ActionType.MULTI_SIG.value:
            raise InvalidActionError("bare multiSig wrapper has no nonce or leader signature; seal() it first")
        envelope = await self.coordinate(
            action, vault_address=vault_address, expires_after=expires_after, cancel=cancel
        )
        return await self._transport.submit(envelope.to_wire(), cancel)

    # ── Internals ────────────────────────────────────────────────

    async def _with_timeout(self, start: Callable[[], Awaitable[Signature]], who: str) -> Signature:
        if self._signer_timeout is None:
            return await start()
        try:
            return await asyncio.wait_for(start(), self._signer_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("multisig.signer_timeout", signer=who, timeout=self._signer_timeout)
            raise SigningBackendError(
                f"{who} did not respond within {self._signer_timeout}s", last_error=exc
            ) from exc

    async def _collect(self, sign: Callable[[Signer], Awaitable[Signature]]) -> list[Signature]:
        tasks = [
            asyncio.create_task(self._sign_one(i, signer, sign))
            for i, signer in enumerate(self._signers)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*tasks, return_exceptions=True)

    async def _sign_one(
        self,
        index: int,
        signer: Signer,
        sign: Callable[[Signer], Awaitable[Signature]],
    ) -> Signature:
        signature = await self._with_timeout(lambda: sign(signer), f"signer {index}")
        logger.debug("multisig.signature_collected", signer_index=index)
        return signature


async def coordinate_multi_sig(
    signers: Sequence[SignerLike],
    account: str,
    action: Mapping[str, Any],
    *,
    vault_address: str | None = None,
    expires_after: int | None = None,
    is_testnet: bool = False,
    signature_chain_id: str = DEFAULT_SIGNATURE_CHAIN_ID,
    nonce_manager: NonceManager | None = None,
    transport: ExchangeTransport | None = None,
    cancel: asyncio.Event | None = None,
) -> SignedEnvelope | ExchangeResponse:
    """One-shot round; ``signers[0]`` leads.

    Without ``transport`` the sealed envelope is returned.  With one, the
    envelope is submitted and the venue's reply returned; an assembled
    ``multiSig`` envelope is then forwarded unchanged.
    """
    coordinator = MultiSigCoordinator(
        transport,
        signers,
        account,
        is_testnet=is_testnet,
        signature_chain_id=signature_chain_id,
        nonce_manager=nonce_manager,
    )
    if transport is None:
        return await coordinator.coordinate(
            action, vault_address=vault_address, expires_after=expires_after, cancel=cancel
        )
    return await coordinator.submit(
        action, vault_address=vault_address, expires_after=expires_after, cancel=cancel
    )
