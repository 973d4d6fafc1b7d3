"""Tests for execution/multisig.py — payload consistency, ordering, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from execution.multisig import MultiSigCoordinator, coordinate_multi_sig, is_assembled_multi_sig
from execution.nonce_manager import NonceManager
from models.signature import Signature
from signing.canonical import canonicalize
from signing.eip712 import (
    AGENT_TYPES,
    L1_DOMAIN,
    SEND_MULTI_SIG_TYPES,
    build_typed_data,
    extend_types_for_multi_sig,
    primary_type_of,
    recover_typed_data_signer,
    user_signed_domain,
    user_signed_types_for,
)
from signing.errors import CoordinationCancelledError, InvalidActionError, SigningBackendError
from signing.l1 import create_l1_action_hash
from signing.user_signed import signed_message_for
from signing.wallet import ExternalSigner

SCHEDULE_CANCEL = {"type": "scheduleCancel", "time": 1700000000000}
NOW_MS = 1_700_000_000_500

USD_SEND = {
    "type": "usdSend",
    "signatureChainId": "0x66eee",
    "hyperliquidChain": "Mainnet",
    "destination": "0x0000000000000000000000000000000000000001",
    "amount": "5",
    "time": 1700000000123,
}


def _recover_l1(sig_wire: dict, statement, nonce: int, vault=None, expires=None) -> str:
    typed_data = build_typed_data(
        L1_DOMAIN,
        AGENT_TYPES,
        "Agent",
        {"source": "a", "connectionId": create_l1_action_hash(statement, nonce, vault, expires)},
    )
    return recover_typed_data_signer(typed_data, Signature(**sig_wire))


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def backends(backend_factory, private_key, cosigner_key):
    return [backend_factory(private_key), backend_factory(cosigner_key)]


@pytest.fixture
def coordinator(backends, fake_transport, multi_sig_user) -> MultiSigCoordinator:
    return MultiSigCoordinator(
        fake_transport,
        [ExternalSigner(b) for b in backends],
        multi_sig_user,
        nonce_manager=NonceManager(clock=lambda: NOW_MS),
    )


# ── L1 rounds ────────────────────────────────────────────────────────


class TestL1Round:

    @pytest.mark.asyncio
    async def test_cosigners_sign_identical_statement(self, coordinator, backends) -> None:
        await coordinator.coordinate(SCHEDULE_CANCEL)
        leader_inner = backends[0].seen[0]
        cosigner_inner = backends[1].seen[0]
        assert leader_inner["message"] == cosigner_inner["message"]
        assert leader_inner["domain"] == cosigner_inner["domain"]
        assert leader_inner["primaryType"] == "Agent"

    @pytest.mark.asyncio
    async def test_envelope_shape(self, coordinator, address, multi_sig_user) -> None:
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        assert envelope.nonce == NOW_MS
        assert list(envelope.action) == ["type", "signatureChainId", "signatures", "payload"]
        assert envelope.action["signatureChainId"] == "0x66eee"
        assert envelope.action["payload"] == {
            "multiSigUser": multi_sig_user.lower(),
            "outerSigner": address.lower(),
            "action": SCHEDULE_CANCEL,
        }
        assert len(envelope.action["signatures"]) == 2

    @pytest.mark.asyncio
    async def test_signatures_recover_in_signer_order(
        self, coordinator, address, cosigner_address, multi_sig_user
    ) -> None:
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        statement = [multi_sig_user.lower(), address.lower(), canonicalize(SCHEDULE_CANCEL)]
        recovered = [_recover_l1(s, statement, envelope.nonce) for s in envelope.action["signatures"]]
        assert recovered == [address, cosigner_address]

    @pytest.mark.asyncio
    async def test_order_preserved_when_leader_is_slowest(
        self, backend_factory, private_key, cosigner_key, address, cosigner_address, multi_sig_user
    ) -> None:
        slow, fast = backend_factory(private_key, delay=0.05), backend_factory(cosigner_key)
        coordinator = MultiSigCoordinator(
            None,
            [ExternalSigner(slow), ExternalSigner(fast)],
            multi_sig_user,
            nonce_manager=NonceManager(clock=lambda: NOW_MS),
        )
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        statement = [multi_sig_user.lower(), address.lower(), canonicalize(SCHEDULE_CANCEL)]
        recovered = [_recover_l1(s, statement, envelope.nonce) for s in envelope.action["signatures"]]
        assert recovered == [address, cosigner_address]

    @pytest.mark.asyncio
    async def test_leader_seal_recovers(self, coordinator, address) -> None:
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        without_type = {k: v for k, v in envelope.action.items() if k != "type"}
        typed_data = build_typed_data(
            user_signed_domain("0x66eee"),
            SEND_MULTI_SIG_TYPES,
            primary_type_of(SEND_MULTI_SIG_TYPES),
            {
                "hyperliquidChain": "Mainnet",
                "multiSigActionHash": create_l1_action_hash(without_type, envelope.nonce),
                "nonce": envelope.nonce,
            },
        )
        assert recover_typed_data_signer(typed_data, envelope.signature) == address

    @pytest.mark.asyncio
    async def test_vault_and_expiry(self, backends, multi_sig_user, address) -> None:
        vault = "0x00000000000000000000000000000000000000aa"
        coordinator = MultiSigCoordinator(
            None,
            [ExternalSigner(b) for b in backends],
            multi_sig_user,
            nonce_manager=NonceManager(clock=lambda: NOW_MS),
            default_vault_address=vault,
            expires_after_offset_ms=60_000,
        )
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        assert envelope.vault_address == vault
        assert envelope.expires_after == NOW_MS + 60_000
        wire = envelope.to_wire()
        assert wire["vaultAddress"] == vault
        assert wire["expiresAfter"] == NOW_MS + 60_000

        statement = [multi_sig_user.lower(), address.lower(), canonicalize(SCHEDULE_CANCEL)]
        assert (
            _recover_l1(envelope.action["signatures"][0], statement, envelope.nonce, vault, NOW_MS + 60_000)
            == address
        )

    @pytest.mark.asyncio
    async def test_nonces_advance_between_rounds(self, coordinator) -> None:
        first = await coordinator.coordinate(SCHEDULE_CANCEL)
        second = await coordinator.coordinate(SCHEDULE_CANCEL)
        assert second.nonce == first.nonce + 1


# ── User-signed rounds ───────────────────────────────────────────────


class TestUserSignedRound:

    @pytest.mark.asyncio
    async def test_cosigners_sign_extended_message(self, coordinator, backends, address, multi_sig_user) -> None:
        envelope = await coordinator.coordinate(USD_SEND)
        leader_inner, cosigner_inner = backends[0].seen[0], backends[1].seen[0]
        assert leader_inner["message"] == cosigner_inner["message"]
        assert leader_inner["message"]["payloadMultiSigUser"] == multi_sig_user.lower()
        assert leader_inner["message"]["outerSigner"] == address.lower()
        names = [f["name"] for f in leader_inner["types"]["HyperliquidTransaction:UsdSend"]]
        assert names[:3] == ["hyperliquidChain", "payloadMultiSigUser", "outerSigner"]
        assert envelope.nonce == USD_SEND["time"]

    @pytest.mark.asyncio
    async def test_bypasses_nonce_manager(self, backends, multi_sig_user, address) -> None:
        nonces = NonceManager(clock=lambda: NOW_MS)
        coordinator = MultiSigCoordinator(
            None, [ExternalSigner(b) for b in backends], multi_sig_user, nonce_manager=nonces
        )
        await coordinator.coordinate(USD_SEND)
        assert nonces.last_nonce(address) is None

    @pytest.mark.asyncio
    async def test_signatures_recover(self, coordinator, address, cosigner_address, multi_sig_user) -> None:
        envelope = await coordinator.coordinate(USD_SEND)
        types = extend_types_for_multi_sig(user_signed_types_for("usdSend"))
        message = signed_message_for(
            types,
            {**canonicalize(USD_SEND), "payloadMultiSigUser": multi_sig_user.lower(), "outerSigner": address.lower()},
        )
        typed_data = build_typed_data(user_signed_domain("0x66eee"), types, primary_type_of(types), message)
        recovered = [
            recover_typed_data_signer(typed_data, Signature(**s)) for s in envelope.action["signatures"]
        ]
        assert recovered == [address, cosigner_address]

    @pytest.mark.asyncio
    async def test_empty_agent_name_signed_empty_sent_null(self, coordinator, backends) -> None:
        action = {
            "type": "approveAgent",
            "signatureChainId": "0x66eee",
            "hyperliquidChain": "Mainnet",
            "agentAddress": "0x0000000000000000000000000000000000000002",
            "agentName": "",
            "nonce": 1700000000999,
        }
        envelope = await coordinator.coordinate(action)
        assert backends[1].seen[0]["message"]["agentName"] == ""
        assert envelope.action["payload"]["action"]["agentName"] is None
        assert list(envelope.action["payload"]["action"])[-2:] == ["agentName", "nonce"]


# ── Leader handling ──────────────────────────────────────────────────


class TestLeader:

    @pytest.mark.asyncio
    async def test_set_leader_changes_outer_signer(self, coordinator, cosigner_address) -> None:
        signers_before = coordinator.signers
        coordinator.set_leader(coordinator.signers[1])
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        assert envelope.action["payload"]["outerSigner"] == cosigner_address.lower()
        assert coordinator.signers == signers_before

    def test_set_leader_by_index(self, coordinator) -> None:
        coordinator.set_leader(1)
        assert coordinator.leader() is coordinator.signers[1]

    def test_set_leader_refuses_outsider(self, coordinator, backend_factory, private_key) -> None:
        outsider = ExternalSigner(backend_factory(private_key))
        with pytest.raises(ValueError, match="one of"):
            coordinator.set_leader(outsider)
        with pytest.raises(ValueError, match="out of range"):
            coordinator.set_leader(2)
        assert coordinator.leader() is coordinator.signers[0]

    def test_signer_list_copied(self, backends, multi_sig_user) -> None:
        signers = [ExternalSigner(b) for b in backends]
        coordinator = MultiSigCoordinator(None, signers, multi_sig_user)
        signers.pop()
        assert len(coordinator.signers) == 2
        assert coordinator.leader() is coordinator.signers[0]

    def test_requires_signers(self, multi_sig_user) -> None:
        with pytest.raises(ValueError):
            MultiSigCoordinator(None, [], multi_sig_user)

    def test_requires_address(self, private_key) -> None:
        with pytest.raises(ValueError):
            MultiSigCoordinator(None, [private_key], "not-an-address")


# ── Pass-through and submission ──────────────────────────────────────


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_sends_wire_envelope(self, coordinator, fake_transport) -> None:
        response = await coordinator.submit(SCHEDULE_CANCEL)
        assert response.status == "ok"
        (sent,) = fake_transport.submitted
        assert sent["action"]["type"] == "multiSig"
        assert sent["nonce"] == NOW_MS
        assert set(sent["signature"]) == {"r", "s", "v"}

    @pytest.mark.asyncio
    async def test_assembled_envelope_passes_through(self, coordinator, fake_transport, backends) -> None:
        envelope = (await coordinator.coordinate(SCHEDULE_CANCEL)).to_wire()
        for b in backends:
            b.seen.clear()

        await coordinator.submit(envelope)

        assert fake_transport.submitted == [envelope]
        assert fake_transport.submitted[0] is envelope
        assert all(not b.seen for b in backends)

    @pytest.mark.asyncio
    async def test_bare_wrapper_refused(self, coordinator, fake_transport) -> None:
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        with pytest.raises(InvalidActionError, match="seal"):
            await coordinator.submit(envelope.action)
        assert fake_transport.submitted == []

    @pytest.mark.asyncio
    async def test_seal_bare_wrapper(self, coordinator, fake_transport) -> None:
        original = await coordinator.coordinate(SCHEDULE_CANCEL)
        resealed = await coordinator.seal(original.action, original.nonce)
        assert resealed == original

        await coordinator.submit(resealed.to_wire())
        (sent,) = fake_transport.submitted
        assert set(sent) == {"action", "nonce", "signature"}

    @pytest.mark.asyncio
    async def test_seal_refuses_other_tags(self, coordinator) -> None:
        with pytest.raises(InvalidActionError):
            await coordinator.seal(SCHEDULE_CANCEL, NOW_MS)

    @pytest.mark.asyncio
    async def test_coordinate_refuses_multi_sig(self, coordinator) -> None:
        envelope = await coordinator.coordinate(SCHEDULE_CANCEL)
        with pytest.raises(InvalidActionError, match="multiSig"):
            await coordinator.coordinate(envelope.action)

    @pytest.mark.asyncio
    async def test_no_transport(self, backends, multi_sig_user) -> None:
        coordinator = MultiSigCoordinator(None, [ExternalSigner(b) for b in backends], multi_sig_user)
        with pytest.raises(RuntimeError, match="no transport"):
            await coordinator.submit(SCHEDULE_CANCEL)

    def test_is_assembled_multi_sig(self) -> None:
        assert is_assembled_multi_sig({"action": {"type": "multiSig"}, "nonce": 1, "signature": {}})
        assert not is_assembled_multi_sig({"type": "multiSig"})
        assert not is_assembled_multi_sig({"action": {"type": "multiSig"}, "nonce": 1})
        assert not is_assembled_multi_sig(SCHEDULE_CANCEL)


# ── Failure and cancellation ─────────────────────────────────────────


class TestFailures:

    @pytest.mark.asyncio
    async def test_cancel_reaches_leader_seal(
        self, backend_factory, private_key, cosigner_key, multi_sig_user, fake_transport
    ) -> None:
        leader = backend_factory(private_key, hang_after=1)
        coordinator = MultiSigCoordinator(
            fake_transport,
            [ExternalSigner(leader), ExternalSigner(backend_factory(cosigner_key))],
            multi_sig_user,
        )
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(CoordinationCancelledError):
            await asyncio.wait_for(coordinator.submit(SCHEDULE_CANCEL, cancel=cancel), 2.0)
        assert len(leader.seen) == 2
        assert leader.cancelled
        assert fake_transport.submitted == []

    @pytest.mark.asyncio
    async def test_leader_seal_timeout(
        self, backend_factory, private_key, cosigner_key, multi_sig_user
    ) -> None:
        coordinator = MultiSigCoordinator(
            None,
            [ExternalSigner(backend_factory(private_key, hang_after=1)), ExternalSigner(backend_factory(cosigner_key))],
            multi_sig_user,
            signer_timeout=0.05,
        )
        with pytest.raises(SigningBackendError, match="leader seal"):
            await asyncio.wait_for(coordinator.coordinate(SCHEDULE_CANCEL), 2.0)

    @pytest.mark.asyncio
    async def test_cancel_discards_round(
        self, backend_factory, private_key, cosigner_key, multi_sig_user, fake_transport
    ) -> None:
        hanging = backend_factory(cosigner_key, hang=True)
        coordinator = MultiSigCoordinator(
            fake_transport,
            [ExternalSigner(backend_factory(private_key)), ExternalSigner(hanging)],
            multi_sig_user,
        )
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(CoordinationCancelledError):
            await coordinator.submit(SCHEDULE_CANCEL, cancel=cancel)
        assert hanging.cancelled
        assert fake_transport.submitted == []

    @pytest.mark.asyncio
    async def test_cancel_already_set(self, coordinator, backends) -> None:
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(CoordinationCancelledError):
            await coordinator.coordinate(SCHEDULE_CANCEL, cancel=cancel)
        assert all(not b.seen for b in backends)
        assert all(b.address_calls == 0 for b in backends)

    @pytest.mark.asyncio
    async def test_signer_failure_cancels_others(
        self, backend_factory, private_key, cosigner_key, multi_sig_user
    ) -> None:
        hanging = backend_factory(private_key, hang=True)
        failing = backend_factory(cosigner_key, fail=RuntimeError("User rejected the request"))
        coordinator = MultiSigCoordinator(None, [ExternalSigner(hanging), ExternalSigner(failing)], multi_sig_user)
        with pytest.raises(SigningBackendError) as exc_info:
            await coordinator.coordinate(SCHEDULE_CANCEL)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert hanging.cancelled

    @pytest.mark.asyncio
    async def test_signer_timeout(self, backend_factory, private_key, cosigner_key, multi_sig_user) -> None:
        coordinator = MultiSigCoordinator(
            None,
            [ExternalSigner(backend_factory(private_key)), ExternalSigner(backend_factory(cosigner_key, hang=True))],
            multi_sig_user,
            signer_timeout=0.05,
        )
        with pytest.raises(SigningBackendError, match="signer 1"):
            await coordinator.coordinate(SCHEDULE_CANCEL)

    @pytest.mark.asyncio
    async def test_unknown_action(self, coordinator) -> None:
        with pytest.raises(ValueError):
            await coordinator.coordinate({"type": "bogus"})


# ── Module-level helper ──────────────────────────────────────────────


class TestCoordinateMultiSig:

    @pytest.mark.asyncio
    async def test_private_keys(self, private_key, cosigner_key, multi_sig_user, address) -> None:
        envelope = await coordinate_multi_sig(
            [private_key, cosigner_key],
            multi_sig_user,
            SCHEDULE_CANCEL,
            nonce_manager=NonceManager(clock=lambda: NOW_MS),
        )
        assert envelope.nonce == NOW_MS
        assert envelope.action["payload"]["outerSigner"] == address.lower()
        assert envelope.vault_address is None
        assert "vaultAddress" not in envelope.to_wire()

    @pytest.mark.asyncio
    async def test_with_transport_submits(
        self, private_key, cosigner_key, multi_sig_user, fake_transport
    ) -> None:
        response = await coordinate_multi_sig(
            [private_key, cosigner_key],
            multi_sig_user,
            SCHEDULE_CANCEL,
            nonce_manager=NonceManager(clock=lambda: NOW_MS),
            transport=fake_transport,
        )
        assert response.status == "ok"
        (sent,) = fake_transport.submitted
        assert sent["nonce"] == NOW_MS
        assert sent["action"]["type"] == "multiSig"

    @pytest.mark.asyncio
    async def test_assembled_envelope_reaches_transport_unchanged(
        self, private_key, cosigner_key, multi_sig_user, fake_transport
    ) -> None:
        envelope = (
            await coordinate_multi_sig([private_key, cosigner_key], multi_sig_user, SCHEDULE_CANCEL)
        ).to_wire()
        await coordinate_multi_sig(
            [private_key, cosigner_key], multi_sig_user, envelope, transport=fake_transport
        )
        assert fake_transport.submitted == [envelope]
        assert fake_transport.submitted[0] is envelope
