"""Shared fixtures: well-known keys, recording signer backends, fake transport."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from execution.transport import ExchangeTransport
from models.response import ExchangeResponse
from signing.wallet import PrivateKeySigner

PRIVATE_KEY = "0x822e9959e022b78423eb653a62ea0020cd283e71a2a8133a6ff2aeffaf373cff"
ADDRESS = "0xE5cA49Fb3bD9A581F0D1EF9CB5D7177Da08bf901"

# Hardhat / anvil default account #0
COSIGNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
COSIGNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

MULTI_SIG_USER = "0x1234567890123456789012345678901234567890"


class RecordingBackend:
    """External backend that signs with a real key and records every request."""

    def __init__(
        self,
        private_key: str,
        delay: float = 0.0,
        hang: bool = False,
        fail: Exception | None = None,
        hang_after: int | None = None,
    ):
        self._signer = PrivateKeySigner(private_key)
        self.delay = delay
        self.hang = hang
        self.fail = fail
        # number of requests answered before the backend stops responding
        self.hang_after = hang_after
        self.seen: list[dict[str, Any]] = []
        self.address_calls = 0
        self.cancelled = False

    async def get_address(self) -> str:
        self.address_calls += 1
        return self._signer.address

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> Any:
        self.seen.append(typed_data)
        try:
            if self.hang or (self.hang_after is not None and len(self.seen) > self.hang_after):
                await asyncio.Event().wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.fail is not None:
            raise self.fail
        return await self._signer.sign_typed_data(typed_data)


class FakeTransport(ExchangeTransport):
    """Records submitted envelopes and answers ``ok``."""

    def __init__(self) -> None:
        self.submitted: list[Mapping[str, Any]] = []

    async def submit(self, envelope: Mapping[str, Any], cancel: asyncio.Event | None = None) -> ExchangeResponse:
        self.submitted.append(envelope)
        return ExchangeResponse(status="ok", response_type="default", raw={"status": "ok"})


@pytest.fixture
def private_key() -> str:
    return PRIVATE_KEY


@pytest.fixture
def address() -> str:
    return ADDRESS


@pytest.fixture
def cosigner_key() -> str:
    return COSIGNER_KEY


@pytest.fixture
def cosigner_address() -> str:
    return COSIGNER_ADDRESS


@pytest.fixture
def multi_sig_user() -> str:
    return MULTI_SIG_USER


@pytest.fixture
def backend_factory():
    return RecordingBackend


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
