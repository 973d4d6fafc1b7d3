"""Multi-sig CLI — inspect, sign and submit exchange actions from a shell.

Keys come from the environment (``HL_PRIVATE_KEY``,
``HL_COSIGNER_PRIVATE_KEYS``, ``HL_MULTI_SIG_USER``) or ``.env``.

Usage:
    python3 -m cli.multisig address
    python3 -m cli.multisig hash --action '{"type": "scheduleCancel", "time": 1700000000000}' --nonce 1700000000000
    python3 -m cli.multisig sign --action-file order.json [--submit]
    python3 -m cli.multisig multisig --action-file order.json [--vault 0x...] [--submit]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import settings
from core.logger import setup_logging
from execution.authorizer import ActionAuthorizer
from execution.multisig import MultiSigCoordinator
from execution.nonce_manager import NonceManager
from execution.transport import ApiRequestError, HttpTransport, TransportError
from signing.canonical import canonicalize, classify
from signing.errors import SigningError
from signing.l1 import create_l1_action_hash
from signing.wallet import PrivateKeySigner, WalletAdapter

logger = structlog.get_logger("cli.multisig")


def _load_action(args: argparse.Namespace) -> dict[str, Any]:
    if args.action_file:
        text = Path(args.action_file).read_text(encoding="utf-8")
    elif args.action:
        text = args.action
    else:
        print("ERROR: pass --action or --action-file", file=sys.stderr)
        sys.exit(2)
    action = json.loads(text)
    if not isinstance(action, dict):
        print("ERROR: action must be a JSON object", file=sys.stderr)
        sys.exit(2)
    return action


def _require(value: str, name: str) -> str:
    if not value:
        print(f"ERROR: missing required setting {name}", file=sys.stderr)
        sys.exit(1)
    return value


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


# ── Commands ────────────────────────────────────────────────────────


async def cmd_address(args: argparse.Namespace) -> None:
    """Print the address of the configured key and cosigners."""
    adapter = WalletAdapter()
    keys = [args.key or _require(settings.HL_PRIVATE_KEY, "HL_PRIVATE_KEY")]
    if args.cosigners:
        keys.extend(settings.cosigner_keys)
    _dump([await adapter.resolve_address(PrivateKeySigner(k)) for k in keys])


async def cmd_hash(args: argparse.Namespace) -> None:
    """Print the canonical form and L1 hash of an action."""
    canonical = canonicalize(_load_action(args))
    digest = create_l1_action_hash(canonical, args.nonce, args.vault, args.expires_after)
    _dump(
        {
            "kind": classify(canonical).value,
            "canonical": canonical,
            "hash": "0x" + digest.hex(),
        }
    )


async def cmd_sign(args: argparse.Namespace) -> None:
    """Sign with the single configured key; optionally submit."""
    action = _load_action(args)
    transport = HttpTransport(settings.api_url, timeout=settings.HL_REQUEST_TIMEOUT_SECONDS)
    authorizer = ActionAuthorizer(
        _require(settings.HL_PRIVATE_KEY, "HL_PRIVATE_KEY"),
        is_testnet=settings.HL_IS_TESTNET,
        default_vault_address=settings.HL_DEFAULT_VAULT_ADDRESS or None,
        expires_after_offset_ms=settings.HL_EXPIRES_AFTER_OFFSET_MS,
    )
    envelope = await authorizer.authorize(action, vault_address=args.vault, expires_after=args.expires_after)
    _dump(envelope.to_wire())
    if args.submit:
        async with transport:
            response = await transport.submit(envelope.to_wire())
        _dump(response.raw)


async def cmd_multisig(args: argparse.Namespace) -> None:
    """Collect every cosigner's signature and seal with the leader."""
    action = _load_action(args)
    keys = settings.cosigner_keys
    if not keys:
        _require("", "HL_COSIGNER_PRIVATE_KEYS")
    transport = HttpTransport(settings.api_url, timeout=settings.HL_REQUEST_TIMEOUT_SECONDS)
    coordinator = MultiSigCoordinator(
        transport,
        [PrivateKeySigner(k) for k in keys],
        _require(args.user or settings.HL_MULTI_SIG_USER, "HL_MULTI_SIG_USER"),
        is_testnet=settings.HL_IS_TESTNET,
        signature_chain_id=settings.HL_SIGNATURE_CHAIN_ID,
        nonce_manager=NonceManager(),
        default_vault_address=settings.HL_DEFAULT_VAULT_ADDRESS or None,
        expires_after_offset_ms=settings.HL_EXPIRES_AFTER_OFFSET_MS,
        signer_timeout=settings.HL_SIGNER_TIMEOUT_SECONDS,
    )
    envelope = await coordinator.coordinate(action, vault_address=args.vault, expires_after=args.expires_after)
    _dump(envelope.to_wire())
    if args.submit:
        async with transport:
            response = await transport.submit(envelope.to_wire())
        _dump(response.raw)


# ── Parser ──────────────────────────────────────────────────────────


def _add_action_args(sub: argparse.ArgumentParser) -> None:
    source = sub.add_mutually_exclusive_group()
    source.add_argument("--action", help="Action as a JSON object")
    source.add_argument("--action-file", help="Path to a JSON file holding the action")
    sub.add_argument("--vault", default=None, help="Vault / sub-account address")
    sub.add_argument("--expires-after", type=int, default=None, help="Expiry timestamp in ms")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Hyperliquid action signing and multi-sig aggregation",
        prog="hl-multisig",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # address
    sub_address = subparsers.add_parser("address", help="Show signer addresses")
    sub_address.add_argument("--key", default=None, help="Private key (defaults to HL_PRIVATE_KEY)")
    sub_address.add_argument("--cosigners", action="store_true", help="Also list HL_COSIGNER_PRIVATE_KEYS")

    # hash
    sub_hash = subparsers.add_parser("hash", help="Canonicalize and hash an L1 action")
    _add_action_args(sub_hash)
    sub_hash.add_argument("--nonce", type=int, required=True, help="Nonce in ms")

    # sign
    sub_sign = subparsers.add_parser("sign", help="Sign with HL_PRIVATE_KEY")
    _add_action_args(sub_sign)
    sub_sign.add_argument("--submit", action="store_true", help="POST the envelope to /exchange")

    # multisig
    sub_multi = subparsers.add_parser("multisig", help="Run a multi-sig round")
    _add_action_args(sub_multi)
    sub_multi.add_argument("--user", default=None, help="Multi-sig account (defaults to HL_MULTI_SIG_USER)")
    sub_multi.add_argument("--submit", action="store_true", help="POST the envelope to /exchange")

    return parser


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level)

    cmd_map = {
        "address": cmd_address,
        "hash": cmd_hash,
        "sign": cmd_sign,
        "multisig": cmd_multisig,
    }

    handler = cmd_map[args.command]
    try:
        asyncio.run(handler(args))
    except (SigningError, ValueError) as exc:
        logger.error("cli.invalid", command=args.command, error=str(exc))
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(2)
    except (ApiRequestError, TransportError) as exc:
        logger.error("cli.submit_failed", command=args.command, error=str(exc))
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(3)


if __name__ == "__main__":
    main()
