#!/usr/bin/env python3
"""Generate a recovered claim link for an existing transfer.

The sender's private key is prompted for and only used locally to sign the
recovery attestation. Signer and claim host come from CLAIMLINK_* settings.

Usage:
    python scripts/generate_recovered_link.py \\
        --transfer-id 0x... --token 0x833589fcd6edb6e08f4c7c32d4f71b54bda02913 \\
        --chain-id 8453 --sender 0x... --amount 100000 --expiration 1773159165
"""

import argparse
import asyncio
import sys
from getpass import getpass

from claimlink.config import configure_logging, get_settings
from claimlink.errors import ClaimLinkError
from claimlink.factory import build_lifecycle
from claimlink.models import ClaimLinkDescriptor, Token, TokenType


async def run(args: argparse.Namespace, sender_key: str) -> int:
    settings = get_settings()
    configure_logging(settings)

    token_type = TokenType.NATIVE if not args.token else TokenType.ERC20
    descriptor = ClaimLinkDescriptor(
        token=Token(type=token_type, chain_id=args.chain_id, address=args.token or ""),
        sender=args.sender,
        amount=args.amount,
        expiration=args.expiration,
    )

    lifecycle = build_lifecycle(settings, sender_key)
    outcome = await lifecycle.recover(args.transfer_id, descriptor)

    print(f"Link key ID: {outcome.transfer.link_key_id}")
    print("Recovered link (treat as a secret):")
    print(outcome.link)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a recovered claim link")
    parser.add_argument("--transfer-id", required=True, help="Existing transfer id")
    parser.add_argument("--token", default="", help="ERC20 address (omit for native)")
    parser.add_argument("--chain-id", type=int, required=True, help="EVM chain id")
    parser.add_argument("--sender", required=True, help="Sender address")
    parser.add_argument("--amount", required=True, help="Amount in base units")
    parser.add_argument("--expiration", type=int, required=True, help="Unix expiration")
    args = parser.parse_args()

    sender_key = getpass("Sender private key: ").strip()
    try:
        return asyncio.run(run(args, sender_key))
    except ClaimLinkError as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
