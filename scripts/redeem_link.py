#!/usr/bin/env python3
"""Redeem a claim link to a receiver address.

The link is prompted for so it does not end up in shell history. Only the
receiver signature is sent to the signer.

Usage:
    python scripts/redeem_link.py --receiver 0x...
"""

import argparse
import asyncio
import sys
from getpass import getpass

from claimlink.config import configure_logging, get_settings
from claimlink.errors import ClaimLinkError
from claimlink.factory import build_gateway
from claimlink.lifecycle import TransferLifecycle


async def run(link: str, receiver: str) -> int:
    settings = get_settings()
    configure_logging(settings)

    lifecycle = TransferLifecycle(build_gateway(settings), claim_host=settings.claim_host)
    result = await lifecycle.redeem(link, receiver)

    print(f"Redeemed: {result.tx_hash}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Redeem a claim link")
    parser.add_argument("--receiver", required=True, help="Address that receives the funds")
    args = parser.parse_args()

    link = getpass("Claim link: ").strip()
    try:
        return asyncio.run(run(link, args.receiver))
    except ClaimLinkError as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
