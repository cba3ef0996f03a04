#!/usr/bin/env python3
"""Inspect a claim link without revealing its key.

Usage:
    python scripts/decode_link.py "https://p2p.linkdrop.io/#/code?k=...&c=8453&v=3&src=p2p"
"""

import argparse
import sys

from claimlink.codec import decode_link
from claimlink.errors import LinkDecodeError


def main() -> int:
    parser = argparse.ArgumentParser(description="Decode a claim link")
    parser.add_argument("url", help="Claim URL")
    args = parser.parse_args()

    try:
        token = decode_link(args.url)
    except LinkDecodeError as e:
        print(f"Invalid claim link: {e}", file=sys.stderr)
        return 1

    print(f"Transfer ID:  {token.transfer_id}")
    print(f"Chain ID:     {token.chain_id}")
    print(f"Link key ID:  {token.link_key.address}")
    print(f"Version:      {token.version}")
    print(f"Source:       {token.source.value}")
    if token.is_recovered:
        print(f"Recovered:    yes ({token.signature_length}-byte sender signature)")
    else:
        print("Recovered:    no")
    return 0


if __name__ == "__main__":
    sys.exit(main())
