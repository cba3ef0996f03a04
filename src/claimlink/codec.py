"""Claim link URL encoding.

Format::

    {host}/#/code?k=<key>[&sg=<sig>]&i=<transferId>&c=<chainId>&v=<version>[&sgl=<sigLen>]&src=<source>

k, sg and i are base58. sgl carries the signature byte length because
base58 is not self-delimiting for values with leading zero bytes once an
encoder strips them.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit

import base58
from eth_utils import is_address, to_canonical_address, to_checksum_address

from claimlink.errors import LinkDecodeError
from claimlink.keys import KeyPair, decode_private_key, encode_private_key

logger = logging.getLogger(__name__)

DEFAULT_LINK_VERSION = "3"
LEGACY_LINK_VERSION = "1"
ADDRESS_LENGTH = 20
# ECDSA signatures are 65 bytes; contract-wallet signatures run longer
MAX_SIGNATURE_LENGTH = 1024


class LinkSource(str, Enum):
    """Which product generated the link."""
    P2P = "p2p"
    DASHBOARD = "d"


@dataclass(frozen=True)
class ClaimLinkToken:
    """Redeemable capability. Anyone holding it can claim the transfer.

    Attributes:
        link_key: Link key (deposit) or recovery key (recovery)
        transfer_id: Transfer identifier (address)
        chain_id: EVM chain ID
        signature: Sender attestation, recovery links only
    """
    link_key: KeyPair
    transfer_id: str
    chain_id: int
    signature: Optional[bytes] = None
    version: str = DEFAULT_LINK_VERSION
    source: LinkSource = LinkSource.P2P

    @property
    def is_recovered(self) -> bool:
        return self.signature is not None

    @property
    def signature_length(self) -> Optional[int]:
        return len(self.signature) if self.signature is not None else None

    def __repr__(self) -> str:
        return (
            f"ClaimLinkToken(transfer_id={self.transfer_id}, chain_id={self.chain_id}, "
            f"recovered={self.is_recovered}, version={self.version})"
        )


def encode_link(token: ClaimLinkToken, claim_host: str) -> str:
    """Build the shareable claim URL."""
    params = [("k", encode_private_key(token.link_key))]
    if token.signature is not None:
        params.append(("sg", base58.b58encode(token.signature).decode()))
    params.append(("i", base58.b58encode(to_canonical_address(token.transfer_id)).decode()))
    params.append(("c", str(token.chain_id)))
    params.append(("v", token.version))
    if token.signature is not None:
        params.append(("sgl", str(len(token.signature))))
    params.append(("src", LinkSource(token.source).value))

    return f"{claim_host.rstrip('/')}/#/code?{urlencode(params)}"


def _query_args(url: str) -> dict[str, str]:
    try:
        parsed = urlsplit(url)
    except ValueError as e:
        raise LinkDecodeError(f"Unparseable claim URL: {e}") from e

    if "?" in parsed.fragment:
        query = parsed.fragment.split("?", 1)[1]
    else:
        query = parsed.query
    if not query:
        raise LinkDecodeError("Claim URL has no parameters")

    args = {}
    for key, values in parse_qs(query, keep_blank_values=True).items():
        if len(values) != 1:
            raise LinkDecodeError(f"Parameter {key!r} repeated in claim URL")
        args[key] = values[0]
    return args


def _decode_signature(encoded: str, length_arg: str) -> bytes:
    if not (length_arg.isascii() and length_arg.isdigit()):
        raise LinkDecodeError(f"Invalid signature length: {length_arg!r}")
    length = int(length_arg)
    if length <= 0:
        raise LinkDecodeError(f"Invalid signature length: {length}")
    if length > MAX_SIGNATURE_LENGTH:
        raise LinkDecodeError(
            f"Signature length {length} exceeds maximum of {MAX_SIGNATURE_LENGTH}"
        )
    # base58 needs under 1.4 characters per byte
    if len(encoded) > 2 * MAX_SIGNATURE_LENGTH:
        raise LinkDecodeError(f"Signature encoding is too long ({len(encoded)} characters)")

    try:
        signature = base58.b58decode(encoded)
    except ValueError as e:
        raise LinkDecodeError(f"Invalid signature encoding: {e}") from e

    if not signature:
        raise LinkDecodeError("Signature is empty")
    if len(signature) > length:
        raise LinkDecodeError(
            f"Signature is {len(signature)} bytes, longer than declared {length}"
        )
    return signature.rjust(length, b"\x00")


def decode_link(url: str) -> ClaimLinkToken:
    """Parse a claim URL back into a ClaimLinkToken.

    Raises:
        LinkDecodeError: If the URL is malformed or truncated
    """
    args = _query_args(url)

    if not args.get("k"):
        raise LinkDecodeError("Claim URL is missing the link key (k)")
    try:
        link_key = decode_private_key(args["k"])
    except ValueError as e:
        raise LinkDecodeError(f"Invalid link key: {e}") from e

    chain_arg = args.get("c", "")
    if not (chain_arg.isascii() and chain_arg.isdigit()) or int(chain_arg) <= 0:
        raise LinkDecodeError(f"Invalid chain id: {chain_arg!r}")
    chain_id = int(chain_arg)

    has_sig = bool(args.get("sg"))
    has_sig_len = bool(args.get("sgl"))
    if has_sig != has_sig_len:
        raise LinkDecodeError("Signature (sg) and signature length (sgl) must be given together")
    signature = _decode_signature(args["sg"], args["sgl"]) if has_sig else None

    if args.get("i", "").startswith("0x"):
        if not is_address(args["i"]):
            raise LinkDecodeError(f"Invalid transfer id: {args['i']!r}")
        transfer_id = to_checksum_address(args["i"])
    elif args.get("i"):
        try:
            transfer_bytes = base58.b58decode(args["i"])
        except ValueError as e:
            raise LinkDecodeError(f"Invalid transfer id encoding: {e}") from e
        if len(transfer_bytes) != ADDRESS_LENGTH:
            raise LinkDecodeError(f"Transfer id must be {ADDRESS_LENGTH} bytes, got {len(transfer_bytes)}")
        transfer_id = to_checksum_address(transfer_bytes)
    elif signature is not None:
        raise LinkDecodeError("Recovered claim URL is missing the transfer id (i)")
    else:
        # Older deposit links omit i: the link key is the transfer key
        transfer_id = link_key.address

    try:
        source = LinkSource(args.get("src", LinkSource.P2P.value).lower())
    except ValueError:
        raise LinkDecodeError(f"Unknown link source: {args.get('src')!r}")

    return ClaimLinkToken(
        link_key=link_key,
        transfer_id=transfer_id,
        chain_id=chain_id,
        signature=signature,
        version=args.get("v") or LEGACY_LINK_VERSION,
        source=source,
    )
