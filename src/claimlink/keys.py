"""Ephemeral key material for claim links.

Every transfer gets a freshly generated secp256k1 key pair (the link key).
Its address is the transfer id. Recovery uses a second, independent key
pair whose address becomes the link key id. Private keys never leave this
process except inside the claim URL itself.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import Union

import base58
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_address, keccak, to_canonical_address

from claimlink.errors import KeyGenerationError

logger = logging.getLogger(__name__)

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PRIVATE_KEY_LENGTH = 32
SIGNATURE_LENGTH = 65


@dataclass(frozen=True)
class KeyPair:
    """Private scalar and the checksummed address derived from it."""

    private_key: bytes = field(repr=False)
    address: str

    @property
    def private_key_hex(self) -> str:
        return "0x" + self.private_key.hex()


def _is_valid_scalar(candidate: bytes) -> bool:
    value = int.from_bytes(candidate, "big")
    return 0 < value < SECP256K1_N


def key_pair_from_private_key(private_key: Union[bytes, str]) -> KeyPair:
    """Build a key pair from raw bytes or a hex string.

    Raises:
        ValueError: If the scalar is not a valid secp256k1 private key
    """
    if isinstance(private_key, str):
        private_key = bytes.fromhex(private_key.removeprefix("0x"))

    if len(private_key) != PRIVATE_KEY_LENGTH:
        raise ValueError(f"Private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(private_key)}")
    if not _is_valid_scalar(private_key):
        raise ValueError("Private key is out of range for secp256k1")

    account = Account.from_key(private_key)
    return KeyPair(private_key=bytes(private_key), address=account.address)


def generate_key_pair() -> KeyPair:
    """Generate a fresh key pair from the OS CSPRNG.

    Draws that fall outside [1, n) are discarded and redrawn; the chance of
    that happening is about 2**-128.

    Raises:
        KeyGenerationError: If the entropy source is unavailable
    """
    while True:
        try:
            candidate = secrets.token_bytes(PRIVATE_KEY_LENGTH)
        except (OSError, NotImplementedError) as e:
            logger.error(f"Entropy source unavailable: {e}")
            raise KeyGenerationError(f"Cannot generate key material: {e}") from e

        if _is_valid_scalar(candidate):
            return key_pair_from_private_key(candidate)


def encode_private_key(key_pair: KeyPair) -> str:
    """Encode the private scalar for embedding in a URL fragment."""
    return base58.b58encode(key_pair.private_key).decode()


def decode_private_key(encoded: str) -> KeyPair:
    """Inverse of encode_private_key.

    Also accepts 0x-prefixed hex keys, and base58 payloads shorter than 32
    bytes produced by encoders that drop leading zero bytes.

    Raises:
        ValueError: If the value is not a valid encoded private key
    """
    if not encoded:
        raise ValueError("Encoded private key is empty")

    if encoded.startswith("0x"):
        try:
            raw = bytes.fromhex(encoded[2:])
        except ValueError as e:
            raise ValueError(f"Invalid hex private key: {e}") from e
    else:
        raw = base58.b58decode(encoded)

    if len(raw) > PRIVATE_KEY_LENGTH:
        raise ValueError(f"Encoded private key is too long ({len(raw)} bytes)")
    raw = raw.rjust(PRIVATE_KEY_LENGTH, b"\x00")

    return key_pair_from_private_key(raw)


def sign_receiver(key_pair: KeyPair, receiver: str) -> bytes:
    """Sign a receiver address with the link key.

    The redeemer presents this signature to prove possession of the link
    key. The message is keccak256(receiver address bytes) wrapped in the
    EIP-191 personal-sign envelope.

    Returns:
        65-byte signature (r || s || v), v in {27, 28}
    """
    if not is_address(receiver):
        raise ValueError(f"Invalid receiver address: {receiver}")

    digest = keccak(to_canonical_address(receiver))
    signed = Account.sign_message(encode_defunct(primitive=digest), key_pair.private_key)
    return bytes(signed.signature)
