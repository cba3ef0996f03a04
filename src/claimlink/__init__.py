"""Claimable transfers through shareable claim links."""

__version__ = "0.1.0"

from claimlink.codec import ClaimLinkToken, LinkSource, decode_link, encode_link
from claimlink.errors import (
    ChainSubmissionFailed,
    ClaimLinkError,
    Expired,
    InvalidDescriptor,
    LinkDecodeError,
    MalformedSignerResponse,
    OrphanedDeposit,
    SignerError,
    SignerRejected,
    SignerUnreachable,
    UnregisteredDeposit,
)
from claimlink.keys import KeyPair, decode_private_key, encode_private_key, generate_key_pair
from claimlink.lifecycle import DepositOutcome, RecoveryOutcome, TransferLifecycle
from claimlink.models import ClaimLinkDescriptor, Token, TokenType, Transfer, TransferStatus
from claimlink.typed_data import TypedDataTemplate, normalize_typed_data

__all__ = [
    "ClaimLinkToken",
    "LinkSource",
    "decode_link",
    "encode_link",
    "ChainSubmissionFailed",
    "ClaimLinkError",
    "Expired",
    "InvalidDescriptor",
    "LinkDecodeError",
    "MalformedSignerResponse",
    "OrphanedDeposit",
    "SignerError",
    "SignerRejected",
    "SignerUnreachable",
    "UnregisteredDeposit",
    "KeyPair",
    "decode_private_key",
    "encode_private_key",
    "generate_key_pair",
    "DepositOutcome",
    "RecoveryOutcome",
    "TransferLifecycle",
    "ClaimLinkDescriptor",
    "Token",
    "TokenType",
    "Transfer",
    "TransferStatus",
    "TypedDataTemplate",
    "normalize_typed_data",
]
