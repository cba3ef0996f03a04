"""Value objects for claim link transfers."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from eth_utils import is_address, to_checksum_address

from claimlink.errors import InvalidDescriptor, InvalidTransition

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class TokenType(str, Enum):
    """Kind of asset escrowed by a transfer."""
    NATIVE = "NATIVE"
    ERC20 = "ERC20"
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"


@dataclass(frozen=True)
class Token:
    """Asset being transferred.

    Attributes:
        type: Token standard
        chain_id: EVM chain ID
        address: Token contract address, empty for the native coin
        token_id: NFT id for ERC721/ERC1155
    """
    type: TokenType
    chain_id: int
    address: str = ""
    token_id: Optional[int] = None

    @property
    def is_native(self) -> bool:
        return self.type == TokenType.NATIVE

    def validate(self) -> None:
        """Check token shape.

        Raises:
            InvalidDescriptor: If the token is inconsistent with its type
        """
        if not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise InvalidDescriptor(f"Invalid chain id: {self.chain_id!r}")

        try:
            token_type = TokenType(self.type)
        except ValueError:
            raise InvalidDescriptor(f"Unsupported token type: {self.type!r}")

        if token_type == TokenType.NATIVE:
            if self.address and self.address != ZERO_ADDRESS:
                raise InvalidDescriptor("Native token must not have an address")
            if self.token_id is not None:
                raise InvalidDescriptor("Native token must not have a token id")
            return

        if not self.address or not is_address(self.address) or self.address == ZERO_ADDRESS:
            raise InvalidDescriptor(f"Invalid token address: {self.address!r}")

        if token_type == TokenType.ERC20 and self.token_id is not None:
            raise InvalidDescriptor("ERC20 token must not have a token id")
        if token_type in (TokenType.ERC721, TokenType.ERC1155) and self.token_id is None:
            raise InvalidDescriptor(f"{token_type.value} token requires a token id")

    def to_payload(self) -> dict:
        """Serialize for the signer service."""
        return {
            "type": TokenType(self.type).value,
            "chainId": self.chain_id,
            "address": to_checksum_address(self.address) if self.address else ZERO_ADDRESS,
        }


def _parse_amount(amount: str) -> int:
    if not isinstance(amount, str) or not (amount.isascii() and amount.isdigit()):
        raise InvalidDescriptor(f"Amount must be a non-negative integer string, got {amount!r}")
    return int(amount)


def validate_descriptor(
    descriptor: "ClaimLinkDescriptor",
    now: Optional[float] = None,
    check_expiration: bool = True,
) -> None:
    """Validate a descriptor.

    Args:
        descriptor: Descriptor to check
        now: Reference unix time (defaults to the current time)
        check_expiration: False to check structure only, for transfers
            whose deposit is already on chain

    Raises:
        InvalidDescriptor: On the first failed check
    """
    _parse_amount(descriptor.amount)

    if not isinstance(descriptor.expiration, int):
        raise InvalidDescriptor(f"Expiration must be a unix timestamp, got {descriptor.expiration!r}")
    now = time.time() if now is None else now
    if check_expiration and descriptor.expiration <= now:
        raise InvalidDescriptor(
            f"Expiration {descriptor.expiration!r} must be in the future (now={int(now)})"
        )

    descriptor.token.validate()

    if not is_address(descriptor.sender):
        raise InvalidDescriptor(f"Invalid sender address: {descriptor.sender!r}")


@dataclass(frozen=True)
class ClaimLinkDescriptor:
    """What is being transferred. Immutable once created."""

    token: Token
    sender: str
    amount: str
    expiration: int

    def __post_init__(self):
        validate_descriptor(self)

    @property
    def amount_int(self) -> int:
        return int(self.amount)

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.expiration <= now

    def to_payload(self) -> dict:
        """Serialize as the signer's claimLink object."""
        return {
            "token": self.token.to_payload(),
            "sender": to_checksum_address(self.sender),
            "amount": self.amount,
            "expiration": self.expiration,
        }


class TransferStatus(str, Enum):
    """Transfer lifecycle states."""
    CREATED = "created"
    DEPOSIT_REQUESTED = "deposit_requested"
    DEPOSIT_SUBMITTED = "deposit_submitted"
    DEPOSITED = "deposited"
    REGISTERED = "registered"
    RECOVERY_REQUESTED = "recovery_requested"
    RECOVERY_SIGNED = "recovery_signed"
    RECOVERED = "recovered"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TransferStatus.REGISTERED,
    TransferStatus.RECOVERED,
    TransferStatus.EXPIRED,
})

_TRANSITIONS: dict[TransferStatus, frozenset] = {
    TransferStatus.CREATED: frozenset({
        TransferStatus.DEPOSIT_REQUESTED,
        TransferStatus.RECOVERY_REQUESTED,
    }),
    TransferStatus.DEPOSIT_REQUESTED: frozenset({TransferStatus.DEPOSIT_SUBMITTED}),
    TransferStatus.DEPOSIT_SUBMITTED: frozenset({TransferStatus.DEPOSITED}),
    TransferStatus.DEPOSITED: frozenset({TransferStatus.REGISTERED}),
    TransferStatus.RECOVERY_REQUESTED: frozenset({TransferStatus.RECOVERY_SIGNED}),
    TransferStatus.RECOVERY_SIGNED: frozenset({TransferStatus.RECOVERED}),
}


@dataclass
class Transfer:
    """A single claimable transfer and its progress.

    Attributes:
        transfer_id: Address of the link key pair
        descriptor: Transfer terms
        status: Current lifecycle state
        deposit_tx_hash: Deposit transaction hash once broadcast
        link_key_id: Address of the recovery key pair (recovery path only)
    """
    transfer_id: str
    descriptor: ClaimLinkDescriptor
    status: TransferStatus = TransferStatus.CREATED
    deposit_tx_hash: Optional[str] = None
    link_key_id: Optional[str] = None
    history: list[TransferStatus] = field(default_factory=list)

    def transition(self, target: TransferStatus) -> None:
        """Move to target state.

        Expired is reachable from every non-terminal state.

        Raises:
            InvalidTransition: If the move is not allowed
        """
        if self.status.is_terminal:
            raise InvalidTransition(
                f"Transfer {self.transfer_id} is already {self.status.value}"
            )

        allowed = _TRANSITIONS.get(self.status, frozenset())
        if target != TransferStatus.EXPIRED and target not in allowed:
            raise InvalidTransition(
                f"Transfer {self.transfer_id}: {self.status.value} -> {target.value} not allowed"
            )

        logger.debug(f"Transfer {self.transfer_id}: {self.status.value} -> {target.value}")
        self.history.append(self.status)
        self.status = target
