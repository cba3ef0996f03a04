"""Exception hierarchy for claim link operations.

Every failure of an external call is raised as one of these types so the
caller can decide whether to retry, abort or reconcile manually.
"""

from enum import Enum
from typing import Optional


class ClaimLinkError(Exception):
    """Base exception for all claim link failures."""
    pass


class InvalidDescriptor(ClaimLinkError):
    """Descriptor or token failed validation. Never sent to the signer."""
    pass


class KeyGenerationError(ClaimLinkError):
    """The OS entropy source could not produce key material."""
    pass


class SigningError(ClaimLinkError):
    """Typed-data signing with the sender credential failed."""
    pass


class SignerErrorKind(str, Enum):
    """Failure classes reported by the signer gateway."""
    UNREACHABLE = "unreachable"
    REJECTED = "rejected"
    MALFORMED_RESPONSE = "malformed_response"


class SignerError(ClaimLinkError):
    """Exception raised when a signer service call fails."""

    kind: SignerErrorKind

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation

    @property
    def retryable(self) -> bool:
        return self.kind == SignerErrorKind.UNREACHABLE


class SignerUnreachable(SignerError):
    """Signer could not be contacted. Retryable with backoff."""
    kind = SignerErrorKind.UNREACHABLE


class SignerRejected(SignerError):
    """Signer refused the request."""
    kind = SignerErrorKind.REJECTED

    def __init__(self, reason: str, operation: Optional[str] = None):
        super().__init__(f"Signer rejected request: {reason}", operation)
        self.reason = reason


class MalformedSignerResponse(SignerError):
    """Signer answered with a payload of the wrong shape."""
    kind = SignerErrorKind.MALFORMED_RESPONSE


class ChainSubmissionFailed(ClaimLinkError):
    """Deposit transaction could not be submitted or confirmed.

    Attributes:
        broadcast: True once the transaction left this process. A failure
            with broadcast=False is safe to retry or abandon.
        tx_hash: Hash of the broadcast transaction, if any
    """

    def __init__(self, message: str, broadcast: bool = False, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.broadcast = broadcast
        self.tx_hash = tx_hash


class OrphanedDeposit(ChainSubmissionFailed):
    """Deposit was broadcast but never confirmed.

    Funds may be locked on chain. Requires manual reconciliation; must not
    be retried automatically.

    Attributes:
        transfer: Transfer the deposit was made for
        link_key: Link key of that transfer, needed to claim or reconcile
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None, transfer=None, link_key=None):
        super().__init__(message, broadcast=True, tx_hash=tx_hash)
        self.transfer = transfer
        self.link_key = link_key


class UnregisteredDeposit(ChainSubmissionFailed):
    """Deposit is confirmed on chain but the signer did not record it.

    The transfer stays deposited. Retry with
    ``TransferLifecycle.register(e.transfer, e.link_key)``; the original
    signer failure is the ``__cause__``.
    """

    def __init__(self, message: str, tx_hash: str, transfer, link_key):
        super().__init__(message, broadcast=True, tx_hash=tx_hash)
        self.transfer = transfer
        self.link_key = link_key


class Expired(ClaimLinkError):
    """Transfer expiration has passed."""
    pass


class LinkDecodeError(ClaimLinkError):
    """Claim URL is malformed or truncated."""
    pass


class InvalidTransition(ClaimLinkError):
    """Transfer state machine was asked for an illegal transition."""
    pass
