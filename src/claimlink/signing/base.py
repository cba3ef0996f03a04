"""Sender signing credential.

The recovery attestation is signed by the original sender's wallet, never
by the recovery key pair. Implementations should never expose raw private
keys; they return signatures only.
"""

import logging
from abc import ABC, abstractmethod

from claimlink.typed_data import TypedDataTemplate

logger = logging.getLogger(__name__)


class SenderSigner(ABC):
    """Abstract base class for the sender's typed-data signer."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed sender address."""
        pass

    @abstractmethod
    async def sign_typed_data(self, template: TypedDataTemplate) -> bytes:
        """Sign an already normalized EIP-712 template.

        Returns:
            Signature bytes (65 bytes for an EOA)

        Raises:
            SigningError: If the template cannot be signed
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"
