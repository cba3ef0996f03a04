"""Chain submission interface.

The chain submitter broadcasts the deposit call returned by the signer and
reports its confirmation. It owns the sender's transaction credential and
RPC handle; nothing else in the package touches the chain.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from claimlink.gateway.base import DepositParams

logger = logging.getLogger(__name__)


@dataclass
class TransactionReceipt:
    """Confirmed transaction.

    Attributes:
        tx_hash: Transaction hash (0x-prefixed)
        block_number: Block the transaction was mined in
        success: False if the transaction reverted
        confirmations: Confirmations observed when the receipt was taken
    """
    tx_hash: str
    block_number: Optional[int] = None
    success: bool = True
    confirmations: int = 1


class ChainSubmitter(ABC):
    """Abstract base class for deposit broadcasting."""

    @abstractmethod
    async def submit(self, params: DepositParams) -> str:
        """Sign and broadcast the deposit call.

        Returns:
            Transaction hash

        Raises:
            ChainSubmissionFailed: With broadcast=False if nothing left
                this process
        """
        pass

    @abstractmethod
    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        """Wait until tx_hash is mined.

        Raises:
            TimeoutError: If not confirmed within timeout
            ChainSubmissionFailed: If the transaction reverted
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
