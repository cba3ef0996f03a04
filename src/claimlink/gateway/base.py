"""Signer gateway interface.

The signer service holds protocol-level authorization. It computes deposit
parameters, issues recovery typed data and records observed deposits. It
never receives link private keys: only transfer ids, link key ids and the
public descriptor travel over the wire.

Deposit flow:
1. getDepositParams(transferId, claimLink) -> to/value/data
2. Caller broadcasts the deposit and waits for confirmation
3. registerDeposit(transferId, claimLink, txHash)

Recovery flow:
1. getRecoveredLinkTypedData(transferId, linkKeyId, token) -> EIP-712 template
2. Sender signs the normalized template

Redemption:
1. The link holder signs the receiver address with the link key
2. redeemLink(transferId, receiver, receiverSig), or redeemRecoveredLink
   with the sender's attestation added, -> release tx hash
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator

from claimlink.models import ClaimLinkDescriptor, Token
from claimlink.typed_data import TypedDataTemplate

logger = logging.getLogger(__name__)


class SignerOperation(str, Enum):
    """Operation selector sent to the signer service."""
    GET_DEPOSIT_PARAMS = "getDepositParams"
    REGISTER_DEPOSIT = "registerDeposit"
    GET_RECOVERED_LINK_TYPED_DATA = "getRecoveredLinkTypedData"
    REDEEM_LINK = "redeemLink"
    REDEEM_RECOVERED_LINK = "redeemRecoveredLink"


class DepositParams(BaseModel):
    """Call the sender must broadcast to lock funds for a transfer.

    Consumed exactly once by the chain submitter.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    to: str = Field(..., description="Escrow contract address")
    value: str = Field(..., description="Native value in wei, decimal string")
    data: str = Field(default="0x", description="ABI-encoded call data")
    chain_id: Optional[int] = Field(default=None, alias="chainId")

    @field_validator("to")
    @classmethod
    def validate_to(cls, v: str) -> str:
        if not v or not is_address(v):
            raise ValueError(f"Invalid deposit target address: {v!r}")
        return to_checksum_address(v)

    @field_validator("value", mode="before")
    @classmethod
    def validate_value(cls, v) -> str:
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not (v.isascii() and v.isdigit()):
            raise ValueError(f"Deposit value must be a non-negative integer, got {v!r}")
        return v

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: str) -> str:
        if not v.startswith("0x"):
            raise ValueError("Deposit data must be 0x-prefixed hex")
        try:
            bytes.fromhex(v[2:])
        except ValueError:
            raise ValueError("Deposit data is not valid hex")
        return v

    @property
    def value_wei(self) -> int:
        return int(self.value)


class RegistrationResult(BaseModel):
    """Signer acknowledgement of an observed deposit."""

    model_config = ConfigDict(populate_by_name=True)

    transfer_id: str = Field(..., alias="transferId")
    tx_hash: str = Field(..., alias="txHash")
    status: Optional[str] = None
    already_registered: bool = Field(default=False, alias="alreadyRegistered")


class RedemptionResult(BaseModel):
    """Transaction the signer sent to release a transfer to its receiver."""

    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash")
    status: Optional[str] = None

    @field_validator("tx_hash")
    @classmethod
    def validate_tx_hash(cls, v: str) -> str:
        if not v.startswith("0x") or len(v) != 66:
            raise ValueError(f"Invalid transaction hash: {v!r}")
        try:
            bytes.fromhex(v[2:])
        except ValueError:
            raise ValueError(f"Invalid transaction hash: {v!r}")
        return v


class SignerGateway(ABC):
    """Abstract request/response interface to the signer service.

    Implementations raise SignerUnreachable, SignerRejected or
    MalformedSignerResponse; they never return partial results.
    """

    @abstractmethod
    async def request_deposit_params(
        self, transfer_id: str, descriptor: ClaimLinkDescriptor
    ) -> DepositParams:
        """Get the deposit call that locks funds for transfer_id.

        Args:
            transfer_id: Address of the link key pair
            descriptor: Transfer terms

        Returns:
            Validated deposit parameters
        """
        pass

    @abstractmethod
    async def request_recovery_typed_data(
        self, transfer_id: str, link_key_id: str, token: Token
    ) -> TypedDataTemplate:
        """Get the EIP-712 template authorizing redemption via link_key_id.

        Args:
            transfer_id: Existing transfer id
            link_key_id: Address of the new recovery key pair
            token: Token of the transfer

        Returns:
            Un-normalized typed data template
        """
        pass

    @abstractmethod
    async def register_deposit(
        self, transfer_id: str, descriptor: ClaimLinkDescriptor, tx_hash: str
    ) -> RegistrationResult:
        """Tell the signer a deposit transaction was confirmed.

        Registering the same transfer twice is a no-op success.
        """
        pass

    @abstractmethod
    async def redeem_link(
        self,
        transfer_id: str,
        chain_id: int,
        receiver: str,
        receiver_signature: bytes,
        sender_signature: Optional[bytes] = None,
    ) -> RedemptionResult:
        """Ask the signer to release transfer_id to receiver.

        Args:
            transfer_id: Transfer to redeem
            chain_id: Chain the transfer lives on
            receiver: Address that receives the funds
            receiver_signature: Link key signature over the receiver
            sender_signature: Sender attestation, recovered links only
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
