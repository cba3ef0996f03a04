"""Signer gateway backed by a transport.

Re-validates every request before it leaves the process, retries
unreachable signers with exponential backoff and validates the shape of
every response.
"""

import asyncio
import logging
from typing import Optional

from eth_utils import is_address, to_checksum_address
from pydantic import ValidationError

from claimlink.errors import (
    InvalidDescriptor,
    MalformedSignerResponse,
    SignerRejected,
    SignerUnreachable,
)
from claimlink.gateway.base import (
    DepositParams,
    RedemptionResult,
    RegistrationResult,
    SignerGateway,
    SignerOperation,
)
from claimlink.gateway.transports import SignerTransport
from claimlink.keys import SIGNATURE_LENGTH
from claimlink.models import ZERO_ADDRESS, ClaimLinkDescriptor, Token, validate_descriptor
from claimlink.typed_data import TypedDataTemplate

logger = logging.getLogger(__name__)

# Substring the signer uses when a transfer is registered twice
ALREADY_REGISTERED_MARKER = "already registered"


def _require_address(value: str, label: str) -> str:
    if not value or not is_address(value):
        raise InvalidDescriptor(f"Invalid {label}: {value!r}")
    return to_checksum_address(value)


class SignerServiceGateway(SignerGateway):
    """SignerGateway speaking to the signer through a SignerTransport.

    Args:
        transport: Delivers requests to the signer
        max_attempts: Total attempts for an unreachable signer
        retry_backoff: Base delay in seconds, doubled after every attempt
    """

    def __init__(
        self,
        transport: SignerTransport,
        max_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.transport = transport
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff

    async def _call(self, operation: SignerOperation, payload: dict) -> dict:
        """Call the transport, retrying only SignerUnreachable."""
        last_error: Optional[SignerUnreachable] = None

        for attempt in range(self.max_attempts):
            try:
                return await self.transport.call(operation, payload)
            except SignerUnreachable as e:
                last_error = e
                if attempt < self.max_attempts - 1:
                    delay = self.retry_backoff * (2 ** attempt)
                    logger.warning(
                        f"Signer {operation.value} unreachable (attempt {attempt + 1}/"
                        f"{self.max_attempts}), retrying in {delay:.1f}s: {e}"
                    )
                    await asyncio.sleep(delay)

        logger.error(f"Signer {operation.value} unreachable after {self.max_attempts} attempts")
        raise last_error

    async def request_deposit_params(
        self, transfer_id: str, descriptor: ClaimLinkDescriptor
    ) -> DepositParams:
        transfer_id = _require_address(transfer_id, "transfer id")
        validate_descriptor(descriptor)

        data = await self._call(
            SignerOperation.GET_DEPOSIT_PARAMS,
            {"transferId": transfer_id, "claimLink": descriptor.to_payload()},
        )

        try:
            params = DepositParams.model_validate(data)
        except ValidationError as e:
            raise MalformedSignerResponse(
                f"Invalid deposit params: {e.error_count()} error(s): {e.errors()[0]['msg']}",
                SignerOperation.GET_DEPOSIT_PARAMS.value,
            ) from e

        if params.chain_id is not None and params.chain_id != descriptor.token.chain_id:
            raise MalformedSignerResponse(
                f"Deposit params for chain {params.chain_id}, expected {descriptor.token.chain_id}",
                SignerOperation.GET_DEPOSIT_PARAMS.value,
            )

        logger.info(f"Deposit params for {transfer_id}: to={params.to} value={params.value}")
        return params

    async def request_recovery_typed_data(
        self, transfer_id: str, link_key_id: str, token: Token
    ) -> TypedDataTemplate:
        transfer_id = _require_address(transfer_id, "transfer id")
        link_key_id = _require_address(link_key_id, "link key id")
        if link_key_id == transfer_id:
            raise InvalidDescriptor("Link key id must differ from transfer id")
        token.validate()

        data = await self._call(
            SignerOperation.GET_RECOVERED_LINK_TYPED_DATA,
            {
                "transferId": transfer_id,
                "linkKeyId": link_key_id,
                "claimLink": {"token": token.to_payload()},
            },
        )

        try:
            template = TypedDataTemplate.model_validate(data)
        except ValidationError as e:
            raise MalformedSignerResponse(
                f"Invalid typed data: {e.error_count()} error(s): {e.errors()[0]['msg']}",
                SignerOperation.GET_RECOVERED_LINK_TYPED_DATA.value,
            ) from e

        logger.info(f"Recovery typed data received for {transfer_id}")
        return template

    async def register_deposit(
        self, transfer_id: str, descriptor: ClaimLinkDescriptor, tx_hash: str
    ) -> RegistrationResult:
        transfer_id = _require_address(transfer_id, "transfer id")
        # Deposit already broadcast: structure only
        validate_descriptor(descriptor, check_expiration=False)
        if not tx_hash:
            raise InvalidDescriptor("Transaction hash is required")

        try:
            data = await self._call(
                SignerOperation.REGISTER_DEPOSIT,
                {
                    "transferId": transfer_id,
                    "claimLink": descriptor.to_payload(),
                    "txHash": tx_hash,
                },
            )
        except SignerRejected as e:
            if ALREADY_REGISTERED_MARKER in e.reason.lower():
                logger.info(f"Deposit for {transfer_id} already registered")
                return RegistrationResult(
                    transfer_id=transfer_id, tx_hash=tx_hash, already_registered=True
                )
            raise

        try:
            result = RegistrationResult.model_validate(
                {"transferId": transfer_id, "txHash": tx_hash, **data}
            )
        except ValidationError as e:
            raise MalformedSignerResponse(
                f"Invalid registration result: {e.errors()[0]['msg']}",
                SignerOperation.REGISTER_DEPOSIT.value,
            ) from e

        if result.tx_hash.lower() != tx_hash.lower():
            raise MalformedSignerResponse(
                f"Signer registered {result.tx_hash}, expected {tx_hash}",
                SignerOperation.REGISTER_DEPOSIT.value,
            )

        logger.info(f"Deposit {tx_hash} registered for {transfer_id}")
        return result

    async def redeem_link(
        self,
        transfer_id: str,
        chain_id: int,
        receiver: str,
        receiver_signature: bytes,
        sender_signature: Optional[bytes] = None,
    ) -> RedemptionResult:
        transfer_id = _require_address(transfer_id, "transfer id")
        receiver = _require_address(receiver, "receiver")
        if receiver == ZERO_ADDRESS:
            raise InvalidDescriptor("Receiver must not be the zero address")
        if not isinstance(chain_id, int) or chain_id <= 0:
            raise InvalidDescriptor(f"Invalid chain id: {chain_id!r}")
        if len(receiver_signature) != SIGNATURE_LENGTH:
            raise InvalidDescriptor(
                f"Receiver signature must be {SIGNATURE_LENGTH} bytes, got {len(receiver_signature)}"
            )

        operation = SignerOperation.REDEEM_LINK
        payload = {
            "transferId": transfer_id,
            "chainId": chain_id,
            "receiver": receiver,
            "receiverSig": "0x" + receiver_signature.hex(),
        }
        if sender_signature is not None:
            operation = SignerOperation.REDEEM_RECOVERED_LINK
            payload["senderSig"] = "0x" + sender_signature.hex()

        data = await self._call(operation, payload)

        try:
            result = RedemptionResult.model_validate(data)
        except ValidationError as e:
            raise MalformedSignerResponse(
                f"Invalid redemption result: {e.errors()[0]['msg']}", operation.value
            ) from e

        logger.info(f"Transfer {transfer_id} redeemed to {receiver}: {result.tx_hash}")
        return result

    def __repr__(self) -> str:
        return (
            f"SignerServiceGateway(transport={self.transport.__class__.__name__}, "
            f"max_attempts={self.max_attempts})"
        )
