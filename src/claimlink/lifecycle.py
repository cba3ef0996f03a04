"""Transfer lifecycle state machine.

Deposit path::

    created -> deposit_requested -> deposit_submitted -> deposited -> registered

Recovery path::

    created -> recovery_requested -> recovery_signed -> recovered

Any non-terminal state can move to expired. Suspension points are the
signer calls, the broadcast and the confirmation wait. Before the broadcast
a failure leaves nothing behind; after it, the flow either completes or
raises OrphanedDeposit or UnregisteredDeposit, and caller cancellation is
deferred until confirmation and registration have finished.

Redemption needs no state: the link holder signs the receiver address with
the link key and the signer releases the funds.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from eth_utils import is_address, to_checksum_address

from claimlink.chain.base import ChainSubmitter
from claimlink.codec import DEFAULT_LINK_VERSION, ClaimLinkToken, decode_link, encode_link
from claimlink.errors import (
    ChainSubmissionFailed,
    Expired,
    InvalidDescriptor,
    InvalidTransition,
    MalformedSignerResponse,
    OrphanedDeposit,
    SignerError,
    SigningError,
    UnregisteredDeposit,
)
from claimlink.gateway.base import (
    RedemptionResult,
    RegistrationResult,
    SignerGateway,
    SignerOperation,
)
from claimlink.keys import KeyPair, generate_key_pair, sign_receiver
from claimlink.models import ZERO_ADDRESS, ClaimLinkDescriptor, Transfer, TransferStatus
from claimlink.signing.base import SenderSigner
from claimlink.typed_data import TypedDataTemplate, normalize_typed_data

logger = logging.getLogger(__name__)

DEFAULT_CLAIM_HOST = "https://p2p.linkdrop.io"


@dataclass
class DepositOutcome:
    """Result of a completed deposit flow."""
    transfer: Transfer
    token: ClaimLinkToken
    link: str
    tx_hash: str
    registration: RegistrationResult


@dataclass
class RecoveryOutcome:
    """Result of a completed recovery flow."""
    transfer: Transfer
    token: ClaimLinkToken
    link: str
    signature: bytes
    typed_data: TypedDataTemplate


class TransferLifecycle:
    """Coordinates the signer, the chain and the link codec for transfers.

    Every collaborator is passed in; the lifecycle keeps no state between
    transfers, so independent transfers may run concurrently.

    Args:
        gateway: Signer service gateway
        chain: Deposit broadcaster (required for the deposit path)
        sender_signer: Sender credential (required for the recovery path)
        claim_host: Host for generated claim URLs
        link_version: Claim URL format version
        confirmation_timeout: Upper bound in seconds for confirmation
        clock: Returns the current unix time
    """

    def __init__(
        self,
        gateway: SignerGateway,
        chain: Optional[ChainSubmitter] = None,
        sender_signer: Optional[SenderSigner] = None,
        claim_host: str = DEFAULT_CLAIM_HOST,
        link_version: str = DEFAULT_LINK_VERSION,
        confirmation_timeout: float = 180.0,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.chain = chain
        self.sender_signer = sender_signer
        self.claim_host = claim_host
        self.link_version = link_version
        self.confirmation_timeout = confirmation_timeout
        self.clock = clock

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def create_transfer(self, descriptor: ClaimLinkDescriptor) -> tuple[Transfer, KeyPair]:
        """Generate a link key pair and the transfer it identifies."""
        link_key = generate_key_pair()
        transfer = Transfer(transfer_id=link_key.address, descriptor=descriptor)
        logger.info(f"Transfer {transfer.transfer_id} created")
        return transfer, link_key

    def expire(self, transfer: Transfer) -> None:
        """Move a non-terminal transfer to expired."""
        transfer.transition(TransferStatus.EXPIRED)
        logger.info(f"Transfer {transfer.transfer_id} expired")

    def _fail_if_expired(self, transfer: Transfer) -> None:
        if transfer.descriptor.is_expired(self.clock()):
            self.expire(transfer)
            raise Expired(
                f"Transfer {transfer.transfer_id} expired at {transfer.descriptor.expiration}"
            )

    def _encode(self, token: ClaimLinkToken) -> str:
        return encode_link(token, self.claim_host)

    # ------------------------------------------------------------------
    # Deposit path
    # ------------------------------------------------------------------

    async def deposit(
        self, descriptor: ClaimLinkDescriptor, link_key: Optional[KeyPair] = None
    ) -> DepositOutcome:
        """Run the deposit path to a registered, redeemable link.

        Args:
            descriptor: Transfer terms
            link_key: Pre-generated link key, otherwise a fresh one is made

        Raises:
            Expired: Expiration passed before the broadcast
            SignerError: Signer failed; nothing was broadcast
            ChainSubmissionFailed: Broadcast failed; nothing left the process
            OrphanedDeposit: Broadcast succeeded but was not confirmed
            UnregisteredDeposit: Deposit confirmed but the signer did not record it;
                retry with register(e.transfer, e.link_key)
        """
        if self.chain is None:
            raise ChainSubmissionFailed("No chain submitter configured for deposits")

        if link_key is None:
            transfer, link_key = self.create_transfer(descriptor)
        else:
            transfer = Transfer(transfer_id=link_key.address, descriptor=descriptor)

        self._fail_if_expired(transfer)
        transfer.transition(TransferStatus.DEPOSIT_REQUESTED)
        params = await self.gateway.request_deposit_params(transfer.transfer_id, descriptor)

        self._fail_if_expired(transfer)
        tx_hash = await self.chain.submit(params)
        transfer.deposit_tx_hash = tx_hash
        transfer.transition(TransferStatus.DEPOSIT_SUBMITTED)
        logger.info(f"Transfer {transfer.transfer_id}: deposit {tx_hash} submitted")

        finish = asyncio.ensure_future(self._confirm_and_register(transfer, link_key))
        cancelled = False
        while True:
            try:
                outcome = await asyncio.shield(finish)
                break
            except asyncio.CancelledError:
                if finish.done():
                    raise
                if not cancelled:
                    logger.warning(
                        f"Transfer {transfer.transfer_id}: cancellation deferred until deposit "
                        f"{tx_hash} is confirmed and registered"
                    )
                cancelled = True

        if cancelled:
            raise asyncio.CancelledError()
        return outcome

    async def _confirm_and_register(self, transfer: Transfer, link_key: KeyPair) -> DepositOutcome:
        tx_hash = transfer.deposit_tx_hash
        try:
            receipt = await asyncio.wait_for(
                self.chain.wait_for_confirmation(tx_hash, self.confirmation_timeout),
                timeout=self.confirmation_timeout,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            logger.error(f"Transfer {transfer.transfer_id}: deposit {tx_hash} unconfirmed: {e}")
            raise OrphanedDeposit(
                f"Deposit {tx_hash} not confirmed within {self.confirmation_timeout}s",
                tx_hash=tx_hash,
                transfer=transfer,
                link_key=link_key,
            ) from e
        except Exception as e:
            logger.error(f"Transfer {transfer.transfer_id}: deposit {tx_hash} failed: {e}")
            raise OrphanedDeposit(
                f"Deposit {tx_hash} failed after broadcast: {e}",
                tx_hash=tx_hash,
                transfer=transfer,
                link_key=link_key,
            ) from e

        if not receipt.success:
            raise OrphanedDeposit(
                f"Deposit {tx_hash} reverted", tx_hash=tx_hash, transfer=transfer, link_key=link_key
            )

        transfer.transition(TransferStatus.DEPOSITED)
        logger.info(
            f"Transfer {transfer.transfer_id}: deposit {tx_hash} confirmed "
            f"in block {receipt.block_number}"
        )

        try:
            return await self.register(transfer, link_key)
        except SignerError as e:
            logger.error(f"Transfer {transfer.transfer_id}: deposit {tx_hash} not registered: {e}")
            raise UnregisteredDeposit(
                f"Deposit {tx_hash} confirmed but not registered: {e}",
                tx_hash=tx_hash,
                transfer=transfer,
                link_key=link_key,
            ) from e

    async def register(self, transfer: Transfer, link_key: KeyPair) -> DepositOutcome:
        """Register a confirmed deposit and build its claim link.

        Safe to call again after a failed registration; the signer treats
        duplicates as no-ops.
        """
        if transfer.status != TransferStatus.DEPOSITED:
            raise InvalidTransition(
                f"Transfer {transfer.transfer_id} is {transfer.status.value}, expected deposited"
            )
        if link_key.address != transfer.transfer_id:
            raise InvalidDescriptor("Link key does not match transfer id")

        registration = await self.gateway.register_deposit(
            transfer.transfer_id, transfer.descriptor, transfer.deposit_tx_hash
        )
        transfer.transition(TransferStatus.REGISTERED)

        token = ClaimLinkToken(
            link_key=link_key,
            transfer_id=transfer.transfer_id,
            chain_id=transfer.descriptor.token.chain_id,
            version=self.link_version,
        )
        logger.info(f"Transfer {transfer.transfer_id} registered")
        return DepositOutcome(
            transfer=transfer,
            token=token,
            link=self._encode(token),
            tx_hash=transfer.deposit_tx_hash,
            registration=registration,
        )

    # ------------------------------------------------------------------
    # Recovery path
    # ------------------------------------------------------------------

    async def recover(self, transfer_id: str, descriptor: ClaimLinkDescriptor) -> RecoveryOutcome:
        """Issue a new claim link for an existing transfer.

        A fresh recovery key pair is generated; the sender signs an EIP-712
        attestation binding it to transfer_id.

        Raises:
            Expired: Expiration already passed
            SignerError: Signer failed
            SigningError: Sender credential missing or unable to sign
        """
        if self.sender_signer is None:
            raise SigningError("No sender signer configured for recovery")
        if not is_address(transfer_id):
            raise InvalidDescriptor(f"Invalid transfer id: {transfer_id!r}")
        if to_checksum_address(descriptor.sender) != self.sender_signer.address:
            raise SigningError(
                f"Sender signer {self.sender_signer.address} does not match "
                f"transfer sender {descriptor.sender}"
            )

        recovery_key = generate_key_pair()
        transfer = Transfer(
            transfer_id=to_checksum_address(transfer_id),
            descriptor=descriptor,
            link_key_id=recovery_key.address,
        )
        self._fail_if_expired(transfer)

        transfer.transition(TransferStatus.RECOVERY_REQUESTED)
        template = await self.gateway.request_recovery_typed_data(
            transfer.transfer_id, transfer.link_key_id, descriptor.token
        )

        typed_data = normalize_typed_data(template)
        self._check_recovery_message(typed_data, transfer)
        signature = await self.sender_signer.sign_typed_data(typed_data)
        transfer.transition(TransferStatus.RECOVERY_SIGNED)

        token = ClaimLinkToken(
            link_key=recovery_key,
            transfer_id=transfer.transfer_id,
            chain_id=descriptor.token.chain_id,
            signature=signature,
            version=self.link_version,
        )
        link = self._encode(token)
        transfer.transition(TransferStatus.RECOVERED)
        logger.info(f"Transfer {transfer.transfer_id} recovered via {transfer.link_key_id}")

        return RecoveryOutcome(
            transfer=transfer,
            token=token,
            link=link,
            signature=signature,
            typed_data=typed_data,
        )

    @staticmethod
    def _check_recovery_message(typed_data: TypedDataTemplate, transfer: Transfer) -> None:
        """Refuse to sign a message bound to a different transfer or key."""
        expected = {"transferId": transfer.transfer_id, "linkKeyId": transfer.link_key_id}
        for key, value in expected.items():
            signed_value = typed_data.message.get(key)
            if signed_value is None:
                continue
            if not isinstance(signed_value, str) or signed_value.lower() != value.lower():
                raise MalformedSignerResponse(
                    f"Typed data {key} {signed_value!r} does not match {value}",
                    SignerOperation.GET_RECOVERED_LINK_TYPED_DATA.value,
                )

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    async def redeem(self, link: Union[str, ClaimLinkToken], receiver: str) -> RedemptionResult:
        """Claim a transfer to receiver with the key a claim link carries.

        Only the receiver signature leaves the process, never the link key.
        Recovered links also forward the sender attestation.

        Args:
            link: Claim URL or decoded token
            receiver: Address that receives the funds

        Raises:
            LinkDecodeError: The claim URL is malformed
            InvalidDescriptor: Receiver invalid, or key and transfer do not match
            SignerError: Signer failed or refused the redemption
        """
        token = decode_link(link) if isinstance(link, str) else link

        if not is_address(receiver) or to_checksum_address(receiver) == ZERO_ADDRESS:
            raise InvalidDescriptor(f"Invalid receiver address: {receiver!r}")
        receiver = to_checksum_address(receiver)
        if not token.is_recovered and token.link_key.address != token.transfer_id:
            raise InvalidDescriptor("Link key does not match transfer id")

        receiver_signature = sign_receiver(token.link_key, receiver)
        result = await self.gateway.redeem_link(
            token.transfer_id,
            token.chain_id,
            receiver,
            receiver_signature,
            sender_signature=token.signature,
        )
        logger.info(f"Transfer {token.transfer_id} redeemed to {receiver}: {result.tx_hash}")
        return result
