"""Pytest configuration and fixtures."""

import asyncio
import os
import time
from typing import Optional

import pytest
from eth_account import Account

# Set test environment
os.environ["CLAIMLINK_ENVIRONMENT"] = "test"
os.environ["CLAIMLINK_DEBUG"] = "true"

from claimlink.chain.base import ChainSubmitter, TransactionReceipt
from claimlink.gateway.base import DepositParams, SignerOperation
from claimlink.models import ClaimLinkDescriptor, Token, TokenType
from claimlink.signing.local import LocalSenderSigner

SENDER_KEY = "0x" + "4c" * 32
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ESCROW_ADDRESS = "0x" + "ab" * 20
DEPOSIT_TX_HASH = "0xdead" + "00" * 30


class FakeChainSubmitter(ChainSubmitter):
    """In-memory chain that confirms every broadcast."""

    def __init__(
        self,
        tx_hash: str = DEPOSIT_TX_HASH,
        submit_error: Optional[Exception] = None,
        confirm_error: Optional[Exception] = None,
        release: Optional[asyncio.Event] = None,
        success: bool = True,
    ):
        self.tx_hash = tx_hash
        self.submit_error = submit_error
        self.confirm_error = confirm_error
        self.release = release
        self.success = success
        self.submitted_params: list[DepositParams] = []
        self.submitted = asyncio.Event()

    async def submit(self, params: DepositParams) -> str:
        if self.submit_error:
            raise self.submit_error
        self.submitted_params.append(params)
        self.submitted.set()
        return self.tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        if self.release is not None:
            await self.release.wait()
        if self.confirm_error:
            raise self.confirm_error
        return TransactionReceipt(tx_hash=tx_hash, block_number=100, success=self.success)


class RecordingSigner:
    """Handlers for an in-process signer that record every request."""

    def __init__(self, deposit_response: Optional[dict] = None):
        self.calls: list[tuple[SignerOperation, dict]] = []
        self.deposit_response = deposit_response or {
            "to": ESCROW_ADDRESS,
            "value": "100000",
            "data": "0x",
        }

    def handlers(self) -> dict:
        return {
            SignerOperation.GET_DEPOSIT_PARAMS: self.get_deposit_params,
            SignerOperation.REGISTER_DEPOSIT: self.register_deposit,
        }

    def get_deposit_params(self, payload: dict) -> dict:
        self.calls.append((SignerOperation.GET_DEPOSIT_PARAMS, payload))
        return dict(self.deposit_response)

    async def register_deposit(self, payload: dict) -> dict:
        self.calls.append((SignerOperation.REGISTER_DEPOSIT, payload))
        return {"transferId": payload["transferId"], "txHash": payload["txHash"], "status": "deposited"}

    def calls_for(self, operation: SignerOperation) -> list[dict]:
        return [payload for op, payload in self.calls if op == operation]


@pytest.fixture
def sender_account():
    """Deterministic sender account."""
    return Account.from_key(SENDER_KEY)


@pytest.fixture
def sender_signer(sender_account) -> LocalSenderSigner:
    return LocalSenderSigner(sender_account)


@pytest.fixture
def erc20_token() -> Token:
    return Token(type=TokenType.ERC20, chain_id=8453, address=USDC_BASE)


@pytest.fixture
def descriptor(erc20_token, sender_account) -> ClaimLinkDescriptor:
    """USDC transfer expiring in one day."""
    return ClaimLinkDescriptor(
        token=erc20_token,
        sender=sender_account.address,
        amount="100000",
        expiration=int(time.time()) + 86400,
    )


@pytest.fixture
def fake_chain() -> FakeChainSubmitter:
    return FakeChainSubmitter()


@pytest.fixture
def recording_signer() -> RecordingSigner:
    return RecordingSigner()
