"""EVM deposit submission with web3.py."""

import asyncio
import logging
from typing import Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TransactionNotFound

from claimlink.chain.base import ChainSubmitter, TransactionReceipt
from claimlink.errors import ChainSubmissionFailed
from claimlink.gateway.base import DepositParams

logger = logging.getLogger(__name__)


class Web3ChainSubmitter(ChainSubmitter):
    """Broadcasts deposits from a local account over JSON-RPC.

    Args:
        account: Sender account that pays for the deposit
        rpc_url: JSON-RPC endpoint (ignored if web3 is given)
        web3: Preconfigured Web3 instance
        confirmations: Blocks required before a receipt counts
        poll_interval: Seconds between receipt polls
    """

    def __init__(
        self,
        account: LocalAccount,
        rpc_url: Optional[str] = None,
        web3: Optional[Web3] = None,
        confirmations: int = 1,
        poll_interval: float = 2.0,
    ):
        if web3 is None and not rpc_url:
            raise ValueError("Either rpc_url or web3 is required")
        self.account = account
        self.rpc_url = rpc_url
        self._web3 = web3
        self.confirmations = confirmations
        self.poll_interval = poll_interval

    @property
    def web3(self) -> Web3:
        """Lazy load web3 instance."""
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._web3

    def _build_transaction(self, params: DepositParams) -> dict:
        tx = {
            "from": self.account.address,
            "to": params.to,
            "value": params.value_wei,
            "data": params.data,
            "nonce": self.web3.eth.get_transaction_count(self.account.address, "pending"),
            "chainId": params.chain_id or self.web3.eth.chain_id,
        }
        tx["gas"] = self.web3.eth.estimate_gas(tx)
        tx["gasPrice"] = self.web3.eth.gas_price
        return tx

    async def submit(self, params: DepositParams) -> str:
        loop = asyncio.get_event_loop()
        try:
            # web3 calls block; run them in the thread pool
            tx = await loop.run_in_executor(None, self._build_transaction, params)
            signed = self.account.sign_transaction(tx)
        except Exception as e:
            logger.error(f"Failed to build deposit transaction to {params.to}: {e}")
            raise ChainSubmissionFailed(f"Cannot build deposit transaction: {e}") from e

        # web3.py 7.x uses raw_transaction, older versions use rawTransaction
        raw_tx = getattr(signed, "raw_transaction", None) or signed.rawTransaction
        try:
            tx_hash = await loop.run_in_executor(None, self.web3.eth.send_raw_transaction, raw_tx)
        except Exception as e:
            logger.error(f"RPC rejected deposit transaction: {e}")
            raise ChainSubmissionFailed(f"Broadcast rejected: {e}") from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Deposit broadcast: {tx_hash_hex} (nonce {tx['nonce']})")
        return tx_hash_hex

    def _fetch_receipt(self, tx_hash: str) -> tuple[Optional[dict], int]:
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None, 0
        return receipt, self.web3.eth.block_number

    async def _poll_receipt(self, tx_hash: str) -> TransactionReceipt:
        loop = asyncio.get_event_loop()
        while True:
            receipt, block_number = await loop.run_in_executor(None, self._fetch_receipt, tx_hash)

            if receipt is not None:
                confirms = block_number - receipt["blockNumber"] + 1
                if confirms >= self.confirmations:
                    if receipt["status"] == 0:
                        raise ChainSubmissionFailed(
                            f"Deposit {tx_hash} reverted", broadcast=True, tx_hash=tx_hash
                        )
                    return TransactionReceipt(
                        tx_hash=tx_hash,
                        block_number=receipt["blockNumber"],
                        success=True,
                        confirmations=confirms,
                    )

            await asyncio.sleep(self.poll_interval)

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        try:
            return await asyncio.wait_for(self._poll_receipt(tx_hash), timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Transaction {tx_hash} not confirmed after {timeout}s")

    def __repr__(self) -> str:
        return f"Web3ChainSubmitter(account={self.account.address}, rpc={self.rpc_url})"
