"""Deposit broadcasting and confirmation."""

from claimlink.chain.base import ChainSubmitter, TransactionReceipt
from claimlink.chain.evm import Web3ChainSubmitter

__all__ = [
    "ChainSubmitter",
    "TransactionReceipt",
    "Web3ChainSubmitter",
]
