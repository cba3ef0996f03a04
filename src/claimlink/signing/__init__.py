"""Sender signing credentials."""

from claimlink.signing.base import SenderSigner
from claimlink.signing.local import LocalSenderSigner

__all__ = [
    "SenderSigner",
    "LocalSenderSigner",
]
