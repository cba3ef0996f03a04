"""Builds gateway, chain submitter and lifecycle from settings.

The sender credential is always passed in by the caller; it is never read
from settings or the environment here.
"""

import logging
from typing import Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from claimlink.chain.evm import Web3ChainSubmitter
from claimlink.config import Settings
from claimlink.gateway.service import SignerServiceGateway
from claimlink.gateway.transports import (
    HttpSignerTransport,
    SignerTransport,
    SubprocessSignerTransport,
)
from claimlink.lifecycle import TransferLifecycle
from claimlink.signing.local import LocalSenderSigner

logger = logging.getLogger(__name__)


def build_transport(settings: Settings) -> SignerTransport:
    """Pick the signer transport.

    Priority:
    1. signer_url -> HTTP
    2. signer_command -> subprocess

    Raises:
        ValueError: If neither is configured
    """
    if settings.signer_url:
        logger.info(f"Using HTTP signer at {settings.signer_url}")
        return HttpSignerTransport(
            settings.signer_url,
            api_key=settings.signer_api_key or None,
            timeout=settings.signer_timeout,
        )

    if settings.signer_argv:
        logger.info(f"Using subprocess signer {settings.signer_argv[0]} ({settings.signer_selector})")
        return SubprocessSignerTransport(
            settings.signer_argv,
            selector=settings.signer_selector,
            timeout=settings.signer_timeout,
        )

    raise ValueError("No signer configured: set CLAIMLINK_SIGNER_URL or CLAIMLINK_SIGNER_COMMAND")


def build_gateway(settings: Settings, transport: Optional[SignerTransport] = None) -> SignerServiceGateway:
    """Create the signer gateway."""
    return SignerServiceGateway(
        transport or build_transport(settings),
        max_attempts=settings.signer_max_attempts,
        retry_backoff=settings.signer_retry_backoff,
    )


def build_lifecycle(
    settings: Settings,
    sender_key: Union[LocalAccount, bytes, str],
    transport: Optional[SignerTransport] = None,
) -> TransferLifecycle:
    """Create a lifecycle whose deposits and attestations come from sender_key."""
    account = sender_key if isinstance(sender_key, LocalAccount) else Account.from_key(sender_key)

    chain = Web3ChainSubmitter(
        account,
        rpc_url=settings.rpc_url,
        confirmations=settings.confirmations,
        poll_interval=settings.poll_interval,
    )

    return TransferLifecycle(
        gateway=build_gateway(settings, transport),
        chain=chain,
        sender_signer=LocalSenderSigner(account),
        claim_host=settings.claim_host,
        link_version=settings.link_version,
        confirmation_timeout=settings.confirmation_timeout,
    )
