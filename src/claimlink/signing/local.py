"""Local sender signer.

Uses an in-memory private key. Suitable for development, tests and hot
wallets; pass a hardware or remote signer for anything holding real funds.
"""

import logging
from typing import Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from claimlink.errors import SigningError
from claimlink.signing.base import SenderSigner
from claimlink.typed_data import DOMAIN_TYPE, TypedDataTemplate

logger = logging.getLogger(__name__)


class LocalSenderSigner(SenderSigner):
    """Signs typed data with an eth_account LocalAccount."""

    def __init__(self, account: Union[LocalAccount, bytes, str]):
        if not isinstance(account, LocalAccount):
            account = Account.from_key(account)
        self._account = account

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def account(self) -> LocalAccount:
        return self._account

    async def sign_typed_data(self, template: TypedDataTemplate) -> bytes:
        if DOMAIN_TYPE in template.types:
            raise SigningError(f"Template still declares {DOMAIN_TYPE}; normalize it first")

        # eth_account refuses to sign when primaryType differs from the derived one
        try:
            signed = Account.sign_typed_data(self._account.key, full_message=template.to_signable())
        except Exception as e:
            logger.error(f"Typed data signing failed for {self.address}: {e}")
            raise SigningError(f"Cannot sign typed data: {e}") from e

        return bytes(signed.signature)
