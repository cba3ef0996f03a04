"""EIP-712 typed data templates issued by the signer service.

The signer describes the recovery attestation as a full EIP-712 document.
Generic structured-signing implementations (eth_account included) derive
the domain type from ``domain`` themselves and encode empty strings as real
values, so the template has to be normalized before it is signed.
"""

from typing import Any, Optional

from eth_utils import to_checksum_address
from pydantic import BaseModel, ConfigDict, Field

DOMAIN_TYPE = "EIP712Domain"

ESCROW_DOMAIN_NAME = "LinkdropEscrow"


class TypedDataField(BaseModel):
    """One member of an EIP-712 struct type."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str


class TypedDataTemplate(BaseModel):
    """EIP-712 document: domain, struct types and message."""

    model_config = ConfigDict(populate_by_name=True)

    domain: dict[str, Any]
    types: dict[str, list[TypedDataField]]
    message: dict[str, Any]
    primary_type: Optional[str] = Field(default=None, alias="primaryType")

    def to_signable(self) -> dict:
        """Plain dicts in the shape eth_account expects as ``full_message``."""
        data = {
            "domain": dict(self.domain),
            "types": {
                name: [{"name": f.name, "type": f.type} for f in fields]
                for name, fields in self.types.items()
            },
            "message": self.message,
        }
        if self.primary_type:
            data["primaryType"] = self.primary_type
        return data


def normalize_typed_data(template: TypedDataTemplate) -> TypedDataTemplate:
    """Prepare a signer-issued template for signing.

    - drops the EIP712Domain entry from types (implied by domain)
    - drops domain fields whose value is an empty string, e.g. salt
    - leaves message untouched

    Pure and idempotent.
    """
    types = {name: list(fields) for name, fields in template.types.items() if name != DOMAIN_TYPE}
    domain = {key: value for key, value in template.domain.items() if value != ""}

    return TypedDataTemplate(
        domain=domain,
        types=types,
        message=template.message,
        primary_type=template.primary_type,
    )


def build_recovery_typed_data(
    link_key_id: str,
    transfer_id: str,
    chain_id: int,
    escrow_address: str,
    escrow_version: str,
) -> TypedDataTemplate:
    """Template a signer issues for a recovered link.

    The sender signs it to authorize redemption of transfer_id through the
    key whose address is link_key_id.
    """
    return TypedDataTemplate(
        domain={
            "name": ESCROW_DOMAIN_NAME,
            "version": escrow_version,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(escrow_address),
        },
        types={
            DOMAIN_TYPE: [
                TypedDataField(name="name", type="string"),
                TypedDataField(name="version", type="string"),
                TypedDataField(name="chainId", type="uint256"),
                TypedDataField(name="verifyingContract", type="address"),
            ],
            "Transfer": [
                TypedDataField(name="linkKeyId", type="address"),
                TypedDataField(name="transferId", type="address"),
            ],
        },
        message={
            "linkKeyId": to_checksum_address(link_key_id),
            "transferId": to_checksum_address(transfer_id),
        },
        primary_type="Transfer",
    )
