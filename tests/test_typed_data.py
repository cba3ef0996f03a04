"""Tests for typed data normalization."""

import copy

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address

from claimlink.keys import generate_key_pair
from claimlink.typed_data import (
    DOMAIN_TYPE,
    TypedDataTemplate,
    build_recovery_typed_data,
    normalize_typed_data,
)
from conftest import ESCROW_ADDRESS

CLAIM_ID = to_checksum_address("0x5659a8557fdba11aa04cfcfcc59eef9fa412a7dd")

DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "salt", "type": "bytes32"},
]


def signer_template(salt="") -> TypedDataTemplate:
    """Template in the shape the signer service returns."""
    return TypedDataTemplate.model_validate({
        "domain": {"name": "X", "chainId": 8453, "salt": salt},
        "types": {
            "EIP712Domain": DOMAIN_FIELDS,
            "Claim": [{"name": "id", "type": "address"}],
        },
        "message": {"id": CLAIM_ID},
        "primaryType": "Claim",
    })


class TestNormalize:
    """Tests for normalize_typed_data."""

    def test_removes_domain_type(self):
        normalized = normalize_typed_data(signer_template())

        assert DOMAIN_TYPE not in normalized.types
        assert list(normalized.types) == ["Claim"]

    def test_removes_empty_salt(self):
        normalized = normalize_typed_data(signer_template(salt=""))

        assert "salt" not in normalized.domain
        assert normalized.domain == {"name": "X", "chainId": 8453}

    def test_preserves_non_empty_salt(self):
        salt = "0x" + "01" * 32
        normalized = normalize_typed_data(signer_template(salt=salt))

        assert normalized.domain["salt"] == salt

    def test_removes_every_empty_domain_field(self):
        template = signer_template()
        template.domain["version"] = ""

        normalized = normalize_typed_data(template)

        assert "version" not in normalized.domain

    def test_message_untouched(self):
        template = signer_template()
        normalized = normalize_typed_data(template)

        assert normalized.message == {"id": CLAIM_ID}
        assert normalized.primary_type == "Claim"

    def test_input_not_mutated(self):
        template = signer_template()
        before = copy.deepcopy(template)

        normalize_typed_data(template)

        assert template == before

    @pytest.mark.parametrize("template", [
        signer_template(),
        signer_template(salt="0x" + "ff" * 32),
        normalize_typed_data(signer_template()),
        TypedDataTemplate(domain={}, types={}, message={}),
        build_recovery_typed_data(CLAIM_ID, ESCROW_ADDRESS, 8453, ESCROW_ADDRESS, "3"),
    ])
    def test_idempotent(self, template):
        once = normalize_typed_data(template)

        assert normalize_typed_data(once) == once


class TestRecoveryTypedData:
    """Tests for the recovery template builder."""

    def test_template_shape(self):
        link_key = generate_key_pair()
        transfer = generate_key_pair()

        template = build_recovery_typed_data(
            link_key.address, transfer.address, 8453, ESCROW_ADDRESS, "3"
        )

        assert template.primary_type == "Transfer"
        assert template.domain["name"] == "LinkdropEscrow"
        assert template.domain["chainId"] == 8453
        assert template.message == {
            "linkKeyId": link_key.address,
            "transferId": transfer.address,
        }
        assert [f.name for f in template.types["Transfer"]] == ["linkKeyId", "transferId"]

    def test_normalized_template_signs_and_recovers(self):
        """Test the normalized template signs with eth_account."""
        sender = generate_key_pair()
        template = normalize_typed_data(build_recovery_typed_data(
            generate_key_pair().address, generate_key_pair().address, 8453, ESCROW_ADDRESS, "3"
        ))
        data = template.to_signable()

        signed = Account.sign_typed_data(
            sender.private_key,
            domain_data=data["domain"],
            message_types=data["types"],
            message_data=data["message"],
        )
        message = encode_typed_data(
            domain_data=data["domain"],
            message_types=data["types"],
            message_data=data["message"],
        )

        assert Account.recover_message(message, signature=signed.signature) == sender.address
