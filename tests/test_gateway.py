"""Tests for the signer service gateway."""

from unittest.mock import AsyncMock, patch

import pytest
from eth_utils import to_checksum_address

from claimlink.errors import (
    InvalidDescriptor,
    MalformedSignerResponse,
    SignerErrorKind,
    SignerRejected,
    SignerUnreachable,
)
from claimlink.gateway.base import SignerOperation
from claimlink.gateway.service import SignerServiceGateway
from claimlink.keys import generate_key_pair
from claimlink.typed_data import build_recovery_typed_data
from conftest import DEPOSIT_TX_HASH, ESCROW_ADDRESS

DEPOSIT_RESPONSE = {"to": ESCROW_ADDRESS, "value": "100000", "data": "0x"}


def make_gateway(*responses, max_attempts: int = 3) -> tuple[SignerServiceGateway, AsyncMock]:
    transport = AsyncMock()
    transport.call = AsyncMock(side_effect=list(responses))
    return SignerServiceGateway(transport, max_attempts=max_attempts, retry_backoff=0), transport


class TestRetries:
    """Retry policy: only unreachable signers are retried."""

    @pytest.mark.asyncio
    async def test_unreachable_is_retried(self, descriptor):
        gateway, transport = make_gateway(SignerUnreachable("down"), DEPOSIT_RESPONSE)

        params = await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        assert params.value == "100000"
        assert transport.call.await_count == 2

    @pytest.mark.asyncio
    async def test_unreachable_surfaces_after_max_attempts(self, descriptor):
        gateway, transport = make_gateway(*[SignerUnreachable("down")] * 3)

        with pytest.raises(SignerUnreachable) as exc_info:
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        assert transport.call.await_count == 3
        assert exc_info.value.kind == SignerErrorKind.UNREACHABLE
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_rejected_is_not_retried(self, descriptor):
        gateway, transport = make_gateway(SignerRejected("fee authorization expired"))

        with pytest.raises(SignerRejected) as exc_info:
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        assert transport.call.await_count == 1
        assert exc_info.value.reason == "fee authorization expired"
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_malformed_is_not_retried(self, descriptor):
        gateway, transport = make_gateway({"to": ESCROW_ADDRESS, "value": "lots"})

        with pytest.raises(MalformedSignerResponse):
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        assert transport.call.await_count == 1

    @pytest.mark.asyncio
    async def test_backoff_doubles(self, descriptor):
        transport = AsyncMock()
        transport.call = AsyncMock(side_effect=[SignerUnreachable("a"), SignerUnreachable("b"), DEPOSIT_RESPONSE])
        gateway = SignerServiceGateway(transport, max_attempts=3, retry_backoff=0.5)

        with patch("claimlink.gateway.service.asyncio.sleep", new=AsyncMock()) as sleep:
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            SignerServiceGateway(AsyncMock(), max_attempts=0)


class TestDepositParams:
    """Tests for request_deposit_params."""

    @pytest.mark.asyncio
    async def test_request_payload(self, descriptor):
        gateway, transport = make_gateway(DEPOSIT_RESPONSE)
        transfer_id = generate_key_pair().address

        await gateway.request_deposit_params(transfer_id.lower(), descriptor)

        operation, payload = transport.call.await_args.args
        assert operation == SignerOperation.GET_DEPOSIT_PARAMS
        assert payload == {"transferId": transfer_id, "claimLink": descriptor.to_payload()}

    @pytest.mark.asyncio
    async def test_integer_value_accepted(self, descriptor):
        gateway, _ = make_gateway({"to": ESCROW_ADDRESS, "value": 5, "data": "0xabcd"})

        params = await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        assert params.value == "5"
        assert params.value_wei == 5
        assert params.data == "0xabcd"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        {"value": "1", "data": "0x"},
        {"to": "", "value": "1", "data": "0x"},
        {"to": "0x1234", "value": "1", "data": "0x"},
        {"to": ESCROW_ADDRESS, "data": "0x"},
        {"to": ESCROW_ADDRESS, "value": "-1", "data": "0x"},
        {"to": ESCROW_ADDRESS, "value": "\u00b2", "data": "0x"},
        {"to": ESCROW_ADDRESS, "value": "1", "data": "zz"},
        {"to": ESCROW_ADDRESS, "value": "1", "data": "0xzz"},
    ])
    async def test_malformed_response(self, descriptor, response):
        gateway, _ = make_gateway(response)

        with pytest.raises(MalformedSignerResponse):
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

    @pytest.mark.asyncio
    async def test_chain_mismatch_is_malformed(self, descriptor):
        gateway, _ = make_gateway({**DEPOSIT_RESPONSE, "chainId": 1})

        with pytest.raises(MalformedSignerResponse):
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

    @pytest.mark.asyncio
    async def test_invalid_transfer_id_never_sent(self, descriptor):
        gateway, transport = make_gateway(DEPOSIT_RESPONSE)

        with pytest.raises(InvalidDescriptor):
            await gateway.request_deposit_params("0xbad", descriptor)

        transport.call.assert_not_called()

    @pytest.mark.asyncio
    async def test_mutated_descriptor_never_sent(self, descriptor):
        """Test the descriptor is re-validated before the request."""
        gateway, transport = make_gateway(DEPOSIT_RESPONSE)
        object.__setattr__(descriptor, "amount", "-5")

        with pytest.raises(InvalidDescriptor):
            await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        transport.call.assert_not_called()


class TestRecoveryTypedData:
    """Tests for request_recovery_typed_data."""

    @pytest.mark.asyncio
    async def test_returns_template(self, erc20_token):
        transfer_id = generate_key_pair().address
        link_key_id = generate_key_pair().address
        template = build_recovery_typed_data(link_key_id, transfer_id, 8453, ESCROW_ADDRESS, "3")
        gateway, transport = make_gateway(template.model_dump(by_alias=True))

        result = await gateway.request_recovery_typed_data(transfer_id, link_key_id, erc20_token)

        assert result == template
        operation, payload = transport.call.await_args.args
        assert operation == SignerOperation.GET_RECOVERED_LINK_TYPED_DATA
        assert payload == {
            "transferId": transfer_id,
            "linkKeyId": link_key_id,
            "claimLink": {"token": erc20_token.to_payload()},
        }

    @pytest.mark.asyncio
    async def test_same_ids_rejected(self, erc20_token):
        gateway, transport = make_gateway({})
        same = generate_key_pair().address

        with pytest.raises(InvalidDescriptor):
            await gateway.request_recovery_typed_data(same, same, erc20_token)

        transport.call.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_template(self, erc20_token):
        gateway, _ = make_gateway({"domain": {}, "types": {"Claim": "address"}, "message": {}})

        with pytest.raises(MalformedSignerResponse):
            await gateway.request_recovery_typed_data(
                generate_key_pair().address, generate_key_pair().address, erc20_token
            )


class TestRegisterDeposit:
    """Tests for register_deposit."""

    @pytest.mark.asyncio
    async def test_registers(self, descriptor):
        transfer_id = generate_key_pair().address
        gateway, transport = make_gateway({"status": "deposited"})

        result = await gateway.register_deposit(transfer_id, descriptor, DEPOSIT_TX_HASH)

        assert result.transfer_id == transfer_id
        assert result.tx_hash == DEPOSIT_TX_HASH
        assert result.status == "deposited"
        assert not result.already_registered
        _, payload = transport.call.await_args.args
        assert payload["txHash"] == DEPOSIT_TX_HASH

    @pytest.mark.asyncio
    async def test_duplicate_registration_is_success(self, descriptor):
        gateway, transport = make_gateway(SignerRejected("Transfer already registered"))

        result = await gateway.register_deposit(
            generate_key_pair().address, descriptor, DEPOSIT_TX_HASH
        )

        assert result.already_registered
        assert transport.call.await_count == 1

    @pytest.mark.asyncio
    async def test_other_rejection_surfaces(self, descriptor):
        gateway, _ = make_gateway(SignerRejected("tx not found"))

        with pytest.raises(SignerRejected):
            await gateway.register_deposit(generate_key_pair().address, descriptor, DEPOSIT_TX_HASH)

    @pytest.mark.asyncio
    async def test_hash_mismatch_is_malformed(self, descriptor):
        gateway, _ = make_gateway({"txHash": "0x" + "11" * 32})

        with pytest.raises(MalformedSignerResponse):
            await gateway.register_deposit(generate_key_pair().address, descriptor, DEPOSIT_TX_HASH)

    @pytest.mark.asyncio
    async def test_requires_tx_hash(self, descriptor):
        gateway, transport = make_gateway({})

        with pytest.raises(InvalidDescriptor):
            await gateway.register_deposit(generate_key_pair().address, descriptor, "")

        transport.call.assert_not_called()

    @pytest.mark.asyncio
    async def test_registers_after_expiration(self, descriptor):
        """Test a deposit confirmed after expiration is still recorded."""
        gateway, transport = make_gateway({"status": "deposited"})

        with patch("claimlink.models.time.time", return_value=descriptor.expiration + 60):
            result = await gateway.register_deposit(
                generate_key_pair().address, descriptor, DEPOSIT_TX_HASH
            )

        assert result.tx_hash == DEPOSIT_TX_HASH
        transport.call.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deposit_params_still_check_expiration(self, descriptor):
        gateway, transport = make_gateway(DEPOSIT_RESPONSE)

        with patch("claimlink.models.time.time", return_value=descriptor.expiration + 60):
            with pytest.raises(InvalidDescriptor):
                await gateway.request_deposit_params(generate_key_pair().address, descriptor)

        transport.call.assert_not_called()


class TestRedeemLink:
    """Tests for redeem_link."""

    RECEIVER = to_checksum_address("0x5659a8557fdba11aa04cfcfcc59eef9fa412a7dd")
    REDEEM_TX_HASH = "0x" + "cd" * 32

    @pytest.mark.asyncio
    async def test_deposit_link(self):
        transfer_id = generate_key_pair().address
        gateway, transport = make_gateway({"txHash": self.REDEEM_TX_HASH})

        result = await gateway.redeem_link(transfer_id, 8453, self.RECEIVER.lower(), b"\x01" * 65)

        assert result.tx_hash == self.REDEEM_TX_HASH
        operation, payload = transport.call.await_args.args
        assert operation == SignerOperation.REDEEM_LINK
        assert payload == {
            "transferId": transfer_id,
            "chainId": 8453,
            "receiver": self.RECEIVER,
            "receiverSig": "0x" + "01" * 65,
        }

    @pytest.mark.asyncio
    async def test_recovered_link_sends_sender_signature(self):
        gateway, transport = make_gateway({"tx_hash": self.REDEEM_TX_HASH})

        await gateway.redeem_link(
            generate_key_pair().address, 8453, self.RECEIVER, b"\x01" * 65, b"\x02" * 65
        )

        operation, payload = transport.call.await_args.args
        assert operation == SignerOperation.REDEEM_RECOVERED_LINK
        assert payload["senderSig"] == "0x" + "02" * 65

    @pytest.mark.asyncio
    @pytest.mark.parametrize("receiver, signature", [
        ("0x" + "00" * 20, b"\x01" * 65),
        ("not-an-address", b"\x01" * 65),
        (RECEIVER, b"\x01" * 64),
    ])
    async def test_invalid_request_never_sent(self, receiver, signature):
        gateway, transport = make_gateway({"txHash": self.REDEEM_TX_HASH})

        with pytest.raises(InvalidDescriptor):
            await gateway.redeem_link(generate_key_pair().address, 8453, receiver, signature)

        transport.call.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [{}, {"txHash": "0x1234"}, {"txHash": "zz" * 33}])
    async def test_malformed_result(self, response):
        gateway, _ = make_gateway(response)

        with pytest.raises(MalformedSignerResponse):
            await gateway.redeem_link(generate_key_pair().address, 8453, self.RECEIVER, b"\x01" * 65)

    @pytest.mark.asyncio
    async def test_rejection_surfaces(self):
        gateway, transport = make_gateway(SignerRejected("transfer already claimed"))

        with pytest.raises(SignerRejected):
            await gateway.redeem_link(generate_key_pair().address, 8453, self.RECEIVER, b"\x01" * 65)

        assert transport.call.await_count == 1
