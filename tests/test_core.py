"""
test_core.py - Unit tests for core types and helpers

Tests:
- ErrorKind parsing
- Exception hierarchy and kinds
- Address and uint256 helpers
- Event, CallOutcome, PermitMessage, Signature
"""

import pytest

from token_conformance import (
    ErrorKind, Event, CallOutcome, PermitMessage, Signature, TokenView, TokenLedger,
    TokenError, LedgerError, InsufficientBalance, InsufficientAllowance, Unauthorized,
    SupplyOverflow, Expired, InvalidSignature, ZeroAddressRecipient, UnknownNetwork,
    ConformanceFailure, UINT256_MAX, ZERO_ADDRESS, ONE_TOKEN, DECIMALS,
    transfer_event, approval_event, normalize_address,
)
from token_conformance.core import check_uint256, is_zero_address


ALICE = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
BOB = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
TOKEN = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


class TestConstants:

    def test_uint256_max(self):
        assert UINT256_MAX == 2**256 - 1

    def test_one_token(self):
        assert DECIMALS == 18
        assert ONE_TOKEN == 10**18

    def test_zero_address_shape(self):
        assert ZERO_ADDRESS == "0x0000000000000000000000000000000000000000"


class TestErrorKind:

    def test_parse_known(self):
        assert ErrorKind.parse("InsufficientBalance") is ErrorKind.INSUFFICIENT_BALANCE
        assert ErrorKind.parse("ZeroAddressRecipient") is ErrorKind.ZERO_ADDRESS_RECIPIENT

    def test_parse_opaque_reason(self):
        """Opaque revert descriptions are not kinds."""
        assert ErrorKind.parse("Panic(0x11)") is None

    def test_parse_none(self):
        assert ErrorKind.parse(None) is None


class TestExceptions:

    @pytest.mark.parametrize("exc,kind", [
        (InsufficientBalance, ErrorKind.INSUFFICIENT_BALANCE),
        (InsufficientAllowance, ErrorKind.INSUFFICIENT_ALLOWANCE),
        (Unauthorized, ErrorKind.UNAUTHORIZED),
        (SupplyOverflow, ErrorKind.SUPPLY_OVERFLOW),
        (Expired, ErrorKind.EXPIRED),
        (InvalidSignature, ErrorKind.INVALID_SIGNATURE),
        (ZeroAddressRecipient, ErrorKind.ZERO_ADDRESS_RECIPIENT),
    ])
    def test_ledger_errors_carry_kind(self, exc, kind):
        assert issubclass(exc, LedgerError)
        assert exc.kind is kind

    def test_unknown_network_is_not_a_ledger_error(self):
        assert issubclass(UnknownNetwork, TokenError)
        assert not issubclass(UnknownNetwork, LedgerError)
        assert UnknownNetwork.kind is ErrorKind.UNKNOWN_NETWORK

    def test_conformance_failure_names_both_sides(self):
        failure = ConformanceFailure("transfer", "minimal", "expected-thing", "observed-thing", "why")
        message = str(failure)
        assert "transfer" in message
        assert "minimal" in message
        assert "expected-thing" in message
        assert "observed-thing" in message
        assert failure.reason == "why"


class TestAddressHelpers:

    def test_normalize_lowercase(self):
        assert normalize_address(ALICE.lower()) == ALICE

    def test_normalize_rejects_garbage(self):
        with pytest.raises(ValueError):
            normalize_address("0x1234")

    def test_normalize_rejects_non_string(self):
        with pytest.raises(ValueError):
            normalize_address(1234)

    def test_is_zero_address(self):
        assert is_zero_address(ZERO_ADDRESS)
        assert not is_zero_address(ALICE)


class TestCheckUint256:

    def test_bounds_accepted(self):
        assert check_uint256(0) == 0
        assert check_uint256(UINT256_MAX) == UINT256_MAX

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="out of uint256 range"):
            check_uint256(-1)

    def test_too_large_rejected(self):
        with pytest.raises(ValueError, match="out of uint256 range"):
            check_uint256(UINT256_MAX + 1)

    def test_bool_rejected(self):
        with pytest.raises(ValueError, match="must be int"):
            check_uint256(True)

    def test_label_in_message(self):
        with pytest.raises(ValueError, match="deadline"):
            check_uint256(-5, "deadline")


class TestEvent:

    def test_transfer_event_fields(self):
        event = transfer_event(TOKEN, ALICE, BOB, 5)
        assert event.name == "Transfer"
        assert event.emitter == TOKEN
        assert [k for k, _ in event.fields] == ["from", "to", "value"]
        assert event.get("to") == BOB

    def test_approval_event_fields(self):
        event = approval_event(TOKEN, ALICE, BOB, 7)
        assert [k for k, _ in event.fields] == ["owner", "spender", "value"]
        assert event.get("value") == 7

    def test_identity_includes_emitter(self):
        assert transfer_event(TOKEN, ALICE, BOB, 1) != transfer_event(ALICE, ALICE, BOB, 1)

    def test_equal_events(self):
        assert approval_event(TOKEN, ALICE, BOB, 1) == approval_event(TOKEN, ALICE, BOB, 1)

    def test_missing_field(self):
        with pytest.raises(KeyError):
            transfer_event(TOKEN, ALICE, BOB, 1).get("owner")

    def test_immutable(self):
        event = transfer_event(TOKEN, ALICE, BOB, 1)
        with pytest.raises(AttributeError):
            event.name = "Approval"


class TestCallOutcome:

    def test_ok(self):
        outcome = CallOutcome.ok(True, [transfer_event(TOKEN, ALICE, BOB, 1)])
        assert outcome.success
        assert outcome.return_value is True
        assert isinstance(outcome.events, tuple)
        assert outcome.reverted_with is None
        assert outcome.error_kind is None

    def test_failed_known_kind(self):
        outcome = CallOutcome.failed("Expired")
        assert not outcome.success
        assert outcome.events == ()
        assert outcome.error_kind is ErrorKind.EXPIRED

    def test_failed_opaque(self):
        assert CallOutcome.failed("Panic(0x11)").error_kind is None


class TestPermitMessage:

    def test_addresses_normalized(self):
        message = PermitMessage(ALICE.lower(), BOB.lower(), 1, 0, 100)
        assert message.owner == ALICE
        assert message.spender == BOB

    def test_out_of_range_value(self):
        with pytest.raises(ValueError):
            PermitMessage(ALICE, BOB, UINT256_MAX + 1, 0, 100)

    def test_negative_nonce(self):
        with pytest.raises(ValueError):
            PermitMessage(ALICE, BOB, 1, -1, 100)


class TestSignature:

    def test_to_bytes_layout(self):
        sig = Signature(27, 1, 2)
        raw = sig.to_bytes()
        assert len(raw) == 65
        assert raw[:32] == (1).to_bytes(32, "big")
        assert raw[32:64] == (2).to_bytes(32, "big")
        assert raw[64] == 27

    def test_as_tuple_order(self):
        assert Signature(28, 3, 4).as_tuple() == (28, 3, 4)


class TestTokenViewProtocol:

    def test_model_is_a_token_view(self, ledger):
        assert isinstance(ledger, TokenView)
        assert isinstance(ledger, TokenLedger)
