"""
test_chain.py - Unit tests for the in-process execution environment

Tests:
- Revert payloads: Error(string), Panic, custom errors
- Checked arithmetic and ecrecover
- Deployment, atomic transactions, read-only calls, public getters
"""

import pytest
from eth_abi import decode

from token_conformance import Chain, Contract, Revert, Panic, CustomError, ZERO_ADDRESS, typed_data
from token_conformance.chain import (
    ERROR_SELECTOR, PANIC_SELECTOR, PANIC_ARITHMETIC,
    checked_add, checked_sub, ecrecover, selector, signature_types,
)


ALICE = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
BOB = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOX = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
KEY_0 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


class TooBig(CustomError):
    SIGNATURE = "TooBig(address,uint256)"


class Box(Contract):
    """Stores values per sender; reverts on demand."""

    def __init__(self, chain, address, start: int):
        super().__init__(chain, address)
        self.total = start
        self.values = {}
        self.nested = {}
        self.deployer = self.msg_sender

    def put(self, value: int) -> int:
        self.values[self.msg_sender] = value
        self.nested.setdefault(self.msg_sender, {})["last"] = value
        self.total = checked_add(self.total, value)
        self.emit(("Put", self.msg_sender, value))
        if value == 13:
            raise Revert.with_reason("UNLUCKY")
        if value > 1000:
            raise TooBig(self.msg_sender, value)
        return self.total

    def now(self) -> int:
        return self.block_timestamp

    def mutate_in_read(self) -> int:
        self.total += 1
        return self.total

    def crash(self):
        raise RuntimeError("bug")


@pytest.fixture
def chain():
    return Chain(chain_id=31337, timestamp=1_000)


@pytest.fixture
def box(chain):
    return chain.deploy(Box, BOX, ALICE, 5)


class TestSelectors:

    def test_transfer_selector(self):
        assert selector("transfer(address,uint256)").hex() == "a9059cbb"

    def test_signature_types(self):
        assert signature_types("f(address,uint256)") == ["address", "uint256"]
        assert signature_types("totalSupply()") == []


class TestRevertPayloads:

    def test_with_reason(self):
        error = Revert.with_reason("INVALID_SIGNER")
        assert error.selector == ERROR_SELECTOR
        assert error.reason == "INVALID_SIGNER"
        assert str(error) == "INVALID_SIGNER"

    def test_empty_revert(self):
        error = Revert()
        assert error.data == b""
        assert error.reason is None

    def test_panic(self):
        error = Panic(PANIC_ARITHMETIC)
        assert error.selector == PANIC_SELECTOR
        assert decode(["uint256"], error.data[4:])[0] == 0x11
        assert str(error) == "Panic(0x11)"
        assert error.reason is None

    def test_custom_error(self):
        error = TooBig(ALICE, 5000)
        assert error.selector == selector("TooBig(address,uint256)")
        account, value = decode(["address", "uint256"], error.data[4:])
        assert account.lower() == ALICE.lower()
        assert value == 5000
        assert error.error_args == (ALICE, 5000)


class TestCheckedArithmetic:

    def test_add(self):
        assert checked_add(1, 2) == 3

    def test_add_overflow(self):
        with pytest.raises(Panic):
            checked_add(2**256 - 1, 1)

    def test_sub(self):
        assert checked_sub(3, 3) == 0

    def test_sub_underflow(self):
        with pytest.raises(Panic):
            checked_sub(0, 1)


class TestEcrecover:

    def test_recovers_signer(self):
        digest = b"\x11" * 32
        sig = typed_data.sign_hash(digest, KEY_0)
        assert ecrecover(digest, *sig.as_tuple()) == ALICE

    def test_bad_v_gives_zero_address(self):
        assert ecrecover(b"\x11" * 32, 30, 1, 1) == ZERO_ADDRESS

    def test_zero_r_gives_zero_address(self):
        assert ecrecover(b"\x11" * 32, 27, 0, 1) == ZERO_ADDRESS


class TestDeploy:

    def test_deploy_as_deployer(self, chain, box):
        assert box.deployer == ALICE
        assert chain.contracts[BOX] is box

    def test_deploy_discards_logs(self, chain, box):
        assert chain.receipts == []

    def test_duplicate_address(self, chain, box):
        with pytest.raises(ValueError, match="already deployed"):
            chain.deploy(Box, BOX, ALICE, 0)

    def test_unknown_address(self, chain):
        with pytest.raises(KeyError):
            chain.transact(ALICE, BOB, "put", 1)

    def test_msg_sender_outside_call(self, chain):
        with pytest.raises(RuntimeError):
            chain.msg_sender


class TestTransact:

    def test_success(self, chain, box):
        receipt = chain.transact(BOB, BOX, "put", 7)
        assert receipt.status
        assert receipt.return_value == 12
        assert receipt.error is None
        assert [log.entry for log in receipt.logs] == [("Put", BOB, 7)]
        assert receipt.logs[0].address == BOX
        assert receipt.timestamp == 1_000

    def test_revert_restores_state(self, chain, box):
        chain.transact(BOB, BOX, "put", 7)
        receipt = chain.transact(BOB, BOX, "put", 13)
        assert not receipt.status
        assert receipt.logs == ()
        assert receipt.error.reason == "UNLUCKY"
        assert box.values[BOB] == 7
        assert box.nested[BOB]["last"] == 7
        assert box.total == 12

    def test_custom_error_receipt(self, chain, box):
        receipt = chain.transact(BOB, BOX, "put", 5000)
        assert isinstance(receipt.error, TooBig)
        assert BOB not in box.values

    def test_panic_restores_state(self, chain, box):
        box.total = 2**256 - 1
        receipt = chain.transact(BOB, BOX, "put", 1)
        assert isinstance(receipt.error, Panic)
        assert box.total == 2**256 - 1

    def test_tx_index_increments(self, chain, box):
        first = chain.transact(BOB, BOX, "put", 1)
        second = chain.transact(BOB, BOX, "put", 13)
        assert (first.tx_index, second.tx_index) == (0, 1)
        assert len(chain.receipts) == 2

    def test_non_revert_exception_propagates(self, chain, box):
        with pytest.raises(RuntimeError, match="bug"):
            chain.transact(BOB, BOX, "crash")

    def test_sender_normalized(self, chain, box):
        chain.transact(BOB.lower(), BOX, "put", 3)
        assert box.values[BOB] == 3

    def test_verbose_output(self, box, capsys):
        box.chain.verbose = True
        box.chain.transact(BOB, BOX, "put", 13)
        assert "✗ tx 0 put reverted" in capsys.readouterr().out


class TestCallAndRead:

    def test_call_discards_state(self, chain, box):
        assert chain.call(BOX, "mutate_in_read") == 6
        assert box.total == 5

    def test_call_sees_time(self, chain, box):
        chain.advance_time(50)
        assert chain.call(BOX, "now") == 1_050

    def test_negative_time(self, chain):
        with pytest.raises(ValueError):
            chain.advance_time(-1)

    def test_read_scalar(self, chain, box):
        assert chain.read(BOX, "total") == 5

    def test_read_mapping(self, chain, box):
        chain.transact(BOB, BOX, "put", 9)
        assert chain.read(BOX, "values", BOB) == 9
        assert chain.read(BOX, "values", ALICE) == 0

    def test_read_nested_mapping(self, chain, box):
        chain.transact(BOB, BOX, "put", 9)
        assert chain.read(BOX, "nested", BOB, "last") == 9
        assert chain.read(BOX, "nested", ALICE, "last") == 0
