"""
lowlevel.py - Hand-Assembled Token on Raw Storage Words

Everything is done at word level, the way a hand-written assembly contract
does it:

    - one entry point, fallback(calldata), dispatching on the 4-byte selector
    - arguments read as 32-byte words at fixed calldata offsets
    - state kept as 256-bit words in a slot -> value map
    - mapping slots derived as keccak(key ‖ base_slot), nested for allowances
    - return data, logs and revert data built by hand

Storage layout:
    slot 0   balances      mapping(address => uint256)
    slot 1   allowances    mapping(address => mapping(address => uint256))
    slot 2   nonces        mapping(address => uint256)
    slot 3   totalSupply
    slot 4   owner

name, symbol and the domain separator are immutables fixed at deployment.
"""

from __future__ import annotations
from typing import Callable, Dict

from eth_utils import keccak

from ..core import UINT256_MAX, DECIMALS
from ..chain import Contract, CustomError, Revert, ecrecover, selector


BALANCES_SLOT = 0
ALLOWANCES_SLOT = 1
NONCES_SLOT = 2
TOTAL_SUPPLY_SLOT = 3
OWNER_SLOT = 4

ADDRESS_MASK = (1 << 160) - 1

TRANSFER_TOPIC = keccak(text="Transfer(address,address,uint256)")
APPROVAL_TOPIC = keccak(text="Approval(address,address,uint256)")

DOMAIN_TYPEHASH = keccak(
    text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
PERMIT_TYPEHASH = keccak(
    text="Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
)


# ============================================================================
# CUSTOM ERRORS
# ============================================================================

class InsufficientBalanceError(CustomError):
    SIGNATURE = "InsufficientBalance()"


class InsufficientAllowanceError(CustomError):
    SIGNATURE = "InsufficientAllowance()"


class UnauthorizedError(CustomError):
    SIGNATURE = "Unauthorized()"


class SupplyOverflowError(CustomError):
    SIGNATURE = "Overflow()"


class ExpiredError(CustomError):
    SIGNATURE = "Expired()"


class InvalidSignatureError(CustomError):
    SIGNATURE = "InvalidSignature()"


class ZeroAddressError(CustomError):
    SIGNATURE = "ZeroAddress()"


# ============================================================================
# WORD HELPERS
# ============================================================================

def word(value: int) -> bytes:
    return (value % (1 << 256)).to_bytes(32, "big")


def address_word(address: str) -> int:
    return int(address, 16) & ADDRESS_MASK


def abi_string(data: bytes) -> bytes:
    """Return data encoded as a dynamic `string` return value."""
    padded = data + b"\x00" * (-len(data) % 32)
    return word(0x20) + word(len(data)) + padded


_ENTRYPOINTS: Dict[bytes, Callable] = {}


def entrypoint(signature: str):
    """Register a method under the selector of signature."""
    def register(fn):
        _ENTRYPOINTS[selector(signature)] = fn
        return fn
    return register


class LowLevelERC20(Contract):

    def __init__(self, chain, address, name: str, symbol: str, initial_supply: int):
        super().__init__(chain, address)
        self.storage: Dict[int, int] = {}
        self._name = name.encode("utf-8")
        self._symbol = symbol.encode("utf-8")
        self._domain_separator = keccak(
            DOMAIN_TYPEHASH
            + keccak(self._name)
            + keccak(b"1")
            + word(self.chain_id)
            + word(address_word(address))
        )
        caller = address_word(self.msg_sender)
        self._sstore(OWNER_SLOT, caller)
        self._mint(caller, initial_supply)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def fallback(self, calldata: bytes) -> bytes:
        if len(calldata) < 4:
            raise Revert()
        handler = _ENTRYPOINTS.get(bytes(calldata[:4]))
        if handler is None:
            raise Revert()
        return handler(self, bytes(calldata))

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _sload(self, slot: int) -> int:
        return self.storage.get(slot, 0)

    def _sstore(self, slot: int, value: int) -> None:
        value %= 1 << 256
        if value:
            self.storage[slot] = value
        else:
            self.storage.pop(slot, None)

    @staticmethod
    def _mapping_slot(key: int, base: int) -> int:
        return int.from_bytes(keccak(word(key) + word(base)), "big")

    def _balance_slot(self, account: int) -> int:
        return self._mapping_slot(account, BALANCES_SLOT)

    def _allowance_slot(self, owner: int, spender: int) -> int:
        return self._mapping_slot(spender, self._mapping_slot(owner, ALLOWANCES_SLOT))

    def _nonce_slot(self, owner: int) -> int:
        return self._mapping_slot(owner, NONCES_SLOT)

    # ------------------------------------------------------------------
    # Calldata and logs
    # ------------------------------------------------------------------

    @staticmethod
    def _arg(calldata: bytes, index: int) -> int:
        start = 4 + 32 * index
        if len(calldata) < start + 32:
            raise Revert()
        return int.from_bytes(calldata[start:start + 32], "big")

    def _caller(self) -> int:
        return address_word(self.msg_sender)

    def _log3(self, topic: bytes, a: int, b: int, data: int) -> None:
        self.emit(((topic, word(a), word(b)), word(data)))

    # ------------------------------------------------------------------
    # Internal transitions
    # ------------------------------------------------------------------

    def _move(self, sender: int, to: int, amount: int) -> None:
        if to == 0:
            raise ZeroAddressError()
        held = self._sload(self._balance_slot(sender))
        if held < amount:
            raise InsufficientBalanceError()
        self._sstore(self._balance_slot(sender), held - amount)
        self._sstore(self._balance_slot(to), self._sload(self._balance_slot(to)) + amount)
        self._log3(TRANSFER_TOPIC, sender, to, amount)

    def _mint(self, to: int, amount: int) -> None:
        supply = self._sload(TOTAL_SUPPLY_SLOT)
        if supply + amount > UINT256_MAX:
            raise SupplyOverflowError()
        if to == 0:
            raise ZeroAddressError()
        self._sstore(TOTAL_SUPPLY_SLOT, supply + amount)
        self._sstore(self._balance_slot(to), self._sload(self._balance_slot(to)) + amount)
        self._log3(TRANSFER_TOPIC, 0, to, amount)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @entrypoint("transfer(address,uint256)")
    def _transfer(self, calldata: bytes) -> bytes:
        to = self._arg(calldata, 0) & ADDRESS_MASK
        self._move(self._caller(), to, self._arg(calldata, 1))
        return word(1)

    @entrypoint("approve(address,uint256)")
    def _approve(self, calldata: bytes) -> bytes:
        caller = self._caller()
        spender = self._arg(calldata, 0) & ADDRESS_MASK
        amount = self._arg(calldata, 1)
        self._sstore(self._allowance_slot(caller, spender), amount)
        self._log3(APPROVAL_TOPIC, caller, spender, amount)
        return word(1)

    @entrypoint("transferFrom(address,address,uint256)")
    def _transfer_from(self, calldata: bytes) -> bytes:
        caller = self._caller()
        sender = self._arg(calldata, 0) & ADDRESS_MASK
        to = self._arg(calldata, 1) & ADDRESS_MASK
        amount = self._arg(calldata, 2)
        slot = self._allowance_slot(sender, caller)
        allowed = self._sload(slot)
        if allowed != UINT256_MAX:
            if allowed < amount:
                raise InsufficientAllowanceError()
            self._sstore(slot, allowed - amount)
        self._move(sender, to, amount)
        return word(1)

    @entrypoint("permit(address,address,uint256,uint256,uint8,bytes32,bytes32)")
    def _permit(self, calldata: bytes) -> bytes:
        owner = self._arg(calldata, 0) & ADDRESS_MASK
        spender = self._arg(calldata, 1) & ADDRESS_MASK
        value = self._arg(calldata, 2)
        deadline = self._arg(calldata, 3)
        v = self._arg(calldata, 4)
        r = self._arg(calldata, 5)
        s = self._arg(calldata, 6)
        if self.block_timestamp > deadline:
            raise ExpiredError()

        nonce_slot = self._nonce_slot(owner)
        nonce = self._sload(nonce_slot)
        self._sstore(nonce_slot, nonce + 1)

        memory = bytearray(192)
        for offset, value_word in enumerate((
            int.from_bytes(PERMIT_TYPEHASH, "big"), owner, spender, value, nonce, deadline,
        )):
            memory[32 * offset:32 * offset + 32] = word(value_word)
        struct_hash = keccak(bytes(memory))

        envelope = bytearray(66)
        envelope[0:2] = b"\x19\x01"
        envelope[2:34] = self._domain_separator
        envelope[34:66] = struct_hash
        recovered = address_word(ecrecover(keccak(bytes(envelope)), v, r, s))
        if recovered == 0 or recovered != owner:
            raise InvalidSignatureError()

        self._sstore(self._allowance_slot(owner, spender), value)
        self._log3(APPROVAL_TOPIC, owner, spender, value)
        return b""

    @entrypoint("mint(address,uint256)")
    def _mint_entry(self, calldata: bytes) -> bytes:
        if self._caller() != self._sload(OWNER_SLOT):
            raise UnauthorizedError()
        self._mint(self._arg(calldata, 0) & ADDRESS_MASK, self._arg(calldata, 1))
        return b""

    @entrypoint("burn(uint256)")
    def _burn(self, calldata: bytes) -> bytes:
        caller = self._caller()
        amount = self._arg(calldata, 0)
        held = self._sload(self._balance_slot(caller))
        if held < amount:
            raise InsufficientBalanceError()
        self._sstore(self._balance_slot(caller), held - amount)
        self._sstore(TOTAL_SUPPLY_SLOT, self._sload(TOTAL_SUPPLY_SLOT) - amount)
        self._log3(TRANSFER_TOPIC, caller, 0, amount)
        return b""

    @entrypoint("balanceOf(address)")
    def _balance_of(self, calldata: bytes) -> bytes:
        return word(self._sload(self._balance_slot(self._arg(calldata, 0) & ADDRESS_MASK)))

    @entrypoint("allowance(address,address)")
    def _allowance(self, calldata: bytes) -> bytes:
        owner = self._arg(calldata, 0) & ADDRESS_MASK
        spender = self._arg(calldata, 1) & ADDRESS_MASK
        return word(self._sload(self._allowance_slot(owner, spender)))

    @entrypoint("nonces(address)")
    def _nonces(self, calldata: bytes) -> bytes:
        return word(self._sload(self._nonce_slot(self._arg(calldata, 0) & ADDRESS_MASK)))

    @entrypoint("totalSupply()")
    def _total_supply(self, calldata: bytes) -> bytes:
        return word(self._sload(TOTAL_SUPPLY_SLOT))

    @entrypoint("name()")
    def _name_entry(self, calldata: bytes) -> bytes:
        return abi_string(self._name)

    @entrypoint("symbol()")
    def _symbol_entry(self, calldata: bytes) -> bytes:
        return abi_string(self._symbol)

    @entrypoint("decimals()")
    def _decimals(self, calldata: bytes) -> bytes:
        return word(DECIMALS)

    @entrypoint("DOMAIN_SEPARATOR()")
    def _domain_separator_entry(self, calldata: bytes) -> bytes:
        return self._domain_separator

    @entrypoint("owner()")
    def _owner(self, calldata: bytes) -> bytes:
        return word(self._sload(OWNER_SLOT))
