"""
reference.py - Inheritance-Based Reference Token

A layered token in the style of the widely used contract library:

    Context
      ├── ERC20          balances, allowances, supply, _update hook
      ├── EIP712         cached domain separator, typed-data hashing
      ├── Nonces         per-owner replay counters
      └── Ownable        single owner, onlyOwner check
    ERC20Permit(ERC20, EIP712, Nonces)
    ReferenceERC20(ERC20Permit, Ownable)   mint/burn surface

Failures are typed custom errors carrying their arguments. Events are emitted
as EventLog(name, args) with named arguments.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from eth_abi import encode
from eth_utils import keccak

from ..core import UINT256_MAX, ZERO_ADDRESS, DECIMALS, is_zero_address
from ..chain import Contract, CustomError, checked_add, ecrecover


# ============================================================================
# CUSTOM ERRORS
# ============================================================================

class ERC20InvalidSender(CustomError):
    SIGNATURE = "ERC20InvalidSender(address)"


class ERC20InvalidReceiver(CustomError):
    SIGNATURE = "ERC20InvalidReceiver(address)"


class ERC20InsufficientBalance(CustomError):
    SIGNATURE = "ERC20InsufficientBalance(address,uint256,uint256)"


class ERC20InsufficientAllowance(CustomError):
    SIGNATURE = "ERC20InsufficientAllowance(address,uint256,uint256)"


class ERC20InvalidApprover(CustomError):
    SIGNATURE = "ERC20InvalidApprover(address)"


class ERC20InvalidSpender(CustomError):
    SIGNATURE = "ERC20InvalidSpender(address)"


class OwnableUnauthorizedAccount(CustomError):
    SIGNATURE = "OwnableUnauthorizedAccount(address)"


class OwnableInvalidOwner(CustomError):
    SIGNATURE = "OwnableInvalidOwner(address)"


class ERC2612ExpiredSignature(CustomError):
    SIGNATURE = "ERC2612ExpiredSignature(uint256)"


class ERC2612InvalidSigner(CustomError):
    SIGNATURE = "ERC2612InvalidSigner(address,address)"


class ECDSAInvalidSignature(CustomError):
    SIGNATURE = "ECDSAInvalidSignature()"


class ECDSAInvalidSignatureS(CustomError):
    SIGNATURE = "ECDSAInvalidSignatureS(bytes32)"


@dataclass(frozen=True)
class EventLog:
    """Named event with named arguments."""
    event: str
    args: Dict[str, Any]


# ============================================================================
# BASES
# ============================================================================

class Context(Contract):

    def _msg_sender(self) -> str:
        return self.msg_sender


class ERC20(Context):
    """Balances, allowances and supply. Every balance change goes through _update."""

    def __init__(self, chain, address, name: str, symbol: str):
        Context.__init__(self, chain, address)
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, Dict[str, int]] = {}
        self._total_supply = 0
        self._name = name
        self._symbol = symbol

    def name(self) -> str:
        return self._name

    def symbol(self) -> str:
        return self._symbol

    def decimals(self) -> int:
        return DECIMALS

    def totalSupply(self) -> int:
        return self._total_supply

    def balanceOf(self, account: str) -> int:
        return self._balances.get(account, 0)

    def transfer(self, to: str, value: int) -> bool:
        self._transfer(self._msg_sender(), to, value)
        return True

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(owner, {}).get(spender, 0)

    def approve(self, spender: str, value: int) -> bool:
        self._approve(self._msg_sender(), spender, value)
        return True

    def transferFrom(self, sender: str, to: str, value: int) -> bool:
        self._spend_allowance(sender, self._msg_sender(), value)
        self._transfer(sender, to, value)
        return True

    def _transfer(self, sender: str, to: str, value: int) -> None:
        if is_zero_address(sender):
            raise ERC20InvalidSender(ZERO_ADDRESS)
        if is_zero_address(to):
            raise ERC20InvalidReceiver(ZERO_ADDRESS)
        self._update(sender, to, value)

    def _update(self, sender: str, to: str, value: int) -> None:
        if is_zero_address(sender):
            self._total_supply = checked_add(self._total_supply, value)
        else:
            held = self._balances.get(sender, 0)
            if held < value:
                raise ERC20InsufficientBalance(sender, held, value)
            self._balances[sender] = held - value

        if is_zero_address(to):
            self._total_supply -= value
        else:
            self._balances[to] = self._balances.get(to, 0) + value

        self.emit(EventLog("Transfer", {"from": sender, "to": to, "value": value}))

    def _mint(self, account: str, value: int) -> None:
        if is_zero_address(account):
            raise ERC20InvalidReceiver(ZERO_ADDRESS)
        self._update(ZERO_ADDRESS, account, value)

    def _burn(self, account: str, value: int) -> None:
        if is_zero_address(account):
            raise ERC20InvalidSender(ZERO_ADDRESS)
        self._update(account, ZERO_ADDRESS, value)

    def _approve(self, owner: str, spender: str, value: int, emit_event: bool = True) -> None:
        if is_zero_address(owner):
            raise ERC20InvalidApprover(ZERO_ADDRESS)
        if is_zero_address(spender):
            raise ERC20InvalidSpender(ZERO_ADDRESS)
        self._allowances.setdefault(owner, {})[spender] = value
        if emit_event:
            self.emit(EventLog("Approval", {"owner": owner, "spender": spender, "value": value}))

    def _spend_allowance(self, owner: str, spender: str, value: int) -> None:
        # An allowance of type(uint256).max is never decremented.
        current = self.allowance(owner, spender)
        if current != UINT256_MAX:
            if current < value:
                raise ERC20InsufficientAllowance(spender, current, value)
            self._approve(owner, spender, current - value, emit_event=False)


class EIP712(Context):
    """Domain separator cached at construction, rebuilt if chain id or address change."""

    TYPE_HASH = keccak(
        text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
    )

    def __init__(self, chain, address, name: str, version: str):
        Context.__init__(self, chain, address)
        self._hashed_name = keccak(text=name)
        self._hashed_version = keccak(text=version)
        self._cached_chain_id = self.chain_id
        self._cached_this = address
        self._cached_domain_separator = self._build_domain_separator()

    def _build_domain_separator(self) -> bytes:
        return keccak(encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [self.TYPE_HASH, self._hashed_name, self._hashed_version, self.chain_id, self.address],
        ))

    def _domain_separator_v4(self) -> bytes:
        if self.address == self._cached_this and self.chain_id == self._cached_chain_id:
            return self._cached_domain_separator
        return self._build_domain_separator()

    def _hash_typed_data_v4(self, struct_hash: bytes) -> bytes:
        return keccak(b"\x19\x01" + self._domain_separator_v4() + struct_hash)


class Nonces(Context):

    def __init__(self, chain, address):
        Context.__init__(self, chain, address)
        self._nonces: Dict[str, int] = {}

    def nonces(self, owner: str) -> int:
        return self._nonces.get(owner, 0)

    def _use_nonce(self, owner: str) -> int:
        current = self._nonces.get(owner, 0)
        self._nonces[owner] = current + 1
        return current


class Ownable(Context):

    def __init__(self, chain, address, initial_owner: str):
        Context.__init__(self, chain, address)
        if is_zero_address(initial_owner):
            raise OwnableInvalidOwner(ZERO_ADDRESS)
        self._owner = initial_owner

    def owner(self) -> str:
        return self._owner

    def _check_owner(self) -> None:
        if self._msg_sender() != self._owner:
            raise OwnableUnauthorizedAccount(self._msg_sender())


def recover(digest: bytes, v: int, r: int, s: int) -> str:
    """ecrecover that rejects malleable (high-s) and unrecoverable signatures."""
    if s > 0x7FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF5D576E7357A4501DDFE92F46681B20A0:
        raise ECDSAInvalidSignatureS(s.to_bytes(32, "big"))
    signer = ecrecover(digest, v, r, s)
    if is_zero_address(signer):
        raise ECDSAInvalidSignature()
    return signer


class ERC20Permit(ERC20, EIP712, Nonces):

    PERMIT_TYPEHASH = keccak(
        text="Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
    )

    def __init__(self, chain, address, name: str, symbol: str):
        ERC20.__init__(self, chain, address, name, symbol)
        EIP712.__init__(self, chain, address, name, "1")
        Nonces.__init__(self, chain, address)

    def permit(self, owner: str, spender: str, value: int, deadline: int, v: int, r: int, s: int) -> None:
        if self.block_timestamp > deadline:
            raise ERC2612ExpiredSignature(deadline)

        struct_hash = keccak(encode(
            ["bytes32", "address", "address", "uint256", "uint256", "uint256"],
            [self.PERMIT_TYPEHASH, owner, spender, value, self._use_nonce(owner), deadline],
        ))
        signer = recover(self._hash_typed_data_v4(struct_hash), v, r, s)
        if signer != owner:
            raise ERC2612InvalidSigner(signer, owner)

        self._approve(owner, spender, value)

    def DOMAIN_SEPARATOR(self) -> bytes:
        return self._domain_separator_v4()


# ============================================================================
# DEPLOYABLE TOKEN
# ============================================================================

class ReferenceERC20(ERC20Permit, Ownable):
    """Permit token owned by its deployer, who receives the initial supply."""

    def __init__(self, chain, address, name: str, symbol: str, initial_supply: int):
        ERC20Permit.__init__(self, chain, address, name, symbol)
        Ownable.__init__(self, chain, address, self._msg_sender())
        self._mint(self._msg_sender(), initial_supply)

    def mint(self, to: str, amount: int) -> None:
        self._check_owner()
        self._mint(to, amount)

    def burn(self, amount: int) -> None:
        self._burn(self._msg_sender(), amount)
