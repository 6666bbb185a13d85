"""
minimal.py - Minimal Gas-Optimized Token

One flat contract with public storage read through generated getters:
balanceOf, allowance and nonces are mappings, name/symbol/decimals/totalSupply
are plain values. Checks are reduced to what checked arithmetic already gives:

    - no zero-address guards on transfer or mint
    - balance and allowance shortfalls surface as arithmetic panics
    - require() failures revert with short string reasons

Events are emitted positionally as (name, arg0, arg1, arg2).
"""

from __future__ import annotations
from typing import Dict

from eth_abi import encode
from eth_utils import keccak

from ..core import UINT256_MAX, ZERO_ADDRESS, DECIMALS
from ..chain import Contract, Revert, checked_add, checked_sub, ecrecover


def require(condition: bool, reason: str) -> None:
    if not condition:
        raise Revert.with_reason(reason)


class MinimalERC20(Contract):

    PERMIT_TYPEHASH = keccak(
        text="Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
    )

    def __init__(self, chain, address, name: str, symbol: str, initial_supply: int):
        super().__init__(chain, address)
        self.name = name
        self.symbol = symbol
        self.decimals = DECIMALS
        self.totalSupply = 0
        self.balanceOf: Dict[str, int] = {}
        self.allowance: Dict[str, Dict[str, int]] = {}
        self.nonces: Dict[str, int] = {}
        self.owner = self.msg_sender

        self.INITIAL_CHAIN_ID = self.chain_id
        self.INITIAL_DOMAIN_SEPARATOR = self.compute_domain_separator()

        self._mint(self.msg_sender, initial_supply)

    # ------------------------------------------------------------------
    # ERC20
    # ------------------------------------------------------------------

    def approve(self, spender: str, amount: int) -> bool:
        self.allowance.setdefault(self.msg_sender, {})[spender] = amount
        self.emit(("Approval", self.msg_sender, spender, amount))
        return True

    def transfer(self, to: str, amount: int) -> bool:
        sender = self.msg_sender
        self.balanceOf[sender] = checked_sub(self.balanceOf.get(sender, 0), amount)
        # unchecked: cannot exceed totalSupply
        self.balanceOf[to] = self.balanceOf.get(to, 0) + amount
        self.emit(("Transfer", sender, to, amount))
        return True

    def transferFrom(self, sender: str, to: str, amount: int) -> bool:
        allowed = self.allowance.get(sender, {}).get(self.msg_sender, 0)
        if allowed != UINT256_MAX:
            self.allowance.setdefault(sender, {})[self.msg_sender] = checked_sub(allowed, amount)

        self.balanceOf[sender] = checked_sub(self.balanceOf.get(sender, 0), amount)
        self.balanceOf[to] = self.balanceOf.get(to, 0) + amount
        self.emit(("Transfer", sender, to, amount))
        return True

    # ------------------------------------------------------------------
    # EIP-2612
    # ------------------------------------------------------------------

    def permit(self, owner: str, spender: str, value: int, deadline: int, v: int, r: int, s: int) -> None:
        require(deadline >= self.block_timestamp, "PERMIT_DEADLINE_EXPIRED")

        nonce = self.nonces.get(owner, 0)
        self.nonces[owner] = nonce + 1
        digest = keccak(
            b"\x19\x01"
            + self.DOMAIN_SEPARATOR()
            + keccak(encode(
                ["bytes32", "address", "address", "uint256", "uint256", "uint256"],
                [self.PERMIT_TYPEHASH, owner, spender, value, nonce, deadline],
            ))
        )
        recovered = ecrecover(digest, v, r, s)
        require(recovered != ZERO_ADDRESS and recovered == owner, "INVALID_SIGNER")

        self.allowance.setdefault(recovered, {})[spender] = value
        self.emit(("Approval", owner, spender, value))

    def DOMAIN_SEPARATOR(self) -> bytes:
        if self.chain_id == self.INITIAL_CHAIN_ID:
            return self.INITIAL_DOMAIN_SEPARATOR
        return self.compute_domain_separator()

    def compute_domain_separator(self) -> bytes:
        return keccak(encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                keccak(text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"),
                keccak(text=self.name),
                keccak(text="1"),
                self.chain_id,
                self.address,
            ],
        ))

    # ------------------------------------------------------------------
    # Mint / burn
    # ------------------------------------------------------------------

    def mint(self, to: str, amount: int) -> None:
        require(self.msg_sender == self.owner, "UNAUTHORIZED")
        self._mint(to, amount)

    def burn(self, amount: int) -> None:
        self._burn(self.msg_sender, amount)

    def _mint(self, to: str, amount: int) -> None:
        self.totalSupply = checked_add(self.totalSupply, amount)
        self.balanceOf[to] = self.balanceOf.get(to, 0) + amount
        self.emit(("Transfer", ZERO_ADDRESS, to, amount))

    def _burn(self, sender: str, amount: int) -> None:
        self.balanceOf[sender] = checked_sub(self.balanceOf.get(sender, 0), amount)
        self.totalSupply -= amount
        self.emit(("Transfer", sender, ZERO_ADDRESS, amount))
