"""
ledger.py - Reference State Machine for Permit-Enabled Token Ledgers

TokenLedger is the executable statement of the behavior every candidate
implementation must reproduce. The scenario driver runs it in lockstep with
each candidate and treats its outcomes as the expected ones.

Key responsibilities:
    - Implements the TokenView protocol for read-only access
    - Applies every operation atomically: validate first, then mutate and emit
    - Maintains balances, allowances, nonces and total supply
    - Verifies permits by rebuilding the typed-data digest and recovering the signer
    - Keeps an append-only event log
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, List, Set, Tuple
import copy

from .core import (
    # Types
    Event, PermitMessage, Signature,
    transfer_event, approval_event,
    # Constants
    UINT256_MAX, ZERO_ADDRESS, DECIMALS,
    # Exceptions
    LedgerError, InsufficientBalance, InsufficientAllowance, Unauthorized,
    SupplyOverflow, Expired, InvalidSignature, ZeroAddressRecipient,
    # Helpers
    check_uint256, is_zero_address, normalize_address,
)
from . import typed_data


class TokenLedger:
    """
    Permit-enabled fungible token ledger with full validation and event log.

    Design Principles:
        - Always validates: every operation checks its preconditions before any
          state changes, so a failed operation leaves no trace.
        - Always logs: every successful mutation appends its events to event_log.

    Thread Safety:
        Not thread-safe. Each scenario run owns its own TokenLedger.

    Example:
        ledger = TokenLedger("abc", "ABC", address=token, owner=alice,
                             chain_id=31337, initial_supply=10**24)
        ledger.transfer(alice, bob, 10**18)
        assert ledger.balance_of(bob) == 10**18
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        address: str,
        owner: str,
        chain_id: int,
        initial_supply: int = 0,
        version: str = "1",
        initial_time: int = 0,
        unlimited_allowance: bool = True,
        verbose: bool = False,
    ):
        """
        Create a ledger and credit the initial supply to the owner.

        Args:
            name: Token name
            symbol: Token symbol
            address: The ledger's own address (bound into the domain separator)
            owner: The only account allowed to mint
            chain_id: Chain identifier (bound into the domain separator)
            initial_supply: Amount credited to owner at construction
            version: Version tag bound into the domain separator
            initial_time: Starting block timestamp
            unlimited_allowance: Treat an allowance of UINT256_MAX as never
                                 decreasing (default: True)
            verbose: Print rejected operations (default: False)
        """
        self.name = name
        self.symbol = symbol
        self.version = version
        self.decimals = DECIMALS
        self.address = normalize_address(address)
        self.owner = normalize_address(owner)
        self.chain_id = check_uint256(chain_id, "chain_id")
        self.unlimited_allowance = unlimited_allowance
        self.verbose = verbose
        self._current_time = check_uint256(initial_time, "initial_time")

        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.nonce_of: Dict[str, int] = defaultdict(int)
        self.supply: int = 0
        self.event_log: List[Event] = []

        # Fixed for the ledger's lifetime
        self._domain_separator = typed_data.domain_separator(
            name, version, self.chain_id, self.address
        )

        if initial_supply:
            self.mint(self.owner, self.owner, initial_supply)

    # ========================================================================
    # TokenView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self._current_time

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        key = (normalize_address(owner), normalize_address(spender))
        return self.allowances.get(key, 0)

    def total_supply(self) -> int:
        return self.supply

    def nonces(self, owner: str) -> int:
        return self.nonce_of.get(normalize_address(owner), 0)

    def domain_separator(self) -> bytes:
        return self._domain_separator

    def list_accounts(self) -> Set[str]:
        """Every account that has ever held a balance entry."""
        return set(self.balances)

    def verify_supply(self) -> Dict[str, Any]:
        """
        Check the conservation invariant sum(balances) == totalSupply.

        Returns:
            Dict with keys:
            - 'valid': bool - True if the invariant holds
            - 'total_supply': int - Recorded total supply
            - 'sum_of_balances': int - Sum over every account
            - 'difference': int - sum_of_balances - total_supply
        """
        summed = sum(self.balances[a] for a in sorted(self.balances))
        return {
            'valid': summed == self.supply,
            'total_supply': self.supply,
            'sum_of_balances': summed,
            'difference': summed - self.supply,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Move the block timestamp forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        """
        Move amount from caller to `to`.

        Raises:
            ZeroAddressRecipient: If to is the zero address
            InsufficientBalance: If caller holds less than amount
        """
        caller, to = normalize_address(caller), normalize_address(to)
        check_uint256(amount)
        return self._guarded("transfer", lambda: self._move(caller, to, amount))

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        """Overwrite caller's allowance for spender (last write wins)."""
        caller, spender = normalize_address(caller), normalize_address(spender)
        check_uint256(amount)
        self._set_allowance(caller, spender, amount)
        return True

    def transfer_from(self, caller: str, sender: str, to: str, amount: int) -> bool:
        """
        Move amount from sender to `to`, spending caller's allowance.

        Checks run in order: allowance, recipient, balance.

        Raises:
            InsufficientAllowance: If allowance[sender][caller] < amount
            ZeroAddressRecipient: If to is the zero address
            InsufficientBalance: If sender holds less than amount
        """
        caller, sender, to = (normalize_address(a) for a in (caller, sender, to))
        check_uint256(amount)

        def apply() -> bool:
            allowed = self.allowances.get((sender, caller), 0)
            if allowed < amount:
                raise InsufficientAllowance(
                    f"allowance {allowed} of {caller} over {sender} < {amount}"
                )
            self._check_move(sender, to, amount)
            if not (self.unlimited_allowance and allowed == UINT256_MAX):
                self.allowances[(sender, caller)] = allowed - amount
            return self._move(sender, to, amount)

        return self._guarded("transferFrom", apply)

    def permit(
        self,
        caller: str,
        owner: str,
        spender: str,
        value: int,
        deadline: int,
        v: int,
        r: int,
        s: int,
    ) -> None:
        """
        Set allowance[owner][spender] = value on the strength of owner's signature.

        The signature must cover the permit struct with owner's current nonce;
        success consumes that nonce, so the same signature never works twice.
        caller is irrelevant to authorization (anyone may relay a permit).

        Raises:
            Expired: If current_time > deadline
            InvalidSignature: If the signature does not recover to owner
        """
        owner, spender = normalize_address(owner), normalize_address(spender)
        check_uint256(value, "value")
        check_uint256(deadline, "deadline")

        def apply() -> None:
            if self._current_time > deadline:
                raise Expired(f"deadline {deadline} < now {self._current_time}")
            message = PermitMessage(owner, spender, value, self.nonces(owner), deadline)
            digest = typed_data.permit_digest(message, self._domain_separator)
            signer = typed_data.recover_signer(digest, Signature(v, r, s))
            if signer != owner:
                raise InvalidSignature(f"recovered {signer}, expected {owner}")
            self.nonce_of[owner] += 1
            self._set_allowance(owner, spender, value)

        return self._guarded("permit", apply)

    def mint(self, caller: str, to: str, amount: int) -> None:
        """
        Create amount new tokens for `to`.

        Raises:
            Unauthorized: If caller is not the owner
            SupplyOverflow: If total supply would exceed UINT256_MAX
            ZeroAddressRecipient: If to is the zero address
        """
        caller, to = normalize_address(caller), normalize_address(to)
        check_uint256(amount)

        def apply() -> None:
            if caller != self.owner:
                raise Unauthorized(f"{caller} is not the owner")
            if self.supply + amount > UINT256_MAX:
                raise SupplyOverflow(f"{self.supply} + {amount} exceeds uint256")
            if is_zero_address(to):
                raise ZeroAddressRecipient("mint to the zero address")
            self.supply += amount
            self.balances[to] += amount
            self.event_log.append(transfer_event(self.address, ZERO_ADDRESS, to, amount))

        return self._guarded("mint", apply)

    def burn(self, caller: str, amount: int) -> None:
        """
        Destroy amount of caller's tokens.

        Raises:
            InsufficientBalance: If caller holds less than amount
        """
        caller = normalize_address(caller)
        check_uint256(amount)

        def apply() -> None:
            held = self.balances.get(caller, 0)
            if held < amount:
                raise InsufficientBalance(f"{caller} holds {held} < {amount}")
            self.balances[caller] = held - amount
            self.supply -= amount
            self.event_log.append(transfer_event(self.address, caller, ZERO_ADDRESS, amount))

        return self._guarded("burn", apply)

    # ========================================================================
    # INTERNAL
    # ========================================================================

    def _guarded(self, operation: str, apply):
        # Every check inside apply runs before its first mutation.
        try:
            return apply()
        except LedgerError as e:
            if self.verbose:
                print(f"✗ REJECTED {operation}: {e.kind.value}: {e}")
            raise

    def _check_move(self, sender: str, to: str, amount: int) -> None:
        if is_zero_address(to):
            raise ZeroAddressRecipient("transfer to the zero address")
        held = self.balances.get(sender, 0)
        if held < amount:
            raise InsufficientBalance(f"{sender} holds {held} < {amount}")

    def _move(self, sender: str, to: str, amount: int) -> bool:
        self._check_move(sender, to, amount)
        self.balances[sender] -= amount
        self.balances[to] += amount
        self.event_log.append(transfer_event(self.address, sender, to, amount))
        return True

    def _set_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(owner, spender)] = amount
        self.event_log.append(approval_event(self.address, owner, spender, amount))

    def clone(self) -> TokenLedger:
        """
        Create a fully independent copy of this ledger.

        Modifications to the clone never affect the original, and vice versa.
        """
        return copy.deepcopy(self)
