"""
Core types and pure helpers for the token conformance harness.

This module provides the foundational data structures shared by every layer:
1. Constants: 256-bit bounds, the zero address, token decimals
2. Enums: ErrorKind, the implementation-independent failure taxonomy
3. Exceptions: TokenError and the per-kind ledger errors
4. Immutable data structures: Event, CallOutcome, PermitMessage, Signature
5. Protocols: TokenView for read-only ledger access
6. Address and amount helpers

Nothing in this module mutates state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Tuple, runtime_checkable

from eth_utils import is_address, to_checksum_address


# ============================================================================
# CONSTANTS
# ============================================================================

UINT256_MAX = 2**256 - 1

ZERO_ADDRESS = "0x" + "0" * 40

# Every candidate exposes 18 decimals.
DECIMALS = 18

# One whole token in base units.
ONE_TOKEN = 10**DECIMALS

# Event names
TRANSFER = "Transfer"
APPROVAL = "Approval"


# ============================================================================
# ENUMS
# ============================================================================

class ErrorKind(Enum):
    """
    Implementation-independent classification of a failed operation.

    Values are the names used in reports and in CallOutcome.reverted_with.
    """
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    INSUFFICIENT_ALLOWANCE = "InsufficientAllowance"
    UNAUTHORIZED = "Unauthorized"
    SUPPLY_OVERFLOW = "SupplyOverflow"
    EXPIRED = "Expired"
    INVALID_SIGNATURE = "InvalidSignature"
    ZERO_ADDRESS_RECIPIENT = "ZeroAddressRecipient"
    UNKNOWN_NETWORK = "UnknownNetwork"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['ErrorKind']:
        """Return the kind named by value, or None for opaque/unknown reasons."""
        for kind in cls:
            if kind.value == value:
                return kind
        return None


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TokenError(Exception):
    """Base exception for every classified failure."""
    kind: ErrorKind = None


class LedgerError(TokenError):
    """Base exception for failed ledger operations."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when an account holds less than the amount it tries to move or burn."""
    kind = ErrorKind.INSUFFICIENT_BALANCE


class InsufficientAllowance(LedgerError):
    """Raised when a spender's allowance is below the amount of a delegated transfer."""
    kind = ErrorKind.INSUFFICIENT_ALLOWANCE


class Unauthorized(LedgerError):
    """Raised when someone other than the ledger owner mints."""
    kind = ErrorKind.UNAUTHORIZED


class SupplyOverflow(LedgerError):
    """Raised when a mint would push total supply past the 256-bit maximum."""
    kind = ErrorKind.SUPPLY_OVERFLOW


class Expired(LedgerError):
    """Raised when a permit is submitted after its deadline."""
    kind = ErrorKind.EXPIRED


class InvalidSignature(LedgerError):
    """Raised when a permit signature does not recover to the permit owner."""
    kind = ErrorKind.INVALID_SIGNATURE


class ZeroAddressRecipient(LedgerError):
    """Raised when tokens would be credited to the zero address."""
    kind = ErrorKind.ZERO_ADDRESS_RECIPIENT


class UnknownNetwork(TokenError):
    """Raised when a deployment target has no known address book."""
    kind = ErrorKind.UNKNOWN_NETWORK


class ConformanceFailure(Exception):
    """
    Raised when a candidate's observation diverges without an allow-list entry.

    Attributes:
        step: Scenario step identifier
        candidate: Candidate name
        expected: The observation the candidate was compared against
        observed: The candidate's own observation
    """

    def __init__(self, step: str, candidate: str, expected: Any, observed: Any, reason: str = ""):
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"step {step!r}, candidate {candidate!r}{detail}: "
            f"expected {expected!r}, observed {observed!r}"
        )
        self.step = step
        self.candidate = candidate
        self.expected = expected
        self.observed = observed
        self.reason = reason


# ============================================================================
# ADDRESS AND AMOUNT HELPERS
# ============================================================================

def normalize_address(address: str) -> str:
    """
    Return the EIP-55 checksummed form of an address.

    Raises:
        ValueError: If address is not a 20-byte hex address
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Not a valid address: {address!r}")
    return to_checksum_address(address)


def is_zero_address(address: str) -> bool:
    return int(address, 16) == 0


def check_uint256(value: int, label: str = "amount") -> int:
    """
    Validate that value fits an unsigned 256-bit word.

    Raises:
        ValueError: If value is not an int in [0, UINT256_MAX]
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"{label} out of uint256 range: {value}")
    return value


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Event:
    """
    A decoded event emitted by a ledger.

    Attributes:
        name: Event name ("Transfer" or "Approval").
        emitter: Checksummed address of the emitting ledger.
        fields: Ordered (field_name, value) pairs as declared by the event.

    Two events are identical when name, emitter and every field match.
    """
    name: str
    emitter: str
    fields: Tuple[Tuple[str, Any], ...]

    def get(self, field_name: str) -> Any:
        for key, value in self.fields:
            if key == field_name:
                return value
        raise KeyError(field_name)

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.fields)
        return f"{self.name}({args})@{self.emitter}"


def transfer_event(emitter: str, sender: str, recipient: str, value: int) -> Event:
    return Event(TRANSFER, emitter, (("from", sender), ("to", recipient), ("value", value)))


def approval_event(emitter: str, owner: str, spender: str, value: int) -> Event:
    return Event(APPROVAL, emitter, (("owner", owner), ("spender", spender), ("value", value)))


@dataclass(frozen=True, slots=True)
class CallOutcome:
    """
    Uniform result of one operation against any candidate.

    Attributes:
        success: True if the operation applied.
        return_value: Decoded return value (None for failed calls).
        events: Events emitted by the call, in emission order (empty on failure).
        reverted_with: ErrorKind name for classified failures, otherwise an
                       opaque description of the revert. None on success.
    """
    success: bool
    return_value: Any = None
    events: Tuple[Event, ...] = ()
    reverted_with: Optional[str] = None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return ErrorKind.parse(self.reverted_with)

    @classmethod
    def ok(cls, return_value: Any = None, events=()) -> 'CallOutcome':
        return cls(True, return_value, tuple(events), None)

    @classmethod
    def failed(cls, reverted_with: str) -> 'CallOutcome':
        return cls(False, None, (), reverted_with)

    def __repr__(self) -> str:
        if self.success:
            return f"CallOutcome(ok, return={self.return_value!r}, events={list(self.events)})"
        return f"CallOutcome(reverted: {self.reverted_with})"


@dataclass(frozen=True, slots=True)
class PermitMessage:
    """
    The ERC-2612 Permit struct, in its typed-data field order.

    Ephemeral: valid for exactly one successful permit call, because that call
    increments the owner's nonce.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def __post_init__(self):
        object.__setattr__(self, 'owner', normalize_address(self.owner))
        object.__setattr__(self, 'spender', normalize_address(self.spender))
        check_uint256(self.value, "value")
        check_uint256(self.nonce, "nonce")
        check_uint256(self.deadline, "deadline")


@dataclass(frozen=True, slots=True)
class Signature:
    """
    Recoverable secp256k1 signature.

    v is 27 or 28 (recovery id + 27); r and s are 256-bit integers.
    """
    v: int
    r: int
    s: int

    def to_bytes(self) -> bytes:
        """65-byte r || s || v encoding."""
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.v, self.r, self.s)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class TokenView(Protocol):
    """
    Read-only interface to token ledger state.

    Functions accepting a TokenView declare they will not mutate the ledger.
    """

    @property
    def current_time(self) -> int:
        """Return the ledger's current block timestamp."""
        ...

    def balance_of(self, account: str) -> int:
        """Return the balance of an account (0 for unseen accounts)."""
        ...

    def allowance(self, owner: str, spender: str) -> int:
        """Return what spender may still move out of owner's balance."""
        ...

    def total_supply(self) -> int:
        ...

    def nonces(self, owner: str) -> int:
        """Return the next permit nonce for owner."""
        ...
