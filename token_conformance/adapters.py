"""
adapters.py - Uniform Operation Surface Over Every Candidate

Each candidate is wrapped behind CandidateAdapter, which exposes the fourteen
token operations and returns CallOutcome for every one of them. Adapters only
translate: how a candidate is deployed and invoked, how its return data and
logs are decoded, and how its failures map onto ErrorKind. They hold no token
rules of their own.

Usage:
    adapter = get_candidate("minimal")(deployment)
    outcome = adapter.transfer(alice, bob, 10**18)
    if not outcome.success:
        print(outcome.reverted_with)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple, Type

from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address

from .core import (
    CallOutcome, ErrorKind, Event, LedgerError,
    ZERO_ADDRESS, approval_event, normalize_address, transfer_event,
)
from .chain import Chain, Log, Panic, Receipt, Revert, selector, signature_types
from .ledger import TokenLedger
from .candidates.reference import (
    ReferenceERC20, EventLog,
    ERC20InsufficientBalance, ERC20InsufficientAllowance, ERC20InvalidReceiver,
    OwnableUnauthorizedAccount, ERC2612ExpiredSignature, ERC2612InvalidSigner,
    ECDSAInvalidSignature, ECDSAInvalidSignatureS,
)
from .candidates.minimal import MinimalERC20
from .candidates.lowlevel import LowLevelERC20


# Operation names as exposed by every candidate's external interface.
MUTATIONS = ("transfer", "approve", "transferFrom", "permit", "mint", "burn")
READS = (
    "balanceOf", "allowance", "totalSupply", "name", "symbol", "decimals",
    "DOMAIN_SEPARATOR", "nonces",
)
OPERATIONS = MUTATIONS + READS

# External signature of every operation. Argument types drive calldata
# encoding and address normalization.
SIGNATURES: Dict[str, str] = {
    "transfer": "transfer(address,uint256)",
    "approve": "approve(address,uint256)",
    "transferFrom": "transferFrom(address,address,uint256)",
    "permit": "permit(address,address,uint256,uint256,uint8,bytes32,bytes32)",
    "mint": "mint(address,uint256)",
    "burn": "burn(uint256)",
    "balanceOf": "balanceOf(address)",
    "allowance": "allowance(address,address)",
    "totalSupply": "totalSupply()",
    "nonces": "nonces(address)",
    "name": "name()",
    "symbol": "symbol()",
    "decimals": "decimals()",
    "DOMAIN_SEPARATOR": "DOMAIN_SEPARATOR()",
}


@dataclass(frozen=True)
class Deployment:
    """Everything needed to stand up one candidate instance."""
    name: str
    symbol: str
    version: str
    chain_id: int
    address: str
    deployer: str
    initial_supply: int
    start_time: int


# ============================================================================
# ADAPTER BASE
# ============================================================================

class CandidateAdapter(ABC):
    """
    A single deployed candidate behind the common operation set.

    Every operation returns CallOutcome; a candidate failure is never raised.
    Reads are issued from the zero address.
    """

    name: str = ""

    def __init__(self, deployment: Deployment, verbose: bool = False):
        self.deployment = deployment
        self.verbose = verbose

    @abstractmethod
    def call(self, caller: str, operation: str, *args) -> CallOutcome:
        """Invoke operation as caller and translate the result."""

    @abstractmethod
    def advance_time(self, seconds: int) -> None:
        ...

    @property
    def address(self) -> str:
        return self.deployment.address

    def _check_operation(self, operation: str) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")

    def normalize_args(self, operation: str, args: Tuple) -> Tuple:
        """Checksum every address-typed argument of operation."""
        types = signature_types(SIGNATURES[operation])
        return tuple(
            normalize_address(value) if abi_type == "address" else value
            for abi_type, value in zip(types, args)
        ) + tuple(args[len(types):])

    # Mutations

    def transfer(self, caller: str, to: str, amount: int) -> CallOutcome:
        return self.call(caller, "transfer", to, amount)

    def approve(self, caller: str, spender: str, amount: int) -> CallOutcome:
        return self.call(caller, "approve", spender, amount)

    def transfer_from(self, caller: str, sender: str, to: str, amount: int) -> CallOutcome:
        return self.call(caller, "transferFrom", sender, to, amount)

    def permit(self, caller: str, owner: str, spender: str, value: int, deadline: int,
               v: int, r: int, s: int) -> CallOutcome:
        return self.call(caller, "permit", owner, spender, value, deadline, v, r, s)

    def mint(self, caller: str, to: str, amount: int) -> CallOutcome:
        return self.call(caller, "mint", to, amount)

    def burn(self, caller: str, amount: int) -> CallOutcome:
        return self.call(caller, "burn", amount)

    # Reads

    def balance_of(self, account: str) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "balanceOf", account)

    def allowance(self, owner: str, spender: str) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "allowance", owner, spender)

    def total_supply(self) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "totalSupply")

    def token_name(self) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "name")

    def symbol(self) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "symbol")

    def decimals(self) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "decimals")

    def domain_separator(self) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "DOMAIN_SEPARATOR")

    def nonces(self, owner: str) -> CallOutcome:
        return self.call(ZERO_ADDRESS, "nonces", owner)


# ============================================================================
# MODEL
# ============================================================================

class ModelAdapter(CandidateAdapter):
    """The executable model, presented like any other candidate."""

    name = "model"

    _METHODS = {
        "transfer": "transfer",
        "approve": "approve",
        "transferFrom": "transfer_from",
        "permit": "permit",
        "mint": "mint",
        "burn": "burn",
        "balanceOf": "balance_of",
        "allowance": "allowance",
        "totalSupply": "total_supply",
        "nonces": "nonces",
        "DOMAIN_SEPARATOR": "domain_separator",
    }

    def __init__(self, deployment: Deployment, verbose: bool = False,
                 unlimited_allowance: bool = True):
        super().__init__(deployment, verbose)
        self.ledger = TokenLedger(
            deployment.name,
            deployment.symbol,
            address=deployment.address,
            owner=deployment.deployer,
            chain_id=deployment.chain_id,
            initial_supply=deployment.initial_supply,
            version=deployment.version,
            initial_time=deployment.start_time,
            unlimited_allowance=unlimited_allowance,
            verbose=verbose,
        )

    def call(self, caller: str, operation: str, *args) -> CallOutcome:
        self._check_operation(operation)
        if operation in ("name", "symbol", "decimals"):
            return CallOutcome.ok(getattr(self.ledger, operation))
        method = getattr(self.ledger, self._METHODS[operation])
        if operation not in MUTATIONS:
            return CallOutcome.ok(method(*args))

        mark = len(self.ledger.event_log)
        try:
            value = method(caller, *args)
        except LedgerError as e:
            return CallOutcome.failed(e.kind.value)
        return CallOutcome.ok(value, self.ledger.event_log[mark:])

    def advance_time(self, seconds: int) -> None:
        self.ledger.advance_time(self.ledger.current_time + seconds)


# ============================================================================
# CHAIN-HOSTED CANDIDATES
# ============================================================================

class ChainAdapter(CandidateAdapter):
    """
    Base for candidates deployed on their own Chain.

    Subclasses name the contract class and provide decode_log and classify.
    """

    contract_class: Callable = None

    def __init__(self, deployment: Deployment, verbose: bool = False):
        super().__init__(deployment, verbose)
        self.chain = Chain(deployment.chain_id, deployment.start_time, verbose=verbose)
        self.contract = self.chain.deploy(
            self.contract_class,
            deployment.address,
            deployment.deployer,
            deployment.name,
            deployment.symbol,
            deployment.initial_supply,
        )

    def call(self, caller: str, operation: str, *args) -> CallOutcome:
        self._check_operation(operation)
        args = self.normalize_args(operation, args)
        if operation not in MUTATIONS:
            try:
                return CallOutcome.ok(self.read(operation, *args))
            except Revert as e:
                return CallOutcome.failed(str(e))

        receipt = self.transact(normalize_address(caller), operation, *args)
        if not receipt.status:
            return CallOutcome.failed(self.classify(operation, receipt.error))
        return CallOutcome.ok(
            self.decode_return(operation, receipt.return_value),
            [self.decode_log(log) for log in receipt.logs],
        )

    def transact(self, caller: str, operation: str, *args) -> Receipt:
        return self.chain.transact(caller, self.address, operation, *args)

    def read(self, operation: str, *args) -> Any:
        return self.chain.call(self.address, operation, *args)

    def decode_return(self, operation: str, value: Any) -> Any:
        return value

    @abstractmethod
    def decode_log(self, log: Log) -> Event:
        ...

    @abstractmethod
    def classify(self, operation: str, error: Revert) -> str:
        """ErrorKind name for error, or an opaque description."""

    def advance_time(self, seconds: int) -> None:
        self.chain.advance_time(seconds)


class ReferenceAdapter(ChainAdapter):
    """Inheritance-based candidate: typed custom errors, named event arguments."""

    name = "reference"
    contract_class = ReferenceERC20

    ERRORS: Dict[type, ErrorKind] = {
        ERC20InsufficientBalance: ErrorKind.INSUFFICIENT_BALANCE,
        ERC20InsufficientAllowance: ErrorKind.INSUFFICIENT_ALLOWANCE,
        ERC20InvalidReceiver: ErrorKind.ZERO_ADDRESS_RECIPIENT,
        OwnableUnauthorizedAccount: ErrorKind.UNAUTHORIZED,
        ERC2612ExpiredSignature: ErrorKind.EXPIRED,
        ERC2612InvalidSigner: ErrorKind.INVALID_SIGNATURE,
        ECDSAInvalidSignature: ErrorKind.INVALID_SIGNATURE,
        ECDSAInvalidSignatureS: ErrorKind.INVALID_SIGNATURE,
    }

    def decode_log(self, log: Log) -> Event:
        entry: EventLog = log.entry
        return Event(entry.event, log.address, tuple(entry.args.items()))

    def classify(self, operation: str, error: Revert) -> str:
        kind = self.ERRORS.get(type(error))
        if kind is None and isinstance(error, Panic) and operation == "mint":
            kind = ErrorKind.SUPPLY_OVERFLOW
        return kind.value if kind else str(error)


class MinimalAdapter(ChainAdapter):
    """Flat candidate: public storage getters, string reasons, positional events."""

    name = "minimal"
    contract_class = MinimalERC20

    REASONS = {
        "UNAUTHORIZED": ErrorKind.UNAUTHORIZED,
        "PERMIT_DEADLINE_EXPIRED": ErrorKind.EXPIRED,
        "INVALID_SIGNER": ErrorKind.INVALID_SIGNATURE,
    }

    # Checked arithmetic panics only identify the failure for some operations;
    # in transferFrom the same panic covers both allowance and balance.
    PANICS = {
        "transfer": ErrorKind.INSUFFICIENT_BALANCE,
        "burn": ErrorKind.INSUFFICIENT_BALANCE,
        "mint": ErrorKind.SUPPLY_OVERFLOW,
    }

    def read(self, operation: str, *args) -> Any:
        if operation == "DOMAIN_SEPARATOR":
            return self.chain.call(self.address, operation)
        return self.chain.read(self.address, operation, *args)

    def decode_log(self, log: Log) -> Event:
        name, a, b, amount = log.entry
        if name == "Transfer":
            return transfer_event(log.address, a, b, amount)
        return approval_event(log.address, a, b, amount)

    def classify(self, operation: str, error: Revert) -> str:
        if isinstance(error, Panic):
            kind = self.PANICS.get(operation)
        else:
            kind = self.REASONS.get(error.reason)
        return kind.value if kind else str(error)


class LowLevelAdapter(ChainAdapter):
    """Hand-assembled candidate: ABI calldata in, raw words and topics out."""

    name = "lowlevel"
    contract_class = LowLevelERC20

    OUTPUTS: Dict[str, List[str]] = {
        "transfer": ["bool"],
        "approve": ["bool"],
        "transferFrom": ["bool"],
        "balanceOf": ["uint256"],
        "allowance": ["uint256"],
        "totalSupply": ["uint256"],
        "nonces": ["uint256"],
        "name": ["string"],
        "symbol": ["string"],
        "decimals": ["uint8"],
        "DOMAIN_SEPARATOR": ["bytes32"],
    }

    TOPICS = {
        keccak(text="Transfer(address,address,uint256)"): ("Transfer", transfer_event),
        keccak(text="Approval(address,address,uint256)"): ("Approval", approval_event),
    }

    ERRORS = {
        selector("InsufficientBalance()"): ErrorKind.INSUFFICIENT_BALANCE,
        selector("InsufficientAllowance()"): ErrorKind.INSUFFICIENT_ALLOWANCE,
        selector("Unauthorized()"): ErrorKind.UNAUTHORIZED,
        selector("Overflow()"): ErrorKind.SUPPLY_OVERFLOW,
        selector("Expired()"): ErrorKind.EXPIRED,
        selector("InvalidSignature()"): ErrorKind.INVALID_SIGNATURE,
        selector("ZeroAddress()"): ErrorKind.ZERO_ADDRESS_RECIPIENT,
    }

    def encode_call(self, operation: str, args: Tuple) -> bytes:
        signature = SIGNATURES[operation]
        types = signature_types(signature)
        values = [
            value.to_bytes(32, "big") if abi_type == "bytes32" and isinstance(value, int) else value
            for abi_type, value in zip(types, args)
        ]
        return selector(signature) + encode(types, values)

    def transact(self, caller: str, operation: str, *args) -> Receipt:
        return self.chain.transact(caller, self.address, "fallback", self.encode_call(operation, args))

    def read(self, operation: str, *args) -> Any:
        data = self.chain.call(self.address, "fallback", self.encode_call(operation, args))
        return self.decode_return(operation, data)

    def decode_return(self, operation: str, value: bytes) -> Any:
        outputs = self.OUTPUTS.get(operation)
        if not outputs:
            return None
        return decode(outputs, value)[0]

    def decode_log(self, log: Log) -> Event:
        topics, data = log.entry
        _, build = self.TOPICS[topics[0]]
        first = to_checksum_address(topics[1][12:])
        second = to_checksum_address(topics[2][12:])
        return build(log.address, first, second, int.from_bytes(data, "big"))

    def classify(self, operation: str, error: Revert) -> str:
        kind = self.ERRORS.get(error.selector)
        return kind.value if kind else str(error)


# ============================================================================
# REGISTRY
# ============================================================================

CANDIDATES: Dict[str, Type[CandidateAdapter]] = {}


def register_candidate(adapter_class: Type[CandidateAdapter]) -> Type[CandidateAdapter]:
    """
    Make a candidate available to the driver under adapter_class.name.

    Registering a candidate means reviewing divergences.json for it.

    Raises:
        ValueError: If the name is empty or already registered
    """
    name = adapter_class.name
    if not name:
        raise ValueError(f"{adapter_class.__name__} has no candidate name")
    if name in CANDIDATES:
        raise ValueError(f"Candidate {name} already registered")
    CANDIDATES[name] = adapter_class
    return adapter_class


def get_candidate(name: str) -> Type[CandidateAdapter]:
    """
    Raises:
        KeyError: If no candidate is registered under name
    """
    if name not in CANDIDATES:
        raise KeyError(f"Unknown candidate: {name}")
    return CANDIDATES[name]


def list_candidates() -> List[str]:
    """Registered names, in registration order."""
    return list(CANDIDATES)


for _adapter in (ReferenceAdapter, MinimalAdapter, LowLevelAdapter):
    register_candidate(_adapter)
