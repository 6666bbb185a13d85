"""
chain.py - Deterministic In-Process Execution Environment

Candidates are written as contracts against this environment. It supplies the
call context (sender, block timestamp, chain id), collects emitted logs, and
applies each transaction atomically: if contract code raises Revert, every
storage change and log of that transaction is discarded.

Only Revert (and its subclasses) is treated as a contract-level failure.
Any other exception is a bug in the harness or a candidate and propagates.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import copy

from eth_abi import decode, encode
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak

from .core import ZERO_ADDRESS, normalize_address


# ============================================================================
# REVERT DATA
# ============================================================================

def selector(signature: str) -> bytes:
    """First four bytes of keccak(signature), e.g. selector("transfer(address,uint256)")."""
    return keccak(text=signature)[:4]


def signature_types(signature: str) -> List[str]:
    """Parameter types of a flat signature: "f(address,uint256)" -> ["address", "uint256"]."""
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    return [t for t in inner.split(",") if t]


ERROR_SELECTOR = selector("Error(string)")
PANIC_SELECTOR = selector("Panic(uint256)")

# Panic codes
PANIC_ARITHMETIC = 0x11


class Revert(Exception):
    """
    Raised by contract code to abort the current transaction.

    Attributes:
        data: ABI-encoded revert payload (may be empty).
    """

    def __init__(self, data: bytes = b"", message: str = ""):
        super().__init__(message or (data.hex() if data else "revert"))
        self.data = bytes(data)

    @classmethod
    def with_reason(cls, reason: str) -> Revert:
        """Build the revert produced by require(cond, reason)."""
        return cls(ERROR_SELECTOR + encode(["string"], [reason]), reason)

    @property
    def selector(self) -> bytes:
        return self.data[:4]

    @property
    def reason(self) -> Optional[str]:
        """The Error(string) message, or None for any other payload."""
        if self.selector != ERROR_SELECTOR:
            return None
        return decode(["string"], self.data[4:])[0]


class Panic(Revert):
    """Compiler-inserted failure such as checked-arithmetic overflow (code 0x11)."""

    def __init__(self, code: int):
        super().__init__(PANIC_SELECTOR + encode(["uint256"], [code]), f"Panic(0x{code:02x})")
        self.code = code


class CustomError(Revert):
    """
    Base for typed custom errors.

    Subclasses set SIGNATURE, e.g. "ERC20InsufficientBalance(address,uint256,uint256)";
    positional constructor arguments are ABI-encoded after the selector.
    """
    SIGNATURE = ""

    def __init__(self, *args):
        types = signature_types(self.SIGNATURE)
        data = selector(self.SIGNATURE) + encode(types, list(args))
        name = self.SIGNATURE.split("(")[0]
        super().__init__(data, f"{name}{args!r}")
        self.error_args = args


def checked_add(a: int, b: int) -> int:
    """Solidity 0.8 checked addition on uint256."""
    result = a + b
    if result >= 2**256:
        raise Panic(PANIC_ARITHMETIC)
    return result


def checked_sub(a: int, b: int) -> int:
    """Solidity 0.8 checked subtraction on uint256."""
    if b > a:
        raise Panic(PANIC_ARITHMETIC)
    return a - b


def ecrecover(digest: bytes, v: int, r: int, s: int) -> str:
    """
    Behave like the ecrecover precompile.

    Returns the signer's checksummed address, or the zero address for any
    input that does not recover.
    """
    if v not in (27, 28) or not (0 < r < 2**256 and 0 < s < 2**256):
        return ZERO_ADDRESS
    try:
        public_key = keys.Signature(vrs=(v - 27, r, s)).recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError):
        return ZERO_ADDRESS
    return public_key.to_checksum_address()


# ============================================================================
# RECEIPTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Log:
    """
    An entry emitted by a contract.

    entry keeps whatever shape the contract emitted; decoding it is the
    adapter's job.
    """
    address: str
    entry: Any


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Result of one transaction.

    Attributes:
        status: True if the call completed, False if it reverted.
        return_value: What the contract method returned (None on revert).
        logs: Logs emitted, in order (empty on revert).
        error: The Revert raised, if any.
        tx_index: Monotonic transaction number on this chain.
        timestamp: Block timestamp the transaction ran at.
    """
    status: bool
    return_value: Any
    logs: Tuple[Log, ...]
    error: Optional[Revert]
    tx_index: int
    timestamp: int


# ============================================================================
# CONTRACT BASE
# ============================================================================

class Contract:
    """
    Base class for contracts hosted on a Chain.

    All attributes except `chain` are treated as contract storage and are
    snapshotted before each transaction.
    """

    def __init__(self, chain: Chain, address: str):
        self.chain = chain
        self.address = address

    @property
    def msg_sender(self) -> str:
        return self.chain.msg_sender

    @property
    def block_timestamp(self) -> int:
        return self.chain.timestamp

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    def emit(self, entry: Any) -> None:
        self.chain._record_log(Log(self.address, entry))

    def _snapshot(self) -> Dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in vars(self).items() if k != "chain"}

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for key in [k for k in vars(self) if k != "chain"]:
            delattr(self, key)
        for key, value in snapshot.items():
            setattr(self, key, value)


# ============================================================================
# CHAIN
# ============================================================================

class Chain:
    """
    Single-threaded, synchronous host for contracts.

    One transaction runs at a time; nothing is interleaved, so every log in a
    receipt belongs to exactly that transaction.

    Example:
        chain = Chain(chain_id=31337, timestamp=1_700_000_000)
        token = chain.deploy(MinimalERC20, address, deployer, "abc", "ABC", 10**24)
        receipt = chain.transact(deployer, address, "transfer", bob, 10**18)
    """

    def __init__(self, chain_id: int = 31337, timestamp: int = 0, verbose: bool = False):
        self.chain_id = chain_id
        self.timestamp = timestamp
        self.verbose = verbose
        self.contracts: Dict[str, Contract] = {}
        self.receipts: List[Receipt] = []
        self._senders: List[str] = []
        self._logs: List[Log] = []

    @property
    def msg_sender(self) -> str:
        if not self._senders:
            raise RuntimeError("msg_sender read outside a call")
        return self._senders[-1]

    def advance_time(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards by {seconds}s")
        self.timestamp += seconds

    def deploy(
        self,
        factory: Callable[..., Contract],
        address: str,
        deployer: str,
        *args,
        **kwargs,
    ) -> Contract:
        """
        Construct a contract at a fixed address with deployer as msg.sender.

        A constructor that reverts propagates its Revert.

        Raises:
            ValueError: If a contract already lives at address
        """
        address = normalize_address(address)
        if address in self.contracts:
            raise ValueError(f"Contract already deployed at {address}")
        self._senders.append(normalize_address(deployer))
        self._logs = []
        try:
            contract = factory(self, address, *args, **kwargs)
        finally:
            self._senders.pop()
            self._logs = []
        self.contracts[address] = contract
        if self.verbose:
            print(f"📝 Deployed: {type(contract).__name__} at {address}")
        return contract

    def transact(self, sender: str, address: str, method: str, *args) -> Receipt:
        """
        Run contract.method(*args) as sender, atomically.

        Returns:
            Receipt with status False (and no state change) if the call reverted
        """
        contract = self._contract(address)
        snapshot = contract._snapshot()
        self._senders.append(normalize_address(sender))
        self._logs = []
        tx_index = len(self.receipts)
        try:
            value = getattr(contract, method)(*args)
        except Revert as e:
            contract._restore(snapshot)
            receipt = Receipt(False, None, (), e, tx_index, self.timestamp)
        else:
            receipt = Receipt(True, value, tuple(self._logs), None, tx_index, self.timestamp)
        finally:
            self._senders.pop()
            self._logs = []
        self.receipts.append(receipt)
        if self.verbose:
            if receipt.status:
                print(f"✓ tx {tx_index} {method} ({len(receipt.logs)} logs)")
            else:
                print(f"✗ tx {tx_index} {method} reverted: {receipt.error}")
        return receipt

    def call(self, address: str, method: str, *args, sender: str = ZERO_ADDRESS) -> Any:
        """
        Read-only call. State and logs are discarded whatever happens.

        Raises:
            Revert: If the read itself reverts
        """
        contract = self._contract(address)
        snapshot = contract._snapshot()
        self._senders.append(normalize_address(sender))
        self._logs = []
        try:
            return getattr(contract, method)(*args)
        finally:
            contract._restore(snapshot)
            self._senders.pop()
            self._logs = []

    def read(self, address: str, attribute: str, *keys) -> Any:
        """
        Generated getter for public storage.

        read(token, "totalSupply") returns the value; read(token, "allowance",
        owner, spender) indexes nested mappings, with unset entries reading as 0.
        """
        value = getattr(self._contract(address), attribute)
        for depth, key in enumerate(keys):
            value = value.get(key, 0 if depth == len(keys) - 1 else {})
        return value

    def _contract(self, address: str) -> Contract:
        address = normalize_address(address)
        if address not in self.contracts:
            raise KeyError(f"No contract at {address}")
        return self.contracts[address]

    def _record_log(self, log: Log) -> None:
        self._logs.append(log)
