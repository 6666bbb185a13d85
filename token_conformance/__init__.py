"""
token_conformance - Differential Conformance Oracle for Permit-Enabled Tokens

Runs several independently built token implementations through one fixed
scenario next to an executable model, and checks that they all produce the
same state transitions and events.

Usage:
    from token_conformance import ScenarioConfig, ScenarioDriver

    driver = ScenarioDriver(ScenarioConfig(), verbose=True)
    runs = driver.run_all()
    for run in runs.values():
        run.raise_for_failures()

    report = driver.equivalence(runs)
    report.raise_for_failures()

Signing a permit by hand:
    from token_conformance import PermitMessage, typed_data

    separator = typed_data.domain_separator("abc", "1", 31337, token_address)
    message = PermitMessage(owner, spender, 10**18, nonce=0, deadline=deadline)
    signature = typed_data.sign_permit(message, separator, owner_key)
"""

# Core types
from .core import (
    ErrorKind,
    Event,
    CallOutcome,
    PermitMessage,
    Signature,
    TokenView,
    TokenError,
    LedgerError,
    InsufficientBalance,
    InsufficientAllowance,
    Unauthorized,
    SupplyOverflow,
    Expired,
    InvalidSignature,
    ZeroAddressRecipient,
    UnknownNetwork,
    ConformanceFailure,
    UINT256_MAX,
    ZERO_ADDRESS,
    DECIMALS,
    ONE_TOKEN,
    transfer_event,
    approval_event,
    normalize_address,
)

# Typed-data hashing and signing
from . import typed_data

# Model
from .ledger import TokenLedger

# Execution environment
from .chain import Chain, Contract, Receipt, Revert, Panic, CustomError

# Adapters
from .adapters import (
    CandidateAdapter,
    ModelAdapter,
    ReferenceAdapter,
    MinimalAdapter,
    LowLevelAdapter,
    Deployment,
    CANDIDATES,
    OPERATIONS,
    register_candidate,
    get_candidate,
    list_candidates,
)

# Scenario
from .scenario import (
    ScenarioConfig,
    ScenarioDriver,
    ScenarioRun,
    Step,
    Observation,
    StepViolation,
    build_scenario,
    compare_outcomes,
)

# Equivalence
from .equivalence import (
    Divergence,
    DivergenceAllowList,
    EquivalenceReport,
    Mismatch,
    check_equivalence,
    same_observation,
)

# Networks
from .networks import Addresses, get_addresses, chain_id_for, known_networks

__version__ = "0.1.0"

__all__ = [
    # Core
    'ErrorKind', 'Event', 'CallOutcome', 'PermitMessage', 'Signature', 'TokenView',
    'TokenError', 'LedgerError', 'InsufficientBalance', 'InsufficientAllowance',
    'Unauthorized', 'SupplyOverflow', 'Expired', 'InvalidSignature',
    'ZeroAddressRecipient', 'UnknownNetwork', 'ConformanceFailure',
    'UINT256_MAX', 'ZERO_ADDRESS', 'DECIMALS', 'ONE_TOKEN',
    'transfer_event', 'approval_event', 'normalize_address',
    # Signing
    'typed_data',
    # Model
    'TokenLedger',
    # Chain
    'Chain', 'Contract', 'Receipt', 'Revert', 'Panic', 'CustomError',
    # Adapters
    'CandidateAdapter', 'ModelAdapter', 'ReferenceAdapter', 'MinimalAdapter',
    'LowLevelAdapter', 'Deployment', 'CANDIDATES', 'OPERATIONS',
    'register_candidate', 'get_candidate', 'list_candidates',
    # Scenario
    'ScenarioConfig', 'ScenarioDriver', 'ScenarioRun', 'Step', 'Observation',
    'StepViolation', 'build_scenario', 'compare_outcomes',
    # Equivalence
    'Divergence', 'DivergenceAllowList', 'EquivalenceReport', 'Mismatch',
    'check_equivalence', 'same_observation',
    # Networks
    'Addresses', 'get_addresses', 'chain_id_for', 'known_networks',
]
