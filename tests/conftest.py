"""
conftest.py - Shared pytest fixtures for token conformance tests

Provides common fixtures used across unit and conformance tests:
- The default scenario configuration and its three accounts
- A funded model ledger
- Freshly deployed candidates, one per registered name
- Permit signing helpers
- Hypothesis strategies for generated call sequences
"""

import pytest
from hypothesis import strategies as st

from token_conformance import (
    ScenarioConfig, TokenLedger, ModelAdapter, PermitMessage, Signature,
    ONE_TOKEN, UINT256_MAX, ZERO_ADDRESS, get_candidate, list_candidates, typed_data,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_ledger(config: ScenarioConfig, **overrides) -> TokenLedger:
    """Create a model ledger matching config's deployment."""
    kwargs = dict(
        address=config.ledger_address,
        owner=config.owner,
        chain_id=config.chain_id,
        initial_supply=config.initial_supply,
        version=config.version,
        initial_time=config.start_time,
    )
    kwargs.update(overrides)
    return TokenLedger(config.name, config.symbol, **kwargs)


def sign(config: ScenarioConfig, key: str, owner: str, spender: str, value: int,
         nonce: int, deadline: int) -> Signature:
    return config.sign_permit(key, owner, spender, value, nonce, deadline)


def permit_args(config: ScenarioConfig, owner: str, spender: str, value: int,
                deadline: int, signature: Signature) -> tuple:
    """Positional arguments of permit() after the caller."""
    return (owner, spender, value, deadline) + signature.as_tuple()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def config():
    return ScenarioConfig()


@pytest.fixture
def owner(config):
    return config.owner


@pytest.fixture
def holder(config):
    return config.holder


@pytest.fixture
def spender(config):
    return config.spender


@pytest.fixture
def ledger(config):
    """Model ledger with the full initial supply held by the owner."""
    return make_ledger(config)


@pytest.fixture
def deployment(config):
    return config.deployment()


@pytest.fixture(params=list_candidates())
def candidate(request, deployment):
    """One freshly deployed candidate per registered name."""
    return get_candidate(request.param)(deployment)


@pytest.fixture
def permit_message(config, owner, spender):
    return PermitMessage(owner, spender, ONE_TOKEN, 0, config.deadline)


@pytest.fixture
def signed_permit(config, permit_message):
    """(message, signature) signed by the owner's key over nonce 0."""
    signature = typed_data.sign_permit(
        permit_message, config.domain_separator(), config.owner_key
    )
    return permit_message, signature


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================
# Module-level so that @given tests need no function-scoped fixtures.

PROPERTY_CONFIG = ScenarioConfig()
ACCOUNTS = (PROPERTY_CONFIG.owner, PROPERTY_CONFIG.holder, PROPERTY_CONFIG.spender)

MUTATING_CALLS = ("transfer", "approve", "transferFrom", "mint", "burn")


def amounts():
    """Token amounts, boundaries included."""
    return st.one_of(
        st.sampled_from([0, 1, ONE_TOKEN, PROPERTY_CONFIG.initial_supply, UINT256_MAX]),
        st.integers(min_value=0, max_value=10 * ONE_TOKEN),
    )


@st.composite
def token_call(draw, operations=MUTATING_CALLS):
    """
    Generate one (caller, operation, args) mutation.

    Callers, recipients and spenders are drawn from ACCOUNTS only; zero-address
    behavior is covered by the scenario and its allow-list.
    """
    operation = draw(st.sampled_from(operations))
    caller = draw(st.sampled_from(ACCOUNTS))
    first = draw(st.sampled_from(ACCOUNTS))
    second = draw(st.sampled_from(ACCOUNTS))
    amount = draw(amounts())
    args = {
        "transfer": (first, amount),
        "approve": (first, amount),
        "transferFrom": (first, second, amount),
        "mint": (first, amount),
        "burn": (amount,),
    }[operation]
    return caller, operation, args


def token_calls(max_size: int = 12, operations=MUTATING_CALLS):
    return st.lists(token_call(operations), min_size=1, max_size=max_size)


def fresh_model() -> ModelAdapter:
    return ModelAdapter(PROPERTY_CONFIG.deployment())


def fresh_candidate(name: str):
    return get_candidate(name)(PROPERTY_CONFIG.deployment())


def observe_state(adapter) -> dict:
    """Every readable value over ACCOUNTS, as seen through adapter."""
    tracked = ACCOUNTS + (ZERO_ADDRESS,)
    return {
        'supply': adapter.total_supply().return_value,
        'balances': {a: adapter.balance_of(a).return_value for a in tracked},
        'allowances': {
            (o, s): adapter.allowance(o, s).return_value for o in ACCOUNTS for s in ACCOUNTS
        },
        'nonces': {a: adapter.nonces(a).return_value for a in ACCOUNTS},
    }
