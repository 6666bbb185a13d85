"""
scenario.py - Canonical Conformance Scenario and Lockstep Driver

The scenario is a fixed, ordered list of Steps covering reads, transfers,
allowances, minting, burning and permits. ScenarioDriver runs it against one
candidate at a time, with a fresh TokenLedger model alongside. Each step is
issued to both; the model's outcome is the expected one.

Per step the driver records an Observation and reports a StepViolation when:
    - the candidate succeeds where the model fails, or vice versa
    - both fail but the candidate reports a different known ErrorKind
    - both succeed but return values or events differ
    - sum of tracked balances != totalSupply after the step
    - a tracked nonce moves other than +1 on its owner's successful permit

Violations at (step, candidate) pairs in the allow-list are recorded as
allowed instead. Configuration is explicit: every run builds its own
deployment, domain separator and signatures from a ScenarioConfig.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .core import (
    CallOutcome, ConformanceFailure, PermitMessage, Signature,
    ONE_TOKEN, UINT256_MAX, ZERO_ADDRESS, normalize_address,
)
from . import typed_data
from .adapters import CandidateAdapter, Deployment, ModelAdapter, get_candidate, list_candidates
from .equivalence import DivergenceAllowList, check_equivalence, EquivalenceReport
from .networks import chain_id_for, get_addresses


# Well-known development keys of a local test node. Public; never fund them.
DEV_KEYS = (
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a",
)

# First contract address deployed by DEV_KEYS[0] on a fresh node.
DEFAULT_LEDGER_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

# Mint amount that overflows any non-trivial supply.
HUGE_AMOUNT = UINT256_MAX - 0xF

ONE_YEAR = 365 * 24 * 60 * 60


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class ScenarioConfig:
    """
    Everything a scenario run depends on.

    Accounts:
        owner   deploys the ledger, holds the initial supply, signs permits
        holder  receives transfers and mints
        spender is the permit and unlimited-allowance spender
    """
    name: str = "abc"
    symbol: str = "ABC"
    version: str = "1"
    network: str = "hardhat"
    chain_id: int = 31337
    ledger_address: str = DEFAULT_LEDGER_ADDRESS
    owner_key: str = DEV_KEYS[0]
    holder_key: str = DEV_KEYS[1]
    spender_key: str = DEV_KEYS[2]
    initial_supply: int = 1_000_000 * ONE_TOKEN
    start_time: int = 1_700_000_000
    permit_value: int = ONE_TOKEN
    permit_deadline: Optional[int] = None
    weth: Optional[str] = None

    @classmethod
    def for_network(cls, network: str, **overrides) -> ScenarioConfig:
        """
        Config for a named deployment target.

        chain_id and weth come from the network unless given in overrides.

        Raises:
            UnknownNetwork: If network is not a known target
        """
        fields = dict(
            network=network,
            chain_id=chain_id_for(network),
            weth=get_addresses(network).weth,
        )
        fields.update(overrides)
        return cls(**fields)

    def with_overrides(self, **changes) -> ScenarioConfig:
        return replace(self, **changes)

    @property
    def owner(self) -> str:
        return typed_data.address_of(self.owner_key)

    @property
    def holder(self) -> str:
        return typed_data.address_of(self.holder_key)

    @property
    def spender(self) -> str:
        return typed_data.address_of(self.spender_key)

    @property
    def deadline(self) -> int:
        if self.permit_deadline is not None:
            return self.permit_deadline
        return self.start_time + ONE_YEAR

    @property
    def tracked_accounts(self) -> Tuple[str, ...]:
        """Every account the scenario can credit, zero address included."""
        return (self.owner, self.holder, self.spender, ZERO_ADDRESS)

    def deployment(self) -> Deployment:
        return Deployment(
            name=self.name,
            symbol=self.symbol,
            version=self.version,
            chain_id=self.chain_id,
            address=normalize_address(self.ledger_address),
            deployer=self.owner,
            initial_supply=self.initial_supply,
            start_time=self.start_time,
        )

    def domain_separator(self) -> bytes:
        return typed_data.domain_separator(
            self.name, self.version, self.chain_id, normalize_address(self.ledger_address)
        )

    def sign_permit(self, key: str, owner: str, spender: str, value: int,
                    nonce: int, deadline: int) -> Signature:
        message = PermitMessage(owner, spender, value, nonce, deadline)
        return typed_data.sign_permit(message, self.domain_separator(), key)


# ============================================================================
# STEPS
# ============================================================================

@dataclass(frozen=True)
class Step:
    """One operation of the scenario, with its intended success flag."""
    id: str
    caller: str
    operation: str
    args: Tuple[Any, ...] = ()
    expect_success: bool = True
    description: str = ""


def build_scenario(config: ScenarioConfig) -> List[Step]:
    """
    The canonical ordered scenario for config.

    Permit signatures are computed here, ahead of the run, against the
    config's domain separator. Zero-address steps move zero tokens so that a
    candidate without the guard leaves balances where the model has them.
    """
    a, b, c = config.owner, config.holder, config.spender
    supply = config.initial_supply
    deadline = config.deadline
    value = config.permit_value

    first = config.sign_permit(config.owner_key, a, c, value, 0, deadline)
    second = config.sign_permit(config.owner_key, a, c, value, 1, deadline)
    expired_deadline = config.start_time - 1
    expired = config.sign_permit(config.owner_key, a, c, value, 1, expired_deadline)
    forged = config.sign_permit(config.holder_key, a, c, value, 1, deadline)

    def read(step_id: str, operation: str, *args) -> Step:
        return Step(step_id, ZERO_ADDRESS, operation, args)

    return [
        read("read_name", "name"),
        read("read_symbol", "symbol"),
        read("read_decimals", "decimals"),
        read("initial_total_supply", "totalSupply"),
        read("initial_balance", "balanceOf", a),
        read("receiver_initial_balance", "balanceOf", b),

        Step("transfer", a, "transfer", (b, ONE_TOKEN),
             description="owner sends one token to holder"),
        read("sender_balance_after_transfer", "balanceOf", a),
        read("receiver_balance_after_transfer", "balanceOf", b),
        Step("transfer_exceeding_balance", b, "transfer", (a, 2 * ONE_TOKEN), False),

        read("allowance_before_approve", "allowance", b, a),
        Step("transfer_from_without_allowance", a, "transferFrom", (b, a, ONE_TOKEN), False),
        Step("approve", b, "approve", (a, ONE_TOKEN)),
        read("allowance_after_approve", "allowance", b, a),
        Step("transfer_from", a, "transferFrom", (b, a, ONE_TOKEN)),
        read("allowance_after_transfer_from", "allowance", b, a),
        read("balance_restored", "balanceOf", a),
        read("receiver_balance_emptied", "balanceOf", b),

        Step("transfer_to_zero_address", a, "transfer", (ZERO_ADDRESS, 0), False),
        Step("mint_to_zero_address", a, "mint", (ZERO_ADDRESS, 0), False),
        Step("mint_overflow", a, "mint", (b, HUGE_AMOUNT), False),
        Step("mint_unauthorized", b, "mint", (b, ONE_TOKEN), False),
        Step("mint", a, "mint", (b, ONE_TOKEN)),
        read("total_supply_after_mint", "totalSupply"),
        read("balance_after_mint", "balanceOf", b),

        Step("burn_excess", b, "burn", (2 * ONE_TOKEN,), False),
        Step("burn", b, "burn", (ONE_TOKEN,)),
        read("total_supply_after_burn", "totalSupply"),

        Step("approve_unlimited", a, "approve", (c, UINT256_MAX)),
        Step("transfer_from_unlimited", c, "transferFrom", (a, c, ONE_TOKEN)),
        read("allowance_after_unlimited_spend", "allowance", a, c),
        Step("return_unlimited_spend", c, "transfer", (a, ONE_TOKEN)),

        read("domain_separator", "DOMAIN_SEPARATOR"),
        read("nonce_before_permit", "nonces", a),
        Step("permit", c, "permit", (a, c, value, deadline) + first.as_tuple(),
             description="spender relays owner's signed approval"),
        read("allowance_after_permit", "allowance", a, c),
        read("nonce_after_permit", "nonces", a),
        Step("permit_replay", c, "permit", (a, c, value, deadline) + first.as_tuple(), False),
        Step("permit_wrong_spender", c, "permit", (a, b, value, deadline) + second.as_tuple(), False),
        Step("permit_expired", c, "permit",
             (a, c, value, expired_deadline) + expired.as_tuple(), False),
        Step("permit_wrong_signer", c, "permit", (a, c, value, deadline) + forged.as_tuple(), False),
        read("nonce_after_rejected_permits", "nonces", a),

        read("final_total_supply", "totalSupply"),
        read("final_owner_balance", "balanceOf", a),
        read("final_holder_balance", "balanceOf", b),
        read("final_spender_balance", "balanceOf", c),
    ]


# ============================================================================
# OBSERVATIONS
# ============================================================================

@dataclass(frozen=True)
class Observation:
    """What one step produced on the candidate, next to what the model produced."""
    step: str
    candidate: str
    outcome: CallOutcome
    expected: CallOutcome


@dataclass(frozen=True)
class StepViolation:
    step: str
    candidate: str
    reason: str
    expected: Any
    observed: Any

    def to_failure(self) -> ConformanceFailure:
        return ConformanceFailure(self.step, self.candidate, self.expected, self.observed, self.reason)

    def __repr__(self) -> str:
        return f"StepViolation({self.candidate}@{self.step}: {self.reason})"


@dataclass
class ScenarioRun:
    """Trace and verdicts of one candidate's run."""
    candidate: str
    observations: List[Observation] = field(default_factory=list)
    violations: List[StepViolation] = field(default_factory=list)
    allowed: List[StepViolation] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.violations

    def outcome(self, step: str) -> CallOutcome:
        for obs in self.observations:
            if obs.step == step:
                return obs.outcome
        raise KeyError(step)

    def raise_for_failures(self) -> None:
        """
        Raises:
            ConformanceFailure: For the first violation of the run
        """
        if self.violations:
            raise self.violations[0].to_failure()


def compare_outcomes(expected: CallOutcome, observed: CallOutcome) -> Optional[str]:
    """Why observed does not conform to expected, or None if it does."""
    if expected.success != observed.success:
        if expected.success:
            return f"expected success, reverted with {observed.reverted_with}"
        return f"expected {expected.reverted_with}, succeeded"
    if not expected.success:
        kind = observed.error_kind
        if kind is not None and kind != expected.error_kind:
            return f"expected {expected.reverted_with}, reverted with {kind.value}"
        return None
    if expected.return_value != observed.return_value:
        return "return value differs"
    if tuple(expected.events) != tuple(observed.events):
        return "events differ"
    return None


# ============================================================================
# DRIVER
# ============================================================================

class ScenarioDriver:
    """
    Runs the canonical scenario against candidates, one at a time.

    Example:
        driver = ScenarioDriver(ScenarioConfig(), verbose=True)
        runs = driver.run_all()
        report = driver.equivalence(runs)
        report.raise_for_failures()
    """

    def __init__(
        self,
        config: Optional[ScenarioConfig] = None,
        allow_list: Optional[DivergenceAllowList] = None,
        steps: Optional[Sequence[Step]] = None,
        verbose: bool = False,
    ):
        self.config = config or ScenarioConfig()
        self.allow_list = allow_list if allow_list is not None else DivergenceAllowList.load()
        self.steps = list(steps) if steps is not None else build_scenario(self.config)
        self.verbose = verbose

    def run(self, candidate: CandidateAdapter) -> ScenarioRun:
        """
        Run every step against candidate and a fresh model.

        The candidate must be freshly deployed from self.config.deployment().
        """
        model = ModelAdapter(self.config.deployment())
        run = ScenarioRun(candidate.name)
        nonces = self._nonces(candidate)

        if self.verbose:
            print(f"\n▶ {candidate.name}: {len(self.steps)} steps")

        for step in self.steps:
            expected = model.call(step.caller, step.operation, *step.args)
            observed = candidate.call(step.caller, step.operation, *step.args)
            run.observations.append(Observation(step.id, candidate.name, observed, expected))

            problems = []
            if expected.success != step.expect_success:
                problems.append(StepViolation(
                    step.id, model.name, "model disagrees with scenario",
                    step.expect_success, expected,
                ))
            reason = compare_outcomes(expected, observed)
            if reason:
                problems.append(StepViolation(step.id, candidate.name, reason, expected, observed))
            problems.extend(self._check_supply(step, candidate))
            nonces, nonce_problems = self._check_nonces(step, candidate, observed, nonces)
            problems.extend(nonce_problems)

            for problem in problems:
                if problem.candidate != model.name and self.allow_list.allows(step.id, candidate.name):
                    run.allowed.append(problem)
                else:
                    run.violations.append(problem)

            if self.verbose:
                self._print_step(step, observed, problems)

        if self.verbose:
            status = "✓ CONFORMS" if run.passed else f"✗ {len(run.violations)} VIOLATIONS"
            print(f"{status}: {candidate.name} ({len(run.allowed)} allowed)")
        return run

    def run_all(self, names: Optional[Sequence[str]] = None) -> Dict[str, ScenarioRun]:
        """Deploy and run each named candidate (default: all registered), in order."""
        runs: Dict[str, ScenarioRun] = {}
        for name in names or list_candidates():
            adapter = get_candidate(name)(self.config.deployment(), verbose=False)
            runs[name] = self.run(adapter)
        return runs

    def equivalence(self, runs: Dict[str, ScenarioRun]) -> EquivalenceReport:
        traces = {name: run.observations for name, run in runs.items()}
        report = check_equivalence(traces, self.allow_list)
        if self.verbose:
            print(report.summary())
        return report

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def _check_supply(self, step: Step, candidate: CandidateAdapter) -> List[StepViolation]:
        balances = [candidate.balance_of(acct).return_value for acct in self.config.tracked_accounts]
        supply = candidate.total_supply().return_value
        if sum(balances) == supply:
            return []
        return [StepViolation(
            step.id, candidate.name, "sum of balances != totalSupply", supply, sum(balances),
        )]

    def _nonces(self, candidate: CandidateAdapter) -> Dict[str, int]:
        return {
            acct: candidate.nonces(acct).return_value
            for acct in self.config.tracked_accounts
            if acct != ZERO_ADDRESS
        }

    def _check_nonces(
        self,
        step: Step,
        candidate: CandidateAdapter,
        observed: CallOutcome,
        before: Dict[str, int],
    ) -> Tuple[Dict[str, int], List[StepViolation]]:
        after = self._nonces(candidate)
        consumed = None
        if step.operation == "permit" and observed.success:
            consumed = normalize_address(step.args[0])
        problems = []
        for acct, old in before.items():
            expected = old + 1 if acct == consumed else old
            if after[acct] != expected:
                problems.append(StepViolation(
                    step.id, candidate.name, f"nonce of {acct} moved unexpectedly",
                    expected, after[acct],
                ))
        return after, problems

    def _print_step(self, step: Step, observed: CallOutcome, problems: List[StepViolation]) -> None:
        if not problems:
            print(f"  ✓ {step.id}")
            return
        allowed = self.allow_list.allows(step.id, problems[0].candidate)
        marker = "~" if allowed else "✗"
        for problem in problems:
            print(f"  {marker} {step.id}: {problem.reason}")
