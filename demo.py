#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Differential Conformance Step by Step

Walks through the oracle from the bottom up. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - The model ledger, rejections, the supply invariant
  4-5:  Permits      - Typed-data hashing, signing, replay protection
  6-7:  Candidates   - Three implementations behind one adapter surface
  8:    Conformance  - The full scenario, the allow-list, equivalence

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

import sys

from token_conformance import (
    TokenLedger, ScenarioConfig, ScenarioDriver, PermitMessage,
    LedgerError, ONE_TOKEN, ZERO_ADDRESS,
    get_candidate, list_candidates, get_addresses, typed_data,
)


CONFIG = ScenarioConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def tokens(amount: int) -> str:
    return f"{amount / ONE_TOKEN:,.4f}"


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_model_ledger():
    """Create the model and make a first transfer."""
    step_header(1, "The Model Ledger",
        "See the executable statement of correct token behavior.")

    ledger = TokenLedger(
        CONFIG.name, CONFIG.symbol,
        address=CONFIG.ledger_address,
        owner=CONFIG.owner,
        chain_id=CONFIG.chain_id,
        initial_supply=CONFIG.initial_supply,
        initial_time=CONFIG.start_time,
        verbose=True,
    )

    print(f"Name / symbol:   {ledger.name} / {ledger.symbol}")
    print(f"Decimals:        {ledger.decimals}")
    print(f"Owner:           {ledger.owner}")
    print(f"Total supply:    {tokens(ledger.total_supply())}")

    print("\n>>> ledger.transfer(owner, holder, 1 token)")
    ledger.transfer(CONFIG.owner, CONFIG.holder, ONE_TOKEN)
    print(f"Owner balance:   {tokens(ledger.balance_of(CONFIG.owner))}")
    print(f"Holder balance:  {tokens(ledger.balance_of(CONFIG.holder))}")
    print(f"Event:           {ledger.event_log[-1]}")
    return ledger


def step_02_rejections(ledger: TokenLedger):
    """Failed operations leave no trace."""
    step_header(2, "Rejections Are Atomic",
        "A failed operation changes no state and emits no event.")

    attempts = [
        ("transfer more than held", lambda: ledger.transfer(CONFIG.holder, CONFIG.owner, 2 * ONE_TOKEN)),
        ("transferFrom without allowance", lambda: ledger.transfer_from(CONFIG.owner, CONFIG.holder, CONFIG.owner, ONE_TOKEN)),
        ("transfer to the zero address", lambda: ledger.transfer(CONFIG.owner, ZERO_ADDRESS, ONE_TOKEN)),
        ("mint by non-owner", lambda: ledger.mint(CONFIG.holder, CONFIG.holder, ONE_TOKEN)),
    ]
    events_before = len(ledger.event_log)
    for label, attempt in attempts:
        print(f">>> {label}")
        try:
            attempt()
        except LedgerError as e:
            print(f"    -> {e.kind.value}")

    section_header("Key Insight")
    print(f"    Events before: {events_before}, after: {len(ledger.event_log)}")
    return ledger


def step_03_supply_invariant(ledger: TokenLedger):
    step_header(3, "The Supply Invariant",
        "sum(balances) == totalSupply after every operation.")

    ledger.mint(CONFIG.owner, CONFIG.holder, 5 * ONE_TOKEN)
    ledger.burn(CONFIG.holder, 2 * ONE_TOKEN)
    report = ledger.verify_supply()
    print(f"Total supply:    {tokens(report['total_supply'])}")
    print(f"Sum of balances: {tokens(report['sum_of_balances'])}")
    print(f"Valid:           {report['valid']}")
    return ledger


# ============================================================================
# PHASE 2: PERMITS
# ============================================================================

def step_04_typed_data():
    """Build a permit digest by hand."""
    step_header(4, "Typed-Data Hashing",
        "Follow a permit from struct to digest to signature.")

    separator = CONFIG.domain_separator()
    message = PermitMessage(CONFIG.owner, CONFIG.spender, ONE_TOKEN, 0, CONFIG.deadline)
    encoded = typed_data.encode_permit(message)

    print(f"Domain separator: 0x{separator.hex()}")
    section_header("Permit struct, one 32-byte slot per field")
    for index, label in enumerate(["typehash", "owner", "spender", "value", "nonce", "deadline"]):
        print(f"  {label:<9} {encoded[32 * index:32 * (index + 1)].hex()}")

    digest = typed_data.permit_digest(message, separator)
    signature = typed_data.sign_permit(message, separator, CONFIG.owner_key)
    print(f"\nDigest:    0x{digest.hex()}")
    print(f"Signature: v={signature.v} r={signature.r:#066x}")
    print(f"Recovers:  {typed_data.recover_signer(digest, signature)}")
    return message, signature


def step_05_permit(ledger: TokenLedger, message: PermitMessage, signature):
    step_header(5, "Permit and Replay",
        "A signature is consumed with the owner's nonce.")

    args = (message.owner, message.spender, message.value, message.deadline) + signature.as_tuple()
    print(f"Nonce before: {ledger.nonces(CONFIG.owner)}")
    ledger.permit(CONFIG.spender, *args)
    print(f"Nonce after:  {ledger.nonces(CONFIG.owner)}")
    print(f"Allowance:    {tokens(ledger.allowance(CONFIG.owner, CONFIG.spender))}")

    print("\n>>> replaying the same signature")
    try:
        ledger.permit(CONFIG.spender, *args)
    except LedgerError as e:
        print(f"    -> {e.kind.value}")
    return ledger


# ============================================================================
# PHASE 3: CANDIDATES
# ============================================================================

def step_06_candidates():
    step_header(6, "Candidates Behind One Surface",
        "Each implementation has its own shape; adapters hide it.")

    for name in list_candidates():
        adapter = get_candidate(name)(CONFIG.deployment())
        outcome = adapter.transfer(CONFIG.owner, CONFIG.holder, ONE_TOKEN)
        print(f"{name:<10} transfer -> {outcome}")


def step_07_divergent_failures():
    step_header(7, "Different Failures, Same Kind",
        "Custom errors, string reasons and raw selectors map onto one taxonomy.")

    for name in list_candidates():
        adapter = get_candidate(name)(CONFIG.deployment())
        over = adapter.transfer(CONFIG.holder, CONFIG.owner, ONE_TOKEN)
        zero = adapter.transfer(CONFIG.owner, ZERO_ADDRESS, 0)
        print(f"{name:<10} over-transfer: {over.reverted_with:<22} zero-address: {zero}")


# ============================================================================
# PHASE 4: CONFORMANCE
# ============================================================================

def step_08_conformance():
    step_header(8, "The Full Scenario",
        "Run every candidate against the model, then against each other.")

    driver = ScenarioDriver(CONFIG, verbose=True)
    runs = driver.run_all()

    section_header("Allow-listed divergences")
    for entry in driver.allow_list:
        print(f"  {entry.candidate}@{entry.step}: {entry.reason}")

    section_header("Equivalence")
    report = driver.equivalence(runs)
    for mismatch in report.allowed:
        print(f"  ~ {mismatch.candidate}@{mismatch.step} (allowed)")

    print(f"\nWETH on {CONFIG.network}: {get_addresses(CONFIG.network).weth}")


def main():
    print("=" * 70)
    print("       TOKEN CONFORMANCE - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger = step_01_model_ledger()
    wait_for_enter()

    ledger = step_02_rejections(ledger)
    wait_for_enter()

    ledger = step_03_supply_invariant(ledger)
    wait_for_enter()

    message, signature = step_04_typed_data()
    wait_for_enter()

    step_05_permit(ledger, message, signature)
    wait_for_enter()

    step_06_candidates()
    wait_for_enter()

    step_07_divergent_failures()
    wait_for_enter()

    step_08_conformance()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See token_conformance/divergences.json for accepted differences
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
