"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of every token ledger candidate.
Any compliant candidate MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Sum of balances equals total supply
2. atomicity.py - Failed operations change nothing
3. idempotency.py - A permit signature is consumed exactly once
4. determinism.py - Reproducible signatures, separators and runs
5. temporal.py - Permit deadlines against block time
6. differential.py - Every candidate agrees with the model

These tests use hypothesis for property-based testing.
"""
