"""
test_equivalence.py - Tests for cross-candidate comparison and the allow-list
"""

import json

import pytest

from token_conformance import (
    CallOutcome, ConformanceFailure, Divergence, DivergenceAllowList, EquivalenceReport,
    ScenarioDriver, check_equivalence, same_observation, transfer_event,
)
from token_conformance.equivalence import DEFAULT_ALLOW_LIST, Mismatch
from token_conformance.scenario import Observation
from tests.fake_adapter import FakeAdapter


ALICE = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
BOB = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def trace(name, *outcomes):
    """Observations for steps s0, s1, ... with the given outcomes."""
    return [Observation(f"s{i}", name, outcome, outcome) for i, outcome in enumerate(outcomes)]


class TestAllowList:

    def test_packaged_list_loads(self):
        allow = DivergenceAllowList.load()
        assert len(allow) == 2
        assert allow.allows("transfer_to_zero_address", "minimal")
        assert allow.allows("mint_to_zero_address", "minimal")

    def test_packaged_list_path(self):
        assert DEFAULT_ALLOW_LIST.name == "divergences.json"
        assert DEFAULT_ALLOW_LIST.exists()

    def test_every_packaged_entry_has_reason(self):
        for entry in DivergenceAllowList.load():
            assert entry.reason.strip()

    def test_scoped_to_candidate(self):
        allow = DivergenceAllowList.load()
        assert not allow.allows("transfer_to_zero_address", "reference")
        assert allow.reason("transfer_to_zero_address", "reference") is None

    def test_for_candidate(self):
        allow = DivergenceAllowList.load()
        assert {d.step for d in allow.for_candidate("minimal")} == {
            "transfer_to_zero_address", "mint_to_zero_address",
        }
        assert allow.for_candidate("lowlevel") == []

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "allow.json"
        path.write_text(json.dumps([{"step": "a", "candidate": "x", "reason": "because"}]))
        allow = DivergenceAllowList.load(path)
        assert allow.reason("a", "x") == "because"

    def test_missing_field(self):
        with pytest.raises(ValueError, match="missing"):
            DivergenceAllowList.from_records([{"step": "a", "candidate": "x"}])

    def test_empty_reason(self):
        with pytest.raises(ValueError, match="no reason"):
            DivergenceAllowList.from_records([{"step": "a", "candidate": "x", "reason": "  "}])

    def test_duplicate_entry(self):
        with pytest.raises(ValueError, match="Duplicate"):
            DivergenceAllowList([Divergence("a", "x", "r1"), Divergence("a", "x", "r2")])

    def test_empty_list(self):
        allow = DivergenceAllowList()
        assert len(allow) == 0
        assert not allow.allows("a", "x")


class TestSameObservation:

    def test_failures_match_regardless_of_reason(self):
        assert same_observation(CallOutcome.failed("Expired"), CallOutcome.failed("Panic(0x11)"))

    def test_success_flag(self):
        assert not same_observation(CallOutcome.ok(True), CallOutcome.failed("Expired"))

    def test_return_value(self):
        assert not same_observation(CallOutcome.ok(1), CallOutcome.ok(2))

    def test_event_order_matters(self):
        first = transfer_event(ALICE, ALICE, BOB, 1)
        second = transfer_event(ALICE, BOB, ALICE, 1)
        assert not same_observation(CallOutcome.ok(True, [first, second]),
                                    CallOutcome.ok(True, [second, first]))

    def test_emitter_matters(self):
        assert not same_observation(
            CallOutcome.ok(True, [transfer_event(ALICE, ALICE, BOB, 1)]),
            CallOutcome.ok(True, [transfer_event(BOB, ALICE, BOB, 1)]),
        )


class TestCheckEquivalence:

    def test_identical_traces(self):
        report = check_equivalence({
            "a": trace("a", CallOutcome.ok(1), CallOutcome.failed("Expired")),
            "b": trace("b", CallOutcome.ok(1), CallOutcome.failed("Panic(0x11)")),
        }, DivergenceAllowList())
        assert report.passed
        assert report.baseline == "a"
        assert report.candidates == ["a", "b"]
        assert report.steps_compared == 2

    def test_single_trace_passes(self):
        assert check_equivalence({"a": trace("a", CallOutcome.ok(1))}, DivergenceAllowList()).passed

    def test_mismatch(self):
        report = check_equivalence({
            "a": trace("a", CallOutcome.ok(1), CallOutcome.ok(2)),
            "b": trace("b", CallOutcome.ok(1), CallOutcome.ok(3)),
        }, DivergenceAllowList())
        assert not report.passed
        mismatch, = report.mismatches
        assert (mismatch.step, mismatch.candidate, mismatch.baseline) == ("s1", "b", "a")
        assert mismatch.observed == CallOutcome.ok(3)

    def test_allowed_mismatch(self):
        allow = DivergenceAllowList([Divergence("s0", "b", "known quirk")])
        report = check_equivalence({
            "a": trace("a", CallOutcome.failed("ZeroAddressRecipient")),
            "b": trace("b", CallOutcome.ok(True)),
        }, allow)
        assert report.passed
        assert report.allowed[0].allowed_reason == "known quirk"

    def test_every_candidate_against_baseline(self):
        report = check_equivalence({
            "a": trace("a", CallOutcome.ok(1)),
            "b": trace("b", CallOutcome.ok(2)),
            "c": trace("c", CallOutcome.ok(2)),
        }, DivergenceAllowList())
        assert [m.candidate for m in report.mismatches] == ["b", "c"]

    def test_empty_traces(self):
        with pytest.raises(ValueError):
            check_equivalence({}, DivergenceAllowList())

    def test_step_lists_must_match(self):
        with pytest.raises(ValueError, match="does not cover"):
            check_equivalence({
                "a": trace("a", CallOutcome.ok(1), CallOutcome.ok(1)),
                "b": trace("b", CallOutcome.ok(1)),
            }, DivergenceAllowList())

    def test_default_allow_list(self):
        report = check_equivalence({
            "reference": [Observation("transfer_to_zero_address", "reference",
                                      CallOutcome.failed("ZeroAddressRecipient"), None)],
            "minimal": [Observation("transfer_to_zero_address", "minimal",
                                    CallOutcome.ok(True), None)],
        })
        assert report.passed
        assert len(report.allowed) == 1


class TestReport:

    def test_raise_for_failures(self):
        report = check_equivalence({
            "a": trace("a", CallOutcome.ok(1)),
            "b": trace("b", CallOutcome.ok(2)),
        }, DivergenceAllowList())
        with pytest.raises(ConformanceFailure) as info:
            report.raise_for_failures()
        failure = info.value
        assert (failure.step, failure.candidate) == ("s0", "b")
        assert failure.expected == CallOutcome.ok(1)
        assert failure.observed == CallOutcome.ok(2)
        assert "differs from a" in str(failure)

    def test_summary(self):
        report = EquivalenceReport("a", ["a", "b"], 3)
        assert report.summary() == "✓ EQUIVALENT: 2 candidates, 3 steps, 0 mismatches, 0 allowed"
        report.mismatches.append(Mismatch("s0", "b", "a", CallOutcome.ok(1), CallOutcome.ok(2)))
        assert report.summary().startswith("✗ DIVERGENT")


class TestDriverEquivalence:

    def test_divergent_fake_detected(self, config, deployment):
        driver = ScenarioDriver(config, allow_list=DivergenceAllowList())
        runs = {
            "model-a": driver.run(FakeAdapter(deployment, name="model-a")),
            "model-b": driver.run(FakeAdapter(deployment, name="model-b", script={
                "name": CallOutcome.ok("xyz"),
            })),
        }
        report = driver.equivalence(runs)
        assert [m.step for m in report.mismatches] == ["read_name"]

    def test_verbose_summary(self, config, deployment, capsys):
        driver = ScenarioDriver(config, allow_list=DivergenceAllowList(), verbose=True)
        runs = {"only": driver.run(FakeAdapter(deployment, name="only"))}
        capsys.readouterr()
        driver.equivalence(runs)
        assert "✓ EQUIVALENT" in capsys.readouterr().out
