"""
equivalence.py - Cross-Candidate Comparison and Divergence Allow-List

Given one trace per candidate (the ordered observations of a scenario run),
check_equivalence compares every candidate against the first trace, step by
step, on:

    - success/failure flag
    - returned value
    - event identity (name, emitter, decoded fields, in order)

Revert reasons are not compared: candidates word their failures differently.
A mismatch counts as a failure unless its (step, candidate) pair is in the
DivergenceAllowList, which is loaded from data (divergences.json).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
import json

from .core import CallOutcome, ConformanceFailure


DEFAULT_ALLOW_LIST = Path(__file__).with_name("divergences.json")


# ============================================================================
# ALLOW-LIST
# ============================================================================

@dataclass(frozen=True)
class Divergence:
    """An accepted behavioral difference of one candidate at one step."""
    step: str
    candidate: str
    reason: str


class DivergenceAllowList:
    """
    Set of accepted (step, candidate) divergences.

    Every entry carries a reason. Review the list whenever a candidate is
    registered.
    """

    def __init__(self, entries: Iterable[Divergence] = ()):
        self._entries: Dict[Tuple[str, str], Divergence] = {}
        for entry in entries:
            key = (entry.step, entry.candidate)
            if key in self._entries:
                raise ValueError(f"Duplicate allow-list entry: {key}")
            self._entries[key] = entry

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> DivergenceAllowList:
        """
        Build from plain {step, candidate, reason} records.

        Raises:
            ValueError: If a record misses a field or has an empty reason
        """
        entries = []
        for record in records:
            missing = {"step", "candidate", "reason"} - set(record)
            if missing:
                raise ValueError(f"Allow-list record {record!r} missing {sorted(missing)}")
            if not str(record["reason"]).strip():
                raise ValueError(f"Allow-list record {record!r} has no reason")
            entries.append(Divergence(record["step"], record["candidate"], record["reason"]))
        return cls(entries)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> DivergenceAllowList:
        """Load from a JSON file (default: the packaged divergences.json)."""
        with open(path or DEFAULT_ALLOW_LIST, encoding="utf-8") as fh:
            return cls.from_records(json.load(fh))

    def allows(self, step: str, candidate: str) -> bool:
        return (step, candidate) in self._entries

    def reason(self, step: str, candidate: str) -> Optional[str]:
        entry = self._entries.get((step, candidate))
        return entry.reason if entry else None

    def for_candidate(self, candidate: str) -> List[Divergence]:
        return [e for e in self._entries.values() if e.candidate == candidate]

    def __iter__(self) -> Iterator[Divergence]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================================
# COMPARISON
# ============================================================================

def same_observation(a: CallOutcome, b: CallOutcome) -> bool:
    """True if a and b agree on success flag, return value and events."""
    if a.success != b.success:
        return False
    if not a.success:
        return True
    return a.return_value == b.return_value and tuple(a.events) == tuple(b.events)


@dataclass(frozen=True)
class Mismatch:
    """One step at which a candidate disagrees with the baseline."""
    step: str
    candidate: str
    baseline: str
    expected: CallOutcome
    observed: CallOutcome
    allowed_reason: Optional[str] = None

    def to_failure(self) -> ConformanceFailure:
        return ConformanceFailure(
            self.step, self.candidate, self.expected, self.observed,
            f"differs from {self.baseline}",
        )


@dataclass
class EquivalenceReport:
    """
    Outcome of comparing every candidate against the baseline.

    Attributes:
        baseline: Name of the candidate every other one is compared to
        candidates: All compared candidate names, baseline first
        steps_compared: Number of steps in the baseline trace
        mismatches: Divergences not covered by the allow-list
        allowed: Divergences covered by the allow-list
    """
    baseline: str
    candidates: List[str]
    steps_compared: int
    mismatches: List[Mismatch] = field(default_factory=list)
    allowed: List[Mismatch] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.mismatches

    def raise_for_failures(self) -> None:
        """
        Raises:
            ConformanceFailure: For the first unallowed mismatch
        """
        if self.mismatches:
            raise self.mismatches[0].to_failure()

    def summary(self) -> str:
        status = "✓ EQUIVALENT" if self.passed else "✗ DIVERGENT"
        return (
            f"{status}: {len(self.candidates)} candidates, {self.steps_compared} steps, "
            f"{len(self.mismatches)} mismatches, {len(self.allowed)} allowed"
        )


def check_equivalence(
    traces: Mapping[str, Sequence[Any]],
    allow_list: Optional[DivergenceAllowList] = None,
) -> EquivalenceReport:
    """
    Compare each trace with the first one, step by step.

    Args:
        traces: candidate name -> ordered observations. Each observation has
                .step and .outcome (scenario.Observation).
        allow_list: Accepted divergences (default: the packaged list)

    Raises:
        ValueError: If traces is empty or a trace covers different steps
    """
    if not traces:
        raise ValueError("No traces to compare")
    if allow_list is None:
        allow_list = DivergenceAllowList.load()

    names = list(traces)
    baseline_name = names[0]
    baseline = traces[baseline_name]
    baseline_steps = [obs.step for obs in baseline]
    report = EquivalenceReport(baseline_name, names, len(baseline))

    for name in names[1:]:
        trace = traces[name]
        if [obs.step for obs in trace] != baseline_steps:
            raise ValueError(f"Trace of {name} does not cover the baseline's steps")
        for expected, observed in zip(baseline, trace):
            if same_observation(expected.outcome, observed.outcome):
                continue
            mismatch = Mismatch(
                expected.step, name, baseline_name, expected.outcome, observed.outcome,
                allow_list.reason(expected.step, name),
            )
            if mismatch.allowed_reason is not None:
                report.allowed.append(mismatch)
            else:
                report.mismatches.append(mismatch)

    return report
