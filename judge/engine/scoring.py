"""Turns per-test pass/fail into points and a status."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from judge.engine.common import (
    FaultStatus, GradingStatus, SubmissionStatus, TestCase, TestResult,
)


@dataclass(frozen=True)
class ScoreSummary:
    score: int
    max_score: int
    grade: GradingStatus
    fault: FaultStatus | None = None

    @property
    def status(self):
        """The fault when there is one, otherwise the score-based grade."""
        return self.fault or self.grade

    @property
    def verdict(self) -> SubmissionStatus:
        if self.fault is not None:
            return SubmissionStatus(self.fault.value)
        if self.grade is GradingStatus.ACCEPTED:
            return SubmissionStatus.ACCEPTED
        return SubmissionStatus.WRONG_ANSWER


def max_score(test_cases: Sequence[TestCase], fallback_points: int = 0) -> int:
    if test_cases:
        return sum(int(tc.points or 0) for tc in test_cases)
    return int(fallback_points or 0)


def grade_for(score: int, max_points: int) -> GradingStatus:
    if max_points > 0 and score == max_points:
        return GradingStatus.ACCEPTED
    if 0 < score < max_points:
        return GradingStatus.PARTIAL
    return GradingStatus.ATTEMPTED


def detect_fault(test_results: Sequence[TestResult]) -> FaultStatus | None:
    """First fault in test order; a compile failure marks every result."""
    for result in test_results:
        if result.fault is FaultStatus.COMPILATION_ERROR:
            return FaultStatus.COMPILATION_ERROR
    for result in test_results:
        if not result.passed and result.fault is not None:
            return result.fault
    return None


def score(test_results: Sequence[TestResult], test_cases: Sequence[TestCase],
          fallback_points: int = 0, fault: FaultStatus | None = None) -> ScoreSummary:
    """Score *test_results* against the index-aligned *test_cases*.

    Raises:
        ValueError: if the two sequences differ in length.
    """
    if len(test_results) != len(test_cases):
        raise ValueError(
            f"Got {len(test_results)} test results for {len(test_cases)} test cases"
        )

    total = max_score(test_cases, fallback_points)
    earned = sum(
        int(tc.points or 0)
        for result, tc in zip(test_results, test_cases)
        if result.passed
    )
    return ScoreSummary(
        score=earned,
        max_score=total,
        grade=grade_for(earned, total),
        fault=fault,
    )
