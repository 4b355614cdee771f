"""Tests for point totals and status derivation."""

import pytest

from judge.engine import scoring
from judge.engine.common import (
    FaultStatus,
    GradingStatus,
    SubmissionStatus,
    TestCase,
    TestResult,
)


def _cases(*points):
    return [
        TestCase(id=idx, input='', expected_output='', points=pts)
        for idx, pts in enumerate(points, 1)
    ]


def _results(*passed, fault=None):
    return [
        TestResult(test_case_id=idx, passed=ok, fault=None if ok else fault)
        for idx, ok in enumerate(passed, 1)
    ]


class TestScore:
    def test_partial(self):
        summary = scoring.score(_results(True, False), _cases(40, 60))
        assert summary.score == 40
        assert summary.max_score == 100
        assert summary.grade is GradingStatus.PARTIAL
        assert summary.verdict is SubmissionStatus.WRONG_ANSWER

    def test_accepted(self):
        summary = scoring.score(_results(True, True, True), _cases(1, 1, 1))
        assert summary.score == 3
        assert summary.grade is GradingStatus.ACCEPTED
        assert summary.status is GradingStatus.ACCEPTED
        assert summary.verdict is SubmissionStatus.ACCEPTED

    def test_nothing_passed(self):
        summary = scoring.score(_results(False, False), _cases(50, 50))
        assert summary.score == 0
        assert summary.grade is GradingStatus.ATTEMPTED

    def test_no_test_cases_uses_problem_points(self):
        summary = scoring.score([], [], fallback_points=100)
        assert summary.score == 0
        assert summary.max_score == 100
        assert summary.grade is GradingStatus.ATTEMPTED

    def test_zero_max_is_never_accepted(self):
        summary = scoring.score([], [], fallback_points=0)
        assert summary.grade is GradingStatus.ATTEMPTED

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match='2 test results for 3 test cases'):
            scoring.score(_results(True, True), _cases(1, 1, 1))

    def test_fault_preempts_grade_in_status(self):
        results = _results(True, False, fault=FaultStatus.TIME_LIMIT_EXCEEDED)
        summary = scoring.score(
            results, _cases(50, 50), fault=scoring.detect_fault(results),
        )
        assert summary.grade is GradingStatus.PARTIAL
        assert summary.status is FaultStatus.TIME_LIMIT_EXCEEDED
        assert summary.verdict is SubmissionStatus.TIME_LIMIT_EXCEEDED


class TestDetectFault:
    def test_no_fault(self):
        assert scoring.detect_fault(_results(True, False)) is None

    def test_first_failing_fault_wins(self):
        results = [
            TestResult(test_case_id=1, passed=True),
            TestResult(test_case_id=2, passed=False, fault=FaultStatus.RUNTIME_ERROR),
            TestResult(test_case_id=3, passed=False, fault=FaultStatus.TIME_LIMIT_EXCEEDED),
        ]
        assert scoring.detect_fault(results) is FaultStatus.RUNTIME_ERROR

    def test_compilation_error_first(self):
        results = [
            TestResult(test_case_id=1, passed=False, fault=FaultStatus.RUNTIME_ERROR),
            TestResult(test_case_id=2, passed=False, fault=FaultStatus.COMPILATION_ERROR),
        ]
        assert scoring.detect_fault(results) is FaultStatus.COMPILATION_ERROR


class TestGradeFor:
    @pytest.mark.parametrize('score,max_points,expected', [
        (10, 10, GradingStatus.ACCEPTED),
        (5, 10, GradingStatus.PARTIAL),
        (0, 10, GradingStatus.ATTEMPTED),
        (0, 0, GradingStatus.ATTEMPTED),
    ])
    def test_grade_for(self, score, max_points, expected):
        assert scoring.grade_for(score, max_points) is expected

    def test_max_score_treats_missing_points_as_zero(self):
        cases = _cases(3, 0)
        assert scoring.max_score(cases) == 3
        assert scoring.max_score([], fallback_points=None) == 0
