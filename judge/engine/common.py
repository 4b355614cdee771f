"""Value types shared by the judging engine.

Everything here is a plain snapshot: the engine reads these and returns new
ones, it never touches ORM rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

DEFAULT_TIME_LIMIT_MS = 5000
DEFAULT_MEMORY_LIMIT_MB = 256
DEFAULT_PROBLEM_POINTS = 100


class GradingStatus(str, Enum):
    """Score-based standing of a submission or a contest problem."""

    NOT_ATTEMPTED = 'not_attempted'
    ATTEMPTED = 'attempted'
    PARTIAL = 'partial'
    ACCEPTED = 'accepted'

    @property
    def rank(self) -> int:
        return _GRADING_RANK[self]


_GRADING_RANK = {
    GradingStatus.NOT_ATTEMPTED: 0,
    GradingStatus.ATTEMPTED: 1,
    GradingStatus.PARTIAL: 2,
    GradingStatus.ACCEPTED: 3,
}


class FaultStatus(str, Enum):
    """The program could not be graded normally on some test case."""

    COMPILATION_ERROR = 'compilation_error'
    TIME_LIMIT_EXCEEDED = 'time_limit_exceeded'
    RUNTIME_ERROR = 'runtime_error'


class SubmissionStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    ACCEPTED = 'accepted'
    WRONG_ANSWER = 'wrong_answer'
    TIME_LIMIT_EXCEEDED = 'time_limit_exceeded'
    RUNTIME_ERROR = 'runtime_error'
    COMPILATION_ERROR = 'compilation_error'


@dataclass(frozen=True)
class TestCase:
    id: Any
    input: Any
    expected_output: str
    is_hidden: bool = False
    points: int = 1

    __test__ = False


@dataclass(frozen=True)
class Problem:
    id: Any
    test_cases: tuple[TestCase, ...] = ()
    harness: str | Mapping[str, str] = ''
    code_templates: Mapping[str, str] = field(default_factory=dict)
    time_limit_ms: int | None = None
    memory_limit_mb: int | None = None
    points: int = DEFAULT_PROBLEM_POINTS
    title: str = ''

    @property
    def max_score(self) -> int:
        if self.test_cases:
            return sum(tc.points for tc in self.test_cases)
        return self.points

    def limits(self, default_time_limit_ms: int = DEFAULT_TIME_LIMIT_MS) -> Limits:
        return Limits(
            time_limit_ms=self.time_limit_ms or default_time_limit_ms,
            memory_limit_mb=self.memory_limit_mb or DEFAULT_MEMORY_LIMIT_MB,
        )


@dataclass(frozen=True)
class Limits:
    time_limit_ms: int = DEFAULT_TIME_LIMIT_MS
    memory_limit_mb: int = DEFAULT_MEMORY_LIMIT_MB


@dataclass
class RawResult:
    """What one process execution produced."""

    stdout: str = ''
    stderr: str = ''
    exit_code: int | None = None
    timed_out: bool = False
    output_limit_exceeded: bool = False
    wall_time_ms: int = 0
    memory_used_mb: float = 0.0
    # True when memory_used_mb is the output-size estimate, not a measurement
    memory_estimated: bool = True
    compile_error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.compile_error is None
            and not self.timed_out
            and not self.output_limit_exceeded
            and self.exit_code == 0
        )


@dataclass
class CompileResult:
    ok: bool
    error: str | None = None
    wall_time_ms: int = 0


@dataclass(frozen=True)
class TestResult:
    test_case_id: Any
    passed: bool
    execution_time_ms: int = 0
    memory_used_mb: float = 0.0
    memory_estimated: bool = True
    output: str = ''
    error: str | None = None
    fault: FaultStatus | None = None

    __test__ = False

    def to_dict(self) -> dict:
        return {
            'test_case_id': self.test_case_id,
            'passed': self.passed,
            'execution_time_ms': self.execution_time_ms,
            'memory_used_mb': self.memory_used_mb,
            'memory_estimated': self.memory_estimated,
            'output': self.output,
            'error': self.error,
            'fault': self.fault.value if self.fault else None,
        }


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of grading one submission against one problem."""

    language: str
    code: str
    test_results: tuple[TestResult, ...]
    score: int
    max_score: int
    grade: GradingStatus
    status: SubmissionStatus
    total_execution_time_ms: int = 0
    total_memory_used_mb: float = 0.0
    fault: FaultStatus | None = None

    @property
    def accepted(self) -> bool:
        return self.grade is GradingStatus.ACCEPTED

    def to_dict(self) -> dict:
        return {
            'language': self.language,
            'status': self.status.value,
            'grade': self.grade.value,
            'score': self.score,
            'max_score': self.max_score,
            'total_execution_time_ms': self.total_execution_time_ms,
            'total_memory_used_mb': self.total_memory_used_mb,
            'test_results': [r.to_dict() for r in self.test_results],
        }


@dataclass(frozen=True)
class ProblemResult:
    problem_id: Any
    max_score: int
    score: int = 0
    time_spent: int = 0
    submission_count: int = 0
    first_accepted_at: datetime | None = None
    status: GradingStatus = GradingStatus.NOT_ATTEMPTED


@dataclass(frozen=True)
class ContestResult:
    user_id: Any
    contest_id: Any
    problem_results: Mapping[Any, ProblemResult] = field(default_factory=dict)
    total_score: int = 0
    total_time: int = 0
    penalties: int = 0
    is_completed: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ContestProblem:
    problem_id: Any
    order: int = 0
    points: int = DEFAULT_PROBLEM_POINTS


@dataclass(frozen=True)
class Contest:
    id: Any
    start_time: datetime
    end_time: datetime
    problems: tuple[ContestProblem, ...] = ()
    title: str = ''

    def is_running(self, now: datetime) -> bool:
        return self.start_time <= now <= self.end_time

    def find_problem(self, problem_id) -> ContestProblem | None:
        for entry in self.problems:
            if str(entry.problem_id) == str(problem_id):
                return entry
        return None
