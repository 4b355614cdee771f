"""Grades one submission against a problem's test cases.

Test cases of a submission run one after another in declared order inside a
single sandbox session, so the program is compiled once. Different
submissions are independent and can be graded concurrently through
:class:`GradingPool`.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from judge.engine import scoring
from judge.engine.common import (
    DEFAULT_TIME_LIMIT_MS, Problem, SubmissionOutcome, TestResult,
)
from judge.engine.errors import (
    CompilationError, GradingRejected, InfrastructureError, RuntimeFault, TimedOut,
    UnsupportedLanguage,
)
from judge.engine.harness import compose
from judge.engine.sandbox import Sandbox

logger = logging.getLogger(__name__)


def outputs_match(stdout: str, expected: str) -> bool:
    """Trim-then-compare; inner whitespace and line breaks are significant."""
    return (stdout or '').strip() == (expected or '').strip()


class Orchestrator:
    def __init__(self, adapters: dict, sandbox: Sandbox | None = None,
                 default_time_limit_ms: int = DEFAULT_TIME_LIMIT_MS,
                 max_grading_ms: int | None = None):
        self.adapters = dict(adapters)
        self.sandbox = sandbox or Sandbox()
        self.default_time_limit_ms = default_time_limit_ms
        self.max_grading_ms = max_grading_ms

    @classmethod
    def from_config(cls, config, adapters: dict) -> Orchestrator:
        return cls(
            adapters,
            sandbox=Sandbox.from_config(config),
            default_time_limit_ms=config.get('JUDGE_DEFAULT_TIME_LIMIT_MS', DEFAULT_TIME_LIMIT_MS),
            max_grading_ms=config.get('JUDGE_MAX_GRADING_MS'),
        )

    def adapter_for(self, language: str):
        adapter = self.adapters.get(language)
        if adapter is None:
            raise UnsupportedLanguage(language)
        return adapter

    def validate(self, language: str, problem: Problem):
        """Reject a grading request before anything is spawned; returns the adapter."""
        adapter = self.adapter_for(language)
        limits = problem.limits(self.default_time_limit_ms)
        worst_case_ms = len(problem.test_cases) * limits.time_limit_ms
        if self.max_grading_ms and worst_case_ms > self.max_grading_ms:
            raise GradingRejected(
                f"{len(problem.test_cases)} test cases x {limits.time_limit_ms} ms exceeds "
                f"the {self.max_grading_ms} ms grading ceiling"
            )
        return adapter

    def grade_submission(self, code: str, language: str, problem: Problem,
                         cancel_event: threading.Event | None = None) -> SubmissionOutcome:
        """Run *code* against every test case of *problem* and score it.

        Raises:
            UnsupportedLanguage: no adapter for *language*.
            GradingRejected: worst-case grading time exceeds the ceiling.
            GradingCancelled: *cancel_event* was set while grading.
        """
        adapter = self.validate(language, problem)
        limits = problem.limits(self.default_time_limit_ms)
        test_cases = tuple(problem.test_cases)

        source = compose(code, language, problem, comment_marker=adapter.COMMENT_MARKER)
        if not test_cases:
            return self._build_outcome(code, language, problem, test_cases, [])

        try:
            with self.sandbox.session(adapter, source, limits, cancel_event) as session:
                if not session.compile_result.ok:
                    failure = CompilationError(session.compile_result.error)
                    results = [
                        TestResult(
                            test_case_id=tc.id,
                            passed=False,
                            error=str(failure),
                            fault=failure.fault,
                        )
                        for tc in test_cases
                    ]
                else:
                    results = [self._run_one(session, tc) for tc in test_cases]
        except InfrastructureError as e:
            # Workspace or compiler could not be set up; charge it to every test.
            logger.error(f"Sandbox setup failed for problem {problem.id}: {e}")
            results = [
                TestResult(test_case_id=tc.id, passed=False, execution_time_ms=0, error=str(e))
                for tc in test_cases
            ]

        return self._build_outcome(code, language, problem, test_cases, results)

    def _run_one(self, session, test_case) -> TestResult:
        try:
            raw = session.run(test_case)
        except InfrastructureError as e:
            logger.warning(f"Test case {test_case.id} could not be executed: {e}")
            return TestResult(
                test_case_id=test_case.id, passed=False, execution_time_ms=0, error=str(e),
            )

        failure = self._classify(raw, session)
        error = str(failure) if failure else (raw.stderr or None)
        fault = failure.fault if failure else None

        passed = fault is None and outputs_match(raw.stdout, test_case.expected_output)
        return TestResult(
            test_case_id=test_case.id,
            passed=passed,
            execution_time_ms=raw.wall_time_ms,
            memory_used_mb=raw.memory_used_mb,
            memory_estimated=raw.memory_estimated,
            output=raw.stdout,
            error=error,
            fault=fault,
        )

    @staticmethod
    def _classify(raw, session):
        if raw.output_limit_exceeded:
            return RuntimeFault(
                f"Output limit exceeded ({session.sandbox.max_output_bytes} bytes)"
            )
        if raw.timed_out:
            return TimedOut(f"Time limit exceeded ({session.limits.time_limit_ms} ms)")
        if raw.exit_code != 0:
            return RuntimeFault(f"Process exited with code {raw.exit_code}: {raw.stderr.strip()}")
        return None

    def _build_outcome(self, code, language, problem, test_cases, results) -> SubmissionOutcome:
        summary = scoring.score(
            results, test_cases,
            fallback_points=problem.points,
            fault=scoring.detect_fault(results),
        )
        outcome = SubmissionOutcome(
            language=language,
            code=code,
            test_results=tuple(results),
            score=summary.score,
            max_score=summary.max_score,
            grade=summary.grade,
            status=summary.verdict,
            total_execution_time_ms=sum(r.execution_time_ms for r in results),
            total_memory_used_mb=round(sum(r.memory_used_mb for r in results), 4),
            fault=summary.fault,
        )
        logger.info(
            f"Graded {language} submission for problem {problem.id}: "
            f"{outcome.status.value} {outcome.score}/{outcome.max_score}"
        )
        return outcome


class GradingPool:
    """Grades independent submissions concurrently.

    Each job gets its own cancel event; :meth:`cancel` makes the sandbox kill
    the job's running process and remove its workspace.
    """

    def __init__(self, orchestrator: Orchestrator, max_workers: int = 4):
        self.orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='grader',
        )
        self._cancel_events = {}
        self._lock = threading.Lock()

    def submit(self, key, fn, *args, **kwargs) -> Future:
        """Run ``fn(*args, cancel_event=..., **kwargs)`` on the pool under *key*.

        Raises:
            ValueError: a job submitted under *key* has not finished yet.
        """
        cancel_event = threading.Event()
        with self._lock:
            if key in self._cancel_events:
                raise ValueError(f"A grading job is already running under key {key!r}")
            self._cancel_events[key] = cancel_event

        def _run():
            try:
                return fn(*args, cancel_event=cancel_event, **kwargs)
            finally:
                with self._lock:
                    self._cancel_events.pop(key, None)

        try:
            return self._executor.submit(_run)
        except RuntimeError:
            with self._lock:
                self._cancel_events.pop(key, None)
            raise

    def grade(self, key, code: str, language: str, problem: Problem) -> Future:
        return self.submit(key, self.orchestrator.grade_submission, code, language, problem)

    def cancel(self, key) -> bool:
        with self._lock:
            event = self._cancel_events.get(key)
        if event is None:
            return False
        event.set()
        return True

    def shutdown(self, wait: bool = True):
        with self._lock:
            for event in self._cancel_events.values():
                event.set()
        self._executor.shutdown(wait=wait)
