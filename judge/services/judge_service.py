"""Submission entry point used by a request-handling layer.

Ties the engine to the stores: validate the request against the contest,
grade, record the submission and merge the outcome into the user's contest
result.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from judge.engine.aggregator import (
    apply_submission, complete_contest_result, new_contest_result,
)
from judge.engine.errors import (
    AlreadyJoined, ContestClosed, ContestNotRunning, GradingCancelled, NotFound,
)
from judge.services.stores import (
    ContestResultStore, ContestStore, ProblemStore, SubmissionStore,
)

logger = logging.getLogger(__name__)


class JudgeService:
    def __init__(self, app, orchestrator=None, pool=None):
        self.app = app
        components = app.extensions['judge']
        self.orchestrator = orchestrator or components['orchestrator']
        self.pool = pool or components['pool']
        self.persist_submissions = app.config.get('JUDGE_PERSIST_SUBMISSIONS', True)
        self.problems = ProblemStore()
        self.contests = ContestStore()
        self.results = ContestResultStore(retries=app.config.get('JUDGE_RESULT_RETRIES', 3))
        self.submissions = SubmissionStore()

    # ------------------------------------------------------------------
    # Contest participation
    # ------------------------------------------------------------------

    def join_contest(self, user_id, contest_id, now=None):
        """Create the user's contest result with every problem not attempted."""
        now = now or datetime.utcnow()
        contest = self._get_contest(contest_id)
        if now < contest.start_time:
            raise ContestNotRunning('Contest has not started yet')
        if now > contest.end_time:
            raise ContestNotRunning('Contest has already ended')
        if self.results.find(user_id, contest.id) is not None:
            raise AlreadyJoined('You have already joined this contest')

        result = self.results.create(self._initial_result(user_id, contest, now))
        logger.info(f"User {user_id} joined contest {contest.id}")
        return result

    def finalize(self, user_id, contest_id, now=None, penalties=None):
        """Close the user's contest result; later submissions are rejected."""
        now = now or datetime.utcnow()
        result = self.results.update(
            user_id, contest_id,
            merge_fn=lambda current: complete_contest_result(current, now, penalties),
        )
        logger.info(f"Finalized contest {contest_id} for user {user_id}: score={result.total_score}")
        return result

    def close_ended_contests(self, now=None) -> int:
        """Complete every open result of contests whose end time has passed."""
        now = now or datetime.utcnow()
        closed = 0
        for contest_id in self.contests.ended_contest_ids(now):
            for result in self.results.find_all(contest_id, include_completed=False):
                self.results.update(
                    result.user_id, contest_id,
                    merge_fn=lambda current: complete_contest_result(current, now),
                )
                closed += 1
        return closed

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def submit(self, user_id, contest_id, problem_id, code, language, now=None,
               cancel_event=None):
        """Grade a contest submission and fold it into the contest result.

        Returns the :class:`SubmissionOutcome`. Request-level problems
        (unknown contest or problem, contest not running, closed result,
        unsupported language, grading ceiling) raise before anything runs.
        """
        now = now or datetime.utcnow()
        contest = self._get_contest(contest_id)
        if not contest.is_running(now):
            raise ContestNotRunning('Contest is not currently running')
        entry = contest.find_problem(problem_id)
        if entry is None:
            raise NotFound('Problem not found in this contest')
        problem = self.problems.get(entry.problem_id)
        if problem is None:
            raise NotFound('Problem not found')

        self.orchestrator.validate(language, problem)
        current = self.results.find(user_id, contest.id)
        if current is not None and current.is_completed:
            raise ContestClosed('Contest result is already completed')

        submission_id = None
        if self.persist_submissions:
            submission_id = self.submissions.create_pending(
                user_id, contest.id, problem.id, language, code,
            )
            self.submissions.mark_running(submission_id)

        try:
            outcome = self.orchestrator.grade_submission(code, language, problem, cancel_event)
        except GradingCancelled:
            logger.info(f"Grading cancelled for user {user_id} on problem {problem.id}")
            if submission_id is not None:
                self.submissions.discard(submission_id)
            raise

        if submission_id is not None:
            self.submissions.finish(submission_id, outcome)

        self.results.update(
            user_id, contest.id,
            merge_fn=lambda current: apply_submission(
                current, problem.id, outcome, now=now, max_score=problem.max_score,
            ),
            create_fn=lambda: self._initial_result(user_id, contest, now),
        )
        return outcome

    def submit_async(self, user_id, contest_id, problem_id, code, language, now=None):
        """Queue :meth:`submit` on the grading pool; returns ``(key, future)``."""
        key = uuid.uuid4().hex
        future = self.pool.submit(
            key, self._submit_in_context,
            user_id, contest_id, problem_id, code, language, now,
        )
        return key, future

    def cancel(self, key) -> bool:
        return self.pool.cancel(key)

    def _submit_in_context(self, user_id, contest_id, problem_id, code, language, now,
                           cancel_event=None):
        with self.app.app_context():
            return self.submit(
                user_id, contest_id, problem_id, code, language,
                now=now, cancel_event=cancel_event,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_contest(self, contest_id):
        contest = self.contests.get(contest_id)
        if contest is None:
            raise NotFound('Contest not found')
        return contest

    def _initial_result(self, user_id, contest, now):
        """Join-time value; max score per problem follows its test case points."""
        problems = self.problems.get_many([entry.problem_id for entry in contest.problems])
        entries = []
        for entry in sorted(contest.problems, key=lambda p: p.order):
            problem = problems.get(entry.problem_id)
            max_points = problem.max_score if problem is not None else entry.points
            entries.append((entry.problem_id, max_points))
        return new_contest_result(user_id, contest.id, entries, started_at=now)
