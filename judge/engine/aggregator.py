"""Merges submission outcomes into a user's contest result.

All functions are pure: they take a :class:`ContestResult` and return a new
one. Reading and writing the stored record, and serializing concurrent
writers, belongs to the store.

Per problem the rules are:

* ``score`` only goes up (best submission kept).
* ``time_spent`` accumulates every submission's execution time.
* ``submission_count`` counts every submission.
* ``first_accepted_at`` is set once and never cleared.
* ``status`` moves forward only: not_attempted < attempted < partial <
  accepted.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable

from judge.engine.common import (
    ContestResult, GradingStatus, ProblemResult, SubmissionOutcome,
)
from judge.engine.errors import ContestClosed


def new_contest_result(user_id, contest_id, entries: Iterable[tuple], started_at=None) -> ContestResult:
    """Join-time result with a ``not_attempted`` entry per ``(problem_id, max_score)``."""
    problem_results = {
        problem_id: ProblemResult(problem_id=problem_id, max_score=int(max_points or 0))
        for problem_id, max_points in entries
    }
    return ContestResult(
        user_id=user_id,
        contest_id=contest_id,
        problem_results=problem_results,
        started_at=started_at or datetime.utcnow(),
    )


def recompute_totals(result: ContestResult) -> ContestResult:
    entries = result.problem_results.values()
    return replace(
        result,
        total_score=sum(p.score for p in entries),
        total_time=sum(p.time_spent for p in entries),
    )


def merge_problem_result(previous: ProblemResult, outcome: SubmissionOutcome,
                         is_first_accept: bool | None = None, now=None) -> ProblemResult:
    best = max(previous.score, outcome.score)
    submitted = outcome.grade
    status = submitted if submitted.rank > previous.status.rank else previous.status

    if is_first_accept is None:
        is_first_accept = status is GradingStatus.ACCEPTED
    first_accepted_at = previous.first_accepted_at
    if first_accepted_at is None and is_first_accept and status is GradingStatus.ACCEPTED:
        first_accepted_at = now or datetime.utcnow()

    return replace(
        previous,
        score=best,
        time_spent=previous.time_spent + int(outcome.total_execution_time_ms or 0),
        submission_count=previous.submission_count + 1,
        first_accepted_at=first_accepted_at,
        status=status,
    )


def apply_submission(contest_result: ContestResult, problem_id, outcome: SubmissionOutcome,
                     is_first_accept: bool | None = None, now=None,
                     max_score: int | None = None) -> ContestResult:
    """Return *contest_result* with *outcome* merged into *problem_id*'s entry.

    Args:
        is_first_accept: Whether this submission may stamp
            ``first_accepted_at``; derived from the merged status when None.
        now: Timestamp for ``first_accepted_at``; defaults to utcnow.
        max_score: Max score for an entry that has to be synthesized;
            falls back to the outcome's max score.

    Raises:
        ContestClosed: the result is already completed.
    """
    if contest_result.is_completed:
        raise ContestClosed(
            f"Contest result for user {contest_result.user_id} in contest "
            f"{contest_result.contest_id} is completed"
        )

    key = _find_key(contest_result, problem_id)
    if key is None:
        key = problem_id
        previous = ProblemResult(
            problem_id=problem_id,
            max_score=int(max_score if max_score is not None else outcome.max_score),
        )
    else:
        previous = contest_result.problem_results[key]

    merged = merge_problem_result(previous, outcome, is_first_accept, now)
    problem_results = dict(contest_result.problem_results)
    problem_results[key] = merged
    return recompute_totals(replace(contest_result, problem_results=problem_results))


def complete_contest_result(contest_result: ContestResult, now=None, penalties: int | None = None) -> ContestResult:
    """Close the result; later submissions are rejected. Idempotent."""
    if contest_result.is_completed:
        return contest_result
    return replace(
        recompute_totals(contest_result),
        is_completed=True,
        completed_at=now or datetime.utcnow(),
        penalties=contest_result.penalties if penalties is None else int(penalties),
    )


def _find_key(contest_result: ContestResult, problem_id):
    if problem_id in contest_result.problem_results:
        return problem_id
    # ids coming from a request layer may be strings
    for key in contest_result.problem_results:
        if str(key) == str(problem_id):
            return key
    return None
