"""SQLAlchemy-backed stores the judging engine reads from and writes to.

Stores hand out and accept engine snapshots (``judge.engine.common``); ORM
rows never leave this module.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from judge.extensions import db
from judge.models import Contest, ContestResult, Problem, Submission
from judge.engine import common
from judge.engine.errors import AlreadyJoined, NotFound
from judge.engine.locks import get_contest_result_lock

logger = logging.getLogger(__name__)


class ProblemStore:
    def get(self, problem_id) -> common.Problem | None:
        problem = db.session.get(Problem, _int_id(problem_id))
        if problem is None or not problem.is_active:
            return None
        return problem.to_snapshot()

    def get_many(self, problem_ids) -> dict:
        ids = [_int_id(pid) for pid in problem_ids]
        if not ids:
            return {}
        rows = Problem.query.filter(
            Problem.id.in_(ids), Problem.is_active.is_(True),
        ).all()
        return {row.id: row.to_snapshot() for row in rows}


class ContestStore:
    def get(self, contest_id) -> common.Contest | None:
        contest = db.session.get(Contest, _int_id(contest_id))
        if contest is None or not contest.is_active:
            return None
        return contest.to_snapshot()

    def ended_contest_ids(self, now: datetime) -> list:
        rows = Contest.query.filter(Contest.end_time < now).all()
        return [row.id for row in rows]


class ContestResultStore:
    """Read-modify-write access to one ContestResult per (user, contest).

    :meth:`update` is the only write path used while grading. Within one
    process it holds the per-key lock; across processes the row's version
    counter detects a conflicting writer and the cycle is retried.
    """

    def __init__(self, retries: int = 3):
        self.retries = max(1, retries)

    def find(self, user_id, contest_id) -> common.ContestResult | None:
        row = self._row(user_id, contest_id)
        return row.to_snapshot() if row else None

    def find_all(self, contest_id, include_completed: bool = True) -> list:
        query = ContestResult.query.filter_by(contest_id=_int_id(contest_id))
        if not include_completed:
            query = query.filter_by(is_completed=False)
        return [row.to_snapshot() for row in query.all()]

    def create(self, snapshot: common.ContestResult) -> common.ContestResult:
        """Insert the join-time record.

        Raises:
            AlreadyJoined: a record for this (user, contest) exists.
        """
        try:
            self._insert(snapshot)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise AlreadyJoined(
                f"User {snapshot.user_id} already joined contest {snapshot.contest_id}"
            ) from e
        return snapshot

    def save(self, snapshot: common.ContestResult) -> common.ContestResult:
        row = self._row(snapshot.user_id, snapshot.contest_id)
        if row is None:
            raise NotFound(
                f"No contest result for user {snapshot.user_id} "
                f"in contest {snapshot.contest_id}"
            )
        row.apply_snapshot(snapshot)
        db.session.commit()
        return snapshot

    def update(self, user_id, contest_id, merge_fn, create_fn=None) -> common.ContestResult:
        """Apply *merge_fn* to the stored value and persist the result.

        Args:
            merge_fn: ``ContestResult -> ContestResult``; must be pure, it
                may be called more than once.
            create_fn: Builds the initial value when no record exists. When
                None a missing record raises :class:`NotFound`.
        """
        lock = get_contest_result_lock(user_id, contest_id)
        with lock:
            for attempt in range(1, self.retries + 1):
                try:
                    row = self._row(user_id, contest_id)
                    if row is None:
                        if create_fn is None:
                            raise NotFound(
                                f"No contest result for user {user_id} in contest {contest_id}"
                            )
                        row = self._insert(create_fn())
                    merged = merge_fn(row.to_snapshot())
                    row.apply_snapshot(merged)
                    db.session.commit()
                    return merged
                except (StaleDataError, IntegrityError) as e:
                    db.session.rollback()
                    if attempt >= self.retries:
                        logger.error(
                            f"Giving up on contest result user={user_id} "
                            f"contest={contest_id} after {attempt} attempts: {e}"
                        )
                        raise
                    logger.warning(
                        f"Concurrent update on contest result user={user_id} "
                        f"contest={contest_id} (attempt {attempt}/{self.retries}), retrying"
                    )

    def _row(self, user_id, contest_id):
        return (
            ContestResult.query
            .filter_by(user_id=_int_id(user_id), contest_id=_int_id(contest_id))
            .populate_existing()
            .first()
        )

    def _insert(self, snapshot: common.ContestResult) -> ContestResult:
        row = ContestResult(
            user_id=_int_id(snapshot.user_id),
            contest_id=_int_id(snapshot.contest_id),
            started_at=snapshot.started_at or datetime.utcnow(),
        )
        row.apply_snapshot(snapshot)
        db.session.add(row)
        db.session.flush()
        return row


class SubmissionStore:
    """Optional persistence of submission records."""

    def create_pending(self, user_id, contest_id, problem_id, language, code) -> int:
        submission = Submission(
            user_id=_int_id(user_id),
            contest_id=_int_id(contest_id) if contest_id is not None else None,
            problem_id=_int_id(problem_id),
            language=language,
            code=code,
            status=common.SubmissionStatus.PENDING.value,
        )
        db.session.add(submission)
        db.session.commit()
        return submission.id

    def mark_running(self, submission_id):
        submission = self._get(submission_id)
        submission.status = common.SubmissionStatus.RUNNING.value
        submission.started_at = datetime.utcnow()
        db.session.commit()

    def finish(self, submission_id, outcome: common.SubmissionOutcome):
        submission = self._get(submission_id)
        if submission.is_final:
            raise ValueError(f"Submission {submission_id} has already been evaluated")
        submission.status = outcome.status.value
        submission.score = outcome.score
        submission.max_score = outcome.max_score
        submission.total_execution_time_ms = outcome.total_execution_time_ms
        submission.total_memory_used_mb = outcome.total_memory_used_mb
        submission.test_results = [r.to_dict() for r in outcome.test_results]
        submission.evaluated_at = datetime.utcnow()
        db.session.commit()

    def discard(self, submission_id):
        """Drop a record whose grading never completed."""
        submission = db.session.get(Submission, submission_id)
        if submission is not None and not submission.is_final:
            db.session.delete(submission)
            db.session.commit()

    def fail_stale_running(self, max_age_minutes: int = 30) -> int:
        """Mark records stuck in pending/running as runtime errors.

        A worker killed mid-grading leaves its record unfinished; this
        closes it so it is not mistaken for in-flight work.
        """
        cutoff = datetime.utcnow() - timedelta(minutes=max_age_minutes)
        stale = Submission.query.filter(
            Submission.evaluated_at.is_(None),
            Submission.submitted_at < cutoff,
        ).all()
        for submission in stale:
            submission.status = common.SubmissionStatus.RUNTIME_ERROR.value
            submission.error_message = 'Grading did not finish (worker stopped)'
            submission.evaluated_at = datetime.utcnow()
            logger.warning(f'Closed stale submission {submission.id}')
        if stale:
            db.session.commit()
        return len(stale)

    def _get(self, submission_id) -> Submission:
        submission = db.session.get(Submission, submission_id)
        if submission is None:
            raise NotFound(f"Submission {submission_id} not found")
        return submission


def _int_id(value):
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value
