"""Tests for merging submission outcomes into contest results."""

import gc
import threading
from datetime import datetime, timedelta

import pytest

from judge.engine import aggregator
from judge.engine.common import GradingStatus, SubmissionOutcome, SubmissionStatus
from judge.engine.errors import ContestClosed
from judge.engine.locks import KeyedLocks, get_contest_result_lock
from judge.engine.scoring import grade_for

T0 = datetime(2026, 3, 1, 12, 0, 0)


def _outcome(score, max_score=100, time_ms=100):
    grade = grade_for(score, max_score)
    return SubmissionOutcome(
        language='python',
        code='',
        test_results=(),
        score=score,
        max_score=max_score,
        grade=grade,
        status=SubmissionStatus.ACCEPTED if grade is GradingStatus.ACCEPTED else SubmissionStatus.WRONG_ANSWER,
        total_execution_time_ms=time_ms,
    )


@pytest.fixture()
def joined():
    return aggregator.new_contest_result('u1', 'c1', [('p1', 100), ('p2', 50)], started_at=T0)


class TestNewContestResult:
    def test_every_problem_not_attempted(self, joined):
        assert set(joined.problem_results) == {'p1', 'p2'}
        for entry in joined.problem_results.values():
            assert entry.status is GradingStatus.NOT_ATTEMPTED
            assert entry.score == 0
            assert entry.submission_count == 0
            assert entry.first_accepted_at is None
        assert joined.problem_results['p2'].max_score == 50
        assert joined.total_score == 0
        assert not joined.is_completed
        assert joined.started_at == T0


class TestApplySubmission:
    def test_best_score_kept(self, joined):
        result = aggregator.apply_submission(joined, 'p1', _outcome(40, time_ms=120), now=T0)
        result = aggregator.apply_submission(result, 'p1', _outcome(70, time_ms=80), now=T0)
        entry = result.problem_results['p1']

        assert entry.score == 70
        assert entry.status is GradingStatus.PARTIAL
        assert entry.time_spent == 200
        assert entry.submission_count == 2
        assert result.total_score == 70
        assert result.total_time == 200

    def test_lower_score_never_replaces_best(self, joined):
        result = aggregator.apply_submission(joined, 'p1', _outcome(70), now=T0)
        result = aggregator.apply_submission(result, 'p1', _outcome(10), now=T0)
        entry = result.problem_results['p1']
        assert entry.score == 70
        assert entry.status is GradingStatus.PARTIAL
        assert entry.submission_count == 2

    def test_status_never_regresses(self, joined):
        result = aggregator.apply_submission(joined, 'p1', _outcome(100), now=T0)
        result = aggregator.apply_submission(result, 'p1', _outcome(0), now=T0)
        assert result.problem_results['p1'].status is GradingStatus.ACCEPTED

    def test_zero_score_marks_attempted(self, joined):
        result = aggregator.apply_submission(joined, 'p2', _outcome(0, max_score=50), now=T0)
        assert result.problem_results['p2'].status is GradingStatus.ATTEMPTED

    def test_first_accepted_at_set_once(self, joined):
        first = T0 + timedelta(minutes=5)
        later = T0 + timedelta(minutes=30)
        result = aggregator.apply_submission(joined, 'p1', _outcome(100), now=first)
        result = aggregator.apply_submission(result, 'p1', _outcome(100), now=later)
        result = aggregator.apply_submission(result, 'p1', _outcome(20), now=later)
        assert result.problem_results['p1'].first_accepted_at == first

    def test_first_accepted_at_explicit_flag(self, joined):
        result = aggregator.apply_submission(
            joined, 'p1', _outcome(100), is_first_accept=False, now=T0,
        )
        assert result.problem_results['p1'].first_accepted_at is None

    def test_partial_does_not_stamp_accept_time(self, joined):
        result = aggregator.apply_submission(joined, 'p1', _outcome(99), now=T0)
        assert result.problem_results['p1'].first_accepted_at is None

    def test_missing_entry_is_synthesized(self, joined):
        result = aggregator.apply_submission(joined, 'p9', _outcome(30), now=T0, max_score=60)
        entry = result.problem_results['p9']
        assert entry.max_score == 60
        assert entry.score == 30
        assert entry.submission_count == 1
        # existing entries are untouched
        assert result.problem_results['p1'] == joined.problem_results['p1']

    def test_synthesized_entry_defaults_to_outcome_max(self, joined):
        result = aggregator.apply_submission(joined, 'p9', _outcome(5, max_score=10), now=T0)
        assert result.problem_results['p9'].max_score == 10

    def test_string_problem_id_matches_int_key(self):
        result = aggregator.new_contest_result(1, 2, [(7, 100)], started_at=T0)
        result = aggregator.apply_submission(result, '7', _outcome(100), now=T0)
        assert set(result.problem_results) == {7}

    def test_totals_span_problems(self, joined):
        result = aggregator.apply_submission(joined, 'p1', _outcome(60, time_ms=10), now=T0)
        result = aggregator.apply_submission(result, 'p2', _outcome(50, max_score=50, time_ms=15), now=T0)
        assert result.total_score == 110
        assert result.total_time == 25

    def test_input_is_not_mutated(self, joined):
        aggregator.apply_submission(joined, 'p1', _outcome(100), now=T0)
        assert joined.problem_results['p1'].score == 0
        assert joined.total_score == 0

    def test_completed_result_rejects(self, joined):
        closed = aggregator.complete_contest_result(joined, now=T0)
        with pytest.raises(ContestClosed):
            aggregator.apply_submission(closed, 'p1', _outcome(100), now=T0)


class TestCompleteContestResult:
    def test_complete(self, joined):
        result = aggregator.apply_submission(joined, 'p1', _outcome(40, time_ms=30), now=T0)
        done = aggregator.complete_contest_result(result, now=T0, penalties=2)
        assert done.is_completed
        assert done.completed_at == T0
        assert done.penalties == 2
        assert done.total_score == 40

    def test_idempotent(self, joined):
        done = aggregator.complete_contest_result(joined, now=T0)
        again = aggregator.complete_contest_result(done, now=T0 + timedelta(hours=1), penalties=9)
        assert again is done


class TestKeyedLocks:
    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        first = locks.get(('u', 'c'))
        other = locks.get(('u', 'd'))
        assert locks.get(('u', 'c')) is first
        assert other is not first
        assert len(locks) == 2

    def test_registry_shrinks_when_locks_released(self):
        locks = KeyedLocks()
        held = locks.get(('u0', 'c'))
        for n in range(1, 1000):
            with locks.get((f'u{n}', 'c')):
                pass
        gc.collect()
        assert len(locks) == 1
        assert locks.get(('u0', 'c')) is held

        del held
        gc.collect()
        assert len(locks) == 0

    def test_contest_result_locks_do_not_accumulate(self):
        from judge.engine.locks import _contest_result_locks

        gc.collect()
        before = len(_contest_result_locks)
        for user_id in range(500):
            with get_contest_result_lock(user_id, 'c-shrink'):
                pass
        gc.collect()
        assert len(_contest_result_locks) == before

    def test_contest_result_lock_normalizes_ids(self):
        assert get_contest_result_lock(1, 2) is get_contest_result_lock('1', '2')

    def test_serializes_read_merge_write(self, joined):
        state = {'result': joined}
        lock = get_contest_result_lock('u1', 'c1')

        def submit(score):
            with lock:
                state['result'] = aggregator.apply_submission(
                    state['result'], 'p1', _outcome(score, time_ms=1), now=T0,
                )

        threads = [threading.Thread(target=submit, args=(n,)) for n in range(0, 100, 5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entry = state['result'].problem_results['p1']
        assert entry.submission_count == len(threads)
        assert entry.time_spent == len(threads)
        assert entry.score == 95
