import json
from datetime import datetime

from judge.extensions import db
from judge.engine.common import SubmissionStatus


class Submission(db.Model):
    """One grading attempt. Written once with its verdict, never edited after."""

    __tablename__ = 'submission'
    __table_args__ = (
        db.Index('ix_submission_user_contest_problem', 'user_id', 'contest_id', 'problem_id'),
        db.Index('ix_submission_contest_status', 'contest_id', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    contest_id = db.Column(db.Integer, db.ForeignKey('contest.id'), nullable=True)
    problem_id = db.Column(db.Integer, db.ForeignKey('problem.id'), nullable=False)
    language = db.Column(db.String(20), nullable=False)
    code = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.String(30), nullable=False, default=SubmissionStatus.PENDING.value,
    )  # pending | running | accepted | wrong_answer | time_limit_exceeded | runtime_error | compilation_error
    score = db.Column(db.Integer, nullable=False, default=0)
    max_score = db.Column(db.Integer, nullable=False, default=0)
    total_execution_time_ms = db.Column(db.Integer, nullable=False, default=0)
    total_memory_used_mb = db.Column(db.Float, nullable=False, default=0.0)
    test_results_json = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    evaluated_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_final(self) -> bool:
        return self.evaluated_at is not None

    @property
    def test_results(self):
        """Parse test_results_json into a list of dicts."""
        if self.test_results_json:
            try:
                return json.loads(self.test_results_json)
            except (json.JSONDecodeError, TypeError):
                return []
        return []

    @test_results.setter
    def test_results(self, value):
        self.test_results_json = json.dumps(value, ensure_ascii=False) if value is not None else None

    def __repr__(self) -> str:
        return (
            f'<Submission {self.id} status={self.status!r} '
            f'score={self.score}/{self.max_score}>'
        )
