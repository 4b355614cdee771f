from datetime import datetime

from judge.extensions import db
from judge.engine import common


class ContestResult(db.Model):
    """A user's standing in one contest.

    Rows are versioned (``version_id``) so that two processes merging into
    the same record cannot both win; the loser gets ``StaleDataError`` on
    flush and retries from a fresh read.
    """

    __tablename__ = 'contest_result'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'contest_id', name='uq_contest_result_user_contest'),
        db.Index('ix_contest_result_ranking', 'contest_id', 'total_score', 'total_time'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    contest_id = db.Column(
        db.Integer, db.ForeignKey('contest.id'), nullable=False, index=True,
    )
    total_score = db.Column(db.Integer, nullable=False, default=0)
    total_time = db.Column(db.Integer, nullable=False, default=0)  # ms
    penalties = db.Column(db.Integer, nullable=False, default=0)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    version_id = db.Column(db.Integer, nullable=False)

    problem_results = db.relationship(
        'ProblemResult', back_populates='contest_result',
        cascade='all, delete-orphan', order_by='ProblemResult.id',
    )
    contest = db.relationship('Contest')

    __mapper_args__ = {'version_id_col': version_id}

    def to_snapshot(self) -> common.ContestResult:
        return common.ContestResult(
            user_id=self.user_id,
            contest_id=self.contest_id,
            problem_results={
                row.problem_id: row.to_snapshot() for row in self.problem_results
            },
            total_score=self.total_score or 0,
            total_time=self.total_time or 0,
            penalties=self.penalties or 0,
            is_completed=bool(self.is_completed),
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def apply_snapshot(self, snapshot: common.ContestResult):
        """Copy a merged snapshot back onto this row and its children."""
        rows = {row.problem_id: row for row in self.problem_results}
        for problem_id, entry in snapshot.problem_results.items():
            row = rows.get(problem_id)
            if row is None:
                row = ProblemResult(problem_id=problem_id)
                self.problem_results.append(row)
            row.update_from(entry)

        self.total_score = snapshot.total_score
        self.total_time = snapshot.total_time
        self.penalties = snapshot.penalties
        self.is_completed = snapshot.is_completed
        self.completed_at = snapshot.completed_at
        # always dirty the parent so the version counter moves
        self.updated_at = datetime.utcnow()

    def __repr__(self) -> str:
        return (
            f'<ContestResult user={self.user_id} contest={self.contest_id} '
            f'score={self.total_score}>'
        )


class ProblemResult(db.Model):
    __tablename__ = 'problem_result'
    __table_args__ = (
        db.UniqueConstraint(
            'contest_result_id', 'problem_id', name='uq_problem_result_result_problem',
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    contest_result_id = db.Column(
        db.Integer, db.ForeignKey('contest_result.id'), nullable=False, index=True,
    )
    problem_id = db.Column(db.Integer, db.ForeignKey('problem.id'), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    max_score = db.Column(db.Integer, nullable=False, default=0)
    time_spent = db.Column(db.Integer, nullable=False, default=0)  # ms
    submission_count = db.Column(db.Integer, nullable=False, default=0)
    first_accepted_at = db.Column(db.DateTime, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default=common.GradingStatus.NOT_ATTEMPTED.value,
    )  # not_attempted | attempted | partial | accepted

    contest_result = db.relationship('ContestResult', back_populates='problem_results')

    def to_snapshot(self) -> common.ProblemResult:
        return common.ProblemResult(
            problem_id=self.problem_id,
            max_score=self.max_score or 0,
            score=self.score or 0,
            time_spent=self.time_spent or 0,
            submission_count=self.submission_count or 0,
            first_accepted_at=self.first_accepted_at,
            status=common.GradingStatus(self.status or 'not_attempted'),
        )

    def update_from(self, entry: common.ProblemResult):
        self.max_score = entry.max_score
        self.score = entry.score
        self.time_spent = entry.time_spent
        self.submission_count = entry.submission_count
        self.first_accepted_at = entry.first_accepted_at
        self.status = entry.status.value

    def __repr__(self) -> str:
        return (
            f'<ProblemResult problem={self.problem_id} '
            f'status={self.status} score={self.score}/{self.max_score}>'
        )
