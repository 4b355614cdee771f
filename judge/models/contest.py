from datetime import datetime, timedelta

from judge.extensions import db
from judge.engine import common


class Contest(db.Model):
    """A timed contest over an ordered list of problems."""

    __tablename__ = 'contest'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    duration_ms = db.Column(db.Integer, nullable=False, default=3600000)
    end_time = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    problems = db.relationship(
        'ContestProblem', back_populates='contest',
        cascade='all, delete-orphan', order_by='ContestProblem.order',
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.end_time is None and self.start_time is not None:
            self.end_time = self.start_time + timedelta(
                milliseconds=self.duration_ms or 3600000
            )

    def to_snapshot(self) -> common.Contest:
        return common.Contest(
            id=self.id,
            title=self.title,
            start_time=self.start_time,
            end_time=self.end_time,
            problems=tuple(
                common.ContestProblem(
                    problem_id=entry.problem_id,
                    order=entry.order,
                    points=entry.points,
                )
                for entry in self.problems
            ),
        )

    def __repr__(self) -> str:
        return f'<Contest {self.id} {self.title!r}>'


class ContestProblem(db.Model):
    __tablename__ = 'contest_problem'
    __table_args__ = (
        db.UniqueConstraint('contest_id', 'problem_id', name='uq_contest_problem'),
    )

    id = db.Column(db.Integer, primary_key=True)
    contest_id = db.Column(
        db.Integer, db.ForeignKey('contest.id'), nullable=False, index=True,
    )
    problem_id = db.Column(
        db.Integer, db.ForeignKey('problem.id'), nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, default=0)
    points = db.Column(db.Integer, nullable=False, default=100)

    contest = db.relationship('Contest', back_populates='problems')
    problem = db.relationship('Problem')

    def __repr__(self) -> str:
        return f'<ContestProblem contest={self.contest_id} problem={self.problem_id}>'
