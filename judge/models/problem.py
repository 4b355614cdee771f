import json
from datetime import datetime

from judge.extensions import db
from judge.engine import common


class Problem(db.Model):
    """A judgeable problem with its ordered test cases and harness."""

    __tablename__ = 'problem'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    difficulty = db.Column(db.String(20), nullable=True)  # Easy | Medium | Hard
    harness_json = db.Column(db.Text, nullable=True)  # JSON: str or {language: str}
    code_templates_json = db.Column(db.Text, nullable=True)  # JSON: {language: str}
    time_limit_ms = db.Column(db.Integer, nullable=True)
    memory_limit_mb = db.Column(db.Integer, nullable=False, default=256)
    points = db.Column(db.Integer, nullable=False, default=100)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow,
    )

    # Relationships
    test_cases = db.relationship(
        'TestCase', back_populates='problem',
        cascade='all, delete-orphan', order_by='TestCase.position',
    )

    @property
    def harness(self):
        """Harness as stored: a string for every language or a per-language dict."""
        if not self.harness_json:
            return ''
        try:
            return json.loads(self.harness_json)
        except (json.JSONDecodeError, TypeError):
            return self.harness_json

    @harness.setter
    def harness(self, value):
        self.harness_json = json.dumps(value, ensure_ascii=False) if value else None

    @property
    def code_templates(self):
        if self.code_templates_json:
            try:
                return json.loads(self.code_templates_json)
            except (json.JSONDecodeError, TypeError):
                return {}
        return {}

    @code_templates.setter
    def code_templates(self, value):
        self.code_templates_json = json.dumps(value, ensure_ascii=False) if value else None

    @property
    def max_score(self) -> int:
        if self.test_cases:
            return sum(tc.points or 0 for tc in self.test_cases)
        return self.points or 0

    def to_snapshot(self) -> common.Problem:
        """Immutable copy the engine grades against."""
        return common.Problem(
            id=self.id,
            title=self.title,
            test_cases=tuple(tc.to_snapshot() for tc in self.test_cases),
            harness=self.harness,
            code_templates=self.code_templates,
            time_limit_ms=self.time_limit_ms,
            memory_limit_mb=self.memory_limit_mb,
            points=self.points if self.points is not None else common.DEFAULT_PROBLEM_POINTS,
        )

    def __repr__(self) -> str:
        return f'<Problem {self.id} {self.title!r}>'


class TestCase(db.Model):
    """One input/expected-output pair of a problem."""

    __tablename__ = 'test_case'
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    problem_id = db.Column(
        db.Integer, db.ForeignKey('problem.id'), nullable=False, index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    input = db.Column(db.Text, nullable=False, default='')
    expected_output = db.Column(db.Text, nullable=False, default='')
    is_hidden = db.Column(db.Boolean, nullable=False, default=False)
    points = db.Column(db.Integer, nullable=False, default=1)

    problem = db.relationship('Problem', back_populates='test_cases')

    def to_snapshot(self) -> common.TestCase:
        return common.TestCase(
            id=self.id,
            input=self.input,
            expected_output=self.expected_output,
            is_hidden=bool(self.is_hidden),
            points=self.points if self.points is not None else 1,
        )

    def __repr__(self) -> str:
        return f'<TestCase {self.id} problem={self.problem_id} points={self.points}>'
