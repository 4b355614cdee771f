"""Shared test fixtures for the contest judge test suite."""

import sys
from datetime import datetime, timedelta

import pytest

from judge import create_app
from judge.extensions import db as _db
from judge.engine.common import Problem, TestCase
from judge.engine.orchestrator import Orchestrator
from judge.engine.sandbox import Sandbox
from judge.languages.base import CompiledAdapter
from judge.languages.python import PythonAdapter
from judge.models import (
    Contest,
    ContestProblem,
    Problem as ProblemModel,
    TestCase as TestCaseModel,
)


class CompiledPythonAdapter(CompiledAdapter):
    """A compiled-language stand-in: ``py_compile`` is the build step."""

    LANGUAGE_NAME = 'compiled-python'
    DISPLAY_NAME = 'Python (byte-compiled)'
    SOURCE_SUFFIX = '.py'
    COMMENT_MARKER = '#'

    def compile_command(self, source_path, workdir):
        return [sys.executable, '-m', 'py_compile', str(source_path)]

    def run_command(self, source_path, workdir):
        return [sys.executable, str(source_path)]


@pytest.fixture()
def app():
    """Create a Flask application configured for testing."""
    application = create_app('testing')
    yield application
    application.extensions['judge']['pool'].shutdown(wait=True)


@pytest.fixture()
def db(app):
    """Provide a clean database for each test."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def sandbox(tmp_path):
    return Sandbox(base_dir=tmp_path / 'workspaces', compile_timeout_ms=20000)


@pytest.fixture()
def adapters():
    return {
        'python': PythonAdapter(interpreter=sys.executable),
        'compiled-python': CompiledPythonAdapter(),
    }


@pytest.fixture()
def orchestrator(adapters, sandbox):
    return Orchestrator(adapters, sandbox=sandbox, max_grading_ms=120000)


def build_problem(cases, points=100, harness='', time_limit_ms=3000, problem_id='p1'):
    """Build a problem snapshot from ``(input, expected, points)`` triples."""
    return Problem(
        id=problem_id,
        test_cases=tuple(
            TestCase(id=f't{idx}', input=inp, expected_output=out, points=pts)
            for idx, (inp, out, pts) in enumerate(cases, 1)
        ),
        harness=harness,
        time_limit_ms=time_limit_ms,
        points=points,
    )


@pytest.fixture()
def make_problem():
    return build_problem


@pytest.fixture()
def sample_contest(app, db):
    """A running contest with one three-test problem worth 40/30/30.

    Returns a dict of plain IDs so they survive session boundaries.
    """
    problem = ProblemModel(
        title='Echo small numbers',
        description='Print the input number.',
        difficulty='Easy',
        time_limit_ms=3000,
        points=100,
    )
    problem.test_cases = [
        TestCaseModel(position=0, input='1\n', expected_output='1\n', points=40),
        TestCaseModel(position=1, input='2\n', expected_output='2\n', points=30),
        TestCaseModel(position=2, input='3\n', expected_output='3\n', points=30, is_hidden=True),
    ]
    spare = ProblemModel(title='Unused', points=50, time_limit_ms=1000)
    db.session.add_all([problem, spare])
    db.session.flush()

    now = datetime.utcnow()
    contest = Contest(
        title='Weekly Round',
        description='A test contest',
        start_time=now - timedelta(minutes=10),
        duration_ms=2 * 3600 * 1000,
    )
    contest.problems = [
        ContestProblem(problem_id=problem.id, order=1, points=100),
        ContestProblem(problem_id=spare.id, order=2, points=50),
    ]
    db.session.add(contest)
    db.session.commit()

    return {
        'contest_id': contest.id,
        'problem_id': problem.id,
        'spare_problem_id': spare.id,
        'now': now,
    }
