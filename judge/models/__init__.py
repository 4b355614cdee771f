from .problem import Problem, TestCase
from .contest import Contest, ContestProblem
from .contest_result import ContestResult, ProblemResult
from .submission import Submission

__all__ = [
    'Problem',
    'TestCase',
    'Contest',
    'ContestProblem',
    'ContestResult',
    'ProblemResult',
    'Submission',
]
