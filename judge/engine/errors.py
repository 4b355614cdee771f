from judge.engine.common import FaultStatus


class JudgeError(Exception):
    """Base class for judging errors."""


# Per-test classifications. The orchestrator turns these into TestResult
# faults instead of letting them escape.

class CompilationError(JudgeError):
    fault = FaultStatus.COMPILATION_ERROR


class RuntimeFault(JudgeError):
    fault = FaultStatus.RUNTIME_ERROR


class TimedOut(JudgeError):
    fault = FaultStatus.TIME_LIMIT_EXCEEDED


class InfrastructureError(JudgeError):
    """The sandbox itself failed (workspace, spawn, I/O)."""


# Submission-level errors, raised to the caller before or instead of a result.

class UnsupportedLanguage(JudgeError):
    def __init__(self, language):
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class GradingRejected(JudgeError):
    """Grading would exceed the operational latency ceiling."""


class GradingCancelled(JudgeError):
    pass


# Contest bookkeeping errors, raised by the aggregator and the service layer.

class ContestClosed(JudgeError):
    pass


class ContestNotRunning(JudgeError):
    pass


class AlreadyJoined(JudgeError):
    pass


class NotFound(JudgeError):
    pass
