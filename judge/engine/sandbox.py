"""Process execution with guaranteed cleanup.

A run happens inside a :class:`SandboxSession`: a uniquely named workspace
directory holding the source file and any compiled artifact. The session is
only reachable through :meth:`Sandbox.session`, whose ``finally`` kills any
live process and removes the workspace, whatever way the block is left.

Isolation is not this module's job. Memory limits go through a
:class:`MemoryPolicy`; the default one only estimates usage from output size.
"""
from __future__ import annotations

import logging
import math
import os
import shutil
import signal
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import NamedTuple

from judge.engine.common import CompileResult, Limits, RawResult
from judge.engine.errors import GradingCancelled, InfrastructureError

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = 'run-'
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024
# seconds to wait for pipe readers once the process is gone
READER_JOIN_TIMEOUT = 2.0


def estimate_memory_mb(output: str) -> float:
    """Output size in MB, rounded up to whole KB."""
    kb = math.ceil(len(output.encode('utf-8')) / 1024)
    return round(kb / 1024, 4)


class MemoryPolicy:
    """Hook between the sandbox and whatever enforces memory limits."""

    name = 'estimate'
    enforced = False

    def wrap_command(self, command: list[str], limits: Limits) -> list[str]:
        return command

    def measure(self, stdout: str, limits: Limits) -> tuple[float, bool]:
        """Return ``(memory_mb, is_estimate)`` for a finished run."""
        return estimate_memory_mb(stdout), True


class EstimatedMemoryPolicy(MemoryPolicy):
    pass


class PrlimitMemoryPolicy(MemoryPolicy):
    """Caps the address space with util-linux ``prlimit``.

    The limit is enforced by the kernel; the reported figure is still the
    output-size estimate.
    """

    name = 'prlimit'
    enforced = True

    def __init__(self, executable: str = 'prlimit'):
        self.executable = executable

    def wrap_command(self, command, limits):
        limit_bytes = int(limits.memory_limit_mb) * 1024 * 1024
        return [self.executable, f'--as={limit_bytes}', '--', *command]


MEMORY_POLICIES = {
    'estimate': EstimatedMemoryPolicy,
    'prlimit': PrlimitMemoryPolicy,
}


def get_memory_policy(name: str) -> MemoryPolicy:
    cls = MEMORY_POLICIES.get(name)
    if cls is None:
        raise ValueError(f"Unknown memory policy: {name}")
    return cls()


def _kill_process_group(proc: subprocess.Popen):
    try:
        if os.name == 'posix':
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


class _Execution(NamedTuple):
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool
    output_exceeded: bool
    wall_time_ms: int


class _PipeReader(threading.Thread):
    """Drains one pipe, keeping at most *limit* bytes.

    Reading continues past the limit so the writer never blocks; *overflow*
    is set as soon as the limit is crossed.
    """

    def __init__(self, pipe, limit: int, overflow: threading.Event):
        super().__init__(daemon=True)
        self.pipe = pipe
        self.limit = limit
        self.overflow = overflow
        self.size = 0
        self._chunks = []

    def run(self):
        fd = self.pipe.fileno()
        try:
            while True:
                chunk = os.read(fd, READ_CHUNK_BYTES)
                if not chunk:
                    break
                room = self.limit - self.size
                if room > 0:
                    self._chunks.append(chunk[:room])
                self.size += len(chunk)
                if self.size > self.limit:
                    self.overflow.set()
        except OSError as e:
            logger.debug(f"Stopped reading pipe: {e}")
        finally:
            self.pipe.close()

    def text(self) -> str:
        return b''.join(self._chunks).decode('utf-8', errors='replace')


def _feed_stdin(pipe, data: bytes):
    try:
        if data:
            pipe.write(data)
    except BrokenPipeError:
        logger.debug("Program exited before reading all of its input")
    finally:
        with suppress(BrokenPipeError):
            pipe.close()


class SandboxSession:
    """One workspace: materialize, compile once, then run test inputs."""

    def __init__(self, sandbox: Sandbox, adapter, workdir: Path, limits: Limits,
                 cancel_event: threading.Event | None = None):
        self.sandbox = sandbox
        self.adapter = adapter
        self.workdir = workdir
        self.limits = limits
        self.cancel_event = cancel_event
        self.source_path = None
        self.compile_result = CompileResult(ok=True)
        self._process = None

    def prepare(self, source: str) -> CompileResult:
        try:
            self.source_path = self.adapter.materialize(self.workdir, source)
        except OSError as e:
            raise InfrastructureError(f"Failed to write source file: {e}") from e

        command = self.adapter.compile_command(self.source_path, self.workdir)
        if command is None:
            return self.compile_result

        execution = self._execute(command, b'', self.sandbox.compile_timeout_ms)
        wall_ms = execution.wall_time_ms
        if execution.timed_out:
            self.compile_result = CompileResult(
                ok=False,
                error=f"Compilation timed out after {self.sandbox.compile_timeout_ms} ms",
                wall_time_ms=wall_ms,
            )
        elif execution.output_exceeded:
            self.compile_result = CompileResult(
                ok=False,
                error=f"Compilation output exceeded {self.sandbox.max_output_bytes} bytes",
                wall_time_ms=wall_ms,
            )
        elif execution.exit_code != 0:
            detail = (execution.stderr or execution.stdout).strip() or f"exit code {execution.exit_code}"
            self.compile_result = CompileResult(
                ok=False, error=f"Compilation failed: {detail}", wall_time_ms=wall_ms,
            )
        else:
            self.compile_result = CompileResult(ok=True, wall_time_ms=wall_ms)

        if not self.compile_result.ok:
            self.adapter.logger.info(f"Compilation failed in {self.workdir.name}")
        return self.compile_result

    def run(self, test_case) -> RawResult:
        if self.source_path is None:
            raise InfrastructureError("Session has no materialized source")
        if not self.compile_result.ok:
            return RawResult(stderr=self.compile_result.error or '', compile_error=self.compile_result.error)

        policy = self.sandbox.memory_policy
        command = policy.wrap_command(
            self.adapter.run_command(self.source_path, self.workdir), self.limits,
        )
        stdin = self.adapter.encode_input(test_case.input)
        execution = self._execute(command, stdin, self.limits.time_limit_ms)
        memory_mb, estimated = policy.measure(execution.stdout, self.limits)
        return RawResult(
            stdout=execution.stdout,
            stderr=execution.stderr,
            exit_code=execution.exit_code,
            timed_out=execution.timed_out,
            output_limit_exceeded=execution.output_exceeded,
            wall_time_ms=execution.wall_time_ms,
            memory_used_mb=memory_mb,
            memory_estimated=estimated,
        )

    def _execute(self, command, stdin: bytes, timeout_ms: int) -> _Execution:
        """Run *command* to completion, deadline or output limit."""
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                command,
                cwd=str(self.workdir),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise InfrastructureError(f"Failed to start {command[0]}: {e}") from e

        self._process = proc
        overflow = threading.Event()
        limit = self.sandbox.max_output_bytes
        stdout_reader = _PipeReader(proc.stdout, limit, overflow)
        stderr_reader = _PipeReader(proc.stderr, limit, overflow)
        feeder = threading.Thread(target=_feed_stdin, args=(proc.stdin, stdin), daemon=True)
        for thread in (stdout_reader, stderr_reader, feeder):
            thread.start()

        deadline = start + timeout_ms / 1000.0
        timed_out = False
        try:
            while True:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    _kill_process_group(proc)
                    raise GradingCancelled("Grading cancelled")
                if overflow.is_set():
                    _kill_process_group(proc)
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    _kill_process_group(proc)
                    timed_out = True
                    break
                try:
                    proc.wait(timeout=min(self.sandbox.poll_interval, remaining))
                    break
                except subprocess.TimeoutExpired:
                    continue
        finally:
            if proc.poll() is None:
                _kill_process_group(proc)
            proc.wait()
            for thread in (stdout_reader, stderr_reader, feeder):
                thread.join(timeout=READER_JOIN_TIMEOUT)
            self._process = None

        wall_ms = int((time.monotonic() - start) * 1000)
        output_exceeded = overflow.is_set()
        return _Execution(
            stdout=stdout_reader.text(),
            stderr=stderr_reader.text(),
            exit_code=None if (timed_out or output_exceeded) else proc.returncode,
            timed_out=timed_out,
            output_exceeded=output_exceeded,
            wall_time_ms=wall_ms,
        )

    def close(self):
        proc = self._process
        if proc is not None and proc.poll() is None:
            _kill_process_group(proc)
            proc.wait()
        self._process = None


class Sandbox:
    """Allocates workspaces and runs adapters' commands under deadlines.

    Args:
        base_dir: Directory that receives one sub-directory per session.
        compile_timeout_ms: Deadline for the compile step.
        memory_policy: A :class:`MemoryPolicy`; estimation only by default.
        poll_interval: Seconds between cancellation checks while waiting.
        max_output_bytes: Cap on what is kept of stdout and of stderr; a
            process writing more is killed.
    """

    def __init__(self, base_dir=None, compile_timeout_ms: int = 15000,
                 memory_policy: MemoryPolicy | None = None, poll_interval: float = 0.05,
                 max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES):
        self.base_dir = Path(base_dir or os.path.join(tempfile.gettempdir(), 'contest-judge'))
        self.compile_timeout_ms = compile_timeout_ms
        self.memory_policy = memory_policy or EstimatedMemoryPolicy()
        self.poll_interval = poll_interval
        self.max_output_bytes = max_output_bytes

    @classmethod
    def from_config(cls, config) -> Sandbox:
        return cls(
            base_dir=config.get('JUDGE_WORKSPACE_DIR'),
            compile_timeout_ms=config.get('JUDGE_COMPILE_TIMEOUT_MS', 15000),
            memory_policy=get_memory_policy(config.get('JUDGE_MEMORY_POLICY', 'estimate')),
            max_output_bytes=config.get('JUDGE_MAX_OUTPUT_BYTES', DEFAULT_MAX_OUTPUT_BYTES),
        )

    @contextmanager
    def session(self, adapter, source: str, limits: Limits,
                cancel_event: threading.Event | None = None):
        """Open a workspace, materialize and compile *source*, clean up on exit."""
        workdir = self._allocate()
        session = SandboxSession(self, adapter, workdir, limits, cancel_event)
        try:
            session.prepare(source)
            yield session
        finally:
            session.close()
            self._release(workdir)

    def run(self, source: str, adapter, test_case, limits: Limits | None = None,
            cancel_event: threading.Event | None = None) -> RawResult:
        """Single-shot form: fresh workspace, one test case."""
        with self.session(adapter, source, limits or Limits(), cancel_event) as session:
            return session.run(test_case)

    def _allocate(self) -> Path:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=str(self.base_dir)))
        except OSError as e:
            raise InfrastructureError(f"Failed to allocate workspace: {e}") from e

    def _release(self, workdir: Path):
        try:
            shutil.rmtree(workdir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove workspace {workdir}: {e}")


def sweep_stale_workspaces(base_dir, max_age_seconds: int = 3600) -> int:
    """Remove workspaces left behind by killed worker processes."""
    base = Path(base_dir)
    if not base.is_dir():
        return 0
    cutoff = time.time() - max_age_seconds
    removed = 0
    for entry in base.iterdir():
        if not entry.is_dir() or not entry.name.startswith(WORKSPACE_PREFIX):
            continue
        try:
            if entry.stat().st_mtime < cutoff:
                shutil.rmtree(entry)
                removed += 1
        except OSError as e:
            logger.warning(f"Could not sweep workspace {entry}: {e}")
    return removed
