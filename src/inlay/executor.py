"""Isolated execution of target entry files.

Runs a resolved target script, captures everything it writes to stdout,
and turns failures into an :class:`ErrorInfo` instead of raising. Two
strategies ship with inlay:

- ``subprocess``: a child interpreter with its own working directory.
  The host's working directory is never touched.
- ``inprocess``: ``runpy`` in a fresh namespace under ``redirect_stdout``.
  The working directory is process-global, so the switch-run-restore
  sequence is serialized behind a module-level lock.

Execution is attempted exactly once; targets may have side effects.
"""

import contextlib
import io
import logging
import os
import runpy
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .errors import ConfigurationError
from .resolver import ResolvedTarget

logger = logging.getLogger(__name__)

_CWD_LOCK = threading.Lock()


@dataclass
class ErrorInfo:
    """Description of a fault raised by the target."""

    kind: str
    message: str

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind}: {self.message}"
        return self.kind


@dataclass
class ExecutionResult:
    """Output of one execution. Owned by the request that produced it."""

    output: str = ""
    fault: ErrorInfo | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.fault is None


class Executor(ABC):
    """Strategy interface for running a target file."""

    name: str

    @abstractmethod
    def execute(self, target: ResolvedTarget) -> ExecutionResult:
        """Run ``target`` once and return its captured output."""


class InProcessExecutor(Executor):
    """Run the target with ``runpy`` inside the host interpreter.

    The target gets its own module namespace, so its top-level names do not
    leak into the caller. Process-wide state (``sys.modules``, environment,
    module globals it imports) is shared with the host. So is
    ``sys.stdout``: while a target runs, anything another host thread prints
    is captured into that target's output. Use :class:`SubprocessExecutor`
    when the host prints from other threads.
    """

    name = "inprocess"

    def execute(self, target: ResolvedTarget) -> ExecutionResult:
        result = ExecutionResult()
        buffer = io.StringIO()

        with _CWD_LOCK:
            try:
                previous = os.getcwd()
            except OSError as e:
                previous = None
                _warn(result, f"Cannot read working directory: {e}")

            try:
                os.chdir(target.directory)
            except OSError as e:
                _warn(result, f"Cannot switch to {target.directory}: {e}")

            # Sibling imports resolve the way they do under `python file.py`
            sys.path.insert(0, str(target.directory))

            try:
                with contextlib.redirect_stdout(buffer):
                    runpy.run_path(str(target.path), run_name="__main__")
            except SystemExit as e:
                if e.code not in (None, 0):
                    result.fault = ErrorInfo("SystemExit", str(e.code))
            except Exception as e:
                result.fault = ErrorInfo(type(e).__name__, str(e))
            finally:
                with contextlib.suppress(ValueError):
                    sys.path.remove(str(target.directory))
                if previous is not None:
                    try:
                        os.chdir(previous)
                    except OSError as e:
                        _warn(result, f"Cannot restore working directory: {e}")

        result.output = buffer.getvalue()
        return result


class SubprocessExecutor(Executor):
    """Run the target in a child interpreter with its own working directory."""

    name = "subprocess"

    def __init__(self, python: str | None = None, timeout: float | None = None):
        self.python = python or sys.executable
        self.timeout = timeout

    def execute(self, target: ResolvedTarget) -> ExecutionResult:
        result = ExecutionResult()
        cwd: str | None = str(target.directory)
        if not os.path.isdir(cwd):
            _warn(result, f"Cannot switch to {cwd}: not a directory")
            cwd = None

        try:
            proc = subprocess.run(
                [self.python, str(target.path)],
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env={**os.environ, "PYTHONIOENCODING": "utf-8"},
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            result.output = _decode(e.stdout)
            result.fault = ErrorInfo("Timeout", f"exceeded {self.timeout} seconds")
            return result
        except OSError as e:
            result.fault = ErrorInfo(type(e).__name__, str(e))
            return result

        result.output = proc.stdout
        if proc.returncode != 0:
            result.fault = _fault_from_stderr(proc.stderr, proc.returncode)
        return result


def _warn(result: ExecutionResult, message: str) -> None:
    logger.warning(message)
    result.warnings.append(message)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _fault_from_stderr(stderr: str, returncode: int) -> ErrorInfo:
    """Build an ErrorInfo from the last line of a traceback."""
    lines = [line.strip() for line in (stderr or "").splitlines() if line.strip()]
    if not lines:
        return ErrorInfo("ExitStatus", f"exit status {returncode}")
    kind, sep, message = lines[-1].partition(": ")
    if sep and kind.replace(".", "").isidentifier():
        return ErrorInfo(kind.rsplit(".", 1)[-1], message)
    return ErrorInfo("ExitStatus", lines[-1])


def get_executor(name: str, timeout: float | None = None) -> Executor:
    """Build an executor by strategy name.

    Raises:
        ConfigurationError: If the name is unknown.
    """
    if name == "subprocess":
        return SubprocessExecutor(timeout=timeout)
    if name == "inprocess":
        return InProcessExecutor()
    raise ConfigurationError(f"Unknown executor: {name!r}")
