"""
Process Runner: one external process per call.

Launches an executable, streams its output line by line, enforces a
timeout and reports the exit status.

Design rules:
- One subprocess per call, stdin closed
- stdout and stderr captured as they are produced
- Only the last N lines are retained (noisy tools must not grow memory)
- Non-zero exit code = ProcessFailedError
- SIGTERM → SIGKILL escalation on timeout and on cancellation
- The process is never left running past the call's return
- No PATH lookup here: executables are resolved by configuration
"""

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional, Sequence

from .cancellation import CancellationToken
from .errors import (
    LaunchFailedError,
    ProcessFailedError,
    StageCancelledError,
    StageTimeoutError,
)
from .results import ProcessResult

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

DEFAULT_TAIL_LINES = 50
DEFAULT_GRACE_SECONDS = 5.0

# How often the wait loop checks for timeout and cancellation
POLL_INTERVAL_SECONDS = 0.05


class ProcessRunner:
    """
    Runs external processes with timeout, cancellation and bounded capture.

    Stateless between calls; safe to share across concurrent pipelines.
    """

    def __init__(
        self,
        tail_lines: int = DEFAULT_TAIL_LINES,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
    ):
        """
        Args:
            tail_lines: Number of trailing output lines kept for diagnostics
            grace_seconds: Time allowed after SIGTERM before SIGKILL
        """
        if tail_lines < 1:
            raise ValueError("tail_lines must be at least 1")
        self.tail_lines = tail_lines
        self.grace_seconds = grace_seconds

    def run(
        self,
        executable: str,
        args: Sequence[str],
        stage: str,
        timeout_seconds: float,
        cwd: Optional[str] = None,
        env: Optional[dict] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_stdout_line: Optional[LineCallback] = None,
        on_stderr_line: Optional[LineCallback] = None,
        describe_failure: Optional[Callable[[], Optional[str]]] = None,
    ) -> ProcessResult:
        """
        Run one process to completion.

        Args:
            executable: Path to the executable (not looked up on PATH)
            args: Ordered argument list
            stage: Stage name used in errors and logs
            timeout_seconds: Wall-clock limit for the process
            cwd: Optional working directory
            env: Optional environment (None inherits)
            cancel_token: Token that interrupts the process when cancelled
            on_stdout_line: Called for every stdout line (without newline)
            on_stderr_line: Called for every stderr line (without newline)
            describe_failure: Called after a non-zero exit to obtain a
                better failure message than the bare exit code

        Returns:
            ProcessResult for a zero exit

        Raises:
            StageCancelledError: Token cancelled before or during the run
            LaunchFailedError: Executable could not be started
            StageTimeoutError: Timeout elapsed; process was terminated
            ProcessFailedError: Non-zero exit
        """
        if cancel_token is not None and cancel_token.is_cancelled:
            raise StageCancelledError(stage)

        command = [executable, *args]
        logger.info(f"[Runner] Executing ({stage}): {shlex.join(command)}")

        started_at = datetime.now()
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            logger.error(f"[Runner] Cannot launch {executable}: {e}")
            raise LaunchFailedError(stage, f"cannot launch {executable}: {e}") from e

        logger.info(f"[Runner] Started PID {process.pid} ({stage})")

        combined_tail: Deque[str] = deque(maxlen=self.tail_lines)
        stdout_tail: Deque[str] = deque(maxlen=self.tail_lines)
        readers = [
            threading.Thread(
                target=self._pump,
                args=(process.stdout, [combined_tail, stdout_tail], on_stdout_line),
                name=f"swc-{stage}-stdout-{process.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(process.stderr, [combined_tail], on_stderr_line),
                name=f"swc-{stage}-stderr-{process.pid}",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        # Non-blocking; escalation happens in the wait loop below
        def _interrupt() -> None:
            self._send_signal(process, signal.SIGTERM)

        if cancel_token is not None:
            cancel_token.add_callback(_interrupt)

        timed_out = False
        cancelled = False
        deadline = time.monotonic() + timeout_seconds
        try:
            while True:
                try:
                    process.wait(timeout=POLL_INTERVAL_SECONDS)
                    break
                except subprocess.TimeoutExpired:
                    pass
                if cancel_token is not None and cancel_token.is_cancelled:
                    cancelled = True
                    logger.info(f"[Runner] Cancelling PID {process.pid} ({stage})")
                    self.terminate(process)
                    break
                if time.monotonic() >= deadline:
                    timed_out = True
                    logger.warning(
                        f"[Runner] PID {process.pid} exceeded {timeout_seconds:g}s ({stage}), terminating"
                    )
                    self.terminate(process)
                    break
        finally:
            if cancel_token is not None:
                cancel_token.remove_callback(_interrupt)
            if process.poll() is None:
                self.terminate(process)
            for reader in readers:
                reader.join(timeout=self.grace_seconds)

        completed_at = datetime.now()
        exit_code = process.returncode
        term_signal = -exit_code if exit_code is not None and exit_code < 0 else None
        diagnostics = "\n".join(combined_tail)

        logger.info(f"[Runner] PID {process.pid} exited with code {exit_code} ({stage})")

        if cancelled or (cancel_token is not None and cancel_token.is_cancelled and exit_code != 0):
            raise StageCancelledError(stage, diagnostics=diagnostics, signal=term_signal)

        if timed_out:
            raise StageTimeoutError(
                stage,
                timeout_seconds,
                signal=term_signal,
                diagnostics=diagnostics,
            )

        if exit_code != 0:
            message = None
            if describe_failure is not None:
                message = describe_failure()
            if not message:
                if term_signal is not None:
                    message = f"{os.path.basename(executable)} killed by signal {term_signal}"
                else:
                    message = f"{os.path.basename(executable)} exited with code {exit_code}"
            logger.error(f"[Runner] Failed ({stage}): {message}")
            raise ProcessFailedError(
                stage,
                message,
                exit_code=exit_code,
                signal=term_signal,
                diagnostics=diagnostics,
            )

        return ProcessResult(
            command=command,
            exit_code=exit_code,
            stdout_tail=list(stdout_tail),
            diagnostics=diagnostics,
            started_at=started_at,
            completed_at=completed_at,
        )

    def terminate(self, process: subprocess.Popen) -> None:
        """
        Stop a process: SIGTERM, then SIGKILL after the grace period.

        Always reaps the process before returning.
        """
        if process.poll() is not None:
            return

        logger.info(f"[Runner] Sending SIGTERM to PID {process.pid}")
        self._send_signal(process, signal.SIGTERM)
        try:
            process.wait(timeout=self.grace_seconds)
            return
        except subprocess.TimeoutExpired:
            logger.warning(f"[Runner] PID {process.pid} did not terminate, sending SIGKILL")

        self._send_signal(process, signal.SIGKILL)
        process.wait()

    @staticmethod
    def _send_signal(process: subprocess.Popen, sig: int) -> None:
        if process.poll() is not None:
            return
        try:
            if os.name == "posix":
                # The child leads its own session; signal its helpers too
                os.killpg(process.pid, sig)
            elif sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()
        except ProcessLookupError:
            pass  # Process already dead

    @staticmethod
    def _pump(
        stream,
        tails: List[Deque[str]],
        callback: Optional[LineCallback],
    ) -> None:
        """Read a stream line by line until EOF."""
        try:
            for raw_line in stream:
                line = raw_line.rstrip("\r\n")
                for tail in tails:
                    tail.append(line)
                if callback is not None:
                    try:
                        callback(line)
                    except Exception:
                        logger.exception("[Runner] Line callback raised")
        except ValueError:
            pass  # Stream closed underneath us
        finally:
            stream.close()
