from __future__ import annotations

import logging
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import ProcessCancelledError, ProcessFailedError, ProcessTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.1
KILL_WAIT_SECONDS = 5
STDERR_TAIL_CHARS = 500


@dataclass
class ProcessResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str


class ProcessRunner(ABC):
    """
    Runs an external tool to completion or fails.

    Implementations:
    - SubprocessRunner: real binaries via subprocess
    - test fakes that write the expected output files
    """

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessResult:
        """
        Run ``args`` and wait for it to exit.

        Raises:
            ProcessFailedError: non-zero exit or missing binary
            ProcessTimeoutError: ``timeout`` elapsed, the process was killed
            ProcessCancelledError: ``cancel_event`` was set, the process was killed
        """
        pass


class SubprocessRunner(ProcessRunner):
    def __init__(self, poll_interval: float = POLL_INTERVAL_SECONDS) -> None:
        self.poll_interval = poll_interval

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessResult:
        command = [str(arg) for arg in args]
        logger.debug("process.start cmd=%s", command)

        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
            )
        except FileNotFoundError as error:
            raise ProcessFailedError(command, None, f"executable not found: {error}") from error

        deadline = time.monotonic() + timeout if timeout is not None else None

        while True:
            try:
                stdout, stderr = process.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                pass

            if cancel_event is not None and cancel_event.is_set():
                self._kill(process)
                logger.info("process.cancelled cmd=%s", command[0])
                raise ProcessCancelledError(command)

            if deadline is not None and time.monotonic() >= deadline:
                self._kill(process)
                logger.warning("process.timeout cmd=%s timeout=%ss", command[0], timeout)
                raise ProcessTimeoutError(command, timeout)

        if process.returncode != 0:
            tail = (stderr or "").strip()[-STDERR_TAIL_CHARS:]
            raise ProcessFailedError(command, process.returncode, tail)

        return ProcessResult(
            args=command,
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        process.kill()
        try:
            process.communicate(timeout=KILL_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("process.kill_wait_expired pid=%s", process.pid)
