from __future__ import annotations

from typing import Sequence


class ServiceError(Exception):
    pass


class ProcessError(ServiceError):
    def __init__(self, message: str, args: Sequence[str]):
        super().__init__(message)
        self.command = list(args)


class ProcessFailedError(ProcessError):
    def __init__(self, args: Sequence[str], returncode: int | None, stderr: str = ""):
        tool = args[0] if args else "process"
        detail = f": {stderr}" if stderr else ""
        super().__init__(f"{tool} exited with code {returncode}{detail}", args)
        self.returncode = returncode
        self.stderr = stderr


class ProcessTimeoutError(ProcessError):
    def __init__(self, args: Sequence[str], timeout_seconds: float):
        tool = args[0] if args else "process"
        super().__init__(f"{tool} timed out after {timeout_seconds}s", args)
        self.timeout_seconds = timeout_seconds


class ProcessCancelledError(ProcessError):
    def __init__(self, args: Sequence[str]):
        tool = args[0] if args else "process"
        super().__init__(f"{tool} was cancelled", args)


class ModelServiceError(ServiceError):
    pass


class RateLimitedError(ModelServiceError):
    pass
