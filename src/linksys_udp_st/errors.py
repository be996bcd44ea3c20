"""Exception types raised by the speed test controller."""

from typing import Optional


class UdpStError(RuntimeError):
    """Base class for all controller errors."""


class ParameterError(UdpStError, ValueError):
    """A test parameter failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class TestAlreadyRunningError(UdpStError):
    """Raised when a test is started while another one is active."""

    def __init__(self, message: str = "Test already running"):
        super().__init__(message)


class NoTestRunningError(UdpStError):
    """Raised when stopping while no test is active."""

    def __init__(self, message: str = "No test running"):
        super().__init__(message)


class ExternalCommandError(UdpStError):
    """An invocation of the external control surface failed."""

    def __init__(
        self,
        step: str,
        detail: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.step = step
        self.detail = detail
        self.returncode = returncode
        self.stderr = stderr
        message = f"{step}: {detail}"
        if stderr:
            message = f"{message} ({stderr.strip()})"
        super().__init__(message)


class ThroughputParseError(UdpStError):
    """No throughput value could be extracted from the stats text."""


class OperationError(UdpStError):
    """A controller operation failed; the message is user facing."""


class TestInterrupted(Exception):
    """Raised at the process boundary when SIGINT or SIGTERM arrives."""

    def __init__(self, signum: int):
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum
