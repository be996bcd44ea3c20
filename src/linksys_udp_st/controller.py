"""Test controller: lifecycle of a single throughput test run."""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from .backends import ControlBackend, create_backend
from .errors import (
    NoTestRunningError,
    OperationError,
    TestAlreadyRunningError,
    UdpStError,
)
from .models import (
    ControllerSettings,
    Direction,
    TeardownReport,
    TeardownStep,
    TestConfiguration,
    TestRecord,
    TestStatus,
)
from .state import RunStateStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TestController:
    """Validates parameters and sequences the external control operations.

    Each operation receives the ``TestRecord`` of the current invocation and
    updates it as steps succeed. Whether a test is active is always decided
    by checking the external system.
    """

    def __init__(self, backend: ControlBackend, store: RunStateStore):
        self.backend = backend
        self.store = store

    @classmethod
    def from_settings(cls, settings: ControllerSettings) -> "TestController":
        return cls(create_backend(settings), RunStateStore(settings.state_file))

    def is_active(self) -> bool:
        return self.backend.is_active()

    def start(self, record: TestRecord, params: Dict[str, Any]) -> None:
        """Validate ``params`` and start a test.

        Raises:
            TestAlreadyRunningError: a test is already active.
            ParameterError: a parameter is invalid; nothing was touched.
            OperationError: an external step failed; teardown was attempted.
        """
        if self.is_active():
            raise TestAlreadyRunningError()

        config = TestConfiguration.from_params(**params)
        record.config = config

        with self.module_session(record):
            self._run_step("Failed to configure test", self.backend.configure, config)
            self._run_step("Failed to start test", self.backend.start, config)

        record.status = TestStatus.RUNNING
        record.throughput = 0
        self.store.save(config)
        logger.info(
            "Started %s test %s:%d -> %s:%d (%s)",
            config.protocol.value,
            config.src_ip,
            config.src_port,
            config.dst_ip,
            config.dst_port,
            config.direction.value,
        )

    def status(self, record: TestRecord) -> None:
        """Refresh ``record`` with the current state and throughput."""
        if not self.is_active():
            record.status = TestStatus.IDLE
            record.throughput = 0
            return

        config = self._active_config(record)
        record.throughput = self._run_step(
            "Failed to get test results",
            self.backend.read_throughput,
            self._direction(config),
        )
        record.status = TestStatus.RUNNING

    def stop(self, record: TestRecord) -> TeardownReport:
        """Stop the active test, collect final results and tear down.

        Teardown runs even when stopping or collecting results fails.

        Raises:
            NoTestRunningError: no test is active; nothing was touched.
            OperationError: stopping or collecting results failed.
        """
        if not self.is_active():
            raise NoTestRunningError()

        config = self._active_config(record)
        try:
            self._run_step("Failed to stop test", self.backend.stop)
            record.throughput = self._run_step(
                "Failed to get final results",
                self.backend.read_throughput,
                self._direction(config),
            )
            record.status = TestStatus.COMPLETED
        except OperationError:
            record.status = TestStatus.FAILED
            raise
        finally:
            report = self.teardown(record)
        return report

    def teardown(self, record: TestRecord) -> TeardownReport:
        """Run every teardown step, collecting failures instead of raising."""
        report = TeardownReport()
        for name, step in self.backend.teardown_steps():
            try:
                step()
            except UdpStError as e:
                logger.warning("Teardown step '%s' failed: %s", name, e)
                report.steps.append(TeardownStep(step=name, ok=False, error=str(e)))
            else:
                report.steps.append(TeardownStep(step=name, ok=True))
        self.store.clear()

        if report.ok:
            logger.debug("Teardown completed")
        else:
            logger.warning("Teardown incomplete: %s", ", ".join(report.failed_steps))
        return report

    def cancel(self, record: TestRecord) -> Optional[TeardownReport]:
        """Tear down an active test on interruption."""
        if not self.is_active():
            return None
        logger.warning("Interrupted, tearing down active test")
        record.status = TestStatus.FAILED
        return self.teardown(record)

    @contextmanager
    def module_session(self, record: TestRecord) -> Iterator[None]:
        """Load and activate the module; tear it down again if anything after the load fails."""
        self._run_step("Failed to load kernel module", self.backend.load_module)
        try:
            self._run_step("Failed to load kernel module", self.backend.activate)
            yield
        except Exception:
            record.status = TestStatus.FAILED
            self.teardown(record)
            raise

    def _active_config(self, record: TestRecord) -> Optional[TestConfiguration]:
        if record.config is None:
            record.config = self.store.load()
        return record.config

    @staticmethod
    def _direction(config: Optional[TestConfiguration]) -> Direction:
        if config is None:
            logger.warning("No run record found, assuming upstream direction")
            return Direction.UPSTREAM
        return config.direction

    @staticmethod
    def _run_step(message: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except UdpStError as e:
            logger.error("%s: %s", message, e)
            raise OperationError(message) from e
