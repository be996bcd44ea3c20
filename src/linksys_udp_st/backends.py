"""Adapters for the external control surfaces of the speed test module."""

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, List, Tuple

from .errors import ExternalCommandError
from .models import BackendKind, ControllerSettings, Direction, TestConfiguration
from .parsing import parse_throughput

logger = logging.getLogger(__name__)

TeardownSteps = List[Tuple[str, Callable[[], Any]]]


def run_command(cmd: List[str], step: str) -> subprocess.CompletedProcess:
    """Run an external command once, without timeout.

    Raises:
        ExternalCommandError: if the executable is missing or exits non-zero.
    """
    logger.debug("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        raise ExternalCommandError(step, f"executable not found: {cmd[0]}")
    except OSError as e:
        raise ExternalCommandError(step, f"could not execute {cmd[0]}: {e}")

    if result.returncode != 0:
        raise ExternalCommandError(
            step,
            f"{cmd[0]} exited with status {result.returncode}",
            returncode=result.returncode,
            stderr=result.stderr or "",
        )
    return result


class ControlBackend(ABC):
    """Common interface of the helper and sysfs control surfaces."""

    def __init__(self, settings: ControllerSettings):
        self.settings = settings

    def is_active(self) -> bool:
        """Whether the test module is present, i.e. a test is considered active."""
        return self.settings.presence_path.exists()

    def load_module(self) -> None:
        """Load the kernel module when module management is enabled."""
        if self.settings.manage_module:
            run_command(
                [self.settings.modprobe_path, self.settings.module_name], "modprobe"
            )

    def teardown_steps(self) -> TeardownSteps:
        """Ordered teardown steps; each is attempted regardless of the others."""
        steps = self._teardown_steps()
        if self.settings.manage_module:
            steps.append(
                (
                    "unload",
                    lambda: run_command(
                        [
                            self.settings.modprobe_path,
                            "-r",
                            self.settings.module_name,
                        ],
                        "unload",
                    ),
                )
            )
        return steps

    def read_throughput(self, direction: Direction) -> int:
        """Fetch the current stats text and parse the throughput from it."""
        return parse_throughput(self.read_stats(direction))

    @abstractmethod
    def activate(self) -> None: ...

    @abstractmethod
    def configure(self, config: TestConfiguration) -> None: ...

    @abstractmethod
    def start(self, config: TestConfiguration) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def read_stats(self, direction: Direction) -> str: ...

    @abstractmethod
    def _teardown_steps(self) -> TeardownSteps: ...


class HelperBackend(ControlBackend):
    """Drives the module through the nss-udp-st helper executable."""

    def _helper(self, mode: str, *args: str) -> subprocess.CompletedProcess:
        return run_command([self.settings.helper_path, "--mode", mode, *args], mode)

    def build_init_args(self) -> List[str]:
        s = self.settings
        return [
            "--rate",
            str(s.rate),
            "--buffer_sz",
            str(s.buffer_size),
            "--dscp",
            str(s.dscp),
            "--net_dev",
            s.net_dev,
        ]

    def build_create_args(self, config: TestConfiguration) -> List[str]:
        return [
            "--sip",
            config.src_ip,
            "--dip",
            config.dst_ip,
            "--sport",
            str(config.src_port),
            "--dport",
            str(config.dst_port),
            "--version",
            str(self.settings.ip_version),
        ]

    def activate(self) -> None:
        self._helper("init", *self.build_init_args())

    def configure(self, config: TestConfiguration) -> None:
        self._helper("create", *self.build_create_args(config))

    def start(self, config: TestConfiguration) -> None:
        self._helper("start", "--type", config.direction.stats_type)

    def stop(self) -> None:
        self._helper("stop")

    def stats_file(self, direction: Direction) -> Path:
        return self.settings.stats_dir / f"{direction.stats_type}_stats"

    def read_stats(self, direction: Direction) -> str:
        self._helper("stats", "--type", direction.stats_type)
        path = self.stats_file(direction)
        try:
            return path.read_text()
        except OSError as e:
            raise ExternalCommandError("stats", f"failed to read {path}: {e}")

    def _teardown_steps(self) -> TeardownSteps:
        return [
            ("stop", self.stop),
            ("final", lambda: self._helper("final")),
            ("clear", lambda: self._helper("clear")),
        ]


class SysfsBackend(ControlBackend):
    """Drives the module through its pseudo-filesystem control directory."""

    def _write(self, name: str, value: str) -> None:
        path = self.settings.control_dir / name
        logger.debug("Writing %r to %s", value, path)
        try:
            path.write_text(value + "\n")
        except OSError as e:
            raise ExternalCommandError(name, f"failed to write {path}: {e}")

    def activate(self) -> None:
        if not self.settings.control_dir.is_dir():
            raise ExternalCommandError(
                "init", f"control directory missing: {self.settings.control_dir}"
            )

    def configure(self, config: TestConfiguration) -> None:
        self._write(
            "config",
            f"{config.src_ip} {config.dst_ip} {config.src_port} "
            f"{config.dst_port} {config.protocol.value}",
        )
        self._write("direction", config.direction.value)

    def start(self, config: TestConfiguration) -> None:
        self._write("start", "1")

    def stop(self) -> None:
        self._write("start", "0")

    def read_stats(self, direction: Direction) -> str:
        path = self.settings.control_dir / "stats"
        try:
            return path.read_text()
        except OSError as e:
            raise ExternalCommandError("stats", f"failed to read {path}: {e}")

    def _teardown_steps(self) -> TeardownSteps:
        return [("stop", self.stop)]


def create_backend(settings: ControllerSettings) -> ControlBackend:
    """Instantiate the control backend selected in the settings."""
    if settings.backend == BackendKind.SYSFS:
        return SysfsBackend(settings)
    return HelperBackend(settings)
