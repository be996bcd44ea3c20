"""Command-line controller for the NSS UDP speed test kernel module."""

from .models import (
    BackendKind,
    ControllerSettings,
    Direction,
    Protocol,
    TestConfiguration,
    TestRecord,
    TestStatus,
    TeardownReport,
)
from .config import load_controller_settings, create_example_configs
from .backends import ControlBackend, HelperBackend, SysfsBackend, create_backend
from .controller import TestController
from .parsing import parse_throughput
from .cli import app, run

__version__ = "0.1.0"

__all__ = [
    "BackendKind",
    "ControllerSettings",
    "Direction",
    "Protocol",
    "TestConfiguration",
    "TestRecord",
    "TestStatus",
    "TeardownReport",
    "load_controller_settings",
    "create_example_configs",
    "ControlBackend",
    "HelperBackend",
    "SysfsBackend",
    "create_backend",
    "TestController",
    "parse_throughput",
    "app",
    "main",
]


def main() -> None:
    """Main entry point for the CLI."""
    raise SystemExit(run())
