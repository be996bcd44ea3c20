"""Pydantic models for speed test configuration, run state and settings."""

from __future__ import annotations

import ipaddress
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ParameterError

THROUGHPUT_UNIT = "bps"


class Protocol(str, Enum):
    """Transport protocols accepted by the test module."""

    TCP = "tcp"
    UDP = "udp"


class Direction(str, Enum):
    """Traffic direction relative to the device under test."""

    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"

    @property
    def stats_type(self) -> str:
        """Helper `--type` argument for this direction."""
        return "tx" if self is Direction.UPSTREAM else "rx"


class TestStatus(str, Enum):
    """Lifecycle states of a single test run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackendKind(str, Enum):
    """Available external control surfaces."""

    HELPER = "helper"
    SYSFS = "sysfs"


# User facing message for the first invalid field, in validation order
FIELD_ERRORS = {
    "src_ip": "Invalid source IP address",
    "dst_ip": "Invalid destination IP address",
    "src_port": "Invalid source port",
    "dst_port": "Invalid destination port",
    "protocol": "Invalid protocol (must be 'tcp' or 'udp')",
    "direction": "Invalid direction (must be 'upstream' or 'downstream')",
}


class TestConfiguration(BaseModel):
    """Addressing and direction of a throughput test."""

    model_config = {"frozen": True}

    src_ip: str = Field(description="Source IPv4 address")
    dst_ip: str = Field(description="Destination IPv4 address")
    src_port: int = Field(ge=1, le=65535, description="Source port")
    dst_port: int = Field(ge=1, le=65535, description="Destination port")
    protocol: Protocol = Field(description="Transport protocol")
    direction: Direction = Field(description="Traffic direction")

    @field_validator("src_ip", "dst_ip")
    @classmethod
    def validate_ipv4(cls, v):
        # Only strict dotted-quad notation is accepted
        ipaddress.IPv4Address(v)
        return v

    @classmethod
    def from_params(cls, **params: Any) -> "TestConfiguration":
        """Validate raw parameters, raising ParameterError for the first bad field."""
        try:
            return cls(**params)
        except ValidationError as e:
            bad_fields = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            for field, message in FIELD_ERRORS.items():
                if field in bad_fields:
                    raise ParameterError(field, message) from e
            raise ParameterError("", "Missing or invalid parameters") from e

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class TestRecord(BaseModel):
    """Mutable state of the test run handled by one process invocation."""

    config: Optional[TestConfiguration] = None
    status: TestStatus = TestStatus.IDLE
    throughput: int = Field(default=0, ge=0, description="Throughput in bps")

    def status_payload(self) -> Dict[str, Any]:
        """Status document; throughput only accompanies a running test."""
        payload: Dict[str, Any] = {"status": self.status.value}
        if self.status == TestStatus.RUNNING:
            payload["throughput"] = self.throughput
            payload["unit"] = THROUGHPUT_UNIT
        return payload

    def result_payload(self) -> Dict[str, Any]:
        """Final result document of a stopped test."""
        if self.config is not None:
            test_config = self.config.to_dict()
        else:
            test_config = {name: None for name in FIELD_ERRORS}
        return {
            "test_config": test_config,
            "results": {"throughput": self.throughput, "unit": THROUGHPUT_UNIT},
        }


class TeardownStep(BaseModel):
    """Outcome of one teardown step."""

    step: str
    ok: bool
    error: Optional[str] = None


class TeardownReport(BaseModel):
    """Aggregated outcome of a teardown sequence."""

    steps: List[TeardownStep] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed_steps(self) -> List[str]:
        return [step.step for step in self.steps if not step.ok]


class ControllerSettings(BaseSettings):
    """Controller settings loaded from the environment, .env and config files."""

    model_config = SettingsConfigDict(
        env_prefix="LINKSYS_UDP_ST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Control surface
    backend: BackendKind = Field(
        default=BackendKind.HELPER, description="External control surface"
    )
    helper_path: str = Field(
        default="nss-udp-st", description="Helper executable driving the module"
    )
    control_dir: Path = Field(
        default=Path("/sys/kernel/nss_udp_st"),
        description="Pseudo-filesystem control directory (sysfs backend)",
    )
    stats_dir: Path = Field(
        default=Path("/tmp/nss-udp-st"),
        description="Directory the helper writes tx_stats/rx_stats into",
    )

    # Kernel module
    module_name: str = Field(default="nss_udp_st", description="Kernel module name")
    module_dir: Path = Field(
        default=Path("/sys/module"), description="Where loaded modules appear"
    )
    manage_module: bool = Field(
        default=False, description="Load and unload the module with modprobe"
    )
    modprobe_path: str = Field(default="modprobe", description="modprobe executable")

    # Helper init parameters
    rate: int = Field(default=1000, ge=1, description="Target rate (Mbps)")
    buffer_size: int = Field(default=1500, ge=1, description="Buffer size (bytes)")
    dscp: int = Field(default=0, ge=0, le=63, description="DSCP value")
    net_dev: str = Field(default="eth4", description="Network device under test")
    ip_version: int = Field(default=4, description="IP version passed to create")

    # Controller
    state_file: Path = Field(
        default=Path("/tmp/linksys-udp-st/run.json"),
        description="Run record shared between invocations",
    )
    log_level: str = Field(default="WARNING", description="Logging level")

    @field_validator("ip_version")
    @classmethod
    def validate_ip_version(cls, v):
        if v != 4:
            raise ValueError("Only IPv4 tests are supported")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def presence_path(self) -> Path:
        """Path whose existence means the test module is active."""
        return self.module_dir / self.module_name
