"""Pytest configuration and shared fixtures."""

import signal
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from linksys_udp_st.backends import ControlBackend
from linksys_udp_st.errors import ExternalCommandError
from linksys_udp_st.models import ControllerSettings

SECTION_STATS = """\
===== Throughput Stats =====
packets     = 1024
throughput  = 250 Mbps
"""

START_ARGS = [
    "start",
    "--src-ip",
    "192.168.1.100",
    "--dst-ip",
    "192.168.1.200",
    "--src-port",
    "5201",
    "--dst-port",
    "5201",
    "--protocol",
    "udp",
    "--direction",
    "upstream",
]

VALID_PARAMS = {
    "src_ip": "192.168.1.100",
    "dst_ip": "192.168.1.200",
    "src_port": 5201,
    "dst_port": 5201,
    "protocol": "udp",
    "direction": "upstream",
}


class FakeHelper:
    """Stands in for subprocess.run, emulating the nss-udp-st helper.

    ``init`` makes the module appear under the module directory, ``clear``
    removes it again, and ``stats`` writes the configured stats text.
    """

    def __init__(self, module_path: Path, stats_dir: Path, stats_text: str):
        self.module_path = module_path
        self.stats_dir = stats_dir
        self.stats_text = stats_text
        self.calls: List[List[str]] = []
        self.failing_modes: Set[str] = set()
        # mode after which SIGTERM is delivered to the process
        self.interrupt_on: Optional[str] = None

    @property
    def modes(self) -> List[str]:
        return [call[call.index("--mode") + 1] for call in self.calls if "--mode" in call]

    def __call__(self, cmd, capture_output=False, text=False, **kwargs):
        self.calls.append(list(cmd))
        mode = cmd[cmd.index("--mode") + 1] if "--mode" in cmd else None
        if mode in self.failing_modes:
            return subprocess.CompletedProcess(cmd, 1, "", f"{mode} failed\n")

        if mode == "init":
            self.module_path.mkdir(parents=True, exist_ok=True)
        elif mode == "clear":
            if self.module_path.exists():
                self.module_path.rmdir()
        elif mode == "stats":
            stats_type = cmd[cmd.index("--type") + 1]
            self.stats_dir.mkdir(parents=True, exist_ok=True)
            (self.stats_dir / f"{stats_type}_stats").write_text(self.stats_text)
        if self.interrupt_on is not None and mode == self.interrupt_on:
            signal.raise_signal(signal.SIGTERM)
        return subprocess.CompletedProcess(cmd, 0, "", "")


class FakeBackend(ControlBackend):
    """In-memory control surface recording every operation."""

    def __init__(self, settings: ControllerSettings, stats_text: str = SECTION_STATS):
        super().__init__(settings)
        self.active = False
        self.stats_text = stats_text
        self.calls: List[str] = []
        self.failures: Dict[str, Optional[str]] = {}

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise ExternalCommandError(name, self.failures[name] or "failed")

    def is_active(self) -> bool:
        return self.active

    def activate(self) -> None:
        self._call("activate")
        self.active = True

    def configure(self, config) -> None:
        self._call("configure")

    def start(self, config) -> None:
        self._call("start")

    def stop(self) -> None:
        self._call("stop")

    def read_stats(self, direction) -> str:
        self._call(f"stats:{direction.stats_type}")
        return self.stats_text

    def _teardown_steps(self):
        def clear():
            self._call("clear")
            self.active = False

        return [("stop", self.stop), ("final", lambda: self._call("final")), ("clear", clear)]


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every path into a temporary directory."""
    return ControllerSettings(
        _env_file=None,
        module_dir=tmp_path / "sys" / "module",
        stats_dir=tmp_path / "nss-udp-st",
        control_dir=tmp_path / "ctl",
        state_file=tmp_path / "state" / "run.json",
    )


@pytest.fixture
def fake_helper(monkeypatch, settings):
    helper = FakeHelper(settings.presence_path, settings.stats_dir, SECTION_STATS)
    monkeypatch.setattr(subprocess, "run", helper)
    return helper


@pytest.fixture
def fake_backend(settings):
    return FakeBackend(settings)


@pytest.fixture
def cli_env(monkeypatch, tmp_path, settings):
    """Point the CLI's environment-driven settings at the temporary tree."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LINKSYS_UDP_ST_MODULE_DIR", str(settings.module_dir))
    monkeypatch.setenv("LINKSYS_UDP_ST_STATS_DIR", str(settings.stats_dir))
    monkeypatch.setenv("LINKSYS_UDP_ST_CONTROL_DIR", str(settings.control_dir))
    monkeypatch.setenv("LINKSYS_UDP_ST_STATE_FILE", str(settings.state_file))
    return settings
