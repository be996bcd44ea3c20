"""Configuration utilities using Pydantic Settings for the speed test controller."""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .models import ControllerSettings


def load_config_file(config_file: Path) -> Dict[str, Any]:
    """Read controller settings from a YAML file."""
    with open(config_file) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_file}: expected a mapping of settings")
    return data


def load_controller_settings(
    config_file: Optional[Path] = None,
    env_file: Optional[Path] = None,
    **override_kwargs,
) -> ControllerSettings:
    """
    Load controller settings using Pydantic Settings.

    Args:
        config_file: Path to YAML config file
        env_file: Path to .env file
        **override_kwargs: Direct override values; ``None`` values are ignored

    Returns:
        ControllerSettings instance with all settings loaded
    """
    init_kwargs: Dict[str, Any] = {}

    if env_file:
        init_kwargs["_env_file"] = env_file

    # File values take precedence over the environment
    if config_file:
        init_kwargs.update(load_config_file(config_file))

    init_kwargs.update({k: v for k, v in override_kwargs.items() if v is not None})

    return ControllerSettings(**init_kwargs)


def create_example_configs() -> Dict[str, Any]:
    """Create example configuration files."""

    # Every setting with its default value
    yaml_config: Dict[str, Any] = {}
    for name, field in ControllerSettings.model_fields.items():
        value = field.default
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Path):
            value = str(value)
        yaml_config[name] = value

    env_content = """# linksys-udp-st controller configuration
# All settings can be set via environment variables with LINKSYS_UDP_ST_ prefix

# Control surface: helper (nss-udp-st executable) or sysfs
LINKSYS_UDP_ST_BACKEND=helper
LINKSYS_UDP_ST_HELPER_PATH=nss-udp-st
LINKSYS_UDP_ST_STATS_DIR=/tmp/nss-udp-st
LINKSYS_UDP_ST_CONTROL_DIR=/sys/kernel/nss_udp_st

# Kernel module
LINKSYS_UDP_ST_MODULE_NAME=nss_udp_st
LINKSYS_UDP_ST_MODULE_DIR=/sys/module
LINKSYS_UDP_ST_MANAGE_MODULE=false

# Helper init parameters
LINKSYS_UDP_ST_RATE=1000
LINKSYS_UDP_ST_BUFFER_SIZE=1500
LINKSYS_UDP_ST_DSCP=0
LINKSYS_UDP_ST_NET_DEV=eth4

# Controller
LINKSYS_UDP_ST_STATE_FILE=/tmp/linksys-udp-st/run.json
LINKSYS_UDP_ST_LOG_LEVEL=WARNING
"""

    return {
        "controller_example.yaml": yaml_config,
        "example.env": env_content,
    }
