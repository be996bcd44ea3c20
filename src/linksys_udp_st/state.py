"""Run record persisted between controller invocations."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import TestConfiguration

logger = logging.getLogger(__name__)


class RunStateStore:
    """Remembers the configuration of the active test in a small JSON file.

    The kernel module stays the source of truth for whether a test is
    running; this file only carries the parameters a later ``stop`` reports.
    """

    def __init__(self, path: Path):
        self.path = path

    def save(self, config: TestConfiguration) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(config.to_dict(), f, indent=2)
        except OSError as e:
            logger.warning("Could not record test configuration in %s: %s", self.path, e)

    def load(self) -> Optional[TestConfiguration]:
        if not self.path.exists():
            return None
        try:
            with open(self.path) as f:
                return TestConfiguration(**json.load(f))
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning("Ignoring unreadable run record %s: %s", self.path, e)
            return None

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove run record %s: %s", self.path, e)
