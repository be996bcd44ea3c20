"""Throughput extraction from the loosely structured stats text of the test module.

The module's stats output has changed shape across releases. Observed
variants are tried in a fixed order:

* ``exact-label``: ``Throughput: 123456`` (already bits per second)
* ``throughput-section``: a ``Throughput Stats`` block holding
  ``throughput  = 250 Mbps``
* ``case-insensitive-label``: any ``throughput``/``rate``/``speed`` line with
  ``:`` or ``=`` and an optional unit
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple

from .errors import ThroughputParseError

logger = logging.getLogger(__name__)

UNIT_MULTIPLIERS = {
    "bps": 1,
    "kbps": 1_000,
    "mbps": 1_000_000,
    "gbps": 1_000_000_000,
}

_INTEGER = r"(?:\d{1,3}(?:,\d{3})+|\d+)"
_NUMBER = r"(?P<value>" + _INTEGER + r"(?:\.\d+)?)"
_UNIT = r"(?:\s*(?P<unit>[kmg]?bps)\b)?"

# Plain integer, optionally followed by "bps" and nothing else
_EXACT_LABEL = re.compile(
    r"Throughput:\s*(?P<value>" + _INTEGER + r")(?=\s*(?i:bps)?\s*$)"
)
_SECTION_HEADER = re.compile(r"throughput\s+stats", re.IGNORECASE)
_SECTION_LINE = re.compile(r"^\s*throughput\s*=\s*" + _NUMBER + _UNIT, re.IGNORECASE)
_GENERIC_LABEL = re.compile(
    r"\b(?:throughput|rate|speed)\b[^:=\n]*[:=]\s*" + _NUMBER + _UNIT, re.IGNORECASE
)

Strategy = Callable[[str], Optional[int]]


def to_bps(value: str, unit: Optional[str] = None) -> int:
    """Convert a numeric token with an optional rate unit to integer bits per second."""
    multiplier = UNIT_MULTIPLIERS[(unit or "bps").lower()]
    try:
        amount = Decimal(value.replace(",", ""))
    except InvalidOperation:
        raise ThroughputParseError(f"Malformed throughput value: {value!r}")
    return int((amount * multiplier).to_integral_value())


def exact_label(text: str) -> Optional[int]:
    for line in text.splitlines():
        match = _EXACT_LABEL.search(line)
        if match:
            return int(match.group("value").replace(",", ""))
    return None


def throughput_section(text: str) -> Optional[int]:
    in_section = False
    for line in text.splitlines():
        if _SECTION_HEADER.search(line):
            in_section = True
            continue
        if not in_section:
            continue
        match = _SECTION_LINE.match(line)
        if match:
            return to_bps(match.group("value"), match.group("unit"))
    return None


def case_insensitive_label(text: str) -> Optional[int]:
    for line in text.splitlines():
        match = _GENERIC_LABEL.search(line)
        if match:
            return to_bps(match.group("value"), match.group("unit"))
    return None


STRATEGIES: List[Tuple[str, Strategy]] = [
    ("exact-label", exact_label),
    ("throughput-section", throughput_section),
    ("case-insensitive-label", case_insensitive_label),
]


def parse_throughput(text: str) -> int:
    """Return the throughput in bps reported by ``text``.

    Raises:
        ThroughputParseError: if no strategy finds a throughput value.
    """
    for name, strategy in STRATEGIES:
        value = strategy(text)
        if value is not None:
            logger.debug("Throughput %d bps found by %s strategy", value, name)
            return value
    raise ThroughputParseError("No throughput value found in stats output")
