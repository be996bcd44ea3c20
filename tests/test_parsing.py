import pytest

from linksys_udp_st.errors import ThroughputParseError
from linksys_udp_st.parsing import (
    STRATEGIES,
    case_insensitive_label,
    exact_label,
    parse_throughput,
    throughput_section,
    to_bps,
)

from conftest import SECTION_STATS


def test_section_throughput_converted_from_mbps() -> None:
    assert parse_throughput(SECTION_STATS) == 250_000_000


def test_exact_label_is_bits_per_second() -> None:
    text = "Packets: 10\nThroughput: 987654321\n"
    assert parse_throughput(text) == 987_654_321


def test_generic_labels_are_case_insensitive() -> None:
    assert parse_throughput("RATE: 1200\n") == 1200
    assert parse_throughput("current speed = 1.5 Gbps\n") == 1_500_000_000
    assert parse_throughput("avg THROUGHPUT (tx): 12 kbps") == 12_000


def test_exact_label_ignores_scaled_values() -> None:
    assert exact_label("Throughput: 12.5 Mbps") is None
    assert parse_throughput("Throughput: 12.5 Mbps") == 12_500_000


def test_exact_label_ignores_uppercase_units() -> None:
    assert exact_label("Throughput: 250 MBPS") is None
    assert parse_throughput("Throughput: 250 MBPS") == 250_000_000


def test_thousands_separators() -> None:
    assert exact_label("Throughput: 1,000,000 bps") == 1_000_000
    assert parse_throughput("Throughput: 1,000,000 bps") == 1_000_000
    assert parse_throughput("rate = 2,500 kbps") == 2_500_000


def test_section_requires_header() -> None:
    assert throughput_section("throughput  = 250 Mbps\n") is None


def test_section_line_before_header_is_ignored() -> None:
    text = "throughput = 1 Mbps\n== Throughput Stats ==\nthroughput = 2 Mbps\n"
    assert throughput_section(text) == 2_000_000


def test_strategy_priority() -> None:
    assert [name for name, _ in STRATEGIES] == [
        "exact-label",
        "throughput-section",
        "case-insensitive-label",
    ]
    # the exact label wins over a section further down
    text = "Throughput: 5\n" + SECTION_STATS
    assert parse_throughput(text) == 5


@pytest.mark.parametrize(
    "text", ["", "packets = 10\nerrors = 0\n", "Throughput Stats\n(no data)\n"]
)
def test_missing_throughput_is_an_error(text) -> None:
    with pytest.raises(ThroughputParseError):
        parse_throughput(text)


def test_case_insensitive_label_without_number() -> None:
    assert case_insensitive_label("rate: n/a") is None


def test_to_bps_units() -> None:
    assert to_bps("250", "Mbps") == 250_000_000
    assert to_bps("3", "GBPS") == 3_000_000_000
    assert to_bps("0.5", "kbps") == 500
    assert to_bps("42") == 42
