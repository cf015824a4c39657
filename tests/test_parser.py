"""
Unit tests for the traceroute output parser.

Tests hop line parsing, no-reply markers, header handling and hop ordering.
"""
import pytest

from hopwatch.tracer.parser import parse_hop_line, parse_traceroute_output
from hopwatch.tracer.types import NO_RESPONSE_LABEL


class TestParseHopLine:
    """Tests for single hop line parsing."""

    def test_hostname_and_address(self):
        """Test a hop that answered with a name, address and latencies."""
        hop = parse_hop_line(" 1  gateway (192.168.1.1)  1.234 ms  1.100 ms  1.050 ms")

        assert hop.hop_number == 1
        assert hop.address == "192.168.1.1"
        assert hop.hostname == "gateway"
        assert hop.latency_ms == pytest.approx(1.234)
        assert hop.timed_out is False

    def test_address_only_uses_address_as_hostname(self):
        """Test that an unresolved hop uses its address as hostname."""
        hop = parse_hop_line(" 2  10.0.0.1 (10.0.0.1)  5.5 ms  5.1 ms  5.0 ms")

        assert hop.address == "10.0.0.1"
        assert hop.hostname == "10.0.0.1"
        assert hop.latency_ms == pytest.approx(5.5)

    def test_only_first_latency_kept(self):
        """Test that later probe latencies are ignored."""
        hop = parse_hop_line(" 3  r1 (10.1.1.1)  9.0 ms  500.0 ms  700.0 ms")
        assert hop.latency_ms == pytest.approx(9.0)

    def test_all_probes_lost(self):
        """Test a hop where every probe went unanswered."""
        hop = parse_hop_line(" 4  * * *")

        assert hop.hop_number == 4
        assert hop.address is None
        assert hop.latency_ms is None
        assert hop.timed_out is True
        assert hop.display_name == NO_RESPONSE_LABEL

    def test_partial_reply_is_not_timeout(self):
        """Test that a hop with one answered probe is not a timeout."""
        hop = parse_hop_line(" 5  r2 (10.2.2.2)  *  30.5 ms  *")

        assert hop.latency_ms == pytest.approx(30.5)
        assert hop.timed_out is False

    def test_addressed_timeout(self):
        """Test a hop that identified itself but gave no latency."""
        hop = parse_hop_line(" 6  r3 (10.3.3.3)  * * *")

        assert hop.address == "10.3.3.3"
        assert hop.latency_ms is None
        assert hop.timed_out is True

    def test_unreachable_flag_is_timeout(self):
        """Test that an ICMP unreachable flag counts as no reply."""
        hop = parse_hop_line(" 7  r4 (10.4.4.4)  !H  !H  !H")

        assert hop.address == "10.4.4.4"
        assert hop.timed_out is True

    def test_line_without_hop_number(self):
        """Test that lines not starting with a hop number are ignored."""
        assert parse_hop_line("    10.0.0.9 (10.0.0.9)  4.1 ms") is None
        assert parse_hop_line("traceroute: unknown host") is None

    def test_hop_number_zero_rejected(self):
        """Test that hop numbers start at one."""
        assert parse_hop_line(" 0  r0 (10.0.0.0)  1.0 ms") is None

    def test_line_without_address_or_marker(self):
        """Test that a line with neither an address nor a no-reply marker is dropped."""
        assert parse_hop_line(" 8  something odd") is None

    def test_address_without_latency_or_marker(self):
        """Test an ambiguous hop: address present, no latency, no marker."""
        hop = parse_hop_line(" 9  r9 (10.9.9.9)")

        assert hop.address == "10.9.9.9"
        assert hop.latency_ms is None
        assert hop.timed_out is False
        assert hop.has_measurement is False

    def test_to_dict(self):
        """Test hop serialization keys."""
        hop = parse_hop_line(" 1  gateway (192.168.1.1)  1.5 ms")
        assert hop.to_dict() == {
            "hop": 1,
            "ip": "192.168.1.1",
            "hostname": "gateway",
            "latency": 1.5,
            "timeout": False,
        }


class TestParseTracerouteOutput:
    """Tests for whole-run parsing."""

    def test_parse_complete_run(self, sample_traceroute_output):
        """Test parsing a run that reached its destination."""
        run = parse_traceroute_output(sample_traceroute_output, target="example.com")

        assert run.target == "example.com"
        assert len(run) == 5
        assert [hop.hop_number for hop in run] == [1, 2, 3, 4, 5]
        assert run.last_hop.address == "93.184.216.34"
        assert run[2].timed_out is True

    def test_header_is_skipped(self):
        """Test that the header line is not parsed as a hop."""
        run = parse_traceroute_output(
            "traceroute to 10.0.0.1 (10.0.0.1), 15 hops max\n 1  h (10.0.0.1)  1.0 ms\n"
        )
        assert len(run) == 1
        assert run[0].address == "10.0.0.1"

    def test_empty_output(self):
        """Test that empty output yields an empty run."""
        run = parse_traceroute_output("")
        assert len(run) == 0
        assert run.last_hop is None

    def test_continuation_lines_ignored(self):
        """Test that extra responder lines of the same hop are skipped."""
        output = (
            " 1  a (10.0.0.1)  1.0 ms\n"
            "    b (10.0.0.2)  1.1 ms\n"
            " 2  c (10.0.0.3)  2.0 ms\n"
        )
        run = parse_traceroute_output(output)

        assert [hop.address for hop in run] == ["10.0.0.1", "10.0.0.3"]

    def test_non_increasing_hops_dropped(self):
        """Test that hop numbers stay strictly increasing."""
        output = (
            " 1  a (10.0.0.1)  1.0 ms\n"
            " 2  b (10.0.0.2)  2.0 ms\n"
            " 2  c (10.0.0.3)  2.5 ms\n"
            " 1  d (10.0.0.4)  0.5 ms\n"
            " 3  e (10.0.0.5)  3.0 ms\n"
        )
        run = parse_traceroute_output(output)

        assert [hop.hop_number for hop in run] == [1, 2, 3]
        assert run[1].address == "10.0.0.2"

    def test_blank_lines_skipped(self):
        """Test that blank lines are ignored."""
        run = parse_traceroute_output("\n\n 1  a (10.0.0.1)  1.0 ms\n\n")
        assert len(run) == 1
