"""
Parser for free-text traceroute output.
"""

import logging
import re
from typing import Optional

from .types import HopObservation, ProbeRun

logger = logging.getLogger(__name__)

# Hop number at the start of a line, followed by whitespace. The trailing
# whitespace keeps continuation lines such as "    10.0.0.1 (10.0.0.1)" out.
HOP_NUMBER_RE = re.compile(r"^\s*(\d+)\s+")

# First IPv4 literal enclosed in parentheses
IPV4_IN_PARENS_RE = re.compile(r"\((\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\)")

# Round trip time such as "12.345 ms" or "<1 ms"
LATENCY_RE = re.compile(r"(\d+(?:\.\d+)?)\s*ms\b")

# A lone "*" probe marker, or an ICMP unreachable flag (!H host, !N network,
# !P protocol, !X/!A/!S administratively prohibited)
NO_REPLY_RE = re.compile(r"(?:^|\s)\*(?=\s|$)|![HNPXAS](?![\w])")


def parse_hop_line(line: str) -> Optional[HopObservation]:
    """
    Parse a single traceroute output line.

    Args:
        line: One line of traceroute output

    Returns:
        HopObservation, or None if the line is not a usable hop
    """
    hop_match = HOP_NUMBER_RE.match(line)
    if not hop_match:
        return None

    hop_number = int(hop_match.group(1))
    if hop_number < 1:
        return None

    address = None
    hostname = None
    remainder = line[hop_match.end():]

    ip_match = IPV4_IN_PARENS_RE.search(line, hop_match.end())
    if ip_match:
        address = ip_match.group(1)
        # Hostname is the token right before the parenthesised address
        tokens = line[hop_match.end():ip_match.start()].split()
        hostname = tokens[-1] if tokens else address
        remainder = line[ip_match.end():]

    latency = None
    latency_match = LATENCY_RE.search(remainder)
    if latency_match:
        latency = float(latency_match.group(1))

    timed_out = latency is None and bool(NO_REPLY_RE.search(remainder))

    if not address and not timed_out:
        return None

    return HopObservation(
        hop_number=hop_number,
        address=address,
        hostname=hostname,
        latency_ms=latency,
        timed_out=timed_out,
    )


def parse_traceroute_output(output: str, target: Optional[str] = None) -> ProbeRun:
    """
    Parse the complete output of one traceroute run.

    Header lines, blank lines and lines that carry neither an address nor a
    no-reply marker are skipped. Only the first latency of each hop is kept.

    Args:
        output: Raw stdout of the traceroute command
        target: Target the run was made against

    Returns:
        ProbeRun with hops in strictly increasing hop order (possibly empty)
    """
    run = ProbeRun(target=target)
    last_hop_number = 0

    for line in output.splitlines():
        if not line.strip() or "traceroute to" in line:
            continue

        hop = parse_hop_line(line)
        if hop is None:
            continue

        if hop.hop_number <= last_hop_number:
            logger.debug(f"Dropping out-of-order hop {hop.hop_number} after {last_hop_number}")
            continue

        run.hops.append(hop)
        last_hop_number = hop.hop_number

    return run
