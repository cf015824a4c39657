"""
Traceroute runner for invoking the operating system path tracing command.
"""

import logging
import platform
import re
import subprocess
from typing import List, Optional

from ..config import settings

logger = logging.getLogger(__name__)

MAX_TARGET_LENGTH = 253

# Characters that have no place in a host name or address
UNSAFE_TARGET_RE = re.compile(r"[;&|`$()<>\s\\'\"]")


class TracerouteError(RuntimeError):
    """The traceroute command could not be run or failed."""


class TracerouteTimeoutError(TracerouteError):
    """The traceroute command did not finish within its timeout."""


class InvalidTargetError(ValueError):
    """The requested target is not a plausible host name or address."""


def validate_target(target: str) -> str:
    """
    Check that a target can be passed to traceroute.

    Args:
        target: Domain name or IP address

    Returns:
        The target, stripped of surrounding whitespace

    Raises:
        InvalidTargetError: If the target is empty, too long or contains
            shell metacharacters
    """
    target = (target or "").strip()
    if not target or len(target) > MAX_TARGET_LENGTH or UNSAFE_TARGET_RE.search(target):
        raise InvalidTargetError("Target must be a valid domain or IP address")
    if target.startswith("-"):
        raise InvalidTargetError("Target must be a valid domain or IP address")
    return target


class TracerouteRunner:
    """Execute traceroute and return its raw output."""

    def __init__(
        self,
        max_hops: int = settings.traceroute_max_hops,
        wait_seconds: int = settings.traceroute_wait_seconds,
        timeout_seconds: int = settings.traceroute_timeout_seconds,
        system: Optional[str] = None,
    ):
        """
        Initialize traceroute runner.

        Args:
            max_hops: Maximum number of hops to probe
            wait_seconds: Time to wait for each probe reply
            timeout_seconds: Time budget for the whole command
            system: Operating system name, detected if omitted
        """
        self.max_hops = max_hops
        self.wait_seconds = wait_seconds
        self.timeout_seconds = timeout_seconds
        self.system = system or platform.system()

    def build_command(self, target: str) -> List[str]:
        """
        Build the traceroute command line for this platform.

        Raises:
            TracerouteError: If the platform has no supported command
        """
        if self.system in ("Linux", "Darwin"):
            # -m: max hops, -w: seconds to wait per probe
            return ["traceroute", "-m", str(self.max_hops), "-w", str(self.wait_seconds), target]
        if self.system == "Windows":
            # -h: max hops, -w: milliseconds to wait per probe
            return [
                "tracert",
                "-h",
                str(self.max_hops),
                "-w",
                str(self.wait_seconds * 1000),
                target,
            ]
        raise TracerouteError(f"Unsupported operating system: {self.system}")

    def run(self, target: str) -> str:
        """
        Run traceroute against a target.

        Args:
            target: Domain name or IP address

        Returns:
            Raw stdout of the command

        Raises:
            InvalidTargetError: If the target fails validation
            TracerouteTimeoutError: If the command exceeds its timeout
            TracerouteError: If the command is missing or produced only errors
        """
        target = validate_target(target)
        cmd = self.build_command(target)
        logger.info(f"Running traceroute for: {target}")

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout_seconds
            )
        except FileNotFoundError:
            raise TracerouteError(
                f"{cmd[0]} not found. Please install it: apt-get install traceroute (Linux)"
            )
        except subprocess.TimeoutExpired:
            raise TracerouteTimeoutError(
                f"Traceroute to {target} took longer than {self.timeout_seconds}s"
            )

        if result.stderr and not result.stdout:
            raise TracerouteError(result.stderr.strip())

        return result.stdout
