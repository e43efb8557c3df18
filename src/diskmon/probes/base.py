"""Base health probe interface."""

import logging
import re
import subprocess
import time
from abc import ABC, abstractmethod

from diskmon.models import DeviceRecord, HealthVerdict

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """A backend could not produce a verdict."""

    kind = "error"


class ProbeUnavailable(ProbeError):
    """The backend does not exist on this host or does not apply to the device."""

    kind = "unavailable"


class ProbeTimeout(ProbeError):
    """The backend did not answer before its deadline."""

    kind = "timeout"


class ProbeBackendError(ProbeError):
    """The backend ran but its answer was unusable."""

    kind = "backend error"


class HealthProbe(ABC):
    """Abstract base class for disk health backends.

    Each backend is an independent strategy; the orchestrator decides the
    order in which they are tried.
    """

    name: str = "probe"

    @abstractmethod
    def probe(self, device: DeviceRecord, deadline: float) -> HealthVerdict:
        """Determine the health of a device.

        Args:
            device: Device to inspect.
            deadline: Absolute ``time.monotonic()`` value by which to answer.

        Returns:
            HealthVerdict produced by this backend.

        Raises:
            ProbeUnavailable, ProbeTimeout or ProbeBackendError.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def remaining(deadline: float) -> float:
    """Seconds left before ``deadline``; raises ProbeTimeout when none are."""
    left = deadline - time.monotonic()
    if left <= 0:
        raise ProbeTimeout("deadline exceeded")
    return left


def run_command(args: list[str], deadline: float) -> tuple[int, str, str]:
    """Execute an external command bounded by ``deadline``.

    ``subprocess.run`` kills the child when the timeout expires, so an
    abandoned probe never leaves a process behind.

    Returns:
        Tuple of (exit_code, stdout, stderr).
    """
    timeout = remaining(deadline)
    logger.debug(f"Running {args} (timeout {timeout:.1f}s)")
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ProbeUnavailable(f"{args[0]} not installed") from e
    except subprocess.TimeoutExpired as e:
        raise ProbeTimeout(f"{args[0]} timed out after {timeout:.1f}s") from e
    except OSError as e:
        raise ProbeBackendError(f"{args[0]} failed to start: {e}") from e
    return result.returncode, result.stdout or "", result.stderr or ""


def base_block_device(device: str) -> str:
    """Strip the partition suffix from a Linux block device name.

    ``/dev/sda1`` -> ``sda``, ``/dev/nvme0n1p2`` -> ``nvme0n1``,
    ``/dev/mmcblk0p1`` -> ``mmcblk0``. Unrecognised names are returned as-is.
    """
    name = device.rstrip("/").rsplit("/", 1)[-1]
    for pattern in (r"(nvme\d+n\d+)p\d+", r"(mmcblk\d+)p\d+", r"((?:sd|hd|vd|xvd)[a-z]+)\d+"):
        match = re.fullmatch(pattern, name)
        if match:
            return match.group(1)
    return name
