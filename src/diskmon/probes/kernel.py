"""Linux kernel-interface health probe (sysfs counters and the kernel log)."""

import logging
import re
from pathlib import Path

from diskmon.models import DeviceRecord, HealthVerdict
from diskmon.probes.base import (
    HealthProbe,
    ProbeBackendError,
    ProbeError,
    ProbeUnavailable,
    base_block_device,
    run_command,
)
from diskmon.system import current_platform

logger = logging.getLogger(__name__)

SYS_BLOCK = Path("/sys/block")

ERROR_SIGNATURES = re.compile(
    r"i/o error|crc error|badcrc|medium error|uncorrectable|unrecovered read error|failed command",
    re.IGNORECASE,
)


def read_kernel_log(deadline: float) -> list[str]:
    """Return kernel ring buffer lines via ``dmesg``.

    Raises:
        ProbeUnavailable: dmesg is not installed.
        ProbeBackendError: dmesg refused to run (usually dmesg_restrict).
    """
    exit_code, stdout, stderr = run_command(["dmesg"], deadline)
    if exit_code != 0:
        raise ProbeBackendError(f"dmesg failed: {stderr.strip() or f'exit {exit_code}'}")
    return stdout.splitlines()


def device_log_lines(lines: list[str], device_name: str, last: int | None = None) -> list[str]:
    """Kernel log lines mentioning ``device_name``, optionally limited to the last N lines."""
    if last is not None:
        lines = lines[-last:]
    needle = device_name.lower()
    return [line for line in lines if needle in line.lower()]


def read_sysfs(path: Path) -> str | None:
    try:
        value = path.read_text().strip()
    except OSError:
        return None
    return value or None


class KernelProbe(HealthProbe):
    """Heuristic health check from kernel error counters and log signatures.

    Weaker than a SMART self-assessment: a passing verdict only means no
    errors were recorded since boot.
    """

    name = "kernel"

    def __init__(self, sys_block: Path = SYS_BLOCK, platform: str | None = None) -> None:
        self.sys_block = Path(sys_block)
        self.platform = platform or current_platform()

    def probe(self, device: DeviceRecord, deadline: float) -> HealthVerdict:
        if self.platform != "linux":
            raise ProbeUnavailable("kernel interface only available on Linux")

        base = base_block_device(device.device)
        block_dir = self.sys_block / base
        if not block_dir.exists():
            raise ProbeUnavailable(f"no sysfs entry for {base}")

        identity = {
            "model": read_sysfs(block_dir / "device" / "model"),
            "serial": read_sysfs(block_dir / "device" / "serial"),
            "vendor": read_sysfs(block_dir / "device" / "vendor"),
        }
        signals = 0

        smart_attributes = read_sysfs(block_dir / "device" / "smart_attributes")
        if smart_attributes is not None:
            signals += 1
            if "FAILING_NOW" in smart_attributes:
                return HealthVerdict.failing(self.name, "SMART attribute FAILING_NOW", **identity)

        ioerr = read_sysfs(block_dir / "device" / "ioerr_cnt")
        if ioerr is not None:
            signals += 1
            try:
                count = int(ioerr, 0)
            except ValueError:
                count = 0
            if count > 0:
                return HealthVerdict.failing(self.name, f"{count} I/O errors recorded by the kernel", **identity)

        try:
            matches = [
                line for line in device_log_lines(read_kernel_log(deadline), base)
                if ERROR_SIGNATURES.search(line)
            ]
            signals += 1
        except ProbeError as e:
            if signals == 0:
                raise ProbeBackendError(f"no readable error counters and kernel log unavailable: {e}") from e
            logger.debug(f"Kernel log unavailable for {base}: {e}")
            matches = []

        if matches:
            logger.debug(f"Kernel errors for {base}: {matches[-3:]}")
            return HealthVerdict.failing(
                self.name, f"{len(matches)} kernel log error(s), last: {matches[-1].strip()}", **identity
            )

        return HealthVerdict.passing(self.name, "heuristic: no kernel I/O errors recorded", **identity)
