"""smartmontools-backed health probe."""

import logging

from diskmon.models import DeviceRecord, HealthVerdict
from diskmon.probes.base import (
    HealthProbe,
    ProbeBackendError,
    ProbeUnavailable,
    base_block_device,
    run_command,
)
from diskmon.system import current_platform, find_smartctl

logger = logging.getLogger(__name__)

# Exit status bits 0 and 1: command line did not parse, device open failed.
SMARTCTL_FATAL_BITS = 0b11


def parse_smartctl_output(output: str) -> dict[str, str | None]:
    """Extract overall health and identity from ``smartctl -H -i`` text output.

    ``status`` is "passing", "failing" or None when no health line is present.
    """
    info: dict[str, str | None] = {"status": None, "raw_status": None, "model": None, "serial": None, "vendor": None}

    for line in output.splitlines():
        line = line.strip()
        key, _, value = line.partition(":")
        value = value.strip()

        if "SMART overall-health self-assessment test result" in key:
            info["raw_status"] = value
            info["status"] = "passing" if value.upper().startswith("PASSED") else "failing"
        elif key == "SMART Health Status":
            info["raw_status"] = value
            info["status"] = "passing" if value.upper().startswith("OK") else "failing"
        elif key in ("Device Model", "Model Number", "Product", "Device") and not info["model"]:
            info["model"] = value or None
        elif key == "Serial Number":
            info["serial"] = value or None
        elif key in ("Vendor", "Model Family") and not info["vendor"]:
            info["vendor"] = value or None

    return info


class SmartctlProbe(HealthProbe):
    """Query the SMART overall-health self-assessment via smartctl."""

    name = "smartmontools"

    def __init__(self, executable: str | None = None, platform: str | None = None) -> None:
        self.executable = executable
        self.platform = platform or current_platform()

    def probe(self, device: DeviceRecord, deadline: float) -> HealthVerdict:
        exe = self.executable or find_smartctl()
        if not exe:
            raise ProbeUnavailable("smartctl not installed")

        target = self._target(device, deadline)
        errors: list[str] = []

        for variant in self._variants(target):
            args = [exe, "-H", "-i", *variant, target]
            exit_code, stdout, stderr = run_command(args, deadline)
            if exit_code & SMARTCTL_FATAL_BITS:
                errors.append(f"exit {exit_code} with {' '.join(variant) or 'default type'}")
                logger.debug(f"smartctl {args} exited {exit_code}: {stderr.strip() or stdout.strip()[:200]}")
                continue

            info = parse_smartctl_output(stdout)
            identity = {"model": info["model"], "serial": info["serial"], "vendor": info["vendor"]}

            if info["status"] == "passing":
                return HealthVerdict.passing(self.name, f"SMART {info['raw_status']}", **identity)
            if info["status"] == "failing":
                return HealthVerdict.failing(self.name, f"SMART {info['raw_status']}", **identity)
            if info["model"] or info["serial"]:
                # Device identified but no self-assessment reported (common for SD/USB bridges).
                return HealthVerdict.passing(
                    self.name, "no SMART self-assessment; device identified", **identity
                )
            errors.append(f"no health data with {' '.join(variant) or 'default type'}")

        raise ProbeBackendError(f"smartctl returned no health data for {target} ({'; '.join(errors)})")

    def _target(self, device: DeviceRecord, deadline: float) -> str:
        if self.platform == "windows":
            from diskmon.probes.wmi import resolve_physical_disk

            return f"/dev/pd{resolve_physical_disk(device.identifier, deadline)}"
        if not device.device.startswith("/dev/"):
            raise ProbeUnavailable(f"no block device behind {device.identifier}")
        return f"/dev/{base_block_device(device.device)}"

    @staticmethod
    def _variants(target: str) -> list[list[str]]:
        if "nvme" in target:
            return [[], ["-d", "nvme"]]
        return [[], ["-d", "auto"], ["-d", "sat"]]
