"""Disk health backends and their per-platform fallback order."""

from diskmon.models import DeviceRecord
from diskmon.probes.base import (
    HealthProbe,
    ProbeBackendError,
    ProbeError,
    ProbeTimeout,
    ProbeUnavailable,
)
from diskmon.probes.kernel import KernelProbe
from diskmon.probes.mmc import MmcProbe
from diskmon.probes.smartctl import SmartctlProbe
from diskmon.probes.wmi import WmiProbe
from diskmon.system import current_platform


def probe_chain(device: DeviceRecord, platform: str | None = None) -> list[HealthProbe]:
    """Backends to try for a device, highest priority first.

    smartctl always leads; each platform family then adds its own fallback.
    """
    platform = platform or current_platform()
    chain: list[HealthProbe] = [SmartctlProbe(platform=platform)]

    if platform == "linux":
        if "mmcblk" in device.device:
            chain.append(MmcProbe(platform=platform))
        chain.append(KernelProbe(platform=platform))
    elif platform == "windows":
        chain.append(WmiProbe(platform=platform))

    return chain


__all__ = [
    "HealthProbe",
    "KernelProbe",
    "MmcProbe",
    "ProbeBackendError",
    "ProbeError",
    "ProbeTimeout",
    "ProbeUnavailable",
    "SmartctlProbe",
    "WmiProbe",
    "probe_chain",
]
