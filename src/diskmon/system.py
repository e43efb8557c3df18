"""Host system information for reports."""

import logging
import os
import platform
import shutil
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

WINDOWS_SMARTCTL_PATHS = [
    r"C:\Program Files\smartmontools\bin\smartctl.exe",
    r"C:\Program Files\smartmontools\smartctl.exe",
    r"C:\Program Files (x86)\smartmontools\bin\smartctl.exe",
]

ARCHITECTURES = {
    "x86_64": "64-bit",
    "amd64": "64-bit",
    "i386": "32-bit",
    "i686": "32-bit",
    "x86": "32-bit",
    "aarch64": "ARM64",
    "arm64": "ARM64",
    "armv7l": "ARM32",
    "armv6l": "ARM32",
}


@dataclass(frozen=True)
class SystemInfo:
    """Basic information about the monitored host."""

    os_name: str
    os_version: str
    architecture: str
    hostname: str
    is_virtualized: bool = False

    @property
    def description(self) -> str:
        return f"{self.os_name} {self.os_version} {self.architecture}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "os_name": self.os_name,
            "os_version": self.os_version,
            "architecture": self.architecture,
            "hostname": self.hostname,
            "is_virtualized": self.is_virtualized,
        }


def current_platform() -> str:
    """Platform family used to pick probe chains: linux, windows, darwin, ..."""
    return platform.system().lower()


def find_smartctl() -> str | None:
    """Locate the smartctl executable, or None when smartmontools is not installed."""
    path = shutil.which("smartctl")
    if path:
        return path
    if current_platform() == "windows":
        for candidate in WINDOWS_SMARTCTL_PATHS:
            if Path(candidate).is_file():
                return candidate
    return None


def is_virtualized() -> bool:
    if current_platform() == "linux":
        try:
            return "hypervisor" in Path("/proc/cpuinfo").read_text()
        except OSError:
            return False
    if current_platform() == "windows":
        # Single-CPU guests are the common case; there is no cheap reliable check.
        return (os.cpu_count() or 1) < 2
    return False


def get_system_info() -> SystemInfo:
    """Collect host information."""
    machine = platform.machine()
    info = SystemInfo(
        os_name=platform.system() or "Unknown OS",
        os_version=platform.release() or "Unknown Version",
        architecture=ARCHITECTURES.get(machine.lower(), machine or "Unknown"),
        hostname=socket.gethostname() or "unknown",
        is_virtualized=is_virtualized(),
    )
    logger.debug(f"System info: {info}")
    return info
