"""
diskmon - Disk capacity and health monitor with e-mail alerts.

Checks free space and drive health (smartctl, with kernel, MMC and WMI
fallbacks) on every local disk and mails a report when something needs
attention.
"""

__version__ = "1.0.0"

from diskmon.config import Config, ConfigurationError, TransportConfig
from diskmon.models import DeviceRecord, DiskReport, HealthVerdict, VerdictStatus
from diskmon.monitor import DiskMonitor, RunResult

__all__ = [
    "Config",
    "ConfigurationError",
    "TransportConfig",
    "DeviceRecord",
    "DiskReport",
    "HealthVerdict",
    "VerdictStatus",
    "DiskMonitor",
    "RunResult",
]
