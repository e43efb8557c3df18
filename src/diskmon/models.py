"""Data models for disk monitoring."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from diskmon.system import SystemInfo

GB = 1024**3


class VerdictStatus(str, Enum):
    """Health classification of a single device."""

    PASSING = "passing"
    FAILING = "failing"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DeviceRecord:
    """A monitorable storage volume, captured once per run."""

    identifier: str  # mount point on POSIX, drive letter ("C:") on Windows
    device: str
    mountpoint: str
    filesystem: str
    total: int
    used: int
    free: int
    is_removable: bool = False

    @property
    def display_name(self) -> str:
        if re.fullmatch(r"[A-Za-z]:", self.identifier):
            return f"Drive {self.identifier[0].upper()}"
        return self.identifier

    @property
    def free_percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.free / self.total) * 100

    @property
    def device_name(self) -> str:
        """Last path component of the block device (``sda1``, ``mapper/vg-root`` -> ``vg-root``)."""
        return self.device.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]

    @property
    def is_raid(self) -> bool:
        name = self.device_name
        return name.startswith(("md", "dm-")) or "/mapper/" in self.device


@dataclass(frozen=True)
class HealthVerdict:
    """Resolved health of one device, plus the backend that produced it."""

    status: VerdictStatus
    detail: str | None = None
    source: str = "none"
    model: str | None = None
    serial: str | None = None
    vendor: str | None = None

    @classmethod
    def passing(cls, source: str, detail: str | None = None, **identity: str | None) -> "HealthVerdict":
        return cls(VerdictStatus.PASSING, detail, source, **identity)

    @classmethod
    def failing(cls, source: str, detail: str | None = None, **identity: str | None) -> "HealthVerdict":
        return cls(VerdictStatus.FAILING, detail, source, **identity)

    @classmethod
    def unknown(cls, source: str = "none", detail: str | None = None, **identity: str | None) -> "HealthVerdict":
        return cls(VerdictStatus.UNKNOWN, detail, source, **identity)

    @property
    def is_decisive(self) -> bool:
        """True for Passing or Failing; Unknown lets the fallback chain continue."""
        return self.status != VerdictStatus.UNKNOWN

    @property
    def timed_out(self) -> bool:
        return self.source == "timeout"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "detail": self.detail,
            "source": self.source,
            "model": self.model,
            "serial": self.serial,
            "vendor": self.vendor,
        }


@dataclass(frozen=True)
class DeviceReport:
    """Alert evaluation of one device. Built by the AlertEngine and never mutated."""

    record: DeviceRecord
    verdict: HealthVerdict
    free_percent: float
    space_alert: bool
    health_alert: bool

    @property
    def alerted(self) -> bool:
        return self.space_alert or self.health_alert

    @property
    def reasons(self) -> list[str]:
        reasons = []
        if self.space_alert:
            reasons.append(f"low space ({self.free_percent:.2f}% free)")
        if self.health_alert:
            if self.verdict.status == VerdictStatus.FAILING:
                reasons.append(f"health failing ({self.verdict.detail or self.verdict.source})")
            else:
                reasons.append("health status unknown")
        return reasons

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        record = self.record
        return {
            "identifier": record.identifier,
            "display_name": record.display_name,
            "device": record.device,
            "mount_point": record.mountpoint,
            "file_system": record.filesystem,
            "total_space": record.total,
            "used_space": record.used,
            "available_space": record.free,
            "free_space_percent": round(self.free_percent, 2),
            "is_removable": record.is_removable,
            "is_raid": record.is_raid,
            "health": self.verdict.to_dict(),
            "space_alert": self.space_alert,
            "health_alert": self.health_alert,
        }


@dataclass(frozen=True)
class DiskReport:
    """Everything a run hands to the dispatcher and the output formatter."""

    devices: tuple[DeviceReport, ...]
    overall_alert: bool
    threshold_percent: float
    system_info: SystemInfo
    forced: bool = False
    friendly_name: str | None = None
    smartctl_available: bool = False
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def alerted_devices(self) -> list[DeviceReport]:
        return [d for d in self.devices if d.alerted]

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.system_info.hostname

    @property
    def subject(self) -> str:
        prefix = "[FORCED] " if self.forced else ""
        return f"{prefix}System Disk Report - {self.display_name} ({self.system_info.description})"

    def get_alerts(self) -> list[str]:
        """Alert lines in ``<device>: <reason>`` form."""
        return [
            f"{d.record.display_name}: {reason}"
            for d in self.devices
            for reason in d.reasons
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.generated_at.isoformat(),
            "system_info": self.system_info.to_dict(),
            "friendly_name": self.friendly_name,
            "threshold_percent": self.threshold_percent,
            "smartctl_available": self.smartctl_available,
            "forced": self.forced,
            "overall_alert": self.overall_alert,
            "disks": [d.to_dict() for d in self.devices],
            "alerts": self.get_alerts(),
        }


class AttemptOutcome(str, Enum):
    """Outcome of one delivery attempt."""

    SUCCESS = "success"
    TRANSIENT = "transient"
    FATAL = "fatal"


@dataclass(frozen=True)
class DispatchAttempt:
    number: int
    outcome: AttemptOutcome
    elapsed: float
    error: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    """Final result of a send: Delivered, or FailedFatal(reason)."""

    delivered: bool
    attempts: tuple[DispatchAttempt, ...] = ()
    reason: str | None = None

    @classmethod
    def success(cls, attempts: list[DispatchAttempt]) -> "DispatchResult":
        return cls(delivered=True, attempts=tuple(attempts))

    @classmethod
    def failed(cls, reason: str, attempts: list[DispatchAttempt]) -> "DispatchResult":
        return cls(delivered=False, attempts=tuple(attempts), reason=reason)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)
