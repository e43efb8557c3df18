"""Base notifier interface."""

from abc import ABC, abstractmethod

from diskmon.models import GB, DiskReport, VerdictStatus


class DispatchError(Exception):
    """Delivery of a report failed."""

    retryable = False


class TransientDispatchError(DispatchError):
    """Failure expected to clear up on its own (timeouts, resets, 4xx replies)."""

    retryable = True


class FatalDispatchError(DispatchError):
    """Failure that retrying cannot fix (authentication, addresses, certificates)."""


class BaseNotifier(ABC):
    """Abstract base class for report notifiers."""

    @abstractmethod
    def send_report(self, report: DiskReport) -> None:
        """Deliver a report.

        Raises:
            TransientDispatchError: delivery may succeed if retried.
            FatalDispatchError: delivery will not succeed as configured.
        """
        ...

    def format_report(self, report: DiskReport) -> str:
        """Format a plain-text report.

        Override this method to customize message formatting.
        """
        system = report.system_info
        threshold = report.threshold_percent
        devices = report.devices

        failing = sum(1 for d in devices if d.verdict.status == VerdictStatus.FAILING)
        unknown = sum(1 for d in devices if d.verdict.status == VerdictStatus.UNKNOWN)
        low_space = sum(1 for d in devices if d.space_alert)

        lines = [
            "System Disk Report",
            "",
            f"Device: {report.display_name} ({system.hostname})",
            f"System: {system.description}{' (Virtualized)' if system.is_virtualized else ''}",
            f"Report Time: {report.generated_at.strftime('%d-%m-%Y %H:%M:%S')}",
            f"Mode: {'Forced Report' if report.forced else 'Normal Scan'}",
            "SMART Tools: "
            + ("smartmontools detected" if report.smartctl_available else "smartmontools not detected - using fallback methods"),
            "",
            "Disk Summary:",
            f" - Total Disks: {len(devices)}",
            f" - Low Space (<{threshold:g}%): {low_space}",
            f" - Health Failing: {failing}",
            f" - Health Unknown: {unknown}",
        ]

        if unknown:
            lines += ["", "WARNING: No health information available for one or more disks."]
        if any(d.record.is_raid for d in devices):
            lines += ["", "WARNING: RAID device(s) detected. Health information may be unreliable."]

        for i, d in enumerate(devices, 1):
            record = d.record
            tags = []
            if d.space_alert:
                tags.append("[LOW SPACE]")
            if d.verdict.status == VerdictStatus.FAILING:
                tags.append("[HEALTH FAILING]")
            elif d.health_alert:
                tags.append("[HEALTH UNKNOWN]")
            indicator = " ".join(tags) or "[OK]"

            lines += [
                "",
                f"Disk {i}: {indicator} {record.display_name}",
                f" - Mount Point: {record.mountpoint}",
                f" - File System: {record.filesystem}",
                f" - Total Space: {record.total / GB:.2f} GB",
                f" - Used Space: {record.used / GB:.2f} GB",
                f" - Available Space: {record.free / GB:.2f} GB",
                f" - Free Space: {d.free_percent:.2f}%",
                f" - Health: {d.verdict.status.value.upper()} ({d.verdict.source})",
            ]
            if d.verdict.detail:
                lines.append(f" - Health Detail: {d.verdict.detail}")
            for label, value in (("Model", d.verdict.model), ("Serial Number", d.verdict.serial), ("Brand", d.verdict.vendor)):
                if value:
                    lines.append(f" - {label}: {value}")
            if d.verdict.source in ("kernel", "mmc"):
                lines.append("   * WARNING: Health info from fallback method; may be incomplete or unreliable.")
            if record.is_raid:
                lines.append("   * WARNING: RAID device detected; health info may be unreliable.")
            if system.is_virtualized:
                lines.append("   * WARNING: Running in virtualized environment; health info may be unreliable.")

        return "\n".join(lines)
