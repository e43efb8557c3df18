"""Alert policy: free space and health verdicts against configuration."""

from typing import Mapping, Sequence

from diskmon.config import Config
from diskmon.models import DeviceRecord, DeviceReport, HealthVerdict, VerdictStatus

DISABLED = HealthVerdict.unknown(source="disabled", detail="health checks disabled")


class AlertEngine:
    """Decide which devices warrant an alert. Pure: no I/O, no state."""

    def __init__(self, config: Config) -> None:
        self.config = config

    @property
    def health_alerts_enabled(self) -> bool:
        return self.config.health_check_enabled and self.config.smart_enabled

    def evaluate(
        self,
        devices: Sequence[DeviceRecord],
        verdicts: Mapping[DeviceRecord, HealthVerdict] | None,
        force: bool = False,
    ) -> tuple[list[DeviceReport], bool]:
        """Build one DeviceReport per device.

        Args:
            devices: Enumerated devices, in display order.
            verdicts: Resolved verdicts; None or missing entries count as disabled.
            force: Send regardless of alerts (still requires mail to be enabled).

        Returns:
            Tuple of (reports, overall_alert).
        """
        verdicts = verdicts or {}
        reports = [self._evaluate_device(device, verdicts.get(device, DISABLED)) for device in devices]
        any_alert = any(r.alerted for r in reports)
        overall_alert = self.config.mail_enabled and (any_alert or force)
        return reports, overall_alert

    def _evaluate_device(self, device: DeviceRecord, verdict: HealthVerdict) -> DeviceReport:
        free_percent = device.free_percent
        space_alert = free_percent < self.config.threshold_percent

        health_alert = False
        if self.health_alerts_enabled:
            if verdict.status == VerdictStatus.FAILING:
                health_alert = True
            elif verdict.status == VerdictStatus.UNKNOWN:
                health_alert = self.config.send_mail_on_unknown_status

        return DeviceReport(
            record=device,
            verdict=verdict,
            free_percent=free_percent,
            space_alert=space_alert,
            health_alert=health_alert,
        )
