"""Core disk monitoring pipeline: enumerate, collect, evaluate, dispatch."""

import logging
from dataclasses import dataclass, field

from diskmon.alerts import AlertEngine
from diskmon.config import Config
from diskmon.enumerator import DeviceEnumerator
from diskmon.models import DiskReport, DispatchResult
from diskmon.notifiers import NotificationDispatcher
from diskmon.orchestrator import ProbeOrchestrator
from diskmon.system import SystemInfo, find_smartctl, get_system_info

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_DEVICES = 1
EXIT_FAILURE = 2


@dataclass
class RunResult:
    """Outcome of one monitoring run."""

    report: DiskReport
    dispatch: DispatchResult | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        if not self.report.devices:
            return EXIT_NO_DEVICES
        if self.dispatch is not None and not self.dispatch.delivered:
            return EXIT_FAILURE
        return EXIT_OK

    @property
    def outcome(self) -> str:
        if not self.report.devices:
            return "no monitorable disks found"
        if self.dispatch is None:
            if self.report.alerted_devices and not self.report.overall_alert:
                return "alert raised, mail disabled (not sent)"
            return "no alert needed"
        if self.dispatch.delivered:
            return "alert delivered"
        return f"alert delivery failed: {self.dispatch.reason}"


class DiskMonitor:
    """Wire the enumerator, orchestrator, alert engine and dispatcher together.

    Usage:
        monitor = DiskMonitor(Config.from_yaml("config.yaml"))
        result = monitor.run()
        sys.exit(result.exit_code)
    """

    def __init__(
        self,
        config: Config,
        enumerator: DeviceEnumerator | None = None,
        orchestrator: ProbeOrchestrator | None = None,
        dispatcher: NotificationDispatcher | None = None,
        system_info: SystemInfo | None = None,
    ) -> None:
        self.config = config
        self.enumerator = enumerator or DeviceEnumerator(excluded_disks=config.excluded_disks)
        self.orchestrator = orchestrator or ProbeOrchestrator(max_workers=config.max_workers)
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.alerts = AlertEngine(config)
        self._system_info = system_info

    @property
    def system_info(self) -> SystemInfo:
        if self._system_info is None:
            self._system_info = get_system_info()
        return self._system_info

    def scan(
        self,
        per_probe_timeout: float | None = None,
        overall_timeout: float | None = None,
        force: bool = False,
    ) -> DiskReport:
        """Enumerate devices, collect health and evaluate alerts. Sends nothing."""
        devices = self.enumerator.enumerate()
        if not devices:
            logger.error("No monitorable disks found")

        verdicts = None
        if devices and self.config.health_check_enabled:
            verdicts = self.orchestrator.collect(
                devices,
                per_probe_timeout=per_probe_timeout or self.config.smart_timeout,
                overall_timeout=overall_timeout or self.config.overall_timeout,
            )
        elif devices:
            logger.info("Health checks disabled; reporting capacity only")

        reports, overall_alert = self.alerts.evaluate(devices, verdicts, force=force)
        return DiskReport(
            devices=tuple(reports),
            overall_alert=overall_alert,
            threshold_percent=self.config.threshold_percent,
            system_info=self.system_info,
            forced=force,
            friendly_name=self.config.friendly_name,
            smartctl_available=find_smartctl() is not None,
        )

    def notify(self, report: DiskReport) -> DispatchResult | None:
        """Dispatch the report when it carries an alert."""
        if not report.overall_alert:
            if report.alerted_devices:
                logger.warning("Alert raised but mail is disabled; not sending mail")
            else:
                logger.info("No alert needed; not sending mail")
            return None

        for device in report.alerted_devices:
            logger.info(f"Alert for {device.record.display_name}: {', '.join(device.reasons)}")
        result = self.dispatcher.send(report, self.config.transport)
        if not result.delivered:
            logger.error(f"Alert delivery failed: {result.reason}")
        return result

    def run(
        self,
        per_probe_timeout: float | None = None,
        overall_timeout: float | None = None,
        force: bool = False,
        send: bool = True,
    ) -> RunResult:
        """Run the whole pipeline once."""
        report = self.scan(per_probe_timeout, overall_timeout, force=force)
        warnings = list(self.config.warnings)
        warnings += [str(w) for w in getattr(self.enumerator, "warnings", [])]

        if not report.devices:
            return RunResult(report, None, warnings)

        dispatch = self.notify(report) if send else None
        result = RunResult(report, dispatch, warnings)
        logger.info(f"Run finished: {result.outcome}")
        return result
