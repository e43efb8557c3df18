"""Tests for the monitoring pipeline."""

import pytest

from diskmon import monitor as monitor_module
from diskmon.enumerator import EnumerationError
from diskmon.models import AttemptOutcome, DispatchAttempt, DispatchResult, HealthVerdict, VerdictStatus
from diskmon.monitor import EXIT_FAILURE, EXIT_NO_DEVICES, EXIT_OK, DiskMonitor


class FakeEnumerator:
    def __init__(self, devices, warnings=()):
        self.devices = list(devices)
        self.warnings = list(warnings)

    def enumerate(self):
        return list(self.devices)


class FakeOrchestrator:
    def __init__(self, verdict=None):
        self.verdict = verdict or HealthVerdict.passing("smartmontools", "SMART PASSED")
        self.calls = []

    def collect(self, devices, per_probe_timeout=30.0, overall_timeout=None):
        self.calls.append((list(devices), per_probe_timeout, overall_timeout))
        return {device: self.verdict for device in devices}


class FakeDispatcher:
    def __init__(self, result=None):
        self.result = result or DispatchResult.success([DispatchAttempt(1, AttemptOutcome.SUCCESS, 0.01)])
        self.sent = []

    def send(self, report, transport):
        self.sent.append((report, transport))
        return self.result


@pytest.fixture(autouse=True)
def no_smartctl(monkeypatch):
    monkeypatch.setattr(monitor_module, "find_smartctl", lambda: None)


@pytest.fixture
def build(make_config, system_info):
    def factory(devices, verdict=None, dispatch=None, warnings=(), **config):
        orchestrator = FakeOrchestrator(verdict)
        dispatcher = FakeDispatcher(dispatch)
        mon = DiskMonitor(
            make_config(**config),
            enumerator=FakeEnumerator(devices, warnings),
            orchestrator=orchestrator,
            dispatcher=dispatcher,
            system_info=system_info,
        )
        return mon, orchestrator, dispatcher

    return factory


class TestScan:
    """Tests for DiskMonitor.scan."""

    def test_low_space_raises_alert(self, build, make_record):
        device = make_record(total_gb=100, free_gb=5)
        mon, orchestrator, _ = build([device], threshold_percent=10.0)

        report = mon.scan()

        assert report.overall_alert
        assert report.devices[0].space_alert
        assert report.threshold_percent == 10.0
        assert report.smartctl_available is False
        assert len(orchestrator.calls) == 1

    def test_timeouts_from_config(self, build, make_record):
        mon, orchestrator, _ = build([make_record()], smart_timeout=12.0, overall_timeout=40.0)
        mon.scan()
        assert orchestrator.calls[0][1:] == (12.0, 40.0)

    def test_timeout_overrides(self, build, make_record):
        mon, orchestrator, _ = build([make_record()])
        mon.scan(per_probe_timeout=2.0, overall_timeout=5.0)
        assert orchestrator.calls[0][1:] == (2.0, 5.0)

    def test_health_checks_disabled_skips_probing(self, build, make_record):
        failing = HealthVerdict.failing("smartmontools", "SMART FAILED!")
        mon, orchestrator, _ = build([make_record()], verdict=failing, health_check_enabled=False)

        report = mon.scan()

        assert orchestrator.calls == []
        assert not report.devices[0].health_alert
        assert report.devices[0].verdict.source == "disabled"
        assert not report.overall_alert

    def test_forced(self, build, make_record, system_info):
        mon, _, _ = build([make_record()], friendly_name="backup-box")

        report = mon.scan(force=True)

        assert report.overall_alert
        assert report.forced
        assert report.subject.startswith("[FORCED] System Disk Report - backup-box")

    def test_no_devices(self, build):
        mon, orchestrator, _ = build([])
        report = mon.scan()
        assert report.devices == ()
        assert orchestrator.calls == []


class TestRun:
    """Tests for DiskMonitor.run."""

    def test_no_alert_needed(self, build, make_record):
        mon, _, dispatcher = build([make_record()])

        result = mon.run()

        assert result.dispatch is None
        assert dispatcher.sent == []
        assert result.exit_code == EXIT_OK
        assert result.outcome == "no alert needed"

    def test_alert_delivered(self, build, make_record, transport):
        mon, _, dispatcher = build([make_record(free_gb=1)])

        result = mon.run()

        assert result.dispatch.delivered
        assert dispatcher.sent[0][1] == transport
        assert result.exit_code == EXIT_OK
        assert result.outcome == "alert delivered"

    def test_delivery_failed(self, build, make_record):
        failed = DispatchResult.failed("SMTP authentication failed: 535", [
            DispatchAttempt(1, AttemptOutcome.FATAL, 0.1, "SMTP authentication failed: 535"),
        ])
        mon, _, _ = build([make_record(free_gb=1)], dispatch=failed)

        result = mon.run()

        assert result.exit_code == EXIT_FAILURE
        assert result.outcome == "alert delivery failed: SMTP authentication failed: 535"

    def test_no_devices_exit_code(self, build):
        mon, _, dispatcher = build([])
        result = mon.run(force=True)
        assert result.exit_code == EXIT_NO_DEVICES
        assert dispatcher.sent == []

    def test_send_disabled(self, build, make_record):
        mon, _, dispatcher = build([make_record(free_gb=1)])
        result = mon.run(send=False)
        assert result.report.overall_alert
        assert result.dispatch is None
        assert dispatcher.sent == []

    def test_mail_disabled(self, build, make_record):
        mon, _, dispatcher = build([make_record(free_gb=1)], mail_enabled=False)
        result = mon.run(force=True)
        assert dispatcher.sent == []
        assert result.exit_code == EXIT_OK

    def test_mail_disabled_reports_unsent_alert(self, build, make_record):
        device = make_record(total_gb=100, free_gb=1)
        mon, _, dispatcher = build([device], mail_enabled=False, health_check_enabled=False)

        result = mon.run()

        assert result.report.devices[0].space_alert
        assert not result.report.overall_alert
        assert dispatcher.sent == []
        assert result.outcome == "alert raised, mail disabled (not sent)"
        assert result.exit_code == EXIT_OK

    def test_unknown_health_not_alerted_by_default(self, build, make_record):
        unknown = HealthVerdict.unknown(detail="smartmontools: smartctl not installed; kernel: no sysfs entry")
        mon, _, dispatcher = build([make_record()], verdict=unknown)

        result = mon.run()

        assert result.report.devices[0].verdict.status == VerdictStatus.UNKNOWN
        assert dispatcher.sent == []

    def test_collects_warnings(self, build, make_record):
        mon, _, _ = build([make_record()], warnings=[EnumerationError("/broken", "cannot read capacity")])
        result = mon.run()
        assert result.warnings == ["/broken: cannot read capacity"]
