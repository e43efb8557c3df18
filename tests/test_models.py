"""Tests for data models."""

from datetime import datetime

from diskmon.models import (
    AttemptOutcome,
    DeviceReport,
    DiskReport,
    DispatchAttempt,
    DispatchResult,
    HealthVerdict,
    VerdictStatus,
)


class TestDeviceRecord:
    """Tests for DeviceRecord."""

    def test_free_percent(self, make_record):
        rec = make_record(total_gb=100, free_gb=5)
        assert abs(rec.free_percent - 5.0) < 0.001

    def test_free_percent_zero_total(self, make_record):
        rec = make_record(total_gb=0, free_gb=0)
        assert rec.free_percent == 0.0

    def test_display_name_drive_letter(self, make_record):
        rec = make_record(identifier="c:", device="C:\\", mountpoint="C:\\")
        assert rec.display_name == "Drive C"

    def test_display_name_mountpoint(self, make_record):
        assert make_record(identifier="/srv/data").display_name == "/srv/data"

    def test_raid_detection(self, make_record):
        assert make_record(device="/dev/md0").is_raid
        assert make_record(device="/dev/dm-1").is_raid
        assert make_record(device="/dev/mapper/vg-root").is_raid
        assert not make_record(device="/dev/sda1").is_raid

    def test_device_name(self, make_record):
        assert make_record(device="/dev/nvme0n1p2").device_name == "nvme0n1p2"

    def test_hashable(self, make_record):
        rec = make_record()
        assert {rec: 1}[make_record()] == 1


class TestHealthVerdict:
    """Tests for HealthVerdict."""

    def test_constructors(self):
        assert HealthVerdict.passing("smartmontools").status == VerdictStatus.PASSING
        assert HealthVerdict.failing("kernel", "I/O errors").detail == "I/O errors"
        assert HealthVerdict.unknown().source == "none"

    def test_decisive(self):
        assert HealthVerdict.passing("smartmontools").is_decisive
        assert HealthVerdict.failing("smartmontools").is_decisive
        assert not HealthVerdict.unknown().is_decisive

    def test_timed_out(self):
        assert HealthVerdict.unknown(source="timeout").timed_out
        assert not HealthVerdict.unknown().timed_out

    def test_identity(self):
        v = HealthVerdict.passing("smartmontools", model="WDC WD40", serial="ABC123")
        d = v.to_dict()
        assert d["status"] == "passing"
        assert d["model"] == "WDC WD40"
        assert d["serial"] == "ABC123"
        assert d["vendor"] is None


class TestDeviceReport:
    """Tests for DeviceReport."""

    def test_reasons(self, make_record):
        rec = make_record(free_gb=5)
        report = DeviceReport(
            record=rec,
            verdict=HealthVerdict.failing("smartmontools", "SMART FAILED!"),
            free_percent=rec.free_percent,
            space_alert=True,
            health_alert=True,
        )
        assert report.alerted
        assert report.reasons == ["low space (5.00% free)", "health failing (SMART FAILED!)"]

    def test_unknown_reason(self, make_record):
        rec = make_record()
        report = DeviceReport(rec, HealthVerdict.unknown(), rec.free_percent, False, True)
        assert report.reasons == ["health status unknown"]

    def test_no_alert(self, make_record):
        rec = make_record()
        report = DeviceReport(rec, HealthVerdict.passing("kernel"), rec.free_percent, False, False)
        assert not report.alerted
        assert report.reasons == []

    def test_to_dict(self, make_record):
        rec = make_record(free_gb=25)
        d = DeviceReport(rec, HealthVerdict.passing("kernel"), rec.free_percent, False, False).to_dict()
        assert d["identifier"] == "/"
        assert d["free_space_percent"] == 25.0
        assert d["health"]["source"] == "kernel"
        assert d["space_alert"] is False


class TestDiskReport:
    """Tests for DiskReport."""

    def _report(self, make_record, system_info, **kwargs):
        low = make_record(identifier="/", free_gb=5)
        ok = make_record(identifier="/srv", device="/dev/sdb1", free_gb=60)
        devices = (
            DeviceReport(low, HealthVerdict.passing("smartmontools"), low.free_percent, True, False),
            DeviceReport(ok, HealthVerdict.passing("smartmontools"), ok.free_percent, False, False),
        )
        return DiskReport(
            devices=devices,
            overall_alert=True,
            threshold_percent=10.0,
            system_info=system_info,
            generated_at=datetime(2024, 3, 1, 12, 0, 0),
            **kwargs,
        )

    def test_alerted_devices(self, make_record, system_info):
        report = self._report(make_record, system_info)
        assert [d.record.identifier for d in report.alerted_devices] == ["/"]

    def test_subject(self, make_record, system_info):
        report = self._report(make_record, system_info)
        assert report.subject == "System Disk Report - nas01 (Linux 6.1 64-bit)"

    def test_subject_forced_with_friendly_name(self, make_record, system_info):
        report = self._report(make_record, system_info, forced=True, friendly_name="backup-box")
        assert report.subject == "[FORCED] System Disk Report - backup-box (Linux 6.1 64-bit)"

    def test_get_alerts(self, make_record, system_info):
        report = self._report(make_record, system_info)
        assert report.get_alerts() == ["/: low space (5.00% free)"]

    def test_to_dict(self, make_record, system_info):
        d = self._report(make_record, system_info).to_dict()
        for key in ("system_info", "disks", "threshold_percent", "smartctl_available", "alerts", "overall_alert"):
            assert key in d
        assert d["timestamp"] == "2024-03-01T12:00:00"
        assert d["system_info"]["hostname"] == "nas01"
        assert len(d["disks"]) == 2


class TestDispatchResult:
    """Tests for DispatchResult."""

    def test_success(self):
        attempts = [DispatchAttempt(1, AttemptOutcome.SUCCESS, 0.1)]
        result = DispatchResult.success(attempts)
        assert result.delivered
        assert result.attempt_count == 1
        assert result.reason is None

    def test_failed(self):
        attempts = [DispatchAttempt(1, AttemptOutcome.FATAL, 0.1, "auth")]
        result = DispatchResult.failed("auth", attempts)
        assert not result.delivered
        assert result.reason == "auth"
        assert result.attempts[0].outcome == AttemptOutcome.FATAL
