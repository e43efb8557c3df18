"""Tests for the command-line interface."""

import json
import os

import pytest
import yaml
from click.testing import CliRunner
from rich.console import Console

from diskmon import cli
from diskmon.models import AttemptOutcome, DispatchAttempt, DispatchResult, HealthVerdict
from diskmon.monitor import DiskMonitor

CONFIG = {
    "smtp_server": "smtp.example.com",
    "smtp_port": 587,
    "smtp_security": "starttls",
    "email_from": "alerts@example.com",
    "email_to": "admin@example.com",
    "threshold_percent": 10,
}


class FakeEnumerator:
    def __init__(self, devices):
        self.devices = devices
        self.warnings = []

    def enumerate(self):
        return list(self.devices)


class FakeOrchestrator:
    def collect(self, devices, per_probe_timeout=30.0, overall_timeout=None):
        return {d: HealthVerdict.passing("smartmontools", "SMART PASSED", model="WDC WD40") for d in devices}


class FakeDispatcher:
    result = DispatchResult.success([DispatchAttempt(1, AttemptOutcome.SUCCESS, 0.01)])

    def __init__(self):
        self.sent = []

    def send(self, report, transport):
        self.sent.append(report)
        return self.result


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def devices(make_record):
    return [make_record(identifier="/", free_gb=50)]


@pytest.fixture
def fake_monitor(monkeypatch, devices, system_info):
    """Replace the monitor used by the CLI with one backed by fakes."""
    created = []

    def factory(config):
        mon = DiskMonitor(
            config,
            enumerator=FakeEnumerator(devices),
            orchestrator=FakeOrchestrator(),
            dispatcher=FakeDispatcher(),
            system_info=system_info,
        )
        created.append(mon)
        return mon

    monkeypatch.setattr(cli, "DiskMonitor", factory)
    monkeypatch.setattr(cli, "console", Console(width=200))
    monkeypatch.setattr("diskmon.monitor.find_smartctl", lambda: "/usr/sbin/smartctl")
    return created


def write_config(path, **overrides):
    path.write_text(yaml.safe_dump({**CONFIG, **overrides}))
    if os.name == "posix":
        path.chmod(0o600)
    return str(path)


class TestCheck:
    """Tests for `diskmon check`."""

    def test_no_alert(self, runner, tmp_path, fake_monitor):
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config])

        assert result.exit_code == 0, result.output
        assert "Disk Health Summary" in result.output
        assert "No alert needed" in result.output
        assert fake_monitor[0].dispatcher.sent == []

    def test_alert_sent(self, runner, tmp_path, fake_monitor, devices, make_record):
        devices[0] = make_record(identifier="/", free_gb=2)
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config])

        assert result.exit_code == 0, result.output
        assert "Alert delivered" in result.output
        assert len(fake_monitor[0].dispatcher.sent) == 1

    def test_alert_with_mail_disabled(self, runner, tmp_path, fake_monitor, devices, make_record):
        devices[0] = make_record(identifier="/", free_gb=2)
        config = write_config(tmp_path / "config.yaml", mail_enabled=False)

        result = runner.invoke(cli.main, ["check", "-c", config])

        assert result.exit_code == 0, result.output
        assert "Alert raised, mail disabled (not sent)" in result.output
        assert "No alert needed" not in result.output
        assert fake_monitor[0].dispatcher.sent == []

    def test_force_mail(self, runner, tmp_path, fake_monitor):
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config, "--force-mail"])

        assert result.exit_code == 0, result.output
        assert fake_monitor[0].dispatcher.sent[0].forced

    def test_delivery_failure_exit_code(self, runner, tmp_path, fake_monitor, monkeypatch):
        failed = DispatchResult.failed("SMTP authentication failed: 535", [])
        monkeypatch.setattr(FakeDispatcher, "result", failed)
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config, "--force-mail"])

        assert result.exit_code == 2
        assert "Alert delivery failed" in result.output

    def test_json_output(self, runner, tmp_path, fake_monitor):
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config, "--json", "--force-mail"])

        assert result.exit_code == 0, result.output
        text = result.output
        data, _ = json.JSONDecoder().raw_decode(text[text.index("{"):])
        for key in ("system_info", "disks", "threshold_percent", "smartctl_available", "alerts", "overall_alert"):
            assert key in data
        assert data["smartctl_available"] is True
        assert data["disks"][0]["health"]["status"] == "passing"
        # --json never sends mail
        assert fake_monitor[0].dispatcher.sent == []

    def test_smart_table(self, runner, tmp_path, fake_monitor):
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config, "--smart", "--force-mail"])

        assert result.exit_code == 0, result.output
        assert "SMART Health" in result.output
        assert "WDC WD40" in result.output
        assert fake_monitor[0].dispatcher.sent == []

    def test_no_devices(self, runner, tmp_path, fake_monitor, devices):
        devices.clear()
        config = write_config(tmp_path / "config.yaml")

        result = runner.invoke(cli.main, ["check", "-c", config])

        assert result.exit_code == 1
        assert "No monitorable disks found" in result.output

    def test_missing_config(self, runner, tmp_path, fake_monitor):
        result = runner.invoke(cli.main, ["check", "-c", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 2
        assert "Configuration error" in result.output
        assert fake_monitor == []

    def test_invalid_config(self, runner, tmp_path, fake_monitor):
        config = write_config(tmp_path / "config.yaml", smtp_port=0, threshold_percent=500)

        result = runner.invoke(cli.main, ["check", "-c", config])

        assert result.exit_code == 2
        assert "smtp_port" in result.output
        assert "threshold_percent" in result.output
        assert fake_monitor == []

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_permission_warning(self, runner, tmp_path, fake_monitor):
        config = write_config(tmp_path / "config.yaml")
        os.chmod(config, 0o644)

        result = runner.invoke(cli.main, ["check", "-c", config])

        assert result.exit_code == 0, result.output
        assert "chmod 600" in result.output


class TestInit:
    """Tests for `diskmon init`."""

    def test_creates_config(self, runner, tmp_path):
        path = tmp_path / "config.yaml"

        result = runner.invoke(cli.main, ["init", "-o", str(path)])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load(path.read_text())
        assert data["smtp_server"] == "smtp.example.com"
        if os.name == "posix":
            assert path.stat().st_mode & 0o777 == 0o600

    def test_refuses_overwrite(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("keep: me\n")

        result = runner.invoke(cli.main, ["init", "-o", str(path)])

        assert result.exit_code == 1
        assert path.read_text() == "keep: me\n"

    def test_force_overwrite(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("keep: me\n")

        result = runner.invoke(cli.main, ["init", "-o", str(path), "--force"])

        assert result.exit_code == 0
        assert "smtp_server" in path.read_text()
