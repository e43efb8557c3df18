"""Windows management-API probe (WMI associations + Storage module via PowerShell)."""

import json
import logging

from diskmon.models import DeviceRecord, HealthVerdict
from diskmon.probes.base import (
    HealthProbe,
    ProbeBackendError,
    ProbeUnavailable,
    run_command,
)
from diskmon.system import current_platform

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = (
    "LOGICAL_DISK_NOT_FOUND",
    "PARTITION_NOT_FOUND",
    "PHYSICAL_DISK_NOT_FOUND",
    "PHYSICAL_DISK_HEALTH_NOT_FOUND",
)

# Drive letter -> partition -> physical disk, leaving $physicalDisk set.
RESOLVE_SCRIPT = """
$ErrorActionPreference = 'Stop'
try {{
    $logicalDisk = Get-WmiObject -Class Win32_LogicalDisk -Filter "DeviceID='{letter}:'"
    if (-not $logicalDisk) {{ Write-Output 'LOGICAL_DISK_NOT_FOUND'; exit 1 }}
    $partition = Get-WmiObject -Query "ASSOCIATORS OF {{Win32_LogicalDisk.DeviceID='{letter}:'}} WHERE AssocClass=Win32_LogicalDiskToPartition" | Select-Object -First 1
    if (-not $partition) {{ Write-Output 'PARTITION_NOT_FOUND'; exit 1 }}
    $physicalDisk = Get-WmiObject -Query "ASSOCIATORS OF {{Win32_DiskPartition.DeviceID='$($partition.DeviceID)'}} WHERE AssocClass=Win32_DiskDriveToDiskPartition" | Select-Object -First 1
    if (-not $physicalDisk) {{ Write-Output 'PHYSICAL_DISK_NOT_FOUND'; exit 1 }}
    {body}
}} catch {{
    Write-Output "ERROR: $($_.Exception.Message)"
    exit 1
}}
"""

INDEX_BODY = "Write-Output $physicalDisk.Index"

HEALTH_BODY = """$health = Get-PhysicalDisk | Where-Object { $_.DeviceId -eq [string]$physicalDisk.Index } | Select-Object -First 1
    if (-not $health) { Write-Output 'PHYSICAL_DISK_HEALTH_NOT_FOUND'; exit 1 }
    [PSCustomObject]@{
        DeviceID = $health.DeviceId
        FriendlyName = $health.FriendlyName
        Model = $health.Model
        SerialNumber = $health.SerialNumber
        HealthStatus = [string]$health.HealthStatus
        OperationalStatus = @($health.OperationalStatus | ForEach-Object { [string]$_ })
    } | ConvertTo-Json -Compress"""


def _drive_letter(identifier: str) -> str:
    if len(identifier) >= 2 and identifier[1] == ":" and identifier[0].isalpha():
        return identifier[0].upper()
    raise ProbeUnavailable(f"{identifier} is not a drive letter")


def run_powershell(script: str, deadline: float) -> str:
    """Run a PowerShell script and return its trimmed stdout.

    Raises:
        ProbeBackendError: on a non-zero exit or a not-found/error marker.
    """
    exit_code, stdout, stderr = run_command(
        ["powershell", "-NoProfile", "-NonInteractive", "-Command", script], deadline
    )
    output = stdout.strip()
    if exit_code != 0 or output.startswith("ERROR:") or output in NOT_FOUND_MARKERS:
        raise ProbeBackendError(f"PowerShell query failed: {output or stderr.strip() or f'exit {exit_code}'}")
    return output


def resolve_physical_disk(identifier: str, deadline: float) -> int:
    """Map a drive letter to the index of its underlying physical disk."""
    letter = _drive_letter(identifier)
    output = run_powershell(RESOLVE_SCRIPT.format(letter=letter, body=INDEX_BODY), deadline)
    try:
        return int(output.splitlines()[-1].strip())
    except (IndexError, ValueError) as e:
        raise ProbeBackendError(f"unexpected physical disk index {output!r}") from e


def classify_physical_disk(data: dict) -> tuple[str, str]:
    """Map Get-PhysicalDisk health fields to (status, detail)."""
    health = str(data.get("HealthStatus") or "Unknown")
    operational = data.get("OperationalStatus") or ["Unknown"]
    if isinstance(operational, str):
        operational = [operational]
    operational = [str(s) for s in operational]
    detail = f"HealthStatus={health}, OperationalStatus={', '.join(operational)}"

    if health == "Healthy" and operational == ["OK"]:
        return "passing", detail
    if health in ("Unhealthy", "Warning"):
        return "failing", detail
    if any(s not in ("OK", "Unknown") for s in operational):
        return "failing", detail
    return "unknown", detail


class WmiProbe(HealthProbe):
    """Predictive-failure status from the Windows Storage management API."""

    name = "WMI"

    def __init__(self, platform: str | None = None) -> None:
        self.platform = platform or current_platform()

    def probe(self, device: DeviceRecord, deadline: float) -> HealthVerdict:
        if self.platform != "windows":
            raise ProbeUnavailable("management API only available on Windows")

        letter = _drive_letter(device.identifier)
        output = run_powershell(RESOLVE_SCRIPT.format(letter=letter, body=HEALTH_BODY), deadline)
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ProbeBackendError(f"unparseable PowerShell output: {output[:200]!r}") from e
        if not isinstance(data, dict):
            raise ProbeBackendError(f"unexpected PowerShell output: {output[:200]!r}")

        status, detail = classify_physical_disk(data)
        identity = {
            "model": data.get("Model") or data.get("FriendlyName"),
            "serial": (data.get("SerialNumber") or "").strip() or None,
            "vendor": None,
        }
        logger.debug(f"Drive {letter}: {detail}")

        if status == "passing":
            return HealthVerdict.passing(self.name, detail, **identity)
        if status == "failing":
            return HealthVerdict.failing(self.name, detail, **identity)
        return HealthVerdict.unknown(self.name, detail, **identity)
