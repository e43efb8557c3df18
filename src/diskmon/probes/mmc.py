"""Heuristic probe for SD/MMC media, which rarely speak SMART."""

import logging
import re
from pathlib import Path

from diskmon.models import DeviceRecord, HealthVerdict
from diskmon.probes.base import HealthProbe, ProbeUnavailable, base_block_device
from diskmon.probes.kernel import SYS_BLOCK, device_log_lines, read_kernel_log, read_sysfs
from diskmon.system import current_platform

logger = logging.getLogger(__name__)

LOG_WINDOW = 1000
MMC_ERROR = re.compile(r"error|fail|timeout|crc", re.IGNORECASE)

MANUFACTURERS = {
    0x01: "Panasonic",
    0x02: "Toshiba",
    0x03: "SanDisk",
    0x13: "Micron",
    0x15: "Samsung",
    0x27: "Phison",
    0x28: "Lexar",
    0x41: "Kingston",
    0x6F: "STMicroelectronics",
    0x74: "Transcend",
    0x76: "Patriot",
}


def cid_serial(cid: str | None) -> str | None:
    """Product serial number, bytes 9-12 of the card identification register."""
    if not cid or len(cid) < 26:
        return None
    try:
        return f"{int(cid[18:26], 16):08X}"
    except ValueError:
        return None


def manufacturer_name(manfid: str | None) -> str | None:
    if not manfid:
        return None
    try:
        code = int(manfid, 0)
    except ValueError:
        return None
    return MANUFACTURERS.get(code, f"Unknown (0x{code:02X})")


class MmcProbe(HealthProbe):
    """Scan the kernel log for errors, timeouts and CRC failures on an mmcblk device."""

    name = "mmc"

    def __init__(self, sys_block: Path = SYS_BLOCK, platform: str | None = None) -> None:
        self.sys_block = Path(sys_block)
        self.platform = platform or current_platform()

    def probe(self, device: DeviceRecord, deadline: float) -> HealthVerdict:
        base = base_block_device(device.device)
        if self.platform != "linux" or not base.startswith("mmcblk"):
            raise ProbeUnavailable(f"{base} is not an SD/MMC device")

        card = self.sys_block / base / "device"
        identity = {
            "model": read_sysfs(card / "name"),
            "serial": cid_serial(read_sysfs(card / "cid")),
            "vendor": manufacturer_name(read_sysfs(card / "manfid")),
        }

        lines = device_log_lines(read_kernel_log(deadline), base, last=LOG_WINDOW)
        errors = [line for line in lines if MMC_ERROR.search(line)]
        if errors:
            logger.debug(f"Found {len(errors)} MMC errors for {base}")
            return HealthVerdict.failing(
                self.name, f"{len(errors)} SD/MMC error(s) in kernel log, last: {errors[-1].strip()}", **identity
            )
        return HealthVerdict.passing(self.name, "heuristic: no SD/MMC errors in kernel log", **identity)
