"""Discovery of the local storage volumes worth monitoring."""

import logging
from pathlib import Path

import psutil

from diskmon.models import DeviceRecord
from diskmon.system import current_platform

logger = logging.getLogger(__name__)

PSEUDO_FILESYSTEMS = {
    "", "tmpfs", "devtmpfs", "ramfs", "squashfs", "overlay", "overlayfs",
    "proc", "sysfs", "devpts", "cgroup", "cgroup2", "debugfs", "tracefs",
    "securityfs", "pstore", "efivarfs", "bpf", "autofs", "mqueue", "hugetlbfs",
    "configfs", "fusectl", "binfmt_misc", "nsfs", "rpc_pipefs", "devfs",
}

NETWORK_FILESYSTEMS = {
    "nfs", "nfs4", "cifs", "smbfs", "smb3", "sshfs", "fuse.sshfs", "9p",
    "afs", "ncpfs", "glusterfs", "ceph", "fuse.rclone", "davfs", "webdav",
}

OPTICAL_FILESYSTEMS = {"iso9660", "udf", "cdfs"}

REMOVABLE_MOUNT_PREFIXES = ("/media/", "/mnt/", "/run/media/")


class EnumerationError(Exception):
    """A device could not be read and was skipped."""

    def __init__(self, identifier: str, reason: str) -> None:
        super().__init__(f"{identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason


def _identifier(mountpoint: str, platform: str) -> str:
    if platform == "windows" and len(mountpoint) >= 2 and mountpoint[1] == ":":
        return mountpoint[:2].upper()
    return mountpoint


def _sysfs_removable(device: str) -> bool:
    """Linux: read /sys/block/<disk>/removable for the disk backing a partition."""
    name = device.rsplit("/", 1)[-1]
    if not name:
        return False
    candidates = [Path("/sys/class/block") / name / "removable", Path("/sys/class/block") / name / ".." / "removable"]
    for path in candidates:
        try:
            return path.read_text().strip() == "1"
        except OSError:
            continue
    return False


class DeviceEnumerator:
    """List monitorable volumes, dropping removable, optical, network and pseudo media."""

    def __init__(
        self,
        excluded_disks: tuple[str, ...] | list[str] = (),
        include_removable: bool = False,
        platform: str | None = None,
    ) -> None:
        self.excluded_disks = [d.strip() for d in excluded_disks if d.strip()]
        self.include_removable = include_removable
        self.platform = platform or current_platform()
        self.warnings: list[EnumerationError] = []

    def enumerate(self) -> list[DeviceRecord]:
        """Freshly enumerate devices. Never cached between calls."""
        self.warnings = []
        matched_exclusions: set[str] = set()
        records: list[DeviceRecord] = []
        seen: set[str] = set()

        for part in psutil.disk_partitions(all=False):
            identifier = _identifier(part.mountpoint, self.platform)
            if identifier in seen:
                continue

            skip_reason = self._skip_reason(part)
            if skip_reason:
                logger.debug(f"Skipping {part.mountpoint} ({part.fstype or 'no fs'}): {skip_reason}")
                continue

            removable = self._is_removable(part)
            if removable and not self.include_removable:
                logger.debug(f"Skipping removable device {part.mountpoint}")
                continue

            excluded_by = self._excluded_by(identifier, part.device)
            if excluded_by:
                matched_exclusions.add(excluded_by)
                logger.debug(f"Excluding disk {identifier} (device {part.device})")
                continue

            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError as e:
                error = EnumerationError(identifier, f"cannot read capacity: {e}")
                logger.warning(f"Skipping device {error}")
                self.warnings.append(error)
                continue

            if usage.total == 0:
                logger.debug(f"Skipping {identifier}: zero capacity")
                continue

            seen.add(identifier)
            records.append(DeviceRecord(
                identifier=identifier,
                device=part.device,
                mountpoint=part.mountpoint,
                filesystem=part.fstype or "Unknown",
                total=usage.total,
                used=usage.used,
                free=usage.free,
                is_removable=removable,
            ))

        missing = [d for d in self.excluded_disks if d not in matched_exclusions]
        if missing:
            logger.warning(f"The following excluded_disks were not found: {', '.join(missing)}")

        logger.debug(f"Enumerated {len(records)} device(s): {[r.identifier for r in records]}")
        return records

    def _skip_reason(self, part) -> str | None:
        fstype = (part.fstype or "").lower()
        opts = {o.strip().lower() for o in (part.opts or "").split(",")}
        mountpoint = part.mountpoint

        if fstype in PSEUDO_FILESYSTEMS:
            return "pseudo filesystem"
        if fstype in NETWORK_FILESYSTEMS or fstype.startswith("nfs"):
            return "network filesystem"
        if fstype in OPTICAL_FILESYSTEMS or "cdrom" in opts:
            return "optical media"
        if self.platform == "windows":
            if mountpoint.startswith("\\\\"):
                return "network share"
            if mountpoint.upper().startswith(("A:", "B:")):
                return "floppy drive"
        return None

    def _is_removable(self, part) -> bool:
        opts = {o.strip().lower() for o in (part.opts or "").split(",")}
        if "removable" in opts:
            return True
        if self.platform != "windows" and part.mountpoint.startswith(REMOVABLE_MOUNT_PREFIXES):
            return True
        if self.platform == "linux":
            return _sysfs_removable(part.device)
        return False

    def _excluded_by(self, identifier: str, device: str) -> str | None:
        """Return the exclusion entry matching this device, compared case-insensitively."""
        names = {identifier.lower(), device.lower(), device.replace("\\", "/").rsplit("/", 1)[-1].lower()}
        if self.platform == "windows":
            names.add(identifier.rstrip(":").lower())
        for excluded in self.excluded_disks:
            if excluded.lower() in names:
                return excluded
        return None
