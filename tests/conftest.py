"""Shared fixtures."""

import pytest

from diskmon.config import Config, TransportConfig
from diskmon.models import GB, DeviceRecord
from diskmon.system import SystemInfo


def record(identifier="/", device="/dev/sda1", total_gb=100, free_gb=50, **kwargs) -> DeviceRecord:
    total = int(total_gb * GB)
    free = int(free_gb * GB)
    return DeviceRecord(
        identifier=identifier,
        device=device,
        mountpoint=kwargs.pop("mountpoint", identifier),
        filesystem=kwargs.pop("filesystem", "ext4"),
        total=total,
        used=total - free,
        free=free,
        **kwargs,
    )


@pytest.fixture
def make_record():
    return record


@pytest.fixture
def transport():
    return TransportConfig(
        server="smtp.example.com",
        port=587,
        security="starttls",
        username="alerts@example.com",
        password="secret",
        email_from="alerts@example.com",
        email_to=("admin@example.com", "ops@example.com"),
    )


@pytest.fixture
def make_config(transport):
    def factory(**overrides) -> Config:
        return Config(transport=transport, **overrides)

    return factory


@pytest.fixture
def system_info():
    return SystemInfo(
        os_name="Linux",
        os_version="6.1",
        architecture="64-bit",
        hostname="nas01",
    )
