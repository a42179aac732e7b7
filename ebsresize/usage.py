from typing import NamedTuple

import psutil
import structlog
from ebsresize.devices import DeviceMapper, parse_device
from ebsresize.errors import DeviceNameError, ProbeError

_log = structlog.get_logger()


class DiskRecord(NamedTuple):
    volume_id: str
    device_name: str
    mount_point: str
    used_percent: float
    total_space_bytes: int
    filesystem_type: str
    volume_size_gib: int


def mounted_partitions():
    try:
        return psutil.disk_partitions(all=False)
    except OSError as e:
        raise ProbeError(f"cannot list mounted partitions: {e}") from e


def disk_usage(mount_point):
    try:
        return psutil.disk_usage(mount_point)
    except OSError as e:
        raise ProbeError(f"cannot get usage of {mount_point}: {e}") from e


def evaluate_disks(mapper: DeviceMapper, log=_log) -> list[DiskRecord]:
    """Builds a DiskRecord for every mounted EBS-backed partition.

    Partitions on devices which are not EBS volumes are skipped. Any
    failure to probe an EBS device aborts the whole scan.
    """
    records = []
    seen_mount_points = set()
    for part in mounted_partitions():
        if part.mountpoint in seen_mount_points:
            continue
        try:
            device = parse_device(part.device)
        except DeviceNameError:
            log.debug(
                "disk-scan-skip-device",
                device=part.device,
                mount_point=part.mountpoint,
            )
            continue
        if not mapper.is_ebs(device):
            log.info(
                "disk-scan-not-ebs",
                _replace_msg="{device} is not an EBS volume, ignoring.",
                device=part.device,
            )
            continue

        volume = mapper.lookup(device)
        usage = disk_usage(part.mountpoint)
        record = DiskRecord(
            volume_id=volume["VolumeId"],
            device_name=part.device,
            mount_point=part.mountpoint,
            used_percent=usage.percent,
            total_space_bytes=usage.total,
            filesystem_type=part.fstype,
            volume_size_gib=volume["Size"],
        )
        log.info(
            "disk-scan-found",
            _replace_msg=(
                "{device} on {mount_point} is {volume_id} ({size} GiB), "
                "{used_percent}% used"
            ),
            device=record.device_name,
            mount_point=record.mount_point,
            volume_id=record.volume_id,
            size=record.volume_size_gib,
            used_percent=record.used_percent,
            fstype=record.filesystem_type,
        )
        seen_mount_points.add(part.mountpoint)
        records.append(record)

    return records
