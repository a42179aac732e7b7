"""Grow EBS volumes which are running out of space.

For every mounted EBS volume above the usage threshold we enlarge the
volume, grow the partition and then the filesystem on it. The steps of
one disk depend on each other and run strictly in this order. Disks are
processed one after the other.

By default the first error aborts the run. With `continue_on_error` the
failure is recorded and the remaining disks are still processed.
Volumes EC2 refuses to modify right now are never an error, they are
deferred to a later run.
"""

import threading
from collections import Counter
from typing import NamedTuple, Optional

import structlog
from ebsresize.aws import ec2_client, instance_identity
from ebsresize.config import ResizeConfig, validate
from ebsresize.devices import DeviceMapper
from ebsresize.errors import ResizeCancelled, ResizeError
from ebsresize.filesystem import grow_filesystem
from ebsresize.partition import grow_partition
from ebsresize.usage import DiskRecord, evaluate_disks
from ebsresize.volume import DEFERRED, VolumeResizer, find_new_size

_log = structlog.get_logger()

SKIPPED = "skipped"
AT_SIZE_LIMIT = "at-size-limit"
RESIZED = "resized"
FAILED = "failed"


class DiskResult(NamedTuple):
    record: DiskRecord
    status: str
    target_size_gib: Optional[int] = None
    error: Optional[Exception] = None


def resize_one(record: DiskRecord, config: ResizeConfig, resizer, log=_log):
    if record.used_percent < config.threshold_percent:
        log.info(
            "resize-not-required",
            _replace_msg=(
                "{device} is {used_percent}% used, below {threshold}%, "
                "no resize required."
            ),
            device=record.device_name,
            used_percent=record.used_percent,
            threshold=config.threshold_percent,
        )
        return DiskResult(record, SKIPPED)

    if record.total_space_bytes <= 0:
        log.warning("resize-no-capacity", device=record.device_name)
        return DiskResult(record, SKIPPED)

    target = find_new_size(
        record.total_space_bytes,
        config.increase_percent,
        record.volume_size_gib,
        config.max_volume_size_gib,
    )
    if target <= record.volume_size_gib:
        log.warning(
            "resize-at-size-limit",
            _replace_msg=(
                "{volume_id} already has the maximum size of {size} GiB."
            ),
            volume_id=record.volume_id,
            size=record.volume_size_gib,
        )
        return DiskResult(record, AT_SIZE_LIMIT, target)

    log.info(
        "resize-start",
        _replace_msg=(
            "Resizing {device} ({volume_id}) from {size} GiB to "
            "{target} GiB"
        ),
        device=record.device_name,
        volume_id=record.volume_id,
        size=record.volume_size_gib,
        target=target,
    )
    if resizer.resize(record.volume_id, target) == DEFERRED:
        return DiskResult(record, DEFERRED, target)

    grow_partition(record.device_name, log)
    grow_filesystem(
        record.filesystem_type, record.mount_point, record.device_name, log
    )
    log.info(
        "resize-finished",
        device=record.device_name,
        volume_id=record.volume_id,
        size=target,
    )
    return DiskResult(record, RESIZED, target)


def run(
    config: ResizeConfig,
    ec2=None,
    instance_id=None,
    cancel=None,
    log=_log,
) -> list[DiskResult]:
    """Runs one resize pass over all mounted EBS volumes.

    Setting `cancel` stops the pass before the next disk is started.
    """
    if cancel is None:
        cancel = threading.Event()

    if ec2 is None or instance_id is None:
        identity = instance_identity(log=log)
        if instance_id is None:
            instance_id = identity.instance_id
        if ec2 is None:
            ec2 = ec2_client(config.region or identity.region)

    mapper = DeviceMapper(ec2, instance_id, log=log)
    records = evaluate_disks(mapper, log)
    resizer = VolumeResizer(
        ec2,
        poll_interval=config.poll_interval,
        max_polls=config.max_polls,
        cancel=cancel,
        log=log,
    )

    results = []
    for record in records:
        if cancel.is_set():
            raise ResizeCancelled(
                f"cancelled before resizing {record.device_name}"
            )
        try:
            result = resize_one(record, config, resizer, log)
        except ResizeCancelled:
            raise
        except ResizeError as e:
            log.error(
                "resize-disk-failed",
                device=record.device_name,
                volume_id=record.volume_id,
                exc_info=True,
            )
            if not config.continue_on_error:
                raise
            result = DiskResult(record, FAILED, error=e)
        results.append(result)

    counts = Counter(r.status for r in results)
    log.info("resize-run-finished", disks=len(results), statuses=dict(counts))
    return results


def resize_disk(increase_percent, threshold_percent, **kw):
    """Resizes every EBS volume used at least `threshold_percent` by
    `increase_percent`, aborting on the first error."""
    config = validate(
        ResizeConfig(
            increase_percent=increase_percent,
            threshold_percent=threshold_percent,
        )
    )
    return run(config, **kw)
