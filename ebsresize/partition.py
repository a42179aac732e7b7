import structlog
from ebsresize.devices import parse_device
from ebsresize.errors import LocalToolError
from ebsresize.util.command import run_command

_log = structlog.get_logger()


def growpart_command(device_path):
    """Returns the growpart call for a partition, None for whole disks."""
    device = parse_device(device_path)
    if device.is_whole_disk:
        return None
    return ["growpart", device.parent, device.partition]


def grow_partition(device_path, log=_log):
    """Grows the partition to the end of its (already enlarged) disk.

    growpart exits with 1 and prints NOCHANGE when the partition already
    fills the disk, which happens when a previous run was interrupted
    after this step.
    """
    cmd = growpart_command(device_path)
    if cmd is None:
        log.info(
            "grow-partition-not-required",
            _replace_msg="{device} has no partition table, nothing to grow.",
            device=device_path,
        )
        return

    log.info(
        "grow-partition",
        _replace_msg="Growing partition {partition} on {disk}",
        device=device_path,
        disk=cmd[1],
        partition=cmd[2],
    )
    try:
        run_command(cmd, log)
    except LocalToolError as e:
        if e.returncode == 1 and "NOCHANGE" in (e.stdout or ""):
            log.info("grow-partition-nochange", device=device_path)
            return
        raise
