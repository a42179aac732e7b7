import structlog
from ebsresize.util.command import run_command

_log = structlog.get_logger()


def growfs_command(filesystem_type, mount_point, partition):
    # xfs_growfs only works on mounted filesystems and wants the mount
    # point, resize2fs takes the block device.
    if filesystem_type == "xfs":
        return ["xfs_growfs", "-d", mount_point]
    return ["resize2fs", partition]


def grow_filesystem(filesystem_type, mount_point, partition, log=_log):
    cmd = growfs_command(filesystem_type, mount_point, partition)
    log.info(
        "grow-filesystem",
        _replace_msg="Growing {fstype} filesystem on {partition}",
        fstype=filesystem_type,
        mount_point=mount_point,
        partition=partition,
    )
    run_command(cmd, log)
