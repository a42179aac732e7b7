"""Map local block devices to the EBS volumes backing them.

Device names seen by the OS come in three shapes:

* NVMe namespaces, `/dev/nvme1n1` or with partition `/dev/nvme1n1p1`.
  Nitro instances expose every EBS volume this way and the name has no
  relation to the attachment slot (`/dev/sdf`) EC2 knows the volume by.
  The slot is stored in the vendor specific part of the NVMe controller
  descriptor, we ask `ebsnvme-id` for it.
* Legacy lettered devices with partition, `/dev/xvdf1` or `/dev/sdf1`.
* Legacy lettered whole disks, `/dev/xvdf`.

Xen instances rename the attachment slot `/dev/sdf` to `/dev/xvdf`.
"""

import re
from pathlib import Path
from typing import NamedTuple, Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError
from ebsresize.errors import (
    AmbiguousMappingError,
    DeviceNameError,
    LocalToolError,
    MappingError,
    ProbeError,
    ProviderFatalError,
)
from ebsresize.util.command import run_command

_log = structlog.get_logger()

NVME = "nvme"
LETTERED = "lettered"

RE_NVME = re.compile(r"^(/dev/nvme\d+n\d+)(?:p(\d+))?$")
RE_LETTERED = re.compile(r"^(/dev/(?:xv|s)d[a-z]+)(\d+)?$")

SYS_BLOCK = Path("/sys/block")
EBS_NVME_MODEL = "Amazon Elastic Block Store"


class DeviceName(NamedTuple):
    path: str
    kind: str
    parent: str
    partition: Optional[str]

    @property
    def is_whole_disk(self):
        return self.partition is None


def parse_device(path: str) -> DeviceName:
    m = RE_NVME.match(path)
    if m:
        return DeviceName(path, NVME, m.group(1), m.group(2))
    m = RE_LETTERED.match(path)
    if m:
        return DeviceName(path, LETTERED, m.group(1), m.group(2))
    raise DeviceNameError(f"not an EBS device name: {path}")


def legacy_attachment_slot(path: str) -> str:
    """`/dev/xvdf1` is attached as `/dev/sdf1`."""
    return path.replace("/dev/xvd", "/dev/sd", 1)


def normalize_slot(name: str) -> str:
    name = name.strip()
    if not name.startswith("/dev/"):
        name = "/dev/" + name
    return name


class DeviceMapper:
    def __init__(self, ec2, instance_id, sys_block=SYS_BLOCK, log=_log):
        self.ec2 = ec2
        self.instance_id = instance_id
        self.sys_block = Path(sys_block)
        self.log = log

    def is_ebs(self, device: DeviceName) -> bool:
        """NVMe instance store disks look like EBS disks by name."""
        if device.kind != NVME:
            return True
        model_file = (
            self.sys_block / Path(device.parent).name / "device" / "model"
        )
        try:
            model = model_file.read_text().strip()
        except OSError as e:
            raise ProbeError(f"cannot read NVMe model of {device.path}") from e
        return model == EBS_NVME_MODEL

    def nvme_attachment_slot(self, device: DeviceName) -> str:
        try:
            name = run_command(["ebsnvme-id", "-b", device.parent], self.log)
        except LocalToolError as e:
            raise ProbeError(
                f"cannot read attachment slot of {device.parent}: {e}"
            ) from e
        if not name:
            raise ProbeError(f"empty attachment slot for {device.parent}")
        return normalize_slot(name)

    def attachment_slots(self, device: DeviceName) -> list[str]:
        """Returns the device names EC2 may have recorded for `device`."""
        if device.kind == NVME:
            return [self.nvme_attachment_slot(device)]
        # EC2 records either the partition (root volumes, `/dev/sda1`) or
        # the disk (`/dev/sdf`) as slot, Xen roots also as `/dev/xvda`.
        candidates = [
            legacy_attachment_slot(device.path),
            legacy_attachment_slot(device.parent),
            device.parent,
        ]
        return list(dict.fromkeys(candidates))

    def lookup(self, device: DeviceName) -> dict:
        """Returns the single volume (`describe_volumes` entry) attached
        to this instance at the slot of `device`."""
        slots = self.attachment_slots(device)
        try:
            response = self.ec2.describe_volumes(
                Filters=[
                    {"Name": "attachment.device", "Values": slots},
                    {
                        "Name": "attachment.instance-id",
                        "Values": [self.instance_id],
                    },
                ]
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderFatalError(
                f"describe-volumes failed for {device.path}: {e}"
            ) from e

        volumes = response.get("Volumes", [])
        self.log.debug(
            "device-lookup",
            device=device.path,
            slots=slots,
            volumes=[v["VolumeId"] for v in volumes],
        )
        if not volumes:
            raise MappingError(
                f"no volume attached at {', '.join(slots)} "
                f"(device {device.path}, instance {self.instance_id})"
            )
        if len(volumes) > 1:
            raise AmbiguousMappingError(
                device.path, [v["VolumeId"] for v in volumes]
            )
        return volumes[0]
