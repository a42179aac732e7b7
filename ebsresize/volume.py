"""Resize EBS volumes and wait until EC2 has applied the new size.

A resize goes through the states

    idle -> resize-requested -> modifying -> complete

or ends in `deferred` when EC2 refuses to modify the volume right now,
either because it has been modified within the last six hours
(`VolumeModificationRateExceeded`) or because a previous modification is
still in progress (`IncorrectModificationState`). A deferred volume is
picked up again by a later run.

EC2 reports a modification as `optimizing` as soon as the new size is
usable by the instance, so we stop waiting there.
"""

import math
import threading

import structlog
from botocore.exceptions import BotoCoreError, ClientError
from ebsresize.config import MAX_VOLUME_SIZE_GIB
from ebsresize.errors import (
    ProviderFatalError,
    ProviderTransientError,
    ResizeCancelled,
    VolumeModificationTimeout,
)

_log = structlog.get_logger()

GIB = 1024**3

IDLE = "idle"
RESIZE_REQUESTED = "resize-requested"
MODIFYING = "modifying"
COMPLETE = "complete"
DEFERRED = "deferred"

# modification states reported by EC2
STATE_MODIFYING = "modifying"
STATE_FAILED = "failed"

DEFERRABLE_ERROR_CODES = (
    "VolumeModificationRateExceeded",
    "IncorrectModificationState",
)


def find_new_size(
    total_bytes,
    increase_percent,
    volume_size_gib=0,
    max_size_gib=MAX_VOLUME_SIZE_GIB,
):
    """Returns the target volume size in whole GiB (rounded down).

    The filesystem is usually a bit smaller than its volume, so the
    increase is based on whichever of the two is larger. The result is
    always at least one GiB above the current volume size and never
    above `max_size_gib`.
    """
    base = max(total_bytes / GIB, volume_size_gib)
    new_size = math.floor(base + base * increase_percent / 100)
    new_size = max(new_size, volume_size_gib + 1)
    return min(new_size, max_size_gib)


class VolumeResizer:
    def __init__(
        self,
        ec2,
        poll_interval=15,
        max_polls=240,
        cancel: threading.Event = None,
        log=_log,
    ):
        self.ec2 = ec2
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.cancel = cancel if cancel is not None else threading.Event()
        self.log = log
        self.state = IDLE

    def request_resize(self, volume_id, size_gib):
        self.state = RESIZE_REQUESTED
        self.log.info(
            "volume-resize-request",
            _replace_msg="Requesting resize of {volume_id} to {size} GiB",
            volume_id=volume_id,
            size=size_gib,
        )
        try:
            self.ec2.modify_volume(VolumeId=volume_id, Size=size_gib)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            message = e.response.get("Error", {}).get("Message", "")
            if code in DEFERRABLE_ERROR_CODES:
                raise ProviderTransientError(volume_id, code, message) from e
            raise ProviderFatalError(
                f"modify-volume failed for {volume_id}: {e}"
            ) from e
        except BotoCoreError as e:
            raise ProviderFatalError(
                f"modify-volume failed for {volume_id}: {e}"
            ) from e
        self.state = MODIFYING

    def modification_state(self, volume_id):
        try:
            response = self.ec2.describe_volumes_modifications(
                VolumeIds=[volume_id]
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderFatalError(
                f"describe-volumes-modifications failed for {volume_id}: {e}"
            ) from e
        modifications = response.get("VolumesModifications", [])
        if not modifications:
            raise ProviderFatalError(f"no modification found for {volume_id}")
        modification = modifications[0]
        state = modification["ModificationState"]
        if state == STATE_FAILED:
            raise ProviderFatalError(
                f"modification of {volume_id} failed: "
                + modification.get("StatusMessage", "unknown reason")
            )
        return state

    def wait_for_modification(self, volume_id):
        """Polls until the volume is no longer `modifying`.

        Gives up after `max_polls` checks with VolumeModificationTimeout.
        Setting the cancel event interrupts the wait with ResizeCancelled.
        """
        for attempt in range(1, self.max_polls + 1):
            state = self.modification_state(volume_id)
            if state != STATE_MODIFYING:
                self.log.debug(
                    "volume-modification-done",
                    volume_id=volume_id,
                    modification_state=state,
                    attempt=attempt,
                )
                return state
            if attempt == self.max_polls:
                break
            self.log.info(
                "volume-modification-wait",
                _replace_msg=(
                    "Modification of {volume_id} in progress, waiting "
                    "{interval} seconds ({attempt}/{max_polls})"
                ),
                volume_id=volume_id,
                interval=self.poll_interval,
                attempt=attempt,
                max_polls=self.max_polls,
            )
            if self.cancel.wait(self.poll_interval):
                raise ResizeCancelled(
                    f"cancelled while waiting for {volume_id}"
                )

        raise VolumeModificationTimeout(
            f"modification of {volume_id} still in progress after "
            f"{self.max_polls} checks"
        )

    def resize(self, volume_id, size_gib):
        """Resizes the volume and waits for EC2 to apply the new size.

        Returns COMPLETE or DEFERRED. All other failures raise.
        """
        self.state = IDLE
        try:
            self.request_resize(volume_id, size_gib)
        except ProviderTransientError as e:
            self.state = DEFERRED
            self.log.warning(
                "volume-resize-deferred",
                _replace_msg=(
                    "EC2 does not allow modifying {volume_id} now ({code}), "
                    "trying again on the next run."
                ),
                volume_id=volume_id,
                code=e.code,
                reason=str(e),
            )
            return DEFERRED

        self.wait_for_modification(volume_id)
        self.state = COMPLETE
        self.log.info(
            "volume-resize-complete",
            volume_id=volume_id,
            size=size_gib,
        )
        return COMPLETE
