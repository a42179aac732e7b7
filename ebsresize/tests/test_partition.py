import unittest.mock

import pytest
from ebsresize.errors import LocalToolError
from ebsresize.partition import grow_partition, growpart_command


@pytest.mark.parametrize(
    "device, expected",
    [
        ("/dev/nvme1n1p1", ["growpart", "/dev/nvme1n1", "1"]),
        ("/dev/xvdf1", ["growpart", "/dev/xvdf", "1"]),
        ("/dev/xvda12", ["growpart", "/dev/xvda", "12"]),
        ("/dev/xvdf", None),
        ("/dev/nvme1n1", None),
    ],
)
def test_growpart_command(device, expected):
    assert growpart_command(device) == expected


@unittest.mock.patch("ebsresize.partition.run_command")
def test_grow_partition_whole_disk_is_noop(run_command, log):
    grow_partition("/dev/xvdf")
    run_command.assert_not_called()
    assert log.has("grow-partition-not-required", device="/dev/xvdf")


@unittest.mock.patch("ebsresize.partition.run_command")
def test_grow_partition_runs_growpart(run_command):
    grow_partition("/dev/nvme1n1p1")
    assert run_command.call_args.args[0] == [
        "growpart",
        "/dev/nvme1n1",
        "1",
    ]


@unittest.mock.patch("ebsresize.partition.run_command")
def test_grow_partition_nochange_is_ok(run_command, log):
    run_command.side_effect = LocalToolError(
        ["growpart", "/dev/xvdf", "1"],
        1,
        stdout="NOCHANGE: partition 1 is size 209713119. it cannot be grown",
    )
    grow_partition("/dev/xvdf1")
    assert log.has("grow-partition-nochange", device="/dev/xvdf1")


@unittest.mock.patch("ebsresize.partition.run_command")
def test_grow_partition_failure_raises(run_command):
    run_command.side_effect = LocalToolError(
        ["growpart", "/dev/xvdf", "1"], 2, stderr="FAILED: disk not found"
    )
    with pytest.raises(LocalToolError):
        grow_partition("/dev/xvdf1")
