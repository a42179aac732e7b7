import unittest.mock

import pytest
from ebsresize.devices import (
    LETTERED,
    NVME,
    DeviceMapper,
    legacy_attachment_slot,
    normalize_slot,
    parse_device,
)
from ebsresize.errors import (
    AmbiguousMappingError,
    DeviceNameError,
    LocalToolError,
    MappingError,
    ProbeError,
    ProviderFatalError,
)
from ebsresize.tests import client_error


@pytest.mark.parametrize(
    "path, kind, parent, partition",
    [
        ("/dev/nvme1n1p1", NVME, "/dev/nvme1n1", "1"),
        ("/dev/nvme0n1p12", NVME, "/dev/nvme0n1", "12"),
        ("/dev/nvme1n1", NVME, "/dev/nvme1n1", None),
        ("/dev/xvdf1", LETTERED, "/dev/xvdf", "1"),
        ("/dev/xvdf", LETTERED, "/dev/xvdf", None),
        ("/dev/xvdba3", LETTERED, "/dev/xvdba", "3"),
        ("/dev/sda1", LETTERED, "/dev/sda", "1"),
    ],
)
def test_parse_device(path, kind, parent, partition):
    device = parse_device(path)
    assert device.kind == kind
    assert device.parent == parent
    assert device.partition == partition
    assert device.is_whole_disk == (partition is None)


@pytest.mark.parametrize(
    "path", ["/dev/loop0", "/dev/mapper/vg-root", "/dev/root", "tmpfs"]
)
def test_parse_device_rejects_non_ebs_names(path):
    with pytest.raises(DeviceNameError):
        parse_device(path)


def test_legacy_attachment_slot():
    assert legacy_attachment_slot("/dev/xvdf") == "/dev/sdf"
    assert legacy_attachment_slot("/dev/xvda1") == "/dev/sda1"
    assert legacy_attachment_slot("/dev/sdg2") == "/dev/sdg2"


def test_normalize_slot():
    assert normalize_slot("sdf\n") == "/dev/sdf"
    assert normalize_slot("/dev/xvda") == "/dev/xvda"


def test_lookup_legacy_device_filters_slot_and_instance(ec2):
    mapper = DeviceMapper(ec2, "i-0123456789")
    volume = mapper.lookup(parse_device("/dev/xvdf"))

    assert volume["VolumeId"] == "vol-0a1b2c3d"
    ec2.describe_volumes.assert_called_once_with(
        Filters=[
            {"Name": "attachment.device", "Values": ["/dev/sdf", "/dev/xvdf"]},
            {"Name": "attachment.instance-id", "Values": ["i-0123456789"]},
        ]
    )


def test_lookup_sd_partition_lists_partition_and_disk_slot(ec2):
    mapper = DeviceMapper(ec2, "i-0123456789")
    mapper.lookup(parse_device("/dev/sdf1"))

    filters = ec2.describe_volumes.call_args.kwargs["Filters"]
    assert filters[0]["Values"] == ["/dev/sdf1", "/dev/sdf"]


def test_lookup_xen_root_partition_attached_as_partition_slot(ec2):
    def describe_volumes(Filters):
        if "/dev/sda1" in Filters[0]["Values"]:
            return {"Volumes": [{"VolumeId": "vol-root", "Size": 8}]}
        return {"Volumes": []}

    ec2.describe_volumes.side_effect = describe_volumes
    mapper = DeviceMapper(ec2, "i-0123456789")

    volume = mapper.lookup(parse_device("/dev/xvda1"))

    assert volume["VolumeId"] == "vol-root"
    filters = ec2.describe_volumes.call_args.kwargs["Filters"]
    assert filters[0]["Values"] == ["/dev/sda1", "/dev/sda", "/dev/xvda"]


@unittest.mock.patch("ebsresize.devices.run_command")
def test_lookup_nvme_uses_descriptor_slot(run_command, ec2):
    run_command.return_value = "sdf"
    mapper = DeviceMapper(ec2, "i-0123456789")
    mapper.lookup(parse_device("/dev/nvme1n1p1"))

    assert run_command.call_args.args[0] == [
        "ebsnvme-id",
        "-b",
        "/dev/nvme1n1",
    ]
    filters = ec2.describe_volumes.call_args.kwargs["Filters"]
    assert filters[0]["Values"] == ["/dev/sdf"]


@unittest.mock.patch("ebsresize.devices.run_command")
def test_nvme_descriptor_failure_is_probe_error(run_command, ec2):
    run_command.side_effect = LocalToolError(["ebsnvme-id"], 1)
    mapper = DeviceMapper(ec2, "i-0123456789")
    with pytest.raises(ProbeError):
        mapper.lookup(parse_device("/dev/nvme1n1"))
    ec2.describe_volumes.assert_not_called()


def test_lookup_without_match_raises(ec2):
    ec2.describe_volumes.return_value = {"Volumes": []}
    mapper = DeviceMapper(ec2, "i-0123456789")
    with pytest.raises(MappingError) as e:
        mapper.lookup(parse_device("/dev/xvdf"))
    assert not isinstance(e.value, AmbiguousMappingError)


def test_lookup_with_multiple_matches_is_ambiguous(ec2):
    ec2.describe_volumes.return_value = {
        "Volumes": [
            {"VolumeId": "vol-1", "Size": 10},
            {"VolumeId": "vol-2", "Size": 20},
        ]
    }
    mapper = DeviceMapper(ec2, "i-0123456789")
    with pytest.raises(AmbiguousMappingError) as e:
        mapper.lookup(parse_device("/dev/xvda1"))
    assert e.value.volume_ids == ["vol-1", "vol-2"]


def test_lookup_api_error_is_fatal(ec2):
    ec2.describe_volumes.side_effect = client_error(
        "UnauthorizedOperation", "DescribeVolumes"
    )
    mapper = DeviceMapper(ec2, "i-0123456789")
    with pytest.raises(ProviderFatalError):
        mapper.lookup(parse_device("/dev/xvdf"))


def test_is_ebs_checks_nvme_model(tmp_path, ec2):
    for name, model in [
        ("nvme1n1", "Amazon Elastic Block Store              \n"),
        ("nvme2n1", "Amazon EC2 NVMe Instance Storage        \n"),
    ]:
        device_dir = tmp_path / name / "device"
        device_dir.mkdir(parents=True)
        (device_dir / "model").write_text(model)

    mapper = DeviceMapper(ec2, "i-0123456789", sys_block=tmp_path)
    assert mapper.is_ebs(parse_device("/dev/nvme1n1p1"))
    assert not mapper.is_ebs(parse_device("/dev/nvme2n1"))
    assert mapper.is_ebs(parse_device("/dev/xvdf"))


def test_is_ebs_missing_model_is_probe_error(tmp_path, ec2):
    mapper = DeviceMapper(ec2, "i-0123456789", sys_block=tmp_path)
    with pytest.raises(ProbeError):
        mapper.is_ebs(parse_device("/dev/nvme3n1"))
