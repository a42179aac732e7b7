import unittest.mock

import responses
import stamina
from pytest import fixture


@fixture(autouse=True)
def stamina_testing():
    # No waiting between retries, a single attempt.
    stamina.set_testing(True)
    yield
    stamina.set_testing(False)


@fixture
def mocked_responses():
    with responses.RequestsMock() as rsps:
        yield rsps


@fixture
def ec2():
    client = unittest.mock.Mock()
    client.describe_volumes.return_value = {
        "Volumes": [{"VolumeId": "vol-0a1b2c3d", "Size": 100}]
    }
    client.modify_volume.return_value = {
        "VolumeModification": {
            "VolumeId": "vol-0a1b2c3d",
            "ModificationState": "modifying",
        }
    }
    client.describe_volumes_modifications.return_value = {
        "VolumesModifications": [
            {"VolumeId": "vol-0a1b2c3d", "ModificationState": "optimizing"}
        ]
    }
    return client
