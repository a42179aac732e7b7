from botocore.exceptions import ClientError


def client_error(code, operation="ModifyVolume", message="message"):
    error = {"Error": {"Code": code, "Message": message}}
    return ClientError(error, operation)


def modifications(*states):
    """Return values for consecutive describe_volumes_modifications calls."""
    return [
        {
            "VolumesModifications": [
                {"VolumeId": "vol-0a1b2c3d", "ModificationState": state}
            ]
        }
        for state in states
    ]
