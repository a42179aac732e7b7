"""Access to the EC2 API and the instance metadata service."""

from typing import NamedTuple

import boto3
import requests
import stamina
import structlog
from ebsresize.errors import ProbeError

_log = structlog.get_logger()

IMDS_URL = "http://169.254.169.254/latest"
IMDS_TOKEN_TTL = 300
IMDS_TIMEOUT = 5

RETRY_EXCEPTIONS = (
    requests.ConnectionError,
    requests.Timeout,
)


class InstanceIdentity(NamedTuple):
    instance_id: str
    region: str


@stamina.retry(on=RETRY_EXCEPTIONS, attempts=3)
def _imds_token(session):
    response = session.put(
        f"{IMDS_URL}/api/token",
        headers={"X-aws-ec2-metadata-token-ttl-seconds": str(IMDS_TOKEN_TTL)},
        timeout=IMDS_TIMEOUT,
    )
    response.raise_for_status()
    return response.text


@stamina.retry(on=RETRY_EXCEPTIONS, attempts=3)
def _identity_document(session, token):
    response = session.get(
        f"{IMDS_URL}/dynamic/instance-identity/document",
        headers={"X-aws-ec2-metadata-token": token},
        timeout=IMDS_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


def instance_identity(session=None, log=_log) -> InstanceIdentity:
    """Looks up ID and region of the running instance via IMDSv2."""
    if session is None:
        session = requests.Session()
    try:
        token = _imds_token(session)
        document = _identity_document(session, token)
        identity = InstanceIdentity(
            document["instanceId"], document["region"]
        )
    except (requests.RequestException, ValueError, KeyError) as e:
        log.error("instance-metadata-failed", exc_info=True)
        raise ProbeError(f"cannot query instance metadata: {e}") from e

    log.debug(
        "instance-identity",
        instance_id=identity.instance_id,
        region=identity.region,
    )
    return identity


def ec2_client(region):
    return boto3.client("ec2", region_name=region)
