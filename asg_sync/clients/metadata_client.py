import os

import requests
import structlog

log = structlog.get_logger()

METADATA_URL = "http://169.254.169.254"
TOKEN_PATH = "/latest/api/token"
IDENTITY_PATH = "/latest/dynamic/instance-identity/document"
METADATA_TIMEOUT = 1


def _get_token(session):
    try:
        response = session.put(
            f"{METADATA_URL}{TOKEN_PATH}",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": "60"},
            timeout=METADATA_TIMEOUT,
        )
        response.raise_for_status()
        return response.text
    except requests.exceptions.RequestException as e:
        log.debug("No IMDSv2 token, falling back to IMDSv1", error=str(e))
        return None


def detect_region(session=None):
    """
    Determines the AWS region to use.

    A region set in the environment wins. Otherwise the instance identity
    document on the link-local metadata endpoint is queried. When the
    endpoint can't be reached (i.e. not running on EC2) a warning is logged
    and None is returned, leaving boto3 to its own configuration chain.
    """
    for var in ("AWS_REGION", "AWS_DEFAULT_REGION"):
        if os.getenv(var):
            return os.getenv(var)

    session = session or requests.Session()
    headers = {}
    token = _get_token(session)
    if token:
        headers["X-aws-ec2-metadata-token"] = token

    try:
        response = session.get(f"{METADATA_URL}{IDENTITY_PATH}", headers=headers, timeout=METADATA_TIMEOUT)
        response.raise_for_status()
        region = response.json()["region"]
    except requests.exceptions.RequestException as e:
        log.warning("No link-local endpoint - can't calculate region", error=str(e))
        return None
    except (ValueError, KeyError) as e:
        log.warning("Unexpected instance identity document - can't calculate region", error=str(e))
        return None

    log.debug("Identified region from link-local endpoint", region=region)
    return region
