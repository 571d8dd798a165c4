from pathlib import Path
from typing import Literal, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

log = structlog.get_logger()

DEFAULT_CONFIG_PATH = "/etc/asg-endpoint-sync.yaml"

SLEEP_PERIOD = 2
MAX_RETRIES = 30

ADDRESS_PROPERTIES = ("public_ip_address", "private_ip_address")

MANDATORY_KEYS = {
    "instance_asg_name": "Auto Scaling group name",
    "instance_address_property": "Instance address property",
    "hosted_zone": "Hosted zone / namespace name",
    "prune_service": "Service pruning flag",
    "prune_namespace": "Namespace pruning flag",
}
BACKEND_MANDATORY_KEYS = {
    "route53": {
        "record_set": "Record set name",
        "health_check_tag": "Health check tag marker",
        "health_check_config": "Health check configuration",
    },
    "servicediscovery": {
        "service_name": "Service name",
        "vpc_id": "VPC ID",
    },
}


class SyncConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    backend: Literal["route53", "servicediscovery"] = "route53"
    instance_asg_name: str
    instance_address_property: Literal["public_ip_address", "private_ip_address"]
    hosted_zone: str
    prune_service: bool
    prune_namespace: bool

    # Route 53
    record_set: Optional[str] = None
    record_ttl: int = Field(60, ge=0)
    health_check_tag: Optional[str] = None
    health_check_config: Optional[dict] = None

    # Cloud Map
    service_name: Optional[str] = None
    vpc_id: Optional[str] = None
    service_dns_ttl: int = Field(1, ge=0)
    instance_port: int = Field(80, gt=0, lt=65536)

    startup_jitter: float = Field(0, ge=0)
    operation_poll_interval: float = Field(SLEEP_PERIOD, gt=0)
    operation_max_retries: int = Field(MAX_RETRIES, ge=1)

    @field_validator("hosted_zone", "record_set")
    @classmethod
    def normalize_name(cls, value):
        # Route 53 lists names in lower case.
        if value is None:
            return value
        value = value.lower()
        if not value.endswith("."):
            value = f"{value}."
        return value


def _read_yaml(path):
    try:
        with Path(path).open() as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        log.error("Unable to read config file", path=str(path), error=str(e))
        raise ConfigurationError(f"Unable to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        log.error("Config file is not valid YAML", path=str(path), error=str(e))
        raise ConfigurationError(f"Config file {path} is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        log.error("Config file must contain a mapping", path=str(path))
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return raw


def validate_config(raw):
    """
    Validates a raw configuration mapping.

    Every missing key and invalid value is logged before giving up, so that a
    single run reports all of the problems in the file.

    Args:
        raw (dict): The parsed configuration document.

    Returns:
        SyncConfig: The validated configuration with zone and record names
                    normalized to lower case with a trailing period.

    Raises:
        ConfigurationError: If any required key is missing or invalid.
    """
    errors = []

    mandatory = dict(MANDATORY_KEYS)
    mandatory.update(BACKEND_MANDATORY_KEYS.get(raw.get("backend", "route53"), {}))
    for key, desc in mandatory.items():
        if raw.get(key) is None:
            log.error("No key in config file", key=key, description=desc)
            errors.append(f"{desc} ({key})")

    address_property = raw.get("instance_address_property")
    if address_property is not None and address_property not in ADDRESS_PROPERTIES:
        log.error(
            "instance_address_property must be public_ip_address or private_ip_address",
            instance_address_property=address_property,
        )
        errors.append("instance_address_property")

    if errors:
        raise ConfigurationError(f"Invalid configuration: {', '.join(errors)}")

    try:
        config = SyncConfig.model_validate(raw)
    except ValidationError as e:
        for error in e.errors():
            log.error(
                "Invalid value in config file",
                key=".".join(str(part) for part in error["loc"]),
                message=error["msg"],
            )
        raise ConfigurationError(f"Invalid configuration: {e.error_count()} error(s)") from e

    return config


def load_config(path=DEFAULT_CONFIG_PATH):
    log.info("Loading config", path=str(path))
    config = validate_config(_read_yaml(path))
    log.debug("Config", config=config.model_dump())
    return config
