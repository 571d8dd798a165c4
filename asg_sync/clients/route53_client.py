import re
import uuid

import structlog

from ..backend import NOOP_ID, EndpointBackend
from ..errors import MissingResourceError
from ..models import BackendResourceIds, ManagedEndpoint, OperationKind, OperationStatus, PendingOperation

log = structlog.get_logger()

HEALTH_CHECK_TAG_KEY = "asg-endpoint-sync"
RECORD_TYPE = "A"
# Listings are not paginated; only the first page is considered.
MAX_ITEMS = "100"
CHANGE_INSYNC = "INSYNC"

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def decode_record_name(name):
    """Decodes the \\ooo octal escapes Route 53 uses in names, e.g. \\052 for '*'."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), name)


class Route53Backend(EndpointBackend):
    """
    Multivalue-answer A records, each paired with a Route 53 health check.

    Records carry no per-instance identity that survives instance replacement,
    so endpoints are keyed by address. Health checks are only considered when
    they carry the configured marker tag; anything else is left untouched.
    """

    key_field = "address"

    def __init__(self, route53, config, noop=False):
        super().__init__(noop=noop)
        self.route53 = route53
        self.hosted_zone = config.hosted_zone
        self.record_set = config.record_set
        self.record_ttl = config.record_ttl
        self.health_check_tag = config.health_check_tag
        self.health_check_config = dict(config.health_check_config or {})
        self.zone_id = None

    def ensure_container(self, waiter):
        response = self.route53.list_hosted_zones_by_name(DNSName=self.hosted_zone, MaxItems="1")
        zones = response.get("HostedZones", [])
        if not zones or decode_record_name(zones[0]["Name"]).lower() != self.hosted_zone.lower():
            log.critical("Hosted zone not found", hosted_zone=self.hosted_zone)
            raise MissingResourceError(f"Hosted zone {self.hosted_zone} not found")
        self.zone_id = zones[0]["Id"].split("/")[-1]
        log.info("Found hosted zone", hosted_zone=self.hosted_zone, zone_id=self.zone_id)
        return self.zone_id

    def _managed_health_checks(self):
        response = self.route53.list_health_checks(MaxItems=MAX_ITEMS)
        if response.get("IsTruncated"):
            log.warning("Health check listing truncated, later pages are ignored", max_items=MAX_ITEMS)

        managed = []
        for health_check in response.get("HealthChecks", []):
            tags = self.route53.list_tags_for_resource(
                ResourceType="healthcheck", ResourceId=health_check["Id"]
            )["ResourceTagSet"].get("Tags", [])
            if {"Key": HEALTH_CHECK_TAG_KEY, "Value": self.health_check_tag} not in tags:
                continue
            log.debug(
                "Found managed health check",
                health_check_id=health_check["Id"],
                address=health_check["HealthCheckConfig"].get("IPAddress"),
            )
            managed.append(health_check)
        return managed

    def _records(self):
        response = self.route53.list_resource_record_sets(
            HostedZoneId=self.zone_id,
            StartRecordName=self.record_set,
            StartRecordType=RECORD_TYPE,
            MaxItems=MAX_ITEMS,
        )
        if response.get("IsTruncated") and decode_record_name(response.get("NextRecordName", "")) == self.record_set:
            log.warning("Record listing truncated, later pages are ignored", record_set=self.record_set, max_items=MAX_ITEMS)

        return [
            record
            for record in response.get("ResourceRecordSets", [])
            if record["Type"] == RECORD_TYPE and decode_record_name(record["Name"]) == self.record_set
        ]

    def list_endpoints(self):
        endpoints = []
        by_address = {}

        for record in self._records():
            values = [rr["Value"] for rr in record.get("ResourceRecords", [])]
            if len(values) > 1:
                log.warning("Record holds several values, only the first is managed", set_identifier=record.get("SetIdentifier"), values=values)
            address = values[0] if values else None
            endpoint = ManagedEndpoint(
                identifier=record.get("SetIdentifier"),
                address=address,
                resource_ids=BackendResourceIds(record=record),
            )
            endpoints.append(endpoint)
            by_address.setdefault(address, endpoint)

        health_checks = {hc["Id"]: hc for hc in self._managed_health_checks()}

        # A record's own HealthCheckId is the preferred pairing.
        for endpoint in endpoints:
            health_check_id = endpoint.resource_ids.record.get("HealthCheckId")
            if health_check_id in health_checks:
                endpoint.resource_ids.health_check = health_check_id
                del health_checks[health_check_id]

        for health_check in health_checks.values():
            address = health_check["HealthCheckConfig"].get("IPAddress")
            endpoint = by_address.get(address)
            if endpoint is not None and address is not None and endpoint.resource_ids.health_check is None:
                endpoint.resource_ids.health_check = health_check["Id"]
                continue
            endpoints.append(
                ManagedEndpoint(
                    identifier=None,
                    address=address,
                    resource_ids=BackendResourceIds(health_check=health_check["Id"]),
                )
            )

        return endpoints

    def is_complete(self, endpoint):
        # A health check left without its record serves nothing.
        return endpoint.resource_ids.record is not None

    def _change_record(self, action, record):
        return self._submit(
            "change_resource_record_sets",
            self.route53.change_resource_record_sets,
            HostedZoneId=self.zone_id,
            ChangeBatch={
                "Comment": f"asg-endpoint-sync {action.lower()} {self.record_set}",
                "Changes": [{"Action": action, "ResourceRecordSet": record}],
            },
        )

    @staticmethod
    def _pending(response, kind, description):
        if response is None:
            return []
        return [PendingOperation(operation_id=response["ChangeInfo"]["Id"], kind=kind, description=description)]

    def create_endpoint(self, instance):
        # The record references the health check, so the check goes first.
        response = self._submit(
            "create_health_check",
            self.route53.create_health_check,
            CallerReference=str(uuid.uuid4()),
            HealthCheckConfig=dict(self.health_check_config, IPAddress=instance.address),
        )
        health_check_id = response["HealthCheck"]["Id"] if response else NOOP_ID
        log.info("Created health check", health_check_id=health_check_id, address=instance.address)

        self._submit(
            "change_tags_for_resource",
            self.route53.change_tags_for_resource,
            ResourceType="healthcheck",
            ResourceId=health_check_id,
            AddTags=[
                {"Key": HEALTH_CHECK_TAG_KEY, "Value": self.health_check_tag},
                {"Key": "Name", "Value": f"{self.record_set} {instance.address}"},
            ],
        )

        record = {
            "Name": self.record_set,
            "Type": RECORD_TYPE,
            # Keyed like the backend, so a changed address never collides with its old record.
            "SetIdentifier": instance.address,
            "MultiValueAnswer": True,
            "TTL": self.record_ttl,
            "ResourceRecords": [{"Value": instance.address}],
            "HealthCheckId": health_check_id,
        }
        response = self._change_record("CREATE", record)
        return self._pending(response, OperationKind.CREATE, f"create {self.record_set} {instance.address}")

    def delete_endpoint(self, endpoint):
        operations = []
        record = endpoint.resource_ids.record
        if record is not None:
            response = self._change_record("DELETE", record)
            operations.extend(self._pending(response, OperationKind.DELETE, f"delete {self.record_set} {endpoint.address}"))

        health_check_id = endpoint.resource_ids.health_check
        if health_check_id is not None:
            self._submit("delete_health_check", self.route53.delete_health_check, HealthCheckId=health_check_id)
            log.info("Deleted health check", health_check_id=health_check_id, address=endpoint.address)
        return operations

    def get_operation_status(self, operation_id):
        change = self.route53.get_change(Id=operation_id)["ChangeInfo"]
        return OperationStatus(
            operation_id=operation_id,
            status=change["Status"],
            succeeded=change["Status"] == CHANGE_INSYNC,
        )

    def delete_container(self):
        # A record name has no resource of its own; it is gone with its last record.
        log.info("Record set holds no endpoints", record_set=self.record_set)
        return None

    def delete_namespace(self):
        log.info("Deleting hosted zone", hosted_zone=self.hosted_zone, zone_id=self.zone_id)
        response = self._submit("delete_hosted_zone", self.route53.delete_hosted_zone, Id=self.zone_id)
        if response is None:
            return None
        return PendingOperation(
            operation_id=response["ChangeInfo"]["Id"],
            kind=OperationKind.DESTROY_CONTAINER,
            description=f"delete zone {self.hosted_zone}",
        )
