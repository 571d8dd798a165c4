import uuid

import structlog

from ..backend import NOOP_ID, EndpointBackend
from ..models import BackendResourceIds, ManagedEndpoint, OperationKind, OperationStatus, PendingOperation

log = structlog.get_logger()

# Listings are not paginated; only the first page is considered.
MAX_RESULTS = 100
OPERATION_SUCCESS = "SUCCESS"
IPV4_ATTRIBUTE = "AWS_INSTANCE_IPV4"
PORT_ATTRIBUTE = "AWS_INSTANCE_PORT"


def _namespace_name(name):
    return name.rstrip(".")


class ServiceDiscoveryBackend(EndpointBackend):
    """
    Instances registered with an AWS Cloud Map service.

    The service lives in a private DNS namespace; both are created on demand.
    Endpoints are keyed by instance id, so two instances sharing an address
    are still registered separately.
    """

    key_field = "identifier"

    def __init__(self, servicediscovery, config, noop=False):
        super().__init__(noop=noop)
        self.sd = servicediscovery
        self.namespace_name = _namespace_name(config.hosted_zone)
        self.service_name = config.service_name
        self.vpc_id = config.vpc_id
        self.service_dns_ttl = config.service_dns_ttl
        self.instance_port = config.instance_port
        self.namespace_id = None
        self.service_id = None

    def _find_namespace(self):
        response = self.sd.list_namespaces(
            MaxResults=MAX_RESULTS,
            Filters=[{"Name": "TYPE", "Values": ["DNS_PRIVATE"], "Condition": "EQ"}],
        )
        if response.get("NextToken"):
            log.warning("Namespace listing truncated, later pages are ignored", max_results=MAX_RESULTS)
        for namespace in response.get("Namespaces", []):
            if _namespace_name(namespace["Name"]) == self.namespace_name:
                return namespace["Id"]
        return None

    def _find_service(self):
        response = self.sd.list_services(
            MaxResults=MAX_RESULTS,
            Filters=[{"Name": "NAMESPACE_ID", "Values": [self.namespace_id], "Condition": "EQ"}],
        )
        if response.get("NextToken"):
            log.warning("Service listing truncated, later pages are ignored", max_results=MAX_RESULTS)
        for service in response.get("Services", []):
            if service["Name"] == self.service_name:
                return service["Id"]
        return None

    def _ensure_namespace(self, waiter):
        self.namespace_id = self._find_namespace()
        if self.namespace_id is not None:
            log.info("Found namespace", namespace=self.namespace_name, namespace_id=self.namespace_id)
            return

        log.info("Creating private DNS namespace", namespace=self.namespace_name, vpc_id=self.vpc_id)
        response = self._submit(
            "create_private_dns_namespace",
            self.sd.create_private_dns_namespace,
            Name=self.namespace_name,
            Vpc=self.vpc_id,
            CreatorRequestId=str(uuid.uuid4()),
        )
        if response is None:
            self.namespace_id = NOOP_ID
            return

        operation = PendingOperation(
            operation_id=response["OperationId"],
            kind=OperationKind.CREATE_CONTAINER,
            description=f"create namespace {self.namespace_name}",
        )
        statuses = waiter.wait([operation])
        self.namespace_id = statuses[operation.operation_id].targets["NAMESPACE"]
        log.info("Created namespace", namespace=self.namespace_name, namespace_id=self.namespace_id)

    def _ensure_service(self):
        if self.namespace_id != NOOP_ID:
            self.service_id = self._find_service()
        if self.service_id is not None:
            log.info("Found service", service=self.service_name, service_id=self.service_id)
            return

        log.info("Creating service", service=self.service_name, namespace_id=self.namespace_id)
        response = self._submit(
            "create_service",
            self.sd.create_service,
            Name=self.service_name,
            NamespaceId=self.namespace_id,
            CreatorRequestId=str(uuid.uuid4()),
            DnsConfig={
                "RoutingPolicy": "MULTIVALUE",
                "DnsRecords": [{"Type": "A", "TTL": self.service_dns_ttl}],
            },
        )
        self.service_id = response["Service"]["Id"] if response else NOOP_ID

    def ensure_container(self, waiter):
        self._ensure_namespace(waiter)
        self._ensure_service()
        return self.service_id

    def list_endpoints(self):
        # A service that only exists in no-op mode can't be queried.
        if self.service_id in (None, NOOP_ID):
            return []

        response = self.sd.list_instances(ServiceId=self.service_id, MaxResults=MAX_RESULTS)
        if response.get("NextToken"):
            log.warning("Instance listing truncated, later pages are ignored", service_id=self.service_id, max_results=MAX_RESULTS)
        return [
            ManagedEndpoint(
                identifier=instance["Id"],
                address=instance.get("Attributes", {}).get(IPV4_ATTRIBUTE),
                resource_ids=BackendResourceIds(registry_instance=instance["Id"]),
            )
            for instance in response.get("Instances", [])
        ]

    @staticmethod
    def _pending(response, kind, description):
        if response is None:
            return []
        return [PendingOperation(operation_id=response["OperationId"], kind=kind, description=description)]

    def create_endpoint(self, instance):
        response = self._submit(
            "register_instance",
            self.sd.register_instance,
            ServiceId=self.service_id,
            InstanceId=instance.identifier,
            Attributes={
                IPV4_ATTRIBUTE: instance.address,
                PORT_ATTRIBUTE: str(self.instance_port),
            },
        )
        return self._pending(response, OperationKind.CREATE, f"register {instance.identifier}")

    def delete_endpoint(self, endpoint):
        response = self._submit(
            "deregister_instance",
            self.sd.deregister_instance,
            ServiceId=self.service_id,
            InstanceId=endpoint.resource_ids.registry_instance,
        )
        return self._pending(response, OperationKind.DELETE, f"deregister {endpoint.identifier}")

    def get_operation_status(self, operation_id):
        operation = self.sd.get_operation(OperationId=operation_id)["Operation"]
        return OperationStatus(
            operation_id=operation_id,
            status=operation["Status"],
            succeeded=operation["Status"] == OPERATION_SUCCESS,
            error_message=operation.get("ErrorMessage"),
            targets=operation.get("Targets", {}),
        )

    def delete_container(self):
        log.info("Deleting service", service=self.service_name, service_id=self.service_id)
        self._submit("delete_service", self.sd.delete_service, Id=self.service_id)
        return None

    def delete_namespace(self):
        log.info("Deleting namespace", namespace=self.namespace_name, namespace_id=self.namespace_id)
        response = self._submit("delete_namespace", self.sd.delete_namespace, Id=self.namespace_id)
        if response is None:
            return None
        return PendingOperation(
            operation_id=response["OperationId"],
            kind=OperationKind.DESTROY_CONTAINER,
            description=f"delete namespace {self.namespace_name}",
        )
