import os
import random
import time

import boto3
import structlog

from .clients.ec2_client import get_fleet_instances
from .clients.metadata_client import detect_region
from .clients.route53_client import Route53Backend
from .clients.servicediscovery_client import ServiceDiscoveryBackend
from .pruner import Pruner
from .reconciler import Reconciler
from .waiter import OperationWaiter

log = structlog.get_logger()

# config.backend -> (boto3 service name, backend class)
BACKENDS = {
    "route53": ("route53", Route53Backend),
    "servicediscovery": ("servicediscovery", ServiceDiscoveryBackend),
}


def create_session():
    return boto3.Session(region_name=detect_region())


def create_backend(session, config, noop=False):
    service_name, backend_class = BACKENDS[config.backend]
    return backend_class(session.client(service_name), config, noop=noop)


def get_fleet_data(session, config):
    ec2 = session.client("ec2")
    return get_fleet_instances(ec2, config.instance_asg_name, config.instance_address_property)


def apply_startup_jitter(config, sleep=time.sleep):
    """
    Sleeps for a random time up to `startup_jitter` seconds, so that a fleet
    booting at once doesn't hit the APIs at the same moment.
    """
    if config.startup_jitter <= 0:
        return
    delay = random.uniform(0, config.startup_jitter)
    log.info("Sleeping before sync", delay=round(delay, 2), startup_jitter=config.startup_jitter)
    sleep(delay)


def sync_endpoints(config, noop=False, session=None, sleep=time.sleep):
    """
    Runs one reconciliation of the fleet against the configured backend.

    Reads the running instances, resolves the endpoint container, creates and
    removes endpoints until the backend matches the fleet, waits for the
    resulting operations and finally prunes the container if configured to.
    Any failure raises a SyncError; nothing that was already changed is
    rolled back.

    Args:
        config (SyncConfig): The validated configuration.
        noop (bool): Only log the mutating calls that would be made.
        session (boto3.session.Session): Session to create API clients from.
        sleep (callable): Used for the startup jitter and operation polling.

    Returns:
        ReconcileResult: What was (or, in no-op mode, would have been) changed.
    """
    app_version = os.getenv("APP_VERSION", "Not Set")
    log.info(
        "Starting endpoint sync",
        version=app_version,
        backend=config.backend,
        asg_name=config.instance_asg_name,
        noop=noop,
    )

    apply_startup_jitter(config, sleep=sleep)
    session = session or create_session()

    desired = get_fleet_data(session, config)
    backend = create_backend(session, config, noop=noop)
    waiter = OperationWaiter(
        backend,
        sleep_period=config.operation_poll_interval,
        max_retries=config.operation_max_retries,
        sleep=sleep,
    )

    backend.ensure_container(waiter)
    result = Reconciler(backend).reconcile(desired)
    waiter.wait(result.operations)

    Pruner(backend, waiter, prune_service=config.prune_service, prune_namespace=config.prune_namespace).prune()

    log.info(
        "Endpoint sync summary",
        created=len(result.to_create),
        removed=len(result.to_remove),
        unchanged=len(result.unchanged),
        total_instances=len(desired),
        noop=noop,
    )
    return result
