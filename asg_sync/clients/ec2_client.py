import structlog

from ..models import DesiredInstance

log = structlog.get_logger()

# Maps the config's address selector onto the EC2 API's field names.
ADDRESS_FIELDS = {
    "public_ip_address": "PublicIpAddress",
    "private_ip_address": "PrivateIpAddress",
}


def get_fleet_instances(ec2, asg_name: str, address_property: str):
    """
    Fetches the running instances of an Auto Scaling group.

    Instances are found through the `aws:autoscaling:groupName` tag that the
    Auto Scaling service puts on every instance it launches.

    Args:
        ec2: A boto3 EC2 client.
        asg_name (str): Name of the Auto Scaling group.
        address_property (str): "public_ip_address" or "private_ip_address".

    Returns:
        list[DesiredInstance]: One entry per running instance which has the
                               selected address.
    """
    address_field = ADDRESS_FIELDS[address_property]
    instance_filter = [
        {"Name": "tag:aws:autoscaling:groupName", "Values": [asg_name]},
        {"Name": "instance-state-name", "Values": ["running"]},
    ]

    instances = []
    paginator = ec2.get_paginator("describe_instances")
    for page in paginator.paginate(Filters=instance_filter):
        for reservation in page.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                instance_id = instance["InstanceId"]
                address = instance.get(address_field)
                if not address:
                    log.warning("Skipping instance without address", instance_id=instance_id, address_property=address_property)
                    continue
                log.debug("Found instance", instance_id=instance_id, address_property=address_property, address=address)
                instances.append(DesiredInstance(identifier=instance_id, address=address))

    log.info("Found running instances", asg_name=asg_name, count=len(instances))
    return instances
