from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class DesiredInstance:
    identifier: str
    address: str


@dataclass
class BackendResourceIds:
    # Raw Route 53 record set, needed verbatim for a DELETE change.
    record: Optional[dict] = None
    health_check: Optional[str] = None
    registry_instance: Optional[str] = None


@dataclass
class ManagedEndpoint:
    """An endpoint the backend currently knows about."""

    identifier: Optional[str]
    address: Optional[str]
    resource_ids: BackendResourceIds = field(default_factory=BackendResourceIds)


class OperationKind(str, Enum):
    CREATE = "create"
    DELETE = "delete"
    CREATE_CONTAINER = "create_container"
    DESTROY_CONTAINER = "destroy_container"


@dataclass
class PendingOperation:
    operation_id: str
    kind: OperationKind
    description: str = ""
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OperationStatus:
    operation_id: str
    status: str
    succeeded: bool
    error_message: Optional[str] = None
    targets: dict = field(default_factory=dict)
