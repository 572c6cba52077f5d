"""Lifecycle states for clusters and node groups."""
from enum import Enum
from typing import Dict, FrozenSet

from kubeforge.exceptions import InvalidTransitionError


class Status(str, Enum):
    CREATING = "Creating"
    ACTIVE = "Active"
    UPDATING = "Updating"
    DELETING = "Deleting"
    DELETED = "Deleted"
    ERROR = "Error"


class NodeGroupType(str, Enum):
    MASTER = "master"
    WORKER = "worker"


class APIAccess(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class DeleteState(str, Enum):
    """Teardown checkpoints, in execution order."""

    INITIAL = "INITIAL"
    LOADBALANCER = "LOADBALANCER"
    DNS = "DNS"
    FLOATING_IP = "FLOATING_IP"
    NODES = "NODES"
    SECURITY_GROUPS = "SECURITY_GROUPS"
    CREDENTIALS = "CREDENTIALS"
    COMPLETED = "COMPLETED"


DELETE_PHASES = list(DeleteState)


class CreationStep(str, Enum):
    """Creation cursor, persisted as each step starts."""

    APPLICATION_CREDENTIAL = "APPLICATION_CREDENTIAL"
    LOADBALANCER = "LOADBALANCER"
    FLOATING_IP = "FLOATING_IP"
    SECURITY_GROUPS = "SECURITY_GROUPS"
    NODE_GROUPS = "NODE_GROUPS"
    SECURITY_GROUP_RULES = "SECURITY_GROUP_RULES"
    MASTERS = "MASTERS"
    DNS = "DNS"
    WORKERS = "WORKERS"
    ACTIVATE = "ACTIVATE"
    COMPLETED = "COMPLETED"


# Shared by clusters and node groups. Error -> Deleting and
# Deleting -> Deleting are only taken by an operator-issued destroy.
TRANSITIONS: Dict[Status, FrozenSet[Status]] = {
    Status.CREATING: frozenset({Status.ACTIVE, Status.ERROR}),
    Status.ACTIVE: frozenset({Status.UPDATING, Status.DELETING}),
    Status.UPDATING: frozenset({Status.ACTIVE}),
    Status.ERROR: frozenset({Status.DELETING}),
    Status.DELETING: frozenset({Status.DELETING, Status.DELETED}),
    Status.DELETED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return Status(target) in TRANSITIONS[Status(current)]


def check_transition(entity: str, current: str, target: str) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(entity, Status(current).value, Status(target).value)
