"""Tests for the lifecycle status model."""
import pytest

from kubeforge.exceptions import InvalidTransitionError
from kubeforge.orchestration.state import DELETE_PHASES, DeleteState, Status, can_transition, check_transition

LEGAL = {
    (Status.CREATING, Status.ACTIVE),
    (Status.CREATING, Status.ERROR),
    (Status.ACTIVE, Status.UPDATING),
    (Status.UPDATING, Status.ACTIVE),
    (Status.ACTIVE, Status.DELETING),
    (Status.ERROR, Status.DELETING),
    (Status.DELETING, Status.DELETING),
    (Status.DELETING, Status.DELETED),
}


@pytest.mark.parametrize("current", list(Status))
@pytest.mark.parametrize("target", list(Status))
def test_only_listed_edges_are_allowed(current, target):
    assert can_transition(current.value, target.value) == ((current, target) in LEGAL)


def test_deleted_is_terminal():
    for target in Status:
        with pytest.raises(InvalidTransitionError):
            check_transition("cluster", "Deleted", target)


def test_invalid_transition_names_both_states():
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition("node group", Status.CREATING, Status.DELETING)

    assert exc_info.value.current == "Creating"
    assert exc_info.value.target == "Deleting"
    assert "node group" in exc_info.value.message
    assert exc_info.value.status_code == 409


def test_delete_phases_run_in_order():
    assert [phase.value for phase in DELETE_PHASES] == [
        "INITIAL", "LOADBALANCER", "DNS", "FLOATING_IP", "NODES", "SECURITY_GROUPS", "CREDENTIALS", "COMPLETED",
    ]
    assert DELETE_PHASES[0] == DeleteState.INITIAL
