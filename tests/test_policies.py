# tests/test_policies.py
import pytest

from physio_backend.domain.appointments import lifecycle
from physio_backend.models import Appointment, User
from physio_backend.policies import Action, can_act

PATIENT = User(id=1, role="patient")
PHYSIO = User(id=2, role="physiotherapist")
OTHER_PATIENT = User(id=3, role="patient")
OTHER_PHYSIO = User(id=4, role="physiotherapist")
ADMIN = User(id=5, role="admin")
APPOINTMENT = Appointment(id=10, patient_id=1, physiotherapist_id=2)


@pytest.mark.parametrize(
    "actor, action, allowed",
    [
        (PATIENT, Action.VIEW, True),
        (PHYSIO, Action.VIEW, True),
        (ADMIN, Action.VIEW, True),
        (OTHER_PATIENT, Action.VIEW, False),
        (PHYSIO, Action.RESPOND, True),
        (PATIENT, Action.RESPOND, False),
        (ADMIN, Action.RESPOND, False),
        (OTHER_PHYSIO, Action.RESPOND, False),
        (ADMIN, Action.CANCEL, True),
        (OTHER_PHYSIO, Action.CANCEL, False),
        (ADMIN, Action.UPDATE_STATUS, True),
        (PATIENT, Action.RATE, True),
        (ADMIN, Action.RATE, False),
        (PHYSIO, Action.WRITE_NOTES, True),
        (ADMIN, Action.WRITE_NOTES, False),
    ],
)
def test_can_act(actor, action, allowed):
    assert can_act(actor, APPOINTMENT, action) is allowed


def test_can_act_accepts_action_names():
    assert can_act(PATIENT, APPOINTMENT, "view")
    with pytest.raises(ValueError):
        can_act(PATIENT, APPOINTMENT, "delete_everything")


def test_terminal_states_are_frozen():
    for status in lifecycle.TERMINAL_STATUSES:
        assert all(not lifecycle.can_transition(status, target) for target in lifecycle.ALL_STATUSES)


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("pending", "confirmed", True),
        ("pending", "rejected", True),
        ("pending", "in-progress", False),
        ("confirmed", "in-progress", True),
        ("confirmed", "completed", True),
        ("in-progress", "completed", True),
        ("in-progress", "confirmed", False),
        ("completed", "cancelled", False),
    ],
)
def test_transitions(current, target, allowed):
    assert lifecycle.can_transition(current, target) is allowed
