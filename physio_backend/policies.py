"""
Appointment capability checks

Every appointment permission decision goes through can_act so handlers don't
re-derive ownership rules.
"""

from enum import Enum

from .models import Appointment, User


class Action(str, Enum):
    VIEW = "view"
    RESPOND = "respond"
    UPDATE_STATUS = "update_status"
    CANCEL = "cancel"
    RATE = "rate"
    WRITE_NOTES = "write_notes"


def is_patient_of(actor: User, appointment: Appointment) -> bool:
    return appointment.patient_id == actor.id


def is_physiotherapist_of(actor: User, appointment: Appointment) -> bool:
    return appointment.physiotherapist_id == actor.id


def is_party(actor: User, appointment: Appointment) -> bool:
    return is_patient_of(actor, appointment) or is_physiotherapist_of(actor, appointment)


def can_act(actor: User, appointment: Appointment, action: Action | str) -> bool:
    action = Action(action)
    is_admin = actor.role == "admin"

    if action in (Action.VIEW, Action.UPDATE_STATUS, Action.CANCEL):
        return is_admin or is_party(actor, appointment)
    if action == Action.RESPOND:
        return is_physiotherapist_of(actor, appointment)
    if action in (Action.RATE, Action.WRITE_NOTES):
        # Admins have no rating or notes slot of their own here
        return is_party(actor, appointment)
    return False
