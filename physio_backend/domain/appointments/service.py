"""Appointment service - Booking lifecycle business logic"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import get_platform_commission
from ...email_templates import EmailTemplate
from ...errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SlotConflictError,
    UnverifiedError,
    ValidationError,
)
from ...models import Appointment, User
from ...policies import Action, can_act, is_patient_of, is_physiotherapist_of
from ...tasks import TaskDispatcher
from ..chat.service import ChatService
from . import lifecycle
from .repository import AppointmentRepository
from .schemas import AppointmentCreate

logger = logging.getLogger(__name__)


def split_amount(total: float, commission: float) -> tuple[float, float]:
    """Return (platform_fee, physiotherapist_amount) rounded to cents"""
    platform_fee = round(total * commission, 2)
    return platform_fee, round(total - platform_fee, 2)


def rolling_average(average: float, count: int, rating: int) -> tuple[float, int]:
    new_count = count + 1
    return round((average * count + rating) / new_count, 2), new_count


def _time_slot(appointment: Appointment) -> str:
    return f"{appointment.start_time} - {appointment.end_time}"


def _display_date(appointment: Appointment) -> str:
    return appointment.appointment_date.strftime("%d %b %Y")


class AppointmentService:
    """Service layer for the appointment lifecycle"""

    def __init__(self, db: Session, dispatcher: TaskDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get_or_404(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def get(self, actor: User, appointment_id: int) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        if not can_act(actor, appointment, Action.VIEW):
            raise ForbiddenError("You do not have access to this appointment")
        return appointment

    def list_appointments(
        self, actor: User, status: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> tuple[list[Appointment], int]:
        """Patients see their own bookings, physiotherapists their assigned ones, admins all"""
        filters = {}
        if actor.role == "patient":
            filters["patient_id"] = actor.id
        elif actor.role == "physiotherapist":
            filters["physiotherapist_id"] = actor.id
        return self.repo.list_appointments(
            self.db, status=status, page=max(page, 1), limit=max(limit, 1), **filters
        )

    def my_appointments(self, actor: User, status: Optional[str] = None) -> list[Appointment]:
        return self.repo.list_for_party(self.db, actor.id, status)

    def pending_requests(self, physiotherapist: User) -> list[Appointment]:
        return self.repo.pending_requests(self.db, physiotherapist.id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_request(self, actor: User, data: AppointmentCreate) -> Appointment:
        """Book a slot with a verified physiotherapist. The new appointment starts pending."""
        logger.info(f"📥 Appointment request from patient {actor.id} for physio {data.physiotherapist}")

        physio = self.repo.get_user(self.db, data.physiotherapist)
        if not physio or physio.role != "physiotherapist":
            raise NotFoundError("Physiotherapist not found")
        if physio.verification_status != "verified":
            raise UnverifiedError()

        start_time, end_time = data.timeSlot.startTime, data.timeSlot.endTime
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")

        if self.repo.find_active_slot(self.db, physio.id, data.appointmentDate, start_time):
            raise SlotConflictError()

        total = data.amount.total
        platform_fee, physio_amount = split_amount(total, get_platform_commission())

        consultation = data.consultation
        appointment_data = {
            "patient_id": actor.id,
            "physiotherapist_id": physio.id,
            "appointment_date": data.appointmentDate,
            "start_time": start_time,
            "end_time": end_time,
            "reason": data.reason,
            "symptoms": data.symptoms,
            "status": lifecycle.PENDING,
            "amount_total": total,
            "platform_fee": platform_fee,
            "physiotherapist_amount": physio_amount,
            "payment_id": data.paymentId,
            "payment_status": "paid",
        }
        if consultation:
            appointment_data.update(
                {
                    "consultation_type": consultation.type,
                    "consultation_address": consultation.address.model_dump() if consultation.address else None,
                    "video_call_link": consultation.videoCallLink,
                    "video_call_scheduled": consultation.videoCallScheduled,
                }
            )

        try:
            appointment = self.repo.create(self.db, **appointment_data)
        except IntegrityError as e:
            # Another request took the slot between the pre-check and the insert
            self.db.rollback()
            logger.warning(f"⚠️ Slot conflict on insert for physio {physio.id}: {e.orig}")
            raise SlotConflictError() from e

        appointment = self._get_or_404(appointment.id)
        logger.info(f"✅ Appointment {appointment.id} created (fee={platform_fee}, payout={physio_amount})")

        common = {
            "patient_name": actor.name,
            "physiotherapist_name": physio.name,
            "appointment_date": _display_date(appointment),
            "time_slot": _time_slot(appointment),
            "reason": appointment.reason,
        }
        self.dispatcher.send_email(
            EmailTemplate.APPOINTMENT_PENDING, actor.email, {**common, "amount": total}
        )
        self.dispatcher.send_email(
            EmailTemplate.APPOINTMENT_REQUEST,
            physio.email,
            {
                **common,
                "patient_phone": actor.phone,
                "symptoms": appointment.symptoms,
                "amount": physio_amount,
            },
        )
        return appointment

    def respond(
        self,
        actor: User,
        appointment_id: int,
        decision: str,
        rejection_reason: Optional[str] = None,
    ) -> Appointment:
        """Confirm or reject a pending request. Only one response can ever win."""
        if decision not in lifecycle.RESPONSE_DECISIONS:
            raise ValidationError('Invalid status. Use "confirmed" or "rejected"')
        rejection_reason = (rejection_reason or "").strip() or None
        if decision == lifecycle.REJECTED and not rejection_reason:
            raise ValidationError("Rejection reason is required")

        appointment = self._get_or_404(appointment_id)
        if not can_act(actor, appointment, Action.RESPOND):
            raise ForbiddenError("You can only respond to your own appointment requests")
        if appointment.status != lifecycle.PENDING:
            raise InvalidStateError("This appointment has already been responded to")

        updates = {"status": decision, "updated_at": datetime.utcnow()}
        refund_needed = decision == lifecycle.REJECTED and appointment.payment_status == "paid"
        if decision == lifecycle.REJECTED:
            updates["rejection_reason"] = rejection_reason
        if refund_needed:
            updates["refund_status"] = "pending"

        if not self.repo.compare_and_set(self.db, appointment.id, [lifecycle.PENDING], updates):
            self.db.rollback()
            raise InvalidStateError("This appointment has already been responded to")

        if decision == lifecycle.CONFIRMED:
            ChatService(self.db).create_thread(
                appointment.id, [appointment.patient_id, appointment.physiotherapist_id], commit=False
            )

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} {decision} by physio {actor.id}")

        patient, physio = appointment.patient, appointment.physiotherapist
        common = {
            "patient_name": patient.name,
            "physiotherapist_name": physio.name,
            "appointment_date": _display_date(appointment),
            "time_slot": _time_slot(appointment),
            "reason": appointment.reason,
        }
        if decision == lifecycle.CONFIRMED:
            self.dispatcher.send_email(
                EmailTemplate.APPOINTMENT_CONFIRMED,
                patient.email,
                {**common, "physiotherapist_phone": physio.phone},
            )
        else:
            if refund_needed:
                self.dispatcher.refund(appointment.id)
            self.dispatcher.send_email(
                EmailTemplate.APPOINTMENT_REJECTED,
                patient.email,
                {
                    **common,
                    "rejection_reason": rejection_reason,
                    "refund_amount": appointment.amount_total if refund_needed else None,
                },
            )
        return appointment

    def update_progress(self, actor: User, appointment_id: int, status: str) -> Appointment:
        """Move a confirmed appointment forward (in-progress, completed) or cancel it"""
        if status not in lifecycle.PROGRESS_STATUSES:
            raise ValidationError("Invalid status")
        if actor.role == "physiotherapist" and actor.verification_status != "verified":
            raise ForbiddenError("Your account is not verified yet. Please wait for admin approval.")

        appointment = self._get_or_404(appointment_id)
        if not can_act(actor, appointment, Action.UPDATE_STATUS):
            raise ForbiddenError("You do not have permission to update this appointment")

        current = appointment.status
        if not lifecycle.can_transition(current, status):
            raise InvalidStateError(f"Cannot change status from {current} to {status}")

        updates = {"status": status, "updated_at": datetime.utcnow()}
        refund_needed = status == lifecycle.CANCELLED and appointment.payment_status == "paid"
        if refund_needed:
            updates["refund_status"] = "pending"

        if not self.repo.compare_and_set(self.db, appointment.id, [current], updates):
            self.db.rollback()
            raise InvalidStateError("Appointment status changed, please reload and try again")

        if status == lifecycle.CANCELLED:
            ChatService(self.db).close_thread(appointment.id)

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} {current} -> {status} by user {actor.id}")

        if status == lifecycle.CANCELLED:
            self._after_cancel(actor, appointment, refund_needed)
        return appointment

    def cancel(self, actor: User, appointment_id: int) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        if not can_act(actor, appointment, Action.CANCEL):
            raise ForbiddenError("You do not have permission to cancel this appointment")

        current = appointment.status
        if current not in lifecycle.CANCELLABLE_STATUSES:
            raise InvalidStateError("This appointment cannot be cancelled")

        updates = {"status": lifecycle.CANCELLED, "updated_at": datetime.utcnow()}
        refund_needed = appointment.payment_status == "paid"
        if refund_needed:
            updates["refund_status"] = "pending"

        if not self.repo.compare_and_set(self.db, appointment.id, [current], updates):
            self.db.rollback()
            raise InvalidStateError("This appointment cannot be cancelled")

        ChatService(self.db).close_thread(appointment.id)
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"🚫 Appointment {appointment.id} cancelled by user {actor.id}")

        self._after_cancel(actor, appointment, refund_needed)
        return appointment

    def _after_cancel(self, actor: User, appointment: Appointment, refund_needed: bool) -> None:
        if refund_needed:
            self.dispatcher.refund(appointment.id)

        # Notify whoever did not cancel; admins cancelling notify the patient
        recipient = appointment.physiotherapist if is_patient_of(actor, appointment) else appointment.patient
        refund_amount = None
        if refund_needed and recipient.id == appointment.patient_id:
            refund_amount = appointment.amount_total
        self.dispatcher.send_email(
            EmailTemplate.APPOINTMENT_CANCELLED,
            recipient.email,
            {
                "recipient_name": recipient.name,
                "appointment_date": _display_date(appointment),
                "time_slot": _time_slot(appointment),
                "cancelled_by": actor.name,
                "refund_amount": refund_amount,
            },
        )

    def rate(
        self, actor: User, appointment_id: int, rating: int, review: Optional[str] = None
    ) -> Appointment:
        """Record the actor's one-time rating of a completed appointment"""
        if rating is None or not 1 <= rating <= 5:
            raise ValidationError("Please provide a rating between 1 and 5")

        appointment = self._get_or_404(appointment_id)
        if appointment.status != lifecycle.COMPLETED:
            raise InvalidStateError("You can only rate completed appointments")
        if not can_act(actor, appointment, Action.RATE):
            raise ForbiddenError("You do not have permission to rate this appointment")

        if is_patient_of(actor, appointment):
            slot = "patient"
            already_rated = appointment.patient_rating is not None
            empty_condition = Appointment.patient_rating.is_(None)
        else:
            slot = "physiotherapist"
            already_rated = appointment.physiotherapist_rating is not None
            empty_condition = Appointment.physiotherapist_rating.is_(None)

        if already_rated:
            raise InvalidStateError("You have already rated this appointment")

        updates = {
            f"{slot}_rating": rating,
            f"{slot}_review": review or "",
            f"{slot}_rated_at": datetime.utcnow(),
        }
        if not self.repo.compare_and_set(
            self.db, appointment.id, [lifecycle.COMPLETED], updates, extra_conditions=[empty_condition]
        ):
            self.db.rollback()
            raise InvalidStateError("You have already rated this appointment")

        if slot == "patient":
            physio = self.repo.lock_user(self.db, appointment.physiotherapist_id)
            if physio:
                physio.rating_average, physio.rating_count = rolling_average(
                    physio.rating_average or 0.0, physio.rating_count or 0, rating
                )

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"⭐ Appointment {appointment.id} rated {rating} by {slot} {actor.id}")
        return appointment

    def update_notes(self, actor: User, appointment_id: int, notes: str) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        if not can_act(actor, appointment, Action.WRITE_NOTES):
            raise ForbiddenError("You do not have permission to update this appointment")

        if actor.role == "patient" and is_patient_of(actor, appointment):
            field = "patient_notes"
        elif actor.role == "physiotherapist" and is_physiotherapist_of(actor, appointment):
            field = "physiotherapist_notes"
        else:
            raise ForbiddenError("You do not have permission to update this appointment")

        return self.repo.update_fields(self.db, appointment, **{field: notes})
