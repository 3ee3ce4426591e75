"""Appointment repository - Database operations for appointments"""

from datetime import date
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models import ACTIVE_SLOT_STATUSES, Appointment, User


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_by_id(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.physiotherapist))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def find_active_slot(
        db: Session, physiotherapist_id: int, appointment_date: date, start_time: str
    ) -> Optional[Appointment]:
        """Pending/confirmed appointment already holding this physiotherapist slot"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.physiotherapist_id == physiotherapist_id,
                Appointment.appointment_date == appointment_date,
                Appointment.start_time == start_time,
                Appointment.status.in_(ACTIVE_SLOT_STATUSES),
            )
            .first()
        )

    @staticmethod
    def create(db: Session, **appointment_data) -> Appointment:
        """Create a new appointment. The active-slot unique index may raise IntegrityError."""
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def compare_and_set(
        db: Session,
        appointment_id: int,
        expected_statuses: Iterable[str],
        updates: dict,
        extra_conditions: Iterable = (),
    ) -> bool:
        """
        Apply `updates` only if the appointment is still in one of `expected_statuses`.
        Does not commit. Returns True when this caller won the update.
        """
        rowcount = (
            db.query(Appointment)
            .filter(
                Appointment.id == appointment_id,
                Appointment.status.in_(list(expected_statuses)),
                *extra_conditions,
            )
            .update(updates, synchronize_session=False)
        )
        return rowcount == 1

    @staticmethod
    def update_fields(db: Session, appointment: Appointment, **updates) -> Appointment:
        for key, value in updates.items():
            if hasattr(appointment, key):
                setattr(appointment, key, value)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def list_appointments(
        db: Session,
        patient_id: Optional[int] = None,
        physiotherapist_id: Optional[int] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Appointment], int]:
        """Paginated list, newest first. Returns (items, total)."""
        query = db.query(Appointment)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if physiotherapist_id is not None:
            query = query.filter(Appointment.physiotherapist_id == physiotherapist_id)
        if status:
            query = query.filter(Appointment.status == status)

        total = query.count()
        items = (
            query.options(joinedload(Appointment.patient), joinedload(Appointment.physiotherapist))
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def list_for_party(db: Session, user_id: int, status: Optional[str] = None) -> list[Appointment]:
        query = db.query(Appointment).filter(
            or_(Appointment.patient_id == user_id, Appointment.physiotherapist_id == user_id)
        )
        if status:
            query = query.filter(Appointment.status == status)
        return (
            query.options(joinedload(Appointment.patient), joinedload(Appointment.physiotherapist))
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .all()
        )

    @staticmethod
    def pending_requests(db: Session, physiotherapist_id: int) -> list[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.patient))
            .filter(
                Appointment.physiotherapist_id == physiotherapist_id,
                Appointment.status == "pending",
            )
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .all()
        )

    @staticmethod
    def lock_user(db: Session, user_id: int) -> Optional[User]:
        """Load a user row for update (row lock on PostgreSQL, no-op on SQLite)"""
        return (
            db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
