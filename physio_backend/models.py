from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Statuses that hold a physiotherapist's slot
ACTIVE_SLOT_STATUSES = ("pending", "confirmed")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default="patient")  # patient, physiotherapist, admin
    is_active = Column(Boolean, default=True, nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    # Admin-gated approval for physiotherapists, distinct from email verification
    verification_status = Column(
        String(20), default="pending", nullable=False
    )  # pending, verified, rejected
    rejection_reason = Column(String(200), nullable=True)
    specialization = Column(String(100), nullable=True)
    experience = Column(Integer, nullable=True)  # years
    license_number = Column(String(100), nullable=True)
    rating_average = Column(Float, default=0.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    physiotherapist_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    reason = Column(String(500), nullable=False)
    symptoms = Column(String(1000), nullable=True)
    status = Column(
        String(20), default="pending", nullable=False, index=True
    )  # pending, confirmed, rejected, completed, cancelled, in-progress
    rejection_reason = Column(String(200), nullable=True)

    # Amount breakdown
    amount_total = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False)
    physiotherapist_amount = Column(Float, nullable=False)

    # Payment sub-record
    payment_id = Column(String(255), nullable=True)
    payment_status = Column(
        String(30), default="pending", nullable=False
    )  # pending, paid, failed, refunded, partially_refunded
    refund_id = Column(String(255), nullable=True)
    refund_amount = Column(Float, nullable=True)
    refund_status = Column(String(20), default="none", nullable=False)  # none, pending, processed, failed

    # Consultation mode
    consultation_type = Column(String(20), default="home-visit", nullable=False)  # home-visit, video-call, clinic
    consultation_address = Column(JSON, nullable=True)  # street, city, state, zipCode, landmark
    video_call_link = Column(String(500), nullable=True)
    video_call_scheduled = Column(DateTime, nullable=True)

    # Treatment plan
    prescriptions = Column(JSON, default=list, nullable=True)
    exercises = Column(JSON, default=list, nullable=True)
    follow_up = Column(JSON, nullable=True)  # required, scheduledDate, notes

    # Ratings - each settable exactly once
    patient_rating = Column(Integer, nullable=True)
    patient_review = Column(Text, nullable=True)
    patient_rated_at = Column(DateTime, nullable=True)
    physiotherapist_rating = Column(Integer, nullable=True)
    physiotherapist_review = Column(Text, nullable=True)
    physiotherapist_rated_at = Column(DateTime, nullable=True)

    # Free-text notes per party
    patient_notes = Column(Text, nullable=True)
    physiotherapist_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    patient = relationship("User", foreign_keys=[patient_id])
    physiotherapist = relationship("User", foreign_keys=[physiotherapist_id])
    chat_thread = relationship("ChatThread", back_populates="appointment", uselist=False)

    __table_args__ = (
        # One pending/confirmed appointment per physiotherapist slot, enforced by the database
        Index(
            "uq_appointments_active_slot",
            "physiotherapist_id",
            "appointment_date",
            "start_time",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )


class ChatThread(Base):
    __tablename__ = "chat_threads"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_message_content = Column(String(1000), nullable=True)
    last_message_sender_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="chat_thread")
    participants = relationship(
        "ChatParticipant", back_populates="thread", cascade="all, delete-orphan"
    )

    @property
    def participant_ids(self) -> list[int]:
        return [p.user_id for p in self.participants]


class ChatParticipant(Base):
    __tablename__ = "chat_participants"

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(Integer, ForeignKey("chat_threads.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    thread = relationship("ChatThread", back_populates="participants")


class ChatMessage(Base):
    """Append-only message log; rows are never updated"""

    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(Integer, ForeignKey("chat_threads.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(String(1000), nullable=False)
    message_type = Column(String(20), default="text", nullable=False)  # text, image, file, video-call-link
    file_url = Column(String(500), nullable=True)
    file_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
