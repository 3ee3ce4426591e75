"""Appointment domain schemas - Pydantic models for validation"""

import re
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...models import Appointment, User

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TimeSlot(BaseModel):
    startTime: str
    endTime: str

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        v = v.strip()
        if not TIME_PATTERN.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    landmark: Optional[str] = None


class Consultation(BaseModel):
    type: Literal["home-visit", "video-call", "clinic"] = "home-visit"
    address: Optional[Address] = None
    videoCallLink: Optional[str] = None
    videoCallScheduled: Optional[datetime] = None


class AmountIn(BaseModel):
    total: float = Field(ge=1)


class AppointmentCreate(BaseModel):
    """Schema for a patient's booking request"""

    physiotherapist: int
    appointmentDate: date
    timeSlot: TimeSlot
    reason: str = Field(min_length=10, max_length=500)
    symptoms: Optional[str] = Field(default=None, max_length=1000)
    amount: AmountIn
    consultation: Optional[Consultation] = None
    # Reference of the payment captured before booking, used for refunds
    paymentId: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v):
        v = v.strip()
        if len(v) < 10:
            raise ValueError("Reason must be between 10-500 characters")
        return v


class RespondRequest(BaseModel):
    status: Literal["confirmed", "rejected"]
    rejectionReason: Optional[str] = Field(default=None, max_length=200)


class StatusUpdateRequest(BaseModel):
    status: Literal["in-progress", "completed", "cancelled"]


class NotesUpdateRequest(BaseModel):
    notes: str = Field(max_length=2000)


class RatingRequest(BaseModel):
    rating: int
    review: Optional[str] = Field(default=None, max_length=1000)


# ============================================================================
# RESPONSES
# ============================================================================


class PartySummary(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    specialization: Optional[str] = None
    rating: Optional[dict] = None

    @classmethod
    def from_user(cls, user: Optional[User]) -> Optional["PartySummary"]:
        if user is None:
            return None
        rating = None
        if user.role == "physiotherapist":
            rating = {"average": user.rating_average, "count": user.rating_count}
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            specialization=user.specialization,
            rating=rating,
        )


class RatingOut(BaseModel):
    rating: Optional[int] = None
    review: Optional[str] = None
    ratedAt: Optional[datetime] = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: int
    patient: Optional[PartySummary]
    physiotherapist: Optional[PartySummary]
    appointmentDate: date
    timeSlot: TimeSlot
    reason: str
    symptoms: Optional[str]
    status: str
    rejectionReason: Optional[str]
    amount: dict
    payment: dict
    consultation: dict
    prescriptions: list = []
    exercises: list = []
    followUp: Optional[dict] = None
    rating: dict[str, RatingOut]
    notes: dict
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, a: Appointment) -> "AppointmentResponse":
        return cls(
            id=a.id,
            patient=PartySummary.from_user(a.patient),
            physiotherapist=PartySummary.from_user(a.physiotherapist),
            appointmentDate=a.appointment_date,
            timeSlot=TimeSlot(startTime=a.start_time, endTime=a.end_time),
            reason=a.reason,
            symptoms=a.symptoms,
            status=a.status,
            rejectionReason=a.rejection_reason,
            amount={
                "total": a.amount_total,
                "platformFee": a.platform_fee,
                "physiotherapistAmount": a.physiotherapist_amount,
            },
            payment={
                "paymentId": a.payment_id,
                "status": a.payment_status,
                "refundId": a.refund_id,
                "refundAmount": a.refund_amount,
                "refundStatus": a.refund_status,
            },
            consultation={
                "type": a.consultation_type,
                "address": a.consultation_address,
                "videoCallLink": a.video_call_link,
                "videoCallScheduled": a.video_call_scheduled,
            },
            prescriptions=a.prescriptions or [],
            exercises=a.exercises or [],
            followUp=a.follow_up,
            rating={
                "patientRating": RatingOut(
                    rating=a.patient_rating, review=a.patient_review, ratedAt=a.patient_rated_at
                ),
                "physiotherapistRating": RatingOut(
                    rating=a.physiotherapist_rating,
                    review=a.physiotherapist_review,
                    ratedAt=a.physiotherapist_rated_at,
                ),
            },
            notes={
                "patientNotes": a.patient_notes,
                "physiotherapistNotes": a.physiotherapist_notes,
                "adminNotes": a.admin_notes,
            },
            createdAt=a.created_at,
            updatedAt=a.updated_at,
        )
