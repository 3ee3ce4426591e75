"""Appointment router - FastAPI endpoints for the booking lifecycle"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_roles, verified_only
from ...database import get_db
from ...models import User
from ...responses import success
from ...tasks import TaskDispatcher, get_task_dispatcher
from .lifecycle import ALL_STATUSES
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    NotesUpdateRequest,
    RatingRequest,
    RespondRequest,
    StatusUpdateRequest,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

STATUS_PATTERN = "^(" + "|".join(ALL_STATUSES) + ")$"


def get_appointment_service(
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, dispatcher)


def _one(message: str, appointment) -> dict:
    return success(message, {"appointment": AppointmentResponse.from_model(appointment)})


def _many(message: str, appointments, **extra) -> dict:
    return success(
        message,
        {"appointments": [AppointmentResponse.from_model(a) for a in appointments]},
        results=len(appointments),
        **extra,
    )


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(require_roles("patient")),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book an appointment with a verified physiotherapist"""
    appointment = service.create_request(current_user, data)
    return _one("Appointment request created successfully", appointment)


@router.get("")
async def list_appointments(
    status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments, total = service.list_appointments(current_user, status, page, limit)
    return _many(
        "Appointments retrieved successfully",
        appointments,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    )


@router.get("/my-appointments")
async def my_appointments(
    status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Appointments where the current user is the patient or the physiotherapist"""
    return _many("Appointments retrieved successfully", service.my_appointments(current_user, status))


@router.get("/physio/requests", dependencies=[Depends(verified_only)])
async def physio_requests(
    current_user: User = Depends(require_roles("physiotherapist")),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Pending requests waiting on the current physiotherapist"""
    return _many("Pending requests retrieved successfully", service.pending_requests(current_user))


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return _one("Appointment retrieved successfully", service.get(current_user, appointment_id))


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.patch("/{appointment_id}/respond", dependencies=[Depends(verified_only)])
async def respond_to_appointment(
    appointment_id: int,
    data: RespondRequest,
    current_user: User = Depends(require_roles("physiotherapist")),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.respond(current_user, appointment_id, data.status, data.rejectionReason)
    return _one(f"Appointment {data.status} successfully", appointment)


@router.patch("/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: int,
    data: StatusUpdateRequest,
    current_user: User = Depends(verified_only),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.update_progress(current_user, appointment_id, data.status)
    return _one("Appointment status updated successfully", appointment)


@router.patch("/{appointment_id}/notes")
async def update_appointment_notes(
    appointment_id: int,
    data: NotesUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.update_notes(current_user, appointment_id, data.notes)
    return _one("Appointment notes updated successfully", appointment)


@router.patch("/{appointment_id}/rating")
async def rate_appointment(
    appointment_id: int,
    data: RatingRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.rate(current_user, appointment_id, data.rating, data.review)
    return _one("Rating submitted successfully", appointment)


@router.delete("/{appointment_id}")
async def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.cancel(current_user, appointment_id)
    return _one("Appointment cancelled successfully", appointment)
