import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..errors import NotFoundError, ValidationError
from ..models import User
from ..responses import success
from ..schemas import UserResponse, VerificationDecision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/physiotherapists")
async def list_physiotherapists(
    specialization: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Verified, active physiotherapists patients can book. Admins also see unverified ones."""
    query = db.query(User).filter(User.role == "physiotherapist")
    if current_user.role != "admin":
        query = query.filter(User.verification_status == "verified", User.is_active.is_(True))
    if specialization:
        query = query.filter(User.specialization.ilike(f"%{specialization}%"))

    physios = query.order_by(User.rating_average.desc(), User.id).all()
    return success(
        "Physiotherapists retrieved successfully",
        {"physiotherapists": [UserResponse.from_model(p) for p in physios]},
        results=len(physios),
    )


@router.patch("/physiotherapists/{user_id}/verification")
async def set_physiotherapist_verification(
    user_id: int,
    data: VerificationDecision,
    admin: User = Depends(require_roles("admin")),
    db: Session = Depends(get_db),
):
    """Approve or reject a physiotherapist's account"""
    physio = db.query(User).filter(User.id == user_id, User.role == "physiotherapist").first()
    if not physio:
        raise NotFoundError("Physiotherapist not found")

    reason = (data.rejectionReason or "").strip() or None
    if data.status == "rejected" and not reason:
        raise ValidationError("Rejection reason is required")

    physio.verification_status = data.status
    physio.rejection_reason = reason if data.status == "rejected" else None
    db.commit()
    db.refresh(physio)

    logger.info(f"🩺 Admin {admin.id} set physiotherapist {physio.id} to {data.status}")
    return success(
        f"Physiotherapist {data.status} successfully", {"user": UserResponse.from_model(physio)}
    )
