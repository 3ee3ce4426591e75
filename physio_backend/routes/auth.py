import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import EMAIL_VERIFICATION_MAX_AGE, PASSWORD_RESET_MAX_AGE
from ..database import get_db
from ..email_service import send_password_reset_email, send_verification_email
from ..email_templates import EmailTemplate
from ..errors import AuthenticationError, NotFoundError, UpstreamFailure, ValidationError
from ..models import User
from ..rate_limiter import create_rate_limiter
from ..responses import success
from ..schemas import (
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    UserResponse,
)
from ..security_utils import (
    EMAIL_VERIFICATION_SALT,
    PASSWORD_RESET_SALT,
    create_access_token,
    generate_timed_token,
    hash_password,
    password_fingerprint,
    verify_password,
    verify_timed_token,
)
from ..tasks import TaskDispatcher, get_task_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

EMAIL_SEND_FAILED = "There was an error sending the email. Please try again later."
INVALID_TOKEN = "Token is invalid or has expired"

# Rate limiters
rate_limit_login = create_rate_limiter(limit=10, window_seconds=900, key_prefix="login")
rate_limit_register = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="register")
rate_limit_password_reset = create_rate_limiter(
    limit=5, window_seconds=3600, key_prefix="password_reset"
)
rate_limit_resend_verification = create_rate_limiter(
    limit=5, window_seconds=3600, key_prefix="resend_verification"
)


def email_verification_token(user: User) -> str:
    return generate_timed_token({"uid": user.id, "email": user.email}, EMAIL_VERIFICATION_SALT)


def password_reset_token(user: User) -> str:
    """Reset links stop working as soon as the password hash changes"""
    return generate_timed_token(
        {"uid": user.id, "pwd": password_fingerprint(user.password_hash)}, PASSWORD_RESET_SALT
    )


@router.post("/register", status_code=201, dependencies=[Depends(rate_limit_register)])
async def register(data: RegisterRequest, db: Session = Depends(get_db)):
    """Create a patient or physiotherapist account and send the verification email"""
    if db.query(User).filter(User.email == data.email).first():
        raise ValidationError("User with this email already exists")

    user = User(
        name=data.name,
        email=data.email,
        password_hash=hash_password(data.password),
        phone=data.phone,
        role=data.role,
    )
    if data.role == "physiotherapist":
        user.specialization = data.specialization
        user.experience = data.experience
        user.license_number = data.licenseNumber

    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"👤 Registered {user.role} {user.id}")

    try:
        await send_verification_email(user.email, user.name, email_verification_token(user))
    except UpstreamFailure as e:
        logger.error(f"❌ Verification email failed for user {user.id}: {e.detail}")
        raise UpstreamFailure(EMAIL_SEND_FAILED, status_code=500) from e

    return success(
        "User registered successfully! Please check your email to verify your account.",
        {
            "user": {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "role": user.role,
                "isEmailVerified": user.is_email_verified,
            }
        },
    )


@router.post("/login", dependencies=[Depends(rate_limit_login)])
async def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if not user or not verify_password(data.password, user.password_hash):
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        raise AuthenticationError("Your account has been deactivated. Please contact support.")

    if not user.is_email_verified:
        raise AuthenticationError("Please verify your email before logging in.")

    if user.role == "physiotherapist" and user.verification_status != "verified":
        message = "Your account is pending verification."
        if user.verification_status == "rejected":
            message = (
                "Your account verification was rejected. Reason: "
                f"{user.rejection_reason or 'Please contact support.'}"
            )
        raise AuthenticationError(message)

    user.last_login = datetime.utcnow()
    db.commit()
    db.refresh(user)

    logger.info(f"🔑 User {user.id} logged in")
    return success(
        "Login successful",
        {"user": UserResponse.from_model(user)},
        token=create_access_token(user.id),
    )


@router.post("/logout")
async def logout():
    """Tokens are stateless; the client discards its copy"""
    return success("Logged out successfully")


@router.get("/verify-email/{token}")
async def verify_email(
    token: str,
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
):
    payload = verify_timed_token(token, EMAIL_VERIFICATION_SALT, EMAIL_VERIFICATION_MAX_AGE)
    if not payload:
        raise ValidationError(INVALID_TOKEN)

    user = db.query(User).filter(User.id == payload.get("uid")).first()
    # Links are single use: a verified account or a changed address invalidates them
    if not user or user.is_email_verified or user.email != payload.get("email"):
        raise ValidationError(INVALID_TOKEN)

    user.is_email_verified = True
    db.commit()
    logger.info(f"✅ Email verified for user {user.id}")

    dispatcher.send_email(EmailTemplate.WELCOME, user.email, {"name": user.name, "role": user.role})
    return success("Email verified successfully! You can now log in.")


@router.post("/resend-verification", dependencies=[Depends(rate_limit_resend_verification)])
async def resend_verification(data: EmailRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if not user:
        raise NotFoundError("User not found")
    if user.is_email_verified:
        raise ValidationError("Email is already verified")

    try:
        await send_verification_email(user.email, user.name, email_verification_token(user))
    except UpstreamFailure as e:
        logger.error(f"❌ Verification email failed for user {user.id}: {e.detail}")
        raise UpstreamFailure(EMAIL_SEND_FAILED, status_code=500) from e

    return success("Verification email sent successfully!")


@router.post("/forgot-password", dependencies=[Depends(rate_limit_password_reset)])
async def forgot_password(data: EmailRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if not user:
        raise NotFoundError("User not found")

    try:
        await send_password_reset_email(user.email, user.name, password_reset_token(user))
    except UpstreamFailure as e:
        logger.error(f"❌ Password reset email failed for user {user.id}: {e.detail}")
        raise UpstreamFailure(EMAIL_SEND_FAILED, status_code=500) from e

    logger.info(f"🔐 Password reset link sent to user {user.id}")
    return success("Token sent to email!")


@router.put("/reset-password/{token}")
async def reset_password(
    token: str,
    data: ResetPasswordRequest,
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
):
    payload = verify_timed_token(token, PASSWORD_RESET_SALT, PASSWORD_RESET_MAX_AGE)
    if not payload:
        raise ValidationError(INVALID_TOKEN)

    user = db.query(User).filter(User.id == payload.get("uid")).first()
    if not user or payload.get("pwd") != password_fingerprint(user.password_hash):
        raise ValidationError(INVALID_TOKEN)

    user.password_hash = hash_password(data.password)
    db.commit()
    logger.info(f"🔐 Password reset for user {user.id}")

    dispatcher.send_email(EmailTemplate.PASSWORD_CHANGED, user.email, {"name": user.name})
    return success("Password reset successful! You can now log in with your new password.")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return success("User retrieved successfully", {"user": UserResponse.from_model(current_user)})


@router.put("/update-password")
async def update_password(
    data: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(data.currentPassword, current_user.password_hash):
        raise AuthenticationError("Your current password is wrong")

    current_user.password_hash = hash_password(data.newPassword)
    db.commit()
    logger.info(f"🔐 Password updated for user {current_user.id}")
    return success("Password updated successfully!")
