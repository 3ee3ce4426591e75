import re
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

PHONE_PATTERN = re.compile(r"^[0-9]{10}$")


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8)
    phone: str
    role: Literal["patient", "physiotherapist"] = "patient"
    specialization: Optional[str] = Field(default=None, max_length=100)
    experience: Optional[int] = Field(default=None, ge=0, le=60)
    licenseNumber: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2-50 characters")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if not PHONE_PATTERN.match(v):
            raise ValueError("Please provide a valid 10-digit phone number")
        return v

    @model_validator(mode="after")
    def physiotherapist_details(self):
        if self.role == "physiotherapist" and not (self.specialization and self.licenseNumber):
            raise ValueError("Physiotherapists must provide specialization and license number")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=8)


class UpdatePasswordRequest(BaseModel):
    currentPassword: str = Field(min_length=1)
    newPassword: str = Field(min_length=8)


class VerificationDecision(BaseModel):
    status: Literal["verified", "rejected"]
    rejectionReason: Optional[str] = Field(default=None, max_length=200)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    isActive: bool
    isEmailVerified: bool
    verificationStatus: Optional[str] = None
    rejectionReason: Optional[str] = None
    specialization: Optional[str] = None
    experience: Optional[int] = None
    licenseNumber: Optional[str] = None
    rating: Optional[dict] = None
    lastLogin: Optional[datetime] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, user) -> "UserResponse":
        rating = None
        if user.role == "physiotherapist":
            rating = {"average": user.rating_average, "count": user.rating_count}
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            isActive=user.is_active,
            isEmailVerified=user.is_email_verified,
            verificationStatus=user.verification_status,
            rejectionReason=user.rejection_reason,
            specialization=user.specialization,
            experience=user.experience,
            licenseNumber=user.license_number,
            rating=rating,
            lastLogin=user.last_login,
            createdAt=user.created_at,
        )
