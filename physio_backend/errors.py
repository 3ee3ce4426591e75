"""
Typed API errors

Each error is an HTTPException so services can raise them directly and FastAPI
renders them through the handler registered in main.py.
"""

from typing import Optional

from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Validation errors"):
        super().__init__(status_code=400, detail=detail)


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Not authenticated", headers: Optional[dict] = None):
        super().__init__(status_code=401, detail=detail, headers=headers)


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status_code=403, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class InvalidStateError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class UnverifiedError(HTTPException):
    def __init__(self, detail: str = "This physiotherapist is not yet verified"):
        super().__init__(status_code=400, detail=detail)


class SlotConflictError(HTTPException):
    def __init__(self, detail: str = "This time slot is not available"):
        super().__init__(status_code=409, detail=detail)


class UpstreamFailure(HTTPException):
    """An external collaborator (email transport, payment gateway) failed"""

    def __init__(self, detail: str = "Upstream service failed", status_code: int = 502):
        super().__init__(status_code=status_code, detail=detail)


class PaymentError(UpstreamFailure):
    def __init__(self, detail: str = "Payment service failed"):
        super().__init__(detail=detail)
