"""Payment service - refunds through the Dodo Payments API"""

import logging
from dataclasses import dataclass
from typing import Optional

from dodopayments import AsyncDodoPayments  # type: ignore

from .config import DODO_PAYMENTS_API_KEY, DODO_PAYMENTS_ENVIRONMENT
from .errors import PaymentError
from .models import Appointment

logger = logging.getLogger(__name__)

# Dodo refund status -> our refund_status
REFUND_STATUS_MAP = {
    "succeeded": "processed",
    "pending": "pending",
    "review": "pending",
    "failed": "failed",
}


def normalize_dodo_environment(env: Optional[str]) -> str:
    """Normalize Dodo environment value to expected format"""
    value = (env or "test_mode").strip().lower()
    if value in {"live", "production", "prod"}:
        return "live_mode"
    if value in {"test", "sandbox", "staging", "dev", "development"}:
        return "test_mode"
    if value in {"test_mode", "live_mode"}:
        return value
    logger.warning(f"Unknown DODO environment '{env}', defaulting to test_mode")
    return "test_mode"


@dataclass
class RefundResult:
    refund_id: Optional[str]
    status: str  # pending, processed, failed
    amount: float


class PaymentService:
    """Issues refunds for appointments whose payment was captured before booking"""

    def __init__(self):
        self.api_key = DODO_PAYMENTS_API_KEY
        self.environment = normalize_dodo_environment(DODO_PAYMENTS_ENVIRONMENT)
        self.client = None

        if not self.api_key:
            logger.warning("DODO_PAYMENTS_API_KEY not set; refunds will fail until configured")
        else:
            try:
                self.client = AsyncDodoPayments(
                    bearer_token=self.api_key,
                    environment=self.environment,
                )
                logger.info(f"Dodo Payments client initialized (env={self.environment})")
            except Exception as e:
                logger.error(f"Failed to initialize Dodo client (env={self.environment}): {e}")
                self.client = None

    def is_available(self) -> bool:
        return self.client is not None

    async def process_refund(self, appointment: Appointment) -> RefundResult:
        """
        Refund the full amount of an appointment's payment

        Raises:
            PaymentError: gateway not configured, no payment reference, or gateway error
        """
        if not self.is_available():
            raise PaymentError("Payment service not configured")

        if not appointment.payment_id:
            raise PaymentError(f"Appointment {appointment.id} has no payment reference to refund")

        try:
            logger.info(f"💸 Requesting refund for appointment {appointment.id} (payment {appointment.payment_id})")
            refund = await self.client.refunds.create(
                payment_id=appointment.payment_id,
                reason=f"Appointment {appointment.id} {appointment.status}",
            )
        except Exception as e:
            logger.error(f"❌ Refund request failed for appointment {appointment.id}: {e}")
            raise PaymentError(f"Failed to process refund: {str(e)}") from e

        raw_status = str(getattr(refund, "status", "pending")).lower()
        status = REFUND_STATUS_MAP.get(raw_status, "pending")
        logger.info(f"✅ Refund {refund.refund_id} for appointment {appointment.id}: {raw_status}")
        return RefundResult(
            refund_id=refund.refund_id,
            status=status,
            amount=appointment.amount_total,
        )


_payment_service: Optional[PaymentService] = None


def get_payment_service() -> PaymentService:
    global _payment_service
    if _payment_service is None:
        _payment_service = PaymentService()
    return _payment_service
