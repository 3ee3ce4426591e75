"""
Background side effects (notification emails, refunds)

Side effects never run inside the request that triggered them. The dispatcher
hands them to FastAPI BackgroundTasks, which run them in-process after the
response, or enqueues them on Redis for the ARQ worker. Both paths share the
same retry/backoff policy and log a dead-letter entry when a task gives up.
"""

import asyncio
import logging
from typing import Any, Optional

from fastapi import BackgroundTasks

from .config import TASK_MAX_TRIES, TASK_QUEUE, TASK_RETRY_BACKOFF
from .database import SessionLocal
from .email_service import send_templated_email
from .email_templates import EmailTemplate
from .errors import PaymentError
from .models import Appointment
from .payment_service import get_payment_service

logger = logging.getLogger(__name__)


def backoff_delay(job_try: int) -> float:
    """Exponential backoff: base, 2*base, 4*base, ..."""
    return TASK_RETRY_BACKOFF * (2 ** max(job_try - 1, 0))


def is_last_try(ctx: dict) -> bool:
    return ctx.get("job_try", 1) >= ctx.get("max_tries", TASK_MAX_TRIES)


def log_dead_letter(task_name: str, kwargs: dict, error: Exception) -> None:
    logger.error(
        f"☠️ dead-letter: {task_name} gave up after {TASK_MAX_TRIES} tries "
        f"kwargs={kwargs} error={type(error).__name__}: {error}"
    )


# ============================================================================
# TASKS
# ============================================================================


async def send_notification_email_task(ctx: dict, template: str, to: str, data: dict) -> dict:
    """Render and send one notification email"""
    logger.info(f"📧 Task: sending {template} to {to} (try {ctx.get('job_try', 1)})")
    await send_templated_email(to, template, data)
    return {"status": "sent", "template": template}


async def process_refund_task(ctx: dict, appointment_id: int) -> dict:
    """
    Refund an appointment's payment and record the outcome on the appointment.
    On the last failed try the refund is marked failed before the error propagates.
    """
    logger.info(f"💸 Task: refund for appointment {appointment_id} (try {ctx.get('job_try', 1)})")

    db = SessionLocal()
    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            logger.error(f"❌ Appointment not found for refund: {appointment_id}")
            return {"status": "skipped", "reason": "not_found"}

        if appointment.refund_status == "processed":
            logger.info(f"Refund already processed for appointment {appointment_id}")
            return {"status": "skipped", "reason": "already_refunded"}

        try:
            result = await get_payment_service().process_refund(appointment)
        except PaymentError:
            if is_last_try(ctx):
                appointment.refund_status = "failed"
                db.commit()
            raise

        appointment.refund_id = result.refund_id
        appointment.refund_amount = result.amount
        appointment.refund_status = result.status
        if result.status == "processed":
            appointment.payment_status = "refunded"
        elif result.status == "failed":
            logger.warning(f"⚠️ Gateway reported failed refund for appointment {appointment_id}")
        db.commit()

        return {"status": result.status, "refund_id": result.refund_id}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


TASKS = {
    "send_notification_email_task": send_notification_email_task,
    "process_refund_task": process_refund_task,
}


# ============================================================================
# EXECUTION
# ============================================================================


async def run_with_retry(task_name: str, kwargs: dict) -> Optional[Any]:
    """Run a task in-process with retry/backoff; failures end in the dead-letter log"""
    func = TASKS[task_name]
    for job_try in range(1, TASK_MAX_TRIES + 1):
        ctx = {"job_try": job_try, "max_tries": TASK_MAX_TRIES}
        try:
            return await func(ctx, **kwargs)
        except Exception as e:
            if job_try >= TASK_MAX_TRIES:
                log_dead_letter(task_name, kwargs, e)
                return None
            delay = backoff_delay(job_try)
            logger.warning(f"⚠️ {task_name} failed (try {job_try}): {e} - retrying in {delay}s")
            await asyncio.sleep(delay)
    return None


_arq_pool = None


async def enqueue_job(task_name: str, kwargs: dict) -> None:
    """Enqueue a task for the ARQ worker"""
    from arq import create_pool

    from .worker import get_redis_settings

    global _arq_pool
    try:
        if _arq_pool is None:
            _arq_pool = await create_pool(get_redis_settings())
        job = await _arq_pool.enqueue_job(task_name, **kwargs)
        logger.info(f"📬 Enqueued {task_name} as job {job.job_id if job else 'duplicate'}")
    except Exception as e:
        log_dead_letter(task_name, kwargs, e)


class TaskDispatcher:
    """Schedules side-effect tasks to run after the current response"""

    def __init__(self, background_tasks: BackgroundTasks):
        self.background_tasks = background_tasks

    def dispatch(self, task_name: str, **kwargs) -> None:
        if task_name not in TASKS:
            raise ValueError(f"Unknown task: {task_name}")
        if TASK_QUEUE == "arq":
            self.background_tasks.add_task(enqueue_job, task_name, kwargs)
        else:
            self.background_tasks.add_task(run_with_retry, task_name, kwargs)

    def send_email(self, template: str, to: Optional[str], data: dict) -> None:
        if not to:
            logger.warning(f"⚠️ Skipping {template} email - recipient has no address")
            return
        self.dispatch("send_notification_email_task", template=EmailTemplate(template).value, to=to, data=data)

    def refund(self, appointment_id: int) -> None:
        self.dispatch("process_refund_task", appointment_id=appointment_id)


def get_task_dispatcher(background_tasks: BackgroundTasks) -> TaskDispatcher:
    """Dependency injection for TaskDispatcher"""
    return TaskDispatcher(background_tasks)
