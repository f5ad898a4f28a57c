"""
Campaign delivery: audience fan-out, vendor sends, receipts and completion.

Every send is an asyncio task tracked per campaign so a stop or a delete can
cancel what is still outstanding. A campaign leaves ``sending`` either when
its last pending log resolves (``completed``) or when the completion deadline
fires first (``completed`` if nothing is pending, else
``completed_with_pending``).
"""
from __future__ import annotations

import asyncio
import logging
import random
from collections import defaultdict
from uuid import UUID

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from app import config
from app.db import SessionLocal
from app.models.campaign import Campaign
from app.models.communication_log import CommunicationLog
from app.schemas.segment_rule import parse_segment_rules
from app.services.campaign_service import advance_campaign_status
from app.services.segment_service import get_customers_by_segment_rules
from app.utils.time import utcnow


logger = logging.getLogger(__name__)

VENDOR_UNREACHABLE_REASON = "Vendor API unreachable"

NAME_PLACEHOLDER = "{{name}}"


def render_message(template: str, name: str) -> str:
    return template.replace(NAME_PLACEHOLDER, name or "", 1)


# ============================================================
# RECEIPTS
# ============================================================

def apply_receipt(db: Session, message_id: UUID, status: str, failure_reason: str | None = None):
    """
    Record a delivery outcome on its log. Last write wins: a duplicate or
    out-of-order receipt simply overwrites the row again.
    """
    if not isinstance(message_id, UUID):
        try:
            message_id = UUID(str(message_id))
        except ValueError:
            return None

    log = db.query(CommunicationLog).filter(CommunicationLog.id == message_id).first()
    if not log:
        return None

    log.status = status
    if status == "sent":
        log.sent_at = utcnow()
        # a late delivery supersedes an earlier stop or vendor failure
        log.failure_reason = failure_reason
    elif failure_reason:
        log.failure_reason = failure_reason

    db.flush()
    return log


def count_pending_logs(db: Session, campaign_id: UUID) -> int:
    return int(
        db.query(func.count(CommunicationLog.id))
        .filter(CommunicationLog.campaign_id == campaign_id)
        .filter(CommunicationLog.status == "pending")
        .scalar()
        or 0
    )


def complete_campaign_if_settled(db: Session, campaign_id: UUID) -> bool:
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign or campaign.status != "sending":
        return False
    if count_pending_logs(db, campaign_id) > 0:
        return False
    return advance_campaign_status(campaign, "completed")


def close_campaign_at_deadline(db: Session, campaign_id: UUID) -> str | None:
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign or campaign.status != "sending":
        return None

    pending = count_pending_logs(db, campaign_id)
    status = "completed" if pending == 0 else "completed_with_pending"
    advance_campaign_status(campaign, status)
    return status



# ============================================================
# VENDOR TRANSPORT
# ============================================================

class HttpVendorClient:
    """Posts individual messages to the vendor's send endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or config.VENDOR_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def send(self, *, message_id: UUID, customer_id: UUID, message: str) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/api/vendor/send",
                json={"messageId": str(message_id), "customerId": str(customer_id), "message": message},
            )
        if response.is_error:
            logger.warning(
                "vendor rejected message",
                extra={"message_id": str(message_id), "status_code": response.status_code},
            )
            return {}

        try:
            return response.json()
        except ValueError:
            logger.warning(
                "vendor answered with a non-json body",
                extra={"message_id": str(message_id), "status_code": response.status_code},
            )
            return {}


# ============================================================
# DISPATCHER
# ============================================================

class DeliveryDispatcher:
    """
    Owns the send and deadline tasks of every campaign in flight.

    Database work runs in worker threads (``asyncio.to_thread``); creating and
    cancelling tasks only ever happens on the event loop.
    """

    def __init__(
        self,
        *,
        vendor=None,
        session_factory=SessionLocal,
        send_delay_max: float | None = None,
        completion_deadline: float | None = None,
        rng: random.Random | None = None,
    ):
        self.vendor = vendor or HttpVendorClient()
        self.session_factory = session_factory
        self.send_delay_max = config.SEND_DELAY_MAX_SECONDS if send_delay_max is None else send_delay_max
        self.completion_deadline = (
            config.COMPLETION_DEADLINE_SECONDS if completion_deadline is None else completion_deadline
        )
        self.rng = rng or random.Random()

        self._sends: dict[UUID, set[asyncio.Task]] = defaultdict(set)
        self._deadlines: dict[UUID, asyncio.Task] = {}

    # ------------------------------------------------------------
    # public API
    # ------------------------------------------------------------

    async def dispatch(self, campaign_id: UUID) -> int:
        """
        Resolve the campaign audience, write one pending log per customer and
        schedule one send per log. Returns the number of sends scheduled.
        """
        queued = await asyncio.to_thread(self._prepare, campaign_id)
        if not queued:
            return 0

        for log_id, customer_id, message in queued:
            delay = self.rng.uniform(0, self.send_delay_max)
            self._track_send(campaign_id, self._send_after(campaign_id, log_id, customer_id, message, delay))

        self._deadlines[campaign_id] = asyncio.create_task(
            self._close_after_deadline(campaign_id), name=f"campaign-deadline-{campaign_id}"
        )

        logger.info(
            "campaign dispatched",
            extra={"campaign_id": str(campaign_id), "scheduled": len(queued)},
        )
        return len(queued)

    async def record_outcome(self, log_id: UUID, status: str, failure_reason: str | None = None) -> bool:
        """Apply a delivery outcome; False when the log does not exist."""
        outcome = await asyncio.to_thread(self._apply_outcome, log_id, status, failure_reason)
        if outcome is None:
            return False

        campaign_id, completed = outcome
        if completed:
            self.release(campaign_id)
            logger.info("campaign completed", extra={"campaign_id": str(campaign_id)})
        return True

    def cancel(self, campaign_id: UUID) -> int:
        """Cancel outstanding sends and the deadline timer of a campaign."""
        tasks = list(self._sends.pop(campaign_id, set()))
        for task in tasks:
            task.cancel()

        self.release(campaign_id)

        if tasks:
            logger.info("cancelled outstanding sends", extra={"campaign_id": str(campaign_id), "count": len(tasks)})
        return len(tasks)

    def release(self, campaign_id: UUID) -> None:
        """Drop the deadline timer once a campaign has settled on its own."""
        deadline = self._deadlines.pop(campaign_id, None)
        if deadline is not None and deadline is not _current_task():
            deadline.cancel()

    def outstanding(self, campaign_id: UUID) -> int:
        return len(self._sends.get(campaign_id, ()))

    async def drain(self, campaign_id: UUID | None = None, *, include_deadlines: bool = False) -> None:
        """Wait until the scheduled sends (of one campaign, or all) have finished."""
        while True:
            if campaign_id is None:
                tasks = [t for ts in self._sends.values() for t in ts]
                deadlines = list(self._deadlines.values())
            else:
                tasks = list(self._sends.get(campaign_id, ()))
                deadlines = [self._deadlines[campaign_id]] if campaign_id in self._deadlines else []
            if include_deadlines:
                tasks += deadlines
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = [t for ts in self._sends.values() for t in ts] + list(self._deadlines.values())
        self._sends.clear()
        self._deadlines.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------
    # tasks
    # ------------------------------------------------------------

    def _track_send(self, campaign_id: UUID, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._sends[campaign_id].add(task)

        def _done(t: asyncio.Task):
            bucket = self._sends.get(campaign_id)
            if bucket is not None:
                bucket.discard(t)
                if not bucket:
                    self._sends.pop(campaign_id, None)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "send task crashed",
                    exc_info=t.exception(),
                    extra={"campaign_id": str(campaign_id)},
                )

        task.add_done_callback(_done)
        return task

    async def _send_after(self, campaign_id: UUID, log_id: UUID, customer_id: UUID, message: str, delay: float):
        await asyncio.sleep(delay)
        try:
            await self.vendor.send(message_id=log_id, customer_id=customer_id, message=message)
        except httpx.RequestError as e:
            logger.error(
                "vendor api unreachable",
                extra={"campaign_id": str(campaign_id), "message_id": str(log_id), "error": str(e)},
            )
            await self.record_outcome(log_id, "failed", VENDOR_UNREACHABLE_REASON)

    async def _close_after_deadline(self, campaign_id: UUID):
        await asyncio.sleep(self.completion_deadline)
        try:
            status = await asyncio.to_thread(self._close_at_deadline, campaign_id)
        finally:
            self._deadlines.pop(campaign_id, None)

        if status:
            logger.info("campaign deadline reached", extra={"campaign_id": str(campaign_id), "status": status})

    # ------------------------------------------------------------
    # database work (worker threads)
    # ------------------------------------------------------------

    def _prepare(self, campaign_id: UUID) -> list[tuple[UUID, UUID, str]]:
        db = self.session_factory()
        try:
            campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
            if not campaign:
                logger.warning("campaign not found; nothing to dispatch", extra={"campaign_id": str(campaign_id)})
                return []

            try:
                if not advance_campaign_status(campaign, "sending"):
                    return []
                db.commit()

                rules = parse_segment_rules(campaign.rules)
                audience = get_customers_by_segment_rules(db, rules)

                logs = []
                for customer in audience:
                    log = CommunicationLog(
                        campaign_id=campaign.id,
                        customer_id=customer.id,
                        message=render_message(campaign.message, customer.name),
                        status="pending",
                    )
                    db.add(log)
                    logs.append((log, customer.id))
                db.flush()
                queued = [(log.id, customer_id, log.message) for log, customer_id in logs]

                if not queued:
                    advance_campaign_status(campaign, "completed")
                db.commit()
                return queued

            except Exception:
                db.rollback()
                logger.exception("campaign dispatch failed", extra={"campaign_id": str(campaign_id)})
                self._mark_failed(db, campaign_id)
                return []
        finally:
            db.close()

    def _apply_outcome(self, log_id: UUID, status: str, failure_reason: str | None):
        db = self.session_factory()
        try:
            log = apply_receipt(db, log_id, status, failure_reason)
            if not log:
                db.rollback()
                return None
            campaign_id = log.campaign_id
            completed = complete_campaign_if_settled(db, campaign_id)
            db.commit()
            return campaign_id, completed
        finally:
            db.close()

    def _close_at_deadline(self, campaign_id: UUID) -> str | None:
        db = self.session_factory()
        try:
            status = close_campaign_at_deadline(db, campaign_id)
            db.commit()
            return status
        finally:
            db.close()

    def _mark_failed(self, db: Session, campaign_id: UUID) -> None:
        campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if campaign and advance_campaign_status(campaign, "failed"):
            db.commit()


def _current_task():
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
