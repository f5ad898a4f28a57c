"""
Mock external delivery vendor.

Accepts a message, answers immediately, and reports the outcome later on the
receipt callback: ``sent`` with probability ``success_rate``, otherwise
``failed`` with a fixed reason.
"""
from __future__ import annotations

import asyncio
import logging
import random
from uuid import UUID

import httpx

from app import config


logger = logging.getLogger(__name__)

VENDOR_FAILURE_REASON = "Delivery service unavailable"
ESTIMATED_DELIVERY = "1-5 seconds"


class HttpReceiptClient:
    """Posts delivery receipts back to the CRM's receipt endpoint."""

    def __init__(
        self,
        callback_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.callback_url = callback_url or config.RECEIPT_CALLBACK_URL
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def post_receipt(self, receipt: dict) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.callback_url, json=receipt)
            response.raise_for_status()


class VendorSimulator:
    def __init__(
        self,
        *,
        receipts=None,
        success_rate: float | None = None,
        delay_min: float | None = None,
        delay_max: float | None = None,
        rng: random.Random | None = None,
    ):
        self.receipts = receipts or HttpReceiptClient()
        self.success_rate = config.VENDOR_SUCCESS_RATE if success_rate is None else success_rate
        self.delay_min = config.RECEIPT_DELAY_MIN_SECONDS if delay_min is None else delay_min
        self.delay_max = config.RECEIPT_DELAY_MAX_SECONDS if delay_max is None else delay_max
        self.rng = rng or random.Random()

        self._tasks: set[asyncio.Task] = set()

    def accept(self, *, message_id: UUID, customer_id: UUID, message: str) -> dict:
        delivered = self.rng.random() < self.success_rate
        delay = self.rng.uniform(self.delay_min, self.delay_max)

        receipt = {"messageId": str(message_id), "status": "sent" if delivered else "failed"}
        if not delivered:
            receipt["failureReason"] = VENDOR_FAILURE_REASON

        task = asyncio.create_task(self._report_after(receipt, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug(
            "vendor accepted message",
            extra={"message_id": str(message_id), "customer_id": str(customer_id), "delay": round(delay, 2)},
        )
        return {"status": "accepted", "messageId": message_id, "estimatedDelivery": ESTIMATED_DELIVERY}

    async def _report_after(self, receipt: dict, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.receipts.post_receipt(receipt)
        except httpx.HTTPError as e:
            logger.error(
                "failed to send delivery receipt",
                extra={"message_id": receipt["messageId"], "error": str(e)},
            )

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
