"""
Payment gateway client.

POST {base_url}/payments with a bearer token and an Idempotency-Key that
stays the same for every retry of one settlement. When the gateway answers
anything but 204, the client asks it for the payments it already holds
(GET {base_url}/payments) and compares them with the rider's ride history:
if every ride is accounted for, the charge went through and is not repeated.
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from app.config import get_settings
from app.errors import PaymentGatewayError

logger = logging.getLogger(__name__)
settings = get_settings()

RideHistoryProvider = Callable[[], Awaitable[Sequence[Any]]]


class PaymentGatewayClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        max_retries: Optional[int] = None,
        retry_backoff_ms: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.max_retries = settings.payment_max_retries if max_retries is None else max_retries
        self.retry_backoff_ms = (
            settings.payment_retry_backoff_ms if retry_backoff_ms is None else retry_backoff_ms
        )
        self.timeout_seconds = settings.payment_timeout_seconds if timeout_seconds is None else timeout_seconds
        self._transport = transport

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def settle(
        self,
        amount: int,
        ride_history: RideHistoryProvider,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Charge `amount`. Returns the idempotency key used.
        Raises PaymentGatewayError once max_retries attempts have failed.
        """
        idempotency_key = idempotency_key or uuid.uuid4().hex
        headers = {**self._headers, "Idempotency-Key": idempotency_key}

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    resp = await client.post(f"{self.base_url}/payments", json={"amount": amount}, headers=headers)
                    if resp.status_code == 204:
                        logger.info("Payment settled: amount=%s key=%s", amount, idempotency_key)
                        return idempotency_key
                    logger.warning(
                        "Payment gateway returned %s (attempt %d/%d)", resp.status_code, attempt, self.max_retries
                    )
                    if await self._already_settled(client, ride_history):
                        logger.info("Payment already recorded by gateway: key=%s", idempotency_key)
                        return idempotency_key
                except httpx.HTTPError as exc:
                    logger.warning("Payment gateway unreachable (attempt %d/%d): %s", attempt, self.max_retries, exc)

                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_backoff_ms / 1000)

        logger.error("Payment failed after %d attempts: key=%s", self.max_retries, idempotency_key)
        raise PaymentGatewayError("payment gateway did not accept the payment")

    async def _already_settled(self, client: httpx.AsyncClient, ride_history: RideHistoryProvider) -> bool:
        resp = await client.get(f"{self.base_url}/payments", headers=self._headers)
        if resp.status_code != 200:
            return False
        payments = resp.json()
        rides = await ride_history()
        return len(payments) == len(rides)
