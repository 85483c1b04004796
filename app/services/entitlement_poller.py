"""
Entitlement Poller
Reads the entitlement endpoint after a checkout redirect until the webhook has landed
"""

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

# Matches the post-checkout page: a few quick reads, then offer a manual continue
DEFAULT_ATTEMPTS = 8
DEFAULT_INTERVAL_SECONDS = 0.6
ENTITLEMENT_PATH = "/api/billing/entitlement"


class PollOutcome(str, enum.Enum):
    PAID = "paid"
    NOT_YET = "notyet"


class EntitlementPoller:
    """Bounded, fixed-interval polling of the current user's plan"""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        attempts: int = DEFAULT_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.attempts = attempts
        self.interval = interval
        self._transport = transport
        self._sleep = sleep

    async def _read_plan(self, client: httpx.AsyncClient) -> Optional[str]:
        try:
            response = await client.get(
                ENTITLEMENT_PATH,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Entitlement read failed: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Entitlement read returned HTTP {response.status_code}")
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Entitlement read returned a non-JSON body")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"Entitlement read returned {type(payload).__name__}, expected an object")
            return None
        return payload.get("plan")

    async def wait_for_paid(self) -> PollOutcome:
        """PAID as soon as the plan reads "paid"; NOT_YET once attempts run out"""
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=10.0, transport=self._transport
        ) as client:
            for attempt in range(1, self.attempts + 1):
                if await self._read_plan(client) == "paid":
                    logger.info(f"✅ Entitlement confirmed after {attempt} read(s)")
                    return PollOutcome.PAID
                if attempt < self.attempts:
                    await self._sleep(self.interval)

        logger.info(f"ℹ️ Entitlement not yet paid after {self.attempts} reads")
        return PollOutcome.NOT_YET
