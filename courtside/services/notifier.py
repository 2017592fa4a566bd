"""Completion notifications to the booking/app backend."""
from typing import Optional
import logging

import httpx

logger = logging.getLogger(__name__)


class CompletionNotifier:
    """POST a small JSON document to a webhook when a recording completes.

    Delivery failures are logged and reported as ``False``; they never
    change the recording's status.
    """

    def __init__(self, webhook_url: str = "", timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def recording_completed(self, payload: dict) -> bool:
        if not self.enabled:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to notify completion of {payload.get('recording_id')}: {e}")
            return False
        logger.info(f"Completion notified for {payload.get('recording_id')}")
        return True
