"""
Analytics Service - server-side PostHog events.
Analytics must never break fulfillment, so every failure is logged and swallowed.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from fulfillment.config import settings

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Thin client for the PostHog capture API."""

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.posthog_api_key
        self.host = (host or settings.posthog_host).rstrip("/")

    async def _capture(self, event: str, distinct_id: str, properties: Dict[str, Any]) -> bool:
        if not self.api_key:
            logger.debug(f"PostHog not configured, dropping event {event}")
            return False

        payload = {
            "api_key": self.api_key,
            "event": event,
            "distinct_id": distinct_id,
            "properties": properties,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.host}/capture/",
                    json=payload,
                    timeout=5.0,
                )
            if response.status_code != 200:
                logger.warning(f"PostHog error {response.status_code}: {response.text}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.warning(f"PostHog request failed for {event}: {e}")
            return False

    async def track(self, event: str, distinct_id: str, properties: Dict[str, Any]) -> bool:
        """Track a business event (webhook_received, ticket_purchased, ...)."""
        return await self._capture(event, distinct_id, properties)

    async def error(
        self,
        distinct_id: str,
        message: str,
        *,
        type: str = "system",
        severity: str = "medium",
        code: Optional[str] = None,
        **context: Any,
    ) -> bool:
        """Emit a structured error event."""
        properties = {
            "error_message": message,
            "error_type": type,
            "error_severity": severity,
            "error_code": code,
            **context,
        }
        return await self._capture("error_occurred", distinct_id, properties)

    async def capture_exception(self, exc: BaseException, distinct_id: str, **context: Any) -> bool:
        """Report an unexpected exception with its stack trace."""
        properties = {
            "$exception_type": type(exc).__name__,
            "$exception_message": str(exc),
            "$exception_stack_trace_raw": "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            ),
            **context,
        }
        return await self._capture("$exception", distinct_id, properties)
