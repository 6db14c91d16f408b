"""
Workflow-automation webhook client.

Forwards pair-analysis requests to an automation workflow and reports
the outcome as a result object instead of raising.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from ..core.server_time import format_utc

logger = logging.getLogger(__name__)

WEBHOOK_SOURCE = "ForexRadar7"


@dataclass(frozen=True)
class WebhookResponse:
    success: bool
    data: Any = None
    error: Optional[str] = None


class WebhookService:
    """Sends analyze-pair actions to a workflow webhook."""

    def __init__(self, url: str, timeout: float = 30.0):
        if not url or not url.strip():
            raise ValueError("url is required and cannot be empty")
        self.url = url
        self.timeout = timeout

    def build_payload(
        self,
        pair_name: str,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        payload = {"action": "analyze_pair", "pairName": pair_name}
        # Unknown users are left out rather than sent as null
        if user_id is not None:
            payload["userId"] = user_id
        if user_email is not None:
            payload["userEmail"] = user_email
        payload["timestamp"] = format_utc(now or datetime.now(timezone.utc))
        payload["source"] = WEBHOOK_SOURCE
        return payload

    def send_analysis_request(
        self,
        pair_name: str,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WebhookResponse:
        """POST an analyze-pair action to the webhook.

        HTTP and network failures are reported in the returned
        WebhookResponse, never raised.

        Args:
            pair_name: Trading pair to analyze
            user_id: Requesting user, if known
            user_email: Requesting user's email, if known
            now: Timestamp to send (defaults to now)

        Returns:
            WebhookResponse with the decoded reply on success
        """
        payload = self.build_payload(pair_name, user_id, user_email, now)
        logger.info("Sending analysis request to webhook for %s", pair_name)
        try:
            response = httpx.post(self.url, json=payload, timeout=self.timeout)
            if response.status_code >= 400:
                raise httpx.HTTPStatusError(
                    f"Webhook request failed: {response.status_code}",
                    request=response.request,
                    response=response,
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Webhook request failed: %s", e)
            return WebhookResponse(success=False, error=str(e) or "Unknown webhook error")

        logger.info("Webhook response received")
        return WebhookResponse(success=True, data=data)
