"""
Escalation External Service Integrations
========================================

Outbound delivery of escalation notices:
- Slack webhook per recipient tier (admin / superadmin)
- Circuit breaker so an unreachable webhook does not slow every sweep
"""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from src.config import NotificationTier, Settings, Urgency
from src.core import NotificationFailedException
from src.escalation.application import INotificationPort
from src.escalation.domain import EscalationNotice
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        monotonic=time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._monotonic = monotonic
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._monotonic()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


_URGENCY_HEADERS = {
    Urgency.MODERATE: ("⚠️", "SLA Breach - Escalation"),
    Urgency.HIGH: ("🚨", "SLA Breach - High Urgency Escalation"),
    Urgency.CRITICAL: ("🔥", "CRITICAL Escalation - Immediate Action Required"),
}


class SlackEscalationNotifier(INotificationPort):
    """
    Slack webhook notifier with one webhook per recipient tier.

    Handles sending structured alerts with:
    - Circuit breaker per tier to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling

    A notice counts as delivered only when every tier it names was
    delivered. Nothing is raised to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        self._settings = settings
        self._webhooks: Dict[str, Optional[str]] = {
            NotificationTier.ADMIN: settings.slack_admin_webhook_url,
            NotificationTier.SUPERADMIN: settings.slack_superadmin_webhook_url,
        }
        self._breakers: Dict[str, CircuitBreaker] = {
            tier: CircuitBreaker(failure_threshold=5, recovery_timeout=60) for tier in self._webhooks
        }
        self._http_client = http_client
        self._max_retries = max_retries
        self._backoff_base = backoff_base

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._settings.slack_timeout_seconds)
        return self._http_client

    def build_message(self, notice: EscalationNotice, tier: str) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        emoji, header_text = _URGENCY_HEADERS.get(notice.urgency, _URGENCY_HEADERS[Urgency.MODERATE])
        complaint_url = f"{self._settings.portal_base_url.rstrip('/')}/admin/complaints/{notice.complaint_id}"
        reporter = notice.reporter_email or "Anonymous"

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{emoji} {header_text}", "emoji": True}
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Complaint:*\n<{complaint_url}|#{notice.complaint_id}>"},
                    {"type": "mrkdwn", "text": f"*Priority:*\n{notice.priority.upper()}"},
                    {"type": "mrkdwn", "text": f"*Category:*\n{notice.category or '-'}"},
                    {"type": "mrkdwn", "text": f"*Status:*\n{notice.status}"},
                    {"type": "mrkdwn", "text": f"*Escalation Level:*\n{notice.level}"},
                    {"type": "mrkdwn", "text": f"*Overdue:*\n{notice.hours_overdue}h"},
                ]
            },
        ]
        if notice.description:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Description:*\n{notice.description[:500]}"}
            })
        blocks.append({
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"{notice.reason} | Reporter: {reporter} | Tier: {tier}"}
            ]
        })

        return {
            "text": f"{header_text}: complaint #{notice.complaint_id} (level {notice.level})",
            "blocks": blocks,
        }

    async def send(self, notice: EscalationNotice) -> bool:
        results = [await self._send_to_tier(notice, tier) for tier in notice.tiers]
        return bool(results) and all(results)

    async def _send_to_tier(self, notice: EscalationNotice, tier: str) -> bool:
        webhook_url = self._webhooks.get(tier)
        if not webhook_url:
            logger.warning(
                "No webhook configured for tier, skipping notification",
                extra={"tier": tier, "complaint_id": notice.complaint_id}
            )
            return False

        breaker = self._breakers[tier]
        if not breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"tier": tier, "complaint_id": notice.complaint_id}
            )
            return False

        message = self.build_message(notice, tier)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(webhook_url, json=message)

                if response.status_code == 200:
                    breaker.record_success()
                    logger.info(
                        "Escalation notification sent",
                        extra={
                            "complaint_id": notice.complaint_id,
                            "tier": tier,
                            "urgency": notice.urgency,
                            "level": notice.level,
                        }
                    )
                    return True

                raise NotificationFailedException(
                    f"Slack webhook returned {response.status_code}",
                    {"status_code": response.status_code, "tier": tier}
                )
            except (httpx.HTTPError, NotificationFailedException) as e:
                logger.error(
                    "Slack notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "tier": tier,
                        "complaint_id": notice.complaint_id
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
