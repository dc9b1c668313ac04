#!/usr/bin/env python3
"""
Notifications: Slack/Discord webhooks for automation events.

No notifications are sent unless a webhook URL is configured. Delivery is
best-effort: network failures are logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Optional

import aiohttp

from core.config import EngineConfig, get_config

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    HIGH_MATCH_JOB = "high_match_job"
    APPLICATION_COMPLETE = "application_complete"
    APPLICATION_FAILED = "application_failed"
    CIRCUIT_BREAKER_TRIPPED = "circuit_breaker_tripped"
    SESSION_COMPLETE = "session_complete"


@dataclass
class NotificationPreferences:
    enabled: bool = True
    events: Dict[NotificationEvent, bool] = field(
        default_factory=lambda: {event: True for event in NotificationEvent}
    )


class Notifier:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        preferences: Optional[NotificationPreferences] = None,
        slack_webhook_url: Optional[str] = None,
        discord_webhook_url: Optional[str] = None,
    ):
        cfg = config or get_config()
        self.slack_webhook_url = slack_webhook_url if slack_webhook_url is not None else cfg.SLACK_WEBHOOK_URL
        self.discord_webhook_url = (
            discord_webhook_url if discord_webhook_url is not None else cfg.DISCORD_WEBHOOK_URL
        )
        self.preferences = preferences or NotificationPreferences()

    def enabled(self) -> bool:
        return self.preferences.enabled and bool(self.slack_webhook_url or self.discord_webhook_url)

    def is_event_enabled(self, event: NotificationEvent) -> bool:
        return self.enabled() and self.preferences.events.get(event, True)

    def update_preferences(self, enabled: Optional[bool] = None, events: Optional[Dict[NotificationEvent, bool]] = None):
        if enabled is not None:
            self.preferences.enabled = enabled
        if events:
            self.preferences.events.update(events)

    async def notify_high_match_job(self, title: str, company: str, match_score: Optional[float] = None):
        score = f" ({round(match_score * 100)}% match)" if match_score is not None else ""
        await self._send(NotificationEvent.HIGH_MATCH_JOB, "High Match Job Found", f"{title} @ {company}{score}")

    async def notify_application_complete(self, title: str, company: str):
        await self._send(
            NotificationEvent.APPLICATION_COMPLETE,
            "Application Submitted",
            f"Applied to {title} @ {company}",
        )

    async def notify_application_failed(self, title: str, company: str, reason: str):
        await self._send(
            NotificationEvent.APPLICATION_FAILED,
            "Application Failed",
            f"{title} @ {company}: {reason}",
        )

    async def notify_circuit_breaker_tripped(self):
        await self._send(
            NotificationEvent.CIRCUIT_BREAKER_TRIPPED,
            "Automation Paused",
            "Too many consecutive failures, automation paused automatically.",
        )

    async def notify_session_complete(self, jobs_extracted: int, jobs_analyzed: int, applications_submitted: int):
        await self._send(
            NotificationEvent.SESSION_COMPLETE,
            "Session Complete",
            f"Extracted: {jobs_extracted}, Analyzed: {jobs_analyzed}, Applied: {applications_submitted}",
        )

    async def _send(self, event: NotificationEvent, title: str, body: str):
        if not self.is_event_enabled(event):
            return

        text = f"*{title}*\n{body}"
        await asyncio.gather(
            self._post_json(self.slack_webhook_url, {"text": text}),
            self._post_json(self.discord_webhook_url, {"content": text}),
        )
        logger.info(f"Notification sent: {title}: {body}")

    async def _post_json(self, url: str, payload: dict) -> bool:
        if not url:
            return False
        try:
            timeout = aiohttp.ClientTimeout(total=12)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload) as resp:
                    if 200 <= resp.status < 300:
                        return True
                    text = await resp.text()
                    logger.warning(f"Webhook failed ({resp.status}): {text[:200]}")
                    return False
        except Exception as e:
            logger.warning(f"Webhook error: {e}")
            return False
