"""
Tests for webhook notifications. No request ever leaves the process.
"""

import pytest
from unittest.mock import AsyncMock

from monitoring.notifications import NotificationEvent, NotificationPreferences, Notifier


SLACK_URL = "https://hooks.slack.example/T000/B000"
DISCORD_URL = "https://discord.example/api/webhooks/1/abc"


@pytest.fixture
def notifier(test_config):
    n = Notifier(test_config, slack_webhook_url=SLACK_URL)
    n._post_json = AsyncMock(return_value=True)
    return n


class TestNotifier:

    def test_disabled_without_webhooks(self, test_config):
        assert Notifier(test_config).enabled() is False

    @pytest.mark.asyncio
    async def test_nothing_sent_when_disabled(self, test_config):
        n = Notifier(test_config)
        n._post_json = AsyncMock()
        await n.notify_session_complete(7, 5, 0)
        n._post_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_high_match_message(self, notifier):
        await notifier.notify_high_match_job("Python Developer", "Acme", 0.87)
        notifier._post_json.assert_any_await(
            SLACK_URL, {"text": "*High Match Job Found*\nPython Developer @ Acme (87% match)"}
        )

    @pytest.mark.asyncio
    async def test_posts_to_both_webhooks(self, test_config):
        n = Notifier(test_config, slack_webhook_url=SLACK_URL, discord_webhook_url=DISCORD_URL)
        n._post_json = AsyncMock(return_value=True)

        await n.notify_circuit_breaker_tripped()

        urls = [c.args[0] for c in n._post_json.await_args_list]
        assert urls == [SLACK_URL, DISCORD_URL]
        assert "content" in n._post_json.await_args_list[1].args[1]

    @pytest.mark.asyncio
    async def test_event_preference_respected(self, notifier):
        notifier.update_preferences(events={NotificationEvent.APPLICATION_FAILED: False})

        await notifier.notify_application_failed("Backend Engineer", "Acme", "Validation error")
        notifier._post_json.assert_not_awaited()

        await notifier.notify_application_complete("Backend Engineer", "Acme")
        assert notifier._post_json.await_count == 2

    @pytest.mark.asyncio
    async def test_globally_disabled(self, test_config):
        n = Notifier(test_config, preferences=NotificationPreferences(enabled=False), slack_webhook_url=SLACK_URL)
        assert n.enabled() is False

    @pytest.mark.asyncio
    async def test_empty_url_is_not_posted(self, test_config):
        assert await Notifier(test_config)._post_json("", {"text": "x"}) is False
