"""Tests for fire-and-forget notification dispatch."""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from conftest import RecordingNotifier
from proxybid.core import notifications
from proxybid.core.notifications import LoggingNotifier, NotificationDispatcher, WebhookNotifier
from proxybid.models.entities.auctions import Auction


class SlowNotifier(RecordingNotifier):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def _record(self, event, recipient_id, *args):
        await self.release.wait()
        await super()._record(event, recipient_id, *args)


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_dispatch_does_not_wait_for_delivery(self, make_auction):
        notifier = SlowNotifier()
        dispatcher = NotificationDispatcher(notifier)
        auction = await make_auction()

        dispatcher.dispatch("no_bids", "S", auction)
        assert dispatcher.pending == 1
        assert notifier.sent == []

        notifier.release.set()
        await dispatcher.drain()
        assert dispatcher.pending == 0
        assert notifier.events("no_bids") == [("no_bids", "S", (auction.id,))]

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, make_auction, caplog):
        dispatcher = NotificationDispatcher(RecordingNotifier(fail_on=("outbid",)))
        auction = await make_auction()

        with caplog.at_level(logging.WARNING, logger="proxybid.core.notifications"):
            dispatcher.dispatch("outbid", "A", auction, 150)
            await dispatcher.drain()

        assert "Notification 'outbid' failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self):
        dispatcher = NotificationDispatcher(RecordingNotifier())
        with pytest.raises(ValueError):
            dispatcher.dispatch("auction_exploded", "A")

    @pytest.mark.asyncio
    async def test_drain_timeout(self, make_auction, caplog):
        notifier = SlowNotifier()
        dispatcher = NotificationDispatcher(notifier)
        auction = await make_auction()
        dispatcher.dispatch("no_bids", "S", auction)

        with caplog.at_level(logging.WARNING, logger="proxybid.core.notifications"):
            await dispatcher.drain(timeout=0.01)
        assert "still pending" in caplog.text

        notifier.release.set()
        await dispatcher.drain()

    def test_default_dispatcher_logs(self):
        notifications.set_dispatcher(None)
        assert isinstance(notifications.get_dispatcher().notifier, LoggingNotifier)


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_posts_event_payload(self, make_auction):
        auction: Auction = await make_auction()
        notifier = WebhookNotifier("http://hooks.local/notify", timeout=2.0)

        with patch.object(notifications, "request", AsyncMock(return_value={})) as request:
            await notifier.auction_sold("S", auction, 160, "A")

        request.assert_awaited_once_with(
            "POST",
            "http://hooks.local/notify",
            json_data={
                "event": "auction_sold",
                "recipient_id": "S",
                "auction_id": auction.id,
                "title": "Vintage camera",
                "price": 160,
                "winner_id": "A",
            },
            timeout=2.0,
        )
