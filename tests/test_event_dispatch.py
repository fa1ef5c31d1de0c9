"""
Tests for message subscriptions, single-shot waits and backfill.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from nio import Event, RoomMessagesError, RoomMessagesResponse, RoomMessageNotice

from roomgate.integrations.matrix.components.events import MessageFilter
from roomgate.results import ErrorKind
from tests.factories import (
    OTHER_ROOM_ID,
    OWN_USER,
    ROOM_ID,
    NoticeEventFactory,
    RoomFactory,
    TextMessageEventFactory,
)


@pytest.fixture
def other_room(mock_client):
    room = RoomFactory(room_id=OTHER_ROOM_ID)
    mock_client.rooms[OTHER_ROOM_ID] = room
    return room


class TestOnMessage:
    """on_message dispatch policy."""

    @pytest.mark.asyncio
    async def test_qualifying_event_delivered_once(self, facade, joined_room):
        received = []
        facade.on_message(ROOM_ID, received.append)

        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(body="Ahoj lidi!"))

        assert received == ["Ahoj lidi!"]

    @pytest.mark.asyncio
    async def test_skips_wrong_room(self, facade, joined_room, other_room):
        callback = MagicMock()
        facade.on_message(ROOM_ID, callback)

        await facade.dispatcher.dispatch(other_room, TextMessageEventFactory())

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_skips_paginated_events(self, facade, joined_room):
        callback = MagicMock()
        facade.on_message(ROOM_ID, callback)

        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(), paginated=True)

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_skips_non_text_events(self, facade, joined_room):
        callback = MagicMock()
        facade.on_message(ROOM_ID, callback)

        await facade.dispatcher.dispatch(joined_room, NoticeEventFactory())

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_each_event_delivered_in_order(self, facade, joined_room):
        received = []
        facade.on_message(ROOM_ID, received.append)

        for body in ("one", "two", "three"):
            await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(body=body))

        assert received == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_async_callback_awaited(self, facade, joined_room):
        callback = AsyncMock()
        facade.on_message(ROOM_ID, callback)

        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(body="async"))

        callback.assert_awaited_once_with("async")

    @pytest.mark.asyncio
    async def test_cancelled_subscription_receives_nothing(self, facade, joined_room):
        callback = MagicMock()
        subscription = facade.on_message(ROOM_ID, callback)

        subscription.cancel()
        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory())

        assert subscription.active is False
        callback.assert_not_called()
        assert facade.dispatcher.subscriptions == []

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self, facade, joined_room):
        received = []
        facade.on_message(ROOM_ID, MagicMock(side_effect=RuntimeError("boom")))
        facade.on_message(ROOM_ID, received.append)

        delivered = await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(body="still here"))

        assert received == ["still here"]
        assert delivered == 1

    @pytest.mark.asyncio
    async def test_opt_in_to_paginated_and_notices(self, facade, joined_room):
        received = []
        facade.on_message(
            ROOM_ID,
            received.append,
            event_types=(RoomMessageNotice,),
            include_paginated=True,
        )

        await facade.dispatcher.dispatch(joined_room, NoticeEventFactory(body="old notice"), paginated=True)

        assert received == ["old notice"]

    @pytest.mark.asyncio
    async def test_ignore_own_messages(self, facade, joined_room):
        callback = MagicMock()
        facade.on_message(ROOM_ID, callback, ignore_own=True)

        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(sender=OWN_USER))

        callback.assert_not_called()


class TestAttach:
    """Client callback registration."""

    def test_first_subscription_attaches_once(self, facade, mock_client):
        facade.on_message(ROOM_ID, MagicMock())
        facade.on_message(OTHER_ROOM_ID, MagicMock())
        facade.attach()

        mock_client.add_event_callback.assert_called_once()
        callback, event_filter = mock_client.add_event_callback.call_args.args
        assert event_filter is Event
        assert facade.dispatcher.attached is True

    @pytest.mark.asyncio
    async def test_client_callback_feeds_subscriptions(self, facade, mock_client, joined_room):
        received = []
        facade.on_message(ROOM_ID, received.append)
        client_callback = mock_client.add_event_callback.call_args.args[0]

        await client_callback(joined_room, TextMessageEventFactory(body="from sync"))

        assert received == ["from sync"]


class TestMessageFilter:
    """Declarative filter evaluation."""

    def test_any_room_when_unset(self):
        event = TextMessageEventFactory()
        assert MessageFilter().matches(ROOM_ID, event) is True
        assert MessageFilter().matches(OTHER_ROOM_ID, event) is True

    def test_room_mismatch(self):
        assert MessageFilter(room_id=ROOM_ID).matches(OTHER_ROOM_ID, TextMessageEventFactory()) is False


class TestNextMessage:
    """Single-shot wait."""

    @pytest.mark.asyncio
    async def test_resolves_with_first_qualifying_body(self, facade, joined_room, other_room):
        waiter = asyncio.create_task(facade.next_message(ROOM_ID))
        await asyncio.sleep(0)

        await facade.dispatcher.dispatch(other_room, TextMessageEventFactory(body="elsewhere"))
        await facade.dispatcher.dispatch(joined_room, NoticeEventFactory(body="notice"))
        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(body="first"))
        await facade.dispatcher.dispatch(joined_room, TextMessageEventFactory(body="second"))

        assert await asyncio.wait_for(waiter, timeout=1) == "first"
        assert facade.dispatcher.subscriptions == []

    @pytest.mark.asyncio
    async def test_waits_without_timeout(self, facade):
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(facade.next_message(ROOM_ID), timeout=0.05)
        assert facade.dispatcher.subscriptions == []


class TestBackfill:
    """History fetch delivered as paginated events."""

    @pytest.mark.asyncio
    async def test_backfilled_events_are_paginated(self, facade, mock_client, joined_room):
        live, history = [], []
        facade.on_message(ROOM_ID, live.append)
        facade.on_message(ROOM_ID, history.append, include_paginated=True)
        mock_client.room_messages.return_value = RoomMessagesResponse(
            room_id=ROOM_ID,
            chunk=[TextMessageEventFactory(body="old 1"), TextMessageEventFactory(body="old 2")],
            start="s_batch_1",
            end="t_prev",
        )

        result = await facade.backfill(ROOM_ID, limit=2)

        assert result.success is True
        assert result.data["count"] == 2
        assert live == []
        assert history == ["old 1", "old 2"]
        mock_client.room_messages.assert_awaited_once_with(ROOM_ID, start="s_batch_1", limit=2)

    @pytest.mark.asyncio
    async def test_pages_further_back_from_previous_end(self, facade, mock_client, joined_room):
        mock_client.room_messages.side_effect = [
            RoomMessagesResponse(
                room_id=ROOM_ID, chunk=[TextMessageEventFactory()], start="s_batch_1", end="t_prev"
            ),
            RoomMessagesResponse(room_id=ROOM_ID, chunk=[], start="t_prev", end="t_older"),
        ]

        first = await facade.backfill(ROOM_ID, limit=1)
        second = await facade.backfill(ROOM_ID, limit=1, start=first.data["end"])

        assert second.data["end"] == "t_older"
        mock_client.room_messages.assert_awaited_with(ROOM_ID, start="t_prev", limit=1)

    @pytest.mark.asyncio
    async def test_unknown_room(self, facade, mock_client):
        result = await facade.backfill("!missing:example.org")

        assert result.kind is ErrorKind.ROOM_NOT_FOUND
        mock_client.room_messages.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_response(self, facade, mock_client, joined_room):
        mock_client.room_messages.return_value = RoomMessagesError("M_FORBIDDEN")

        result = await facade.backfill(ROOM_ID)

        assert result.kind is ErrorKind.TRANSPORT_ERROR
