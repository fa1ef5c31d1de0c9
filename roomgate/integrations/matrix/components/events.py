"""
Matrix Event Dispatcher

Delivers timeline events to subscribers. A single client callback feeds the
dispatcher; each subscription carries a declarative MessageFilter that is
evaluated once per incoming event. Events fetched by backfill are marked as
paginated so that default subscriptions skip them.
"""

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from nio import AsyncClient, Event, MatrixRoom, RoomMessagesResponse, RoomMessageText

from ....results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

EventHandler = Callable[[MatrixRoom, Event], Union[None, Awaitable[None]]]

TEXT_MESSAGE_TYPES: Tuple[type, ...] = (RoomMessageText,)


@dataclass(frozen=True)
class MessageFilter:
    """Which timeline events a subscription receives."""
    room_id: Optional[str] = None
    event_types: Tuple[type, ...] = TEXT_MESSAGE_TYPES
    include_paginated: bool = False
    ignore_own: bool = False

    def matches(
        self,
        room_id: str,
        event: Event,
        paginated: bool = False,
        own_user_id: Optional[str] = None,
    ) -> bool:
        if self.room_id is not None and room_id != self.room_id:
            return False
        if paginated and not self.include_paginated:
            return False
        if not isinstance(event, self.event_types):
            return False
        if self.ignore_own and own_user_id and getattr(event, "sender", None) == own_user_id:
            return False
        return True


class Subscription:
    """Cancellable handle for a registered event handler."""

    _ids = itertools.count(1)

    def __init__(self, dispatcher: "MatrixEventDispatcher", message_filter: MessageFilter, handler: EventHandler):
        self.id = next(self._ids)
        self.filter = message_filter
        self.handler = handler
        self._dispatcher = dispatcher
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._dispatcher._remove(self)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, room_id={self.filter.room_id!r}, active={self._active})"


class MatrixEventDispatcher:
    """Fans timeline events from one client callback out to subscriptions."""

    def __init__(self, client: AsyncClient):
        self.client = client
        self._subscriptions: List[Subscription] = []
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    def attach(self) -> None:
        """Register the dispatcher with the client; idempotent."""
        if self._attached:
            return
        self.client.add_event_callback(self._on_event, Event)
        self._attached = True
        logger.debug("MatrixEventDispatcher: Attached to client timeline events")

    def subscribe(self, message_filter: MessageFilter, handler: EventHandler) -> Subscription:
        """Register a handler receiving (room, event) for matching events."""
        self.attach()
        subscription = Subscription(self, message_filter, handler)
        self._subscriptions.append(subscription)
        logger.debug(f"MatrixEventDispatcher: Added {subscription}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"MatrixEventDispatcher: Removed {subscription}")

    async def _on_event(self, room: MatrixRoom, event: Event) -> None:
        await self.dispatch(room, event)

    async def dispatch(self, room: MatrixRoom, event: Event, paginated: bool = False) -> int:
        """Deliver one event to every matching subscription; returns deliveries."""
        own_user_id = getattr(self.client, "user_id", None)
        delivered = 0

        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            if not subscription.filter.matches(room.room_id, event, paginated, own_user_id):
                continue

            try:
                outcome = subscription.handler(room, event)
                if inspect.isawaitable(outcome):
                    await outcome
                delivered += 1
            except Exception as e:
                logger.error(
                    f"MatrixEventDispatcher: Handler for {subscription} failed on "
                    f"{getattr(event, 'event_id', 'unknown')}: {e}",
                    exc_info=True,
                )

        return delivered

    async def wait_for(self, message_filter: MessageFilter) -> Tuple[MatrixRoom, Event]:
        """Resolve with the first matching (room, event); waits indefinitely."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _resolve(room: MatrixRoom, event: Event) -> None:
            if not future.done():
                future.set_result((room, event))

        subscription = self.subscribe(message_filter, _resolve)
        try:
            return await future
        finally:
            subscription.cancel()

    async def backfill(self, room_id: str, limit: int = 10, start: Optional[str] = None) -> OperationResult:
        """Fetch older timeline events and dispatch them as paginated."""
        room = (getattr(self.client, "rooms", None) or {}).get(room_id)
        if room is None:
            return OperationResult.fail(
                ErrorKind.ROOM_NOT_FOUND, f"Room {room_id} not found", room_id=room_id
            )

        start = start or getattr(self.client, "next_batch", None) or ""
        try:
            response = await self.client.room_messages(room_id, start=start, limit=limit)
        except Exception as e:
            error_msg = f"Error fetching history of {room_id}: {e}"
            logger.error(f"MatrixEventDispatcher: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

        if not isinstance(response, RoomMessagesResponse):
            detail = getattr(response, "message", None) or str(response)
            error_msg = f"Failed to fetch history of {room_id}: {detail}"
            logger.error(f"MatrixEventDispatcher: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

        for event in response.chunk:
            await self.dispatch(room, event, paginated=True)

        logger.debug(f"MatrixEventDispatcher: Backfilled {len(response.chunk)} events in {room_id}")
        return OperationResult.ok(
            f"Fetched {len(response.chunk)} events from {room_id}",
            room_id=room_id,
            count=len(response.chunk),
            end=response.end,
        )


def body_of(event: Any) -> Optional[str]:
    """Message body of a timeline event, if it has one."""
    return getattr(event, "body", None)
