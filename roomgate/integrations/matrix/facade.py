"""
Matrix Messaging Facade

Permission-aware helpers over an injected Matrix client. The facade keeps no
room state of its own: membership, encryption flags and power levels are
read from the client on every call, and sends, invites and joins are
forwarded to it.

Outcomes of membership, permission, encryption-flag and transport checks are
returned as OperationResult values. Exceptions are raised only when no
client has been injected and when listing members of an unknown room.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from nio import AsyncClient, Event, InviteMemberEvent, MatrixRoom, MegolmEvent

from ...config import DEFAULT_INVITE_POWER_LEVEL
from ...exceptions import ClientNotSetError
from ...results import ErrorKind, OperationResult
from .components.encryption import MatrixEncryptionHandler
from .components.events import (
    TEXT_MESSAGE_TYPES,
    EventHandler,
    MatrixEventDispatcher,
    MessageFilter,
    Subscription,
    body_of,
)
from .components.messages import MatrixMessageOperations
from .components.room_ops import MatrixRoomOperations
from .components.rooms import MatrixRoomManager, MembershipStatus

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], Union[None, Awaitable[None]]]


class MatrixMessagingFacade:
    """Membership-gated messaging over a Matrix client handle."""

    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        default_invite_power_level: int = DEFAULT_INVITE_POWER_LEVEL,
    ):
        self.default_invite_power_level = default_invite_power_level
        self.client: Optional[AsyncClient] = None
        self.room_manager: Optional[MatrixRoomManager] = None
        self.message_ops: Optional[MatrixMessageOperations] = None
        self.room_ops: Optional[MatrixRoomOperations] = None
        self.dispatcher: Optional[MatrixEventDispatcher] = None
        self.encryption_handler: Optional[MatrixEncryptionHandler] = None
        self._auto_join_enabled = False
        self._watching_undecryptable = False
        if client is not None:
            self.set_client(client)

    def set_client(self, client: AsyncClient) -> None:
        """Inject the client handle and build the components around it."""
        self.client = client
        self.room_manager = MatrixRoomManager(client)
        self.message_ops = MatrixMessageOperations(client)
        self.room_ops = MatrixRoomOperations(client)
        self.dispatcher = MatrixEventDispatcher(client)
        self.encryption_handler = MatrixEncryptionHandler(client)
        self._auto_join_enabled = False
        self._watching_undecryptable = False
        logger.debug(f"MatrixFacade: Client set for {getattr(client, 'user_id', 'unknown')}")

    def _require_client(self, operation: str) -> None:
        if self.client is None:
            raise ClientNotSetError(operation)

    # Membership

    def get_membership(self, room_id: str) -> MembershipStatus:
        self._require_client("get_membership")
        return self.room_manager.get_membership(room_id)

    def is_joined(self, room_id: str) -> bool:
        """True iff the own user is joined to the room; unknown rooms are False."""
        return self.get_membership(room_id) is MembershipStatus.JOINED

    def get_room_member_ids(self, room_id: str) -> List[str]:
        """
        Joined member ids of a room, in the order the client holds them.

        Raises:
            RoomNotFoundError: the client has no record of the room.
        """
        self._require_client("get_room_member_ids")
        return self.room_manager.get_joined_member_ids(room_id)

    def get_joined_members_by_room(self) -> Dict[str, List[str]]:
        """Joined member display names for every room the client knows."""
        self._require_client("get_joined_members_by_room")
        return {
            room_id: self.room_manager.get_joined_member_names(room)
            for room_id, room in (self.client.rooms or {}).items()
        }

    # Sending

    def _not_joined(self, room_id: str) -> OperationResult:
        error_msg = f"Not joined to room {room_id}"
        logger.warning(f"MatrixFacade: {error_msg}")
        return OperationResult.fail(ErrorKind.MEMBERSHIP_DENIED, error_msg, room_id=room_id)

    async def send_plain_message(self, room_id: str, message: Any) -> OperationResult:
        """Send a JSON-serializable payload as a text message to a joined room."""
        self._require_client("send_plain_message")
        if not self.is_joined(room_id):
            return self._not_joined(room_id)
        return await self.message_ops.send_message(room_id, message)

    async def send_encrypted_message(self, room_id: str, message: Any) -> OperationResult:
        """
        Send a payload to a joined room that has encryption enabled.

        The client encrypts the event itself once the room is marked
        encrypted; this only refuses rooms where it is not.
        """
        self._require_client("send_encrypted_message")
        if not self.is_joined(room_id):
            return self._not_joined(room_id)
        if not self.room_manager.is_encrypted(room_id):
            error_msg = f"Room {room_id} does not have encryption enabled"
            logger.warning(f"MatrixFacade: {error_msg}")
            return OperationResult.fail(ErrorKind.ROOM_NOT_ENCRYPTED, error_msg, room_id=room_id)
        return await self.message_ops.send_message(room_id, message)

    # Receiving

    def attach(self) -> None:
        """Install the client callback feeding the dispatcher."""
        self._require_client("attach")
        self.dispatcher.attach()

    def on_event(self, message_filter: MessageFilter, handler: EventHandler) -> Subscription:
        """Subscribe a (room, event) handler with an explicit filter."""
        self._require_client("on_event")
        return self.dispatcher.subscribe(message_filter, handler)

    def on_message(
        self,
        room_id: str,
        callback: MessageCallback,
        event_types: Tuple[type, ...] = TEXT_MESSAGE_TYPES,
        include_paginated: bool = False,
        ignore_own: bool = False,
    ) -> Subscription:
        """
        Call ``callback(body)`` once for every text message arriving in a room.

        Events from other rooms, backfilled events and non-text events are
        skipped. The returned subscription can be cancelled.
        """
        message_filter = MessageFilter(
            room_id=room_id,
            event_types=event_types,
            include_paginated=include_paginated,
            ignore_own=ignore_own,
        )

        def _deliver(room: MatrixRoom, event: Event):
            return callback(body_of(event))

        return self.on_event(message_filter, _deliver)

    async def next_message(self, room_id: str) -> str:
        """Wait for the next text message body in a room; no timeout."""
        self._require_client("next_message")
        _, event = await self.dispatcher.wait_for(MessageFilter(room_id=room_id))
        return body_of(event)

    async def backfill(
        self, room_id: str, limit: int = 10, start: Optional[str] = None
    ) -> OperationResult:
        """
        Fetch older events of a room; subscribers see them as paginated.

        Pass the previous result's ``data["end"]`` as ``start`` to page further back.
        """
        self._require_client("backfill")
        return await self.dispatcher.backfill(room_id, limit=limit, start=start)

    # Permissions and room management

    async def get_my_power_level(
        self, room_id: str, power_levels: Optional[Dict[str, Any]] = None
    ) -> int:
        """Own power level in a room; 0 when the room sets none for us."""
        self._require_client("get_my_power_level")
        return await self.room_manager.get_user_power_level(room_id, power_levels)

    async def invite_user(self, room_id: str, user_id: str) -> OperationResult:
        """Invite a user if the own power level meets the room's invite threshold."""
        self._require_client("invite_user")
        try:
            power_levels = await self.room_manager.fetch_power_levels(room_id)
            my_level = await self.get_my_power_level(room_id, power_levels)
        except Exception as e:
            error_msg = f"Error checking invite permission in {room_id}: {e}"
            logger.error(f"MatrixFacade: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

        required = self.room_manager.invite_threshold(power_levels, self.default_invite_power_level)
        if my_level < required:
            error_msg = (
                f"Permission denied: inviting to {room_id} requires power level "
                f"{required}, have {my_level}"
            )
            logger.warning(f"MatrixFacade: {error_msg}")
            return OperationResult.fail(
                ErrorKind.PERMISSION_DENIED,
                error_msg,
                room_id=room_id,
                required_level=required,
                power_level=my_level,
            )

        return await self.room_ops.invite_user(room_id, user_id)

    async def join_room(self, room_identifier: str) -> OperationResult:
        self._require_client("join_room")
        return await self.room_ops.join_room(room_identifier)

    async def create_room(self, name: str, invite: Tuple[str, ...] = ()) -> OperationResult:
        """Create a private, end-to-end encrypted room."""
        self._require_client("create_room")
        return await self.room_ops.create_private_encrypted_room(name, invite)

    def enable_auto_join(self) -> None:
        """Join every room the own user gets invited to."""
        self._require_client("enable_auto_join")
        if self._auto_join_enabled:
            return
        self.client.add_event_callback(self.room_ops.handle_invite, InviteMemberEvent)
        self._auto_join_enabled = True
        logger.info("MatrixFacade: Auto-join enabled")

    def watch_undecryptable(self) -> None:
        """Request missing room keys for events that fail to decrypt."""
        self._require_client("watch_undecryptable")
        if self._watching_undecryptable:
            return
        self.client.add_event_callback(self.encryption_handler.handle_decryption_failure, MegolmEvent)
        self._watching_undecryptable = True
