"""
Matrix Room Operations

Handles room operations that change membership: inviting users, joining
rooms, accepting invites and creating private encrypted rooms.
"""

import logging
from typing import Any, Dict, Iterable, List

from nio import (
    AsyncClient,
    InviteMemberEvent,
    JoinResponse,
    MatrixRoom,
    RoomCreateResponse,
    RoomInviteResponse,
    RoomPreset,
    RoomVisibility,
)

from ....results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

MEGOLM_ALGORITHM = "m.megolm.v1.aes-sha2"


def private_room_initial_state() -> List[Dict[str, Any]]:
    """Initial state of a private room: guests may join, Megolm encryption on."""
    return [
        {
            "type": "m.room.guest_access",
            "state_key": "",
            "content": {"guest_access": "can_join"},
        },
        {
            "type": "m.room.encryption",
            "state_key": "",
            "content": {"algorithm": MEGOLM_ALGORITHM},
        },
    ]


def _describe(response: Any) -> str:
    return getattr(response, "message", None) or str(response)


class MatrixRoomOperations:
    """Handles Matrix room operations."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def invite_user(self, room_id: str, user_id: str) -> OperationResult:
        """Send an invite; no permission checks happen here."""
        try:
            response = await self.client.room_invite(room_id, user_id)
        except Exception as e:
            error_msg = f"Error inviting {user_id} to {room_id}: {e}"
            logger.error(f"MatrixRoomOps: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

        if isinstance(response, RoomInviteResponse):
            logger.info(f"MatrixRoomOps: Invited {user_id} to {room_id}")
            return OperationResult.ok(
                f"Invited {user_id} to {room_id}", room_id=room_id, user_id=user_id
            )

        error_msg = f"Failed to invite {user_id} to {room_id}: {_describe(response)}"
        logger.error(f"MatrixRoomOps: {error_msg}")
        return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

    async def join_room(self, room_identifier: str) -> OperationResult:
        """Join a room by ID or alias."""
        logger.debug(f"MatrixRoomOps: Attempting to join room: {room_identifier}")
        try:
            response = await self.client.join(room_identifier)
        except Exception as e:
            error_msg = f"Error joining room {room_identifier}: {e}"
            logger.error(f"MatrixRoomOps: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg)

        if isinstance(response, JoinResponse):
            logger.info(f"MatrixRoomOps: Successfully joined room {response.room_id}")
            return OperationResult.ok(
                f"Joined {response.room_id}",
                room_id=response.room_id,
                room_identifier=room_identifier,
            )

        error_msg = f"Failed to join room {room_identifier}: {_describe(response)}"
        logger.error(f"MatrixRoomOps: {error_msg}")
        return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg)

    async def create_private_encrypted_room(
        self, name: str, invite: Iterable[str] = ()
    ) -> OperationResult:
        """Create a private chat room with Megolm encryption enabled from the start."""
        try:
            response = await self.client.room_create(
                visibility=RoomVisibility.private,
                name=name,
                preset=RoomPreset.private_chat,
                invite=list(invite),
                initial_state=private_room_initial_state(),
            )
        except Exception as e:
            error_msg = f"Error creating room '{name}': {e}"
            logger.error(f"MatrixRoomOps: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg)

        if isinstance(response, RoomCreateResponse):
            logger.info(f"MatrixRoomOps: Created room {response.room_id}")
            return OperationResult.ok(
                f"Created room {response.room_id}", room_id=response.room_id, name=name
            )

        error_msg = f"Failed to create room '{name}': {_describe(response)}"
        logger.error(f"MatrixRoomOps: {error_msg}")
        return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg)

    async def handle_invite(self, room: MatrixRoom, event: InviteMemberEvent) -> None:
        """Auto-join rooms the own user is invited to."""
        if event.membership != "invite" or event.state_key != self.client.user_id:
            return

        logger.info(f"MatrixRoomOps: Received invite to {room.room_id} from {event.sender}")
        result = await self.join_room(room.room_id)
        if result.success:
            logger.info(f"MatrixRoomOps: Auto-joined {room.room_id}")
