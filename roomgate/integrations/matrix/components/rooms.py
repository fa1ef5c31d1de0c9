"""
Matrix Room Manager

Derives membership, joined members, encryption state and power levels from
the client's room records. Nothing here is cached; every lookup reads the
client's current state.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from nio import AsyncClient, MatrixRoom, RoomGetStateEventError

from ....config import DEFAULT_INVITE_POWER_LEVEL
from ....exceptions import MatrixTransportError, RoomNotFoundError

logger = logging.getLogger(__name__)

POWER_LEVELS_EVENT = "m.room.power_levels"


class MembershipStatus(Enum):
    """The own user's relationship to a room."""
    NOT_FOUND = "not_found"
    INVITED = "invited"
    JOINED = "joined"
    LEFT = "left"


class MatrixRoomManager:
    """Reads room state from a Matrix client."""

    def __init__(self, client: AsyncClient):
        self.client = client

    @property
    def user_id(self) -> str:
        return self.client.user_id

    def get_room(self, room_id: str) -> Optional[MatrixRoom]:
        """Return the client's record of a joined or left room, if any."""
        rooms = getattr(self.client, "rooms", None) or {}
        return rooms.get(room_id)

    def get_membership(self, room_id: str) -> MembershipStatus:
        """Derive the own user's membership in a room."""
        room = self.get_room(room_id)
        if room is None:
            invited_rooms = getattr(self.client, "invited_rooms", None) or {}
            if room_id in invited_rooms:
                return MembershipStatus.INVITED
            return MembershipStatus.NOT_FOUND

        if self.user_id in (getattr(room, "invited_users", None) or {}):
            return MembershipStatus.INVITED
        if self.user_id in room.users:
            return MembershipStatus.JOINED
        return MembershipStatus.LEFT

    def get_joined_member_ids(self, room_id: str) -> List[str]:
        """Return joined member ids in the order the client holds them."""
        room = self.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)

        invited = getattr(room, "invited_users", None) or {}
        return [user_id for user_id in room.users if user_id not in invited]

    def get_joined_member_names(self, room: MatrixRoom) -> List[str]:
        """Display names of the joined members of a room."""
        invited = getattr(room, "invited_users", None) or {}
        names = []
        for user_id, user in room.users.items():
            if user_id in invited:
                continue
            names.append(getattr(user, "display_name", None) or user_id)
        return names

    def is_encrypted(self, room_id: str) -> bool:
        room = self.get_room(room_id)
        return bool(room is not None and getattr(room, "encrypted", False))

    async def fetch_power_levels(self, room_id: str) -> Dict[str, Any]:
        """Fetch the room's m.room.power_levels content from the homeserver."""
        response = await self.client.room_get_state_event(room_id, POWER_LEVELS_EVENT, "")
        if isinstance(response, RoomGetStateEventError):
            raise MatrixTransportError(f"Fetching power levels of {room_id}", response)
        content = dict(getattr(response, "content", None) or {})
        logger.debug(f"MatrixRoomManager: Power levels for {room_id}: {content}")
        return content

    async def get_user_power_level(
        self, room_id: str, power_levels: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Return the own user's power level in a room.

        Uses the client's synced power levels when the room is known, and
        otherwise the given (or freshly fetched) power-levels content.
        """
        room = self.get_room(room_id)
        room_levels = getattr(room, "power_levels", None) if room is not None else None
        if room_levels is not None:
            return int(room_levels.get_user_level(self.user_id))

        if power_levels is None:
            power_levels = await self.fetch_power_levels(room_id)
        users = power_levels.get("users") or {}
        if self.user_id in users:
            return int(users[self.user_id])
        return int(power_levels.get("users_default", 0))

    @staticmethod
    def invite_threshold(
        power_levels: Dict[str, Any], default: int = DEFAULT_INVITE_POWER_LEVEL
    ) -> int:
        """Power level required to invite, falling back to the default."""
        value = power_levels.get("invite")
        if value is None:
            return default
        return int(value)
