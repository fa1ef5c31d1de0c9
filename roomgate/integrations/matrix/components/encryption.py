"""
Matrix Encryption Handler

Watches for events the client could not decrypt and asks other devices for
the missing room keys. All cryptography stays inside the client library.
"""

import logging
from typing import Optional, Set

from nio import AsyncClient, MatrixRoom, MegolmEvent

logger = logging.getLogger(__name__)


class MatrixEncryptionHandler:
    """Requests room keys for undecryptable Megolm events, once per session."""

    def __init__(self, client: AsyncClient):
        self.client = client
        self.failed_sessions: Set[str] = set()

    async def handle_decryption_failure(self, room: MatrixRoom, event: MegolmEvent) -> bool:
        """
        Handle an undecryptable event.

        Returns True when a key request was sent for the event's session.
        """
        session_id: Optional[str] = getattr(event, "session_id", None)
        logger.warning(
            f"MatrixEncryption: Undecryptable event {getattr(event, 'event_id', 'unknown')} "
            f"in {room.room_id} from {getattr(event, 'sender', 'unknown')}"
        )

        if not session_id or session_id in self.failed_sessions:
            return False
        self.failed_sessions.add(session_id)

        try:
            await self.client.request_room_key(event)
        except Exception as e:
            logger.error(f"MatrixEncryption: Key request for session {session_id} failed: {e}")
            return False

        logger.info(f"MatrixEncryption: Requested room key for session {session_id} in {room.room_id}")
        return True
