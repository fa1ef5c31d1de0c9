"""
Matrix Message Operations

Wraps message payloads into text envelopes and hands them to the client's
send primitive.
"""

import json
import logging
from typing import Any, Dict

from nio import AsyncClient, RoomSendResponse

from ....results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "m.room.message"
TEXT_MSGTYPE = "m.text"
NOTICE_MSGTYPE = "m.notice"


def encode_body(message: Any) -> str:
    """Serialize a payload the way JSON.stringify does (compact separators)."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


def build_text_content(message: Any, msgtype: str = TEXT_MSGTYPE) -> Dict[str, Any]:
    """Wrap a JSON-serializable payload into a text message envelope."""
    return {"body": encode_body(message), "msgtype": msgtype}


class MatrixMessageOperations:
    """Handles Matrix message sending operations."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def send_content(self, room_id: str, content: Dict[str, Any]) -> OperationResult:
        """Send an m.room.message event; transport problems become failures."""
        logger.debug(f"MatrixMessageOps: Sending {content.get('msgtype')} to {room_id}")

        try:
            response = await self.client.room_send(
                room_id=room_id,
                message_type=MESSAGE_EVENT,
                content=content,
            )
        except Exception as e:
            error_msg = f"Error sending message to {room_id}: {e}"
            logger.error(f"MatrixMessageOps: {error_msg}")
            return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

        if isinstance(response, RoomSendResponse):
            logger.debug(f"MatrixMessageOps: Message sent to {room_id}: {response.event_id}")
            return OperationResult.ok(
                f"Message sent to {room_id}",
                room_id=room_id,
                event_id=response.event_id,
            )

        detail = getattr(response, "message", None) or str(response)
        error_msg = f"Failed to send message to {room_id}: {detail}"
        logger.error(f"MatrixMessageOps: {error_msg}")
        return OperationResult.fail(ErrorKind.TRANSPORT_ERROR, error_msg, room_id=room_id)

    async def send_message(self, room_id: str, message: Any) -> OperationResult:
        """Serialize, wrap and send a payload as a text message."""
        return await self.send_content(room_id, build_text_content(message))

    async def send_notice(self, room_id: str, text: str) -> OperationResult:
        """Send a plain-text notice (bot replies)."""
        return await self.send_content(room_id, {"body": text, "msgtype": NOTICE_MSGTYPE})
