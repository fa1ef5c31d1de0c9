"""
Global test configuration and fixtures.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from roomgate.integrations.matrix.facade import MatrixMessagingFacade
from tests.factories import OWN_USER, ROOM_ID, RoomFactory


@pytest.fixture
def mock_client() -> MagicMock:
    """Provide a mocked nio AsyncClient that knows no rooms."""
    client = MagicMock()
    client.user_id = OWN_USER
    client.rooms = {}
    client.invited_rooms = {}
    client.next_batch = "s_batch_1"

    client.room_send = AsyncMock()
    client.room_invite = AsyncMock()
    client.room_get_state_event = AsyncMock()
    client.room_create = AsyncMock()
    client.room_messages = AsyncMock()
    client.join = AsyncMock()
    client.request_room_key = AsyncMock()
    client.login = AsyncMock()
    client.close = AsyncMock()
    client.add_event_callback = MagicMock()
    return client


@pytest.fixture
def joined_room(mock_client: MagicMock) -> SimpleNamespace:
    """A room the own user has joined, registered on the mocked client."""
    room = RoomFactory(room_id=ROOM_ID, joined=(OWN_USER, "@alice:example.org"))
    mock_client.rooms[ROOM_ID] = room
    return room


@pytest.fixture
def facade(mock_client: MagicMock) -> MatrixMessagingFacade:
    """Provide a facade around the mocked client."""
    return MatrixMessagingFacade(mock_client)
