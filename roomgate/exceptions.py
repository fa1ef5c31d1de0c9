"""
Custom Exception Classes

This module defines the exceptions raised by roomgate. Outcomes of
membership, permission and transport checks are returned as
OperationResult values instead; exceptions are kept for misuse,
configuration and authentication problems.
"""

from typing import Iterable, Optional


class RoomgateBaseException(Exception):
    """Base exception for the roomgate package."""

    pass


class MatrixIntegrationError(RoomgateBaseException):
    """Raised for errors specific to Matrix integration."""

    pass


class ClientNotSetError(MatrixIntegrationError):
    """Raised when an operation runs before a client handle is injected."""

    def __init__(self, operation: Optional[str] = None):
        self.operation = operation
        if operation:
            super().__init__(f"Matrix client not set; cannot run '{operation}'")
        else:
            super().__init__("Matrix client not set")


class RoomNotFoundError(MatrixIntegrationError):
    """Raised when the client has no record of a room."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class MatrixTransportError(MatrixIntegrationError):
    """Raised when the homeserver answers a request with an error response."""

    def __init__(self, operation: str, response: object):
        self.operation = operation
        self.response = response
        detail = getattr(response, "message", None) or str(response)
        super().__init__(f"{operation} failed: {detail}")


class MatrixAuthenticationError(MatrixIntegrationError):
    """Raised when the homeserver rejects a login."""

    pass


class ConfigurationError(RoomgateBaseException):
    """Raised for configuration problems."""

    pass


class MissingCredentialsError(ConfigurationError):
    """Raised when required credential fields are absent or empty."""

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Missing required credentials: {', '.join(self.missing_fields)}"
        )
