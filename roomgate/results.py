"""
Operation results returned by the messaging facade.

Every facade operation that can be refused or can fail in transport reports
its outcome as an OperationResult rather than raising.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Failure categories for facade operations."""
    MEMBERSHIP_DENIED = "membership_denied"
    PERMISSION_DENIED = "permission_denied"
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_NOT_ENCRYPTED = "room_not_encrypted"
    TRANSPORT_ERROR = "transport_error"
    MISSING_CREDENTIALS = "missing_credentials"


@dataclass
class OperationResult:
    """Tagged success/failure outcome."""
    success: bool
    message: str
    kind: Optional[ErrorKind] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **data: Any) -> "OperationResult":
        return cls(success=False, message=message, kind=kind, data=data)

    def __bool__(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into the dict shape used by the CLI and logs."""
        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            result["message"] = self.message
        else:
            result["error"] = self.message
            result["kind"] = self.kind.value if self.kind else None
        result.update(self.data)
        return result
