"""
Protocol Command and Response Definitions

This module defines the data structures for inbound commands and outbound
records of the object store protocol.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

INVALID_MESSAGE_FORMAT = "Invalid message format"
MISSING_KEY = "Missing key"


class Action(Enum):
    """Enumeration of supported actions, keyed by their wire name."""
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SET = "set"
    GET = "get"
    UNKNOWN = "unknown"


@dataclass
class Command:
    """
    Represents a parsed inbound record.

    Attributes:
        action: The requested action (UNKNOWN for malformed input)
        key: The key the action applies to
        value: The value for SET (None otherwise)
        has_value: Whether the record carried a ``value`` field at all,
            so that an explicit JSON null can be told apart from a
            missing field
        raw: The original record text
    """
    action: Action
    key: str = ""
    value: Any = None
    has_value: bool = False
    raw: str = ""

    @property
    def is_valid(self) -> bool:
        """Check if the command satisfies the preconditions of its action."""
        if self.action == Action.UNKNOWN:
            return False
        if not isinstance(self.key, str) or not self.key:
            return False
        if self.action == Action.SET:
            return self.has_value
        return True


@dataclass
class Response:
    """
    Represents an outbound record.

    Either a value record ``{"key": ..., "value": ...}`` or an error record
    ``{"error": ...}``.
    """
    key: Optional[str] = None
    value: Any = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def update(cls, key: str, value: Any) -> "Response":
        """Create a value record (update notification or get result)."""
        return cls(key=key, value=value)

    @classmethod
    def failure(cls, message: str) -> "Response":
        """Create an error record."""
        return cls(error=message)

    @classmethod
    def invalid_format(cls) -> "Response":
        """Create the error record for malformed or unknown messages."""
        return cls.failure(INVALID_MESSAGE_FORMAT)

    @classmethod
    def missing_key(cls) -> "Response":
        """Create the error record for a set request without a key."""
        return cls.failure(MISSING_KEY)

    def to_dict(self) -> Dict[str, Any]:
        if self.is_error:
            return {"error": self.error}
        return {"key": self.key, "value": self.value}
