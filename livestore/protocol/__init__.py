"""Protocol module for the live object store."""

from .commands import Action, Command, Response
from .parser import ProtocolParser

__all__ = [
    "Action",
    "Command",
    "Response",
    "ProtocolParser",
]
