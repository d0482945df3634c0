"""
Relay command parsing.

Relay sources publish plain text commands, either as a bare string or
wrapped in a JSON object:

    add/15/session/abc123        place object 15 for session abc123
    /check-garden/15             remove object 15 if it is placed
    {"text": "add/15/session/abc123"}
"""

from typing import Any, Optional, Literal
from datetime import datetime
import re

from pydantic import BaseModel

from garden.domain.models.garden_state import utcnow

_ADD_PATTERN = re.compile(r"^/?add/(\d+)/session/(.+)$")
_CHECK_PATTERN = re.compile(r"^/?check-garden/(\d+)$")

# Keys a relay may use to carry the command text, in lookup order
_TEXT_KEYS = ("text", "message", "data")


class RelayCommand(BaseModel):
    """Command recognised in a relay message"""
    action: Literal["add", "check_garden"]
    object_id: str
    session_id: Optional[str] = None
    raw: str


class LastCommand(BaseModel):
    """Most recent add received from a relay"""
    object_id: Optional[str] = None
    session_id: Optional[str] = None
    received_at: Optional[datetime] = None


class RelayCommandTracker:
    """Remembers the last relayed add command"""

    def __init__(self):
        self.last = LastCommand()

    def record(self, command: RelayCommand):
        if command.action == "add":
            self.last = LastCommand(
                object_id=command.object_id,
                session_id=command.session_id,
                received_at=utcnow()
            )


def extract_text(message: Any) -> Optional[str]:
    """Pull the command text out of a relay message"""

    if isinstance(message, str):
        return message.strip() or None

    if isinstance(message, dict):
        for key in _TEXT_KEYS:
            value = message.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

    return None


def parse_command(text: str) -> Optional[RelayCommand]:
    """Parse command text; returns None when it matches no known command"""

    match = _ADD_PATTERN.match(text)
    if match:
        return RelayCommand(
            action="add",
            object_id=match.group(1),
            session_id=match.group(2),
            raw=text
        )

    match = _CHECK_PATTERN.match(text)
    if match:
        return RelayCommand(action="check_garden", object_id=match.group(1), raw=text)

    return None
