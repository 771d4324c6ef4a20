"""Room and task models handed to chore-list consumers."""

import uuid
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_ROOM_NAME = "General"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Room:
    """A room of the home that tasks are filed under."""
    name: str
    id: str = field(default_factory=_new_id)
    photos: List[str] = field(default_factory=list)  # Photo URLs


@dataclass
class Task:
    """A chore belonging to a room."""
    text: str
    room_id: str
    id: str = field(default_factory=_new_id)
    completed: bool = False
    urgent: Optional[bool] = None
    important: Optional[bool] = None


@dataclass(frozen=True)
class ExtractedTask:
    """Task text split out of a transcript, tagged with the room it mentions."""
    text: str
    room_name: str = DEFAULT_ROOM_NAME
