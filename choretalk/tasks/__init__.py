"""Turning transcripts into room-tagged chores."""

from .extractor import TaskExtractor, assign_to_rooms, parse_task_list

__all__ = [
    "TaskExtractor",
    "assign_to_rooms",
    "parse_task_list",
]
