"""ChatGPT-based task extraction from walkthrough transcripts."""

import json
import logging
import aiohttp
from typing import Iterable, List, Tuple

from ..models.chores import DEFAULT_ROOM_NAME, ExtractedTask, Room, Task

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = (
    "Extract tasks from this transcription and format them as a JSON array of "
    "{{text: string, roomName: string}} objects. Infer room names from context. "
    "If no room is mentioned, use \"{default_room}\". Respond with the JSON array only.\n"
    "Here's the transcription: {transcript}"
)


class TaskExtractor:
    """Splits a transcript into discrete room-tagged tasks with one chat completion."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini",
                 timeout_seconds: float = 30.0):
        """Initialize task extractor.

        Args:
            api_key: OpenAI API key
            model: Chat model to use
            timeout_seconds: Total request timeout
        """
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.openai.com/v1/chat/completions"

        logger.info(f"TaskExtractor initialized with model: {model}")

    async def send_prompt(self, prompt: str, temperature: float = 0.2, max_tokens: int = 1000) -> str:
        """Send a prompt to the chat model and get the response text.

        Raises:
            RuntimeError: If the API call fails
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        data = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.base_url, headers=headers, json=data) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise RuntimeError(f"Chat API error: {response.status} - {error_text}")

                result = await response.json()
                return result["choices"][0]["message"]["content"].strip()

    async def extract(self, transcript: str) -> List[ExtractedTask]:
        """Extract tasks from a transcript.

        Falls back to a single task holding the whole transcript when the model
        output cannot be parsed. API failures propagate to the caller.
        """
        transcript = transcript.strip()
        if not transcript:
            return []

        prompt = EXTRACTION_PROMPT.format(default_room=DEFAULT_ROOM_NAME, transcript=transcript)
        reply = await self.send_prompt(prompt)
        tasks = parse_task_list(reply)
        if not tasks:
            logger.warning("Could not parse tasks from model reply; using whole transcript")
            return [ExtractedTask(text=transcript)]

        logger.info(f"Extracted {len(tasks)} tasks")
        return tasks


def _strip_code_fence(reply: str) -> str:
    text = reply.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_task_list(reply: str) -> List[ExtractedTask]:
    """Parse a JSON array of ``{text, roomName}`` objects.

    Items without text are skipped; a missing or blank room becomes "General".
    Returns an empty list when the reply is not a JSON array.
    """
    try:
        items = json.loads(_strip_code_fence(reply))
    except ValueError:
        logger.debug(f"Model reply is not JSON: {reply[:200]}")
        return []
    if not isinstance(items, list):
        return []

    tasks = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = str(item.get("text") or "").strip()
        if not text:
            continue
        room_name = str(item.get("roomName") or "").strip() or DEFAULT_ROOM_NAME
        tasks.append(ExtractedTask(text=text, room_name=room_name))
    return tasks


def assign_to_rooms(extracted: Iterable[ExtractedTask],
                    rooms: Iterable[Room]) -> Tuple[List[Room], List[Task]]:
    """File extracted tasks under existing rooms, creating rooms that are missing.

    Room names match case-insensitively.

    Returns:
        Tuple of (rooms created, tasks created)
    """
    by_name = {room.name.strip().lower(): room for room in rooms}
    new_rooms = []
    tasks = []
    for item in extracted:
        key = item.room_name.strip().lower()
        room = by_name.get(key)
        if room is None:
            room = Room(name=item.room_name.strip())
            by_name[key] = room
            new_rooms.append(room)
        tasks.append(Task(text=item.text, room_id=room.id))
    return new_rooms, tasks
