from __future__ import annotations

from datetime import datetime
from typing import Iterable, Iterator

MESSAGE_CREATED = "message-created"


def _sort_key(message: dict) -> tuple[datetime, int]:
    raw = str(message.get("created_at") or "")
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw), int(message["id"])


class MessageTimeline:
    """Client-side view of one conversation's messages.

    Messages arrive from two places: a ``list`` call and relay events. Both are
    merged here, de-duplicated by id and kept in (created_at, id) order, so a
    message seen both ways shows up once.
    """

    def __init__(self, conversation_id: int, messages: Iterable[dict] = ()):
        self.conversation_id = int(conversation_id)
        self._by_id: dict[int, dict] = {}
        self.merge(messages)

    def merge(self, messages: Iterable[dict]) -> list[dict]:
        """Add messages not seen yet; returns the newly added ones."""

        added = []
        for message in messages:
            if int(message.get("conversation", self.conversation_id)) != self.conversation_id:
                continue
            message_id = int(message["id"])
            if message_id in self._by_id:
                continue
            self._by_id[message_id] = message
            added.append(message)
        return sorted(added, key=_sort_key)

    def replace(self, messages: Iterable[dict]) -> None:
        self._by_id = {}
        self.merge(messages)

    def apply_event(self, frame: dict) -> dict | None:
        """Apply a relay frame; returns the message if it was new to this timeline."""

        if frame.get("type") != MESSAGE_CREATED:
            return None
        added = self.merge([frame.get("message") or {}]) if frame.get("message") else []
        return added[0] if added else None

    @property
    def messages(self) -> list[dict]:
        return sorted(self._by_id.values(), key=_sort_key)

    @property
    def last(self) -> dict | None:
        ordered = self.messages
        return ordered[-1] if ordered else None

    def __contains__(self, message_id) -> bool:
        return int(message_id) in self._by_id

    def __iter__(self) -> Iterator[dict]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self._by_id)
