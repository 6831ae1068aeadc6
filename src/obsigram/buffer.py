"""
Session buffer for ObsiGram.

Holds captured fragments per requester until they are aggregated into a note.
In-memory only: a restart drops unaggregated fragments.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from obsigram.errors import BufferFullError

MAX_BUFFER_SIZE = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BufferItem(BaseModel):
    """A single captured fragment."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["url", "text"]
    content: str
    added_at: datetime = Field(default_factory=_utcnow)
    source: str | None = Field(default=None, description="Original URL when content was fetched")


class SessionBuffer:
    """Per-requester ordered fragment store."""

    def __init__(self, max_size: int = MAX_BUFFER_SIZE):
        self.max_size = max_size
        self._store: dict[str, list[BufferItem]] = {}

    def push(self, user_id: str, item: BufferItem) -> None:
        items = self._store.setdefault(user_id, [])
        if len(items) >= self.max_size:
            raise BufferFullError(f"Buffer limit of {self.max_size} reached for user {user_id}")
        items.append(item)

    def get(self, user_id: str) -> list[BufferItem]:
        """Return a copy of the requester's items in capture order."""
        return list(self._store.get(user_id, []))

    def clear(self, user_id: str) -> None:
        self._store[user_id] = []

    def count(self, user_id: str) -> int:
        return len(self._store.get(user_id, []))

    def remove(self, user_id: str, index: int) -> bool:
        """Remove the item at a 0-based index. Returns False if out of range."""
        items = self._store.get(user_id)
        if not items or index < 0 or index >= len(items):
            return False
        del items[index]
        return True
