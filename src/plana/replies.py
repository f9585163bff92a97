from __future__ import annotations

from collections import OrderedDict
from pathlib import Path

import msgspec

from .logging import get_logger
from .state_store import JsonStateStore

logger = get_logger(__name__)

DEFAULT_REPLY_CAPACITY = 200


class _ReplyEntry(msgspec.Struct, forbid_unknown_fields=False):
    chat_id: int
    message_id: int


ReplyKey = tuple[int, int]


class ReplyTracker(JsonStateStore[list[_ReplyEntry]]):
    """Bounded recency list of ``(chat_id, message_id)`` pairs the bot sent.

    Re-recording a pair moves it to the newest position; once the list is
    over capacity the oldest pairs are evicted first.
    """

    def __init__(self, path: Path, *, capacity: int = DEFAULT_REPLY_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        super().__init__(
            path,
            state_type=list[_ReplyEntry],
            log_prefix="state.replies",
            logger=logger,
        )
        self._capacity = capacity
        self._items: OrderedDict[ReplyKey, None] = OrderedDict()
        for entry in self._read_document() or []:
            self._insert((entry.chat_id, entry.message_id))

    @property
    def capacity(self) -> int:
        return self._capacity

    def _insert(self, key: ReplyKey) -> None:
        self._items.pop(key, None)
        self._items[key] = None
        while len(self._items) > self._capacity:
            self._items.popitem(last=False)

    def _document_locked(self) -> list[_ReplyEntry]:
        return [
            _ReplyEntry(chat_id=chat_id, message_id=message_id)
            for chat_id, message_id in self._items
        ]

    async def record_reply(self, chat_id: int, message_id: int) -> None:
        async with self._lock:
            self._insert((chat_id, message_id))
            self._save_locked(self._document_locked())

    async def is_known_reply(self, chat_id: int, message_id: int) -> bool:
        async with self._lock:
            return (chat_id, message_id) in self._items

    async def snapshot(self) -> list[ReplyKey]:
        """Pairs oldest first."""
        async with self._lock:
            return list(self._items)
