from __future__ import annotations

from pathlib import Path

from .logging import get_logger
from .state_store import JsonStateStore

logger = get_logger(__name__)

GROUP_CHAT_TYPES = frozenset({"group", "supergroup"})


def is_group_chat_type(chat_type: str | None) -> bool:
    return chat_type in GROUP_CHAT_TYPES


class GroupRegistry(JsonStateStore[list[int]]):
    """Group chat ids seen by the bot; only ever grows."""

    def __init__(self, path: Path) -> None:
        super().__init__(
            path,
            state_type=list[int],
            log_prefix="state.groups",
            logger=logger,
        )
        self._chat_ids: set[int] = set(self._read_document() or [])

    async def record_group(self, chat_id: int) -> bool:
        """Add ``chat_id``; writes the file only when it was not known yet."""
        async with self._lock:
            if chat_id in self._chat_ids:
                return False
            self._chat_ids.add(chat_id)
            self._save_locked(sorted(self._chat_ids))
            logger.info("state.groups.added", chat_id=chat_id)
            return True

    async def list_groups(self) -> set[int]:
        async with self._lock:
            return set(self._chat_ids)
