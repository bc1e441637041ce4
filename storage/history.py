import asyncio
import json

from pydantic import ValidationError

from config import settings
from schemas import LogEntry
from storage.kv import KeyValueStore
from utils.logging import get_logger

logger = get_logger("storage.history")

REQUIRED_FIELDS = ("fileName", "durationMs", "timestamp")


def parse_stored_entries(value: str | None) -> list[LogEntry]:
    """Parse persisted history, tolerating anything malformed.

    Non-JSON or non-array content yields an empty list. Array items that
    are not objects carrying fileName, durationMs and timestamp are dropped.
    """
    if not value:
        return []

    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    if not isinstance(parsed, list):
        return []

    entries = []
    for item in parsed:
        if not isinstance(item, dict) or not all(k in item for k in REQUIRED_FIELDS):
            continue
        try:
            entries.append(LogEntry.model_validate(item))
        except ValidationError:
            continue
    return entries


class HistoryLog:
    """Bounded, most-recent-first record of completed conversions.

    Every mutation is mirrored to the store. Store failures are logged and
    swallowed; the in-memory log stays authoritative.
    """

    def __init__(
        self,
        store: KeyValueStore,
        entries: list[LogEntry] | None = None,
        key: str | None = None,
        max_entries: int | None = None,
    ):
        self.store = store
        self.key = key or settings.history_key
        self.max_entries = max_entries or settings.history_max_entries
        self._entries = list(entries or [])[: self.max_entries]
        self._persist_lock = asyncio.Lock()

    @classmethod
    async def load(
        cls,
        store: KeyValueStore,
        key: str | None = None,
        max_entries: int | None = None,
    ) -> "HistoryLog":
        """Restore the log from the store; unreadable data loads as empty."""
        key = key or settings.history_key
        try:
            value = await store.get(key)
        except Exception:
            logger.warning("History store unavailable, starting empty", exc_info=True)
            value = None
        return cls(store, parse_stored_entries(value), key=key, max_entries=max_entries)

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    async def append(self, entry: LogEntry) -> None:
        self._entries = [entry, *self._entries][: self.max_entries]
        await self._persist()

    async def clear(self) -> None:
        self._entries = []
        await self._persist()

    def dumps(self) -> str:
        return json.dumps([e.model_dump(by_alias=True) for e in self._entries])

    async def _persist(self) -> None:
        # One write at a time, each carrying the state current when it starts
        async with self._persist_lock:
            try:
                await self.store.set(self.key, self.dumps())
            except Exception:
                logger.warning(
                    "History store write failed, keeping log in memory",
                    extra={"context": {"key": self.key, "entries": len(self._entries)}},
                )
