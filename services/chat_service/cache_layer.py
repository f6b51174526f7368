"""
TTL cache over the durable key-value store.

Entries are written through to the store as JSON envelopes so cached AI
artifacts survive restarts. Concurrent fetches for the same key share a
single in-flight task. Not thread-safe: one instance per event loop.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from infrastructure.storage import KeyValueStore
from utils.logging_config import get_logger


logger = get_logger(__name__)


def build_cache_key(namespace: str, user_id: Any, *filters: Any) -> str:
    """
    Join namespace, user id and filter values with underscores.

    Missing values become empty strings, so the number of separators is
    fixed per namespace: ``ai_recommendations_42__`` has no filters set.
    """
    parts = [namespace, "" if user_id is None else str(user_id)]
    parts.extend("" if value is None else str(value) for value in filters)
    return "_".join(parts)


@dataclass(frozen=True)
class CacheNamespace:
    """A key family with a fixed filter order"""
    name: str
    filter_fields: Tuple[str, ...] = ()

    def key(self, user_id: Any, *filters: Any) -> str:
        if len(filters) != len(self.filter_fields):
            raise ValueError(
                f"{self.name} expects filters {self.filter_fields}, got {len(filters)} values"
            )
        return build_cache_key(self.name, user_id, *filters)

    @property
    def prefix(self) -> str:
        return f"{self.name}_"


RECOMMENDATIONS = CacheNamespace("ai_recommendations", ("category", "difficulty"))
SKILL_ANALYSIS = CacheNamespace("ai_skill_analysis")
COMPETITION_TRENDS = CacheNamespace(
    "ai_competition_trends", ("participated_competition_id", "available_competition_id")
)
# Written after each reply, never read back for display
CHAT_HISTORY = CacheNamespace("ai_chat_history")


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl

    def to_json(self) -> str:
        return json.dumps(
            {"value": self.value, "storedAt": self.stored_at, "ttl": self.ttl},
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, key: str, raw: str) -> 'CacheEntry':
        """Raises ValueError when ``raw`` is not a cache envelope"""
        data = json.loads(raw)
        if not isinstance(data, dict) or not {"value", "storedAt", "ttl"} <= data.keys():
            raise ValueError(f"Not a cache envelope: {key}")
        return cls(key=key, value=data["value"], stored_at=float(data["storedAt"]), ttl=float(data["ttl"]))


FetchFn = Callable[[], Awaitable[Any]]


class CacheLayer:
    """
    Read-through TTL cache with request de-duplication.

    Args:
        store: Durable key-value store backing the entries
        clock: Returns the current time in seconds
        sweep_interval: Seconds between background sweeps
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = 60.0,
    ):
        self.store = store
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._sweeper_task: Optional[asyncio.Task] = None

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._valid_entry(key)
        return entry.value if entry is not None else default

    def has(self, key: str) -> bool:
        return self._valid_entry(key) is not None

    def put(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        entry = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)
        self.store.set(key, entry.to_json())
        self._entries[key] = entry

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def get_or_fetch(
        self,
        key: str,
        ttl: float,
        fetch_fn: FetchFn,
        force_refresh: bool = False,
    ) -> Any:
        """
        Return the cached value for ``key`` or fetch, store and return it.

        A fetch failure propagates and writes nothing. ``force_refresh``
        skips the cached value but still joins an in-flight fetch.
        """
        if not force_refresh:
            entry = self._valid_entry(key)
            if entry is not None:
                logger.debug(f"Cache hit: {key}")
                return entry.value

        pending = self._in_flight.get(key)
        if pending is None:
            logger.debug(f"Cache miss, fetching: {key}")
            pending = asyncio.ensure_future(self._fetch_and_store(key, ttl, fetch_fn))
            self._in_flight[key] = pending
            pending.add_done_callback(partial(self._release, key))
        else:
            logger.debug(f"Joining in-flight fetch: {key}")

        # Shielded so one cancelled caller does not cancel the shared fetch
        return await asyncio.shield(pending)

    def invalidate(self, key: str) -> None:
        """Drop the entry; a fetch already running for it will not store its result"""
        self._in_flight.pop(key, None)
        self._remove(key)

    def invalidate_namespace(self, namespace: CacheNamespace) -> int:
        keys = set(self.store.keys(namespace.prefix))
        keys.update(key for key in self._entries if key.startswith(namespace.prefix))
        for key in keys:
            self.invalidate(key)
        for key in [key for key in self._in_flight if key.startswith(namespace.prefix)]:
            del self._in_flight[key]
        logger.info(f"Invalidated {len(keys)} entries in {namespace.name}")
        return len(keys)

    def invalidate_all(self) -> int:
        keys = set(self._entries)
        keys.update(key for key, _ in self._stored_envelopes())
        for key in keys:
            self._remove(key)
        self._in_flight.clear()
        logger.info(f"Invalidated all {len(keys)} cache entries")
        return len(keys)

    def sweep_expired(self) -> int:
        """Remove every entry older than its TTL; returns the count"""
        now = self._clock()
        expired = {key for key, entry in self._entries.items() if not entry.is_valid(now)}
        expired.update(key for key, entry in self._stored_envelopes() if not entry.is_valid(now))

        for key in expired:
            self._remove(key)

        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def start_sweeper(self) -> None:
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            self._sweeper_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}", exc_info=True)

    async def _fetch_and_store(self, key: str, ttl: float, fetch_fn: FetchFn) -> Any:
        value = await fetch_fn()
        # Invalidation while fetching detaches this task from the key
        if self._in_flight.get(key) is asyncio.current_task():
            self.put(key, value, ttl)
        else:
            logger.debug(f"Discarding result for invalidated key: {key}")
        return value

    def _remove(self, key: str) -> None:
        self._entries.pop(key, None)
        self.store.remove(key)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Fetch for {key} failed: {task.exception()}")

    def _valid_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._read_stored(key)
            if entry is None:
                return None
            self._entries[key] = entry

        if not entry.is_valid(self._clock()):
            logger.debug(f"Cache entry expired: {key}")
            self._remove(key)
            return None
        return entry

    def _read_stored(self, key: str) -> Optional[CacheEntry]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_json(key, raw)
        except (ValueError, TypeError) as e:
            # Left in place; the next successful fetch overwrites it
            logger.warning(f"Ignoring malformed cache entry {key}: {e}")
            return None

    def _stored_envelopes(self) -> List[Tuple[str, CacheEntry]]:
        envelopes = []
        for key in self.store.keys():
            raw = self.store.get(key)
            if raw is None:
                continue
            try:
                envelopes.append((key, CacheEntry.from_json(key, raw)))
            except (ValueError, TypeError):
                continue
        return envelopes
