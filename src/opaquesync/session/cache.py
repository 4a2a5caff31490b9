"""
Per-user cache of question session states.

A CacheStore is constructed once per unit of work (typically one request)
over a host-owned session mapping. Entries age by one every time a store is
constructed for the same session, and entries that reach the idle threshold
are evicted, releasing their remote session. Aging counts store
constructions, not wall-clock time.
"""

import threading
import weakref
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, Optional

from opaquesync.engine.registry import EngineRegistry
from opaquesync.errors import RemoteFault
from opaquesync.logger import get_logger
from opaquesync.session.state import DisplayOptions, State

logger = get_logger(__name__)

STATE_CACHE_KEY = "opaque_state_cache"
OPTION_CACHE_KEY = "opaque_option_cache"

DEFAULT_IDLE_THRESHOLD = 2

# One re-entrant lock per cache scope, shared by every live store over it.
# A lock is dropped once no store holds it.
_scope_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = (
    weakref.WeakValueDictionary()
)
_scope_locks_guard = threading.Lock()


def _lock_for_scope(scope_id: Optional[str]) -> threading.RLock:
    if scope_id is None:
        return threading.RLock()
    with _scope_locks_guard:
        lock = _scope_locks.get(scope_id)
        if lock is None:
            lock = _scope_locks[scope_id] = threading.RLock()
        return lock


class CacheStore:
    """
    Keyed store of State records for one user's session.

    Records are kept in ``session[STATE_CACHE_KEY]`` as JSON-safe dicts so
    the host may serialize the session however it likes.
    """

    def __init__(
        self,
        session: MutableMapping[str, Any],
        engines: EngineRegistry,
        idle_threshold: Optional[int] = None,
        scope_id: Optional[str] = None,
    ):
        if idle_threshold is None:
            from opaquesync.config import CONFIG

            idle_threshold = CONFIG.idle_eviction_threshold

        self.engines = engines
        self.idle_threshold = idle_threshold
        self._session = session
        self._lock = _lock_for_scope(scope_id)

        cache = session.get(STATE_CACHE_KEY)
        if not isinstance(cache, dict):
            cache = session[STATE_CACHE_KEY] = {}
        self._cache: dict[str, dict[str, Any]] = cache

        self.discard_idle()

    @contextmanager
    def locked(self) -> Iterator["CacheStore"]:
        """Hold the scope lock for a sequence of operations."""
        with self._lock:
            yield self

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def keys(self) -> list[str]:
        return list(self._cache.keys())

    def load(self, key: str) -> Optional[State]:
        """
        Load a cached state. Loading counts as a touch.

        Args:
            key: The attempt's cache key.

        Returns:
            The state, or None if nothing is cached under the key.
        """
        with self._lock:
            record = self._cache.get(key)
            if record is None:
                return None
            state = State.from_record(record)
            state.touch()
            self._cache[key] = state.to_record()
            return state

    def save(self, key: str, state: State) -> None:
        """
        Install a state under a key, releasing whatever was there before.

        Args:
            key: The attempt's cache key.
            state: The state to store.
        """
        with self._lock:
            existing = self._cache.get(key)
            if existing is not None:
                self.delete(State.from_record(existing))
            state.touch()
            self._cache[key] = state.to_record()

    def mark_fresh(self, state: State) -> None:
        """Write back a state after use, resetting its idle age."""
        with self._lock:
            state.touch()
            self._cache[state.cache_key] = state.to_record()

    def delete(self, state: Optional[State]) -> None:
        """
        Remove a state, stopping its remote session if one is live.

        Failures while stopping are logged and ignored; the entry is removed
        regardless. Deleting an absent state is a no-op.
        """
        if state is None:
            return

        with self._lock:
            if state.session_handle is not None:
                self._stop_session(state)
                state.session_handle = None
            self._cache.pop(state.cache_key, None)

    def discard_idle(self) -> int:
        """
        Age every entry by one and evict those reaching the idle threshold.

        Returns:
            Number of entries evicted.
        """
        evicted = 0
        with self._lock:
            for key in list(self._cache.keys()):
                record = self._cache[key]
                record["idle_age"] = int(record.get("idle_age", 0)) + 1
                if record["idle_age"] >= self.idle_threshold:
                    logger.info(f"Evicting idle question session state {key}")
                    self.delete(State.from_record(record))
                    evicted += 1
        return evicted

    def get_last_used_options(self) -> Optional[DisplayOptions]:
        data = self._session.get(OPTION_CACHE_KEY)
        if not data:
            return None
        return DisplayOptions.from_dict(data)

    def set_last_used_options(self, options: Optional[DisplayOptions]) -> None:
        if options is None:
            return
        self._session[OPTION_CACHE_KEY] = {
            "readonly": options.readonly,
            "marks": options.marks,
            "markdp": options.markdp,
            "correctness": options.correctness,
            "feedback": options.feedback,
            "generalfeedback": options.generalfeedback,
        }

    def _stop_session(self, state: State) -> None:
        try:
            self.engines.connect(state.engine_id).stop(state.session_handle)
            logger.info(
                f"Stopped question session {state.session_handle} "
                f"on engine '{state.engine_id}'"
            )
        except RemoteFault as e:
            logger.warning(
                f"Failed to stop question session {state.session_handle}: {e}"
            )
        except KeyError:
            logger.warning(
                f"Cannot stop question session {state.session_handle}: "
                f"engine '{state.engine_id}' is not configured"
            )
