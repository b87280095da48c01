"""
In-memory planner store.

Holds the open Planner plus the serialized "last saved" form used by the
auto-saver. It is a value holder: commands go through the pure reducer,
and snapshots are deep copies that can be restored for rollback.
"""
import json
import logging
from typing import Optional, Callable, List

from .commands import Command, reduce
from .schema import Planner

logger = logging.getLogger(__name__)


def serialize_planner(planner: Optional[Planner]) -> str:
    """Canonical JSON form used to detect content changes."""
    if planner is None:
        return ""
    return json.dumps(planner.to_dict(), sort_keys=True, separators=(",", ":"))


class PlannerStore:
    """Current planner, last-saved snapshot and mutation listeners."""

    def __init__(self, planner: Optional[Planner] = None):
        self._planner = planner.copy() if planner else None
        self._last_saved = serialize_planner(self._planner)
        self.revision = 0
        self._listeners: List[Callable[[Planner], None]] = []

    @property
    def planner(self) -> Optional[Planner]:
        return self._planner

    @property
    def last_saved(self) -> str:
        return self._last_saved

    def subscribe(self, callback: Callable[[Planner], None]) -> None:
        """Register a callback invoked after every accepted change."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            try:
                callback(self._planner)
            except Exception as e:
                logger.error(f"Error in store listener {callback!r}: {e}")

    def apply(self, command: Command) -> Planner:
        """Reduce a command into the current planner. Raises ValidationError."""
        if self._planner is None:
            raise RuntimeError("No planner is open")
        self._planner = reduce(self._planner, command)
        self.revision += 1
        self._notify()
        return self._planner

    def replace(self, planner: Planner, notify: bool = True) -> Planner:
        """Swap in a new planner value (server merge, template lanes, ...)."""
        self._planner = planner.copy()
        self.revision += 1
        if notify:
            self._notify()
        return self._planner

    def load(self, planner: Planner) -> Planner:
        """Open a planner as already saved (fresh from the backend)."""
        self._planner = planner.copy()
        self._last_saved = serialize_planner(self._planner)
        self.revision += 1
        return self._planner

    def snapshot(self) -> Optional[Planner]:
        return self._planner.copy() if self._planner else None

    def restore(self, snapshot: Optional[Planner]) -> Optional[Planner]:
        """Roll back to a snapshot. Listeners are not notified: nothing new to save."""
        self._planner = snapshot.copy() if snapshot else None
        self.revision += 1
        return self._planner

    def serialize(self) -> str:
        return serialize_planner(self._planner)

    def is_dirty(self) -> bool:
        return self.serialize() != self._last_saved

    def mark_saved(self, serialized: Optional[str] = None) -> None:
        self._last_saved = self.serialize() if serialized is None else serialized
