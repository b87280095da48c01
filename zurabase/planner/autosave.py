# Planner auto-save
#
# Debounced save of planner metadata. States:
#   saved ──mutation──▶ unsaved ──timer──▶ saving ──▶ saved
#                          ▲                  │
#                          └── mutation during save / failure
#
# The timer is an explicit task over an injectable clock so tests can drive
# it with a fake clock instead of sleeping.

import logging
import time
from enum import Enum
from typing import Callable, Optional

from .errors import PlannerError
from .store import PlannerStore

logger = logging.getLogger(__name__)


class SaveState(Enum):
    SAVED = "saved"
    UNSAVED = "unsaved"
    SAVING = "saving"


class MonotonicClock:
    """Wall-independent clock (seconds)."""

    def now(self) -> float:
        return time.monotonic()


class DebounceTimer:
    """A single re-armable deadline. Arming again pushes the deadline back."""

    def __init__(self, delay_secs: float, clock=None):
        self.delay_secs = delay_secs
        self.clock = clock or MonotonicClock()
        self.deadline: Optional[float] = None

    def arm(self) -> None:
        self.deadline = self.clock.now() + self.delay_secs

    reset = arm

    def cancel(self) -> None:
        self.deadline = None

    @property
    def armed(self) -> bool:
        return self.deadline is not None

    def due(self) -> bool:
        return self.deadline is not None and self.clock.now() >= self.deadline


class AutoSaveScheduler:
    """
    Watches a PlannerStore and saves after a quiet period.

    save is called with no arguments and returns an object with an `ok`
    attribute (a SyncResult); it may also raise PlannerError. Call poll()
    from the event loop; it fires the save once the debounce has elapsed.
    """

    def __init__(
        self,
        store: PlannerStore,
        save: Callable[[], object],
        debounce_secs: float = 2.0,
        clock=None,
        on_state_change: Optional[Callable[[SaveState], None]] = None,
    ):
        self.store = store
        self.save = save
        self.timer = DebounceTimer(debounce_secs, clock)
        self.on_state_change = on_state_change
        self.state = SaveState.SAVED
        self.save_count = 0
        self.last_error: Optional[PlannerError] = None
        self._changed_while_saving = False
        store.subscribe(self.notify_mutation)

    def _set_state(self, state: SaveState) -> None:
        if state == self.state:
            return
        logger.debug(f"Auto-save state {self.state.value} -> {state.value}")
        self.state = state
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.error(f"Error in auto-save state callback: {e}")

    def reset(self) -> None:
        """Forget pending work; used when a different planner is opened."""
        self.timer.cancel()
        self._changed_while_saving = False
        self.last_error = None
        self._set_state(SaveState.SAVED)

    def notify_mutation(self, planner=None) -> None:
        """A local change was accepted: mark unsaved and restart the debounce."""
        if self.state == SaveState.SAVING:
            self._changed_while_saving = True
            return
        self._set_state(SaveState.UNSAVED)
        self.timer.reset()

    def poll(self) -> bool:
        """Fire the save if the debounce elapsed. Returns True when a save call was made."""
        if not self.timer.due():
            return False
        self.timer.cancel()
        return self._fire()

    def flush(self) -> bool:
        """Save now (manual save). Returns True when a save call was made."""
        self.timer.cancel()
        return self._fire()

    def _fire(self) -> bool:
        if self.state != SaveState.UNSAVED:
            return False

        planner = self.store.planner
        if planner is None or planner.is_temporary:
            logger.debug("Auto-save skipped: planner only exists locally")
            return False

        sent = self.store.serialize()
        if sent == self.store.last_saved:
            self._set_state(SaveState.SAVED)
            return False

        self._set_state(SaveState.SAVING)
        self._changed_while_saving = False
        self.save_count += 1
        try:
            result = self.save()
            ok = bool(getattr(result, "ok", True))
            error = getattr(result, "error", None)
        except PlannerError as e:
            ok, error = False, e

        if ok:
            # Mid-flight changes must stay dirty, so only take the post-save form when there were none.
            self.store.mark_saved(sent if self._changed_while_saving else None)
            self.last_error = None
            logger.info(f"Planner {planner.id} saved")
        else:
            self.last_error = error
            logger.error(f"Auto-save of planner {planner.id} failed: {error}")

        if self._changed_while_saving or not ok:
            self._set_state(SaveState.UNSAVED)
            if self._changed_while_saving:
                self.timer.arm()
        else:
            self._set_state(SaveState.SAVED)
        self._changed_while_saving = False
        return True
