"""
Optimistic sync between the local planner and the backend.

Every mutation runs the same pipeline:

    idle → optimistic → confirmed | rolled_back | bypassed | stale

  1. snapshot the planner
  2. reduce the command locally (the UI sees it at once)
  3. call the backend, unless the command touches a temp- id (bypassed)
  4. error   → take the command back out, emit "sync_failed"
     success → merge the server entity into the local one

dispatch() runs all steps around a blocking call. begin() and settle()
expose the two halves so confirmations can be settled in any order.

Stale confirmations: every command bumps a version for the entity keys
it touches. A confirmation older than the latest local version of its
entity only rewrites server-generated ids; it does not overwrite fields.

Failures: while mutations are outstanding the coordinator keeps a journal
of local applies and server merges. A failed command is removed by
replaying the journal without it on top of the planner as it was before
the first outstanding mutation. Later commands that no longer fit (a card
added to a lane the backend refused) are dropped with it.

discard_stale_confirmations=False disables both: confirmations always
merge and a failure restores its own snapshot (last settled wins).
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from . import commands as cmds
from .api import PlannerApiClient
from .errors import BackendError, NetworkError, PlannerError, ValidationError
from .ordering import clamp
from .schema import Planner, Lane, Card, is_temp_id
from .store import PlannerStore

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Lifecycle of one mutation."""
    IDLE = "idle"
    OPTIMISTIC = "optimistic"      # applied locally, backend not answered yet
    CONFIRMED = "confirmed"        # backend accepted, server fields merged
    ROLLED_BACK = "rolled_back"    # backend rejected, or needed a rejected command
    BYPASSED = "bypassed"          # temp entity or offline: local only
    STALE = "stale"                # backend accepted, but a newer local change won
    FAILED = "failed"              # backend rejected a save; nothing local to undo


@dataclass
class PendingMutation:
    """A command that has been applied locally and awaits the backend."""
    command: cmds.Command
    before: Planner
    after: Planner
    sequence: int
    versions: Dict[str, int] = field(default_factory=dict)
    status: SyncStatus = SyncStatus.OPTIMISTIC


@dataclass
class JournalStep:
    """One local apply (response is None) or one server merge."""
    pending: PendingMutation
    response: Optional[Dict[str, Any]] = None
    fields: bool = True

    @property
    def is_apply(self) -> bool:
        return self.response is None


@dataclass
class SyncResult:
    command: cmds.Command
    status: SyncStatus
    planner: Optional[Planner]
    error: Optional[PlannerError] = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.CONFIRMED, SyncStatus.BYPASSED, SyncStatus.STALE)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Merging server entities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def rewrite_lane_id(planner: Planner, old_id: str, new_id: str) -> None:
    """Rename a lane in place, including card and group references."""
    if not new_id or old_id == new_id:
        return
    for lane in planner.lanes:
        if lane.id == old_id:
            lane.id = new_id
            for card in lane.cards:
                card.lane_id = new_id
        if lane.template_lane_id == old_id:
            lane.template_lane_id = new_id


def rewrite_card_id(planner: Planner, old_id: str, new_id: str) -> None:
    if not new_id or old_id == new_id:
        return
    located = planner.find_card(old_id)
    if located:
        lane, index = located
        lane.cards[index].id = new_id


def _merge_lane_fields(lane: Lane, data: Dict[str, Any]) -> None:
    for key in ("title", "description", "color", "created_at", "updated_at"):
        if data.get(key) is not None:
            setattr(lane, key, data[key])
    if data.get("template_lane_id"):
        lane.template_lane_id = data["template_lane_id"]


def _merge_card_fields(card: Card, data: Dict[str, Any]) -> None:
    for key, value in (data.get("fields") or {}).items():
        if value is not None:
            card.fields[str(key)] = str(value)
    for key in ("title", "content"):
        if data.get(key) is not None:
            card.fields[key] = str(data[key])
    for key in ("created_at", "updated_at"):
        if data.get(key) is not None:
            setattr(card, key, data[key])


def _merge_planner_fields(planner: Planner, data: Dict[str, Any]) -> None:
    for key in ("title", "description", "template_id", "created_at", "updated_at"):
        if data.get(key) is not None:
            setattr(planner, key, data[key])


def merge_response(planner: Planner, command: cmds.Command, data: Optional[Dict[str, Any]],
                   fields: bool = True) -> Planner:
    """
    Fold a server response into a copy of planner.

    Server-generated ids always replace local ones. Other fields are only
    merged when fields=True; positions and child collections stay local.
    """
    if not data:
        return planner
    result = planner.copy()

    if isinstance(command, cmds.UpdatePlanner):
        if fields:
            _merge_planner_fields(result, data)
        return result

    lane_id = None
    if isinstance(command, (cmds.AddLane, cmds.UpdateLane)):
        lane_id = command.lane_id
    elif isinstance(command, cmds.SplitLane):
        lane_id = command.new_lane_id
    if lane_id is not None:
        server_id = str(data.get("id") or lane_id)
        rewrite_lane_id(result, lane_id, server_id)
        lane = result.find_lane(server_id)
        if lane is not None and fields:
            _merge_lane_fields(lane, data)
        return result

    if isinstance(command, (cmds.AddCard, cmds.UpdateCard, cmds.MoveCard)):
        server_id = str(data.get("id") or command.card_id)
        rewrite_card_id(result, command.card_id, server_id)
        located = result.find_card(server_id)
        if located is not None and fields:
            lane, index = located
            _merge_card_fields(lane.cards[index], data)
    return result


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Backend calls per command
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _call_update_planner(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    return api.update_planner(p.before.id, c.title, c.description)


def _call_add_lane(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    lane = p.after.find_lane(c.lane_id)
    return api.add_lane(p.before.id, c.title, c.description, lane.position, c.color or None)


def _call_update_lane(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    return api.update_lane(p.before.id, c.lane_id, c.title, c.description, c.color or None)


def _call_delete_lane(api: PlannerApiClient, p: PendingMutation):
    return api.delete_lane(p.before.id, p.command.lane_id)


def _call_split_lane(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    original = p.before.find_lane(c.lane_id)
    index = clamp(c.split_index, 0, len(original.cards))
    return api.split_lane(p.before.id, c.lane_id, c.new_title, c.new_description, index,
                          c.new_color or None)


def _call_unsplit_lane(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    return api.unsplit_lane(p.before.id, c.lane_id, c.target_lane_id)


def _call_reorder_lanes(api: PlannerApiClient, p: PendingMutation):
    return api.reorder_lanes(p.before.id, [lane.id for lane in p.after.lanes])


def _call_add_card(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    _, index = p.after.find_card(c.card_id)
    return api.add_card(p.before.id, c.lane_id, c.title, c.content, index)


def _call_update_card(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    lane, _ = p.before.find_card(c.card_id)
    return api.update_card(p.before.id, lane.id, c.card_id, c.title, c.content)


def _call_delete_card(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    lane, _ = p.before.find_card(c.card_id)
    return api.delete_card(p.before.id, lane.id, c.card_id)


def _call_move_card(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    _, index = p.after.find_card(c.card_id)
    return api.move_card(p.before.id, c.card_id, c.dest_lane_id, index)


def _call_reorder_cards(api: PlannerApiClient, p: PendingMutation):
    c = p.command
    lane = p.after.find_lane(c.lane_id)
    return api.reorder_cards(p.before.id, c.lane_id, [card.id for card in lane.cards])


REMOTE_CALLS: Dict[type, Callable[[PlannerApiClient, PendingMutation], Any]] = {
    cmds.UpdatePlanner: _call_update_planner,
    cmds.AddLane: _call_add_lane,
    cmds.UpdateLane: _call_update_lane,
    cmds.DeleteLane: _call_delete_lane,
    cmds.SplitLane: _call_split_lane,
    cmds.UnsplitLane: _call_unsplit_lane,
    cmds.MoveLaneGroup: _call_reorder_lanes,
    cmds.ReorderLanes: _call_reorder_lanes,
    cmds.AddCard: _call_add_card,
    cmds.UpdateCard: _call_update_card,
    cmds.DeleteCard: _call_delete_card,
    cmds.MoveCard: _call_move_card,
    cmds.ReorderCards: _call_reorder_cards,
}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Coordinator
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SyncCoordinator:
    """Runs commands optimistically against a PlannerStore and the backend."""

    def __init__(
        self,
        store: PlannerStore,
        api: Optional[PlannerApiClient] = None,
        discard_stale_confirmations: bool = True,
    ):
        self.store = store
        self.api = api
        self.discard_stale = discard_stale_confirmations
        self.subscribers: Dict[str, list] = {}
        self.last_error: Optional[PlannerError] = None
        self._versions: Dict[str, int] = {}
        self._sequence = 0
        self._journal: List[JournalStep] = []
        self._base: Optional[Planner] = None
        self._outstanding: Set[int] = set()

    def reset(self) -> None:
        """Forget the journal; used when a different planner is opened."""
        self._journal = []
        self._base = None
        self._outstanding.clear()

    # ── Events ───────────────────────────────────────────────

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    # ── Pipeline ─────────────────────────────────────────────

    def needs_network(self, command: cmds.Command, planner: Planner) -> bool:
        if self.api is None:
            return False
        return not any(is_temp_id(ref) for ref in command.remote_refs(planner))

    def begin(self, command: cmds.Command) -> PendingMutation:
        """
        Apply a command locally.

        Raises:
            ValidationError before anything changes when the command does
            not fit the current planner.
        """
        before = self.store.snapshot()
        after = self.store.apply(command).copy()

        self._sequence += 1
        versions = {}
        for key in command.keys():
            self._versions[key] = self._versions.get(key, 0) + 1
            versions[key] = self._versions[key]

        pending = PendingMutation(command, before, after, self._sequence, versions)
        if not self.needs_network(command, before):
            pending.status = SyncStatus.BYPASSED
        else:
            self._outstanding.add(pending.sequence)
        if not self._journal:
            self._base = before
        self._journal.append(JournalStep(pending))
        self._emit("mutation_applied", command=command, planner=after)
        return pending

    def call_backend(self, pending: PendingMutation) -> Any:
        """Issue the backend request for a pending mutation. Raises Network/BackendError."""
        handler = REMOTE_CALLS[type(pending.command)]
        return handler(self.api, pending)

    def is_stale(self, pending: PendingMutation) -> bool:
        return any(
            self._versions.get(key, 0) > version for key, version in pending.versions.items()
        )

    def settle(
        self,
        pending: PendingMutation,
        response: Optional[Dict[str, Any]] = None,
        error: Optional[PlannerError] = None,
    ) -> SyncResult:
        """Finish a pending mutation with the backend's answer."""
        self._outstanding.discard(pending.sequence)
        try:
            return self._settle(pending, response, error)
        finally:
            if not self._outstanding:
                self.reset()

    def _settle(self, pending, response, error) -> SyncResult:
        command = pending.command

        if pending.status == SyncStatus.BYPASSED:
            logger.debug(f"{command.name} kept local (temp entity or offline)")
            return SyncResult(command, SyncStatus.BYPASSED, self.store.planner)

        if pending.status == SyncStatus.ROLLED_BACK:
            # Already dropped along with an earlier failure
            logger.info(f"{command.name} answered after it was rolled back; ignoring")
            return SyncResult(command, SyncStatus.ROLLED_BACK, self.store.planner, error)

        if error is not None:
            self.last_error = error
            if self.discard_stale:
                self._replay_without(pending)
            else:
                self.store.restore(pending.before)
                pending.status = SyncStatus.ROLLED_BACK
            logger.warning(f"{command.name} rolled back: {error}")
            self._emit("sync_failed", command=command, error=error)
            return SyncResult(command, SyncStatus.ROLLED_BACK, self.store.planner, error)

        stale = self.discard_stale and self.is_stale(pending)
        merged = merge_response(self.store.planner, command, response, fields=not stale)
        if merged is not self.store.planner:
            self.store.replace(merged, notify=False)
            self._journal.append(JournalStep(pending, response, fields=not stale))
        pending.status = SyncStatus.STALE if stale else SyncStatus.CONFIRMED
        if stale:
            logger.info(f"{command.name} confirmation superseded by a newer local change")
        self._emit("mutation_confirmed", command=command, planner=self.store.planner)
        return SyncResult(command, pending.status, self.store.planner)

    def _replay_without(self, failed: PendingMutation) -> None:
        """Rebuild the planner from the journal with failed (and whatever needed it) left out."""
        failed.status = SyncStatus.ROLLED_BACK
        if self._base is None or not any(step.pending is failed for step in self._journal):
            logger.info(f"{failed.command.name} predates the open planner; nothing to undo")
            return

        state = self._base.copy()
        kept = []
        for step in self._journal:
            if step.pending.status == SyncStatus.ROLLED_BACK:
                continue
            if step.is_apply:
                try:
                    state = cmds.reduce(state, step.pending.command)
                except ValidationError as e:
                    step.pending.status = SyncStatus.ROLLED_BACK
                    logger.warning(f"{step.pending.command.name} dropped with {failed.command.name}: {e}")
                    continue
            else:
                state = merge_response(state, step.pending.command, step.response, fields=step.fields)
            kept.append(step)
        self._journal = kept
        self.store.restore(state)

    def dispatch(self, command: cmds.Command) -> SyncResult:
        """Apply a command, confirm it with the backend, roll back on failure."""
        pending = self.begin(command)
        if pending.status == SyncStatus.BYPASSED:
            return self.settle(pending)
        try:
            response = self.call_backend(pending)
        except (NetworkError, BackendError) as e:
            return self.settle(pending, error=e)
        return self.settle(pending, response=response)

    def dispatch_all(self, commands: List[cmds.Command]) -> List[SyncResult]:
        return [self.dispatch(command) for command in commands]

    def save_metadata(self) -> SyncResult:
        """
        Push the planner's title/description to the backend.

        Used by the auto-saver. Nothing is applied locally, so a failure has
        nothing to roll back; it is surfaced the same way as other failures.
        """
        planner = self.store.planner
        command = cmds.UpdatePlanner(planner.title, planner.description)
        if not self.needs_network(command, planner):
            return SyncResult(command, SyncStatus.BYPASSED, planner)
        try:
            response = self.api.update_planner(planner.id, planner.title, planner.description)
        except (NetworkError, BackendError) as e:
            self.last_error = e
            logger.error(f"Saving planner {planner.id} failed: {e}")
            self._emit("sync_failed", command=command, error=e)
            return SyncResult(command, SyncStatus.FAILED, planner, e)

        merged = merge_response(self.store.planner, command, response)
        if merged is not self.store.planner:
            self.store.replace(merged, notify=False)
        return SyncResult(command, SyncStatus.CONFIRMED, self.store.planner)
