"""
Planner commands and the reducer.

A command is a small immutable value describing one user action. The
reducer turns (Planner, Command) into a new Planner without side effects,
so every mutation can be replayed, tested, and rolled back.

Ids of entities a command creates (new lanes, cards, split lanes) are
chosen when the command is built, so reducing the same command twice
gives the same result. They start out as temp ids; the sync layer swaps
in the server ids once the backend confirms.
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Callable, Tuple

from . import ordering
from .errors import ValidationError
from .schema import (
    Planner,
    Lane,
    Card,
    make_temp_id,
    TEMP_LANE_PREFIX,
    TEMP_CARD_PREFIX,
)
from .split import split_lane, apply_split, unsplit_lane


def _require_title(title: Optional[str], what: str) -> None:
    if not title or not title.strip():
        raise ValidationError(f"{what} title is required")


def _require_lane(planner: Planner, lane_id: str) -> Lane:
    lane = planner.find_lane(lane_id)
    if lane is None:
        raise ValidationError(f"Lane {lane_id} not found in planner {planner.id}")
    return lane


def _require_card(planner: Planner, card_id: str) -> Tuple[Lane, int]:
    located = planner.find_card(card_id)
    if located is None:
        raise ValidationError(f"Card {card_id} not found in planner {planner.id}")
    return located


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Command types
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Command:
    """
    Base for all commands.

    Subclasses define:
        validate(planner)    raise ValidationError when the command can't apply
        remote_refs(planner) ids the backend must already know for a network call
        keys()               entity keys used for stale-confirmation tracking
    """

    def validate(self, planner: Planner) -> None:
        pass

    def remote_refs(self, planner: Planner) -> List[str]:
        return [planner.id]

    def keys(self) -> List[str]:
        return []

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class UpdatePlanner(Command):
    title: str
    description: str = ""

    def validate(self, planner):
        _require_title(self.title, "Planner")

    def keys(self):
        return ["planner"]


@dataclass(frozen=True)
class AddLane(Command):
    title: str
    description: str = ""
    position: Optional[int] = None
    color: str = ""
    lane_id: str = field(default_factory=lambda: make_temp_id(TEMP_LANE_PREFIX))

    def validate(self, planner):
        _require_title(self.title, "Lane")

    def keys(self):
        return [self.lane_id]


@dataclass(frozen=True)
class UpdateLane(Command):
    lane_id: str
    title: str
    description: str = ""
    color: Optional[str] = None

    def validate(self, planner):
        _require_lane(planner, self.lane_id)
        _require_title(self.title, "Lane")

    def remote_refs(self, planner):
        return [planner.id, self.lane_id]

    def keys(self):
        return [self.lane_id]


@dataclass(frozen=True)
class DeleteLane(Command):
    lane_id: str

    def validate(self, planner):
        _require_lane(planner, self.lane_id)

    def remote_refs(self, planner):
        return [planner.id, self.lane_id]

    def keys(self):
        return [self.lane_id]


@dataclass(frozen=True)
class SplitLane(Command):
    lane_id: str
    new_title: str
    new_description: str = ""
    split_index: int = 0
    new_color: str = ""
    new_lane_id: str = field(default_factory=lambda: make_temp_id(TEMP_LANE_PREFIX))

    def validate(self, planner):
        _require_lane(planner, self.lane_id)
        _require_title(self.new_title, "Split lane")
        if self.split_index < 0:
            raise ValidationError(f"Split position must be >= 0, got: {self.split_index}")

    def remote_refs(self, planner):
        return [planner.id, self.lane_id]

    def keys(self):
        return [self.lane_id, self.new_lane_id]


@dataclass(frozen=True)
class UnsplitLane(Command):
    lane_id: str
    target_lane_id: str

    def validate(self, planner):
        _require_lane(planner, self.lane_id)
        _require_lane(planner, self.target_lane_id)
        if self.lane_id == self.target_lane_id:
            raise ValidationError("Cannot merge a lane into itself")

    def remote_refs(self, planner):
        return [planner.id, self.lane_id, self.target_lane_id]

    def keys(self):
        return [self.lane_id, self.target_lane_id]


@dataclass(frozen=True)
class MoveLaneGroup(Command):
    """Drag a split group (identified by any member lane) to a new group slot."""
    lane_id: str
    dest_group_index: int

    def validate(self, planner):
        _require_lane(planner, self.lane_id)

    def remote_refs(self, planner):
        return [planner.id] + [lane.id for lane in planner.lanes]

    def keys(self):
        return ["lane-order"]


@dataclass(frozen=True)
class ReorderLanes(Command):
    lane_ids: Tuple[str, ...]

    def remote_refs(self, planner):
        return [planner.id] + [lane.id for lane in planner.lanes]

    def keys(self):
        return ["lane-order"]


@dataclass(frozen=True)
class AddCard(Command):
    lane_id: str
    title: str
    content: str = ""
    position: Optional[int] = None
    card_id: str = field(default_factory=lambda: make_temp_id(TEMP_CARD_PREFIX))

    def validate(self, planner):
        _require_lane(planner, self.lane_id)
        _require_title(self.title, "Card")

    def remote_refs(self, planner):
        return [planner.id, self.lane_id]

    def keys(self):
        return [self.card_id]


@dataclass(frozen=True)
class UpdateCard(Command):
    card_id: str
    title: str
    content: str = ""

    def validate(self, planner):
        _require_card(planner, self.card_id)
        _require_title(self.title, "Card")

    def remote_refs(self, planner):
        located = planner.find_card(self.card_id)
        lane_id = located[0].id if located else ""
        return [planner.id, lane_id, self.card_id]

    def keys(self):
        return [self.card_id]


@dataclass(frozen=True)
class DeleteCard(Command):
    card_id: str

    def validate(self, planner):
        _require_card(planner, self.card_id)

    def remote_refs(self, planner):
        located = planner.find_card(self.card_id)
        lane_id = located[0].id if located else ""
        return [planner.id, lane_id, self.card_id]

    def keys(self):
        return [self.card_id]


@dataclass(frozen=True)
class MoveCard(Command):
    card_id: str
    dest_lane_id: str
    dest_index: int

    def validate(self, planner):
        _require_card(planner, self.card_id)
        _require_lane(planner, self.dest_lane_id)

    def remote_refs(self, planner):
        return [planner.id, self.card_id, self.dest_lane_id]

    def keys(self):
        return [self.card_id]


@dataclass(frozen=True)
class ReorderCards(Command):
    lane_id: str
    card_ids: Tuple[str, ...]

    def validate(self, planner):
        _require_lane(planner, self.lane_id)

    def remote_refs(self, planner):
        lane = planner.find_lane(self.lane_id)
        return [planner.id, self.lane_id] + [c.id for c in (lane.cards if lane else [])]

    def keys(self):
        return [f"card-order:{self.lane_id}"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Reducer
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _update_planner(planner: Planner, cmd: UpdatePlanner) -> Planner:
    result = planner.copy()
    result.title = cmd.title
    result.description = cmd.description or ""
    return result


def _add_lane(planner: Planner, cmd: AddLane) -> Planner:
    lane = Lane(
        id=cmd.lane_id,
        planner_id=planner.id,
        title=cmd.title,
        description=cmd.description or "",
        color=cmd.color or "",
    )
    return ordering.insert_lane(planner, lane, cmd.position)


def _update_lane(planner: Planner, cmd: UpdateLane) -> Planner:
    result = planner.copy()
    lane = result.find_lane(cmd.lane_id)
    lane.title = cmd.title
    lane.description = cmd.description or ""
    if cmd.color is not None:
        lane.color = cmd.color
    return result


def _delete_lane(planner: Planner, cmd: DeleteLane) -> Planner:
    return ordering.remove_lane(planner, cmd.lane_id)


def _split_lane(planner: Planner, cmd: SplitLane) -> Planner:
    original, new_lane = split_lane(
        planner.find_lane(cmd.lane_id),
        cmd.new_title,
        cmd.new_description,
        cmd.split_index,
        cmd.new_color,
        new_lane_id=cmd.new_lane_id,
    )
    return apply_split(planner, original, new_lane)


def _unsplit_lane(planner: Planner, cmd: UnsplitLane) -> Planner:
    return unsplit_lane(planner, cmd.lane_id, cmd.target_lane_id)


def _move_lane_group(planner: Planner, cmd: MoveLaneGroup) -> Planner:
    return ordering.reorder_lane_groups(planner, cmd.lane_id, cmd.dest_group_index)


def _reorder_lanes(planner: Planner, cmd: ReorderLanes) -> Planner:
    return ordering.reorder_lanes(planner, cmd.lane_ids)


def _add_card(planner: Planner, cmd: AddCard) -> Planner:
    card = Card(
        id=cmd.card_id,
        lane_id=cmd.lane_id,
        fields={"title": cmd.title, "content": cmd.content or ""},
    )
    return ordering.insert_card(planner, cmd.lane_id, card, cmd.position)


def _update_card(planner: Planner, cmd: UpdateCard) -> Planner:
    result = planner.copy()
    lane, index = result.find_card(cmd.card_id)
    card = lane.cards[index]
    card.fields["title"] = cmd.title
    card.fields["content"] = cmd.content or ""
    return result


def _delete_card(planner: Planner, cmd: DeleteCard) -> Planner:
    return ordering.remove_card(planner, cmd.card_id)


def _move_card(planner: Planner, cmd: MoveCard) -> Planner:
    return ordering.move_card(planner, cmd.card_id, cmd.dest_lane_id, cmd.dest_index)


def _reorder_cards(planner: Planner, cmd: ReorderCards) -> Planner:
    return ordering.reorder_cards(planner, cmd.lane_id, cmd.card_ids)


REDUCERS: Dict[type, Callable[[Planner, Command], Planner]] = {
    UpdatePlanner: _update_planner,
    AddLane: _add_lane,
    UpdateLane: _update_lane,
    DeleteLane: _delete_lane,
    SplitLane: _split_lane,
    UnsplitLane: _unsplit_lane,
    MoveLaneGroup: _move_lane_group,
    ReorderLanes: _reorder_lanes,
    AddCard: _add_card,
    UpdateCard: _update_card,
    DeleteCard: _delete_card,
    MoveCard: _move_card,
    ReorderCards: _reorder_cards,
}


def reduce(planner: Planner, command: Command) -> Planner:
    """
    Apply a command to a planner and return the new planner.

    Raises:
        ValidationError if the command does not fit the planner; the input
        is never modified.
    """
    handler = REDUCERS.get(type(command))
    if handler is None:
        raise ValidationError(f"Unknown command: {type(command).__name__}")
    command.validate(planner)
    return handler(planner, command)
