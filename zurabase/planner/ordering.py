"""
Ordering rules for lanes and cards.

All functions here are pure: they never modify their input and return a
new Planner/Lane. Unknown ids are a no-op that returns the input unchanged,
and out-of-range indices are clamped (append semantics).

Position invariants maintained:
  - cards:  lane.cards[i].position == i
  - lanes:  groups ordered by their minimum position, members by their own
            position, flattened order numbered 0..m-1
"""
import copy
from typing import List, Dict, Optional, Iterable

from .schema import Planner, Lane, Card


def clamp(index: int, lower: int, upper: int) -> int:
    return max(lower, min(int(index), upper))


def _reindex(lane: Lane) -> None:
    for i, card in enumerate(lane.cards):
        card.position = i


def _apply_lane_order(planner: Planner, ordered: List[Lane]) -> None:
    for i, lane in enumerate(ordered):
        lane.position = i
    planner.lanes = ordered


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cards
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def reindex_cards(lane: Lane) -> Lane:
    """Renumber card positions to match list order."""
    result = lane.copy()
    _reindex(result)
    return result


def move_card(planner: Planner, card_id: str, dest_lane_id: str, dest_index: int) -> Planner:
    """
    Move a card to dest_lane_id at dest_index.

    Same-lane moves are the special case source == destination; the index
    then refers to the lane after the card was taken out.
    """
    if planner.find_card(card_id) is None or planner.find_lane(dest_lane_id) is None:
        return planner

    result = planner.copy()
    source, index = result.find_card(card_id)
    dest = result.find_lane(dest_lane_id)

    card = source.cards.pop(index)
    _reindex(source)

    card.lane_id = dest.id
    dest.cards.insert(clamp(dest_index, 0, len(dest.cards)), card)
    _reindex(dest)
    return result


def reorder_cards(planner: Planner, lane_id: str, card_ids: Iterable[str]) -> Planner:
    """
    Put the cards named in card_ids first, in that order.

    Cards of the lane that are not named keep their relative order after
    them; ids that are not in the lane are ignored.
    """
    if planner.find_lane(lane_id) is None:
        return planner

    result = planner.copy()
    lane = result.find_lane(lane_id)
    by_id = {card.id: card for card in lane.cards}
    ordered = []
    for card_id in card_ids:
        card = by_id.pop(card_id, None)
        if card is not None:
            ordered.append(card)
    ordered.extend(card for card in lane.cards if card.id in by_id)
    lane.cards = ordered
    _reindex(lane)
    return result


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Lanes and split groups
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def lane_groups(planner: Planner) -> List[List[Lane]]:
    """
    Group lanes by their group key in visible order.

    Members are sorted by position; groups by their smallest member
    position. Ties fall back to the order lanes appear in planner.lanes.
    """
    arrival = {id(lane): i for i, lane in enumerate(planner.lanes)}
    groups: Dict[str, List[Lane]] = {}
    for lane in planner.lanes:
        groups.setdefault(lane.role.group_key, []).append(lane)

    def sort_key(lane: Lane):
        return (lane.position, arrival[id(lane)])

    for members in groups.values():
        members.sort(key=sort_key)
    return sorted(groups.values(), key=lambda members: sort_key(members[0]))


def visible_lanes(planner: Planner) -> List[Lane]:
    """Lanes in the order they render: groups flattened."""
    return [lane for group in lane_groups(planner) for lane in group]


def renumber_lanes(planner: Planner) -> Planner:
    """Reorder planner.lanes into visible order and number them 0..m-1."""
    result = planner.copy()
    _apply_lane_order(result, visible_lanes(result))
    return result


def reorder_lane_groups(planner: Planner, dragged_anchor_id: str, dest_group_index: int) -> Planner:
    """
    Move the whole group containing dragged_anchor_id to dest_group_index.

    Any member id of the group identifies it. Positions are renumbered
    across all lanes afterwards.
    """
    dragged = planner.find_lane(dragged_anchor_id)
    if dragged is None:
        return planner

    result = planner.copy()
    groups = lane_groups(result)
    key = dragged.group_key
    current = next(i for i, members in enumerate(groups) if members[0].group_key == key)
    moving = groups.pop(current)
    groups.insert(clamp(dest_group_index, 0, len(groups)), moving)
    _apply_lane_order(result, [lane for members in groups for lane in members])
    return result


def reorder_lanes(planner: Planner, lane_ids: Iterable[str]) -> Planner:
    """
    Apply an explicit lane order, keeping split groups contiguous.

    Lanes named in lane_ids take the first positions in that order; the
    rest follow. Group contiguity is then restored by renumbering.
    """
    result = planner.copy()
    by_id = {lane.id: lane for lane in result.lanes}
    ordered = []
    for lane_id in lane_ids:
        lane = by_id.pop(lane_id, None)
        if lane is not None:
            ordered.append(lane)
    ordered.extend(lane for lane in result.lanes if lane.id in by_id)
    _apply_lane_order(result, ordered)
    return renumber_lanes(result)


def insert_lane(planner: Planner, lane: Lane, position: Optional[int] = None) -> Planner:
    """
    Insert a lane at the given board position (default: the end).

    Lanes at or after that position shift right by one.
    """
    result = planner.copy()
    new_lane = lane.copy()
    target = len(result.lanes) if position is None else clamp(position, 0, len(result.lanes))
    for existing in result.lanes:
        if existing.position >= target:
            existing.position += 1
    new_lane.position = target
    result.lanes.append(new_lane)
    return renumber_lanes(result)


def remove_lane(planner: Planner, lane_id: str) -> Planner:
    """Delete a lane with its cards. Remaining siblings keep their group."""
    if planner.find_lane(lane_id) is None:
        return planner
    result = planner.copy()
    result.lanes = [lane for lane in result.lanes if lane.id != lane_id]
    return renumber_lanes(result)


def insert_card(planner: Planner, lane_id: str, card: Card, position: Optional[int] = None) -> Planner:
    """Insert a card into a lane at position (default: the end)."""
    if planner.find_lane(lane_id) is None:
        return planner
    result = planner.copy()
    lane = result.find_lane(lane_id)
    new_card = copy.deepcopy(card)
    new_card.lane_id = lane_id
    target = len(lane.cards) if position is None else clamp(position, 0, len(lane.cards))
    lane.cards.insert(target, new_card)
    _reindex(lane)
    return result


def remove_card(planner: Planner, card_id: str) -> Planner:
    if planner.find_card(card_id) is None:
        return planner
    result = planner.copy()
    lane, index = result.find_card(card_id)
    lane.cards.pop(index)
    _reindex(lane)
    return result
