"""
Lane splitting.

Splitting a lane moves the cards from split_index onward into a new lane
that joins the original's split group. The pair always renders together:
the new lane is placed directly after the original inside the group.

Card-count conservation: len(original.cards) before the split equals
len(kept) + len(moved) after it.
"""
import logging
from typing import Optional, Tuple

from .ordering import clamp, renumber_lanes, visible_lanes, _reindex, _apply_lane_order
from .schema import Planner, Lane, make_temp_id, utc_now, TEMP_LANE_PREFIX

logger = logging.getLogger(__name__)


def split_lane(
    lane: Lane,
    new_title: str,
    new_description: str = "",
    split_index: int = 0,
    new_color: str = "",
    new_lane_id: Optional[str] = None,
) -> Tuple[Lane, Lane]:
    """
    Split lane at split_index.

    Returns (updated original, new lane). Both carry the same group key;
    the original becomes the anchor when it was not linked yet. split_index
    is clamped to [0, len(cards)].
    """
    original = lane.copy()
    group_key = original.template_lane_id or original.id
    index = clamp(split_index, 0, len(original.cards))

    kept, moved = original.cards[:index], original.cards[index:]
    now = utc_now()
    new_lane = Lane(
        id=new_lane_id or make_temp_id(TEMP_LANE_PREFIX),
        planner_id=original.planner_id,
        title=new_title,
        description=new_description or "",
        position=original.position + 1,
        color=new_color or original.color,
        template_lane_id=group_key,
        cards=moved,
        created_at=now,
        updated_at=now,
    )
    for card in new_lane.cards:
        card.lane_id = new_lane.id
    _reindex(new_lane)

    original.cards = kept
    original.template_lane_id = group_key
    _reindex(original)
    return original, new_lane


def apply_split(planner: Planner, updated_original: Lane, new_lane: Lane) -> Planner:
    """
    Put a split result into the planner.

    The new lane is slotted right after the original in visible order, then
    all lane positions are renumbered.
    """
    if planner.find_lane(updated_original.id) is None:
        return planner

    result = planner.copy()
    ordered = []
    for lane in visible_lanes(result):
        if lane.id == updated_original.id:
            ordered.append(updated_original.copy())
            ordered.append(new_lane.copy())
        else:
            ordered.append(lane)
    _apply_lane_order(result, ordered)
    return renumber_lanes(result)


def unsplit_lane(planner: Planner, lane_id: str, target_lane_id: str) -> Planner:
    """
    Merge lane_id back into target_lane_id.

    The source lane's cards are appended to the target in their current
    order, then the source lane is removed and positions renumbered.
    """
    source = planner.find_lane(lane_id)
    target = planner.find_lane(target_lane_id)
    if source is None or target is None or lane_id == target_lane_id:
        return planner

    result = planner.copy()
    source = result.find_lane(lane_id)
    target = result.find_lane(target_lane_id)
    for card in source.cards:
        card.lane_id = target.id
        target.cards.append(card)
    _reindex(target)
    logger.debug(f"Merged {len(source.cards)} cards from lane {lane_id} into {target_lane_id}")
    result.lanes = [lane for lane in result.lanes if lane.id != lane_id]
    return renumber_lanes(result)
