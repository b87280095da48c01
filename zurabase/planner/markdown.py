"""
Markdown export/import for planners.

    # <planner title>

    <planner description>

    ## <lane title>

    <lane description>

    ### <card title>

    <card content>

Lanes come out in visible (group) order and cards in position order.
Body lines that start with "#" are escaped with a leading backslash so
they cannot be mistaken for headings; import strips exactly one.
"""
import re
from typing import List, Optional

from .ordering import visible_lanes
from .schema import (
    Card,
    Lane,
    Planner,
    TEMP_CARD_PREFIX,
    TEMP_LANE_PREFIX,
    TEMP_PREFIX,
    make_temp_id,
    utc_now,
)

DEFAULT_TITLE = "Imported planner"

_HEADING = re.compile(r"^(#{1,3}) (.*)$")
_ESCAPED = re.compile(r"^\\*#")


def _one_line(text: str) -> str:
    return " ".join((text or "").split())


def _escape(body: str) -> List[str]:
    return ["\\" + line if _ESCAPED.match(line) else line for line in body.splitlines()]


def _unescape(line: str) -> str:
    return line[1:] if line.startswith("\\") and _ESCAPED.match(line[1:]) else line


def _block(lines: List[str]) -> str:
    """Join body lines, dropping blank lines at either end."""
    while lines and not lines[0].strip():
        lines = lines[1:]
    while lines and not lines[-1].strip():
        lines = lines[:-1]
    return "\n".join(_unescape(line) for line in lines)


def export_markdown(planner: Planner) -> str:
    out = [f"# {_one_line(planner.title)}", ""]
    if planner.description.strip():
        out += _escape(planner.description) + [""]

    for lane in visible_lanes(planner):
        out += [f"## {_one_line(lane.title)}", ""]
        if lane.description.strip():
            out += _escape(lane.description) + [""]
        for card in sorted(lane.cards, key=lambda c: c.position):
            out += [f"### {_one_line(card.title)}", ""]
            if card.content.strip():
                out += _escape(card.content) + [""]

    return "\n".join(out).rstrip("\n") + "\n"


def import_markdown(text: str, template_id: str = "", planner_id: Optional[str] = None) -> Planner:
    """
    Parse exported markdown into a new local planner.

    Every entity gets a temp- id; the planner is not known to the backend
    until it is created there.
    """
    now = utc_now()
    planner = Planner(
        id=planner_id or make_temp_id(TEMP_PREFIX),
        title="",
        template_id=template_id or "",
        created_at=now,
        updated_at=now,
    )

    body: List[str] = []
    lane: Optional[Lane] = None
    card: Optional[Card] = None

    def close():
        text_block = _block(body)
        if card is not None:
            card.fields["content"] = text_block
        elif lane is not None:
            lane.description = text_block
        else:
            planner.description = text_block
        body.clear()

    for line in (text or "").splitlines():
        match = _HEADING.match(line)
        if not match:
            body.append(line)
            continue

        close()
        level, title = len(match.group(1)), match.group(2).strip()
        if level == 1:
            planner.title = title
            lane, card = None, None
        elif level == 2:
            lane = Lane(
                id=make_temp_id(TEMP_LANE_PREFIX),
                planner_id=planner.id,
                title=title,
                position=len(planner.lanes),
                created_at=now,
                updated_at=now,
            )
            planner.lanes.append(lane)
            card = None
        else:
            if lane is None:
                # Cards before any lane heading get a lane of their own
                lane = Lane(
                    id=make_temp_id(TEMP_LANE_PREFIX),
                    planner_id=planner.id,
                    title="Cards",
                    position=len(planner.lanes),
                    created_at=now,
                    updated_at=now,
                )
                planner.lanes.append(lane)
            card = Card(
                id=make_temp_id(TEMP_CARD_PREFIX),
                lane_id=lane.id,
                fields={"title": title, "content": ""},
                position=len(lane.cards),
                created_at=now,
                updated_at=now,
            )
            lane.cards.append(card)
    close()

    if not planner.title:
        planner.title = DEFAULT_TITLE
    return planner
