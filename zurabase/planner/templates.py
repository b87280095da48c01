"""
Predefined lane sets for new planners.

A kanban or scrum planner starts with a fixed set of lanes, colored from a
repeating palette. Other template types start with the lanes the template
itself lists, or with none.
"""
import itertools
from typing import Dict, Iterable, List, Optional, Tuple

from .commands import AddLane
from .schema import PlannerTemplate, TemplateType

DEFAULT_COLORS = ["red", "blue", "green", "purple", "orange"]

PRESET_LANES: Dict[TemplateType, List[Tuple[str, str]]] = {
    TemplateType.KANBAN: [
        ("To Do", "Tasks that need to be done"),
        ("In Progress", "Tasks currently being worked on"),
        ("Done", "Completed tasks"),
    ],
    TemplateType.SCRUM: [
        ("Backlog", "Future tasks and features"),
        ("Sprint", "Tasks for current sprint"),
        ("In Progress", "Tasks currently being worked on"),
        ("Testing", "Tasks being tested"),
        ("Done", "Completed tasks"),
    ],
}


def find_template(templates: Iterable[PlannerTemplate], template_id: str) -> Optional[PlannerTemplate]:
    for template in templates:
        if template.id == template_id:
            return template
    return None


def predefined_lanes(template: Optional[PlannerTemplate]) -> List[Tuple[str, str]]:
    """(title, description) pairs a new planner of this template starts with."""
    if template is None:
        return []
    preset = PRESET_LANES.get(template.type)
    if preset is not None:
        return list(preset)
    return [(lane.name, lane.description) for lane in template.lanes]


def lane_commands(
    template: Optional[PlannerTemplate],
    colors: Optional[List[str]] = None,
    fallback_color: str = "",
) -> List[AddLane]:
    """
    AddLane commands for the template's lanes, in board order.

    colors=None uses the default palette; an empty palette gives every lane
    fallback_color.
    """
    if colors is None:
        colors = DEFAULT_COLORS
    palette = itertools.cycle(colors) if colors else None
    commands = []
    for position, (title, description) in enumerate(predefined_lanes(template)):
        color = next(palette) if palette else fallback_color
        commands.append(AddLane(title, description, position=position, color=color))
    return commands
