"""
Planner board schema.

Aggregate layout:
  Planner → Lane[] → Card[]

Lanes sharing a template_lane_id form a split group. The lane whose
template_lane_id is unset (or equal to its own id) anchors the group; every
other member is a sibling of that anchor.

Ids starting with "temp-" belong to entities the backend has never seen.
They are managed locally only.
"""
import copy
import time
import uuid
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple, Union


TEMP_PREFIX = "temp-"
TEMP_LANE_PREFIX = "temp-lane-"
TEMP_CARD_PREFIX = "temp-card-"


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def is_temp_id(entity_id: Optional[str]) -> bool:
    """True for client-only ids that were never persisted."""
    return bool(entity_id) and str(entity_id).startswith(TEMP_PREFIX)


def make_temp_id(prefix: str = TEMP_PREFIX) -> str:
    """Generate a unique client-only id (ms timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"{prefix}{ts}-{rand}"


class TemplateType(Enum):
    """Board flavours offered by the template catalog."""
    KANBAN = "kanban"
    SCRUM = "scrum"
    PERSONAL = "personal"

    @classmethod
    def from_str(cls, value: str) -> "TemplateType":
        try:
            return cls[(value or "").upper()]
        except KeyError:
            return cls.PERSONAL


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Group roles
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass(frozen=True)
class Anchor:
    """A lane that defines its own split group."""
    id: str

    @property
    def group_key(self) -> str:
        return self.id


@dataclass(frozen=True)
class Sibling:
    """A lane split off from the anchor named by anchor_id."""
    id: str
    anchor_id: str

    @property
    def group_key(self) -> str:
        return self.anchor_id


GroupRole = Union[Anchor, Sibling]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board entities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class Card:
    """A single item on the board. Owned by exactly one lane."""

    id: str
    lane_id: str
    fields: Dict[str, str] = field(default_factory=dict)
    position: int = 0
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        self.fields.setdefault("title", "")
        self.fields.setdefault("content", "")

    @property
    def title(self) -> str:
        return self.fields.get("title", "")

    @property
    def content(self) -> str:
        return self.fields.get("content", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lane_id": self.lane_id,
            "fields": dict(self.fields),
            "position": self.position,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        """Deserialize from dict. Accepts both nested `fields` and flat title/content."""
        fields = {str(k): "" if v is None else str(v) for k, v in (data.get("fields") or {}).items()}
        for key in ("title", "content"):
            if key not in fields and data.get(key) is not None:
                fields[key] = str(data[key])
        return cls(
            id=str(data.get("id", "")),
            lane_id=str(data.get("lane_id", "")),
            fields=fields,
            position=int(data.get("position") or 0),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )


@dataclass
class Lane:
    """A column of ordered cards."""

    id: str
    planner_id: str
    title: str
    description: str = ""
    position: int = 0
    color: str = ""
    template_lane_id: Optional[str] = None
    cards: List[Card] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def group_key(self) -> str:
        """Key shared by every lane of the same split group."""
        return self.template_lane_id or self.id

    @property
    def role(self) -> GroupRole:
        if not self.template_lane_id or self.template_lane_id == self.id:
            return Anchor(self.id)
        return Sibling(self.id, self.template_lane_id)

    def copy(self) -> "Lane":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "planner_id": self.planner_id,
            "template_lane_id": self.template_lane_id,
            "title": self.title,
            "description": self.description,
            "position": self.position,
            "color": self.color,
            "cards": [c.to_dict() for c in self.cards],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lane":
        cards = [Card.from_dict(c) for c in data.get("cards") or []]
        cards.sort(key=lambda c: c.position)
        return cls(
            id=str(data.get("id", "")),
            planner_id=str(data.get("planner_id", "")),
            title=data.get("title") or "",
            description=data.get("description") or "",
            position=int(data.get("position") or 0),
            color=data.get("color") or "",
            template_lane_id=data.get("template_lane_id") or None,
            cards=cards,
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )


@dataclass
class Planner:
    """Root aggregate: one board with its lanes."""

    id: str
    title: str
    description: str = ""
    template_id: str = ""
    lanes: List[Lane] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_temporary(self) -> bool:
        return is_temp_id(self.id)

    def copy(self) -> "Planner":
        return copy.deepcopy(self)

    def find_lane(self, lane_id: str) -> Optional[Lane]:
        for lane in self.lanes:
            if lane.id == lane_id:
                return lane
        return None

    def find_card(self, card_id: str) -> Optional[Tuple[Lane, int]]:
        """Return (owning lane, index in that lane) or None."""
        for lane in self.lanes:
            for index, card in enumerate(lane.cards):
                if card.id == card_id:
                    return lane, index
        return None

    def card_count(self) -> int:
        return sum(len(lane.cards) for lane in self.lanes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "template_id": self.template_id,
            "lanes": [lane.to_dict() for lane in self.lanes],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Planner":
        lanes = [Lane.from_dict(l) for l in data.get("lanes") or []]
        lanes.sort(key=lambda l: l.position)
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            description=data.get("description") or "",
            template_id=data.get("template_id") or "",
            lanes=lanes,
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Templates
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class TemplateLane:
    """A predefined lane of a template."""
    id: str
    template_id: str
    name: str
    description: str = ""
    position: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplateLane":
        return cls(
            id=str(data.get("id", "")),
            template_id=str(data.get("template_id", "")),
            name=data.get("name") or "",
            description=data.get("description") or "",
            position=int(data.get("position") or 0),
        )


@dataclass
class PlannerTemplate:
    """A board template (scrum, kanban, personal)."""
    id: str
    name: str
    type: TemplateType = TemplateType.PERSONAL
    description: str = ""
    lanes: List[TemplateLane] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannerTemplate":
        lanes = [TemplateLane.from_dict(l) for l in data.get("lanes") or []]
        lanes.sort(key=lambda l: l.position)
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            type=TemplateType.from_str(data.get("type", "")),
            description=data.get("description") or "",
            lanes=lanes,
        )
