"""Shared test fixtures for the planner engine tests."""

import json
from unittest.mock import MagicMock

import pytest

from zurabase.planner.schema import Card, Lane, Planner


def make_card(card_id, lane_id, title=None, content="", position=0):
    return Card(
        id=card_id,
        lane_id=lane_id,
        fields={"title": title or card_id.upper(), "content": content},
        position=position,
    )


def make_lane(lane_id, planner_id, card_ids=(), position=0, template_lane_id=None, title=None):
    return Lane(
        id=lane_id,
        planner_id=planner_id,
        title=title or lane_id.upper(),
        position=position,
        color="blue",
        template_lane_id=template_lane_id,
        cards=[make_card(cid, lane_id, position=i) for i, cid in enumerate(card_ids)],
    )


def make_planner(planner_id="p1"):
    """
    p1:
      L1 [a, b, c]
      L2 [d]
      L3 []
    """
    return Planner(
        id=planner_id,
        title="Board",
        description="Test board",
        template_id="kanban-1",
        lanes=[
            make_lane("L1", planner_id, ["a", "b", "c"], position=0),
            make_lane("L2", planner_id, ["d"], position=1),
            make_lane("L3", planner_id, [], position=2),
        ],
    )


def make_response(status=200, data=None, text=None):
    """A stand-in for requests.Response."""
    r = MagicMock()
    r.status_code = status
    r.ok = 200 <= status < 300
    if data is not None:
        body = json.dumps(data)
        r.json.return_value = data
    else:
        body = text or ""
        r.json.side_effect = ValueError("No JSON")
    r.text = body
    r.content = body.encode()
    return r


class FakeClock:
    """Manually advanced clock for debounce tests."""

    def __init__(self, start=100.0):
        self.t = start

    def now(self):
        return self.t

    def advance(self, secs):
        self.t += secs


@pytest.fixture
def planner():
    return make_planner()


@pytest.fixture
def temp_planner():
    return make_planner("temp-123")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    s.request.return_value = make_response(204)
    return s
