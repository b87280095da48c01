"""
Tests for the optimistic sync coordinator.

Covers:
    - dispatch()          - confirm + merge, server id rewrite
    - rollback            - failed call restores the pre-mutation planner
    - temp bypass         - temp planners/lanes never touch the transport
    - stale guard         - out-of-order confirmations
    - failure replay      - a failed command is removed, newer ones kept
    - backend arguments   - positions and clamped split index sent
    - events              - mutation_applied / mutation_confirmed / sync_failed
    - save_metadata()     - auto-save path
"""

from unittest.mock import MagicMock

import pytest

from zurabase.planner import commands as cmds
from zurabase.planner.errors import BackendError, NetworkError, ValidationError
from zurabase.planner.store import PlannerStore
from zurabase.planner.sync import (
    SyncCoordinator,
    SyncStatus,
    merge_response,
    rewrite_lane_id,
)

from conftest import make_planner


def coordinator(planner, api=None, discard_stale=True):
    store = PlannerStore(planner)
    return SyncCoordinator(store, api or MagicMock(), discard_stale_confirmations=discard_stale)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Confirm and merge
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestConfirm:

    def test_add_lane_rewrites_server_id(self, planner):
        """Test a confirmed lane takes the server id"""
        sync = coordinator(planner)
        sync.api.add_lane.return_value = {"id": "99", "title": "Review", "color": "red"}
        command = cmds.AddLane("Review", position=1)
        result = sync.dispatch(command)
        assert result.status == SyncStatus.CONFIRMED
        assert result.ok
        lane = sync.store.planner.find_lane("99")
        assert lane is not None
        assert lane.color == "red"
        assert lane.position == 1
        assert sync.store.planner.find_lane(command.lane_id) is None
        sync.api.add_lane.assert_called_once_with("p1", "Review", "", 1, None)

    def test_add_card_rewrites_server_id(self, planner):
        """Test a confirmed card takes the server id"""
        sync = coordinator(planner)
        sync.api.add_card.return_value = {"id": "500", "title": "New", "content": "srv"}
        command = cmds.AddCard("L2", "New", position=0)
        sync.dispatch(command)
        lane, index = sync.store.planner.find_card("500")
        assert lane.id == "L2"
        assert index == 0
        assert lane.cards[index].content == "srv"
        sync.api.add_card.assert_called_once_with("p1", "L2", "New", "", 0)

    def test_split_sends_clamped_index_and_links_new_lane(self, planner):
        """Test split sends the clamped index and links the new lane"""
        sync = coordinator(planner)
        sync.api.split_lane.return_value = {"id": "100", "template_lane_id": "L1"}
        sync.dispatch(cmds.SplitLane("L1", "Later", split_index=10))
        sync.api.split_lane.assert_called_once_with("p1", "L1", "Later", "", 3, None)
        lanes = sync.store.planner.lanes
        assert [l.id for l in lanes] == ["L1", "100", "L2", "L3"]
        assert lanes[1].template_lane_id == "L1"

    def test_move_card_sends_final_index(self, planner):
        """Test a move sends the final index"""
        sync = coordinator(planner)
        sync.api.move_card.return_value = {"id": "b", "lane_id": "L2"}
        sync.dispatch(cmds.MoveCard("b", "L2", 7))
        sync.api.move_card.assert_called_once_with("p1", "b", "L2", 1)

    def test_reorder_lanes_sends_full_order(self, planner):
        """Test reordering lanes sends the full order"""
        sync = coordinator(planner)
        sync.api.reorder_lanes.return_value = None
        sync.dispatch(cmds.MoveLaneGroup("L3", 0))
        sync.api.reorder_lanes.assert_called_once_with("p1", ["L3", "L1", "L2"])

    def test_delete_card_uses_owning_lane(self, planner):
        """Test deleting a card uses the lane that owns it"""
        sync = coordinator(planner)
        sync.api.delete_card.return_value = None
        result = sync.dispatch(cmds.DeleteCard("d"))
        assert result.status == SyncStatus.CONFIRMED
        sync.api.delete_card.assert_called_once_with("p1", "L2", "d")

    def test_positions_stay_local(self, planner):
        """Test server positions do not override local ones"""
        sync = coordinator(planner)
        sync.api.update_lane.return_value = {"id": "L1", "title": "Todo", "position": 9}
        sync.dispatch(cmds.UpdateLane("L1", "Todo"))
        assert sync.store.planner.find_lane("L1").position == 0


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rollback
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestRollback:

    def test_failed_move_restores_planner(self, planner):
        """Test a failed move restores the planner"""
        sync = coordinator(planner)
        sync.api.move_card.side_effect = NetworkError("connection refused")
        before = sync.store.snapshot()

        result = sync.dispatch(cmds.MoveCard("b", "L2", 0))

        assert result.status == SyncStatus.ROLLED_BACK
        assert not result.ok
        assert isinstance(result.error, NetworkError)
        assert sync.store.planner == before
        assert sync.last_error is result.error

    def test_backend_error_rolls_back(self, planner):
        """Test a backend error rolls back"""
        sync = coordinator(planner)
        sync.api.delete_lane.side_effect = BackendError(500, "db down")
        sync.dispatch(cmds.DeleteLane("L1"))
        assert sync.store.planner.find_lane("L1") is not None

    def test_sync_failed_event(self, planner):
        """Test a failure emits sync_failed"""
        sync = coordinator(planner)
        sync.api.update_card.side_effect = BackendError(409, "conflict")
        failures = []
        sync.subscribe("sync_failed", lambda command, error: failures.append((command.name, error.status)))
        sync.dispatch(cmds.UpdateCard("a", "x"))
        assert failures == [("UpdateCard", 409)]

    def test_validation_error_before_any_change(self, planner):
        """Test an invalid command changes nothing"""
        sync = coordinator(planner)
        with pytest.raises(ValidationError):
            sync.dispatch(cmds.MoveCard("a", "nope", 0))
        assert sync.store.planner == planner
        sync.api.move_card.assert_not_called()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Temp bypass
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTempBypass:

    def test_temp_planner_never_calls_backend(self, temp_planner):
        """Test a temp planner never calls the backend"""
        sync = coordinator(temp_planner)
        command = cmds.AddLane("Offline")
        result = sync.dispatch(command)
        assert result.status == SyncStatus.BYPASSED
        assert result.ok
        assert command.lane_id.startswith("temp-lane-")
        assert sync.store.planner.find_lane(command.lane_id) is not None
        assert sync.api.mock_calls == []

    def test_card_in_temp_lane_bypassed(self, planner):
        """Test a card in a temp lane stays local"""
        sync = coordinator(planner)
        # A lane the backend has not confirmed yet
        lane_cmd = cmds.AddLane("Local")
        sync.store.apply(lane_cmd)
        result = sync.dispatch(cmds.AddCard(lane_cmd.lane_id, "x"))
        assert result.status == SyncStatus.BYPASSED
        sync.api.add_card.assert_not_called()

    def test_no_api_is_local_only(self, planner):
        """Test no API means local-only"""
        sync = SyncCoordinator(PlannerStore(planner), api=None)
        result = sync.dispatch(cmds.MoveCard("a", "L2", 0))
        assert result.status == SyncStatus.BYPASSED
        assert [c.id for c in sync.store.planner.find_lane("L2").cards] == ["a", "d"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Out-of-order confirmations
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestStaleConfirmations:

    def test_older_confirmation_discarded(self, planner):
        """Test an older confirmation does not overwrite a newer edit"""
        sync = coordinator(planner)
        first = sync.begin(cmds.UpdateLane("L1", "First"))
        second = sync.begin(cmds.UpdateLane("L1", "Second"))

        assert sync.settle(second, {"id": "L1", "title": "Second"}).status == SyncStatus.CONFIRMED
        result = sync.settle(first, {"id": "L1", "title": "First"})

        assert result.status == SyncStatus.STALE
        assert result.ok
        assert sync.store.planner.find_lane("L1").title == "Second"

    def test_last_settled_wins_when_guard_disabled(self, planner):
        """Test the last settled answer wins when the guard is off"""
        sync = coordinator(planner, discard_stale=False)
        first = sync.begin(cmds.UpdateLane("L1", "First"))
        second = sync.begin(cmds.UpdateLane("L1", "Second"))
        sync.settle(second, {"id": "L1", "title": "Second"})
        result = sync.settle(first, {"id": "L1", "title": "First"})
        assert result.status == SyncStatus.CONFIRMED
        assert sync.store.planner.find_lane("L1").title == "First"

    def test_other_entities_are_not_stale(self, planner):
        """Test changes to other entities are not stale"""
        sync = coordinator(planner)
        first = sync.begin(cmds.UpdateLane("L1", "One"))
        sync.begin(cmds.UpdateLane("L2", "Two"))
        assert not sync.is_stale(first)

    def test_stale_confirmation_still_rewrites_id(self, planner):
        """Test a stale confirmation still rewrites the id"""
        sync = coordinator(planner)
        add = cmds.AddLane("Draft")
        pending = sync.begin(add)
        # Renaming the temp lane is local-only but makes the add confirmation stale
        rename = sync.dispatch(cmds.UpdateLane(add.lane_id, "Final"))
        assert rename.status == SyncStatus.BYPASSED

        result = sync.settle(pending, {"id": "77", "title": "Draft"})
        assert result.status == SyncStatus.STALE
        lane = sync.store.planner.find_lane("77")
        assert lane is not None
        assert lane.title == "Final"

    def test_superseded_failure_removes_only_failed_command(self, planner):
        """Test a failed move is undone while a newer rename survives"""
        sync = coordinator(planner)
        move = sync.begin(cmds.MoveCard("a", "L3", 0))
        sync.begin(cmds.UpdatePlanner("Renamed"))

        result = sync.settle(move, error=NetworkError("timeout"))

        assert result.status == SyncStatus.ROLLED_BACK
        assert not result.ok
        assert sync.store.planner.title == "Renamed"
        assert sync.store.planner.find_lane("L3").cards == []
        assert [c.id for c in sync.store.planner.find_lane("L1").cards] == ["a", "b", "c"]
        assert [c.position for c in sync.store.planner.find_lane("L1").cards] == [0, 1, 2]

    def test_superseded_failure_rolls_back_when_guard_disabled(self, planner):
        """Test a failure restores its snapshot when the guard is off"""
        sync = coordinator(planner, discard_stale=False)
        move = sync.begin(cmds.MoveCard("a", "L3", 0))
        sync.begin(cmds.UpdatePlanner("Renamed"))
        result = sync.settle(move, error=NetworkError("timeout"))
        assert result.status == SyncStatus.ROLLED_BACK
        assert sync.store.planner == planner


class TestFailureReplay:

    def test_rejected_card_is_removed_despite_newer_change(self, planner):
        """Test a card the backend refused does not linger as a local-only entity"""
        sync = coordinator(planner)
        add = sync.begin(cmds.AddCard("L2", "Rejected by server"))
        sync.begin(cmds.UpdatePlanner("Unrelated rename"))

        result = sync.settle(add, error=BackendError(400, "bad card"))

        assert result.status == SyncStatus.ROLLED_BACK
        assert sync.store.planner.find_card(add.command.card_id) is None
        assert [c.id for c in sync.store.planner.find_lane("L2").cards] == ["d"]
        assert sync.store.planner.title == "Unrelated rename"

        with pytest.raises(ValidationError):
            sync.dispatch(cmds.UpdateCard(add.command.card_id, "edited"))
        sync.api.update_card.assert_not_called()

    def test_dependent_local_commands_dropped_with_failed_lane(self, planner):
        """Test cards added to a refused lane go away with it"""
        sync = coordinator(planner)
        lane = sync.begin(cmds.AddLane("Review"))
        card = cmds.AddCard(lane.command.lane_id, "Inside")
        assert sync.dispatch(card).status == SyncStatus.BYPASSED

        sync.settle(lane, error=BackendError(500))

        assert [l.id for l in sync.store.planner.lanes] == ["L1", "L2", "L3"]
        assert sync.store.planner.find_card(card.card_id) is None

    def test_confirmed_server_ids_survive_replay(self, planner):
        """Test a later confirmed lane keeps its server id when an earlier move fails"""
        sync = coordinator(planner)
        move = sync.begin(cmds.MoveCard("a", "L3", 0))
        add = sync.begin(cmds.AddLane("Review"))
        assert sync.settle(add, {"id": "99", "title": "Review"}).status == SyncStatus.CONFIRMED

        sync.settle(move, error=NetworkError("timeout"))

        planner_now = sync.store.planner
        assert [l.id for l in planner_now.lanes] == ["L1", "L2", "L3", "99"]
        assert planner_now.find_lane(add.command.lane_id) is None
        assert [c.id for c in planner_now.find_lane("L1").cards] == ["a", "b", "c"]

    def test_failure_after_reload_leaves_new_planner(self, planner):
        """Test an answer for a planner that was closed does not touch the open one"""
        sync = coordinator(planner)
        move = sync.begin(cmds.MoveCard("a", "L3", 0))
        reloaded = make_planner("p2")
        sync.reset()
        sync.store.load(reloaded)

        result = sync.settle(move, error=NetworkError("timeout"))

        assert result.status == SyncStatus.ROLLED_BACK
        assert sync.store.planner == reloaded


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Events and helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestEvents:

    def test_applied_then_confirmed(self, planner):
        """Test applied and confirmed events in order"""
        sync = coordinator(planner)
        sync.api.update_planner.return_value = {"id": "p1", "title": "X"}
        events = []
        sync.subscribe("mutation_applied", lambda command, planner: events.append("applied"))
        sync.subscribe("mutation_confirmed", lambda command, planner: events.append("confirmed"))
        sync.dispatch(cmds.UpdatePlanner("X"))
        assert events == ["applied", "confirmed"]

    def test_broken_subscriber_does_not_break_dispatch(self, planner, caplog):
        """Test a broken subscriber does not break dispatch"""
        sync = coordinator(planner)
        sync.api.update_planner.return_value = {}

        def broken(**kwargs):
            raise RuntimeError("subscriber bug")

        sync.subscribe("mutation_applied", broken)
        result = sync.dispatch(cmds.UpdatePlanner("X"))
        assert result.status == SyncStatus.CONFIRMED
        assert "subscriber bug" in caplog.text


class TestMergeHelpers:

    def test_rewrite_lane_id_updates_cards_and_group(self):
        """Test renaming a lane updates its cards and group links"""
        p = make_planner()
        p.lanes[1].template_lane_id = "L1"
        rewrite_lane_id(p, "L1", "10")
        assert p.lanes[0].id == "10"
        assert all(c.lane_id == "10" for c in p.lanes[0].cards)
        assert p.lanes[1].template_lane_id == "10"

    def test_merge_without_data_returns_same_planner(self, planner):
        """Test merging no data returns the same planner"""
        assert merge_response(planner, cmds.DeleteLane("L1"), None) is planner

    def test_merge_does_not_modify_input(self, planner):
        """Test merging does not modify the input"""
        merged = merge_response(planner, cmds.UpdatePlanner("x"), {"title": "Server"})
        assert merged.title == "Server"
        assert planner.title == "Board"


class TestSaveMetadata:

    def test_confirmed(self, planner):
        """Test a confirmed metadata save"""
        sync = coordinator(planner)
        sync.api.update_planner.return_value = {"id": "p1", "updated_at": "2024-01-01T00:00:00Z"}
        result = sync.save_metadata()
        assert result.status == SyncStatus.CONFIRMED
        assert sync.store.planner.updated_at == "2024-01-01T00:00:00Z"
        sync.api.update_planner.assert_called_once_with("p1", "Board", "Test board")

    def test_temp_planner_bypassed(self, temp_planner):
        """Test a temp planner save is bypassed"""
        sync = coordinator(temp_planner)
        assert sync.save_metadata().status == SyncStatus.BYPASSED
        sync.api.update_planner.assert_not_called()

    def test_failure_reported(self, planner):
        """Test a failed save is reported"""
        sync = coordinator(planner)
        sync.api.update_planner.side_effect = NetworkError("down")
        result = sync.save_metadata()
        assert result.status == SyncStatus.FAILED
        assert sync.store.planner == planner
