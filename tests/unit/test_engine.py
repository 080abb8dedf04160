"""
Unit tests for ReconciliationEngine

Tests cover:
- Card creation in the routed list at the story's rank
- Skipping stories without a target list
- Reuse of existing cards by identity, with list and position correction
- Comment, checklist, member and label reconciliation
- Idempotence of a second run over unchanged data
- Resume cursor and touched-set bookkeeping
"""

import logging
import sys
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path to import pivotal2trello module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import pytest

from pivotal2trello import (
    DestinationCache,
    OwnerMembershipMap,
    ReconciliationEngine,
    RetryExecutor,
    RetryPolicy,
    SourceItem,
    SourceTask,
    TrelloServerError,
    resolve_positions,
)


def make_engine(fake_trello, routing, label_colors, owner_map, retry):
    cache = DestinationCache.load(fake_trello, retry)
    return ReconciliationEngine(fake_trello, cache, routing, label_colors, owner_map, retry)


@pytest.fixture
def engine_factory(fake_trello, routing, label_colors, owner_map, fast_retry):
    """Build an engine over a freshly loaded snapshot of the fake board"""

    def factory(owners=None):
        return make_engine(
            fake_trello, routing, label_colors, owners or owner_map, fast_retry
        )

    return factory


@pytest.fixture
def fixture_items(pivotal_stories_fixture):
    return [SourceItem.from_api(story) for story in pivotal_stories_fixture]


class TestCardCreation:
    def test_creates_card_in_routed_list_at_rank(self, fake_trello, engine_factory):
        engine = engine_factory()
        story = SourceItem(
            id=1, name="Set up CI", description="desc", kind="chore", state="started"
        )

        card = engine.reconcile(story, 3)

        assert fake_trello.calls_named("create_card") == [
            ("create_card", "list-current", "Set up CI", "desc", 3)
        ]
        assert card.list_id == "list-current"
        assert card.position == 3
        assert card.id in engine.touched
        assert engine.stats.cards_created == 1

    def test_unstarted_stories_routed_by_kind(self, fake_trello, engine_factory):
        engine = engine_factory()
        story = SourceItem(id=1, name="Login", kind="feature", state="unstarted")

        card = engine.reconcile(story, 1)

        assert card.list_id == "list-backlog"

    def test_story_without_list_is_skipped(self, fake_trello, engine_factory, caplog):
        engine = engine_factory()
        release = SourceItem(id=7, name="Ship v1", kind="release", state="unstarted")
        planned = SourceItem(id=8, name="Next", kind="feature", state="planned")

        with caplog.at_level(logging.WARNING):
            assert engine.reconcile(release, 1) is None
            assert engine.reconcile(planned, 2) is None

        assert fake_trello.mutation_calls() == []
        assert engine.touched == set()
        assert engine.stats.stories_skipped == 2
        assert engine.stats.skipped_story_ids == [7, 8]
        assert "Ignoring story 7 - type is 'release', state is 'unstarted'" in caplog.text

    def test_same_story_twice_in_one_run_reuses_card(self, fake_trello, engine_factory):
        engine = engine_factory()
        story = SourceItem(id=1, name="A", description="d", kind="bug", state="started")

        first = engine.reconcile(story, 1)
        second = engine.reconcile(story, 1)

        assert first is second
        assert len(fake_trello.calls_named("create_card")) == 1


class TestExistingCards:
    def test_reuses_card_with_same_identity(self, fake_trello, engine_factory):
        existing = fake_trello.add_existing_card("Login", "Sign in", "list-current", 1)
        engine = engine_factory()
        story = SourceItem(id=1, name="Login", description="Sign in", state="started")

        card = engine.reconcile(story, 1)

        assert card.id == existing["id"]
        assert fake_trello.calls_named("create_card") == []
        assert engine.stats.cards_reused == 1

    def test_edited_description_creates_new_card(self, fake_trello, engine_factory):
        """Identity is (name, description): an edited story no longer matches its old card"""
        existing = fake_trello.add_existing_card("Login", "Old text", "list-current", 1)
        engine = engine_factory()
        story = SourceItem(id=1, name="Login", description="New text", state="started")

        card = engine.reconcile(story, 1)

        assert card.id != existing["id"]
        assert len(fake_trello.calls_named("create_card")) == 1

    def test_moves_card_to_routed_list(self, fake_trello, engine_factory):
        existing = fake_trello.add_existing_card("Login", "", "list-current", 1)
        engine = engine_factory()
        story = SourceItem(id=1, name="Login", state="accepted")

        engine.reconcile(story, 1)

        assert fake_trello.calls_named("move_card") == [
            ("move_card", existing["id"], "list-done")
        ]
        assert fake_trello.cards[existing["id"]]["idList"] == "list-done"

    def test_corrects_position(self, fake_trello, engine_factory):
        existing = fake_trello.add_existing_card("Login", "", "list-current", 65536.5)
        engine = engine_factory()

        engine.reconcile(SourceItem(id=1, name="Login", state="started"), 4)

        assert fake_trello.calls_named("set_card_position") == [
            ("set_card_position", existing["id"], 4)
        ]
        assert engine.stats.positions_updated == 1

    def test_correct_card_needs_no_list_or_position_change(self, fake_trello, engine_factory):
        fake_trello.add_existing_card("Login", "", "list-current", 2)
        engine = engine_factory()

        engine.reconcile(SourceItem(id=1, name="Login", state="started"), 2)

        assert fake_trello.calls_named("move_card") == []
        assert fake_trello.calls_named("set_card_position") == []


class TestPositionsEndToEnd:
    def test_processing_order_does_not_change_final_positions(self, fake_trello, engine_factory):
        """Each card ends at its own rank even when B is reconciled before A"""
        a = SourceItem(id=1, name="A", before_id=2, after_id=None, state="started")
        b = SourceItem(id=2, name="B", before_id=None, after_id=1, state="started")
        positions = resolve_positions([a, b])
        assert positions == {1: 1, 2: 2}

        engine = engine_factory()
        card_b = engine.reconcile(b, positions[b.id])
        card_a = engine.reconcile(a, positions[a.id])

        assert fake_trello.cards[card_a.id]["pos"] == 1
        assert fake_trello.cards[card_b.id]["pos"] == 2

    def test_swapped_cards_are_repositioned(self, fake_trello, engine_factory):
        """Cards imported in the wrong order are corrected explicitly"""
        card_a = fake_trello.add_existing_card("A", "", "list-current", 2)
        card_b = fake_trello.add_existing_card("B", "", "list-current", 1)
        a = SourceItem(id=1, name="A", before_id=2, after_id=None, state="started")
        b = SourceItem(id=2, name="B", before_id=None, after_id=1, state="started")

        engine = engine_factory()
        engine.reconcile_all([b, a], resolve_positions([a, b]))

        assert fake_trello.cards[card_a["id"]]["pos"] == 1
        assert fake_trello.cards[card_b["id"]]["pos"] == 2


class TestComments:
    def test_adds_only_missing_comments(self, fake_trello, engine_factory):
        existing = fake_trello.add_existing_card("Login", "", "list-current", 1)
        fake_trello.comments[existing["id"]] = ["Already here"]
        engine = engine_factory()
        story = SourceItem(
            id=1,
            name="Login",
            state="started",
            comments=("  Already here  ", "New note", "", "   ", "New note"),
        )

        engine.reconcile(story, 1)

        assert fake_trello.calls_named("add_comment") == [
            ("add_comment", existing["id"], "New note")
        ]
        assert engine.stats.comments_added == 1


class TestChecklist:
    def test_creates_tasks_checklist(self, fake_trello, engine_factory):
        engine = engine_factory()
        story = SourceItem(
            id=1,
            name="CI",
            state="started",
            tasks=(SourceTask("Add workflow", True), SourceTask("Add badge", False)),
        )

        card = engine.reconcile(story, 1)

        assert fake_trello.calls_named("create_checklist") == [
            ("create_checklist", card.id, "Tasks")
        ]
        items = fake_trello.cards[card.id]["checklists"][0]["checkItems"]
        assert [(i["name"], i["state"]) for i in items] == [
            ("Add workflow", "complete"),
            ("Add badge", "incomplete"),
        ]

    def test_reuses_existing_checklist_and_items(self, fake_trello, engine_factory):
        existing = fake_trello.add_existing_card(
            "CI",
            "",
            "list-current",
            1,
            checklists=[
                {
                    "id": "checklist-9",
                    "name": "Tasks",
                    "checkItems": [{"id": "item-9", "name": "Add workflow", "state": "complete"}],
                }
            ],
        )
        engine = engine_factory()
        story = SourceItem(
            id=1,
            name="CI",
            state="started",
            tasks=(SourceTask("Add workflow", True), SourceTask("Add badge", False)),
        )

        engine.reconcile(story, 1)

        assert fake_trello.calls_named("create_checklist") == []
        assert fake_trello.calls_named("add_checklist_item") == [
            ("add_checklist_item", "checklist-9", "Add badge", False)
        ]
        assert existing["id"] in engine.touched

    def test_no_checklist_without_tasks(self, fake_trello, engine_factory):
        engine = engine_factory()
        engine.reconcile(SourceItem(id=1, name="CI", state="started"), 1)
        assert fake_trello.calls_named("create_checklist") == []


class TestMembers:
    def test_set_reconciliation(self, fake_trello, engine_factory):
        """Current {A, B}, expected {B, C}: remove A, add C, leave B alone"""
        existing = fake_trello.add_existing_card(
            "Login", "", "list-current", 1, idMembers=["member-alice", "member-bob"]
        )
        owners = OwnerMembershipMap({9002: "member-bob", 9003: "member-carol"})
        engine = engine_factory(owners)
        story = SourceItem(id=1, name="Login", state="started", owner_ids=(9002, 9003))

        engine.reconcile(story, 1)

        assert fake_trello.calls_named("remove_member_from_card") == [
            ("remove_member_from_card", existing["id"], "member-alice")
        ]
        assert fake_trello.calls_named("add_member_to_card") == [
            ("add_member_to_card", existing["id"], "member-carol")
        ]
        assert sorted(fake_trello.cards[existing["id"]]["idMembers"]) == [
            "member-bob",
            "member-carol",
        ]

    def test_unmapped_owners_are_dropped(self, fake_trello, engine_factory):
        engine = engine_factory(OwnerMembershipMap({9001: "member-alice", 9002: None}))
        story = SourceItem(id=1, name="Login", state="started", owner_ids=(9001, 9002, 9999))

        card = engine.reconcile(story, 1)

        assert fake_trello.calls_named("add_member_to_card") == [
            ("add_member_to_card", card.id, "member-alice")
        ]


class TestLabels:
    def test_kind_tracker_and_estimate_labels(self, fake_trello, engine_factory):
        engine = engine_factory()
        story = SourceItem(
            id=1, name="Login", kind="feature", state="started", labels=("auth",), estimate=3.0
        )

        card = engine.reconcile(story, 1)

        assert fake_trello.calls_named("create_label") == [
            ("create_label", "feature", "green"),
            ("create_label", "auth", "blue"),
            ("create_label", "3", "purple"),
        ]
        assert len(fake_trello.cards[card.id]["idLabels"]) == 3

    def test_existing_board_label_is_reused(self, fake_trello, engine_factory):
        fake_trello.labels.append({"id": "label-bug", "name": "bug", "color": "red"})
        engine = engine_factory()

        card = engine.reconcile(SourceItem(id=1, name="Crash", kind="bug", state="started"), 1)

        assert fake_trello.calls_named("create_label") == []
        assert fake_trello.cards[card.id]["idLabels"] == ["label-bug"]

    def test_same_name_different_color_is_a_different_label(self, fake_trello, engine_factory):
        fake_trello.labels.append({"id": "label-bug", "name": "bug", "color": "orange"})
        engine = engine_factory()

        engine.reconcile(SourceItem(id=1, name="Crash", kind="bug", state="started"), 1)

        assert fake_trello.calls_named("create_label") == [("create_label", "bug", "red")]

    def test_created_label_is_cached_for_later_cards(self, fake_trello, engine_factory):
        engine = engine_factory()

        engine.reconcile(SourceItem(id=1, name="One", kind="bug", state="started"), 1)
        engine.reconcile(SourceItem(id=2, name="Two", kind="bug", state="started"), 2)

        assert len(fake_trello.calls_named("create_label")) == 1
        assert len(fake_trello.calls_named("add_label_to_card")) == 2

    def test_label_already_on_card_is_not_added(self, fake_trello, engine_factory):
        fake_trello.labels.append({"id": "label-bug", "name": "bug", "color": "red"})
        fake_trello.add_existing_card("Crash", "", "list-current", 1, idLabels=["label-bug"])
        engine = engine_factory()

        engine.reconcile(SourceItem(id=1, name="Crash", kind="bug", state="started"), 1)

        assert fake_trello.calls_named("add_label_to_card") == []

    def test_disabled_colors_create_no_labels(self, fake_trello, engine_factory, label_colors):
        label_colors.tracker_labels = None
        label_colors.estimate = None
        engine = engine_factory()
        story = SourceItem(
            id=1, name="Ship", kind="release", state="started", labels=("v1",), estimate=0.0
        )

        engine.reconcile(story, 1)

        assert fake_trello.calls_named("create_label") == []

    def test_zero_estimate_still_labelled(self, fake_trello, engine_factory):
        engine = engine_factory()
        story = SourceItem(id=1, name="Tiny", kind="release", state="started", estimate=0)

        engine.reconcile(story, 1)

        assert fake_trello.calls_named("create_label") == [("create_label", "0", "purple")]


class TestIdempotence:
    def test_second_run_makes_no_changes(self, fake_trello, engine_factory, fixture_items):
        positions = resolve_positions(fixture_items)

        first = engine_factory().reconcile_all(fixture_items, positions)
        assert first.cards_created == 3
        assert first.stories_skipped == 1

        fake_trello.calls.clear()
        second = engine_factory().reconcile_all(fixture_items, positions)

        assert fake_trello.mutation_calls() == []
        assert second.mutations == 0
        assert second.cards_reused == 3

    def test_partial_card_is_healed_on_rerun(self, fake_trello, engine_factory, fixture_items):
        """A card left without its sub-resources gets only the missing pieces"""
        positions = resolve_positions(fixture_items)
        set_up_ci = next(item for item in fixture_items if item.id == 101)
        fake_trello.add_existing_card(
            set_up_ci.name, set_up_ci.description, "list-current", positions[101]
        )

        engine_factory().reconcile_all([set_up_ci], positions)

        assert fake_trello.calls_named("create_card") == []
        assert len(fake_trello.calls_named("add_checklist_item")) == 2
        assert len(fake_trello.calls_named("add_comment")) == 1


class TestReconcileAll:
    def test_processes_in_rank_order(self, fake_trello, engine_factory, fixture_items):
        engine_factory().reconcile_all(fixture_items, resolve_positions(fixture_items))

        created = [call[2] for call in fake_trello.calls_named("create_card")]
        assert created == ["Set up CI", "Login page", "Crash on logout"]

    def test_resume_skips_earlier_story_ids(self, fake_trello, engine_factory, fixture_items):
        positions = resolve_positions(fixture_items)
        old = fake_trello.add_existing_card(
            "Set up CI", "Run the test suite on every push", "list-current", 1
        )
        engine = engine_factory()

        stats = engine.reconcile_all(fixture_items, positions, resume_from=102)

        created = [call[2] for call in fake_trello.calls_named("create_card")]
        assert created == ["Login page"]
        assert stats.stories_skipped == 1  # 104 has no list
        # Earlier stories' cards still count as matched
        assert old["id"] in engine.touched

    def test_exhausted_retries_abort_the_run(self, fake_trello, routing, label_colors, owner_map):
        retry = RetryExecutor(RetryPolicy(base_delay=0.0, max_retries=2))
        engine = make_engine(fake_trello, routing, label_colors, owner_map, retry)
        failing = TrelloServerError("Service Unavailable", status_code=503)

        with (
            patch.object(fake_trello, "create_card", side_effect=failing) as mock_create,
            patch("time.sleep"),
            pytest.raises(TrelloServerError),
        ):
            engine.reconcile(SourceItem(id=1, name="A", state="started"), 1)

        assert mock_create.call_count == 3
        assert engine.touched == set()
