"""
Shared pytest fixtures for pivotal2trello tests
"""
import copy
import itertools
import json
import logging
import sys
from pathlib import Path

import pytest

# Add parent directory to path to import pivotal2trello module
sys.path.insert(0, str(Path(__file__).parent.parent))

from pivotal2trello.config import LabelColors, ListRouting
from pivotal2trello.members import OwnerMembershipMap
from pivotal2trello.retry import RetryExecutor, RetryPolicy

# Methods of TrelloClient that change the board
MUTATIONS = {
    "create_card",
    "move_card",
    "set_card_position",
    "delete_card",
    "create_label",
    "add_label_to_card",
    "add_member_to_card",
    "remove_member_from_card",
    "create_checklist",
    "add_checklist_item",
    "add_comment",
}


class FakeTrelloBoard:
    """In-memory stand-in for TrelloClient, holding one board as Trello JSON

    Every write is recorded in ``calls`` as ``(method_name, *args)``.
    """

    def __init__(self, board_id="board1"):
        self.board_id = board_id
        self.lists = [
            {"id": "list-icebox", "name": "Icebox", "pos": 1024},
            {"id": "list-backlog", "name": "Backlog", "pos": 2048},
            {"id": "list-current", "name": "Current", "pos": 3072},
            {"id": "list-done", "name": "Done", "pos": 4096},
        ]
        self.members = [
            {"id": "member-alice", "fullName": "Alice Adams", "username": "alice"},
            {"id": "member-bob", "fullName": "Bob Brown", "username": "bob"},
            {"id": "member-carol", "fullName": "Carol Cole", "username": "carol"},
        ]
        self.labels = []
        self.cards = {}
        self.comments = {}
        self.calls = []
        self._ids = itertools.count(1)

    def _new_id(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def add_existing_card(self, name, desc, list_id, pos, **extra):
        card_id = self._new_id("card")
        card = {
            "id": card_id,
            "name": name,
            "desc": desc,
            "idList": list_id,
            "idBoard": self.board_id,
            "pos": pos,
            "idLabels": [],
            "idMembers": [],
            "checklists": [],
            "url": f"https://trello.com/c/{card_id}",
        }
        card.update(extra)
        self.cards[card_id] = card
        self.comments[card_id] = []
        return card

    def mutation_calls(self):
        return [call for call in self.calls if call[0] in MUTATIONS]

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]

    # ----- Reads -----

    def get_lists(self):
        return copy.deepcopy(self.lists)

    def get_members(self):
        return copy.deepcopy(self.members)

    def get_labels(self):
        return copy.deepcopy(self.labels)

    def get_cards(self):
        cards = []
        for card in self.cards.values():
            card = copy.deepcopy(card)
            card["badges"] = {"comments": len(self.comments[card["id"]])}
            cards.append(card)
        return cards

    def get_card_comments(self, card_id):
        # Trello returns newest first
        return [{"data": {"text": text}} for text in reversed(self.comments[card_id])]

    # ----- Writes -----

    def create_card(self, list_id, name, description, pos):
        self.calls.append(("create_card", list_id, name, description, pos))
        card = self.add_existing_card(name, description, list_id, pos)
        return copy.deepcopy(card)

    def move_card(self, card_id, list_id):
        self.calls.append(("move_card", card_id, list_id))
        self.cards[card_id]["idList"] = list_id
        return copy.deepcopy(self.cards[card_id])

    def set_card_position(self, card_id, pos):
        self.calls.append(("set_card_position", card_id, pos))
        self.cards[card_id]["pos"] = pos
        return copy.deepcopy(self.cards[card_id])

    def delete_card(self, card_id):
        self.calls.append(("delete_card", card_id))
        del self.cards[card_id]
        del self.comments[card_id]

    def create_label(self, name, color):
        self.calls.append(("create_label", name, color))
        label = {"id": self._new_id("label"), "name": name, "color": color}
        self.labels.append(label)
        return dict(label)

    def add_label_to_card(self, card_id, label_id):
        self.calls.append(("add_label_to_card", card_id, label_id))
        self.cards[card_id]["idLabels"].append(label_id)

    def add_member_to_card(self, card_id, member_id):
        self.calls.append(("add_member_to_card", card_id, member_id))
        self.cards[card_id]["idMembers"].append(member_id)

    def remove_member_from_card(self, card_id, member_id):
        self.calls.append(("remove_member_from_card", card_id, member_id))
        self.cards[card_id]["idMembers"].remove(member_id)

    def create_checklist(self, card_id, name):
        self.calls.append(("create_checklist", card_id, name))
        checklist = {"id": self._new_id("checklist"), "name": name, "checkItems": []}
        self.cards[card_id]["checklists"].append(checklist)
        return copy.deepcopy(checklist)

    def add_checklist_item(self, checklist_id, name, checked=False):
        self.calls.append(("add_checklist_item", checklist_id, name, checked))
        item = {
            "id": self._new_id("item"),
            "name": name,
            "state": "complete" if checked else "incomplete",
        }
        for card in self.cards.values():
            for checklist in card["checklists"]:
                if checklist["id"] == checklist_id:
                    checklist["checkItems"].append(item)
                    return dict(item)
        raise KeyError(checklist_id)

    def add_comment(self, card_id, text):
        self.calls.append(("add_comment", card_id, text))
        self.comments[card_id].append(text)
        return {"id": self._new_id("action"), "data": {"text": text}}


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() so caplog keeps seeing package log records"""
    yield
    logger = logging.getLogger("pivotal2trello")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fixtures_dir():
    """Return path to test fixtures directory"""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def pivotal_stories_fixture(fixtures_dir):
    """Raw Pivotal v5 story payloads for a small project"""
    with open(fixtures_dir / "pivotal_stories.json") as f:
        return json.load(f)


@pytest.fixture
def pivotal_memberships_fixture(fixtures_dir):
    with open(fixtures_dir / "pivotal_memberships.json") as f:
        return json.load(f)


@pytest.fixture
def fake_trello():
    return FakeTrelloBoard()


@pytest.fixture
def routing():
    return ListRouting(
        by_state={
            "unscheduled": "list-icebox",
            "started": "list-current",
            "finished": "list-done",
            "delivered": "list-done",
            "accepted": "list-done",
            "rejected": "list-current",
        },
        by_kind={
            "feature": "list-backlog",
            "chore": "list-backlog",
            "bug": "list-backlog",
            "release": None,
        },
    )


@pytest.fixture
def label_colors():
    return LabelColors(
        by_kind={"feature": "green", "chore": "yellow", "bug": "red", "release": None},
        tracker_labels="blue",
        estimate="purple",
    )


@pytest.fixture
def owner_map():
    return OwnerMembershipMap({9001: "member-alice", 9002: "member-bob"})


@pytest.fixture
def fast_retry():
    """RetryExecutor that never sleeps"""
    return RetryExecutor(RetryPolicy(base_delay=0.0, max_retries=2))
