"""Typed records for Pivotal stories and Trello cards.

API payloads are parsed once, at the client boundary, into these records so
the reconciliation code never has to probe a raw dict for optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pivotal2trello.identity import identity_key

# Pivotal story states that are routed by state rather than by story type
STORY_STATES = ("unscheduled", "started", "finished", "delivered", "accepted", "rejected")

# Story types; 'unstarted' stories are routed to a backlog list per type
STORY_KINDS = ("feature", "chore", "bug", "release")

# Colors Trello accepts for board labels
LABEL_COLORS = (
    "yellow",
    "purple",
    "blue",
    "red",
    "green",
    "orange",
    "black",
    "sky",
    "pink",
    "lime",
)


@dataclass(frozen=True)
class SourceTask:
    """A Pivotal task, copied onto the card's checklist"""

    description: str
    complete: bool = False


@dataclass(frozen=True)
class SourceItem:
    """A Pivotal Tracker story.

    Ordering follows Pivotal's own link names: ``after_id`` is the story shown
    immediately above this one (``None`` for the first story in the
    project) and ``before_id`` is the story shown immediately below it.
    """

    id: int
    name: str
    description: str = ""
    kind: str = "feature"
    state: str = "unscheduled"
    estimate: float | None = None
    owner_ids: tuple[int, ...] = ()
    labels: tuple[str, ...] = ()
    comments: tuple[str, ...] = ()
    tasks: tuple[SourceTask, ...] = ()
    before_id: int | None = None
    after_id: int | None = None

    @classmethod
    def from_api(cls, story: dict[str, Any]) -> SourceItem:
        """Build a story record from a Pivotal v5 story payload"""
        return cls(
            id=int(story["id"]),
            name=story.get("name") or "",
            description=story.get("description") or "",
            kind=story.get("story_type", "feature"),
            state=story.get("current_state", "unscheduled"),
            estimate=story.get("estimate"),
            owner_ids=tuple(int(owner_id) for owner_id in story.get("owner_ids") or []),
            labels=tuple(label["name"] for label in story.get("labels") or [] if label.get("name")),
            comments=tuple(
                comment.get("text") or "" for comment in story.get("comments") or []
            ),
            tasks=tuple(
                SourceTask(task.get("description") or "", bool(task.get("complete")))
                for task in story.get("tasks") or []
            ),
            before_id=story.get("before_id"),
            after_id=story.get("after_id"),
        )

    @property
    def identity_key(self) -> str:
        return identity_key(self.name, self.description)


@dataclass
class ChecklistItem:
    id: str
    name: str
    complete: bool = False


@dataclass
class Checklist:
    id: str
    name: str
    items: list[ChecklistItem] = field(default_factory=list)

    @classmethod
    def from_api(cls, checklist: dict[str, Any]) -> Checklist:
        return cls(
            id=checklist["id"],
            name=checklist.get("name", ""),
            items=[
                ChecklistItem(
                    id=item["id"],
                    name=item.get("name", ""),
                    complete=item.get("state") == "complete",
                )
                for item in checklist.get("checkItems") or []
            ],
        )


@dataclass
class DestinationCard:
    """A Trello card as cached for one import run.

    The engine updates these records after every successful mutation, so
    later checks in the same run see the card's current state without
    re-fetching it.
    """

    id: str
    name: str
    description: str
    list_id: str
    board_id: str | None = None
    position: float = 0.0
    label_ids: set[str] = field(default_factory=set)
    member_ids: set[str] = field(default_factory=set)
    checklists: list[Checklist] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    url: str = ""

    @classmethod
    def from_api(cls, card: dict[str, Any], comments: list[str] | None = None) -> DestinationCard:
        """Build a card record from a Trello card payload.

        Args:
            card: Card JSON as returned by ``/boards/{id}/cards`` or ``POST /cards``
            comments: Comment texts fetched separately (Trello serves them as actions)
        """
        return cls(
            id=card["id"],
            name=card.get("name", ""),
            description=card.get("desc") or "",
            list_id=card.get("idList", ""),
            board_id=card.get("idBoard"),
            position=float(card.get("pos") or 0),
            label_ids=set(card.get("idLabels") or []),
            member_ids=set(card.get("idMembers") or []),
            checklists=[Checklist.from_api(cl) for cl in card.get("checklists") or []],
            comments=list(comments or []),
            url=card.get("url") or card.get("shortUrl") or "",
        )

    @property
    def identity_key(self) -> str:
        return identity_key(self.name, self.description)

    def find_checklist(self, name: str) -> Checklist | None:
        return next((cl for cl in self.checklists if cl.name == name), None)


@dataclass(frozen=True)
class BoardLabel:
    id: str
    name: str
    color: str | None = None

    @classmethod
    def from_api(cls, label: dict[str, Any]) -> BoardLabel:
        return cls(id=label["id"], name=label.get("name") or "", color=label.get("color"))


@dataclass(frozen=True)
class BoardMember:
    id: str
    full_name: str = ""
    username: str = ""

    @classmethod
    def from_api(cls, member: dict[str, Any]) -> BoardMember:
        return cls(
            id=member["id"],
            full_name=member.get("fullName") or "",
            username=member.get("username") or "",
        )

    @property
    def display_name(self) -> str:
        if self.full_name and self.username:
            return f"{self.full_name} (@{self.username})"
        return self.full_name or self.username or self.id


@dataclass(frozen=True)
class BoardList:
    id: str
    name: str
    position: float = 0.0

    @classmethod
    def from_api(cls, trello_list: dict[str, Any]) -> BoardList:
        return cls(
            id=trello_list["id"],
            name=trello_list.get("name", ""),
            position=float(trello_list.get("pos") or 0),
        )
