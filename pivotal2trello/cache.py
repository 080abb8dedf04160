"""Run-scoped snapshot of the destination Trello board."""

from __future__ import annotations

import logging

from pivotal2trello.models import BoardLabel, BoardList, BoardMember, DestinationCard
from pivotal2trello.retry import RetryExecutor
from pivotal2trello.trello_client import TrelloClient

logger = logging.getLogger(__name__)


class DestinationCache:
    """Lists, members, labels and cards of one board, fetched once per run

    ``initial_cards`` is the board as it was when the run started and is
    never modified afterwards; the untouched-card scan compares against it.
    ``cards_by_key`` is the live identity index: the engine adds cards it
    creates so a second story with the same name and description reuses
    the card instead of creating another.

    The cache assumes nobody else edits the board during the run.
    """

    def __init__(
        self,
        lists: list[BoardList] | None = None,
        members: list[BoardMember] | None = None,
        labels: list[BoardLabel] | None = None,
        cards: list[DestinationCard] | None = None,
    ):
        self.lists = list(lists or [])
        self.members = list(members or [])
        self.labels = list(labels or [])
        self.initial_cards = list(cards or [])
        self.cards_by_key: dict[str, DestinationCard] = {}
        for card in self.initial_cards:
            # With duplicates on the board, the first card (board order) wins
            self.cards_by_key.setdefault(card.identity_key, card)

    @classmethod
    def load(cls, trello: TrelloClient, retry: RetryExecutor) -> DestinationCache:
        """Fetch the selected board's contents through the retry executor"""
        lists = [BoardList.from_api(lst) for lst in retry.execute(trello.get_lists, "fetch lists")]
        members = [
            BoardMember.from_api(m) for m in retry.execute(trello.get_members, "fetch members")
        ]
        labels = [
            BoardLabel.from_api(label) for label in retry.execute(trello.get_labels, "fetch labels")
        ]
        raw_cards = retry.execute(trello.get_cards, "fetch cards")

        cards = []
        for raw in raw_cards:
            comments: list[str] = []
            if raw.get("badges", {}).get("comments", 0) > 0:
                actions = retry.execute(
                    lambda card_id=raw["id"]: trello.get_card_comments(card_id),
                    f"fetch comments for card {raw['id']}",
                )
                comments = [action.get("data", {}).get("text", "") for action in actions]
            cards.append(DestinationCard.from_api(raw, comments))

        logger.info(
            "📋 Loaded board: %d lists, %d members, %d labels, %d cards",
            len(lists),
            len(members),
            len(labels),
            len(cards),
        )
        return cls(lists=lists, members=members, labels=labels, cards=cards)

    @property
    def cards(self) -> list[DestinationCard]:
        """Cards currently known for this run (existing plus created)"""
        return list(self.cards_by_key.values())

    def list_name(self, list_id: str) -> str:
        return next((lst.name for lst in self.lists if lst.id == list_id), list_id)

    def member_name(self, member_id: str) -> str:
        return next((m.display_name for m in self.members if m.id == member_id), member_id)

    def find_card(self, key: str) -> DestinationCard | None:
        return self.cards_by_key.get(key)

    def add_card(self, card: DestinationCard) -> None:
        self.cards_by_key[card.identity_key] = card

    def find_label(self, name: str, color: str | None) -> BoardLabel | None:
        return next((lb for lb in self.labels if lb.name == name and lb.color == color), None)

    def add_label(self, label: BoardLabel) -> None:
        self.labels.append(label)

    def clear_cards(self) -> None:
        """Forget every card (after the board has been wiped)"""
        self.initial_cards = []
        self.cards_by_key = {}
