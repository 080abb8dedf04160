"""Find and dispose of cards the import run did not touch."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pivotal2trello.cache import DestinationCache
from pivotal2trello.duplicates import format_card
from pivotal2trello.models import DestinationCard
from pivotal2trello.prompts import Prompter
from pivotal2trello.retry import RetryExecutor
from pivotal2trello.trello_client import TrelloClient

logger = logging.getLogger(__name__)

DELETE_ALL = "delete_all"
REVIEW_EACH = "review_each"
KEEP_ALL = "keep_all"

KEEP = "keep"
DELETE = "delete"
QUIT = "quit"


def find_untouched_cards(
    cards: Iterable[DestinationCard], touched_ids: set[str]
) -> list[DestinationCard]:
    """Cards whose ID is not in ``touched_ids``, in their original order"""
    return [card for card in cards if card.id not in touched_ids]


class UntouchedCardScanner:
    """Offer to clean up cards that no longer match any imported story

    These are cards that were on the board before the run and were not
    created or confirmed by it: stories deleted in Pivotal, stories skipped
    by the list routing, or cards orphaned because a story's name or
    description was edited since the last import.
    """

    def __init__(self, trello: TrelloClient, retry: RetryExecutor, prompter: Prompter):
        self.trello = trello
        self.retry = retry
        self.prompter = prompter

    def scan(self, cache: DestinationCache, touched_ids: set[str]) -> int:
        """Ask what to do with untouched cards and carry it out

        Returns:
            Number of cards deleted
        """
        untouched = find_untouched_cards(cache.initial_cards, touched_ids)
        if not untouched:
            logger.info("✅ Every card on the board matches an imported story")
            return 0

        logger.info("")
        logger.info("🗂️  %d cards were not touched by this import", len(untouched))
        disposition = self.prompter.choose(
            f"{len(untouched)} cards on the board were not touched by this import. "
            "What would you like to do with them?",
            {
                DELETE_ALL: "Delete all of them",
                REVIEW_EACH: "Review each card",
                KEEP_ALL: "Keep all of them",
            },
        )

        if disposition == DELETE_ALL:
            for card in untouched:
                print(format_card(card, cache.list_name(card.list_id)))
            if not self.prompter.confirm(f"Really DELETE these {len(untouched)} cards?"):
                logger.info("Keeping all untouched cards")
                return 0
            for card in untouched:
                self._delete(card)
            return len(untouched)

        if disposition == REVIEW_EACH:
            return self._review(untouched, cache)

        logger.info("Keeping all untouched cards")
        return 0

    def _review(self, cards: list[DestinationCard], cache: DestinationCache) -> int:
        deleted = 0
        for index, card in enumerate(cards, 1):
            print(format_card(card, cache.list_name(card.list_id)))
            choice = self.prompter.choose(
                f"Card {index}/{len(cards)}: keep or delete?",
                {KEEP: "Keep this card", DELETE: "Delete this card", QUIT: "Stop reviewing"},
            )
            if choice == QUIT:
                logger.info("Stopped review; %d cards left as they are", len(cards) - index + 1)
                break
            if choice == DELETE:
                self._delete(card)
                deleted += 1
        return deleted

    def _delete(self, card: DestinationCard) -> None:
        logger.info("🗑️  Deleting: %s", card.name)
        self.retry.execute(
            lambda: self.trello.delete_card(card.id), f"delete card '{card.name}'"
        )
