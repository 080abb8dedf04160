"""Detect cards that share an identity key before the import starts."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pivotal2trello.cache import DestinationCache
from pivotal2trello.exceptions import ImportAbortedError
from pivotal2trello.identity import group_by_identity
from pivotal2trello.models import DestinationCard
from pivotal2trello.prompts import Prompter

logger = logging.getLogger(__name__)


def find_duplicate_cards(cards: Iterable[DestinationCard]) -> list[list[DestinationCard]]:
    """Groups of two or more cards with the same name and description"""
    return [group for group in group_by_identity(cards).values() if len(group) > 1]


def format_card(card: DestinationCard, list_name: str) -> str:
    """Multi-line summary of a card for the operator"""
    return (
        f"    Name:        {card.name}\n"
        f"    Description: {card.description[:200]}\n"
        f"    List:        {list_name}\n"
        f"    URL:         {card.url}\n"
    )


class DuplicateDetector:
    """Stop and ask before importing into a board that already has duplicates

    Only one card per identity key can be reconciled; the others would be
    reported as untouched at the end of the run. The check only reads the
    cache, so aborting here leaves the board exactly as it was.
    """

    def __init__(self, prompter: Prompter):
        self.prompter = prompter

    def check(self, cache: DestinationCache) -> list[list[DestinationCard]]:
        """Report duplicate groups and let the operator proceed or abort

        Returns:
            The duplicate groups found (empty if none)

        Raises:
            ImportAbortedError: If the operator chooses to abort
        """
        groups = find_duplicate_cards(cache.initial_cards)
        if not groups:
            logger.info("✅ No duplicate cards on the board")
            return groups

        total = sum(len(group) for group in groups)
        logger.warning(
            "⚠️  Found %d cards in %d duplicate groups (same name and description):",
            total,
            len(groups),
        )
        for group in groups:
            for card in group:
                logger.warning("\n%s", format_card(card, cache.list_name(card.list_id)))

        proceed = self.prompter.choose(
            "Duplicate cards were found. How would you like to continue?",
            {
                True: "Continue the import anyway (only one card per group will be updated)",
                False: "Abort so I can resolve the duplicates by hand",
            },
        )
        if not proceed:
            raise ImportAbortedError(f"Import aborted: {len(groups)} duplicate card groups found")

        logger.info("Continuing despite %d duplicate groups", len(groups))
        return groups
