"""Reconcile Pivotal stories onto Trello cards, one story at a time."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from pivotal2trello.cache import DestinationCache
from pivotal2trello.config import LabelColors, ListRouting
from pivotal2trello.members import OwnerMembershipMap
from pivotal2trello.models import BoardLabel, Checklist, ChecklistItem, DestinationCard, SourceItem
from pivotal2trello.retry import RetryExecutor
from pivotal2trello.trello_client import TrelloClient

logger = logging.getLogger(__name__)

# Name of the checklist Pivotal tasks are copied into
TASKS_CHECKLIST = "Tasks"


@dataclass
class ImportStats:
    """Counts of everything one run looked at or changed"""

    stories_processed: int = 0
    stories_skipped: int = 0
    cards_created: int = 0
    cards_reused: int = 0
    cards_moved: int = 0
    positions_updated: int = 0
    comments_added: int = 0
    tasks_added: int = 0
    members_added: int = 0
    members_removed: int = 0
    labels_added: int = 0
    labels_created: int = 0
    untouched_deleted: int = 0
    skipped_story_ids: list[int] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        """Number of card changes made (creation, moves and sub-resources)"""
        return (
            self.cards_created
            + self.cards_moved
            + self.positions_updated
            + self.comments_added
            + self.tasks_added
            + self.members_added
            + self.members_removed
            + self.labels_added
        )


class ReconciliationEngine:
    """Make each story's card match the story, changing only what differs

    Every check compares the story with the cached card and only calls the
    API when something is missing or wrong, so rerunning an import over an
    unchanged project makes no changes. A crash part-way through a card
    leaves it half-reconciled; the next run finishes the job.

    Each remote call goes through the RetryExecutor. A call that still fails
    after all retries propagates and ends the run.
    """

    def __init__(
        self,
        trello: TrelloClient,
        cache: DestinationCache,
        routing: ListRouting,
        label_colors: LabelColors,
        owner_map: OwnerMembershipMap,
        retry: RetryExecutor,
    ):
        self.trello = trello
        self.cache = cache
        self.routing = routing
        self.label_colors = label_colors
        self.owner_map = owner_map
        self.retry = retry
        self.touched: set[str] = set()
        self.stats = ImportStats()

    def reconcile_all(
        self,
        items: Sequence[SourceItem],
        positions: dict[int, int],
        resume_from: int | None = None,
    ) -> ImportStats:
        """Reconcile stories in board order

        Args:
            items: Stories to import
            positions: Rank of every story (see ``resolve_positions``)
            resume_from: Skip stories whose ID is not greater than this,
                to restart an interrupted import

        Returns:
            Statistics for this run (also kept on ``self.stats``)
        """
        ordered = sorted(items, key=lambda item: positions[item.id])
        if resume_from is not None:
            for item in ordered:
                if item.id <= resume_from:
                    # Already imported by the interrupted run; its card still has a story
                    card = self.cache.find_card(item.identity_key)
                    if card is not None:
                        self.touched.add(card.id)
            ordered = [item for item in ordered if item.id > resume_from]
            logger.info(
                "⏩ Resuming after story %s: %d stories to process", resume_from, len(ordered)
            )

        for index, item in enumerate(ordered, 1):
            logger.info("[%d/%d] Story %s: %s", index, len(ordered), item.id, item.name)
            self.reconcile(item, positions[item.id])

        return self.stats

    def reconcile(self, item: SourceItem, position: int) -> DestinationCard | None:
        """Create or update the card for one story

        Returns:
            The reconciled card, or None if the story has no target list
        """
        list_id = self.routing.resolve(item)
        if not list_id:
            logger.warning(
                "Ignoring story %s - type is '%s', state is '%s'", item.id, item.kind, item.state
            )
            self.stats.stories_skipped += 1
            self.stats.skipped_story_ids.append(item.id)
            return None

        card = self._find_or_create_card(item, list_id, position)
        self._ensure_list(card, list_id)
        self._ensure_position(card, position)
        self._ensure_comments(card, item)
        self._ensure_tasks(card, item)
        self._ensure_members(card, item)
        self._ensure_labels(card, item)

        self.touched.add(card.id)
        self.stats.stories_processed += 1
        return card

    def _find_or_create_card(
        self, item: SourceItem, list_id: str, position: int
    ) -> DestinationCard:
        card = self.cache.find_card(item.identity_key)
        if card is not None:
            logger.debug("Reusing card %s for story %s", card.id, item.id)
            self.stats.cards_reused += 1
            return card

        logger.info("✨ Creating a card for %s '%s'", item.kind, item.name)
        created = self.retry.execute(
            lambda: self.trello.create_card(list_id, item.name, item.description, position),
            f"create card '{item.name}'",
        )
        card = DestinationCard.from_api(created)
        # The API may normalise fields; keep the identity the story was matched on
        card.name = item.name
        card.description = item.description
        card.list_id = list_id
        card.position = float(position)
        self.cache.add_card(card)
        self.stats.cards_created += 1
        return card

    def _ensure_list(self, card: DestinationCard, list_id: str) -> None:
        if card.list_id == list_id:
            return
        logger.info(
            "➡️  Moving '%s' from %s to %s",
            card.name,
            self.cache.list_name(card.list_id),
            self.cache.list_name(list_id),
        )
        self.retry.execute(
            lambda: self.trello.move_card(card.id, list_id), f"move card '{card.name}'"
        )
        card.list_id = list_id
        self.stats.cards_moved += 1

    def _ensure_position(self, card: DestinationCard, position: int) -> None:
        if card.position == position:
            return
        logger.info(
            "↕️  Updating position of '%s' from %s to %s", card.name, card.position, position
        )
        self.retry.execute(
            lambda: self.trello.set_card_position(card.id, position),
            f"set position of card '{card.name}'",
        )
        card.position = float(position)
        self.stats.positions_updated += 1

    def _ensure_comments(self, card: DestinationCard, item: SourceItem) -> None:
        existing = {text.strip() for text in card.comments}
        for comment in item.comments:
            text = comment.strip()
            if not text or text in existing:
                continue
            logger.debug("Adding comment to '%s'", card.name)
            self.retry.execute(
                lambda text=text: self.trello.add_comment(card.id, text),
                f"add comment to card '{card.name}'",
            )
            card.comments.append(text)
            existing.add(text)
            self.stats.comments_added += 1

    def _ensure_tasks(self, card: DestinationCard, item: SourceItem) -> None:
        if not item.tasks:
            return

        checklist = card.find_checklist(TASKS_CHECKLIST)
        if checklist is None:
            created = self.retry.execute(
                lambda: self.trello.create_checklist(card.id, TASKS_CHECKLIST),
                f"create checklist on card '{card.name}'",
            )
            checklist = Checklist(id=created["id"], name=TASKS_CHECKLIST)
            card.checklists.append(checklist)

        existing = {entry.name for entry in checklist.items}
        for task in item.tasks:
            if task.description in existing:
                continue
            logger.info(" - Creating task '%s'", task.description)
            created = self.retry.execute(
                lambda task=task: self.trello.add_checklist_item(
                    checklist.id, task.description, task.complete
                ),
                f"add task to card '{card.name}'",
            )
            checklist.items.append(
                ChecklistItem(id=created["id"], name=task.description, complete=task.complete)
            )
            existing.add(task.description)
            self.stats.tasks_added += 1

    def _ensure_members(self, card: DestinationCard, item: SourceItem) -> None:
        expected = self.owner_map.members_for(item.owner_ids)
        current = set(card.member_ids)

        for member_id in sorted(current - expected):
            logger.info("Removing %s from card '%s'", self.cache.member_name(member_id), card.name)
            self.retry.execute(
                lambda member_id=member_id: self.trello.remove_member_from_card(card.id, member_id),
                f"remove member from card '{card.name}'",
            )
            card.member_ids.discard(member_id)
            self.stats.members_removed += 1

        for member_id in sorted(expected - current):
            logger.info("Adding %s to card '%s'", self.cache.member_name(member_id), card.name)
            self.retry.execute(
                lambda member_id=member_id: self.trello.add_member_to_card(card.id, member_id),
                f"add member to card '{card.name}'",
            )
            card.member_ids.add(member_id)
            self.stats.members_added += 1

    def _ensure_labels(self, card: DestinationCard, item: SourceItem) -> None:
        kind_color = self.label_colors.for_kind(item.kind)
        if kind_color:
            self._ensure_label(card, item.kind, kind_color)

        if self.label_colors.tracker_labels:
            for name in item.labels:
                self._ensure_label(card, name, self.label_colors.tracker_labels)

        if item.estimate is not None and self.label_colors.estimate:
            self._ensure_label(card, str(int(item.estimate)), self.label_colors.estimate)

    def _ensure_label(self, card: DestinationCard, name: str, color: str) -> None:
        label = self._board_label(name, color)
        if label.id in card.label_ids:
            return
        logger.debug("Adding label '%s' (%s) to '%s'", name, color, card.name)
        self.retry.execute(
            lambda: self.trello.add_label_to_card(card.id, label.id),
            f"add label '{name}' to card '{card.name}'",
        )
        card.label_ids.add(label.id)
        self.stats.labels_added += 1

    def _board_label(self, name: str, color: str) -> BoardLabel:
        label = self.cache.find_label(name, color)
        if label is not None:
            return label
        logger.info("🏷️  Creating %s label '%s'", color, name)
        created = self.retry.execute(
            lambda: self.trello.create_label(name, color), f"create label '{name}'"
        )
        label = BoardLabel(id=created["id"], name=name, color=color)
        self.cache.add_label(label)
        self.stats.labels_created += 1
        return label
