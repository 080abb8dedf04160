"""Pivotal -> Trello import orchestration."""

from __future__ import annotations

import logging

from pivotal2trello.cache import DestinationCache
from pivotal2trello.config import ESTIMATE, TRACKER_LABELS, ImportConfig, LabelColors, ListRouting
from pivotal2trello.duplicates import DuplicateDetector
from pivotal2trello.engine import ImportStats, ReconciliationEngine
from pivotal2trello.members import build_owner_membership_map
from pivotal2trello.models import LABEL_COLORS, STORY_KINDS
from pivotal2trello.ordering import resolve_positions
from pivotal2trello.pivotal_client import PivotalReader
from pivotal2trello.prompts import Prompter
from pivotal2trello.retry import RetryExecutor
from pivotal2trello.trello_client import TrelloClient
from pivotal2trello.untouched import UntouchedCardScanner

logger = logging.getLogger(__name__)

# Prompt wording for each routed state, keyed by Pivotal state
STATE_PROMPTS = {
    "unscheduled": "icebox",
    "started": "current",
    "finished": "finished",
    "delivered": "delivered",
    "accepted": "accepted",
    "rejected": "rejected",
}


def list_choices(cache: DestinationCache) -> dict[str | None, str]:
    """Board lists sorted by name, plus an option to skip the stories"""
    choices: dict[str | None, str] = {
        lst.id: lst.name for lst in sorted(cache.lists, key=lambda lst: lst.name)
    }
    choices[None] = "[don't import these stories]"
    return choices


def label_color_choices() -> dict[str | None, str]:
    choices: dict[str | None, str] = {color: color.capitalize() for color in LABEL_COLORS}
    choices[None] = "[do not create this label]"
    return choices


class PivotalToTrelloImporter:
    """Run one import of a Pivotal project into a Trello board

    A run never writes to the board before the story order has been
    resolved and the operator has answered the wipe and duplicate prompts.
    Rerunning is always safe: cards already imported are reconciled, not
    recreated.
    """

    def __init__(
        self,
        pivotal: PivotalReader,
        trello: TrelloClient,
        prompter: Prompter | None = None,
        config: ImportConfig | None = None,
        retry: RetryExecutor | None = None,
    ):
        self.pivotal = pivotal
        self.trello = trello
        self.prompter = prompter or Prompter()
        self.config = config or ImportConfig()
        self.retry = retry or RetryExecutor(self.config.retry)

    def run(self, resume_from: int | None = None) -> ImportStats:
        """Perform the import

        Args:
            resume_from: Only process stories with an ID greater than this

        Raises:
            OrderingError: If the stories don't form a single ordered chain
            ImportAbortedError: If the operator aborts at the duplicate check
        """
        logger.info("🔄 Starting Pivotal → Trello import...")

        logger.info("🌐 Fetching stories from Pivotal Tracker...")
        items = self.retry.execute(self.pivotal.get_source_items, "fetch stories")
        if not items:
            logger.info("No stories found in the project; nothing to import")
            return ImportStats()
        logger.info("📝 Stories: %d", len(items))

        # Fatal ordering problems surface here, before the board is touched
        positions = resolve_positions(items)

        cache = DestinationCache.load(self.trello, self.retry)
        routing = self._resolve_routing(cache)
        label_colors = self._resolve_label_colors()

        if self._confirm_wipe(cache):
            self._wipe_board(cache)

        DuplicateDetector(self.prompter).check(cache)

        to_process = [item for item in items if resume_from is None or item.id > resume_from]
        owner_names = self.retry.execute(self.pivotal.get_owner_names, "fetch project members")
        owner_map = build_owner_membership_map(
            PivotalReader.collect_owner_ids(to_process),
            owner_names,
            cache.members,
            self.prompter,
            preset=self.config.owners,
        )

        logger.info("")
        logger.info("🔄 Reconciling stories...")
        engine = ReconciliationEngine(
            self.trello, cache, routing, label_colors, owner_map, self.retry
        )
        stats = engine.reconcile_all(items, positions, resume_from=resume_from)

        scanner = UntouchedCardScanner(self.trello, self.retry, self.prompter)
        stats.untouched_deleted = scanner.scan(cache, engine.touched)

        self._log_summary(stats, len(items))
        return stats

    def _resolve_routing(self, cache: DestinationCache) -> ListRouting:
        by_state = self.config.state_lists
        if by_state is None:
            choices = list_choices(cache)
            by_state = {
                state: self.prompter.choose(
                    f"Which Trello list would you like to put '{label}' stories into?", choices
                )
                for state, label in STATE_PROMPTS.items()
            }

        by_kind = self.config.backlog_lists
        if by_kind is None:
            choices = list_choices(cache)
            by_kind = {
                kind: self.prompter.choose(
                    f"Which Trello list would you like to put 'backlog' {kind}s into?", choices
                )
                for kind in STORY_KINDS
            }

        return ListRouting(by_state=by_state, by_kind=by_kind)

    def _resolve_label_colors(self) -> LabelColors:
        colors = self.config.label_colors
        if colors is None:
            choices = label_color_choices()
            colors = {
                kind: self.prompter.choose(
                    f"What color would you like to label {kind}s with?", choices
                )
                for kind in STORY_KINDS
            }
            colors[TRACKER_LABELS] = self.prompter.choose(
                "What color would you like to use for Pivotal labels?", choices
            )
            colors[ESTIMATE] = self.prompter.choose(
                "What color would you like to use for estimate labels?", choices
            )

        return LabelColors(
            by_kind={kind: colors.get(kind) for kind in STORY_KINDS},
            tracker_labels=colors.get(TRACKER_LABELS),
            estimate=colors.get(ESTIMATE),
        )

    def _confirm_wipe(self, cache: DestinationCache) -> bool:
        if not cache.initial_cards:
            return False
        return bool(
            self.prompter.choose(
                f"The board already has {len(cache.initial_cards)} cards. "
                "Delete them before importing?",
                {
                    False: "No, do not delete any Trello cards",
                    True: "Yes, DELETE EVERY CARD in the Trello board before beginning the import",
                },
            )
        )

    def _wipe_board(self, cache: DestinationCache) -> None:
        cards = cache.initial_cards
        logger.warning("🗑️  Deleting all %d cards on the board...", len(cards))
        for index, card in enumerate(cards, 1):
            logger.info("  %d/%d Deleting: %s", index, len(cards), card.name)
            self.retry.execute(
                lambda card_id=card.id: self.trello.delete_card(card_id),
                f"delete card '{card.name}'",
            )
        cache.clear_cards()

    def _log_summary(self, stats: ImportStats, total_stories: int) -> None:
        logger.info("")
        logger.info("=" * 60)
        logger.info("📊 IMPORT SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Stories: {total_stories}")
        logger.info(f"Processed: {stats.stories_processed}")
        logger.info(f"Skipped (no target list): {stats.stories_skipped}")
        logger.info("\nCards:")
        logger.info(f"  Created: {stats.cards_created}")
        logger.info(f"  Already imported: {stats.cards_reused}")
        logger.info(f"  Moved to another list: {stats.cards_moved}")
        logger.info(f"  Repositioned: {stats.positions_updated}")
        logger.info(f"  Untouched cards deleted: {stats.untouched_deleted}")
        logger.info("\nCard details added:")
        logger.info(f"  Comments: {stats.comments_added}")
        logger.info(f"  Tasks: {stats.tasks_added}")
        logger.info(f"  Members: +{stats.members_added} / -{stats.members_removed}")
        logger.info(f"  Labels: {stats.labels_added} ({stats.labels_created} new board labels)")

        if stats.skipped_story_ids:
            shown = ", ".join(str(story_id) for story_id in stats.skipped_story_ids[:10])
            more = len(stats.skipped_story_ids) - 10
            suffix = f" ... and {more} more" if more > 0 else ""
            logger.info(f"\nSkipped stories: {shown}{suffix}")

        if stats.mutations == 0:
            logger.info("\n✅ Board already up to date - no changes made")
        else:
            logger.info("\n✅ Import complete!")
        logger.info("=" * 60)
