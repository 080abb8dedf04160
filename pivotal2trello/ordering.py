"""Reconstruct the display order of Pivotal stories."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

from pivotal2trello.exceptions import OrderingError
from pivotal2trello.models import SourceItem

logger = logging.getLogger(__name__)


def resolve_positions(items: Sequence[SourceItem]) -> dict[int, int]:
    """Assign each story a rank 1..N from its before/after links.

    Pivotal does not return a rank, only links to neighbouring stories. The
    first story is the one that is after no other story (``after_id`` is
    None); each story's ``before_id`` then names the story below it.

    Args:
        items: Every story in the project (not just the ones being imported)

    Returns:
        Mapping of story ID to rank, a permutation of 1..N

    Raises:
        OrderingError: If there is not exactly one first story, a link points
            at an unknown story, the chain loops, or it misses some stories

    Example:
        >>> a = SourceItem(id=1, name="A", before_id=2, after_id=None)
        >>> b = SourceItem(id=2, name="B", before_id=None, after_id=1)
        >>> resolve_positions([b, a])
        {1: 1, 2: 2}
    """
    if not items:
        return {}

    by_id = {item.id: item for item in items}
    if len(by_id) != len(items):
        counts = Counter(item.id for item in items)
        repeated = sorted(story_id for story_id, count in counts.items() if count > 1)
        raise OrderingError(f"Story IDs appear more than once: {repeated}", repeated)

    heads = [item.id for item in items if item.after_id is None]
    if len(heads) != 1:
        raise OrderingError(
            f"Expected exactly one first story (after_id is empty), found {len(heads)}: {heads}",
            heads,
        )

    positions: dict[int, int] = {}
    story_id: int | None = heads[0]
    rank = 1
    while story_id is not None:
        if story_id in positions:
            raise OrderingError(
                f"Story order loops back to story {story_id} after {rank - 1} stories",
                [story_id],
            )
        item = by_id.get(story_id)
        if item is None:
            raise OrderingError(
                f"Story order refers to story {story_id}, which is not in the project",
                [story_id],
            )
        positions[story_id] = rank
        rank += 1
        story_id = item.before_id

    if len(positions) != len(items):
        unreached = sorted(set(by_id) - set(positions))
        raise OrderingError(
            f"Story order covers {len(positions)} of {len(items)} stories; "
            f"unreachable: {unreached[:10]}",
            unreached,
        )

    logger.debug("Resolved positions for %d stories", len(positions))
    return positions
