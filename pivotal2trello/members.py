"""Map Pivotal story owners to Trello board members."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from pivotal2trello.models import BoardMember
from pivotal2trello.prompts import Prompter

logger = logging.getLogger(__name__)


class OwnerMembershipMap(Mapping[int, str]):
    """Read-only mapping of Pivotal owner ID -> Trello member ID

    Owners without a Trello member are simply absent; ``member_for`` returns
    None for them and the engine leaves them off the card.
    """

    def __init__(self, mapping: Mapping[int, str | None] | None = None):
        self._mapping = MappingProxyType(
            {owner_id: member_id for owner_id, member_id in (mapping or {}).items() if member_id}
        )

    def __getitem__(self, owner_id: int) -> str:
        return self._mapping[owner_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def member_for(self, owner_id: int) -> str | None:
        return self._mapping.get(owner_id)

    def members_for(self, owner_ids: Iterable[int]) -> set[str]:
        """Trello member IDs for the given owners, dropping unmapped owners"""
        return {m for m in (self.member_for(owner_id) for owner_id in owner_ids) if m}


def build_owner_membership_map(
    owner_ids: Iterable[int],
    owner_names: Mapping[int, str],
    members: list[BoardMember],
    prompter: Prompter,
    preset: Mapping[int, str | None] | None = None,
) -> OwnerMembershipMap:
    """Resolve every story owner to a board member, once per run

    Owners listed in ``preset`` (from the import config) are not prompted
    for; a preset value of None marks the owner as deliberately unmapped.
    Everyone else is offered the board's members plus a "don't assign"
    option.

    Args:
        owner_ids: Distinct owner IDs of the stories being imported
        owner_names: Pivotal person ID -> display name, for the prompt text
        members: Members of the destination board
        prompter: Used for owners not covered by ``preset``
        preset: Optional owner ID -> member ID (or None) overrides

    Returns:
        Immutable OwnerMembershipMap for the rest of the run
    """
    preset = preset or {}
    choices: dict[str | None, str] = {m.id: m.display_name for m in members}
    choices[None] = "[don't assign a member]"

    mapping: dict[int, str | None] = {}
    for owner_id in owner_ids:
        owner_name = owner_names.get(owner_id, str(owner_id))
        if owner_id in preset:
            mapping[owner_id] = preset[owner_id]
        elif members:
            mapping[owner_id] = prompter.choose(
                f"Which Trello member should be assigned for Pivotal owner '{owner_name}'?",
                choices,
            )
        else:
            mapping[owner_id] = None

        member_id = mapping[owner_id]
        if member_id:
            logger.info("👤 %s → %s", owner_name, choices.get(member_id, member_id))
        else:
            logger.info("👤 %s → (not assigned)", owner_name)

    return OwnerMembershipMap(mapping)
