"""Re-runnable migration of Pivotal Tracker projects into Trello boards."""

from __future__ import annotations

from pivotal2trello.cache import DestinationCache
from pivotal2trello.cli import main
from pivotal2trello.config import (
    ImportConfig,
    LabelColors,
    ListRouting,
    load_import_config,
)
from pivotal2trello.duplicates import DuplicateDetector, find_duplicate_cards
from pivotal2trello.engine import ImportStats, ReconciliationEngine
from pivotal2trello.exceptions import (
    ConfigError,
    ImportAbortedError,
    OrderingError,
    PivotalAPIError,
    PivotalAuthenticationError,
    PivotalNetworkError,
    PivotalNotFoundError,
    PivotalRateLimitError,
    PivotalServerError,
    TrelloAPIError,
    TrelloAuthenticationError,
    TrelloNetworkError,
    TrelloNotFoundError,
    TrelloRateLimitError,
    TrelloServerError,
)
from pivotal2trello.identity import group_by_identity, identity_key
from pivotal2trello.importer import PivotalToTrelloImporter
from pivotal2trello.logging_config import setup_logging
from pivotal2trello.members import OwnerMembershipMap, build_owner_membership_map
from pivotal2trello.models import DestinationCard, SourceItem, SourceTask
from pivotal2trello.ordering import resolve_positions
from pivotal2trello.pivotal_client import PivotalReader
from pivotal2trello.prompts import Prompter
from pivotal2trello.rate_limiter import RateLimiter
from pivotal2trello.retry import RetryExecutor, RetryPolicy
from pivotal2trello.trello_client import TrelloClient
from pivotal2trello.untouched import UntouchedCardScanner, find_untouched_cards

__version__ = "0.1.0"

__all__ = [
    # Core
    "PivotalToTrelloImporter",
    "ReconciliationEngine",
    "ImportStats",
    "DestinationCache",
    "DuplicateDetector",
    "UntouchedCardScanner",
    "RetryExecutor",
    "RetryPolicy",
    "OwnerMembershipMap",
    "build_owner_membership_map",
    "find_duplicate_cards",
    "find_untouched_cards",
    "identity_key",
    "group_by_identity",
    "resolve_positions",
    # Models and configuration
    "SourceItem",
    "SourceTask",
    "DestinationCard",
    "ImportConfig",
    "ListRouting",
    "LabelColors",
    "load_import_config",
    # Clients
    "PivotalReader",
    "TrelloClient",
    "RateLimiter",
    "Prompter",
    "setup_logging",
    # Exceptions
    "TrelloAPIError",
    "TrelloAuthenticationError",
    "TrelloNotFoundError",
    "TrelloRateLimitError",
    "TrelloServerError",
    "TrelloNetworkError",
    "PivotalAPIError",
    "PivotalAuthenticationError",
    "PivotalNotFoundError",
    "PivotalRateLimitError",
    "PivotalServerError",
    "PivotalNetworkError",
    "OrderingError",
    "ImportAbortedError",
    "ConfigError",
    # CLI
    "main",
]
