"""Custom exception classes for pivotal2trello.

This module defines the exception hierarchy for Trello API errors, Pivotal
Tracker API errors, and the import-level failures raised by the
reconciliation core.
"""

from __future__ import annotations


class TrelloAPIError(Exception):
    """Base exception for Trello API errors"""

    def __init__(
        self, message: str, status_code: int | None = None, response_text: str | None = None
    ):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message)


class TrelloAuthenticationError(TrelloAPIError):
    """Raised when API credentials are invalid or expired (401/403)"""

    pass


class TrelloNotFoundError(TrelloAPIError):
    """Raised when a board, list, card, or member is not found (404)"""

    pass


class TrelloRateLimitError(TrelloAPIError):
    """Raised when the rate limit is exceeded (429)"""

    pass


class TrelloServerError(TrelloAPIError):
    """Raised when Trello's servers return an error (5xx)"""

    pass


class TrelloNetworkError(TrelloAPIError):
    """Raised when a request to Trello times out (including HTTP 408) or the connection fails"""

    pass


class PivotalAPIError(Exception):
    """Base exception for Pivotal Tracker API errors"""

    def __init__(
        self, message: str, status_code: int | None = None, response_text: str | None = None
    ):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message)


class PivotalAuthenticationError(PivotalAPIError):
    """Raised when the Pivotal API token is invalid (401/403)"""

    pass


class PivotalNotFoundError(PivotalAPIError):
    """Raised when a project is not found or not visible to the token (404)"""

    pass


class PivotalRateLimitError(PivotalAPIError):
    """Raised when Pivotal Tracker throttles the token (429)"""

    pass


class PivotalServerError(PivotalAPIError):
    """Raised when Pivotal Tracker's servers return an error (5xx)"""

    pass


class PivotalNetworkError(PivotalAPIError):
    """Raised when a Pivotal request times out (HTTP 408 included) or the connection fails"""

    pass


class OrderingError(Exception):
    """Raised when stories do not form a single unbroken before/after chain.

    The story order is reconstructed from each story's ``before_id`` and
    ``after_id`` links. A missing or ambiguous head, a link to an unknown
    story, a cycle, or a disconnected fragment all make a total order
    impossible, so the import stops before any card is touched.

    Attributes:
        story_ids: Story IDs involved in the inconsistency (may be empty)
    """

    def __init__(self, message: str, story_ids: list[int] | None = None):
        self.story_ids = story_ids or []
        super().__init__(message)


class ImportAbortedError(Exception):
    """Raised when the operator chooses to stop the import"""

    pass


class ConfigError(ValueError):
    """Raised when the import configuration file is invalid"""

    pass
