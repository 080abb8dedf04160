"""Bounded exponential backoff for remote calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import requests

from pivotal2trello.exceptions import (
    PivotalNetworkError,
    PivotalRateLimitError,
    PivotalServerError,
    TrelloNetworkError,
    TrelloRateLimitError,
    TrelloServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth waiting out: throttling, server hiccups, timeouts and dropped connections
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TrelloRateLimitError,
    TrelloServerError,
    TrelloNetworkError,
    PivotalRateLimitError,
    PivotalServerError,
    PivotalNetworkError,
    requests.ConnectionError,
    requests.Timeout,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings

    Retry ``n`` (1-based) waits ``base_delay * 2 ** (n - 1)`` seconds. With the
    defaults a failing call is retried after 30s, 60s, ... 1920s, which rides
    out Trello's rate limit windows and short outages.
    """

    base_delay: float = 30.0
    max_retries: int = 7

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    def delay_for(self, retry_number: int) -> float:
        return self.base_delay * (2 ** (retry_number - 1))


class RetryExecutor:
    """Run remote calls, retrying transient failures with exponential backoff

    Non-transient errors (bad credentials, 404s, other 4xx responses) are
    raised on the first attempt. When a transient error persists past
    ``max_retries`` retries, the last error is raised unchanged so callers
    see the original exception type.

    Example:
        >>> retry = RetryExecutor(RetryPolicy(base_delay=1.0, max_retries=3))
        >>> lists = retry.execute(trello.get_lists, "fetch lists")
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        transient_errors: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
    ):
        self.policy = policy or RetryPolicy()
        self.transient_errors = transient_errors

    def execute(self, operation: Callable[[], T], description: str = "remote call") -> T:
        """Call ``operation`` until it succeeds or the retry budget is spent

        Args:
            operation: Zero-argument callable performing the remote call
            description: Short label used in retry log lines

        Returns:
            Whatever ``operation`` returns

        Raises:
            Exception: The last transient error once retries are exhausted,
                or any non-transient error immediately
        """
        retries = 0
        while True:
            try:
                return operation()
            except self.transient_errors as e:
                if retries >= self.policy.max_retries:
                    logger.error(
                        "Maximum number of retries (%d) reached for %s. Error: %s - %s",
                        self.policy.max_retries,
                        description,
                        type(e).__name__,
                        e,
                    )
                    raise
                retries += 1
                delay = self.policy.delay_for(retries)
                logger.warning(
                    "Retrying %s (%d/%d) after %.0f seconds due to: %s - %s",
                    description,
                    retries,
                    self.policy.max_retries,
                    delay,
                    type(e).__name__,
                    e,
                )
                time.sleep(delay)
