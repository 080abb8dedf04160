"""Pivotal Tracker API client (read-only) with rate limiting and typed errors."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, cast

import requests

from pivotal2trello.exceptions import (
    PivotalAPIError,
    PivotalAuthenticationError,
    PivotalNetworkError,
    PivotalNotFoundError,
    PivotalRateLimitError,
    PivotalServerError,
)
from pivotal2trello.models import SourceItem
from pivotal2trello.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Story fields needed for ordering and reconciliation; nested resources are
# embedded so a project's stories arrive in a handful of requests
STORY_FIELDS = (
    ":default,before_id,after_id,owner_ids,labels(name),"
    "comments(text),tasks(description,complete)"
)

PAGE_SIZE = 500


class PivotalReader:
    """Read projects, stories and memberships from Pivotal Tracker v5

    Authentication uses the ``X-TrackerToken`` header. Like ``TrelloClient``,
    each call is a single attempt; transient failures are raised as
    ``PivotalRateLimitError``, ``PivotalServerError`` or
    ``PivotalNetworkError`` for the RetryExecutor to handle.
    """

    def __init__(self, api_token: str, project_id: int | None = None, verify_ssl: bool = True):
        self.api_token = api_token
        self.project_id = project_id
        self.base_url = "https://www.pivotaltracker.com/services/v5"
        self.verify_ssl = verify_ssl
        self.rate_limiter = RateLimiter(requests_per_second=5.0, burst_allowance=5)

    def _require_project(self) -> int:
        if not self.project_id:
            raise ValueError(
                "project_id is required for this operation. "
                "Initialize PivotalReader with project_id, or select a project first."
            )
        return self.project_id

    def _get(self, endpoint: str, params: dict | None = None) -> requests.Response:
        """Make one authenticated GET request and return the raw response"""
        if not self.rate_limiter.acquire(timeout=30.0):
            raise PivotalRateLimitError("Rate limiter timeout - too many requests queued")

        url = f"{self.base_url}/{endpoint}"
        try:
            response = requests.request(
                "GET",
                url,
                params=params or {},
                headers={"X-TrackerToken": self.api_token},
                timeout=30,
                verify=self.verify_ssl,
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else 0
            response_text = e.response.text if e.response is not None else ""
            if status_code in (401, 403):
                raise PivotalAuthenticationError(
                    "Invalid Pivotal Tracker token. Check your PIVOTAL_TOKEN.\n"
                    "Find it at the bottom of https://www.pivotaltracker.com/profile",
                    status_code=status_code,
                    response_text=response_text,
                ) from e
            if status_code == 404:
                raise PivotalNotFoundError(
                    f"Resource not found: {endpoint}",
                    status_code=status_code,
                    response_text=response_text,
                ) from e
            if status_code == 429:
                raise PivotalRateLimitError(
                    f"Pivotal Tracker throttled the request to {endpoint}",
                    status_code=status_code,
                    response_text=response_text,
                ) from e
            if status_code == 408:
                raise PivotalNetworkError(
                    f"Pivotal Tracker timed out waiting for {endpoint} (HTTP 408)",
                    status_code=status_code,
                    response_text=response_text,
                ) from e
            if status_code >= 500:
                raise PivotalServerError(
                    f"Pivotal Tracker server error (HTTP {status_code}) for {endpoint}",
                    status_code=status_code,
                    response_text=response_text,
                ) from e
            raise PivotalAPIError(
                f"HTTP {status_code} error for {endpoint}: {response_text[:200]}",
                status_code=status_code,
                response_text=response_text,
            ) from e
        except requests.RequestException as e:
            raise PivotalNetworkError(f"Network error for {endpoint}: {e}") from e

        return response

    def _request(self, endpoint: str, params: dict | None = None) -> Any:
        return self._get(endpoint, params).json()

    def _paginated_request(self, endpoint: str, params: dict | None = None) -> list[dict]:
        """Fetch every page of a paginated endpoint

        Pivotal reports pagination in ``X-Tracker-Pagination-*`` headers;
        offsets advance by the number of items returned until the total is
        reached or a page comes back empty.
        """
        all_items: list[dict] = []
        request_params = params.copy() if params else {}
        request_params["limit"] = PAGE_SIZE
        offset = 0

        while True:
            request_params["offset"] = offset
            response = self._get(endpoint, request_params)
            page_items = response.json()
            if not page_items:
                break

            all_items.extend(page_items)
            offset += len(page_items)

            total = response.headers.get("X-Tracker-Pagination-Total")
            if total is None or offset >= int(total):
                break

        return all_items

    def list_projects(self) -> list[dict]:
        """List projects visible to the token"""
        return cast(list[dict], self._request("projects", {"fields": "id,name"}))

    def get_project(self) -> dict:
        project_id = self._require_project()
        return cast(dict, self._request(f"projects/{project_id}", {"fields": "id,name"}))

    def get_stories(self) -> list[dict]:
        """Get every story in the project with ordering links and nested resources"""
        project_id = self._require_project()
        return self._paginated_request(f"projects/{project_id}/stories", {"fields": STORY_FIELDS})

    def get_memberships(self) -> list[dict]:
        """Get project memberships (each with a nested ``person``)"""
        project_id = self._require_project()
        return cast(list[dict], self._request(f"projects/{project_id}/memberships"))

    def get_source_items(self) -> list[SourceItem]:
        """Get every story parsed into SourceItem records"""
        return [SourceItem.from_api(story) for story in self.get_stories()]

    def get_owner_names(self) -> dict[int, str]:
        """Map each project member's person ID to a display name"""
        names: dict[int, str] = {}
        for membership in self.get_memberships():
            person = membership.get("person") or {}
            if "id" in person:
                name = person.get("name") or person.get("username") or str(person["id"])
                names[int(person["id"])] = name
        return names

    @staticmethod
    def collect_owner_ids(items: Iterable[SourceItem]) -> list[int]:
        """Distinct owner IDs across stories, in first-seen order"""
        owner_ids: dict[int, None] = {}
        for item in items:
            for owner_id in item.owner_ids:
                owner_ids.setdefault(owner_id, None)
        return list(owner_ids)
