"""Trello API client with rate limiting and typed errors."""

from __future__ import annotations

import logging
import re
from typing import Any, cast

import requests

from pivotal2trello.exceptions import (
    TrelloAPIError,
    TrelloAuthenticationError,
    TrelloNetworkError,
    TrelloNotFoundError,
    TrelloRateLimitError,
    TrelloServerError,
)
from pivotal2trello.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_STATUS = 408


class TrelloClient:
    """Read and write Trello boards with rate limiting

    Trello API rate limits (per token):
    - 100 requests per 10 seconds = 10 req/sec sustained
    - 300 requests per 10 seconds per API key

    We use 8 req/sec with a burst allowance of 10; an import issues several
    writes per card, so staying under the token limit matters more here than
    for a read-only export.

    Every call is a single attempt. Failures are raised as typed exceptions:
    rate limits, 5xx responses, timeouts and network errors are transient and are
    retried by ``RetryExecutor``; everything else is final.
    """

    def __init__(
        self,
        api_key: str,
        token: str,
        board_id: str | None = None,
        board_url: str | None = None,
        verify_ssl: bool = True,
    ):
        self.api_key = api_key
        self.token = token
        self.base_url = "https://api.trello.com/1"
        self.verify_ssl = verify_ssl
        self.rate_limiter = RateLimiter(requests_per_second=8.0, burst_allowance=10)

        # Board can be given directly, parsed from a URL, or chosen later at a prompt
        self.board_id: str | None
        if board_url:
            self.board_id = self.parse_board_url(board_url)
        elif board_id:
            self.board_id = board_id
        else:
            self.board_id = None

    @staticmethod
    def parse_board_url(url: str) -> str:
        """Extract board ID from Trello URL

        Supports formats:
        - https://trello.com/b/Bm0nnz1R/board-name
        - https://trello.com/b/Bm0nnz1R
        - trello.com/b/Bm0nnz1R/board-name

        Raises:
            ValueError: If URL format is invalid or board ID cannot be extracted
        """
        if not url:
            raise ValueError("URL cannot be empty")

        match = re.search(r"trello\.com/b/([a-zA-Z0-9]+)", url)
        if match:
            return match.group(1)

        raise ValueError(f"Could not extract board ID from URL: {url}")

    def _require_board(self) -> str:
        if not self.board_id:
            raise ValueError(
                "board_id is required for this operation. "
                "Initialize TrelloClient with board_id or board_url, or select a board first."
            )
        return self.board_id

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
        data: dict | None = None,
    ) -> Any:
        """Make one authenticated, rate-limited request to the Trello API

        Credentials and query options travel in the URL; write payloads go in
        the form body so long descriptions and comments stay out of the URL.
        """
        if not self.rate_limiter.acquire(timeout=30.0):
            raise TrelloRateLimitError("Rate limiter timeout - too many requests queued")

        url = f"{self.base_url}/{endpoint}"
        request_params: dict[str, Any] = {"key": self.api_key, "token": self.token}
        if params:
            request_params.update(params)

        logger.debug("%s %s", method, endpoint)
        try:
            response = requests.request(
                method,
                url,
                params=request_params,
                data=data,
                timeout=30,
                verify=self.verify_ssl,
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            raise self._http_error(e, method, endpoint) from e
        except requests.RequestException as e:
            # Network errors, timeouts, etc.
            raise TrelloNetworkError(
                f"Network error for {method} {endpoint}: {e}\n"
                "Check your internet connection and try again."
            ) from e

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _http_error(e: requests.HTTPError, method: str, endpoint: str) -> TrelloAPIError:
        """Translate an HTTP error into the matching TrelloAPIError subclass"""
        status_code = e.response.status_code if e.response is not None else 0
        response_text = e.response.text if e.response is not None else ""

        if status_code == 401:
            return TrelloAuthenticationError(
                "Invalid API credentials. Check your TRELLO_API_KEY and TRELLO_TOKEN.\n"
                "Get credentials at: https://trello.com/power-ups/admin",
                status_code=status_code,
                response_text=response_text,
            )
        if status_code == 403:
            return TrelloAuthenticationError(
                f"Access forbidden to resource: {endpoint}\n"
                "Your API token may not have write access to this board.",
                status_code=status_code,
                response_text=response_text,
            )
        if status_code == 404:
            return TrelloNotFoundError(
                f"Resource not found: {endpoint}",
                status_code=status_code,
                response_text=response_text,
            )
        if status_code == 429:
            return TrelloRateLimitError(
                f"Rate limit exceeded for {method} {endpoint}.\n"
                "Trello's API rate limit: 100 requests per 10 seconds.",
                status_code=status_code,
                response_text=response_text,
            )
        if status_code == REQUEST_TIMEOUT_STATUS:
            return TrelloNetworkError(
                f"Trello timed out waiting for {method} {endpoint} (HTTP 408)",
                status_code=status_code,
                response_text=response_text,
            )
        if status_code >= 500:
            return TrelloServerError(
                f"Trello server error (HTTP {status_code}) for {method} {endpoint}",
                status_code=status_code,
                response_text=response_text,
            )
        return TrelloAPIError(
            f"HTTP {status_code} error for {method} {endpoint}: {response_text[:200]}",
            status_code=status_code,
            response_text=response_text,
        )

    def _paginated_request(self, endpoint: str, params: dict | None = None) -> list[dict]:
        """Fetch every page of a list endpoint (Trello caps responses at 1000 items)

        Pages are requested with the ``before`` parameter set to the ID of
        the last item of the previous page.
        """
        all_items: list[dict] = []
        request_params = params.copy() if params else {}
        request_params["limit"] = 1000

        while True:
            page_items = self._request("GET", endpoint, request_params)

            if not isinstance(page_items, list):
                return cast(list[dict], page_items)

            if not page_items:
                break

            all_items.extend(page_items)

            if len(page_items) < 1000:
                break

            last_item_id = page_items[-1].get("id")
            if not last_item_id:
                break

            request_params["before"] = last_item_id

        return all_items

    # ----- Reads -----

    def validate_credentials(self) -> None:
        """Verify credentials work and, if set, that the board is accessible.

        Raises:
            TrelloAuthenticationError: If API credentials are invalid
            TrelloNotFoundError: If board_id is set but the board isn't accessible
        """
        self._request(
            "GET", "members/me/boards", params={"filter": "open", "fields": "id,name", "limit": "1"}
        )

        if self.board_id:
            try:
                self._request("GET", f"boards/{self.board_id}", params={"fields": "id,name,url"})
            except TrelloNotFoundError as e:
                raise TrelloNotFoundError(
                    f"Board '{self.board_id}' not found or you don't have access to it.\n"
                    f"Check your board URL and that your token belongs to a board member.",
                    status_code=404,
                    response_text=f"Board {self.board_id} not found",
                ) from e

    def list_boards(self, filter_status: str = "open") -> list[dict]:
        """List boards accessible to the authenticated user

        Args:
            filter_status: "open" (default), "closed" or "all"
        """
        valid_filters = {"open", "closed", "all"}
        if filter_status not in valid_filters:
            raise ValueError(
                f"Invalid filter_status: '{filter_status}'. Must be one of: {valid_filters}"
            )

        boards = self._request(
            "GET",
            "members/me/boards",
            {"fields": "name,url,closed,dateLastActivity", "filter": filter_status},
        )
        return cast(list[dict], boards)

    def get_board(self) -> dict:
        """Get board info"""
        board_id = self._require_board()
        return cast(dict, self._request("GET", f"boards/{board_id}", {"fields": "name,desc,url"}))

    def get_lists(self) -> list[dict]:
        """Get the open lists on the board"""
        board_id = self._require_board()
        return cast(
            list[dict],
            self._request("GET", f"boards/{board_id}/lists", {"fields": "name,id,pos"}),
        )

    def get_members(self) -> list[dict]:
        """Get the board's members"""
        board_id = self._require_board()
        return cast(
            list[dict],
            self._request("GET", f"boards/{board_id}/members", {"fields": "fullName,username"}),
        )

    def get_labels(self) -> list[dict]:
        """Get every label defined on the board"""
        board_id = self._require_board()
        return self._paginated_request(f"boards/{board_id}/labels", {"fields": "name,color"})

    def get_cards(self) -> list[dict]:
        """Get all open cards with checklists and member IDs (paginated)"""
        board_id = self._require_board()
        return self._paginated_request(
            f"boards/{board_id}/cards",
            {
                "checklists": "all",
                "fields": "name,desc,idList,idBoard,pos,idLabels,idMembers,url,shortUrl,badges",
            },
        )

    def get_card_comments(self, card_id: str) -> list[dict]:
        """Get all comments for a card (paginated)"""
        return self._paginated_request(f"cards/{card_id}/actions", {"filter": "commentCard"})

    # ----- Writes -----

    def create_card(self, list_id: str, name: str, description: str, pos: float) -> dict:
        """Create a card in a list at the given position"""
        return cast(
            dict,
            self._request(
                "POST",
                "cards",
                data={"idList": list_id, "name": name, "desc": description, "pos": pos},
            ),
        )

    def move_card(self, card_id: str, list_id: str) -> dict:
        return cast(dict, self._request("PUT", f"cards/{card_id}", data={"idList": list_id}))

    def set_card_position(self, card_id: str, pos: float) -> dict:
        return cast(dict, self._request("PUT", f"cards/{card_id}", data={"pos": pos}))

    def delete_card(self, card_id: str) -> None:
        self._request("DELETE", f"cards/{card_id}")

    def archive_list_cards(self, list_id: str) -> None:
        """Archive every card in a list"""
        self._request("POST", f"lists/{list_id}/archiveAllCards")

    def archive_list(self, list_id: str) -> dict:
        """Close a list (Trello has no list deletion; closed lists are archived)"""
        return cast(dict, self._request("PUT", f"lists/{list_id}/closed", data={"value": "true"}))

    def create_label(self, name: str, color: str | None) -> dict:
        """Create a label on the board"""
        board_id = self._require_board()
        payload = {"idBoard": board_id, "name": name, "color": color or "null"}
        return cast(dict, self._request("POST", "labels", data=payload))

    def add_label_to_card(self, card_id: str, label_id: str) -> None:
        self._request("POST", f"cards/{card_id}/idLabels", data={"value": label_id})

    def add_member_to_card(self, card_id: str, member_id: str) -> None:
        self._request("POST", f"cards/{card_id}/idMembers", data={"value": member_id})

    def remove_member_from_card(self, card_id: str, member_id: str) -> None:
        self._request("DELETE", f"cards/{card_id}/idMembers/{member_id}")

    def create_checklist(self, card_id: str, name: str) -> dict:
        return cast(
            dict, self._request("POST", "checklists", data={"idCard": card_id, "name": name})
        )

    def add_checklist_item(self, checklist_id: str, name: str, checked: bool = False) -> dict:
        return cast(
            dict,
            self._request(
                "POST",
                f"checklists/{checklist_id}/checkItems",
                data={"name": name, "checked": "true" if checked else "false"},
            ),
        )

    def add_comment(self, card_id: str, text: str) -> dict:
        return cast(
            dict, self._request("POST", f"cards/{card_id}/actions/comments", data={"text": text})
        )
