"""Payload shapes exchanged with the data-connector service.

Neutral module with no service-layer imports. Upstream models accept
unknown keys since each brand's tool returns its own extras.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Tool names shared by every brand ---

POLL_SIGNIN_TOOL = "poll_signin"
CHECK_SIGNIN_TOOL = "check_signin"
FINALIZE_SIGNIN_TOOL = "finalize_signin"

# Status values reported by the sign-in tools
POLL_STATUS_FINISHED = "FINISHED"
CHECK_STATUS_SUCCESS = "SUCCESS"


def decode_content(raw: Any) -> Any:
    """JSON-decode string content; other values pass through.

    Raises:
        ValueError: If a string is not valid JSON.
    """
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


class ExtractResult(BaseModel):
    """One extraction block returned by a history tool."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    parsed: bool = False
    parse_schema: dict[str, Any] | None = None
    content: Any = None


class ConnectorResponse(BaseModel):
    """Structured content of a purchase-history or details tool call.

    Hosted-link flows fill ``url``/``link_id``; data flows fill one of the
    content fields depending on the brand.
    """

    model_config = ConfigDict(extra="allow")

    url: str | None = None
    link_id: str | None = None
    message: str | None = None
    system_message: str | None = None

    extract_result: list[ExtractResult] = Field(default_factory=list)
    books: list[dict[str, Any]] | None = None
    purchases: list[dict[str, Any]] | None = None
    purchase_history: list[dict[str, Any]] | None = None
    purchase_history_details: list[dict[str, Any]] | None = None

    def raw_content(self) -> Any:
        """First non-empty content source, or None.

        Precedence: extract_result[0].content, books, purchases,
        purchase_history.
        """
        if self.extract_result and self.extract_result[0].content:
            return self.extract_result[0].content
        for candidate in (self.books, self.purchases, self.purchase_history):
            if candidate:
                return candidate
        return None


# --- Responses returned across the HTTP boundary ---


class PurchaseHistoryResponse(BaseModel):
    link_id: str = ""
    hosted_link_url: str = ""
    content: list[Any] | dict[str, Any] = Field(default_factory=list)


class PurchaseHistoryDetailsResponse(BaseModel):
    content: list[Any] | dict[str, Any] = Field(default_factory=list)


class SignInPollResponse(BaseModel):
    auth_completed: bool
    link_id: str


class SignInCheckResponse(BaseModel):
    auth_completed: bool
    link_id: str
    content: Any = None
