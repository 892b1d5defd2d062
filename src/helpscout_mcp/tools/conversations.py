"""Mailbox tools: inboxes, conversation search, threads and server time.

All reads go through the primary client, so they are cached and retried.
Message bodies are replaced with a marker unless the operator opted in to
exposing customer data (ALLOW_PII).
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from helpscout_mcp.foundation.errors import ApiException, JsonDict
from helpscout_mcp.runtime.observability import get_logger

from .base import BaseTool, EmptyParams, ToolMetadata
from .timeutil import as_utc, iso_utc, parse_time, utc_now

_log = get_logger("tools.conversations")

REDACTED = "[REDACTED]"
THREADS_PAGE_SIZE = 50

ConversationStatus = Literal["active", "pending", "closed", "spam", "all"]


def _embedded(response: Any, key: str) -> list[JsonDict]:
    if not isinstance(response, dict):
        return []
    items = (response.get("_embedded") or {}).get(key)
    return items if isinstance(items, list) else []


def _next_cursor(response: Any) -> str | None:
    if not isinstance(response, dict):
        return None
    return ((response.get("_links") or {}).get("next") or {}).get("href")


def _any_of(field: str, terms: list[str] | None) -> str | None:
    """'(body:"a" OR body:"b")', or None without terms."""
    if not terms:
        return None
    return "(" + " OR ".join(f'{field}:"{term}"' for term in terms) + ")"


def _created_before(conversations: list[JsonDict], before: datetime | None) -> list[JsonDict]:
    if before is None:
        return conversations
    cutoff = as_utc(before)
    return [
        c for c in conversations
        if (created := parse_time(c.get("createdAt"))) is not None and created < cutoff
    ]


def redact_thread(thread: JsonDict, allow_pii: bool) -> JsonDict:
    """Copy of ``thread`` with its body masked unless PII is allowed."""
    if allow_pii:
        return thread
    return {**thread, "body": REDACTED}


def _inbox_summary(mailbox: JsonDict) -> JsonDict:
    return {k: mailbox.get(k) for k in ("id", "name", "email", "createdAt", "updatedAt")}


# ─────────────────────────────────────────────────────────────────────────────
# Inboxes
# ─────────────────────────────────────────────────────────────────────────────


class SearchInboxesParams(BaseModel):
    query: str = Field(..., description="Text to match against inbox names (case-insensitive); empty lists all")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum inboxes to fetch")


class SearchInboxesTool(BaseTool[SearchInboxesParams]):
    """Find inboxes whose name contains the query."""

    metadata = ToolMetadata(
        name="search_inboxes",
        description="Search Help Scout inboxes by name; use the returned id to filter conversations",
        category="conversations",
    )
    params_schema = SearchInboxesParams

    async def _async_run(self, params: SearchInboxesParams) -> JsonDict:
        response = await self.services.helpscout.get("/mailboxes", {"page": 1, "size": params.limit})
        mailboxes = _embedded(response, "mailboxes")
        needle = params.query.lower()
        matches = [m for m in mailboxes if needle in str(m.get("name", "")).lower()]
        return {
            "results": [_inbox_summary(m) for m in matches],
            "query": params.query,
            "totalFound": len(matches),
            "totalAvailable": len(mailboxes),
        }


class ListAllInboxesParams(BaseModel):
    limit: int = Field(default=100, ge=1, le=100, description="Maximum inboxes to return")


class ListAllInboxesTool(BaseTool[ListAllInboxesParams]):
    metadata = ToolMetadata(
        name="list_all_inboxes",
        description="List every inbox with its id; call this first to discover inbox ids",
        category="conversations",
    )
    params_schema = ListAllInboxesParams

    async def _async_run(self, params: ListAllInboxesParams) -> JsonDict:
        response = await self.services.helpscout.get("/mailboxes", {"page": 1, "size": params.limit})
        mailboxes = _embedded(response, "mailboxes")
        return {
            "inboxes": [_inbox_summary(m) for m in mailboxes],
            "totalInboxes": len(mailboxes),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Conversations
# ─────────────────────────────────────────────────────────────────────────────


class SearchConversationsParams(BaseModel):
    query: str | None = Field(default=None, description='Search query, e.g. (body:"refund")')
    inbox_id: str | None = Field(default=None, description="Inbox id from list_all_inboxes")
    tag: str | None = Field(default=None, description="Tag name filter")
    status: ConversationStatus | None = Field(default=None, description="Conversation status filter")
    created_after: datetime | None = Field(default=None, description="Only conversations modified after this time")
    created_before: datetime | None = Field(default=None, description="Only conversations created before this time")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum results")
    sort: Literal["createdAt", "modifiedAt", "number"] = Field(default="createdAt", description="Sort field")
    order: Literal["asc", "desc"] = Field(default="desc", description="Sort order")
    fields: list[str] | None = Field(default=None, description="Only return these conversation fields")

    @field_validator("query", "inbox_id", "tag", mode="before")
    @classmethod
    def _blank_to_none(cls, v: object) -> object:
        return None if isinstance(v, str) and not v.strip() else v


class SearchConversationsTool(BaseTool[SearchConversationsParams]):
    """Conversation search with the filters the upstream API lacks applied locally.

    Searching by query or tag without a status defaults to active
    conversations, matching the upstream UI.
    """

    metadata = ToolMetadata(
        name="search_conversations",
        description="Search conversations by query, inbox, tag, status and creation window",
        category="conversations",
    )
    params_schema = SearchConversationsParams

    async def _async_run(self, params: SearchConversationsParams) -> JsonDict:
        applied_defaults: list[str] = []
        status = params.status
        if status is None and (params.query or params.tag):
            status = "active"
            applied_defaults.append("status: active")

        query: dict[str, Any] = {
            "page": 1,
            "size": params.limit,
            "sortField": params.sort,
            "sortOrder": params.order,
            "query": params.query,
            "mailbox": params.inbox_id,
            "tag": params.tag,
            "status": status,
            "modifiedSince": iso_utc(params.created_after) if params.created_after else None,
        }
        response = await self.services.helpscout.get("/conversations", query)
        conversations = _created_before(_embedded(response, "conversations"), params.created_before)

        if params.fields:
            wanted = set(params.fields)
            conversations = [{k: v for k, v in c.items() if k in wanted} for c in conversations]

        _log.debug("conversations searched", returned=len(conversations), status=status or "all")
        return {
            "results": conversations,
            "pagination": response.get("page") if isinstance(response, dict) else None,
            "nextCursor": _next_cursor(response),
            "searchInfo": {
                "query": params.query,
                "status": status or "all",
                "appliedDefaults": applied_defaults or None,
            },
        }


# ─────────────────────────────────────────────────────────────────────────────
# Structured search
# ─────────────────────────────────────────────────────────────────────────────

SearchStatus = Literal["active", "pending", "closed", "spam"]
SearchLocation = Literal["body", "subject", "both"]

SEARCH_TIPS = (
    "Try broader search terms or increase the timeframe",
    "Check if the inbox ID is correct",
    "Consider searching without status restrictions first",
    "Verify that conversations exist for the specified criteria",
)


class AdvancedConversationSearchParams(BaseModel):
    content_terms: list[str] | None = Field(default=None, description="Match any of these in message bodies")
    subject_terms: list[str] | None = Field(default=None, description="Match any of these in subjects")
    customer_email: str | None = Field(default=None, description="Exact customer email")
    email_domain: str | None = Field(default=None, description='Customer email domain, e.g. "acme.com"')
    tags: list[str] | None = Field(default=None, description="Match any of these tags")
    inbox_id: str | None = Field(default=None, description="Inbox id from list_all_inboxes")
    status: SearchStatus | None = Field(default=None, description="Conversation status filter")
    created_after: datetime | None = Field(default=None, description="Only conversations modified after this time")
    created_before: datetime | None = Field(default=None, description="Only conversations created before this time")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum results")

    def search_query(self) -> str | None:
        """Each given criterion becomes one group; groups are ANDed."""
        parts = [
            _any_of("body", self.content_terms),
            _any_of("subject", self.subject_terms),
            f'email:"{self.customer_email}"' if self.customer_email else None,
            f'email:"{self.email_domain.replace("@", "")}"' if self.email_domain else None,
            _any_of("tag", self.tags),
        ]
        present = [p for p in parts if p]
        return " AND ".join(present) if present else None


class AdvancedConversationSearchTool(BaseTool[AdvancedConversationSearchParams]):
    """Builds Help Scout query syntax from separate body, subject, email and tag criteria."""

    metadata = ToolMetadata(
        name="advanced_conversation_search",
        description="Search conversations by body terms, subject terms, customer email or domain, and tags",
        category="conversations",
    )
    params_schema = AdvancedConversationSearchParams

    async def _async_run(self, params: AdvancedConversationSearchParams) -> JsonDict:
        search_query = params.search_query()
        response = await self.services.helpscout.get("/conversations", {
            "page": 1,
            "size": params.limit,
            "sortField": "createdAt",
            "sortOrder": "desc",
            "query": search_query,
            "mailbox": params.inbox_id,
            "status": params.status,
            "modifiedSince": iso_utc(params.created_after) if params.created_after else None,
        })
        conversations = _created_before(_embedded(response, "conversations"), params.created_before)
        return {
            "results": conversations,
            "searchQuery": search_query,
            "searchCriteria": {
                "contentTerms": params.content_terms,
                "subjectTerms": params.subject_terms,
                "customerEmail": params.customer_email,
                "emailDomain": params.email_domain,
                "tags": params.tags,
            },
            "pagination": response.get("page") if isinstance(response, dict) else None,
            "nextCursor": _next_cursor(response),
        }


class ComprehensiveConversationSearchParams(BaseModel):
    search_terms: list[str] = Field(..., min_length=1, description="Terms to look for; any term matches")
    inbox_id: str | None = Field(default=None, description="Inbox id from list_all_inboxes")
    statuses: list[SearchStatus] = Field(
        default_factory=lambda: ["active", "pending", "closed"], min_length=1, description="Statuses to search",
    )
    search_in: list[SearchLocation] = Field(
        default_factory=lambda: ["both"], min_length=1, description="Where terms must appear",
    )
    timeframe_days: int = Field(default=60, ge=1, le=365, description="Look back this many days")
    created_after: datetime | None = Field(default=None, description="Overrides timeframe_days")
    created_before: datetime | None = Field(default=None, description="Only conversations created before this time")
    limit_per_status: int = Field(default=25, ge=1, le=100, description="Maximum results per status")

    def search_query(self) -> str:
        """One group per term over the chosen fields; groups are ORed."""
        both = "both" in self.search_in
        fields = [f for f in ("body", "subject") if both or f in self.search_in]
        groups = ["(" + " OR ".join(f'{f}:"{term}"' for f in fields) + ")" for term in self.search_terms]
        return " OR ".join(groups)


class ComprehensiveConversationSearchTool(BaseTool[ComprehensiveConversationSearchParams]):
    """Runs one search per status concurrently and groups the results.

    A status whose search fails contributes an empty result instead of
    failing the whole call.
    """

    metadata = ToolMetadata(
        name="comprehensive_conversation_search",
        description="Search conversations across several statuses at once, grouped by status",
        category="conversations",
    )
    params_schema = ComprehensiveConversationSearchParams

    async def _async_run(self, params: ComprehensiveConversationSearchParams) -> JsonDict:
        if params.created_after is not None:
            created_after = as_utc(params.created_after)
        else:
            created_after = utc_now() - timedelta(days=params.timeframe_days)
        search_query = params.search_query()
        results = await asyncio.gather(*(
            self._search_status(status, search_query, created_after, params)
            for status in dict.fromkeys(params.statuses)
        ))
        found = sum(len(r["conversations"]) for r in results)
        return {
            "searchTerms": params.search_terms,
            "searchQuery": search_query,
            "searchIn": params.search_in,
            "timeframe": {
                "createdAfter": iso_utc(created_after),
                "createdBefore": iso_utc(params.created_before) if params.created_before else None,
                "days": params.timeframe_days,
            },
            "totalConversationsFound": found,
            "totalAvailableAcrossStatuses": sum(r["totalCount"] for r in results),
            "resultsByStatus": list(results),
            "searchTips": list(SEARCH_TIPS) if not found else None,
        }

    async def _search_status(
        self,
        status: str,
        search_query: str,
        created_after: datetime,
        params: ComprehensiveConversationSearchParams,
    ) -> JsonDict:
        try:
            response = await self.services.helpscout.get("/conversations", {
                "page": 1,
                "size": params.limit_per_status,
                "sortField": "createdAt",
                "sortOrder": "desc",
                "query": search_query,
                "status": status,
                "modifiedSince": iso_utc(created_after),
                "mailbox": params.inbox_id,
            })
        except ApiException as e:
            _log.warning("status search failed", status=status, code=e.code.value, error=e.error.message)
            return {"status": status, "totalCount": 0, "conversations": [], "searchQuery": search_query}

        conversations = _created_before(_embedded(response, "conversations"), params.created_before)
        page = response.get("page") if isinstance(response, dict) else None
        return {
            "status": status,
            "totalCount": (page or {}).get("totalElements") or len(conversations),
            "conversations": conversations,
            "searchQuery": search_query,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Threads
# ─────────────────────────────────────────────────────────────────────────────


class GetThreadsParams(BaseModel):
    conversation_id: str = Field(..., min_length=1, description="Conversation id")
    limit: int = Field(default=200, ge=1, le=200, description="Maximum threads to return")


class GetThreadsTool(BaseTool[GetThreadsParams]):
    metadata = ToolMetadata(
        name="get_threads",
        description="Get the message history (threads) of one conversation",
        category="conversations",
    )
    params_schema = GetThreadsParams

    async def _async_run(self, params: GetThreadsParams) -> JsonDict:
        response = await self.services.helpscout.get(
            f"/conversations/{params.conversation_id}/threads", {"page": 1, "size": params.limit},
        )
        allow_pii = self.services.allow_pii
        threads = [redact_thread(t, allow_pii) for t in _embedded(response, "threads")]
        return {
            "conversationId": params.conversation_id,
            "threads": threads,
            "pagination": response.get("page") if isinstance(response, dict) else None,
            "nextCursor": _next_cursor(response),
        }


class ConversationSummaryParams(BaseModel):
    conversation_id: str = Field(..., min_length=1, description="Conversation id")


def first_customer_message(threads: list[JsonDict]) -> JsonDict | None:
    customer = [t for t in threads if t.get("type") == "customer"]
    return min(customer, key=lambda t: parse_time(t.get("createdAt")) or datetime.max.replace(tzinfo=UTC), default=None)


def latest_staff_reply(threads: list[JsonDict]) -> JsonDict | None:
    staff = [t for t in threads if t.get("type") == "message" and t.get("createdBy")]
    return max(staff, key=lambda t: parse_time(t.get("createdAt")) or datetime.min.replace(tzinfo=UTC), default=None)


class GetConversationSummaryTool(BaseTool[ConversationSummaryParams]):
    metadata = ToolMetadata(
        name="get_conversation_summary",
        description="Summarize a conversation: first customer message and latest staff reply",
        category="conversations",
    )
    params_schema = ConversationSummaryParams

    async def _async_run(self, params: ConversationSummaryParams) -> JsonDict:
        client = self.services.helpscout
        conversation = await client.get(f"/conversations/{params.conversation_id}")
        threads_response = await client.get(
            f"/conversations/{params.conversation_id}/threads", {"page": 1, "size": THREADS_PAGE_SIZE},
        )
        threads = _embedded(threads_response, "threads")
        allow_pii = self.services.allow_pii

        def message(thread: JsonDict | None) -> JsonDict | None:
            if thread is None:
                return None
            return {
                "createdAt": thread.get("createdAt"),
                "body": thread.get("body") if allow_pii else REDACTED,
                "author": thread.get("createdBy") or thread.get("customer"),
            }

        conv = conversation if isinstance(conversation, dict) else {}
        return {
            "conversation": {
                k: conv.get(k)
                for k in ("id", "number", "subject", "status", "createdAt", "updatedAt", "customer", "assignee", "tags")
            },
            "firstCustomerMessage": message(first_customer_message(threads)),
            "latestStaffReply": message(latest_staff_reply(threads)),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Clock
# ─────────────────────────────────────────────────────────────────────────────


def server_time() -> JsonDict:
    now = utc_now()
    return {"isoTime": iso_utc(now), "unixTime": int(now.timestamp())}


class GetServerTimeTool(BaseTool[EmptyParams]):
    metadata = ToolMetadata(
        name="get_server_time",
        description="Current server time, for building relative date filters",
        category="conversations",
    )
    params_schema = EmptyParams

    async def _async_run(self, params: EmptyParams) -> JsonDict:
        return server_time()


CONVERSATION_TOOLS: tuple[type[BaseTool[Any]], ...] = (
    SearchInboxesTool,
    ListAllInboxesTool,
    SearchConversationsTool,
    AdvancedConversationSearchTool,
    ComprehensiveConversationSearchTool,
    GetThreadsTool,
    GetConversationSummaryTool,
    GetServerTimeTool,
)
