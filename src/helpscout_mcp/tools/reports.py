"""Report tools: one entry point over the channel report endpoints, and the ratings listing."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from helpscout_mcp.foundation.errors import JsonDict

from .base import BaseTool, ToolMetadata
from .timeutil import as_utc, iso_utc


class ReportKind(StrEnum):
    CHAT = "chat"
    EMAIL = "email"
    PHONE = "phone"
    USER = "user"
    COMPANY = "company"
    HAPPINESS = "happiness"
    DOCS = "docs"

    @property
    def endpoint(self) -> str:
        return f"/reports/{self.value}"


HAPPINESS_RATINGS_ENDPOINT = "/reports/happiness/ratings"


def _csv(values: Sequence[str] | None) -> str | None:
    return ",".join(values) if values else None


def _check_order(start: datetime, end: datetime) -> None:
    if as_utc(start) >= as_utc(end):
        raise ValueError("start must be before end")


class GetReportParams(BaseModel):
    kind: ReportKind = Field(..., description="Report family")
    start: datetime = Field(..., description="Start of the reporting window")
    end: datetime = Field(..., description="End of the reporting window")
    previous_start: datetime | None = Field(default=None, description="Start of the comparison window")
    previous_end: datetime | None = Field(default=None, description="End of the comparison window")
    mailboxes: list[str] | None = Field(default=None, description="Inbox ids to include")
    tags: list[str] | None = Field(default=None, description="Tag ids to include")
    folders: list[str] | None = Field(default=None, description="Folder ids to include")
    user: str | None = Field(default=None, description="User id (required for the user report)")
    view_by: Literal["day", "week", "month"] | None = Field(default=None, description="Time bucket")

    @model_validator(mode="after")
    def _check_window(self) -> GetReportParams:
        _check_order(self.start, self.end)
        if (self.previous_start is None) != (self.previous_end is None):
            raise ValueError("previous_start and previous_end must be given together")
        if self.kind is ReportKind.USER and not self.user:
            raise ValueError("user is required for the user report")
        return self

    def query(self) -> dict[str, Any]:
        return {
            "start": iso_utc(self.start),
            "end": iso_utc(self.end),
            "previousStart": iso_utc(self.previous_start) if self.previous_start else None,
            "previousEnd": iso_utc(self.previous_end) if self.previous_end else None,
            "mailboxes": _csv(self.mailboxes),
            "tags": _csv(self.tags),
            "folders": _csv(self.folders),
            "user": self.user,
            "viewBy": self.view_by,
        }


class GetReportTool(BaseTool[GetReportParams]):
    """Fetch a report; reports the account cannot access come back as NOT_FOUND."""

    metadata = ToolMetadata(
        name="get_report",
        description="Get a Help Scout report (chat, email, phone, user, company, happiness or docs) for a date range",
        category="reports",
    )
    params_schema = GetReportParams

    async def _async_run(self, params: GetReportParams) -> JsonDict:
        report = await self.services.reports.get_report(params.kind.endpoint, params.query())
        return {"kind": params.kind.value, "report": report}


class GetHappinessRatingsParams(BaseModel):
    start: datetime = Field(..., description="Start of the reporting window")
    end: datetime = Field(..., description="End of the reporting window")
    mailboxes: list[str] | None = Field(default=None, description="Inbox ids to include")
    tags: list[str] | None = Field(default=None, description="Tag ids to include")
    types: list[Literal["email", "chat", "phone"]] | None = Field(default=None, description="Channels to include")
    rating: list[Literal["great", "ok", "not-good", "all"]] | None = Field(default=None, description="Ratings to include")
    page: int = Field(default=1, ge=1, description="Page number")
    sort_field: Literal["rating", "createdAt", "modifiedAt"] = Field(default="createdAt", description="Sort field")
    sort_order: Literal["asc", "desc"] = Field(default="desc", description="Sort order")

    @model_validator(mode="after")
    def _check_window(self) -> GetHappinessRatingsParams:
        _check_order(self.start, self.end)
        return self

    def query(self) -> dict[str, Any]:
        return {
            "start": iso_utc(self.start),
            "end": iso_utc(self.end),
            "mailboxes": _csv(self.mailboxes),
            "tags": _csv(self.tags),
            "types": _csv(self.types),
            "rating": _csv(self.rating),
            "page": self.page,
            "sortField": self.sort_field,
            "sortOrder": self.sort_order,
        }


class GetHappinessRatingsTool(BaseTool[GetHappinessRatingsParams]):
    """Individual customer ratings, as opposed to the aggregate happiness report."""

    metadata = ToolMetadata(
        name="get_happiness_ratings",
        description="List individual customer happiness ratings with comments for a date range",
        category="reports",
    )
    params_schema = GetHappinessRatingsParams

    async def _async_run(self, params: GetHappinessRatingsParams) -> JsonDict:
        ratings = await self.services.reports.get_report(HAPPINESS_RATINGS_ENDPOINT, params.query())
        return {
            "ratings": ratings,
            "filters": {
                "mailboxes": params.mailboxes,
                "tags": params.tags,
                "types": params.types,
                "rating": params.rating,
            },
            "period": {"start": iso_utc(params.start), "end": iso_utc(params.end)},
            "pagination": {"page": params.page, "sortField": params.sort_field, "sortOrder": params.sort_order},
        }


REPORT_TOOLS: tuple[type[BaseTool[Any]], ...] = (GetReportTool, GetHappinessRatingsTool)
