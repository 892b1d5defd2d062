"""Docs directory entities (the subset of fields resolution relies on)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _DocsEntity(BaseModel):
    # Unknown upstream fields are kept so tools can pass them through
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    id: str
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: object) -> object:
        return str(v) if isinstance(v, int) else v

    @property
    def label(self) -> str:
        return self.name or self.id


class DocsSite(_DocsEntity):
    subdomain: str | None = None
    cname: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.subdomain or self.id


class DocsCollection(_DocsEntity):
    name: str = ""
    slug: str | None = None
    site_id: str | None = Field(default=None, alias="siteId")

    @field_validator("site_id", mode="before")
    @classmethod
    def _site_id_as_str(cls, v: object) -> object:
        return str(v) if isinstance(v, int) else v
