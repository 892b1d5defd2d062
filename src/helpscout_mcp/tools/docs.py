"""Docs tools: sites, collections, articles, popularity ranking and natural-language resolution."""

from __future__ import annotations

import asyncio
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from helpscout_mcp.foundation.errors import ApiException, ErrorCode, JsonDict
from helpscout_mcp.resolvers import MatchResult
from helpscout_mcp.runtime.observability import current_context

from .base import BaseTool, ToolMetadata

ARTICLES_PAGE_SIZE = 100


def _match_payload(match: MatchResult[Any]) -> JsonDict:
    payload: JsonDict = {
        "id": match.entity.id,
        "name": match.entity.label,
        "score": match.score,
        "reason": match.reason,
    }
    if match.site is not None:
        payload["site"] = {"id": match.site.id, "name": match.site.label}
    return payload


def _no_match(kind: str, text: str) -> ApiException:
    return ApiException.create(
        f"No Docs {kind} matches '{text[:100]}'",
        code=ErrorCode.NOT_FOUND,
        request_id=str(current_context().get("request_id", "unknown")),
        suggestion=f"List {kind}s to see what is available, or configure a default {kind} id",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Listing
# ─────────────────────────────────────────────────────────────────────────────


class ListDocsSitesParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")


class ListDocsSitesTool(BaseTool[ListDocsSitesParams]):
    metadata = ToolMetadata(
        name="list_docs_sites",
        description="List Help Scout Docs sites (knowledge bases)",
        category="docs",
    )
    params_schema = ListDocsSitesParams

    async def _async_run(self, params: ListDocsSitesParams) -> JsonDict:
        return await self.services.docs.get("/sites", {"page": params.page})


class ListDocsCollectionsParams(BaseModel):
    site_id: str | None = Field(default=None, description="Only collections of this site")
    page: int = Field(default=1, ge=1, description="Page number")
    visibility: Literal["all", "public", "private"] = Field(default="all", description="Visibility filter")
    sort: Literal["number", "visibility", "order", "name", "createdAt", "updatedAt"] = Field(
        default="order", description="Sort field",
    )
    order: Literal["asc", "desc"] = Field(default="asc", description="Sort order")


class ListDocsCollectionsTool(BaseTool[ListDocsCollectionsParams]):
    metadata = ToolMetadata(
        name="list_docs_collections",
        description="List Docs collections, optionally for a single site",
        category="docs",
    )
    params_schema = ListDocsCollectionsParams

    async def _async_run(self, params: ListDocsCollectionsParams) -> JsonDict:
        return await self.services.docs.get("/collections", {
            "siteId": params.site_id,
            "page": params.page,
            "visibility": params.visibility,
            "sort": params.sort,
            "order": params.order,
        })


# ─────────────────────────────────────────────────────────────────────────────
# Articles
# ─────────────────────────────────────────────────────────────────────────────


class GetDocsArticleParams(BaseModel):
    article_id: str = Field(..., min_length=1, description="Article id or number")
    draft: bool = Field(default=False, description="Return the draft revision when one exists")


class GetDocsArticleTool(BaseTool[GetDocsArticleParams]):
    metadata = ToolMetadata(
        name="get_docs_article",
        description="Get one Docs article including its body text",
        category="docs",
    )
    params_schema = GetDocsArticleParams

    async def _async_run(self, params: GetDocsArticleParams) -> JsonDict:
        response = await self.services.docs.get(
            f"/articles/{params.article_id}", {"draft": "true" if params.draft else None},
        )
        if isinstance(response, dict) and isinstance(response.get("article"), dict):
            return response["article"]
        return response


class UpdateDocsArticleParams(BaseModel):
    article_id: str = Field(..., min_length=1, description="Article id")
    name: str | None = Field(default=None, description="New title")
    text: str | None = Field(default=None, description="New HTML body")
    status: Literal["published", "notpublished"] | None = Field(default=None, description="Publication status")
    slug: str | None = Field(default=None, description="New URL slug")
    categories: list[str] | None = Field(default=None, description="Category ids")
    keywords: list[str] | None = Field(default=None, description="Search keywords")

    @model_validator(mode="after")
    def _has_changes(self) -> UpdateDocsArticleParams:
        if not self.changes():
            raise ValueError("at least one field to update is required")
        return self

    def changes(self) -> JsonDict:
        return self.model_dump(exclude={"article_id"}, exclude_none=True)


class UpdateDocsArticleTool(BaseTool[UpdateDocsArticleParams]):
    metadata = ToolMetadata(
        name="update_docs_article",
        description="Update the title, body, status, slug, categories or keywords of a Docs article",
        category="docs",
    )
    params_schema = UpdateDocsArticleParams

    async def _async_run(self, params: UpdateDocsArticleParams) -> JsonDict:
        changes = params.changes()
        await self.services.docs.update(f"/articles/{params.article_id}", changes)
        return {"articleId": params.article_id, "updated": sorted(changes)}


class DeleteDocsArticleParams(BaseModel):
    article_id: str = Field(..., min_length=1, description="Article id")


class DeleteDocsArticleTool(BaseTool[DeleteDocsArticleParams]):
    metadata = ToolMetadata(
        name="delete_docs_article",
        description="Delete a Docs article (requires HELPSCOUT_ALLOW_DOCS_DELETE=true)",
        category="docs",
    )
    params_schema = DeleteDocsArticleParams

    async def _async_run(self, params: DeleteDocsArticleParams) -> JsonDict:
        await self.services.docs.delete(f"/articles/{params.article_id}")
        return {"articleId": params.article_id, "deleted": True}


class GetTopArticlesParams(BaseModel):
    site_ids: list[str] | None = Field(default=None, description="Only articles of these sites")
    collection_ids: list[str] | None = Field(default=None, description="Only articles of these collections")
    limit: int = Field(default=100, ge=1, le=500, description="Number of articles to return")
    include_stats: bool = Field(default=True, description="Include collection id and timestamps")


def _views(article: JsonDict) -> int:
    return int(article.get("viewCount") or article.get("popularity") or 0)


def _ranked_article(article: JsonDict, include_stats: bool) -> JsonDict:
    ranked: JsonDict = {"id": article.get("id"), "title": article.get("name"), "views": _views(article)}
    if include_stats:
        ranked["collectionId"] = article.get("collectionId")
        ranked["createdAt"] = article.get("createdAt")
        ranked["updatedAt"] = article.get("updatedAt")
    ranked["url"] = article.get("publicUrl")
    return ranked


class GetTopArticlesTool(BaseTool[GetTopArticlesParams]):
    """Most viewed published articles across collections, sites or the whole account.

    Collections come from ``collection_ids`` when given, otherwise from the
    resolver directory (narrowed to ``site_ids`` when given).
    """

    metadata = ToolMetadata(
        name="get_top_articles",
        description="Rank published Docs articles by view count across collections or sites",
        category="docs",
    )
    params_schema = GetTopArticlesParams

    async def _async_run(self, params: GetTopArticlesParams) -> JsonDict:
        collection_ids = params.collection_ids or await self._collection_ids(params.site_ids)
        batches = await asyncio.gather(*(self._published_articles(cid) for cid in collection_ids))
        articles = sorted((a for batch in batches for a in batch), key=_views, reverse=True)[: params.limit]
        filters = {"sites": params.site_ids, "collections": params.collection_ids}
        if not articles:
            return {
                "totalArticles": 0,
                "topArticles": [],
                "message": "No published articles found in the selected collections or sites",
                "filters": filters,
            }

        views = [_views(a) for a in articles]
        return {
            "totalArticles": len(articles),
            "topArticles": [_ranked_article(a, params.include_stats) for a in articles],
            "summary": {
                "totalViews": sum(views),
                "avgViews": round(sum(views) / len(views)),
                "mostViewed": {"title": articles[0].get("name"), "views": views[0]},
            },
            "filters": filters,
        }

    async def _collection_ids(self, site_ids: list[str] | None) -> list[str]:
        by_site = await self.services.collection_resolver.all_collections()
        wanted = set(site_ids) if site_ids else by_site.keys()
        return [c.id for site_id, (_, collections) in by_site.items() if site_id in wanted for c in collections]

    async def _published_articles(self, collection_id: str) -> list[JsonDict]:
        response = await self.services.docs.get(f"/collections/{collection_id}/articles", {
            "page": 1,
            "pageSize": ARTICLES_PAGE_SIZE,
            "sort": "popularity",
            "order": "desc",
            "status": "published",
        })
        items = response.get("items") if isinstance(response, dict) else None
        return [a for a in items or () if isinstance(a, dict)]


# ─────────────────────────────────────────────────────────────────────────────
# Resolution
# ─────────────────────────────────────────────────────────────────────────────


class ResolveParams(BaseModel):
    text: str = Field(..., min_length=1, description='Free-text reference, e.g. "the acme help center"')


class ResolveDocsSiteTool(BaseTool[ResolveParams]):
    metadata = ToolMetadata(
        name="resolve_docs_site",
        description="Resolve a free-text reference to the most likely Docs site",
        category="docs",
    )
    params_schema = ResolveParams

    async def _async_run(self, params: ResolveParams) -> JsonDict:
        match = await self.services.site_resolver.resolve_site(params.text)
        if match is None:
            raise _no_match("site", params.text)
        return _match_payload(match)


class ResolveDocsCollectionTool(BaseTool[ResolveParams]):
    metadata = ToolMetadata(
        name="resolve_docs_collection",
        description="Resolve a free-text reference to the most likely Docs collection",
        category="docs",
    )
    params_schema = ResolveParams

    async def _async_run(self, params: ResolveParams) -> JsonDict:
        match = await self.services.collection_resolver.resolve_collection(params.text)
        if match is None:
            raise _no_match("collection", params.text)
        return _match_payload(match)


DOCS_TOOLS: tuple[type[BaseTool[Any]], ...] = (
    ListDocsSitesTool,
    ListDocsCollectionsTool,
    GetDocsArticleTool,
    UpdateDocsArticleTool,
    DeleteDocsArticleTool,
    GetTopArticlesTool,
    ResolveDocsSiteTool,
    ResolveDocsCollectionTool,
)
