"""Tool building blocks: metadata, the tool base class and the catalog.

A tool is a typed parameter model plus an async handler returning a
JSON-serializable dict. Collaborators (clients, resolvers, flags) arrive
through the ``Services`` bundle built by the composition root; tools never
reach for globals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from helpscout_mcp.foundation.errors import JsonDict

if TYPE_CHECKING:
    from helpscout_mcp.container import Services

Category = Literal["conversations", "docs", "reports"]


class ToolMetadata(BaseModel):
    """What the model sees when choosing a tool.

    Attributes:
        name: Registered name, lowercase with underscores ("search_conversations")
        description: Selection hint shown to the model
        category: Which upstream API family the tool talks to
        enabled: Disabled tools are skipped when the catalog is built
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=r"^[a-z][a-z0-9_]*$", max_length=64)
    description: str = Field(..., min_length=10)
    category: Category
    enabled: bool = True


class EmptyParams(BaseModel):
    """Parameter model for tools that take no input."""

    model_config = ConfigDict(extra="forbid")


P = TypeVar("P", bound=BaseModel)


class BaseTool(ABC, Generic[P]):
    """A single operation exposed to the model.

    Concrete tools declare ``metadata`` and ``params_schema`` and implement
    ``_async_run``. Upstream failures propagate as ApiException and are
    rendered by the server, never caught here.

    Example:
        >>> class ServerTimeTool(BaseTool[EmptyParams]):
        ...     metadata = ToolMetadata(name="get_server_time", description="Current server time", category="conversations")
        ...     params_schema = EmptyParams
        ...
        ...     async def _async_run(self, params: EmptyParams) -> JsonDict:
        ...         return server_time()
    """

    metadata: ClassVar[ToolMetadata]
    params_schema: ClassVar[type[BaseModel]]

    __slots__ = ("_services",)

    def __init__(self, services: Services) -> None:
        self._services = services

    @property
    def services(self) -> Services:
        return self._services

    @property
    def name(self) -> str:
        return self.metadata.name

    async def arun(self, params: P) -> JsonDict:
        return await self._async_run(params)

    @abstractmethod
    async def _async_run(self, params: P) -> JsonDict: ...


class ToolRegistry(Mapping[str, BaseTool[Any]]):
    """Read-mostly catalog of tool instances keyed by name."""

    __slots__ = ("_by_name",)

    def __init__(self, tools: Iterable[BaseTool[Any]] = ()) -> None:
        self._by_name: dict[str, BaseTool[Any]] = {}
        self.extend(tools)

    def add(self, tool: BaseTool[Any]) -> None:
        if tool.name in self._by_name:
            raise ValueError(f"Duplicate tool name {tool.name!r}")
        self._by_name[tool.name] = tool

    def extend(self, tools: Iterable[BaseTool[Any]]) -> ToolRegistry:
        for tool in tools:
            self.add(tool)
        return self

    def enabled(self) -> list[BaseTool[Any]]:
        return [tool for tool in self._by_name.values() if tool.metadata.enabled]

    def __getitem__(self, name: str) -> BaseTool[Any]:
        return self._by_name[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)
