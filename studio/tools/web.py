"""Web research tools backed by the search provider."""

from collections.abc import Awaitable
from typing import Any, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from studio.clients.search import ExaSearchClient, SearchNotConfiguredError, SearchProviderError
from studio.models.files import ExecutionContext
from studio.tools.base import InvalidUrlError, ProviderToolError, ToolDefinition, ToolNotConfiguredError

T = TypeVar("T")


class WebSearchInput(BaseModel):
    """Input schema for web_search."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, description="What to search the web for")
    num_results: int = Field(5, alias="numResults", ge=1, le=10, description="Number of results (max 10)")


class CodeContextInput(BaseModel):
    """Input schema for get_code_context."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(
        ...,
        min_length=1,
        description="Programming question or API to look up (e.g. 'React useEffect cleanup with fetch')",
    )
    tokens_num: int = Field(
        5000, alias="tokensNum", ge=1000, le=50000, description="Amount of context to return, in tokens"
    )


class CrawlUrlInput(BaseModel):
    """Input schema for crawl_url."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., description="Absolute http(s) URL of the page to read")
    max_characters: int = Field(
        3000, alias="maxCharacters", ge=100, le=50000, description="Maximum characters of page text to return"
    )


async def _call_provider(call: Awaitable[T]) -> T:
    try:
        return await call
    except SearchNotConfiguredError as e:
        raise ToolNotConfiguredError(f"Web research is not available: {e}") from e
    except SearchProviderError as e:
        raise ProviderToolError(str(e)) from e


def create_web_search_tool(search_client: ExaSearchClient) -> ToolDefinition:
    async def web_search_handler(params: WebSearchInput, context: ExecutionContext) -> dict[str, Any]:
        results = await _call_provider(search_client.search(params.query, params.num_results))
        return {
            "success": True,
            "query": params.query,
            "results": results,
            "message": f"Found {len(results)} web results",
        }

    return ToolDefinition(
        name="web_search",
        description=(
            "Search the web for current information such as library documentation, design inspiration or "
            "recent API changes. Returns titles, URLs and short text excerpts."
        ),
        input_schema_class=WebSearchInput,
        handler=web_search_handler,
    )


def create_get_code_context_tool(search_client: ExaSearchClient) -> ToolDefinition:
    async def get_code_context_handler(params: CodeContextInput, context: ExecutionContext) -> dict[str, Any]:
        result = await _call_provider(search_client.code_context(params.query, params.tokens_num))
        return {"success": True, "query": params.query, **result}

    return ToolDefinition(
        name="get_code_context",
        description=(
            "Get relevant code examples and documentation for a programming question. Use this when unsure "
            "how a library or framework API works before writing code against it."
        ),
        input_schema_class=CodeContextInput,
        handler=get_code_context_handler,
    )


def create_crawl_url_tool(search_client: ExaSearchClient) -> ToolDefinition:
    async def crawl_url_handler(params: CrawlUrlInput, context: ExecutionContext) -> dict[str, Any]:
        parsed = urlparse(params.url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidUrlError(f"Invalid URL: {params.url!r}. Provide an absolute http(s) URL")

        page = await _call_provider(search_client.crawl(parsed.geturl(), params.max_characters))
        return {"success": True, **page}

    return ToolDefinition(
        name="crawl_url",
        description=(
            "Read the text content of a web page, for example a documentation page found with web_search "
            "or a URL the user shared."
        ),
        input_schema_class=CrawlUrlInput,
        handler=crawl_url_handler,
    )
