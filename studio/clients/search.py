"""Exa API client for web search, code context and page crawling."""

import os
from dataclasses import dataclass
from typing import Any

import httpx

from studio.utils.logging import get_logger

logger = get_logger(__name__)


class SearchNotConfiguredError(Exception):
    """No API key is available for the search provider."""


class SearchProviderError(Exception):
    """The search provider could not be reached or rejected the request."""


@dataclass
class SearchConfig:
    """Configuration for the search client."""

    base_url: str = "https://api.exa.ai"
    timeout: float = 30.0
    search_text_characters: int = 1000  # Page text returned per search hit


class ExaSearchClient:
    """Thin async wrapper around the Exa HTTP API."""

    def __init__(
        self,
        api_key: str | None = None,
        config: SearchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize search client.

        Args:
            api_key: Exa API key (defaults to EXA_API_KEY env var)
            config: Client configuration
            transport: Optional httpx transport, used by tests
        """
        self.api_key = api_key or os.getenv("EXA_API_KEY")
        self.config = config or SearchConfig()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, num_results: int = 5) -> list[dict[str, Any]]:
        """Search the web and return the top results with a text excerpt."""
        data = await self._post(
            "/search",
            {
                "query": query,
                "numResults": num_results,
                "contents": {"text": {"maxCharacters": self.config.search_text_characters}},
            },
        )
        return [
            {
                "title": result.get("title"),
                "url": result.get("url"),
                "publishedDate": result.get("publishedDate"),
                "author": result.get("author"),
                "text": result.get("text", ""),
            }
            for result in data.get("results", [])
        ]

    async def code_context(self, query: str, tokens_num: int = 5000) -> dict[str, Any]:
        """Fetch code snippets and documentation relevant to a programming question."""
        data = await self._post("/context", {"query": query, "tokensNum": tokens_num})
        return {
            "response": data.get("response", ""),
            "resultsCount": data.get("resultsCount"),
            "outputTokens": data.get("outputTokens"),
        }

    async def crawl(self, url: str, max_characters: int = 3000) -> dict[str, Any]:
        """Fetch the text content of a single page."""
        data = await self._post("/contents", {"urls": [url], "text": {"maxCharacters": max_characters}})
        results = data.get("results") or []
        if not results:
            raise SearchProviderError(f"No content returned for {url}")

        page = results[0]
        return {"url": page.get("url", url), "title": page.get("title"), "text": page.get("text", "")}

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise SearchNotConfiguredError("EXA_API_KEY environment variable is not set")

        logger.debug(f"Search provider request: {path}")
        async with httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    path,
                    json=payload,
                    headers={"x-api-key": self.api_key, "content-type": "application/json"},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.warning(f"Search provider returned {e.response.status_code} for {path}")
                raise SearchProviderError(
                    f"Search provider returned {e.response.status_code}: {e.response.text[:200]}"
                ) from e
            except httpx.HTTPError as e:
                logger.warning(f"Search provider request to {path} failed: {e}")
                raise SearchProviderError(f"Search provider request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise SearchProviderError("Search provider returned invalid JSON") from e


_search_client: ExaSearchClient | None = None


def get_search_client() -> ExaSearchClient:
    """Get or create search client instance."""
    global _search_client
    if _search_client is None:
        _search_client = ExaSearchClient()
    return _search_client
