"""Tests for the Exa search client and the web research tools."""

import json

import httpx
import pytest

from studio.clients.search import ExaSearchClient, SearchNotConfiguredError, SearchProviderError
from studio.models.files import ExecutionContext
from studio.models.llm import ToolCallRequest
from studio.services.file_events import FileChangeNotifier
from studio.services.file_store import InMemoryFileStore
from studio.services.tool_executor import ToolExecutor
from studio.tools.registry import ToolsRegistry

CONTEXT = ExecutionContext(project_id="project-1", user_id="user-1")


def make_client(handler) -> ExaSearchClient:
    return ExaSearchClient(api_key="exa-test-key", transport=httpx.MockTransport(handler))


class TestExaSearchClient:
    """Tests for the HTTP client."""

    @pytest.mark.asyncio
    async def test_search_request_and_results(self):
        """Test that search posts the query and maps results."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"title": "Tailwind Grid", "url": "https://tailwindcss.com/docs/grid", "text": "Utilities"}
                    ]
                },
            )

        results = await make_client(handler).search("tailwind grid", num_results=3)

        assert results == [
            {
                "title": "Tailwind Grid",
                "url": "https://tailwindcss.com/docs/grid",
                "publishedDate": None,
                "author": None,
                "text": "Utilities",
            }
        ]
        [request] = requests
        assert request.url.path == "/search"
        assert request.headers["x-api-key"] == "exa-test-key"
        body = json.loads(request.content)
        assert body["query"] == "tailwind grid"
        assert body["numResults"] == 3

    @pytest.mark.asyncio
    async def test_code_context(self):
        """Test that code context posts to /context with the token budget."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/context"
            assert json.loads(request.content)["tokensNum"] == 2000
            return httpx.Response(200, json={"response": "useEffect(() => {...})", "resultsCount": 4})

        result = await make_client(handler).code_context("react useEffect cleanup", tokens_num=2000)

        assert result["response"] == "useEffect(() => {...})"
        assert result["resultsCount"] == 4

    @pytest.mark.asyncio
    async def test_crawl_returns_first_page(self):
        """Test that crawl returns the page text."""

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["urls"] == ["https://example.com"]
            assert body["text"] == {"maxCharacters": 500}
            return httpx.Response(
                200, json={"results": [{"url": "https://example.com", "title": "Example", "text": "Hi"}]}
            )

        page = await make_client(handler).crawl("https://example.com", max_characters=500)

        assert page == {"url": "https://example.com", "title": "Example", "text": "Hi"}

    @pytest.mark.asyncio
    async def test_crawl_without_results_is_provider_error(self):
        """Test that an empty crawl response is an error."""
        client = make_client(lambda request: httpx.Response(200, json={"results": []}))

        with pytest.raises(SearchProviderError, match="No content"):
            await client.crawl("https://example.com")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Test that non-2xx responses raise SearchProviderError."""
        client = make_client(lambda request: httpx.Response(401, text="invalid api key"))

        with pytest.raises(SearchProviderError, match="401"):
            await client.search("anything")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test that connection failures raise SearchProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SearchProviderError, match="request failed"):
            await make_client(handler).search("anything")

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        """Test that a client without a key refuses to call out."""
        monkeypatch.delenv("EXA_API_KEY", raising=False)
        client = ExaSearchClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))

        assert client.configured is False
        with pytest.raises(SearchNotConfiguredError):
            await client.search("anything")


class TestWebToolsWithProvider:
    """Tests for the web tools going through the executor."""

    def make_executor(self, handler) -> ToolExecutor:
        registry = ToolsRegistry(InMemoryFileStore(), FileChangeNotifier(), make_client(handler))
        return ToolExecutor(registry)

    @pytest.mark.asyncio
    async def test_web_search_tool(self):
        """Test that web_search returns provider results."""
        executor = self.make_executor(
            lambda request: httpx.Response(200, json={"results": [{"title": "A", "url": "https://a.dev"}]})
        )

        result = await executor.execute(
            ToolCallRequest(id="call_1", name="web_search", arguments={"query": "vite config"}), CONTEXT
        )

        assert result.success is True
        assert result.content["results"][0]["url"] == "https://a.dev"
        assert result.content["message"] == "Found 1 web results"

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_tool_error(self):
        """Test that provider failures are reported as ProviderError results."""
        executor = self.make_executor(lambda request: httpx.Response(503, text="unavailable"))

        result = await executor.execute(
            ToolCallRequest(id="call_1", name="crawl_url", arguments={"url": "https://example.com/docs"}), CONTEXT
        )

        assert result.success is False
        assert result.content["errorType"] == "ProviderError"
        assert "503" in result.error

    @pytest.mark.asyncio
    async def test_invalid_url_never_reaches_provider(self):
        """Test that crawl_url validates the URL before calling out."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        executor = self.make_executor(handler)

        result = await executor.execute(
            ToolCallRequest(id="call_1", name="crawl_url", arguments={"url": "ftp://example.com/file"}), CONTEXT
        )

        assert result.content["errorType"] == "InvalidUrl"
        assert calls == []
