"""Tavily web search client."""

from __future__ import annotations

from typing import Any

from loguru import logger
from tavily import AsyncTavilyClient

MIN_QUERY_CHARS = 2


class TavilySearchService:
    """Thin async wrapper around the Tavily search API.

    Returns Tavily's raw response (``answer`` plus ``results``); shape
    normalization is the caller's job.
    """

    def __init__(
        self,
        client: AsyncTavilyClient,
        max_results: int = 5,
        search_depth: str = "basic",
    ) -> None:
        self.client = client
        self.max_results = max_results
        self.search_depth = search_depth

    @classmethod
    def from_api_key(cls, api_key: str, **kwargs) -> TavilySearchService:
        return cls(AsyncTavilyClient(api_key=api_key), **kwargs)

    async def search(self, query: str) -> Any:
        """Search the web for *query*.

        Raises:
            ValueError: If the query is too short to search for.
        """
        if not query or len(query.strip()) < MIN_QUERY_CHARS:
            raise ValueError("Missing or invalid query")

        response = await self.client.search(
            query=query.strip(),
            search_depth=self.search_depth,
            max_results=self.max_results,
            include_answer=True,
        )
        logger.debug("Tavily search | query={} | results={}", query[:60], len(response.get("results", [])))
        return response
