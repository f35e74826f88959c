"""
Async client for the torrent index search endpoint.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from sailor_cli.exceptions import SearchError
from sailor_cli.models.task import SearchResult

log = logging.getLogger(__name__)

# The index answers an empty search with a single placeholder row.
NO_RESULTS_HASH = "0" * 40


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_search_results(payload: Any) -> List[SearchResult]:
    """
    Converts the raw JSON list returned by the index into search results.

    Raises:
        SearchError: If the payload is not a list.
    """
    if not isinstance(payload, list):
        raise SearchError("Unexpected response from the search index.")

    results = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        info_hash = str(item.get("info_hash", "")).strip()
        if not info_hash or info_hash == NO_RESULTS_HASH:
            continue
        results.append(
            SearchResult(
                content_id=info_hash,
                name=str(item.get("name", "")).strip() or info_hash,
                total_bytes=_as_int(item.get("size")),
                seeders=_as_int(item.get("seeders")),
                leechers=_as_int(item.get("leechers")),
                file_count=_as_int(item.get("num_files")),
            )
        )
    return results


class SearchClient:
    """Queries the torrent index and returns download candidates."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def search(self, query: str) -> List[SearchResult]:
        """
        Searches the index.

        Raises:
            SearchError: On network failures or a non-success response.
        """
        await self._initialize_session()
        params: Dict[str, str] = {"q": query}
        try:
            async with self._session.get(self.base_url, params=params) as r:
                if r.status != 200:
                    raise SearchError(f"Failed to fetch data: HTTP {r.status}")
                payload = await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SearchError(f"Search request failed: {e}") from e

        results = parse_search_results(payload)
        log.debug(f"Search '{query}' returned {len(results)} results.")
        return results
