"""
Async client for the aria2 JSON-RPC control endpoint exposed by each worker.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from sailor_cli.exceptions import WorkerQueryError

log = logging.getLogger(__name__)

RPC_URL = "http://127.0.0.1:{port}/jsonrpc"


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class WorkerStatus:
    """Progress of one transfer as reported by the worker."""

    status: str
    completed_bytes: int
    rate_bytes: int
    total_bytes: int = 0

    @classmethod
    def from_rpc(cls, item: Dict[str, Any]) -> "WorkerStatus":
        return cls(
            status=str(item.get("status", "")),
            completed_bytes=_as_int(item.get("completedLength")),
            rate_bytes=_as_int(item.get("downloadSpeed")),
            total_bytes=_as_int(item.get("totalLength")),
        )


class WorkerRpcClient:
    """
    Talks to a worker's local JSON-RPC endpoint.

    One session is shared by all workers; every call names the port of the
    worker it targets.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def _initialize_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def call(self, port: int, method: str, params: List[Any]) -> Any:
        """
        Performs one JSON-RPC request and returns its ``result`` member.

        Raises:
            WorkerQueryError: On connection errors, non-200 answers, RPC errors
            or undecodable bodies.
        """
        await self._initialize_session()
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": str(self._request_id),
            "method": method,
            "params": params,
        }
        try:
            async with self._session.post(RPC_URL.format(port=port), json=payload) as r:
                if r.status != 200:
                    raise WorkerQueryError(
                        f"{method} on port {port} failed with HTTP {r.status}"
                    )
                body = await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise WorkerQueryError(f"{method} on port {port} failed: {e}") from e

        if not isinstance(body, dict):
            raise WorkerQueryError(f"Malformed response from port {port}")
        if error := body.get("error"):
            raise WorkerQueryError(
                f"{method} on port {port} returned error: {error.get('message', error)}"
            )
        return body.get("result")

    async def tell_active(self, port: int, secret: str) -> List[WorkerStatus]:
        """Returns the progress of every transfer the worker is running."""
        log.debug(f"Fetching download info on port: {port}")
        result = await self.call(port, "aria2.tellActive", [f"token:{secret}"])
        if not isinstance(result, list):
            raise WorkerQueryError(f"Unexpected tellActive result on port {port}")
        return [WorkerStatus.from_rpc(item) for item in result if isinstance(item, dict)]
