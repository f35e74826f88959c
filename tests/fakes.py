# tests/fakes.py

from __future__ import annotations

import asyncio
from typing import Union

from sailor_cli.api.rpc import WorkerStatus
from sailor_cli.exceptions import WorkerQueryError

Response = Union[list, Exception, float]


class FakeRpcClient:
    """
    Stand-in for WorkerRpcClient.

    ``responses`` maps a worker port to what tell_active should produce:
    a list of WorkerStatus, an exception to raise, or a float number of
    seconds to hang for (to exercise timeouts).
    """

    def __init__(self) -> None:
        self.responses: dict[int, Response] = {}
        self.calls: list[tuple[int, str]] = []
        self.closed = False

    def report(self, port: int, completed: int, rate: int = 0, status: str = "active"):
        self.responses[port] = [
            WorkerStatus(status=status, completed_bytes=completed, rate_bytes=rate)
        ]

    async def tell_active(self, port: int, secret: str) -> list[WorkerStatus]:
        self.calls.append((port, secret))
        response = self.responses.get(port, WorkerQueryError("connection refused"))
        if isinstance(response, Exception):
            raise response
        if isinstance(response, float):
            await asyncio.sleep(response)
            return []
        return list(response)

    async def close(self) -> None:
        self.closed = True


class FakeSearchClient:
    """Stand-in for SearchClient returning a fixed result list."""

    def __init__(self, results: list | None = None) -> None:
        self.results = list(results or [])
        self.queries: list[str] = []
        self.closed = False

    async def search(self, query: str) -> list:
        self.queries.append(query)
        return list(self.results)

    async def close(self) -> None:
        self.closed = True
