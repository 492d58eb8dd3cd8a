"""JSON-RPC client shared by chain RPC, bundler and paymaster calls.

Wraps a single httpx.AsyncClient that is created once at startup and reused
across requests.
"""

import itertools
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """Exception raised when a JSON-RPC call fails."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client over HTTP.

    Example:
        rpc = JsonRpcClient(httpx.AsyncClient(timeout=30.0))
        block = await rpc.call(rpc_url, "eth_blockNumber", [])
    """

    def __init__(self, http: httpx.AsyncClient):
        self._http = http
        self._ids = itertools.count(1)

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    async def call(self, url: str, method: str, params: list) -> Any:
        """Call a JSON-RPC method and return its result.

        Args:
            url: Endpoint URL
            method: JSON-RPC method name
            params: Positional parameters

        Returns:
            The decoded "result" member (may be None)

        Raises:
            RpcError: On transport failure, HTTP error or JSON-RPC error
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._http.post(url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(f"{method} request failed: {e}") from e

        # Bundlers report JSON-RPC errors with non-200 statuses too
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            logger.debug("%s returned error: %s", method, error)
            raise RpcError(
                error.get("message", "unknown error"),
                code=error.get("code"),
                data=error.get("data"),
            )

        if response.status_code != 200:
            raise RpcError(f"{method} returned HTTP {response.status_code}")

        if not isinstance(data, dict):
            raise RpcError(f"{method} returned a malformed response")

        return data.get("result")
