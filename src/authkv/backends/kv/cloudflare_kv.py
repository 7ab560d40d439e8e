"""Cloudflare Workers KV namespace backend."""

import json
from typing import Any
from urllib.parse import quote

import httpx

from authkv.exceptions import KVNamespaceError
from authkv.observability import get_logger
from authkv.protocols.kv_namespace import KeyListPage

logger = get_logger(__name__)


class CloudflareKVNamespace:
    """Cloudflare KV namespace reached through the Cloudflare API v4.

    Values are stored as JSON text; metadata travels with each value.
    """

    def __init__(
        self,
        account_id: str | None = None,
        namespace_id: str | None = None,
        api_token: str | None = None,
        base_url: str = "https://api.cloudflare.com/client/v4",
        page_size: int = 1000,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Cloudflare KV namespace.

        Args:
            account_id: Cloudflare account ID
            namespace_id: KV namespace ID
            api_token: Cloudflare API token
            base_url: Cloudflare API base URL
            page_size: Maximum keys requested per list call
            timeout: Request timeout in seconds (per-request clients only)
            client: Shared HTTP client; a short-lived one is opened per request if omitted
            **kwargs: Ignored
        """
        if not account_id or not namespace_id or not api_token:
            raise ValueError(
                "CloudflareKVNamespace requires account_id, namespace_id and api_token. "
                "Use 'memory' backend for development."
            )

        self.account_id = account_id
        self.namespace_id = namespace_id
        self.api_token = api_token
        self.page_size = page_size
        self.timeout = timeout
        self.namespace_url = (
            f"{base_url.rstrip('/')}/accounts/{account_id}"
            f"/storage/kv/namespaces/{namespace_id}"
        )
        self._client = client

    def _headers(self) -> dict[str, str]:
        """Get API request headers."""
        return {"Authorization": f"Bearer {self.api_token}"}

    def _value_path(self, key: str) -> str:
        return f"/values/{quote(key, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.namespace_url}{path}"
        if self._client is not None:
            return await self._client.request(method, url, headers=self._headers(), **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    def _raise_for_error(self, response: httpx.Response, action: str) -> None:
        """Raise KVNamespaceError for a failed API response."""
        try:
            body = response.json()
        except ValueError:
            body = None

        message = response.text or "Unknown error"
        if isinstance(body, dict):
            errors = body.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                message = errors[0].get("message", "Unknown error")

        logger.warning(
            f"Cloudflare KV {action} failed",
            context={"status_code": response.status_code, "error": message},
        )
        raise KVNamespaceError(
            f"Failed to {action} KV key: {message}",
            status_code=response.status_code,
        )

    async def get(self, key: str) -> Any | None:
        """Get a decoded value by key."""
        response = await self._request("GET", self._value_path(key))
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            self._raise_for_error(response, "get")
        return response.json()

    async def get_with_metadata(
        self,
        key: str,
    ) -> tuple[Any | None, dict[str, Any] | None]:
        """Get a decoded value and its metadata in one bulk read."""
        response = await self._request(
            "POST",
            "/bulk/get",
            json={"keys": [key], "type": "json", "withMetadata": True},
        )
        if response.status_code != 200:
            self._raise_for_error(response, "get")

        values = (response.json().get("result") or {}).get("values") or {}
        entry = values.get(key)
        if entry is None or entry.get("value") is None:
            return None, None
        return entry["value"], entry.get("metadata")

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Store a serialized value with optional TTL in seconds and metadata."""
        files: dict[str, tuple[None, str]] = {"value": (None, value)}
        if metadata is not None:
            files["metadata"] = (None, json.dumps(metadata))

        params = {"expiration_ttl": ttl_seconds} if ttl_seconds is not None else None
        response = await self._request(
            "PUT",
            self._value_path(key),
            params=params,
            files=files,
        )
        if response.status_code not in (200, 201):
            self._raise_for_error(response, "put")

    async def delete(self, key: str) -> None:
        """Delete a key. Missing keys are not an error."""
        response = await self._request("DELETE", self._value_path(key))
        if response.status_code not in (200, 404):
            self._raise_for_error(response, "delete")

    async def list(self, prefix: str, cursor: str | None = None) -> KeyListPage:
        """List one page of keys matching a prefix."""
        params: dict[str, Any] = {"prefix": prefix, "limit": self.page_size}
        if cursor:
            params["cursor"] = cursor

        response = await self._request("GET", "/keys", params=params)
        if response.status_code != 200:
            self._raise_for_error(response, "list")

        data = response.json()
        next_cursor = (data.get("result_info") or {}).get("cursor") or None
        return KeyListPage(
            keys=[item["name"] for item in data.get("result") or []],
            cursor=next_cursor,
            list_complete=next_cursor is None,
        )
