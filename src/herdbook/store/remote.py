"""HTTP document store client with a WebSocket change feed."""

import asyncio
import contextlib
import json
from typing import Any, cast

import httpx
import structlog
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from herdbook.config import get_settings
from herdbook.errors import RemoteStoreError, StoreAuthenticationError
from herdbook.store.backends import (
    Document,
    DocumentStore,
    ErrorCallback,
    FeedSubscription,
    Snapshot,
    SnapshotCallback,
)

logger = structlog.get_logger(__name__)


class _RemoteFeed(FeedSubscription):
    def __init__(self, task: asyncio.Task[None]):
        self._task = task

    async def close(self) -> None:
        if self._task.done():
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class RemoteDocumentStore(DocumentStore):
    """Async client for the document API.

    Endpoints, all scoped by an ``owner`` query parameter:

        GET    /v1/collections/{collection}/documents
        POST   /v1/collections/{collection}/documents
        PUT    /v1/collections/{collection}/documents/{id}
        DELETE /v1/collections/{collection}/documents/{id}
        WS     /v1/collections/{collection}/feed

    Feed messages are full snapshots: ``{"documents": [{"id": ..., ...}]}``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        feed_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.store_url).rstrip("/")
        self.feed_url = (feed_url or settings.feed_url).rstrip("/")
        self._token = token or settings.store_token.get_secret_value()
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.store_max_retries
        )

        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="remote_store", base_url=self.base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RemoteDocumentStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._token}",
        }

    @staticmethod
    def _documents_path(collection: str, document_id: str | None = None) -> str:
        path = f"/v1/collections/{collection}/documents"
        if document_id is not None:
            path += f"/{document_id}"
        return path

    # === Generic Request Method ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an authenticated request, retrying transport errors if configured."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, json, retry_count + 1)
            raise RemoteStoreError(f"Request failed: {e}") from e

        if response.status_code in (401, 403):
            raise StoreAuthenticationError(
                "Store rejected credentials", status_code=response.status_code
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {
                    "raw": response.text[:500] if response.text else "empty response"
                }
            raise RemoteStoreError(
                f"Store error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        return response.json() if response.content else {}

    # === Documents ===

    @staticmethod
    def _split_document(raw: dict[str, Any]) -> tuple[str, Document]:
        data = dict(raw)
        doc_id = str(data.pop("id"))
        data.pop("owner", None)
        return doc_id, data

    @classmethod
    def _extract_snapshot(cls, payload: Any) -> Snapshot:
        """Return (id, document) pairs from a list or ``{"documents": [...]}`` payload."""
        if isinstance(payload, dict):
            payload = payload.get("documents")
        if not isinstance(payload, list):
            raise RemoteStoreError(
                "Invalid snapshot format", details={"payload": str(payload)[:200]}
            )
        return [
            cls._split_document(cast(dict[str, Any], doc))
            for doc in payload
            if isinstance(doc, dict) and "id" in doc
        ]

    async def fetch(self, collection: str, owner_id: str) -> Snapshot:
        """Read the current snapshot of one owner's collection."""
        result = await self._request(
            "GET", self._documents_path(collection), params={"owner": owner_id}
        )
        return self._extract_snapshot(result)

    async def add(
        self,
        collection: str,
        owner_id: str,
        document: Document,
        document_id: str | None = None,
    ) -> str:
        body: dict[str, Any] = {**document, "owner": owner_id}
        if document_id is not None:
            body["id"] = document_id
        result = await self._request(
            "POST", self._documents_path(collection), params={"owner": owner_id}, json=body
        )
        new_id = result.get("id") if isinstance(result, dict) else None
        if not new_id:
            raise RemoteStoreError("Store did not return a document id", details=result)
        self._logger.debug("document_added", collection=collection, document_id=new_id)
        return str(new_id)

    async def update(
        self, collection: str, owner_id: str, document_id: str, document: Document
    ) -> None:
        await self._request(
            "PUT",
            self._documents_path(collection, document_id),
            params={"owner": owner_id},
            json={**document, "owner": owner_id},
        )
        self._logger.debug("document_updated", collection=collection, document_id=document_id)

    async def delete(self, collection: str, owner_id: str, document_id: str) -> None:
        await self._request(
            "DELETE",
            self._documents_path(collection, document_id),
            params={"owner": owner_id},
        )
        self._logger.debug("document_deleted", collection=collection, document_id=document_id)

    # === Change feed ===

    def _feed_endpoint(self, collection: str, owner_id: str) -> str:
        query = httpx.QueryParams(owner=owner_id)
        return f"{self.feed_url}/v1/collections/{collection}/feed?{query}"

    def _parse_feed_message(self, message: str | bytes) -> Snapshot | None:
        """Decode one feed message; malformed messages are logged and skipped."""
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            return self._extract_snapshot(json.loads(message))
        except (UnicodeDecodeError, json.JSONDecodeError, RemoteStoreError, KeyError) as e:
            self._logger.warning("invalid_feed_message", error=str(e))
            return None

    async def subscribe(
        self,
        collection: str,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        on_snapshot(await self.fetch(collection, owner_id))
        task = asyncio.create_task(
            self._run_feed(collection, owner_id, on_snapshot, on_error),
            name=f"feed:{collection}",
        )
        return _RemoteFeed(task)

    async def _run_feed(
        self,
        collection: str,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        url = self._feed_endpoint(collection, owner_id)
        try:
            async with connect(url, additional_headers=self._get_headers()) as websocket:
                self._logger.info("feed_connected", collection=collection)
                async for message in websocket:
                    snapshot = self._parse_feed_message(message)
                    if snapshot is not None:
                        on_snapshot(snapshot)
        except (WebSocketException, OSError) as e:
            self._logger.warning("feed_lost", collection=collection, error=str(e))
            on_error(RemoteStoreError(f"Change feed lost: {e}"))
            return

        self._logger.warning("feed_closed", collection=collection)
        on_error(RemoteStoreError("Change feed closed by server"))
