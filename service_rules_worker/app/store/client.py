"""
Client for the remote document store.

Reads and writes go over HTTP; watches share one websocket connection.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import httpx
import websockets
from websockets.exceptions import ConnectionClosed

from shared.logging import get_logger
from shared.errors import RemoteOperationError, ResourceNotFoundError
from .protocol import Change, ChangeCallback, PutResult
from .trees import tree_content_type


@dataclass
class _Watch:
    """Open watch: notifications are queued and drained in order."""
    request_id: str
    path: str
    callback: ChangeCallback
    queue: "asyncio.Queue[Change]" = field(default_factory=asyncio.Queue)
    task: Optional[asyncio.Task] = None


class OADAClient:
    """Async client for an OADA-style document store."""

    def __init__(
        self,
        domain: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.domain = domain.rstrip('/')
        self.token = token
        self.logger = get_logger("rules.store.client")

        headers = {"authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=self.domain,
            headers=headers,
            timeout=timeout,
            transport=transport
        )
        self._ws = None
        self._receive_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._watches: Dict[str, _Watch] = {}
        self._known_paths: Set[str] = set()

    @property
    def websocket_url(self) -> str:
        if self.domain.startswith("https://"):
            return "wss://" + self.domain[len("https://"):]
        if self.domain.startswith("http://"):
            return "ws://" + self.domain[len("http://"):]
        return self.domain

    async def connect(self):
        """Open the websocket used for watches."""
        if self._ws is not None:
            return

        try:
            self._ws = await websockets.connect(self.websocket_url)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            self.logger.error("Failed to connect websocket", url=self.websocket_url, error=str(e))
            raise RemoteOperationError("connect", str(e), {"url": self.websocket_url})

        self._receive_task = asyncio.create_task(self._receive_loop())
        self.logger.info("Store websocket connected", url=self.websocket_url)

    async def close(self):
        """Close watches, the websocket and the HTTP client."""
        for watch in list(self._watches.values()):
            await self._cancel_drain(watch)
        self._watches.clear()

        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if self._ws is not None:
            await self._ws.close()
            self._ws = None

        await self._http.aclose()
        self.logger.info("Store client closed")

    async def get(self, path: str) -> Any:
        """Fetch the document at ``path``."""
        response = await self._request("GET", path)
        return response.json()

    async def head(self, path: str) -> bool:
        """Check whether ``path`` exists."""
        try:
            await self._request("HEAD", path)
        except ResourceNotFoundError:
            return False
        return True

    async def put(self, path: str, data: Dict[str, Any], tree: Optional[Dict[str, Any]] = None) -> PutResult:
        """Merge ``data`` into ``path``, creating typed parents from ``tree``."""
        content_type = "application/json"
        if tree is not None:
            await self._ensure_parents(path, tree)
            content_type = tree_content_type(tree, path) or content_type

        response = await self._request(
            "PUT",
            path,
            json=data,
            headers={"content-type": content_type}
        )
        self._known_paths.add(path)
        return PutResult(location=response.headers.get("content-location", path))

    async def watch(self, path: str, callback: ChangeCallback) -> str:
        """Watch ``path``; returns the handle for ``unwatch``."""
        if self._ws is None:
            raise RemoteOperationError("watch", "Websocket not connected", {"path": path})

        request_id = str(uuid.uuid4())
        watch = _Watch(request_id=request_id, path=path, callback=callback)
        watch.task = asyncio.create_task(self._drain(watch))
        self._watches[request_id] = watch

        try:
            await self._send(request_id, "watch", path)
        except RemoteOperationError:
            self._watches.pop(request_id, None)
            await self._cancel_drain(watch)
            raise

        self.logger.debug("Watch opened", path=path, handle=request_id)
        return request_id

    async def unwatch(self, handle: str) -> None:
        """Cancel a watch opened by ``watch``."""
        watch = self._watches.pop(handle, None)
        if watch is None:
            return

        try:
            if self._ws is not None:
                await self._send(handle, "unwatch", watch.path)
        finally:
            await self._cancel_drain(watch)

        self.logger.debug("Watch closed", path=watch.path, handle=handle)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self.logger.error("Store request failed", method=method, path=path, error=str(e))
            raise RemoteOperationError(method.lower(), str(e), {"path": path})

        if response.status_code == 404:
            raise ResourceNotFoundError(path)

        if response.status_code >= 400:
            self.logger.error(
                "Store request rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                response=response.text
            )
            raise RemoteOperationError(
                method.lower(),
                f"Unexpected status {response.status_code}",
                {"path": path, "status_code": response.status_code, "body": response.text}
            )

        return response

    async def _ensure_parents(self, path: str, tree: Dict[str, Any]):
        parts = [part for part in path.split('/') if part]
        for depth in range(1, len(parts)):
            prefix = '/' + '/'.join(parts[:depth])
            if prefix in self._known_paths:
                continue

            content_type = tree_content_type(tree, prefix)
            if content_type and not await self.head(prefix):
                await self._request("PUT", prefix, json={}, headers={"content-type": content_type})
                self.logger.info("Created parent resource", path=prefix, content_type=content_type)

            self._known_paths.add(prefix)

    async def _send(self, request_id: str, method: str, path: str) -> Dict[str, Any]:
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        request = {"requestId": request_id, "method": method, "path": path, "headers": {}}
        if self.token:
            request["headers"]["authorization"] = f"Bearer {self.token}"

        try:
            await self._ws.send(json.dumps(request))
            response = await future
        except ConnectionClosed as e:
            raise RemoteOperationError(method, str(e), {"path": path})
        finally:
            self._pending.pop(request_id, None)

        status = response.get("status", 200)
        if status >= 400:
            raise RemoteOperationError(
                method,
                f"Unexpected status {status}",
                {"path": path, "status_code": status}
            )

        return response

    async def _receive_loop(self):
        """Route websocket messages to pending requests and watches."""
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except ValueError as e:
                    self.logger.error("Malformed websocket message", error=str(e))
                    continue

                request_ids = message.get("requestId")
                if not isinstance(request_ids, list):
                    request_ids = [request_ids]

                if "change" in message:
                    self._dispatch_changes(request_ids, message)
                    continue

                for request_id in request_ids:
                    future = self._pending.get(request_id)
                    if future is not None and not future.done():
                        future.set_result(message)

        except ConnectionClosed as e:
            self.logger.warning("Store websocket closed", error=str(e))

        finally:
            for request_id, future in list(self._pending.items()):
                if not future.done():
                    future.set_exception(
                        RemoteOperationError("websocket", "Connection closed", {"request_id": request_id})
                    )

    def _dispatch_changes(self, request_ids: List[str], message: Dict[str, Any]):
        for request_id in request_ids:
            watch = self._watches.get(request_id)
            if watch is None:
                continue

            for change in message.get("change") or []:
                watch.queue.put_nowait(Change(
                    type=change.get("type", "merge"),
                    body=change.get("body") or {},
                    path=change.get("path", ""),
                    resource_id=change.get("resource_id")
                ))

    async def _drain(self, watch: _Watch):
        while True:
            change = await watch.queue.get()
            try:
                await watch.callback(change)
            except Exception as e:
                self.logger.error(
                    "Watch callback failed",
                    path=watch.path,
                    change_path=change.path,
                    error=str(e)
                )

    async def _cancel_drain(self, watch: _Watch):
        if watch.task is None:
            return
        watch.task.cancel()
        if watch.task is asyncio.current_task():
            return
        try:
            await watch.task
        except asyncio.CancelledError:
            pass
