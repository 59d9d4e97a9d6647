"""
Unit tests for the document store client.
"""

import asyncio
import json

import httpx
import pytest
from unittest.mock import AsyncMock

from service_rules_worker.app.store.client import OADAClient, _Watch
from service_rules_worker.app.store.protocol import Change, DocumentStore
from service_rules_worker.app.store.trees import rules_tree, tree_content_type
from shared.errors import RemoteOperationError, ResourceNotFoundError


class FakeServer:
    """Records requests and answers from a path -> document map."""

    def __init__(self, documents=None, status=None):
        self.documents = documents or {}
        self.status = status or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.status:
            return httpx.Response(self.status[path], text="nope")

        if request.method == "PUT":
            self.documents[path] = json.loads(request.content or b"{}")
            return httpx.Response(204, headers={"content-location": f"/resources/{path.rsplit('/', 1)[-1]}"})

        if path not in self.documents:
            return httpx.Response(404)
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(200, json=self.documents[path])


class TestOADAClient:
    """Test cases for OADAClient."""

    @pytest.fixture
    def server(self):
        """Create fake store server."""
        return FakeServer({"/bookmarks": {"rules": {}}})

    @pytest.fixture
    def client(self, server):
        """Create OADAClient instance."""
        return OADAClient(
            "https://store.example.com",
            token="secret",
            transport=httpx.MockTransport(server)
        )

    def test_implements_document_store(self, client):
        """Test the client satisfies the store protocol."""
        assert isinstance(client, DocumentStore)

    def test_websocket_url(self):
        """Test websocket URLs follow the HTTP scheme."""
        assert OADAClient("https://a.example.com").websocket_url == "wss://a.example.com"
        assert OADAClient("http://localhost:8080/").websocket_url == "ws://localhost:8080"

    @pytest.mark.asyncio
    async def test_get(self, client, server):
        """Test successful get with bearer token."""
        result = await client.get("/bookmarks")

        assert result == {"rules": {}}
        assert server.requests[0].headers["authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_get_not_found(self, client):
        """Test 404 raises ResourceNotFoundError."""
        with pytest.raises(ResourceNotFoundError) as exc_info:
            await client.get("/missing")

        assert exc_info.value.code == "RESOURCE_NOT_FOUND"
        assert exc_info.value.path == "/missing"

    @pytest.mark.asyncio
    async def test_get_server_error(self, server, client):
        """Test other failures raise RemoteOperationError."""
        server.status["/broken"] = 500

        with pytest.raises(RemoteOperationError) as exc_info:
            await client.get("/broken")

        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_put_without_tree(self, client, server):
        """Test a plain put returns the content location."""
        result = await client.put("/bookmarks/x", {"a": 1})

        assert result.location == "/resources/x"
        assert result.resource_id == "resources/x"
        assert server.documents["/bookmarks/x"] == {"a": 1}
        assert server.requests[-1].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_put_with_tree_creates_parents(self, client, server):
        """Test missing typed parents are created before the put."""
        await client.put("/bookmarks/rules/actions", {"svc-a": {"_id": "resources/a"}}, tree=rules_tree)

        puts = [(r.url.path, r.headers["content-type"]) for r in server.requests if r.method == "PUT"]
        assert puts == [
            ("/bookmarks/rules", tree_content_type(rules_tree, "/bookmarks/rules")),
            ("/bookmarks/rules/actions", "application/vnd.oada.rules.actions.1+json")
        ]

        # Known parents are not checked again
        count = len(server.requests)
        await client.put("/bookmarks/rules/actions", {"svc-b": {"_id": "resources/b"}}, tree=rules_tree)
        assert len(server.requests) == count + 1

    @pytest.mark.asyncio
    async def test_watch_requires_connection(self, client):
        """Test watching before connect fails."""
        with pytest.raises(RemoteOperationError):
            await client.watch("/bookmarks", AsyncMock())

    @pytest.mark.asyncio
    async def test_dispatch_changes_in_order(self, client):
        """Test notifications are delivered to the watch callback in order."""
        received = []

        async def callback(change: Change):
            received.append(change.body)

        watch = _Watch(request_id="w1", path="/bookmarks", callback=callback)
        watch.task = asyncio.create_task(client._drain(watch))
        client._watches["w1"] = watch

        client._dispatch_changes(["w1"], {"change": [
            {"type": "merge", "path": "", "body": {"a": 1}},
            {"type": "merge", "path": "", "body": {"b": 2}}
        ]})
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert received == [{"a": 1}, {"b": 2}]
        await client._cancel_drain(watch)


class FakeSocket:
    """Websocket stand-in: records sent requests and replies with a status."""

    def __init__(self, status=200, auto_reply=True):
        self.status = status
        self.auto_reply = auto_reply
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()

    async def send(self, raw):
        message = json.loads(raw)
        self.sent.append(message)
        if self.auto_reply:
            self.push({"requestId": message["requestId"], "status": self.status})

    def push(self, message):
        self._incoming.put_nowait(json.dumps(message))

    def disconnect(self):
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self._incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw

    async def close(self):
        self.closed = True


class TestOADAClientWatch:
    """Test cases for websocket watches."""

    @pytest.fixture
    def socket(self):
        """Create fake websocket."""
        return FakeSocket()

    @pytest.fixture
    def client(self, socket):
        """Create OADAClient with the fake websocket attached."""
        client = OADAClient(
            "https://store.example.com",
            token="secret",
            transport=httpx.MockTransport(FakeServer())
        )
        client._ws = socket
        return client

    def start_receiving(self, client):
        client._receive_task = asyncio.create_task(client._receive_loop())

    @pytest.mark.asyncio
    async def test_watch_acknowledged(self, client, socket):
        """Test a watch is confirmed by its requestId and receives changes."""
        self.start_receiving(client)
        received = asyncio.Event()
        changes = []

        async def callback(change: Change):
            changes.append(change)
            received.set()

        handle = await client.watch("/bookmarks/x", callback)

        assert socket.sent == [{
            "requestId": handle,
            "method": "watch",
            "path": "/bookmarks/x",
            "headers": {"authorization": "Bearer secret"}
        }]

        socket.push({"requestId": [handle], "change": [{"type": "merge", "path": "", "body": {"a": 1}}]})
        await asyncio.wait_for(received.wait(), timeout=1)

        assert changes[0].type == "merge"
        assert changes[0].body == {"a": 1}
        await client.close()

    @pytest.mark.asyncio
    async def test_watch_rejected(self, client, socket):
        """Test an error status in the reply fails the watch."""
        socket.status = 403
        self.start_receiving(client)

        with pytest.raises(RemoteOperationError) as exc_info:
            await client.watch("/bookmarks/x", AsyncMock())

        assert exc_info.value.details["status_code"] == 403
        assert client._watches == {}
        await client.close()

    @pytest.mark.asyncio
    async def test_unwatch(self, client, socket):
        """Test unwatch sends a request and cancels the drain task."""
        self.start_receiving(client)
        handle = await client.watch("/bookmarks/x", AsyncMock())
        drain = client._watches[handle].task

        await client.unwatch(handle)

        assert socket.sent[-1]["method"] == "unwatch"
        assert socket.sent[-1]["requestId"] == handle
        assert drain.cancelled()
        assert client._watches == {}
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_closed_fails_pending(self, client, socket):
        """Test a closed connection fails requests still waiting for a reply."""
        socket.auto_reply = False
        self.start_receiving(client)

        watching = asyncio.create_task(client.watch("/bookmarks/x", AsyncMock()))
        while not socket.sent:
            await asyncio.sleep(0)
        socket.disconnect()

        with pytest.raises(RemoteOperationError):
            await watching

        assert client._watches == {}
        assert client._pending == {}
        await client.close()
        assert socket.closed


class TestTrees:
    """Test cases for content-type trees."""

    def test_wildcard_lookup(self):
        """Test '*' matches any collection child."""
        assert tree_content_type(rules_tree, "/bookmarks/rules/compiled/w1") == \
            "application/vnd.oada.rule.compiled.1+json"

    def test_unknown_path(self):
        """Test paths outside the tree have no type."""
        assert tree_content_type(rules_tree, "/other") is None
