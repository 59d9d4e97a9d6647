"""
Change feed over a collection in the document store.
"""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set

from shared.logging import get_logger
from shared.errors import RemoteOperationError, ResourceNotFoundError, ValidationRejection
from shared.metrics import MetricsCollector
from ..store.protocol import Change, DocumentStore

ItemCallback = Callable[[Any, str], Awaitable[None]]
ItemAssertion = Callable[[Any], None]


class ListWatch:
    """
    Delivers every child of a collection to ``on_item`` as ``(item, id)``.

    Existing children are delivered on start, children added later as they
    show up in merge changes. Deliveries are serialized and each id is
    delivered at most once per instance. With ``resume`` the delivered ids
    are persisted next to the collection so a restarted watch skips them;
    without it every start replays the whole collection.
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        path: str,
        on_item: ItemCallback,
        resume: bool = False,
        assert_item: Optional[ItemAssertion] = None,
        metrics: Optional[MetricsCollector] = None,
        metrics_label: Optional[str] = None
    ):
        self.store = store
        self.name = name
        self.path = path.rstrip('/')
        self.on_item = on_item
        self.resume = resume
        self.assert_item = assert_item
        self.metrics = metrics
        self.metrics_label = metrics_label or name
        self.logger = get_logger("rules.feed.list_watch").bind(watch=name, path=self.path)

        self._lock = asyncio.Lock()
        self._seen: Set[str] = set()
        self._handle: Optional[str] = None
        self._started = False
        self._stopped = False

    @property
    def cursor_path(self) -> str:
        return f"{self.path}/_meta/list-watch/{self.name}"

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    async def start(self):
        """Open the watch, then deliver the children already present."""
        if self._started or self._stopped:
            return
        self._started = True

        async with self._lock:
            if self.resume:
                self._seen.update(await self._load_cursor())

            # Watch before listing so nothing added in between is missed
            self._handle = await self.store.watch(self.path, self._on_change)
            try:
                listing = await self.store.get(self.path)
            except ResourceNotFoundError:
                # Collection not created yet; children arrive as changes
                listing = {}
            except RemoteOperationError:
                await self._close_handle()
                raise

            for item_id in _child_ids(listing):
                if self._stopped:
                    break
                await self._deliver(item_id)

        self.logger.info("List watch started", resume=self.resume, delivered=len(self._seen))

    async def stop(self):
        """Cancel the watch once any in-flight delivery has finished."""
        if self._stopped:
            return
        self._stopped = True

        async with self._lock:
            await self._close_handle()

        self.logger.info("List watch stopped")

    async def _close_handle(self):
        handle, self._handle = self._handle, None
        if handle is not None:
            await self.store.unwatch(handle)

    async def _on_change(self, change: Change):
        async with self._lock:
            if self._stopped:
                return

            # Deletes and edits inside existing items are not handled
            if change.type != "merge" or change.path not in ("", "/"):
                return

            for item_id in _child_ids(change.body):
                if self._stopped:
                    break
                await self._deliver(item_id)

    async def _deliver(self, item_id: str):
        if item_id in self._seen:
            return
        self._seen.add(item_id)

        try:
            item = await self.store.get(f"{self.path}/{item_id}")
        except RemoteOperationError as e:
            self._seen.discard(item_id)
            self.logger.error("Failed to fetch item", item_id=item_id, error=str(e))
            return

        try:
            if self.assert_item is not None:
                self.assert_item(item)
            await self.on_item(item, item_id)
            outcome = "processed"

        except ValidationRejection as e:
            self.logger.error("Item rejected", item_id=item_id, code=e.code, details=e.details)
            outcome = "rejected"

        except Exception as e:
            self.logger.error("Error processing item", item_id=item_id, error=str(e))
            outcome = "failed"

        if self.metrics:
            self.metrics.record_item(self.metrics_label, outcome)

        if self.resume:
            await self._save_cursor(item_id)

    async def _load_cursor(self) -> Iterable[str]:
        try:
            cursor = await self.store.get(self.cursor_path)
        except ResourceNotFoundError:
            return []

        delivered = cursor.get("delivered") if isinstance(cursor, dict) else None
        return list(delivered or {})

    async def _save_cursor(self, item_id: str):
        try:
            await self.store.put(self.cursor_path, {"delivered": {item_id: True}})
        except RemoteOperationError as e:
            # Item may be delivered again after a restart
            self.logger.error("Failed to persist cursor", item_id=item_id, error=str(e))


def _child_ids(document: Any) -> List[str]:
    if not isinstance(document, dict):
        return []
    return [key for key in document if not key.startswith('_')]
