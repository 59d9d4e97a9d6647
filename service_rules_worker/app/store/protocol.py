"""
Contract between the worker and the remote document store.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable


@dataclass
class Change:
    """One change notification delivered by a watch."""
    type: str
    body: Dict[str, Any] = field(default_factory=dict)
    path: str = ""
    resource_id: Optional[str] = None


@dataclass
class PutResult:
    """Outcome of a write."""
    location: str

    @property
    def resource_id(self) -> str:
        """Location without its leading slash, usable as a link ``_id``."""
        return self.location[1:] if self.location.startswith("/") else self.location


ChangeCallback = Callable[[Change], Awaitable[None]]


@runtime_checkable
class DocumentStore(Protocol):
    """Tree-shaped JSON document store with watch support."""

    async def get(self, path: str) -> Any:
        ...

    async def put(self, path: str, data: Dict[str, Any], tree: Optional[Dict[str, Any]] = None) -> PutResult:
        ...

    async def watch(self, path: str, callback: ChangeCallback) -> str:
        ...

    async def unwatch(self, handle: str) -> None:
        ...
