"""
Name-keyed registry of handler definitions.
"""

from typing import Dict, Generic, Iterator, List, Optional, TypeVar

from shared.logging import get_logger
from shared.errors import DuplicateRegistrationError

H = TypeVar("H")


class HandlerRegistry(Generic[H]):
    """Holds handlers of one kind; a name can only be registered once."""

    def __init__(self, kind: str):
        self.kind = kind
        self.logger = get_logger("rules.handlers.registry")
        self._handlers: Dict[str, H] = {}

    def register(self, handler: H) -> H:
        """Add a handler, rejecting a name that is already taken."""
        name = handler.name
        if name in self._handlers:
            self.logger.error("Duplicate handler registration", kind=self.kind, name=name)
            raise DuplicateRegistrationError(self.kind, name)

        self._handlers[name] = handler
        self.logger.debug("Handler registered", kind=self.kind, name=name)
        return handler

    def get(self, name: str) -> Optional[H]:
        return self._handlers.get(name)

    def names(self) -> List[str]:
        return list(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[H]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)
