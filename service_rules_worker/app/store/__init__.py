"""
Remote document store package.

- protocol: The DocumentStore contract (get/put/watch/unwatch) and the
  Change/PutResult value types every store implementation shares.
- client: OADAClient, HTTP for reads and writes, a websocket for watches.
- trees: Content-type trees of the rules namespace.
"""

from .protocol import Change, ChangeCallback, DocumentStore, PutResult

__all__ = ["Change", "ChangeCallback", "DocumentStore", "PutResult"]
