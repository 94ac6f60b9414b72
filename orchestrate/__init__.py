"""Orchestrate Python Client.

A Python client for the Orchestrate REST API: key/value, events, graph
relations and search.

Usage:
    from orchestrate import Client, ListQuery

    client = Client("my-api-key")
    users = client.collection("users")

    # Create an item; fails if the key is taken
    item = users.create("alice", {"name": "Alice"})

    # Update only if nobody else changed it
    item = item.update({"name": "Alice", "status": "active"})

    # Walk the collection, 100 items per request
    it = users.list(ListQuery(limit=100))
    while it.advance():
        print(it.get().key)
    if it.error is not None:
        raise it.error
"""

from .client import Client, new_client_with_transport
from .collection import Collection
from .constants import DEFAULT_API_HOST
from .exceptions import (
    AlreadyExistsError,
    ConnectionError,
    DecodeError,
    EncodeError,
    HeaderError,
    IteratorError,
    MalformedHeaderError,
    MissingHeaderError,
    NotFoundError,
    NotMostRecentError,
    OrchestrateError,
    PreconditionFailedError,
    RateLimitedError,
    UnknownError,
)
from .iterator import Iterator, IteratorKind, IteratorState
from .types import (
    Event,
    GetLinksQuery,
    HistoryQuery,
    Item,
    JSONValue,
    ListEventsQuery,
    ListQuery,
    SearchQuery,
    ValueDecoder,
)
from .version import __version__

__all__ = [
    "Client",
    "Collection",
    "DEFAULT_API_HOST",
    "new_client_with_transport",
    # Entities
    "Item",
    "Event",
    "JSONValue",
    "ValueDecoder",
    # Listing
    "Iterator",
    "IteratorKind",
    "IteratorState",
    "ListQuery",
    "HistoryQuery",
    "SearchQuery",
    "ListEventsQuery",
    "GetLinksQuery",
    # Exceptions
    "OrchestrateError",
    "ConnectionError",
    "NotFoundError",
    "PreconditionFailedError",
    "AlreadyExistsError",
    "NotMostRecentError",
    "RateLimitedError",
    "UnknownError",
    "HeaderError",
    "MissingHeaderError",
    "MalformedHeaderError",
    "EncodeError",
    "DecodeError",
    "IteratorError",
    "__version__",
]
