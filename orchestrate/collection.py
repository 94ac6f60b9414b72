"""Key-value, event and graph operations on a single collection."""

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from .exceptions import (
    AlreadyExistsError,
    DecodeError,
    EncodeError,
    NotMostRecentError,
    PreconditionFailedError,
)
from .headers import parse_etag, parse_event_location, parse_ref_location
from .iterator import Iterator, IteratorKind
from .types import (
    Event,
    GetLinksQuery,
    HistoryQuery,
    Item,
    ListEventsQuery,
    ListQuery,
    SearchQuery,
    from_millis,
    to_millis,
)

if TYPE_CHECKING:
    from .client import Client


def _path(*segments: str) -> str:
    return "/".join(quote(s, safe="") for s in segments)


def _with_query(path: str, params: dict[str, str]) -> str:
    if not params:
        return path
    return f"{path}?{httpx.QueryParams(params)}"


def _if_match(ref: str) -> dict[str, str]:
    return {"If-Match": f'"{ref}"'}


def _encode(value: Any) -> bytes:
    try:
        return json.dumps(value, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Failed to encode value: {e}") from e


class Collection:
    """A named collection of items, events and relations.

    Creating a Collection does not touch the network and does not check that
    the collection exists. Every Collection is a thin handle over its Client,
    so any number of them may share one Client.
    """

    def __init__(self, client: "Client", name: str):
        self.client = client
        self.name = name

    def __repr__(self) -> str:
        return f"<Collection {self.name!r}>"

    # Key/value

    def create(self, key: str, value: Any) -> Item:
        """Store a value under a key that must not already exist.

        Raises:
            AlreadyExistsError: The key is already in use.
        """
        try:
            return self._put(key, value, {"If-None-Match": '"*"'})
        except PreconditionFailedError as e:
            raise AlreadyExistsError(key) from e

    def update(self, key: str, value: Any) -> Item:
        """Create or replace the value stored under key."""
        return self._put(key, value, None)

    def conditional_update(self, item: Item, value: Any) -> Item:
        """Replace the value only if ``item`` is still the latest revision.

        Raises:
            NotMostRecentError: The item has been updated or deleted since
                ``item.ref`` was issued. Nothing is changed.
        """
        try:
            return self._put(item.key, value, _if_match(item.ref))
        except PreconditionFailedError as e:
            raise NotMostRecentError(item.key, item.ref) from e

    def get(self, key: str) -> Item:
        """Fetch the latest revision of key."""
        return self.get_ref(key, "")

    def get_ref(self, key: str, ref: str) -> Item:
        """Fetch a specific revision of key, or the latest if ref is empty.

        Refs come from a previous write, a listing, or history().
        """
        if ref:
            path = _path(self.name, key, "refs", ref)
        else:
            path = _path(self.name, key)
        response, value = self.client._json_reply("GET", path, None, 200)
        if not ref:
            ref = parse_ref_location(
                response.headers.get("Content-Location"), "Content-Location"
            )
        return Item(collection=self, key=key, ref=ref, value=value)

    def delete(self, key: str) -> None:
        """Delete the latest revision of key. Succeeds if key is absent."""
        self.client._empty_reply("DELETE", _path(self.name, key), None, None, 204)

    def purge(self, key: str) -> None:
        """Remove key and its entire history. This cannot be undone."""
        path = _with_query(_path(self.name, key), {"purge": "true"})
        self.client._empty_reply("DELETE", path, None, None, 204)

    def conditional_delete(self, item: Item) -> None:
        """Delete the item only if it is still the latest revision.

        Raises:
            NotMostRecentError: A newer revision exists.
        """
        try:
            self.client._empty_reply(
                "DELETE", _path(self.name, item.key), _if_match(item.ref), None, 204
            )
        except PreconditionFailedError as e:
            raise NotMostRecentError(item.key, item.ref) from e

    def list(self, query: ListQuery | None = None) -> Iterator:
        """List items in key order. No request is made until the first advance()."""
        params = query.to_params() if query is not None else {}
        return Iterator(self.client, IteratorKind.ITEMS, _with_query(_path(self.name), params))

    def history(self, key: str, query: HistoryQuery | None = None) -> Iterator:
        """List every revision of key, most recent first.

        Deletes appear as tombstones. Values are omitted unless
        ``query.values`` is set.
        """
        params = query.to_params() if query is not None else {}
        return Iterator(
            self.client, IteratorKind.ITEMS, _with_query(_path(self.name, key, "refs"), params)
        )

    def search(self, query: str, options: SearchQuery | None = None) -> Iterator:
        """Run a Lucene-syntax search over the collection.

        Results carry ``score`` (or ``distance`` for geo queries).
        """
        params = {"query": query}
        if options is not None:
            params.update(options.to_params())
        return Iterator(self.client, IteratorKind.ITEMS, _with_query(_path(self.name), params))

    def _put(self, key: str, value: Any, headers: dict[str, str] | None) -> Item:
        body = _encode(value)
        response = self.client._empty_reply("PUT", _path(self.name, key), headers, body, 201)
        # Key-value writes identify the new revision by Location alone; ETag is not read.
        ref = parse_ref_location(response.headers.get("Location"))
        return Item(collection=self, key=key, ref=ref, value=json.loads(body))

    # Events

    def add_event(
        self, key: str, type: str, value: Any, timestamp: datetime | None = None
    ) -> Event:
        """Append an event to key.

        The server assigns the timestamp unless one is given; either way a
        fresh ordinal is assigned, so adding never collides with an existing
        event.
        """
        body = _encode(value)
        if timestamp is None:
            path = _path(self.name, key, "events", type)
        else:
            path = _path(self.name, key, "events", type, str(to_millis(timestamp)))
        response = self.client._empty_reply("POST", path, None, body, 201)
        return self._event_from_headers(response, key, type, body)

    def get_event(self, key: str, type: str, timestamp: datetime, ordinal: int) -> Event:
        """Fetch a single event."""
        path = _path(self.name, key, "events", type, str(to_millis(timestamp)), str(ordinal))
        _, body = self.client._json_reply("GET", path, None, 200)
        if not isinstance(body, dict):
            raise DecodeError("Event reply is not a JSON object")
        return Event(
            collection=self,
            key=key,
            type=type,
            timestamp=from_millis(body.get("timestamp", to_millis(timestamp))),
            ordinal=body.get("ordinal", ordinal),
            ref=(body.get("path") or {}).get("ref", ""),
            value=body.get("value"),
        )

    def update_event(
        self, key: str, type: str, timestamp: datetime, ordinal: int, value: Any
    ) -> Event:
        """Replace an existing event unconditionally."""
        return self._put_event(key, type, timestamp, ordinal, value, None)

    def conditional_update_event(self, event: Event, value: Any) -> Event:
        """Replace the event only if it is still the latest revision.

        Raises:
            NotMostRecentError: The event changed since ``event.ref``.
        """
        try:
            return self._put_event(
                event.key, event.type, event.timestamp, event.ordinal, value, _if_match(event.ref)
            )
        except PreconditionFailedError as e:
            raise NotMostRecentError(event.key, event.ref) from e

    def delete_event(self, key: str, type: str, timestamp: datetime, ordinal: int) -> None:
        """Permanently remove an event. Succeeds if it did not exist."""
        self.client._empty_reply(
            "DELETE", self._event_path(key, type, timestamp, ordinal, purge=True), None, None, 204
        )

    def conditional_delete_event(self, event: Event) -> None:
        """Permanently remove the event only if it is still the latest revision.

        Raises:
            NotMostRecentError: The event changed since ``event.ref``.
        """
        path = self._event_path(event.key, event.type, event.timestamp, event.ordinal, purge=True)
        try:
            self.client._empty_reply("DELETE", path, _if_match(event.ref), None, 204)
        except PreconditionFailedError as e:
            raise NotMostRecentError(event.key, event.ref) from e

    def list_events(self, key: str, type: str, query: ListEventsQuery | None = None) -> Iterator:
        """List events of one type on key, newest first."""
        params = query.to_params() if query is not None else {}
        path = _with_query(_path(self.name, key, "events", type), params)
        return Iterator(self.client, IteratorKind.EVENTS, path)

    def _event_path(
        self, key: str, type: str, timestamp: datetime, ordinal: int, purge: bool = False
    ) -> str:
        path = _path(self.name, key, "events", type, str(to_millis(timestamp)), str(ordinal))
        return _with_query(path, {"purge": "true"}) if purge else path

    def _put_event(
        self,
        key: str,
        type: str,
        timestamp: datetime,
        ordinal: int,
        value: Any,
        headers: dict[str, str] | None,
    ) -> Event:
        body = _encode(value)
        path = self._event_path(key, type, timestamp, ordinal)
        response = self.client._empty_reply("PUT", path, headers, body, 204)
        return self._event_from_headers(response, key, type, body)

    def _event_from_headers(
        self, response: httpx.Response, key: str, type: str, body: bytes
    ) -> Event:
        location = parse_event_location(response.headers.get("Location"))
        ref = parse_etag(response.headers.get("ETag"))
        return Event(
            collection=self,
            key=key,
            type=type,
            timestamp=from_millis(location.timestamp_ms),
            ordinal=location.ordinal,
            ref=ref,
            value=json.loads(body),
        )

    # Graph

    def link(self, key: str, kind: str, to_collection: str, to_key: str) -> None:
        """Create a directed ``kind`` relation from key to to_collection/to_key."""
        path = _path(self.name, key, "relation", kind, to_collection, to_key)
        self.client._empty_reply("PUT", path, None, None, 204)

    def unlink(self, key: str, kind: str, to_collection: str, to_key: str) -> None:
        """Remove a relation created by link(). No tombstone is kept."""
        path = _with_query(
            _path(self.name, key, "relation", kind, to_collection, to_key), {"purge": "true"}
        )
        self.client._empty_reply("DELETE", path, None, None, 204)

    def get_links(
        self, key: str, kind: str, *kinds: str, query: GetLinksQuery | None = None
    ) -> Iterator:
        """Walk one or more relation kinds from key.

        ``get_links("alice", "friends", "likes")`` yields what alice's friends
        like. The iterator returns the items reached by the final hop.
        """
        params = query.to_params() if query is not None else {}
        path = _with_query(_path(self.name, key, "relations", kind, *kinds), params)
        return Iterator(self.client, IteratorKind.ITEMS, path)
