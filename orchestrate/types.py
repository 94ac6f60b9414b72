"""Type definitions for the Orchestrate client."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from .exceptions import DecodeError

if TYPE_CHECKING:
    from .collection import Collection

T = TypeVar("T")

# Any value that survives a JSON round trip.
JSONValue = (
    bool | int | float | str | list["JSONValue"] | dict[str, "JSONValue"] | None
)

# Turns a stored JSON value into the caller's own type.
ValueDecoder = Callable[[JSONValue], T]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def to_millis(ts: datetime) -> int:
    """Milliseconds since the epoch, truncated. Naive datetimes are UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - EPOCH) // _MILLISECOND


def from_millis(ms: int) -> datetime:
    """Inverse of to_millis, as an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=ms)


def _decode(value: JSONValue, decoder: "ValueDecoder[T]") -> T:
    try:
        return decoder(value)
    except Exception as e:
        raise DecodeError(f"Failed to decode value: {e}") from e


@dataclass(frozen=True)
class Item:
    """One revision of a key-value item.

    ``score`` and ``distance`` are only set on search results; ``tombstone``
    and ``updated`` only on history results.
    """

    collection: "Collection" = field(repr=False, compare=False)
    key: str
    ref: str
    value: JSONValue = None
    score: float = 0.0
    distance: float = 0.0
    tombstone: bool = False
    updated: datetime | None = None

    def decode(self, decoder: "ValueDecoder[T]") -> T:
        """Convert the stored value with a caller supplied decoder."""
        return _decode(self.value, decoder)

    def update(self, value: Any) -> "Item":
        """Replace this item only if it is still the most recent revision."""
        return self.collection.conditional_update(self, value)

    def delete(self) -> None:
        """Delete this item only if it is still the most recent revision."""
        self.collection.conditional_delete(self)


@dataclass(frozen=True)
class Event:
    """One revision of an event attached to a key."""

    collection: "Collection" = field(repr=False, compare=False)
    key: str
    type: str
    timestamp: datetime
    ordinal: int
    ref: str
    value: JSONValue = None

    def decode(self, decoder: "ValueDecoder[T]") -> T:
        """Convert the stored value with a caller supplied decoder."""
        return _decode(self.value, decoder)

    def update(self, value: Any) -> "Event":
        """Replace this event only if it is still the most recent revision."""
        return self.collection.conditional_update_event(self, value)

    def delete(self) -> None:
        """Delete this event only if it is still the most recent revision."""
        self.collection.conditional_delete_event(self)


@dataclass
class ListQuery:
    """Options for Collection.list().

    limit defaults to 10 on the server, max 100. start_key and end_key are
    inclusive; after_key and before_key are exclusive.
    """

    limit: int = 0
    start_key: str = ""
    after_key: str = ""
    before_key: str = ""
    end_key: str = ""

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.limit:
            params["limit"] = str(self.limit)
        if self.after_key:
            params["afterKey"] = self.after_key
        if self.before_key:
            params["beforeKey"] = self.before_key
        if self.end_key:
            params["endKey"] = self.end_key
        if self.start_key:
            params["startKey"] = self.start_key
        return params


@dataclass
class HistoryQuery:
    """Options for Collection.history().

    Values are left out of the listing unless ``values`` is set.
    """

    limit: int = 0
    offset: int = 0
    values: bool = False

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.limit:
            params["limit"] = str(self.limit)
        if self.offset:
            params["offset"] = str(self.offset)
        if self.values:
            params["values"] = "true"
        return params


@dataclass
class SearchQuery:
    """Options for Collection.search(). An empty sort orders by score."""

    limit: int = 0
    offset: int = 0
    sort: str = ""

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.limit:
            params["limit"] = str(self.limit)
        if self.offset:
            params["offset"] = str(self.offset)
        if self.sort:
            params["sort"] = self.sort
        return params


def _event_bound(ts: datetime, ordinal: int | None) -> str:
    if ordinal is None:
        return str(to_millis(ts))
    return f"{to_millis(ts)}/{ordinal}"


@dataclass
class ListEventsQuery:
    """Options for Collection.list_events().

    Events are listed newest first. ``start``/``end`` are inclusive and
    ``after``/``before`` are exclusive. Leaving a boundary's ordinal as None
    matches every event in that millisecond. Timestamps are truncated to
    milliseconds.
    """

    limit: int = 0
    start: datetime | None = None
    start_ordinal: int | None = None
    end: datetime | None = None
    end_ordinal: int | None = None
    after: datetime | None = None
    after_ordinal: int | None = None
    before: datetime | None = None
    before_ordinal: int | None = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.limit:
            params["limit"] = str(self.limit)
        if self.after is not None:
            params["afterEvent"] = _event_bound(self.after, self.after_ordinal)
        if self.before is not None:
            params["beforeEvent"] = _event_bound(self.before, self.before_ordinal)
        if self.end is not None:
            params["endEvent"] = _event_bound(self.end, self.end_ordinal)
        if self.start is not None:
            params["startEvent"] = _event_bound(self.start, self.start_ordinal)
        return params


@dataclass
class GetLinksQuery:
    """Options for Collection.get_links()."""

    limit: int = 0

    def to_params(self) -> dict[str, str]:
        return {"limit": str(self.limit)} if self.limit else {}


@dataclass
class ListPage:
    """One page of a listing reply."""

    results: list[dict[str, Any]]
    next: str = ""

    @classmethod
    def from_response(cls, response: Any) -> "ListPage":
        """Create ListPage from a listing reply body."""
        if not isinstance(response, dict):
            raise DecodeError("Listing reply is not a JSON object")
        results = response.get("results") or []
        if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
            raise DecodeError("Listing reply has malformed results")
        return cls(
            results=results,
            next=response.get("next") or "",
        )


def item_from_result(collection: "Collection", result: dict[str, Any]) -> Item:
    """Build an Item from one entry of a list, search or history page."""
    path = result.get("path") or {}
    reftime = result.get("reftime")
    return Item(
        collection=collection,
        key=path.get("key", ""),
        ref=path.get("ref", ""),
        value=result.get("value"),
        score=result.get("score") or 0.0,
        distance=result.get("distance") or 0.0,
        tombstone=bool(path.get("tombstone", False)),
        updated=from_millis(reftime) if reftime is not None else None,
    )


def event_from_result(collection: "Collection", result: dict[str, Any]) -> Event:
    """Build an Event from a listing entry or a single event reply."""
    path = result.get("path") or {}
    timestamp = result.get("timestamp", path.get("timestamp", 0))
    ordinal = result.get("ordinal", path.get("ordinal", 0))
    return Event(
        collection=collection,
        key=path.get("key", ""),
        type=path.get("type", ""),
        timestamp=from_millis(timestamp),
        ordinal=ordinal,
        ref=path.get("ref", ""),
        value=result.get("value"),
    )
