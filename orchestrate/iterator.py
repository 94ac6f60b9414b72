"""Lazily paginated cursor over listing results."""

import enum
import logging
from typing import TYPE_CHECKING, Any, Iterator as TypingIterator

from .constants import API_PREFIX
from .exceptions import IteratorError, OrchestrateError
from .types import Event, Item, ListPage, event_from_result, item_from_result

if TYPE_CHECKING:
    from .client import Client

logger = logging.getLogger(__name__)


class IteratorState(enum.Enum):
    FRESH = "fresh"
    IN_PAGE = "in_page"
    EXHAUSTED = "exhausted"
    ERRORED = "errored"


class IteratorKind(enum.Enum):
    ITEMS = "items"
    EVENTS = "events"


class Iterator:
    """Walks the results of list(), search(), history(), list_events() and
    get_links().

    Nothing is fetched until the first call to advance(). Each page costs one
    request; moving within a page costs none. Errors do not propagate out of
    advance(): they end the iteration and stay available on ``error``.

        it = collection.list(ListQuery(limit=100))
        while it.advance():
            item = it.get()
            ...
        if it.error is not None:
            raise it.error

    An Iterator must not be advanced from more than one thread at a time.
    """

    def __init__(self, client: "Client", kind: IteratorKind, path: str):
        self.kind = kind
        self.state = IteratorState.FRESH
        self.error: OrchestrateError | None = None
        self._client = client
        self._next = path
        self._results: list[dict[str, Any]] = []
        self._index = -1

    def __repr__(self) -> str:
        return f"<Iterator {self.kind.value} {self.state.value}>"

    def advance(self) -> bool:
        """Move to the next result, fetching a page if needed.

        Returns False once the listing is exhausted or an error occurred.
        """
        if self.state in (IteratorState.EXHAUSTED, IteratorState.ERRORED):
            return False

        if self.state is IteratorState.IN_PAGE and self._index < len(self._results) - 1:
            self._index += 1
            return True

        if not self._next:
            self.state = IteratorState.EXHAUSTED
            return False

        try:
            _, body = self._client._json_reply("GET", self._next, None, 200)
            page = ListPage.from_response(body)
        except OrchestrateError as e:
            logger.debug("Listing fetch of %s failed: %s", self._next, e)
            self.error = e
            self.state = IteratorState.ERRORED
            return False

        logger.debug("Fetched %d results from %s", len(page.results), self._next)
        self._next = page.next.removeprefix(API_PREFIX)
        self._results = page.results
        if not page.results:
            self.state = IteratorState.EXHAUSTED
            return False
        self._index = 0
        self.state = IteratorState.IN_PAGE
        return True

    def next_with_error(self) -> tuple[bool, OrchestrateError | None]:
        """Like advance() but also returns the sticky error."""
        return self.advance(), self.error

    def _current(self) -> dict[str, Any]:
        if self.state is not IteratorState.IN_PAGE:
            raise IteratorError(f"No current result; iterator is {self.state.value}.")
        return self._results[self._index]

    def get(self) -> Item:
        """Return the current Item. Only valid on item listings."""
        if self.kind is not IteratorKind.ITEMS:
            raise IteratorError("Not an Item Iterator.")
        result = self._current()
        name = (result.get("path") or {}).get("collection", "")
        return item_from_result(self._client.collection(name), result)

    def get_event(self) -> Event:
        """Return the current Event. Only valid on event listings."""
        if self.kind is not IteratorKind.EVENTS:
            raise IteratorError("Not an Event Iterator.")
        result = self._current()
        name = (result.get("path") or {}).get("collection", "")
        return event_from_result(self._client.collection(name), result)

    def __iter__(self) -> TypingIterator[Item | Event]:
        while self.advance():
            yield self.get() if self.kind is IteratorKind.ITEMS else self.get_event()
        if self.error is not None:
            raise self.error
