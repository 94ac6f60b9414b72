"""Shared fixtures: an in-memory stand-in for the Orchestrate REST API.

FakeOrchestrate implements just enough of the service's wire behaviour
(refs, conditional headers, Location/ETag, paginated listings with "next"
links, event ranges, relations) to exercise the client end to end through
httpx.MockTransport. Every request is recorded so tests can count fetches.
"""

import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator
from urllib.parse import quote, unquote, urlencode

import httpx
import pytest

from orchestrate import Client, Collection

BASE_TIME_MS = 1_400_000_000_000


def _ref_location(collection: str, key: str, ref: str) -> str:
    return f"/v0/{quote(collection, safe='')}/{quote(key, safe='')}/refs/{ref}"


@dataclass
class Revision:
    ref: str
    value: Any
    reftime: int
    tombstone: bool = False


@dataclass
class StoredEvent:
    timestamp: int
    ordinal: int
    ref: str
    value: Any


@dataclass
class FakeOrchestrate:
    requests: list[httpx.Request] = field(default_factory=list)
    items: dict[tuple[str, str], list[Revision]] = field(default_factory=dict)
    events: dict[tuple[str, str, str], list[StoredEvent]] = field(default_factory=dict)
    relations: dict[tuple[str, str, str], list[tuple[str, str]]] = field(default_factory=dict)
    # Applied to every response before it is returned; used for fault injection.
    rewrite: Callable[[httpx.Response], httpx.Response] | None = None

    def __post_init__(self) -> None:
        self._refs = itertools.count(1)
        self._clock = itertools.count(BASE_TIME_MS, 1000)
        self._ordinals: dict[tuple[str, str, str], Iterator[int]] = {}
        # Number of listing pages served.
        self.listing_fetches = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._route(request)
        if self.rewrite is not None:
            response = self.rewrite(response)
        return response

    # Helpers

    def _next_ref(self) -> str:
        return f"{next(self._refs):016x}"

    def _latest(self, collection: str, key: str) -> Revision | None:
        revisions = self.items.get((collection, key), [])
        if revisions and not revisions[-1].tombstone:
            return revisions[-1]
        return None

    @staticmethod
    def _json(status: int, body: Any, headers: dict[str, str] | None = None) -> httpx.Response:
        return httpx.Response(status, json=body, headers=headers)

    @staticmethod
    def _precondition_ok(request: httpx.Request, current_ref: str | None) -> bool:
        if request.headers.get("If-None-Match") == '"*"' and current_ref is not None:
            return False
        if_match = request.headers.get("If-Match")
        if if_match is not None and if_match != f'"{current_ref}"':
            return False
        return True

    def _page(
        self, request: httpx.Request, raw_path: str, results: list[dict[str, Any]]
    ) -> httpx.Response:
        self.listing_fetches += 1
        params = dict(request.url.params)
        limit = int(params.get("limit", 10))
        offset = int(params.get("offset", 0))
        page = results[offset : offset + limit]
        body: dict[str, Any] = {"count": len(page), "results": page}
        if "query" in params:
            body["total_count"] = len(results)
        if offset + limit < len(results):
            params["offset"] = str(offset + limit)
            body["next"] = f"{raw_path}?{urlencode(params)}"
        return self._json(200, body)

    # Routing

    def _route(self, request: httpx.Request) -> httpx.Response:
        raw_path = request.url.raw_path.decode("ascii").split("?")[0]
        parts = [unquote(p) for p in raw_path.split("/")]
        if parts[:2] != ["", "v0"]:
            return self._json(404, {"message": "bad prefix"})
        segs = parts[2:]
        method = request.method

        if segs == [""]:
            return httpx.Response(200) if method == "HEAD" else self._json(405, {})
        if len(segs) == 1:
            return self._list_or_search(request, raw_path, segs[0])
        if len(segs) == 2:
            return self._key(request, *segs)
        if segs[2] == "refs" and len(segs) == 3:
            return self._history(request, raw_path, segs[0], segs[1])
        if segs[2] == "refs" and len(segs) == 4:
            revision = next(
                (r for r in self.items.get((segs[0], segs[1]), []) if r.ref == segs[3]), None
            )
            if revision is None or revision.tombstone:
                return self._json(404, {"message": "not found"})
            return self._json(200, revision.value)
        if segs[2] == "events":
            return self._event(request, raw_path, segs)
        if segs[2] == "relation" and len(segs) == 6:
            return self._relation(request, segs)
        if segs[2] == "relations" and len(segs) >= 4:
            return self._traverse(request, raw_path, segs)
        return self._json(404, {"message": "no route"})

    def _key(self, request: httpx.Request, collection: str, key: str) -> httpx.Response:
        latest = self._latest(collection, key)
        current_ref = latest.ref if latest else None
        if request.method == "GET":
            if latest is None:
                return self._json(404, {"message": "not found"})
            location = _ref_location(collection, key, latest.ref)
            return self._json(200, latest.value, {"Content-Location": location})
        if request.method == "PUT":
            if not self._precondition_ok(request, current_ref):
                return self._json(412, {"message": "precondition failed"})
            ref = self._next_ref()
            revision = Revision(ref, json.loads(request.content), next(self._clock))
            self.items.setdefault((collection, key), []).append(revision)
            location = _ref_location(collection, key, ref)
            return httpx.Response(201, headers={"Location": location, "ETag": f'"{ref}"'})
        if request.method == "DELETE":
            if not self._precondition_ok(request, current_ref):
                return self._json(412, {"message": "precondition failed"})
            if request.url.params.get("purge") == "true":
                self.items.pop((collection, key), None)
            elif latest is not None:
                tombstone = Revision(self._next_ref(), None, next(self._clock), tombstone=True)
                self.items[(collection, key)].append(tombstone)
            return httpx.Response(204)
        return self._json(405, {"message": "method not allowed"})

    def _item_result(self, collection: str, key: str, revision: Revision) -> dict[str, Any]:
        return {
            "path": {"collection": collection, "key": key, "ref": revision.ref},
            "value": revision.value,
        }

    def _list_or_search(
        self, request: httpx.Request, raw_path: str, collection: str
    ) -> httpx.Response:
        params = request.url.params
        live = sorted(
            (
                (key, self._latest(c, key))
                for (c, key) in self.items
                if c == collection and self._latest(c, key) is not None
            ),
            key=lambda pair: pair[0],
        )
        if "query" in params:
            query = params["query"]
            results = []
            for key, revision in live:
                if query != "*":
                    fieldname, _, wanted = query.partition(":")
                    value = revision.value if isinstance(revision.value, dict) else {}
                    if str(value.get(fieldname)) != wanted:
                        continue
                result = self._item_result(collection, key, revision)
                result["score"] = 1.0
                results.append(result)
            return self._page(request, raw_path, results)

        def keep(key: str) -> bool:
            if "startKey" in params and key < params["startKey"]:
                return False
            if "afterKey" in params and key <= params["afterKey"]:
                return False
            if "beforeKey" in params and key >= params["beforeKey"]:
                return False
            if "endKey" in params and key > params["endKey"]:
                return False
            return True

        results = [self._item_result(collection, k, r) for k, r in live if keep(k)]
        return self._page(request, raw_path, results)

    def _history(
        self, request: httpx.Request, raw_path: str, collection: str, key: str
    ) -> httpx.Response:
        with_values = request.url.params.get("values") == "true"
        results = []
        for revision in reversed(self.items.get((collection, key), [])):
            path = {"collection": collection, "key": key, "ref": revision.ref}
            if revision.tombstone:
                path["tombstone"] = True
            result: dict[str, Any] = {"path": path, "reftime": revision.reftime}
            if with_values and not revision.tombstone:
                result["value"] = revision.value
            results.append(result)
        return self._page(request, raw_path, results)

    # Events

    def _event_result(
        self, collection: str, key: str, type: str, event: StoredEvent
    ) -> dict[str, Any]:
        return {
            "ordinal": event.ordinal,
            "timestamp": event.timestamp,
            "path": {
                "collection": collection,
                "key": key,
                "type": type,
                "ref": event.ref,
                "ordinal": event.ordinal,
                "timestamp": event.timestamp,
            },
            "value": event.value,
        }

    def _event_headers(
        self, collection: str, key: str, type: str, event: StoredEvent
    ) -> dict[str, str]:
        location = "/v0/{}/{}/events/{}/{}/{}".format(
            quote(collection, safe=""),
            quote(key, safe=""),
            quote(type, safe=""),
            event.timestamp,
            event.ordinal,
        )
        return {"Location": location, "ETag": f'"{event.ref}"'}

    def _event(self, request: httpx.Request, raw_path: str, segs: list[str]) -> httpx.Response:
        collection, key, _, type = segs[:4]
        timeline = self.events.setdefault((collection, key, type), [])
        method = request.method

        if len(segs) == 4 and method == "GET":
            return self._list_events(request, raw_path, collection, key, type, timeline)

        if len(segs) in (4, 5) and method == "POST":
            timestamp = int(segs[4]) if len(segs) == 5 else next(self._clock)
            ordinals = self._ordinals.setdefault((collection, key, type), itertools.count())
            event = StoredEvent(
                timestamp, next(ordinals), self._next_ref(), json.loads(request.content)
            )
            timeline.append(event)
            return httpx.Response(201, headers=self._event_headers(collection, key, type, event))

        if len(segs) != 6:
            return self._json(404, {"message": "no route"})

        timestamp, ordinal = int(segs[4]), int(segs[5])
        event = next(
            (e for e in timeline if e.timestamp == timestamp and e.ordinal == ordinal), None
        )
        if method == "GET":
            if event is None:
                return self._json(404, {"message": "not found"})
            return self._json(200, self._event_result(collection, key, type, event))
        if method == "PUT":
            if event is None:
                return self._json(404, {"message": "not found"})
            if not self._precondition_ok(request, event.ref):
                return self._json(412, {"message": "precondition failed"})
            event.ref = self._next_ref()
            event.value = json.loads(request.content)
            return httpx.Response(204, headers=self._event_headers(collection, key, type, event))
        if method == "DELETE":
            if event is not None:
                if not self._precondition_ok(request, event.ref):
                    return self._json(412, {"message": "precondition failed"})
                timeline.remove(event)
            return httpx.Response(204)
        return self._json(405, {"message": "method not allowed"})

    def _list_events(
        self,
        request: httpx.Request,
        raw_path: str,
        collection: str,
        key: str,
        type: str,
        timeline: list[StoredEvent],
    ) -> httpx.Response:
        params = request.url.params

        def bound(name: str) -> tuple[int, int | None] | None:
            if name not in params:
                return None
            ts, _, ordinal = params[name].partition("/")
            return int(ts), (int(ordinal) if ordinal else None)

        def keep(event: StoredEvent) -> bool:
            position = (event.timestamp, event.ordinal)
            start, after = bound("startEvent"), bound("afterEvent")
            end, before = bound("endEvent"), bound("beforeEvent")
            if start and not (event.timestamp >= start[0] if start[1] is None else position >= start):
                return False
            if after and not (event.timestamp >= after[0] if after[1] is None else position > after):
                return False
            if end and not (event.timestamp <= end[0] if end[1] is None else position <= end):
                return False
            if before and not (
                event.timestamp <= before[0] if before[1] is None else position < before
            ):
                return False
            return True

        ordered = sorted(timeline, key=lambda e: (e.timestamp, e.ordinal), reverse=True)
        results = [self._event_result(collection, key, type, e) for e in ordered if keep(e)]
        return self._page(request, raw_path, results)

    # Graph

    def _relation(self, request: httpx.Request, segs: list[str]) -> httpx.Response:
        collection, key, _, kind, to_collection, to_key = segs
        edges = self.relations.setdefault((collection, key, kind), [])
        if request.method == "PUT":
            if (to_collection, to_key) not in edges:
                edges.append((to_collection, to_key))
            return httpx.Response(204)
        if request.method == "DELETE":
            if (to_collection, to_key) in edges:
                edges.remove((to_collection, to_key))
            return httpx.Response(204)
        return self._json(405, {"message": "method not allowed"})

    def _traverse(self, request: httpx.Request, raw_path: str, segs: list[str]) -> httpx.Response:
        frontier = [(segs[0], segs[1])]
        for kind in segs[3:]:
            reached: list[tuple[str, str]] = []
            for collection, key in frontier:
                for node in self.relations.get((collection, key, kind), []):
                    if node not in reached:
                        reached.append(node)
            frontier = reached
        results = []
        for collection, key in frontier:
            latest = self._latest(collection, key)
            if latest is not None:
                results.append(self._item_result(collection, key, latest))
        return self._page(request, raw_path, results)


def without_header(name: str) -> Callable[[httpx.Response], httpx.Response]:
    """Build a FakeOrchestrate.rewrite hook that drops one response header."""

    def rewrite(response: httpx.Response) -> httpx.Response:
        headers = [(k, v) for k, v in response.headers.items() if k.lower() != name.lower()]
        return httpx.Response(response.status_code, headers=headers, content=response.content)

    return rewrite


def with_header(name: str, value: str) -> Callable[[httpx.Response], httpx.Response]:
    """Build a FakeOrchestrate.rewrite hook that overrides one response header."""

    def rewrite(response: httpx.Response) -> httpx.Response:
        headers = [(k, v) for k, v in response.headers.items() if k.lower() != name.lower()]
        headers.append((name, value))
        return httpx.Response(response.status_code, headers=headers, content=response.content)

    return rewrite


@pytest.fixture
def server() -> FakeOrchestrate:
    return FakeOrchestrate()


@pytest.fixture
def client(server: FakeOrchestrate) -> Iterator[Client]:
    with Client("test-api-key", transport=httpx.MockTransport(server)) as c:
        yield c


@pytest.fixture
def collection(client: Client) -> Collection:
    return client.collection("users")
