"""Parsers for the headers that carry revision identity.

Orchestrate reports the ref of a new revision only in response headers:

    Location:          /v0/<collection>/<key>/refs/<ref>
    Location (events): /v0/<collection>/<key>/events/<type>/<timestamp>/<ordinal>
    ETag:              "<ref>"
    Content-Location:  /v0/<collection>/<key>/refs/<ref>

Each parser returns the extracted value or raises MissingHeaderError /
MalformedHeaderError. None of them look at anything but the string given.
"""

from dataclasses import dataclass

from .exceptions import MalformedHeaderError, MissingHeaderError


@dataclass(frozen=True)
class EventLocation:
    """Identity of an event revision taken from a Location header."""

    timestamp_ms: int
    ordinal: int


def parse_ref_location(value: str | None, header: str = "Location") -> str:
    """Extract the ref from a ``.../<key>/refs/<ref>`` location."""
    if not value:
        raise MissingHeaderError(header)
    parts = value.split("/")
    if len(parts) < 4 or parts[-2] != "refs" or not parts[-1] or not parts[-3]:
        raise MalformedHeaderError(header, value)
    return parts[-1]


def parse_event_location(value: str | None) -> EventLocation:
    """Extract timestamp and ordinal from an event Location header."""
    if not value:
        raise MissingHeaderError("Location")
    parts = value.split("/")
    # ["", "v0", collection, key, "events", type, timestamp, ordinal]
    if len(parts) != 8 or parts[4] != "events":
        raise MalformedHeaderError("Location", value)
    try:
        timestamp_ms = int(parts[6])
        ordinal = int(parts[7])
    except ValueError:
        raise MalformedHeaderError("Location", value) from None
    return EventLocation(timestamp_ms=timestamp_ms, ordinal=ordinal)


def parse_etag(value: str | None) -> str:
    """Extract the ref from a quoted ETag."""
    if not value:
        raise MissingHeaderError("ETag")
    parts = value.split('"')
    if len(parts) != 3 or parts[0] or parts[2] or not parts[1]:
        raise MalformedHeaderError("ETag", value)
    return parts[1]
