"""Orchestrate client exceptions."""

import httpx


class OrchestrateError(Exception):
    """Base exception for Orchestrate errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConnectionError(OrchestrateError):
    """Failed to reach the Orchestrate API."""

    pass


class NotFoundError(OrchestrateError):
    """The requested item, ref or event does not exist (404)."""

    def __init__(self, message: str = "404: Not found."):
        super().__init__(message, 404)


class PreconditionFailedError(OrchestrateError):
    """A conditional header did not match on the server (412)."""

    def __init__(self, message: str = "412: Precondition failed."):
        super().__init__(message, 412)


class AlreadyExistsError(PreconditionFailedError):
    """A create was rejected because the key is already in use."""

    def __init__(self, key: str):
        super().__init__(f"An item with the key {key} already exists.")
        self.key = key


class NotMostRecentError(PreconditionFailedError):
    """A conditional update or delete was issued against a stale ref."""

    def __init__(self, key: str, ref: str):
        super().__init__(f"{ref} was not the most recent ref for key {key}.")
        self.key = key
        self.ref = ref


class RateLimitedError(OrchestrateError):
    """The request was rate limited (419)."""

    def __init__(self, message: str = "Request rate limited."):
        super().__init__(message, 419)


class UnknownError(OrchestrateError):
    """Any other non-success reply.

    Args:
        status: The HTTP status line, e.g. "500 Internal Server Error".
        status_code: The numeric status.
        message: The ``message`` field of the JSON error body, when present.
    """

    def __init__(self, status: str, status_code: int, message: str):
        super().__init__(f"{status} ({status_code}): {message}", status_code)
        self.status = status
        self.detail = message


class HeaderError(OrchestrateError):
    """A response header needed to identify a revision was unusable."""

    def __init__(self, message: str, header: str):
        super().__init__(message)
        self.header = header


class MissingHeaderError(HeaderError):
    """The header was absent or empty."""

    def __init__(self, header: str):
        super().__init__(f"Missing {header} header.", header)


class MalformedHeaderError(HeaderError):
    """The header did not match the expected grammar."""

    def __init__(self, header: str, value: str):
        super().__init__(f"Malformed {header} header: {value!r}", header)
        self.value = value


class EncodeError(OrchestrateError):
    """A value could not be encoded as JSON."""

    pass


class DecodeError(OrchestrateError):
    """A body or value could not be decoded."""

    pass


class IteratorError(OrchestrateError):
    """An iterator accessor was used incorrectly."""

    pass


def error_for_response(response: httpx.Response) -> OrchestrateError:
    """Classify a non-success response.

    The mapping knows nothing about the operation that was issued; callers
    turn a PreconditionFailedError into AlreadyExistsError or
    NotMostRecentError themselves.
    """
    if response.status_code == 404:
        return NotFoundError()
    if response.status_code == 412:
        return PreconditionFailedError()
    if response.status_code == 419:
        return RateLimitedError()

    status = f"{response.status_code} {response.reason_phrase}".strip()
    try:
        body = response.json()
    except ValueError as e:
        return UnknownError(status, response.status_code, str(e))
    message = body.get("message", "") if isinstance(body, dict) else ""
    return UnknownError(status, response.status_code, str(message))
