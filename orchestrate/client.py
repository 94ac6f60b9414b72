"""Orchestrate HTTP client."""

import json
import logging
import os
import platform
import warnings
from typing import Any

import httpx

from .collection import Collection
from .constants import (
    API_PREFIX,
    DEFAULT_API_HOST,
    DEFAULT_DIAL_TIMEOUT,
    DEFAULT_MAX_IDLE_CONNECTIONS,
    DEFAULT_RESPONSE_HEADER_TIMEOUT,
)
from .exceptions import ConnectionError, DecodeError, OrchestrateError, error_for_response
from .version import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"orchestrate-python/{__version__} (Python {platform.python_version()})"
USER_AGENT_DEPRECATED = USER_AGENT + " [deprecated]"


def default_transport() -> httpx.HTTPTransport:
    """Build the pool-capped transport used when none is injected."""
    return httpx.HTTPTransport(
        limits=httpx.Limits(max_keepalive_connections=DEFAULT_MAX_IDLE_CONNECTIONS),
    )


class Client:
    """HTTP client for the Orchestrate API.

    Args:
        api_key: Application API key, sent as the basic auth username.
        host: API host name. An empty value means DEFAULT_API_HOST.
        scheme: "https" or "http".
        transport: httpx transport to send requests through. Defaults to a
            pool-capped HTTPTransport; tests pass an httpx.MockTransport.
        timeout: Overrides the default dial/response timeouts.

    The client is safe to share between threads. Iterators it returns are not.

    Example:
        >>> client = Client("my-api-key")
        >>> users = client.collection("users")
        >>> item = users.create("alice", {"name": "Alice"})
        >>> print(item.ref)
    """

    def __init__(
        self,
        api_key: str,
        host: str = DEFAULT_API_HOST,
        scheme: str = "https",
        transport: httpx.BaseTransport | None = None,
        timeout: httpx.Timeout | None = None,
    ):
        self.host = host
        self.scheme = scheme
        self.deprecated = False
        if timeout is None:
            timeout = httpx.Timeout(
                None,
                connect=DEFAULT_DIAL_TIMEOUT,
                read=DEFAULT_RESPONSE_HEADER_TIMEOUT,
            )
        self._client = httpx.Client(
            transport=transport if transport is not None else default_transport(),
            timeout=timeout,
            auth=(api_key, ""),
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "Client":
        """Create a client from ORCHESTRATE_API_KEY and ORCHESTRATE_API_HOST."""
        api_key = os.environ.get("ORCHESTRATE_API_KEY")
        if not api_key:
            raise OrchestrateError("ORCHESTRATE_API_KEY is not set")
        host = os.environ.get("ORCHESTRATE_API_HOST")
        if host:
            kwargs.setdefault("host", host)
        return cls(api_key, **kwargs)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def user_agent(self) -> str:
        return USER_AGENT_DEPRECATED if self.deprecated else USER_AGENT

    def collection(self, name: str) -> Collection:
        """Return a handle for the named collection. Nothing is checked remotely."""
        return Collection(self, name)

    def ping(self) -> None:
        """Check that the API is reachable and the key is accepted."""
        self._empty_reply("HEAD", "", None, None, 200)

    def _mark_deprecated(self, name: str) -> None:
        if not self.deprecated:
            logger.warning("Deprecated call %s used; switching user agent", name)
        self.deprecated = True

    def _request(
        self,
        method: str,
        trailing: str,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> httpx.Response:
        """Send one request to /v0/<trailing>."""
        host = self.host or DEFAULT_API_HOST
        url = f"{self.scheme}://{host}{API_PREFIX}{trailing}"

        request_headers = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)
        if body is not None:
            request_headers["Content-Type"] = "application/json"

        try:
            response = self._client.request(method, url, headers=request_headers, content=body)
        except httpx.DecodingError as e:
            raise DecodeError(f"{method} {trailing} reply could not be decompressed: {e}") from e
        except httpx.HTTPError as e:
            raise ConnectionError(f"{method} {trailing} failed: {e}") from e
        logger.debug("%s %s -> %d", method, trailing, response.status_code)
        return response

    def _empty_reply(
        self,
        method: str,
        trailing: str,
        headers: dict[str, str] | None,
        body: bytes | None,
        status: int,
    ) -> httpx.Response:
        """Perform a call that is expected to return no useful body.

        The body has already been read by httpx so the connection can be
        reused; the response is returned for its headers.
        """
        response = self._request(method, trailing, headers, body)
        if response.status_code != status:
            raise error_for_response(response)
        return response

    def _json_reply(
        self,
        method: str,
        trailing: str,
        body: bytes | None,
        status: int,
    ) -> tuple[httpx.Response, Any]:
        """Perform a call whose JSON body is decoded and returned.

        gzip and deflate encoded bodies are decompressed by httpx.
        """
        headers = {"Accept-Encoding": "gzip; deflate"}
        response = self._request(method, trailing, headers, body)
        if response.status_code != status:
            raise error_for_response(response)
        try:
            return response, json.loads(response.content)
        except ValueError as e:
            raise DecodeError(f"Failed to decode {method} {trailing} reply: {e}") from e


def new_client_with_transport(api_key: str, transport: httpx.BaseTransport) -> Client:
    """Deprecated: use ``Client(api_key, transport=transport)``.

    Requests from the returned client carry a "[deprecated]" user agent.
    """
    warnings.warn(
        "new_client_with_transport() is deprecated; use Client(api_key, transport=...)",
        DeprecationWarning,
        stacklevel=2,
    )
    client = Client(api_key, transport=transport)
    client._mark_deprecated("new_client_with_transport")
    return client
