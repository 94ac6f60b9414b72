"""Wire-level defaults for the Orchestrate API."""

# Host queried when none is configured.
DEFAULT_API_HOST = "api.orchestrate.io"

# Versioned path prefix for every request; also prefixes "next" links.
API_PREFIX = "/v0/"

# How long establishing a connection may take. This is not a transfer timeout.
DEFAULT_DIAL_TIMEOUT = 3.0

# How long to wait for the server to start replying.
DEFAULT_RESPONSE_HEADER_TIMEOUT = 3.0

# Idle connections kept open to the API; raise for high volume clients.
DEFAULT_MAX_IDLE_CONNECTIONS = 4
