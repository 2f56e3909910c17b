"""Custom exception hierarchy for the relay.

All application exceptions inherit from :class:`ProxyError`, which carries
an optional ``source_name`` (the upstream base URL involved, if any) and the
HTTP ``status_code`` the error maps to when it reaches the API boundary.

    ProxyError  (base -- catch-all for any relay error)
    +-- ClientError              (bad method, missing parameter, bad target)
    +-- UpstreamTransportError   (network failure or timeout)
    +-- UpstreamStatusError      (upstream answered with a non-2xx status)
    +-- UpstreamPayloadAnomaly   (2xx body that is not JSON / not successful)
    +-- AllSourcesExhausted      (retry budget spent without a success)
    +-- ConfigurationError       (startup / missing config)

Every error is scoped to a single request.  Transport and status errors are
retried by the orchestrator; client errors are surfaced immediately.
"""

from __future__ import annotations


class ProxyError(Exception):
    """Base exception for all relay errors.

    The ``__str__`` method prefixes the source name in brackets for log
    scanning, e.g. ``[https://api.example/] HTTP 502``.
    """

    default_status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        source_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self._message = message
        self._source_name = source_name
        self._status_code = status_code or self.default_status_code
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def source_name(self) -> str | None:
        return self._source_name

    @property
    def status_code(self) -> int:
        return self._status_code

    def __str__(self) -> str:
        if self._source_name:
            return f"[{self._source_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller mistakes
# ---------------------------------------------------------------------------


class ClientError(ProxyError):
    """Raised for caller mistakes: unsupported method, missing ``types``,
    or a media target outside the allow-list.  Never retried."""

    default_status_code = 400

    def __init__(
        self,
        message: str = "Bad request",
        source_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name, status_code=status_code)


# ---------------------------------------------------------------------------
# Upstream errors
# ---------------------------------------------------------------------------


class UpstreamTransportError(ProxyError):
    """Raised when an upstream call fails at the network level or times out.

    A cancelled call (deadline reached) is reported as this error too.
    """

    default_status_code = 502

    def __init__(
        self,
        message: str = "Upstream transport failure",
        source_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name, status_code=status_code)


class UpstreamStatusError(ProxyError):
    """Raised when an upstream answers with a non-success HTTP status."""

    default_status_code = 502

    def __init__(
        self,
        message: str = "Upstream returned an error status",
        source_name: str | None = None,
        status_code: int | None = None,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name, status_code=status_code)
        self.upstream_status = upstream_status


class UpstreamPayloadAnomaly(ProxyError):
    """Raised when a reachable upstream returns a body that is not JSON or
    carries no recognisable success signal.

    Not a liveness signal: the body is still passed to the caller as-is.
    """

    default_status_code = 200

    def __init__(
        self,
        message: str = "Upstream payload has an unexpected shape",
        source_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name, status_code=status_code)


class AllSourcesExhausted(ProxyError):
    """Raised when the retry budget is spent without a successful attempt."""

    def __init__(
        self,
        message: str = "all sources unavailable",
        source_name: str | None = None,
        status_code: int | None = None,
        attempts: int = 0,
        last_error: ProxyError | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name, status_code=status_code)
        self.attempts = attempts
        self.last_error = last_error


# ---------------------------------------------------------------------------
# Startup errors
# ---------------------------------------------------------------------------


class ConfigurationError(ProxyError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        source_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name, status_code=status_code)
