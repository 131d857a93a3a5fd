"""
OSS Cluster Errors

Error taxonomy for the cluster router. A backend failure is classified
purely by the status code it carries:

* ``200 <= status < 500`` -- an authoritative protocol answer (not found,
  precondition failed, ...). Terminal, never retried on another node.
* anything else, including no status at all -- a transport or server
  failure. Retryable on reads, fatal for writes.
"""

from __future__ import annotations

from typing import List, Optional


def status_of(exc: BaseException) -> Optional[int]:
    """Return the status code carried by *exc*, or ``None``."""
    status = getattr(exc, "status", None)
    if isinstance(status, bool) or not isinstance(status, int):
        return None
    return status


def is_terminal_status(status: Optional[int]) -> bool:
    """True when *status* is a valid protocol response (200-499)."""
    return status is not None and 200 <= status < 500


def is_retryable(exc: BaseException) -> bool:
    """True when *exc* signals a node outage rather than a protocol answer."""
    return not is_terminal_status(status_of(exc))


class ClusterError(Exception):
    """Base exception for cluster router errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class BackendError(ClusterError):
    """Error raised by a backend client for a single endpoint."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message, status)
        self.code = code
        self.request_id = request_id

    @property
    def retryable(self) -> bool:
        return not is_terminal_status(self.status)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(status={self.status!r}, "
            f"code={self.code!r}, message={self.message!r})"
        )


class ConfigurationError(ClusterError, ValueError):
    """Invalid cluster configuration. Fatal, never retried."""


class ClusterClosedError(ClusterError):
    """Operation attempted on a closed cluster client."""

    def __init__(self, message: str = "cluster client is closed"):
        super().__init__(message)


class ClusterExhaustedError(ClusterError):
    """Every node failed a read with a retryable error."""

    SUFFIX = " (all clients are down)"

    def __init__(self, last_error: BaseException):
        self.last_error = last_error
        message = getattr(last_error, "message", None)
        if not isinstance(message, str):
            message = str(last_error)
        super().__init__(message + self.SUFFIX, status_of(last_error))


class AvailabilityCheckError(ClusterError):
    """
    Diagnostic signal produced when health probes find nodes down.

    Delivered through the client's ``"error"`` event; never raised into
    a caller's operation.
    """

    name = "CheckAvailableError"

    def __init__(self, down_urls: List[str]):
        self.down_urls = list(down_urls)
        super().__init__(
            f"{len(self.down_urls)} data node down, please check status file: "
            + ", ".join(self.down_urls)
        )

    @property
    def count(self) -> int:
        return len(self.down_urls)
