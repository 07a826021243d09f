"""
Exceptions for the faasbridge runtime.

Errors fall into two classes:

- Recoverable: raised while serving a single invocation (handler loading,
  request translation, handler execution, streaming relay). The invocation
  loop reports them through the control plane's error endpoint and moves on
  to the next invocation.
- Fatal: raised while talking to the control plane itself. There is no
  channel left to report these against an invocation, so the process exits
  and the execution environment restarts it.
"""

from __future__ import annotations


class RuntimeAdapterError(Exception):
    """Base exception for runtime adapter errors."""

    fatal: bool = False


class ControlPlaneError(RuntimeAdapterError):
    """Raised when the control plane responds unexpectedly or is unreachable."""

    fatal = True

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.path = path
        self.status_code = status_code
        self.response_body = response_body

    def __str__(self) -> str:
        parts = [f"[control-plane] {self.args[0]}"]
        if self.path:
            parts.append(f"path={self.path}")
        if self.status_code is not None:
            parts.append(f"(status={self.status_code})")
        return " ".join(parts)


class RequestTranslationError(RuntimeAdapterError):
    """Raised when an invocation envelope cannot be turned into a request."""


class HandlerLoadError(RuntimeAdapterError):
    """Raised when the user handler module or attribute cannot be loaded."""

    def __init__(self, message: str, location: str = ""):
        super().__init__(message)
        self.location = location


class HandlerError(RuntimeAdapterError):
    """Raised when a loaded handler misbehaves (bad return value, double respond)."""


class RelayError(RuntimeAdapterError):
    """Raised when the streaming relay cannot be set up or written."""
