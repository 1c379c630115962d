"""Error taxonomy shared by the token, API, webhook, sync and RBAC layers.

Callers branch on ``BridgeError.kind`` rather than on message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    UPSTREAM_TRANSIENT = "upstream_transient"
    UPSTREAM_PERMANENT = "upstream_permanent"
    MAPPING = "mapping"
    STORE = "store"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_REQUEST = "invalid_request"


RETRYABLE_KINDS = frozenset({ErrorKind.UPSTREAM_TRANSIENT, ErrorKind.STORE})

HTTP_STATUS_FOR_KIND = {
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.MAPPING: 422,
    ErrorKind.UPSTREAM_TRANSIENT: 502,
    ErrorKind.UPSTREAM_PERMANENT: 502,
    ErrorKind.STORE: 500,
}


class BridgeError(Exception):
    """Base error carrying an explicit kind tag."""

    kind: ErrorKind = ErrorKind.STORE

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_FOR_KIND.get(self.kind, 500)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.kind.value, **self.details}


class AuthenticationError(BridgeError):
    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(BridgeError):
    kind = ErrorKind.AUTHORIZATION


class UpstreamTransientError(BridgeError):
    kind = ErrorKind.UPSTREAM_TRANSIENT


class UpstreamPermanentError(BridgeError):
    kind = ErrorKind.UPSTREAM_PERMANENT


class MappingError(BridgeError):
    kind = ErrorKind.MAPPING


class StoreError(BridgeError):
    kind = ErrorKind.STORE


class NotFoundError(BridgeError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(BridgeError):
    kind = ErrorKind.CONFLICT


class InvalidRequestError(BridgeError):
    kind = ErrorKind.INVALID_REQUEST


ERROR_CLASSES: dict[ErrorKind, type[BridgeError]] = {
    cls.kind: cls
    for cls in (
        AuthenticationError,
        AuthorizationError,
        UpstreamTransientError,
        UpstreamPermanentError,
        MappingError,
        StoreError,
        NotFoundError,
        ConflictError,
        InvalidRequestError,
    )
}


def kind_for_status(status: int) -> ErrorKind:
    """Classify an upstream HTTP status; 0 means the request never got a response."""
    if status == 0 or status == 429 or status >= 500:
        return ErrorKind.UPSTREAM_TRANSIENT
    if status == 401:
        return ErrorKind.AUTHENTICATION
    if status == 404:
        return ErrorKind.NOT_FOUND
    return ErrorKind.UPSTREAM_PERMANENT


def error_from_kind(kind: ErrorKind, message: str, **details: Any) -> BridgeError:
    return ERROR_CLASSES[kind](message, details=details or None)
