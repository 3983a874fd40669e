"""Type definitions for crmrecords client."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

Record = dict[str, Any]


@dataclass(frozen=True)
class ErrorDetail:
    """A single failure reported by the remote store for one record."""

    status_code: str
    message: str
    fields: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorDetail":
        """Create ErrorDetail from either failure payload shape.

        Single-record requests report ``errorCode`` while composite
        collection results report ``statusCode``.
        """
        return cls(
            status_code=data.get("statusCode") or data.get("errorCode") or "UNKNOWN_ERROR",
            message=data.get("message", ""),
            fields=list(data.get("fields") or []),
        )


@dataclass
class OperationResult:
    """Outcome of a create, update, destroy or upsert for one record."""

    success: bool
    id: str | None = None
    errors: list[ErrorDetail] = field(default_factory=list)

    @classmethod
    def from_response(cls, response: Mapping[str, Any], keep_id: bool = True) -> "OperationResult":
        """Create OperationResult from a success or composite result payload."""
        success = bool(response.get("success", False))
        errors = [ErrorDetail.from_dict(e) for e in response.get("errors") or []]
        record_id = response.get("id") if keep_id and success else None
        return cls(success=success, id=record_id, errors=[] if success else errors)

    @classmethod
    def failure(cls, errors: list[ErrorDetail]) -> "OperationResult":
        return cls(success=False, errors=errors)


@dataclass(frozen=True)
class RequestOptions:
    """Per-call options.

    Only ``headers`` is interpreted; it is forwarded verbatim to the
    connection's request.
    """

    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def coerce(cls, options: "RequestOptions | Mapping[str, Any] | None") -> "RequestOptions":
        """Accept RequestOptions, a plain mapping, or None."""
        if options is None:
            return cls()
        if isinstance(options, RequestOptions):
            return options
        return cls(headers=dict(options.get("headers") or {}))


@dataclass(frozen=True)
class RequestSpec:
    """Protocol operation handed to a connection.

    Attributes:
        operation: One of ``insert``, ``get``, ``update``, ``delete``,
            ``upsert``.
        object_type: Object type the operation targets.
        method: HTTP method.
        path: Path relative to the versioned data endpoint.
        body: JSON payload, if any.
        params: Query string parameters, if any.
        headers: Header overrides supplied by the caller.
    """

    operation: str
    object_type: str
    method: str
    path: str
    body: Any = None
    params: dict[str, str] | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProtocolResponse:
    """Status and decoded body of a protocol reply."""

    status_code: int
    body: Any = None
