"""Response reconciliation.

Maps raw protocol replies onto the caller-facing shapes: a record, an
``OperationResult``, an ordered list of either, or a raised error. A
reply can only fail a whole call when the failure is not attributable to
a single record or when it is a multiple-choices conflict.
"""

import logging
from typing import Any

from .exceptions import CrmError, MultipleChoicesError, NotFoundError, RequestError
from .types import ErrorDetail, OperationResult, ProtocolResponse, Record, RequestSpec

logger = logging.getLogger(__name__)


def _error_details(body: Any) -> list[ErrorDetail]:
    if isinstance(body, dict):
        body = [body]
    if not isinstance(body, list):
        return []
    return [ErrorDetail.from_dict(item) for item in body if isinstance(item, dict)]


def _is_success(response: ProtocolResponse) -> bool:
    return 200 <= response.status_code < 300


def _is_record_fault(response: ProtocolResponse) -> bool:
    """A 4xx reply whose body is an error entry or a list of them."""
    return (
        400 <= response.status_code < 500
        and isinstance(response.body, (dict, list))
        and bool(_error_details(response.body))
    )


def fault(response: ProtocolResponse, spec: RequestSpec) -> CrmError:
    """Build the error matching a whole-request fault."""
    if response.status_code == 300:
        body = response.body
        if isinstance(body, dict):
            body = body.get("content")
        content = [str(item) for item in body or []]
        logger.warning(
            "%s %s matched %d records", spec.method, spec.path, len(content)
        )
        return MultipleChoicesError(f"Multiple records match {spec.path}", content)

    errors = _error_details(response.body)
    if response.status_code == 404 or any(e.status_code == "NOT_FOUND" for e in errors):
        message = errors[0].message if errors else f"Not found: {spec.path}"
        return NotFoundError(message, errors)
    if errors:
        return RequestError(errors[0].message, errors[0].status_code, errors)
    return RequestError(
        f"Unexpected response {response.status_code} for {spec.method} {spec.path}",
        str(response.status_code),
    )


def to_record(response: ProtocolResponse, spec: RequestSpec) -> Record:
    """Reconcile a single-record retrieve."""
    if response.status_code == 200 and isinstance(response.body, dict):
        return response.body
    raise fault(response, spec)


def to_result(response: ProtocolResponse, spec: RequestSpec) -> OperationResult:
    """Reconcile a single-record create, update, destroy or upsert.

    The identifier is kept only when the reply reports an insert: a plain
    create, or an upsert answered with 201 or ``created: true``.
    """
    if _is_success(response):
        body = response.body if isinstance(response.body, dict) else {}
        if spec.operation == "insert":
            keep_id = True
        elif spec.operation == "upsert":
            keep_id = response.status_code == 201 or body.get("created") is True
        else:
            keep_id = False
        if not body:
            return OperationResult(success=True)
        return OperationResult.from_response({"success": True, **body}, keep_id=keep_id)

    if _is_record_fault(response):
        return OperationResult.failure(_error_details(response.body))

    raise fault(response, spec)


def to_results(response: ProtocolResponse, spec: RequestSpec, expected: int) -> list[OperationResult]:
    """Reconcile one composite collection reply, position by position."""
    if response.status_code == 200 and isinstance(response.body, list):
        if len(response.body) != expected:
            raise RequestError(
                f"Expected {expected} results from {spec.path}, got {len(response.body)}",
                "RESULT_COUNT_MISMATCH",
            )
        keep_id = spec.operation == "insert"
        return [OperationResult.from_response(item, keep_id=keep_id) for item in response.body]
    raise fault(response, spec)


def settle_records(outcomes: list[Any]) -> list[Record]:
    """Compose a fanned-out retrieve once every member has settled.

    Retrieval is all-or-nothing: the first failure in input order fails
    the call.
    """
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return outcomes


def settle_results(outcomes: list[Any]) -> list[OperationResult]:
    """Compose a fanned-out upsert once every member has settled.

    Infrastructure failures win over conflicts. A conflict is raised for
    the first conflicting position and carries every position's outcome.
    """
    for outcome in outcomes:
        if isinstance(outcome, BaseException) and not isinstance(outcome, MultipleChoicesError):
            raise outcome
    conflicts = [o for o in outcomes if isinstance(o, MultipleChoicesError)]
    if conflicts:
        first = conflicts[0]
        raise MultipleChoicesError(first.message, first.content, results=list(outcomes))
    return outcomes

