"""Request construction for record operations.

Each builder turns one caller-level operation into the ``RequestSpec``
(or, for collections, the ordered list of ``RequestSpec`` chunks) that a
connection sends. Arguments are checked here so that nothing malformed
reaches the wire.
"""

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote

from .exceptions import ValidationError
from .types import Record, RequestSpec

# Largest record count the composite collection endpoint accepts.
COLLECTION_LIMIT = 200


def is_single_record(value: Any) -> bool:
    """Return True for the single form of a record argument."""
    if isinstance(value, Mapping):
        return True
    if isinstance(value, (list, tuple)):
        return False
    raise ValidationError(
        f"Expected a record mapping or a list of records, got {type(value).__name__}"
    )


def is_single_id(value: Any) -> bool:
    """Return True for the single form of an identifier argument."""
    if isinstance(value, str):
        return True
    if isinstance(value, (list, tuple)):
        return False
    raise ValidationError(
        f"Expected an identifier or a list of identifiers, got {type(value).__name__}"
    )


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def _sobject_path(object_type: str, *parts: Any) -> str:
    path = f"/sobjects/{_segment(object_type)}"
    for part in parts:
        path += f"/{_segment(part)}"
    return path


def _record_id(record: Mapping[str, Any]) -> str:
    record_id = record.get("Id") or record.get("id")
    if not record_id or not isinstance(record_id, str):
        raise ValidationError("Record to update must include an Id", "MISSING_ID")
    return record_id


def _strip(record: Mapping[str, Any], *keys: str) -> Record:
    excluded = {"attributes", *keys}
    return {k: v for k, v in record.items() if k not in excluded}


def _chunks(items: Sequence[Any]) -> list[Sequence[Any]]:
    return [items[i : i + COLLECTION_LIMIT] for i in range(0, len(items), COLLECTION_LIMIT)]


def _collection_records(object_type: str, records: Sequence[Mapping[str, Any]]) -> list[Record]:
    return [{**_strip(r), "attributes": {"type": object_type}} for r in records]


def insert(object_type: str, record: Mapping[str, Any], headers: dict[str, str]) -> RequestSpec:
    """Build a single-record insert."""
    return RequestSpec(
        operation="insert",
        object_type=object_type,
        method="POST",
        path=_sobject_path(object_type),
        body=_strip(record, "Id", "id"),
        headers=headers,
    )


def insert_many(
    object_type: str,
    records: Sequence[Mapping[str, Any]],
    headers: dict[str, str],
) -> list[RequestSpec]:
    """Build the composite collection inserts for a batch of records."""
    normalized = []
    for record in records:
        if not isinstance(record, Mapping):
            raise ValidationError("Every entry of a record batch must be a mapping")
        normalized.append(_strip(record, "Id", "id"))
    return [
        RequestSpec(
            operation="insert",
            object_type=object_type,
            method="POST",
            path="/composite/sobjects",
            body={"allOrNone": False, "records": _collection_records(object_type, chunk)},
            headers=headers,
        )
        for chunk in _chunks(normalized)
    ]


def get(object_type: str, record_id: str, headers: dict[str, str]) -> RequestSpec:
    """Build a single-record retrieve."""
    if not isinstance(record_id, str) or not record_id:
        raise ValidationError("Record identifier must be a non-empty string", "MISSING_ID")
    return RequestSpec(
        operation="get",
        object_type=object_type,
        method="GET",
        path=_sobject_path(object_type, record_id),
        headers=headers,
    )


def update(object_type: str, record: Mapping[str, Any], headers: dict[str, str]) -> RequestSpec:
    """Build a single-record update; the Id travels in the path."""
    record_id = _record_id(record)
    return RequestSpec(
        operation="update",
        object_type=object_type,
        method="PATCH",
        path=_sobject_path(object_type, record_id),
        body=_strip(record, "Id", "id"),
        headers=headers,
    )


def update_many(
    object_type: str,
    records: Sequence[Mapping[str, Any]],
    headers: dict[str, str],
) -> list[RequestSpec]:
    """Build the composite collection updates for a batch of records."""
    normalized = []
    for record in records:
        if not isinstance(record, Mapping):
            raise ValidationError("Every entry of a record batch must be a mapping")
        normalized.append({**_strip(record, "id"), "Id": _record_id(record)})
    return [
        RequestSpec(
            operation="update",
            object_type=object_type,
            method="PATCH",
            path="/composite/sobjects",
            body={"allOrNone": False, "records": _collection_records(object_type, chunk)},
            headers=headers,
        )
        for chunk in _chunks(normalized)
    ]


def delete(object_type: str, record_id: str, headers: dict[str, str]) -> RequestSpec:
    """Build a single-record delete."""
    if not isinstance(record_id, str) or not record_id:
        raise ValidationError("Record identifier must be a non-empty string", "MISSING_ID")
    return RequestSpec(
        operation="delete",
        object_type=object_type,
        method="DELETE",
        path=_sobject_path(object_type, record_id),
        headers=headers,
    )


def delete_many(
    object_type: str,
    record_ids: Sequence[str],
    headers: dict[str, str],
) -> list[RequestSpec]:
    """Build the composite collection deletes for a batch of identifiers."""
    for record_id in record_ids:
        if not isinstance(record_id, str) or not record_id:
            raise ValidationError("Record identifier must be a non-empty string", "MISSING_ID")
    return [
        RequestSpec(
            operation="delete",
            object_type=object_type,
            method="DELETE",
            path="/composite/sobjects",
            params={"ids": ",".join(chunk), "allOrNone": "false"},
            headers=headers,
        )
        for chunk in _chunks(record_ids)
    ]


def upsert(
    object_type: str,
    record: Mapping[str, Any],
    ext_id_field: str,
    headers: dict[str, str],
) -> RequestSpec:
    """Build a single-record upsert keyed on an external-identifier field.

    The external value moves from the body into the path; the remote
    store rejects bodies that repeat it.
    """
    if not ext_id_field or not isinstance(ext_id_field, str):
        raise ValidationError("External identifier field name is required")
    if not isinstance(record, Mapping):
        raise ValidationError("Every entry of a record batch must be a mapping")
    ext_value = record.get(ext_id_field)
    if ext_value is None or ext_value == "":
        raise ValidationError(
            f"Record to upsert has no value for external identifier field {ext_id_field!r}",
            "MISSING_EXTERNAL_ID",
        )
    return RequestSpec(
        operation="upsert",
        object_type=object_type,
        method="PATCH",
        path=_sobject_path(object_type, ext_id_field, ext_value),
        body=_strip(record, "Id", "id", ext_id_field),
        headers=headers,
    )


def expected_count(spec: RequestSpec) -> int:
    """Number of result entries a collection request must produce."""
    if spec.params and "ids" in spec.params:
        return len(spec.params["ids"].split(","))
    return len(spec.body["records"])
