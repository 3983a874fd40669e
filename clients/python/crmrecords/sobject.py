"""Record endpoints.

An ``SObject`` binds an object type name to a connection and exposes the
record operations. Every operation accepts either the single form (a
record mapping or an identifier string) and returns a single outcome, or
a list and returns a list of the same length and order.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, overload

from . import protocol, reconcile
from .exceptions import CrmError
from .types import OperationResult, ProtocolResponse, Record, RequestOptions, RequestSpec

if TYPE_CHECKING:
    from .connection import AsyncConnection, Connection

logger = logging.getLogger(__name__)

Options = RequestOptions | Mapping[str, Any] | None

# Upper bound on concurrent requests when a batch fans out to single calls.
MAX_CONCURRENCY = 10


def _fan_out(call: Callable[[Any], Any], items: Sequence[Any]) -> list[Any]:
    """Run ``call`` for every item and wait for all of them to settle.

    Returns each item's value or the CrmError it raised, in input order.
    """
    if not items:
        return []

    def settle(item: Any) -> Any:
        try:
            return call(item)
        except CrmError as e:
            return e

    with ThreadPoolExecutor(max_workers=min(len(items), MAX_CONCURRENCY)) as executor:
        return list(executor.map(settle, items))


async def _afan_out(call: Callable[[Any], Any], items: Sequence[Any]) -> list[Any]:
    """Async counterpart of ``_fan_out``."""
    if not items:
        return []
    outcomes = await asyncio.gather(*(call(item) for item in items), return_exceptions=True)
    for outcome in outcomes:
        if isinstance(outcome, BaseException) and not isinstance(outcome, CrmError):
            raise outcome
    return list(outcomes)


class SObject:
    """Record operations for one object type.

    Args:
        object_type: Object type name, e.g. "Account".
        connection: An established Connection.

    Example:
        >>> accounts = conn.sobject("Account")
        >>> result = accounts.create({"Name": "Hello"})
        >>> accounts.record(result.id).update({"Name": "Hello2"})
    """

    def __init__(self, object_type: str, connection: "Connection"):
        self.type = object_type
        self._connection = connection

    def __repr__(self) -> str:
        return f"SObject({self.type!r})"

    def _send(self, spec: RequestSpec) -> ProtocolResponse:
        logger.debug("%s %s %s", spec.operation, self.type, spec.path)
        return self._connection.request(spec)

    @overload
    def create(self, records: Mapping[str, Any], options: Options = None) -> OperationResult: ...

    @overload
    def create(self, records: Sequence[Mapping[str, Any]], options: Options = None) -> list[OperationResult]: ...

    def create(self, records, options=None):
        """Insert one record or a batch of records.

        Per-record failures are reported in the corresponding result and do
        not affect the other records of a batch.
        """
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_record(records):
            spec = protocol.insert(self.type, records, headers)
            return reconcile.to_result(self._send(spec), spec)
        results: list[OperationResult] = []
        for spec in protocol.insert_many(self.type, records, headers):
            results.extend(reconcile.to_results(self._send(spec), spec, protocol.expected_count(spec)))
        return results

    @overload
    def retrieve(self, ids: str, options: Options = None) -> Record: ...

    @overload
    def retrieve(self, ids: Sequence[str], options: Options = None) -> list[Record]: ...

    def retrieve(self, ids, options=None):
        """Fetch one record or a batch of records by identifier.

        Raises:
            NotFoundError: An identifier does not exist. In a batch, a single
                missing identifier fails the whole call.
        """
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_id(ids):
            spec = protocol.get(self.type, ids, headers)
            return reconcile.to_record(self._send(spec), spec)
        specs = [protocol.get(self.type, record_id, headers) for record_id in ids]
        return reconcile.settle_records(
            _fan_out(lambda spec: reconcile.to_record(self._send(spec), spec), specs)
        )

    @overload
    def update(self, records: Mapping[str, Any], options: Options = None) -> OperationResult: ...

    @overload
    def update(self, records: Sequence[Mapping[str, Any]], options: Options = None) -> list[OperationResult]: ...

    def update(self, records, options=None):
        """Update one record or a batch of records, each carrying its Id."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_record(records):
            spec = protocol.update(self.type, records, headers)
            return reconcile.to_result(self._send(spec), spec)
        results: list[OperationResult] = []
        for spec in protocol.update_many(self.type, records, headers):
            results.extend(reconcile.to_results(self._send(spec), spec, protocol.expected_count(spec)))
        return results

    @overload
    def destroy(self, ids: str, options: Options = None) -> OperationResult: ...

    @overload
    def destroy(self, ids: Sequence[str], options: Options = None) -> list[OperationResult]: ...

    def destroy(self, ids, options=None):
        """Delete one record or a batch of records by identifier."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_id(ids):
            spec = protocol.delete(self.type, ids, headers)
            return reconcile.to_result(self._send(spec), spec)
        results: list[OperationResult] = []
        for spec in protocol.delete_many(self.type, ids, headers):
            results.extend(reconcile.to_results(self._send(spec), spec, protocol.expected_count(spec)))
        return results

    @overload
    def upsert(
        self, records: Mapping[str, Any], ext_id_field: str, options: Options = None
    ) -> OperationResult: ...

    @overload
    def upsert(
        self, records: Sequence[Mapping[str, Any]], ext_id_field: str, options: Options = None
    ) -> list[OperationResult]: ...

    def upsert(self, records, ext_id_field, options=None):
        """Insert or update records matched on an external identifier field.

        An inserted record's result carries the new ``id``; an updated
        record's result does not.

        Raises:
            MultipleChoicesError: More than one existing record matched. In a
                batch every record is still attempted, and the error's
                ``results`` holds each position's outcome.
        """
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_record(records):
            spec = protocol.upsert(self.type, records, ext_id_field, headers)
            return reconcile.to_result(self._send(spec), spec)
        specs = [protocol.upsert(self.type, record, ext_id_field, headers) for record in records]
        return reconcile.settle_results(
            _fan_out(lambda spec: reconcile.to_result(self._send(spec), spec), specs)
        )

    def record(self, record_id: str) -> "RecordReference":
        """Return a handle bound to one record identifier."""
        return RecordReference(self, record_id)


@dataclass(frozen=True)
class RecordReference:
    """A record identifier bound to its endpoint."""

    sobject: SObject
    id: str

    def retrieve(self, options: Options = None) -> Record:
        return self.sobject.retrieve(self.id, options)

    def update(self, record: Mapping[str, Any], options: Options = None) -> OperationResult:
        return self.sobject.update({**record, "Id": self.id}, options)

    def destroy(self, options: Options = None) -> OperationResult:
        return self.sobject.destroy(self.id, options)


class AsyncSObject:
    """Record operations for one object type over an AsyncConnection.

    Same interface as SObject but uses async/await. Fanned-out batches run
    concurrently on the event loop.
    """

    def __init__(self, object_type: str, connection: "AsyncConnection"):
        self.type = object_type
        self._connection = connection

    def __repr__(self) -> str:
        return f"AsyncSObject({self.type!r})"

    async def _send(self, spec: RequestSpec) -> ProtocolResponse:
        logger.debug("%s %s %s", spec.operation, self.type, spec.path)
        return await self._connection.request(spec)

    async def _collection(self, specs: list[RequestSpec]) -> list[OperationResult]:
        results: list[OperationResult] = []
        for spec in specs:
            response = await self._send(spec)
            results.extend(reconcile.to_results(response, spec, protocol.expected_count(spec)))
        return results

    @overload
    async def create(self, records: Mapping[str, Any], options: Options = None) -> OperationResult: ...

    @overload
    async def create(
        self, records: Sequence[Mapping[str, Any]], options: Options = None
    ) -> list[OperationResult]: ...

    async def create(self, records, options=None):
        """Insert one record or a batch of records."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_record(records):
            spec = protocol.insert(self.type, records, headers)
            return reconcile.to_result(await self._send(spec), spec)
        return await self._collection(protocol.insert_many(self.type, records, headers))

    @overload
    async def retrieve(self, ids: str, options: Options = None) -> Record: ...

    @overload
    async def retrieve(self, ids: Sequence[str], options: Options = None) -> list[Record]: ...

    async def retrieve(self, ids, options=None):
        """Fetch one record or a batch of records by identifier."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_id(ids):
            spec = protocol.get(self.type, ids, headers)
            return reconcile.to_record(await self._send(spec), spec)

        async def fetch(spec):
            return reconcile.to_record(await self._send(spec), spec)

        specs = [protocol.get(self.type, record_id, headers) for record_id in ids]
        return reconcile.settle_records(await _afan_out(fetch, specs))

    @overload
    async def update(self, records: Mapping[str, Any], options: Options = None) -> OperationResult: ...

    @overload
    async def update(
        self, records: Sequence[Mapping[str, Any]], options: Options = None
    ) -> list[OperationResult]: ...

    async def update(self, records, options=None):
        """Update one record or a batch of records, each carrying its Id."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_record(records):
            spec = protocol.update(self.type, records, headers)
            return reconcile.to_result(await self._send(spec), spec)
        return await self._collection(protocol.update_many(self.type, records, headers))

    @overload
    async def destroy(self, ids: str, options: Options = None) -> OperationResult: ...

    @overload
    async def destroy(self, ids: Sequence[str], options: Options = None) -> list[OperationResult]: ...

    async def destroy(self, ids, options=None):
        """Delete one record or a batch of records by identifier."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_id(ids):
            spec = protocol.delete(self.type, ids, headers)
            return reconcile.to_result(await self._send(spec), spec)
        return await self._collection(protocol.delete_many(self.type, ids, headers))

    @overload
    async def upsert(
        self, records: Mapping[str, Any], ext_id_field: str, options: Options = None
    ) -> OperationResult: ...

    @overload
    async def upsert(
        self, records: Sequence[Mapping[str, Any]], ext_id_field: str, options: Options = None
    ) -> list[OperationResult]: ...

    async def upsert(self, records, ext_id_field, options=None):
        """Insert or update records matched on an external identifier field."""
        headers = RequestOptions.coerce(options).headers
        if protocol.is_single_record(records):
            spec = protocol.upsert(self.type, records, ext_id_field, headers)
            return reconcile.to_result(await self._send(spec), spec)

        async def apply(spec):
            return reconcile.to_result(await self._send(spec), spec)

        specs = [protocol.upsert(self.type, record, ext_id_field, headers) for record in records]
        return reconcile.settle_results(await _afan_out(apply, specs))

    def record(self, record_id: str) -> "AsyncRecordReference":
        """Return a handle bound to one record identifier."""
        return AsyncRecordReference(self, record_id)


@dataclass(frozen=True)
class AsyncRecordReference:
    """A record identifier bound to its async endpoint."""

    sobject: AsyncSObject
    id: str

    async def retrieve(self, options: Options = None) -> Record:
        return await self.sobject.retrieve(self.id, options)

    async def update(self, record: Mapping[str, Any], options: Options = None) -> OperationResult:
        return await self.sobject.update({**record, "Id": self.id}, options)

    async def destroy(self, options: Options = None) -> OperationResult:
        return await self.sobject.destroy(self.id, options)
