"""crmrecords Python Client.

A Python client for record create/retrieve/update/delete/upsert against a
CRM-style REST data store.

Usage:
    from crmrecords import Connection

    with Connection("https://na1.example.com", access_token) as conn:
        accounts = conn.sobject("Account")

        # Insert one record, or a batch
        result = accounts.create({"Name": "Hello"})
        results = accounts.create([{"Name": "One"}, {"Name": "Two"}])

        # Retrieve and update through a bound record
        record = accounts.record(result.id).retrieve()
        accounts.record(result.id).update({"Name": "Hello2"})

        # Insert or update on an external identifier
        accounts.upsert({"Name": "Hello", "ExtId__c": "A-1"}, "ExtId__c")

        # Delete
        accounts.destroy(result.id)
"""

from .connection import AsyncConnection, Connection
from .exceptions import (
    AuthenticationError,
    CrmError,
    MultipleChoicesError,
    NotFoundError,
    RequestError,
    TransportError,
    ValidationError,
)
from .sobject import AsyncRecordReference, AsyncSObject, RecordReference, SObject
from .types import ErrorDetail, OperationResult, ProtocolResponse, RequestOptions, RequestSpec

__version__ = "0.1.0"
__all__ = [
    "Connection",
    "AsyncConnection",
    "SObject",
    "AsyncSObject",
    "RecordReference",
    "AsyncRecordReference",
    "CrmError",
    "TransportError",
    "AuthenticationError",
    "ValidationError",
    "RequestError",
    "NotFoundError",
    "MultipleChoicesError",
    "ErrorDetail",
    "OperationResult",
    "ProtocolResponse",
    "RequestOptions",
    "RequestSpec",
]
