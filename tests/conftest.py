import itertools
import json
import threading
from urllib.parse import unquote

import httpx
import pytest

from crmrecords import AsyncConnection, Connection

INSTANCE_URL = "https://test.example.com"
API_PREFIX = "/services/data/v42.0"


def error(status_code, error_code, message, fields=None):
    return httpx.Response(
        status_code,
        json=[{"errorCode": error_code, "message": message, "fields": fields or []}],
    )


class FakeStore:
    """In-memory record store speaking the REST dialect the client uses."""

    def __init__(self):
        self.records = {}
        self.requests = []
        self.fail_with = None
        self.upsert_update_status = 204
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, object_type, **fields):
        record_id = f"001{next(self._ids):015d}"
        self.records[record_id] = {"type": object_type, "fields": dict(fields)}
        return record_id

    def locator(self, object_type, record_id):
        return f"{API_PREFIX}/sobjects/{object_type}/{record_id}"

    def _view(self, record_id):
        stored = self.records[record_id]
        return {
            "attributes": {
                "type": stored["type"],
                "url": self.locator(stored["type"], record_id),
            },
            "Id": record_id,
            **stored["fields"],
        }

    def _problem(self, fields):
        if "Name" in fields and not fields["Name"]:
            return ("REQUIRED_FIELD_MISSING", "Required fields are missing: [Name]", ["Name"])
        return None

    def _collection_result(self, record_id, problem=None):
        if problem:
            code, message, fields = problem
            return {
                "success": False,
                "errors": [{"statusCode": code, "message": message, "fields": fields}],
            }
        return {"id": record_id, "success": True, "errors": []}

    def handler(self, request):
        with self._lock:
            self.requests.append(request)
            if self.fail_with is not None:
                return self.fail_with(request)
            return self._route(request)

    def _route(self, request):
        raw_path = request.url.raw_path.decode().split("?")[0]
        assert raw_path.startswith(API_PREFIX)
        parts = [unquote(p) for p in raw_path[len(API_PREFIX) :].strip("/").split("/")]
        body = json.loads(request.content) if request.content else None

        if parts[0] == "composite":
            return self._composite(request, body)

        object_type = parts[1]
        if len(parts) == 2 and request.method == "POST":
            problem = self._problem({"Name": "", **body})
            if problem:
                return error(400, *problem)
            record_id = self.add(object_type, **body)
            return httpx.Response(201, json={"id": record_id, "success": True, "errors": []})

        if len(parts) == 4 and request.method == "PATCH":
            return self._upsert(object_type, parts[2], parts[3], body)

        record_id = parts[2]
        if record_id not in self.records or self.records[record_id]["type"] != object_type:
            return error(404, "NOT_FOUND", "The requested resource does not exist")
        if request.method == "GET":
            return httpx.Response(200, json=self._view(record_id))
        if request.method == "PATCH":
            problem = self._problem(body)
            if problem:
                return error(400, *problem)
            self.records[record_id]["fields"].update(body)
            return httpx.Response(204)
        if request.method == "DELETE":
            del self.records[record_id]
            return httpx.Response(204)
        return httpx.Response(405)

    def _upsert(self, object_type, field, value, body):
        matches = [
            record_id
            for record_id, stored in self.records.items()
            if stored["type"] == object_type and stored["fields"].get(field) == value
        ]
        if len(matches) > 1:
            return httpx.Response(300, json=[self.locator(object_type, m) for m in matches])
        if not matches:
            record_id = self.add(object_type, **{**body, field: value})
            return httpx.Response(
                201, json={"id": record_id, "success": True, "errors": [], "created": True}
            )
        self.records[matches[0]]["fields"].update(body)
        if self.upsert_update_status == 200:
            return httpx.Response(
                200, json={"id": matches[0], "success": True, "errors": [], "created": False}
            )
        return httpx.Response(204)

    def _composite(self, request, body):
        results = []
        if request.method == "POST":
            for record in body["records"]:
                fields = {k: v for k, v in record.items() if k != "attributes"}
                problem = self._problem({"Name": "", **fields})
                record_id = None if problem else self.add(record["attributes"]["type"], **fields)
                results.append(self._collection_result(record_id, problem))
        elif request.method == "PATCH":
            for record in body["records"]:
                fields = {k: v for k, v in record.items() if k not in ("attributes", "Id")}
                record_id = record["Id"]
                if record_id not in self.records:
                    results.append(
                        self._collection_result(
                            record_id,
                            ("INVALID_CROSS_REFERENCE_KEY", "invalid cross reference id", []),
                        )
                    )
                    continue
                problem = self._problem(fields)
                if not problem:
                    self.records[record_id]["fields"].update(fields)
                results.append(self._collection_result(record_id, problem))
        elif request.method == "DELETE":
            for record_id in request.url.params["ids"].split(","):
                if record_id not in self.records:
                    results.append(
                        self._collection_result(
                            record_id, ("ENTITY_IS_DELETED", "entity is deleted", [])
                        )
                    )
                    continue
                del self.records[record_id]
                results.append(self._collection_result(record_id))
        return httpx.Response(200, json=results)


@pytest.fixture()
def store():
    return FakeStore()


@pytest.fixture()
def instance_url():
    return INSTANCE_URL


@pytest.fixture()
def async_connection(store):
    """Factory for AsyncConnections backed by the fake store."""

    def make():
        return AsyncConnection(
            INSTANCE_URL, "token", transport=httpx.MockTransport(store.handler)
        )

    return make


@pytest.fixture()
def conn(store):
    connection = Connection(
        INSTANCE_URL, "token", transport=httpx.MockTransport(store.handler)
    )
    connection.establish()
    yield connection
    connection.close()
