import pytest

from crmrecords import ValidationError, protocol


def test_insert_drops_reserved_members():
    spec = protocol.insert("Account", {"Name": "A", "Id": "x", "attributes": {"type": "Account"}}, {})
    assert (spec.method, spec.path) == ("POST", "/sobjects/Account")
    assert spec.body == {"Name": "A"}


def test_update_moves_id_into_path():
    spec = protocol.update("Account", {"Id": "001A", "Name": "B"}, {"X": "1"})
    assert (spec.method, spec.path) == ("PATCH", "/sobjects/Account/001A")
    assert spec.body == {"Name": "B"}
    assert spec.headers == {"X": "1"}


def test_collection_records_carry_type_attributes():
    spec = protocol.update_many("Contact", [{"id": "003A", "LastName": "L"}], {})[0]
    assert spec.path == "/composite/sobjects"
    assert spec.body == {
        "allOrNone": False,
        "records": [{"LastName": "L", "Id": "003A", "attributes": {"type": "Contact"}}],
    }


def test_delete_many_sends_ids_as_query():
    specs = protocol.delete_many("Account", ["001A", "001B"], {})
    assert len(specs) == 1
    assert specs[0].params == {"ids": "001A,001B", "allOrNone": "false"}
    assert protocol.expected_count(specs[0]) == 2


def test_collections_are_chunked():
    specs = protocol.insert_many("Account", [{"Name": str(i)} for i in range(401)], {})
    assert [protocol.expected_count(s) for s in specs] == [200, 200, 1]
    assert specs[2].body["records"][0]["Name"] == "400"


def test_upsert_path_and_body():
    spec = protocol.upsert("Account", {"Name": "A", "Ext__c": "E 1"}, "Ext__c", {})
    assert spec.path == "/sobjects/Account/Ext__c/E%201"
    assert spec.body == {"Name": "A"}


def test_upsert_requires_field_name():
    with pytest.raises(ValidationError):
        protocol.upsert("Account", {"Name": "A"}, "", {})


@pytest.mark.parametrize("record_id", ["", None, 7])
def test_identifier_must_be_non_empty_string(record_id):
    with pytest.raises(ValidationError):
        protocol.get("Account", record_id, {})
