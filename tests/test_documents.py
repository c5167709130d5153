"""
Tests for source-to-index document conversion.
"""

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from bson import Decimal128, ObjectId

from replica_core.exceptions import DocumentConversionError
from replica_core.storage.documents import (
    document_id_str, estimate_size, make_json_safe, resolve_routing, routing_key,
    source_id_candidates, to_index_document, to_source_id
)


class TestIdentifiers:
    """Identifier normalisation"""

    def test_object_id_is_stringified(self):
        oid = ObjectId()

        assert document_id_str({"_id": oid}) == str(oid)

    def test_missing_id_raises(self):
        with pytest.raises(DocumentConversionError):
            document_id_str({"title": "no id"})

    def test_to_source_id_restores_object_ids(self):
        oid = ObjectId()

        assert to_source_id(str(oid)) == oid
        assert to_source_id("custom-key") == "custom-key"

    def test_candidates_cover_both_forms(self):
        oid = ObjectId()

        candidates = source_id_candidates([str(oid), "custom-key", str(oid)])

        assert candidates == [str(oid), oid, "custom-key"]

    def test_candidates_keep_stored_values(self):
        oid = ObjectId()

        assert source_id_candidates([5, oid]) == [5, oid]


class TestIndexDocument:
    """Building index documents from source documents"""

    def test_copies_fields_and_mirrors_id(self):
        oid = ObjectId()
        created = datetime(2024, 5, 1, 12, 30)

        body = to_index_document({"_id": oid, "title": "ad", "created": created})

        assert body == {"title": "ad", "created": "2024-05-01T12:30:00", "mongo_id": str(oid)}

    def test_excluded_fields_are_dropped(self):
        body = to_index_document({"_id": "a1", "title": "ad", "raw_html": "<p>"}, ["raw_html"])

        assert "raw_html" not in body
        assert body["mongo_id"] == "a1"

    def test_bson_values_become_json_safe(self):
        value = {
            "ref": ObjectId("65a1b2c3d4e5f60718293a4b"),
            "price": Decimal128("19.99"),
            "ratio": Decimal("0.5"),
            "key": uuid.UUID("12345678-1234-5678-1234-567812345678"),
            "blob": b"\x00\x01",
            "tags": ("a", "b"),
            "nested": [{"at": datetime(2024, 1, 1)}]
        }

        safe = make_json_safe(value)

        assert safe == {
            "ref": "65a1b2c3d4e5f60718293a4b",
            "price": 19.99,
            "ratio": 0.5,
            "key": "12345678-1234-5678-1234-567812345678",
            "blob": "AAE=",
            "tags": ["a", "b"],
            "nested": [{"at": "2024-01-01T00:00:00"}]
        }

    def test_size_estimate_grows_with_payload(self):
        small = estimate_size({"_id": "a", "text": "x"})
        large = estimate_size({"_id": "a", "text": "x" * 1000})

        assert large - small == 999


class TestRouting:
    """Routing key selection"""

    def test_first_present_field_wins(self):
        document = {"_id": "a1", "page_id": "", "countrySearchedfor": "FR"}

        assert routing_key(document, ["page_id", "countrySearchedfor"]) == "FR"

    def test_no_grouping_field(self):
        assert routing_key({"_id": "a1"}, ["page_id"]) is None
        assert routing_key(None, ["page_id"]) is None

    def test_resolve_falls_back_to_document_id(self):
        assert resolve_routing({"_id": "a1"}, ["page_id"]) == "a1"
        assert resolve_routing({"_id": "a1", "page_id": 42}, ["page_id"]) == "42"
