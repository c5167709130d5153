"""
Source-to-index document conversion utilities.

Provides the canonical conversions between source documents and index
documents: identifier normalisation, BSON value cleanup, routing key
selection, and serialized size estimation.
"""

import base64
import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bson import Decimal128, ObjectId

from ..exceptions import DocumentConversionError

SOURCE_ID_FIELD = "_id"
MIRROR_ID_FIELD = "mongo_id"


def document_id_str(document: Dict[str, Any]) -> str:
    """
    Return the string form of a source document identifier.

    This is the join key between the source store and the index: every
    index document uses it as ``_id``.

    Raises:
        DocumentConversionError: the document has no ``_id``
    """
    if not isinstance(document, dict) or document.get(SOURCE_ID_FIELD) is None:
        raise DocumentConversionError("Document is missing required field '_id'")
    return str(document[SOURCE_ID_FIELD])


def to_source_id(value: Any) -> Any:
    """Convert an index identifier back to the form stored in the source"""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def source_id_candidates(ids: Iterable[Any]) -> List[Any]:
    """
    Expand identifiers into every form they may take in the source.

    A 24-hex string may be stored either as an ObjectId or as a plain
    string, so both are queried.
    """
    candidates: List[Any] = []
    seen = set()
    for value in ids:
        for candidate in (value, to_source_id(value)):
            key = (type(candidate).__name__, str(candidate))
            if key not in seen:
                seen.add(key)
                candidates.append(candidate)
    return candidates


def make_json_safe(value: Any) -> Any:
    """Recursively convert BSON and Python values into JSON-compatible ones"""
    if isinstance(value, dict):
        return {str(key): make_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [make_json_safe(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode('ascii')
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def to_index_document(
    document: Dict[str, Any],
    excluded_fields: Sequence[str] = ()
) -> Dict[str, Any]:
    """
    Build the index document mirrored from a source document.

    All source fields are copied except ``_id`` and the excluded fields;
    ``mongo_id`` carries the identifier so it stays searchable.

    Raises:
        DocumentConversionError: the document has no ``_id``
    """
    doc_id = document_id_str(document)
    excluded = set(excluded_fields)

    body = {
        key: make_json_safe(value)
        for key, value in document.items()
        if key != SOURCE_ID_FIELD and key not in excluded
    }
    body[MIRROR_ID_FIELD] = doc_id
    return body


def routing_key(
    document: Optional[Dict[str, Any]],
    routing_fields: Sequence[str]
) -> Optional[str]:
    """Return the first present grouping field value, or None"""
    if not document:
        return None
    for field_name in routing_fields:
        value = document.get(field_name)
        if value is not None and value != "":
            return str(make_json_safe(value))
    return None


def resolve_routing(document: Dict[str, Any], routing_fields: Sequence[str]) -> str:
    """Routing key for a write: grouping field when present, else the document id"""
    return routing_key(document, routing_fields) or document_id_str(document)


def estimate_size(document: Dict[str, Any]) -> int:
    """Estimate the serialized size of a document in bytes"""
    return len(json.dumps(document, default=str, ensure_ascii=False).encode('utf-8'))
