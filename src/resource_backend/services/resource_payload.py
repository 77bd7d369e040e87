"""
Normalization of create and update payloads.

JSON bodies are used as sent. CSV bodies and multipart form fields carry
text only, so their values are coerced to the schema type of the matching
property before validation. Multipart submissions also carry binary assets
which the ``resource`` field references by their index.
"""

import csv
import io
import json
import re
from typing import Any, Dict, List, Mapping, Optional
from pydantic import BaseModel, Field
from resource_backend.api.exceptions import BadRequestException

DEFAULT_ASSET_MIME = "application/octet-stream"

_INT_RE = re.compile(r"^[-+]?\d+$")


class UploadedAsset(BaseModel):
    data: bytes
    mime: Optional[str] = None
    filename: Optional[str] = None


class ResourcePayload(BaseModel):
    items: List[Dict[str, Any]]
    is_array: bool = False
    assets: List[UploadedAsset] = Field(default_factory=list)


def _json_type(property_schema: Any) -> Optional[str]:
    if not isinstance(property_schema, dict):
        return None
    json_type = property_schema.get("type")
    if isinstance(json_type, list):
        json_type = next((t for t in json_type if t != "null"), None)
    return json_type


def coerce_value(value: Any, property_schema: Any) -> Any:
    """Coerce a text value to the property's type, leaving it untouched when it does not fit"""
    if not isinstance(value, str):
        return value

    json_type = _json_type(property_schema)
    text = value.strip()

    if json_type == "integer":
        return int(text) if _INT_RE.match(text) else value

    if json_type == "number":
        if _INT_RE.match(text):
            return int(text)
        try:
            return float(text)
        except ValueError:
            return value

    if json_type == "boolean":
        if text.lower() == "true":
            return True
        if text.lower() == "false":
            return False
        return value

    if json_type in ("object", "array"):
        try:
            parsed = json.loads(text)
        except ValueError:
            return value
        expected = dict if json_type == "object" else list
        return parsed if isinstance(parsed, expected) else value

    return value


def coerce_item(item: Mapping[str, Any], properties: Mapping[str, Any], id_field: str = "id") -> Dict[str, Any]:
    coerced = {}
    for key, value in item.items():
        if key == id_field and key not in properties:
            coerced[key] = coerce_value(value, {"type": "integer"})
        else:
            coerced[key] = coerce_value(value, properties.get(key))
    return coerced


def _require_objects(items: List[Any]) -> List[Dict[str, Any]]:
    for item in items:
        if not isinstance(item, dict):
            raise BadRequestException("Expected a resource object or an array of resource objects")
    return items


def normalize_json(body: Any) -> ResourcePayload:
    if isinstance(body, list):
        return ResourcePayload(items=_require_objects(body), is_array=True)
    return ResourcePayload(items=_require_objects([body]))


def normalize_csv(text: str, properties: Mapping[str, Any], id_field: str = "id") -> ResourcePayload:
    """Every CSV row is a resource, the header row names the fields. Empty cells are omitted."""
    text = text.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))

    if not reader.fieldnames:
        raise BadRequestException("CSV payload has no header row")

    items = []
    try:
        for row in reader:
            record = {}
            for column, value in row.items():
                if column is None or value is None or value == "":
                    continue
                record[column.strip()] = value
            items.append(coerce_item(record, properties, id_field))
    except csv.Error as e:
        raise BadRequestException(f"Unable to parse CSV payload: {e}")

    return ResourcePayload(items=items, is_array=True)


def normalize_multipart(
    resource: Optional[str],
    assets: List[UploadedAsset],
    properties: Mapping[str, Any],
    id_field: str = "id",
) -> ResourcePayload:
    if resource is None:
        raise BadRequestException("Multipart payload requires a resource field")

    try:
        body = json.loads(resource)
    except ValueError:
        raise BadRequestException("The resource field does not contain valid JSON")

    payload = normalize_json(body)
    payload.items = [coerce_item(item, properties, id_field) for item in payload.items]
    payload.assets = list(assets)
    return payload
