"""
Tests for resource payload validation and its error report.
"""

from datetime import datetime, timezone

import pytest

from resource_backend.api.exceptions import ResourceValidationException
from resource_backend.services.resource_validation import (
    ResourceValidator,
    binary_references,
    build_validation_schema,
    format_property,
    replace_binary_references,
)
from resource_backend.tests.fixtures import NOW

SCHEMA = {
    "type": "object",
    "required": ["foo"],
    "properties": {
        "foo": {"type": "string"},
        "integer": {"type": "integer"},
    },
}

BINARY_SCHEMA = {
    "type": "object",
    "properties": {
        "file": {"type": "string", "format": "binary"},
        "files": {"type": "array", "items": {"type": "string", "format": "binary"}},
        "nested": {
            "type": "object",
            "properties": {"file": {"type": "string", "format": "binary"}},
        },
    },
}

OPTIONAL_BINARY_SCHEMA = {
    "type": "object",
    "properties": {
        "file": {"oneOf": [{"type": "string", "format": "binary"}, {"type": "null"}]},
    },
}


@pytest.mark.unit
class TestFormatProperty:

    @pytest.mark.parametrize("path,expected", [
        ([], "instance"),
        (["foo"], "instance.foo"),
        (["foo", 0, "bar"], "instance.foo[0].bar"),
        ([1, "foo"], "instance[1].foo"),
        (["bar baz"], "instance[\"bar baz\"]"),
        (["$expires"], "instance.$expires"),
    ])
    def test_format_property(self, path, expected):
        assert format_property(path) == expected


@pytest.mark.unit
class TestSchemaErrors:

    def test_valid(self):
        assert ResourceValidator(SCHEMA, NOW).validate([{"foo": "bar"}]) == []

    def test_required(self):
        errors = ResourceValidator(SCHEMA, NOW).validate([{}])

        assert errors == [{
            "argument": "foo",
            "instance": {},
            "message": "requires property \"foo\"",
            "name": "required",
            "path": [],
            "property": "instance",
            "schema": build_validation_schema(SCHEMA),
            "stack": "instance requires property \"foo\"",
        }]

    def test_one_error_per_missing_property(self):
        schema = {"type": "object", "required": ["a", "b"], "properties": {}}
        errors = ResourceValidator(schema, NOW).validate([{}])

        assert [error["argument"] for error in errors] == ["a", "b"]
        assert [error["message"] for error in errors] == ["requires property \"a\"", "requires property \"b\""]

    def test_type(self):
        errors = ResourceValidator(SCHEMA, NOW).validate([{"foo": 1}])

        assert errors == [{
            "argument": ["string"],
            "instance": 1,
            "message": "is not of a type(s) string",
            "name": "type",
            "path": ["foo"],
            "property": "instance.foo",
            "schema": {"type": "string"},
            "stack": "instance.foo is not of a type(s) string",
        }]

    def test_all_errors_are_reported(self):
        errors = ResourceValidator(SCHEMA, NOW).validate([{"integer": "x"}])
        assert sorted(error["name"] for error in errors) == ["required", "type"]

    def test_array_paths(self):
        errors = ResourceValidator(SCHEMA, NOW).validate([{"foo": "a"}, {"foo": 1}], is_array=True)

        assert len(errors) == 1
        assert errors[0]["path"] == [1, "foo"]
        assert errors[0]["property"] == "instance[1].foo"

    def test_system_properties(self):
        validator = ResourceValidator(SCHEMA, NOW)
        assert validator.validate([{"foo": "a", "id": 1, "$clonable": True}]) == []

        errors = validator.validate([{"foo": "a", "$clonable": "yes"}])
        assert errors[0]["property"] == "instance.$clonable"

    def test_invalid_expires_format(self):
        errors = ResourceValidator(SCHEMA, NOW).validate([{"foo": "a", "$expires": "tomorrow"}])

        assert len(errors) == 1
        assert errors[0]["name"] == "format"
        assert errors[0]["message"] == "does not conform to the \"date-time\" format"

    def test_additional_properties(self):
        schema = {"type": "object", "additionalProperties": False, "properties": {"foo": {"type": "string"}}}
        errors = ResourceValidator(schema, NOW).validate([{"foo": "a", "bar": 1}])

        assert len(errors) == 1
        assert errors[0]["argument"] == "bar"
        assert errors[0]["message"] == "is not allowed to have the additional property \"bar\""

    def test_check_raises(self):
        with pytest.raises(ResourceValidationException) as exc_info:
            ResourceValidator(SCHEMA, NOW).check([{}])

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["message"] == "Resource validation failed"
        assert exc_info.value.detail["data"]["errors"][0]["name"] == "required"


@pytest.mark.unit
class TestExpiresValidation:

    def test_passed(self):
        errors = ResourceValidator(SCHEMA, NOW).validate([{"foo": "a", "$expires": "2025-12-31T00:00:00.000Z"}])

        assert errors == [{
            "instance": "2025-12-31T00:00:00.000Z",
            "message": "has already passed",
            "path": ["$expires"],
            "property": "instance.$expires",
            "stack": "instance.$expires has already passed",
        }]

    def test_now_has_passed(self):
        now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        errors = ResourceValidator(SCHEMA, now).validate([{"foo": "a", "$expires": "2026-01-01T12:00:00.000Z"}])
        assert [error["message"] for error in errors] == ["has already passed"]

    def test_future(self):
        assert ResourceValidator(SCHEMA, NOW).validate([{"foo": "a", "$expires": "2026-01-02T00:00:00Z"}]) == []

    def test_array_path(self):
        items = [{"foo": "a"}, {"foo": "b", "$expires": "2020-01-01T00:00:00Z"}]
        errors = ResourceValidator(SCHEMA, NOW).validate(items, is_array=True)
        assert errors[0]["path"] == [1, "$expires"]
        assert errors[0]["property"] == "instance[1].$expires"


@pytest.mark.unit
class TestBinaryValidation:

    def test_placeholder_references_asset(self):
        validator = ResourceValidator(BINARY_SCHEMA, NOW)
        assert validator.validate([{"file": "0"}], asset_count=1) == []
        assert validator.referenced == {"0"}

    def test_unknown_placeholder(self):
        errors = ResourceValidator(BINARY_SCHEMA, NOW).validate([{"file": "1"}], asset_count=1)

        messages = [error["message"] for error in errors]
        assert "does not conform to the \"binary\" format" in messages
        assert "is not referenced from the resource" in messages

    def test_unreferenced_asset(self):
        errors = ResourceValidator(BINARY_SCHEMA, NOW).validate([{}], asset_count=1)

        assert errors == [{
            "instance": 0,
            "message": "is not referenced from the resource",
            "name": "binary",
            "argument": "format",
            "path": ["assets", 0],
            "property": "instance.assets[0]",
            "stack": "instance.assets[0] is not referenced from the resource",
        }]

    def test_asset_is_claimed_once(self):
        errors = ResourceValidator(BINARY_SCHEMA, NOW).validate(
            [{"file": "0"}, {"file": "0"}], is_array=True, asset_count=1
        )

        assert len(errors) == 1
        assert errors[0]["path"] == [1, "file"]
        assert errors[0]["argument"] == "binary"

    def test_existing_asset_id(self):
        errors = ResourceValidator(BINARY_SCHEMA, NOW).validate(
            [{"file": "a3b1c2"}], existing_asset_ids=[{"a3b1c2"}]
        )
        assert errors == []

    def test_binary_without_assets(self):
        errors = ResourceValidator(BINARY_SCHEMA, NOW).validate([{"file": "0"}])
        assert [error["name"] for error in errors] == ["format"]

    def test_existing_assets_belong_to_their_item(self):
        errors = ResourceValidator(BINARY_SCHEMA, NOW).validate(
            [{"file": "asset-b"}, {"file": "asset-b"}],
            is_array=True,
            existing_asset_ids=[{"asset-a"}, {"asset-b"}],
        )

        assert [error["path"] for error in errors] == [[0, "file"]]
        assert errors[0]["message"] == "does not conform to the \"binary\" format"

    def test_optional_binary_field(self):
        validator = ResourceValidator(OPTIONAL_BINARY_SCHEMA, NOW)

        assert validator.validate([{"file": "0"}], asset_count=1) == []
        assert validator.referenced == {"0"}
        assert validator.validate([{"file": None}]) == []

    def test_optional_binary_field_unknown_placeholder(self):
        errors = ResourceValidator(OPTIONAL_BINARY_SCHEMA, NOW).validate([{"file": "1"}])

        assert [(error["path"], error["argument"]) for error in errors] == [(["file"], "binary")]


@pytest.mark.unit
class TestBinaryReferences:

    def test_references(self):
        data = {"file": "0", "files": ["1", "2"], "nested": {"file": "3"}, "other": "4"}
        assert sorted(binary_references(BINARY_SCHEMA, data)) == ["0", "1", "2", "3"]

    def test_replace(self):
        data = {"file": "0", "files": ["1"], "nested": {"file": "0"}}
        replaced = replace_binary_references(BINARY_SCHEMA, data, {"0": "asset-a", "1": "asset-b"})

        assert replaced == {"file": "asset-a", "files": ["asset-b"], "nested": {"file": "asset-a"}}
        assert data["file"] == "0"
