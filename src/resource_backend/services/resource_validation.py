"""
Validation of resource payloads.

Payloads are validated against the resource's JSON schema (draft 7) extended
with the ``id``, ``$clonable`` and ``$expires`` system properties. All errors
are collected and reported in the structured shape clients rely on::

    {argument, instance, message, name, path, property, schema, stack}

Beyond the schema, binary fields must reference uploaded assets exactly once,
every uploaded asset must be referenced, and a supplied ``$expires`` must lie
after the request's ``now``.
"""

import copy
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import jsonschema
from jsonschema import Draft7Validator, FormatChecker

from resource_backend.api.exceptions import ResourceValidationException
from resource_backend.services.resource_expiration import has_passed, parse_timestamp

SYSTEM_PROPERTIES = {
    "id": {"type": "integer"},
    "$clonable": {"type": "boolean"},
    "$expires": {"type": "string", "format": "date-time"},
}

_IDENTIFIER_RE = re.compile(r"^[a-z_$][0-9a-z_$]*$", re.IGNORECASE)


def build_validation_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    augmented = copy.deepcopy(schema)
    properties = dict(augmented.get("properties") or {})
    properties.update(copy.deepcopy(SYSTEM_PROPERTIES))
    augmented["properties"] = properties
    return augmented


def format_property(path: Sequence[Any]) -> str:
    """``["foo", 0, "bar baz"]`` -> ``instance.foo[0]["bar baz"]``"""
    result = "instance"
    for segment in path:
        if isinstance(segment, int):
            result += f"[{segment}]"
        elif _IDENTIFIER_RE.match(segment):
            result += f".{segment}"
        else:
            result += f"[\"{segment}\"]"
    return result


def validation_error(
    path: Sequence[Any],
    instance: Any,
    message: str,
    name: Optional[str] = None,
    argument: Any = None,
    schema: Any = None,
    include_argument: bool = True,
) -> Dict[str, Any]:
    prop = format_property(path)
    error: Dict[str, Any] = {"instance": instance, "message": message}
    if name is not None:
        error["name"] = name
        if include_argument:
            error["argument"] = argument
    error["path"] = list(path)
    error["property"] = prop
    if schema is not None:
        error["schema"] = schema
    error["stack"] = f"{prop} {message}"
    return error


def _join(values: Iterable[Any]) -> str:
    return ",".join(str(value) for value in values)


_MESSAGES: Dict[str, Callable[[Any], str]] = {
    "type": lambda types: f"is not of a type(s) {_join(types)}",
    "format": lambda fmt: f"does not conform to the \"{fmt}\" format",
    "enum": lambda values: f"is not one of enum values: {_join(values)}",
    "const": lambda value: f"does not exactly match expected constant: {value}",
    "minimum": lambda n: f"must be greater than or equal to {n}",
    "maximum": lambda n: f"must be less than or equal to {n}",
    "exclusiveMinimum": lambda n: f"must be greater than {n}",
    "exclusiveMaximum": lambda n: f"must be less than {n}",
    "minLength": lambda n: f"does not meet minimum length of {n}",
    "maxLength": lambda n: f"does not meet maximum length of {n}",
    "minItems": lambda n: f"does not meet minimum length of {n}",
    "maxItems": lambda n: f"does not meet maximum length of {n}",
    "minProperties": lambda n: f"does not meet minimum property length of {n}",
    "maxProperties": lambda n: f"does not meet maximum property length of {n}",
    "pattern": lambda p: f"does not match pattern \"{p}\"",
    "multipleOf": lambda n: f"is not a multiple of (divisible by) {n}",
    "uniqueItems": lambda _: "contains duplicate item",
}


def _additional_properties(error: jsonschema.ValidationError) -> List[str]:
    instance = error.instance if isinstance(error.instance, dict) else {}
    properties = error.schema.get("properties", {})
    patterns = list(error.schema.get("patternProperties", {}))
    return [
        key for key in instance
        if key not in properties and not any(re.search(pattern, key) for pattern in patterns)
    ]


def convert_schema_errors(errors: Iterable[jsonschema.ValidationError]) -> List[Dict[str, Any]]:
    converted = []
    # python-jsonschema reports one required error per missing property, in schema order
    pending_required: Dict[tuple, List[str]] = {}

    for error in errors:
        path = list(error.absolute_path)
        name = error.validator
        value = error.validator_value

        if name == "required":
            key = tuple(path)
            if key not in pending_required:
                instance = error.instance if isinstance(error.instance, dict) else {}
                pending_required[key] = [prop for prop in value if prop not in instance]
            missing = pending_required[key].pop(0) if pending_required[key] else None
            converted.append(validation_error(
                path, error.instance, f"requires property \"{missing}\"",
                name="required", argument=missing, schema=error.schema,
            ))

        elif name == "additionalProperties":
            for extra in _additional_properties(error):
                converted.append(validation_error(
                    path, error.instance, f"is not allowed to have the additional property \"{extra}\"",
                    name="additionalProperties", argument=extra, schema=error.schema,
                ))

        elif name == "type":
            types = [value] if isinstance(value, str) else list(value)
            converted.append(validation_error(
                path, error.instance, _MESSAGES["type"](types),
                name="type", argument=types, schema=error.schema,
            ))

        elif name in _MESSAGES:
            converted.append(validation_error(
                path, error.instance, _MESSAGES[name](value),
                name=name, argument=value, schema=error.schema,
            ))

        else:
            converted.append(validation_error(
                path, error.instance, error.message,
                name=name, argument=value, schema=error.schema,
            ))

    return converted


class ResourceValidator:
    """
    Validates the items of one submission.

    Binary references are tracked across all items, so an asset of a
    multipart submission can only be claimed once. After ``validate`` the
    placeholders that were claimed are available in ``referenced``.
    """

    def __init__(self, schema: Dict[str, Any], now: datetime):
        self.schema = build_validation_schema(schema)
        self.now = now
        self.referenced: Set[str] = set()

    @staticmethod
    def _format_checker() -> FormatChecker:
        checker = FormatChecker(formats=())

        @checker.checks("date-time")
        def check_date_time(value) -> bool:
            if not isinstance(value, str):
                return True
            return parse_timestamp(value) is not None

        return checker

    def _binary_errors(
        self,
        items: List[Dict[str, Any]],
        is_array: bool,
        asset_count: int,
        existing_asset_ids: Sequence[Set[str]],
    ) -> List[Dict[str, Any]]:
        placeholders = {str(index) for index in range(asset_count)}
        errors = []

        for index, item in enumerate(items):
            owned = existing_asset_ids[index] if index < len(existing_asset_ids) else set()

            for path, value, field in binary_fields(self.schema, item):
                if value in owned:
                    continue
                if value in placeholders and value not in self.referenced:
                    self.referenced.add(value)
                    continue
                errors.append(validation_error(
                    [index, *path] if is_array else path, value, _MESSAGES["format"]("binary"),
                    name="format", argument="binary", schema=field,
                ))

        return errors

    def validate(
        self,
        items: List[Dict[str, Any]],
        is_array: bool = False,
        asset_count: int = 0,
        existing_asset_ids: Optional[Sequence[Set[str]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Validate all items and return every error found, in order.

        ``existing_asset_ids`` holds, per item, the ids of the assets the
        instance it updates already owns. Binary fields of an item may keep
        those, any other value must claim an uploaded asset.
        """
        self.referenced = set()

        if is_array:
            instance: Any = items
            schema = {"type": "array", "items": self.schema}
        else:
            items = items[:1]
            instance = items[0] if items else {}
            schema = self.schema

        validator = Draft7Validator(schema, format_checker=self._format_checker())
        errors = convert_schema_errors(validator.iter_errors(instance))
        errors.extend(self._binary_errors(items, is_array, asset_count, existing_asset_ids or []))

        for index in range(asset_count):
            if str(index) not in self.referenced:
                errors.append(validation_error(
                    ["assets", index], index, "is not referenced from the resource",
                    name="binary", argument="format",
                ))

        for index, item in enumerate(items):
            expires = parse_timestamp(item.get("$expires"))
            if has_passed(expires, self.now):
                path = [index, "$expires"] if is_array else ["$expires"]
                errors.append(validation_error(path, item["$expires"], "has already passed"))

        return errors

    def check(self, items: List[Dict[str, Any]], **kwargs) -> None:
        """Raise ``ResourceValidationException`` carrying all errors, if any."""
        errors = self.validate(items, **kwargs)
        if errors:
            raise ResourceValidationException(errors)


def _is_binary_field(schema: Any) -> bool:
    if not isinstance(schema, dict):
        return False
    if schema.get("format") == "binary":
        return True
    return any(
        _is_binary_field(option)
        for keyword in ("anyOf", "oneOf", "allOf")
        for option in schema.get(keyword) or []
    )


def _walk_binary(schema: Any, data: Any, visit: Callable[..., None], path: Tuple[Any, ...] = ()) -> None:
    """Call ``visit(container, key, value, path, field_schema)`` for every string held by a binary field"""
    if not isinstance(schema, dict):
        return

    if isinstance(data, dict):
        properties = schema.get("properties")
        if isinstance(properties, dict):
            for key, property_schema in properties.items():
                if key not in data or not isinstance(property_schema, dict):
                    continue
                value = data[key]
                if _is_binary_field(property_schema) and isinstance(value, str):
                    visit(data, key, value, path + (key,), property_schema)
                else:
                    _walk_binary(property_schema, value, visit, path + (key,))

    elif isinstance(data, list):
        items = schema.get("items")
        for index, value in enumerate(data):
            if _is_binary_field(items) and isinstance(value, str):
                visit(data, index, value, path + (index,), items)
            else:
                _walk_binary(items, value, visit, path + (index,))


def binary_fields(schema: Dict[str, Any], data: Any) -> List[Tuple[List[Any], str, Dict[str, Any]]]:
    """``(path, value, field schema)`` of every binary field of ``data``"""
    found: List[Tuple[List[Any], str, Dict[str, Any]]] = []
    _walk_binary(schema, data, lambda container, key, value, path, field: found.append((list(path), value, field)))
    return found


def binary_references(schema: Dict[str, Any], data: Any) -> List[str]:
    """All values held by binary fields of ``data``"""
    return [value for _, value, _ in binary_fields(schema, data)]


def replace_binary_references(schema: Dict[str, Any], data: Any, replacements: Dict[str, str]) -> Any:
    """Copy of ``data`` with placeholder values of binary fields replaced"""
    replaced = copy.deepcopy(data)

    def visit(container, key, value, path, field):
        if value in replacements:
            container[key] = replacements[value]

    _walk_binary(schema, replaced, visit)
    return replaced
