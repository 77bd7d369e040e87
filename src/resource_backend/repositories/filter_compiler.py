"""
SQLAlchemy target for filter expressions.

Compiles ``resource_backend.interface.filter`` trees into SQLAlchemy clauses
against ``Resource``. Data fields are read from the JSON column with the
accessor matching the property's schema type, falling back to the type of
the compared literal.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import and_, false, not_, or_
from resource_backend.interface.filter import (
    Comparison,
    ComparisonOperator,
    FieldReference,
    FilterExpression,
    FilterFunction,
    FilterSyntaxError,
    FunctionCall,
    LogicalExpression,
    LogicalOperator,
    NotExpression,
)
from resource_backend.interface.query import OrderClause, SortDirection
from resource_backend.model.resource import Resource
from resource_backend.services.resource_expiration import parse_timestamp

_TIMESTAMP_COLUMNS = {"created_at", "updated_at", "expires"}
_NUMERIC_TYPES = {"integer", "number"}


def _comparison_operator(column, operator: ComparisonOperator, value):
    if operator == ComparisonOperator.eq:
        return column == value
    elif operator == ComparisonOperator.ne:
        return column != value
    elif operator == ComparisonOperator.gt:
        return column > value
    elif operator == ComparisonOperator.ge:
        return column >= value
    elif operator == ComparisonOperator.lt:
        return column < value
    elif operator == ComparisonOperator.le:
        return column <= value
    raise FilterSyntaxError(f"Unsupported operator {operator}")


class ResourceFilterCompiler:

    def __init__(self, properties: Optional[Dict[str, Any]] = None, model=Resource):
        self.properties = properties or {}
        self.model = model

    def compile(self, node: Optional[FilterExpression]):
        if node is None:
            return None

        if isinstance(node, LogicalExpression):
            operands = [self.compile(operand) for operand in node.operands]
            if node.operator == LogicalOperator.and_:
                return and_(*operands)
            return or_(*operands)

        if isinstance(node, NotExpression):
            return not_(self.compile(node.operand))

        if isinstance(node, Comparison):
            return self._comparison(node)

        if isinstance(node, FunctionCall):
            return self._function(node)

        raise FilterSyntaxError(f"Unsupported filter node {type(node).__name__}")

    def order_by(self, clauses: List[OrderClause]) -> list:
        order = []
        for clause in clauses:
            column = self.column(clause.field)
            order.append(column.desc() if clause.direction == SortDirection.desc else column.asc())
        return order

    def schema_type(self, field: FieldReference) -> Optional[str]:
        schema: Dict[str, Any] = {"properties": self.properties}
        for segment in field.path:
            properties = schema.get("properties")
            if not isinstance(properties, dict) or not isinstance(properties.get(segment), dict):
                return None
            schema = properties[segment]

        json_type = schema.get("type")
        if isinstance(json_type, list):
            json_type = next((t for t in json_type if t != "null"), None)
        return json_type

    def column(self, field: FieldReference, value: Any = None):
        system_column = field.system_column
        if system_column is not None:
            return getattr(self.model, system_column)

        accessor = self._accessor(field)
        json_type = self._value_type(field, value)

        if json_type in _NUMERIC_TYPES:
            return accessor.as_float()
        if json_type == "boolean":
            return accessor.as_boolean()
        return accessor.as_string()

    def _accessor(self, field: FieldReference):
        if len(field.path) == 1:
            return self.model.data[field.path[0]]
        return self.model.data[tuple(field.path)]

    def _value_type(self, field: FieldReference, value: Any) -> Optional[str]:
        json_type = self.schema_type(field)
        if json_type is not None:
            return json_type
        if isinstance(value, bool):
            return "boolean"
        if isinstance(value, (int, float)):
            return "number"
        return "string"

    def _coerce(self, field: FieldReference, value: Any) -> Any:
        if value is None:
            return None

        system_column = field.system_column

        if system_column == "id":
            try:
                return int(value)
            except (TypeError, ValueError):
                raise FilterSyntaxError(f"Invalid id '{value}'")

        if system_column in _TIMESTAMP_COLUMNS:
            timestamp = parse_timestamp(value)
            if timestamp is None:
                raise FilterSyntaxError(f"Invalid timestamp '{value}' for {field.name}")
            return timestamp

        if system_column is not None:
            return str(value)

        json_type = self._value_type(field, value)

        if json_type in _NUMERIC_TYPES:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                try:
                    return float(value)
                except (TypeError, ValueError):
                    raise FilterSyntaxError(f"Invalid number '{value}' for {field.name}")
            return value

        if json_type == "boolean":
            if isinstance(value, bool):
                return value
            if value in ("true", "false"):
                return value == "true"
            raise FilterSyntaxError(f"Invalid boolean '{value}' for {field.name}")

        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _comparison(self, node: Comparison):
        raw = node.value.value
        column = self.column(node.field, raw)
        value = self._coerce(node.field, raw)

        if value is None:
            if node.operator == ComparisonOperator.eq:
                return column.is_(None)
            if node.operator == ComparisonOperator.ne:
                return column.is_not(None)
            # ordering against null matches nothing
            return false()

        return _comparison_operator(column, node.operator, value)

    def _function(self, node: FunctionCall):
        value = node.argument.value
        if value is None:
            return false()

        system_column = node.field.system_column
        if system_column is not None:
            column = getattr(self.model, system_column)
        else:
            column = self._accessor(node.field).as_string()

        text = str(value)

        if node.function == FilterFunction.contains:
            return column.contains(text, autoescape=True)
        elif node.function == FilterFunction.startswith:
            return column.startswith(text, autoescape=True)
        return column.endswith(text, autoescape=True)
