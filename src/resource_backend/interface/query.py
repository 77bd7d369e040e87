from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set
from pydantic import BaseModel, Field
from resource_backend.interface.filter import (
    FieldReference,
    FilterExpression,
    FilterSyntaxError,
    parse_field,
    parse_filter,
)
from resource_backend.permissions.roles import TeamRole

SYSTEM_KEYS = {"$created", "$updated", "$author", "$editor", "$expires"}


class QueryParameterError(ValueError):

    def __init__(self, parameter: str, message: str):
        super().__init__(f"Unable to process {parameter}: {message}")
        self.parameter = parameter


class SortDirection(str, Enum):
    asc = "asc"
    desc = "desc"


class OrderClause(BaseModel):
    field: FieldReference
    direction: SortDirection = SortDirection.asc


class ResourceQuery(BaseModel):
    filter: Optional[FilterExpression] = None
    order_by: List[OrderClause] = Field(default_factory=list)
    select: Optional[List[str]] = None
    top: Optional[int] = None
    skip: Optional[int] = None
    team: Optional[TeamRole] = None
    view: Optional[str] = None


def parse_order_by(text: Optional[str]) -> List[OrderClause]:
    clauses = []

    for part in (text or "").split(","):
        words = part.split()
        if not words:
            continue
        if len(words) > 2:
            raise QueryParameterError("$orderby", f"invalid clause '{part.strip()}'")

        try:
            field = parse_field(words[0])
        except FilterSyntaxError as e:
            raise QueryParameterError("$orderby", str(e))

        direction = SortDirection.asc
        if len(words) == 2:
            try:
                direction = SortDirection(words[1].lower())
            except ValueError:
                raise QueryParameterError("$orderby", f"invalid direction '{words[1]}'")

        clauses.append(OrderClause(field=field, direction=direction))

    # insertion order breaks ties
    if not any(clause.field.path == ["id"] for clause in clauses):
        clauses.append(OrderClause(field=FieldReference(path=["id"])))

    return clauses


def parse_select(text: Optional[str]) -> Optional[List[str]]:
    if text is None:
        return None
    return [name.strip() for name in text.split(",") if name.strip()]


def _parse_non_negative(parameter: str, value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise QueryParameterError(parameter, f"'{value}' is not an integer")
    if number < 0:
        raise QueryParameterError(parameter, f"'{value}' is negative")
    return number


def parse_resource_query(
    params: Mapping[str, Any],
    defaults: Optional[Mapping[str, Any]] = None,
    max_top: Optional[int] = None,
) -> ResourceQuery:
    """
    Translate request query parameters into a ``ResourceQuery``.

    Args:
        params: The request's query parameters
        defaults: Default parameters of the action, overridden by ``params``
        max_top: Upper bound for ``$top``

    Raises:
        QueryParameterError: When a parameter cannot be interpreted
    """
    merged: Dict[str, Any] = dict(defaults or {})
    merged.update({key: value for key, value in params.items() if value is not None})

    try:
        filter_expression = parse_filter(merged.get("$filter"))
    except FilterSyntaxError as e:
        raise QueryParameterError("$filter", str(e))

    team = merged.get("$team")
    if team is not None:
        try:
            team = TeamRole(team)
        except ValueError:
            raise QueryParameterError("$team", f"expected member or manager, got '{team}'")

    top = _parse_non_negative("$top", merged.get("$top"))
    if max_top is not None and (top is None or top > max_top):
        top = max_top

    return ResourceQuery(
        filter=filter_expression,
        order_by=parse_order_by(merged.get("$orderby")),
        select=parse_select(merged.get("$select")),
        top=top,
        skip=_parse_non_negative("$skip", merged.get("$skip")),
        team=team,
        view=merged.get("view") or None,
    )


def selectable_keys(properties: Mapping[str, Any], id_field: str) -> Set[str]:
    return set(properties) | SYSTEM_KEYS | {id_field}


def apply_select(item: Dict[str, Any], select: Optional[List[str]], allowed: Set[str]) -> Dict[str, Any]:
    """Restrict an envelope to the selected keys that exist, unknown names are dropped"""
    if select is None:
        return item
    return {key: item[key] for key in select if key in allowed and key in item}
