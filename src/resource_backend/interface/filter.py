"""
Filter expression tree and parser for the ``$filter`` query parameter.

The accepted grammar is a small OData subset::

    expression := or
    or         := and ("or" and)*
    and        := unary ("and" unary)*
    unary      := "not" unary | primary
    primary    := "(" expression ")" | function | comparison
    function   := ("contains" | "startswith" | "endswith") "(" field "," literal ")"
    comparison := field ("eq" | "ne" | "gt" | "ge" | "lt" | "le") literal

Fields are slash separated paths. ``$created``, ``$updated``, ``$expires``,
``$author/id``, ``$editor/id`` and ``id`` address instance columns, every
other path addresses the JSON data. The tree is independent of any storage
backend; see ``resource_backend.repositories.filter_compiler`` for the
SQLAlchemy target.
"""

import re
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Union
from pydantic import BaseModel


class FilterSyntaxError(ValueError):

    def __init__(self, message: str, position: Optional[int] = None):
        if position is not None:
            message = f"{message} at position {position}"
        super().__init__(message)
        self.position = position


class ComparisonOperator(str, Enum):
    eq = "eq"
    ne = "ne"
    gt = "gt"
    ge = "ge"
    lt = "lt"
    le = "le"


class LogicalOperator(str, Enum):
    and_ = "and"
    or_ = "or"


class FilterFunction(str, Enum):
    contains = "contains"
    startswith = "startswith"
    endswith = "endswith"


SYSTEM_FIELDS = {
    ("id",): "id",
    ("$created",): "created_at",
    ("$updated",): "updated_at",
    ("$expires",): "expires",
    ("$author", "id"): "author_id",
    ("$editor", "id"): "editor_id",
}


class FilterNode(BaseModel):
    pass


class FieldReference(FilterNode):
    path: List[str]

    @property
    def name(self) -> str:
        return "/".join(self.path)

    @property
    def system_column(self) -> Optional[str]:
        """Name of the instance column this field maps to, None for data fields."""
        return SYSTEM_FIELDS.get(tuple(self.path))


class Literal(FilterNode):
    value: Any = None


class Comparison(FilterNode):
    operator: ComparisonOperator
    field: FieldReference
    value: Literal


class FunctionCall(FilterNode):
    function: FilterFunction
    field: FieldReference
    argument: Literal


class LogicalExpression(FilterNode):
    operator: LogicalOperator
    operands: List["FilterExpression"]


class NotExpression(FilterNode):
    operand: "FilterExpression"


FilterExpression = Union[Comparison, FunctionCall, LogicalExpression, NotExpression]

LogicalExpression.model_rebuild()
NotExpression.model_rebuild()


class _Token(NamedTuple):
    kind: str
    value: str
    position: int


_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
  | (?P<string>'(?:[^']|'')*')
  | (?P<word>[^\s(),']+)
""", re.VERBOSE)

_FIELD_RE = re.compile(r"^[A-Za-z_$][\w$.-]*(/[A-Za-z_$][\w$.-]*)*$")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")


def tokenize(text: str) -> List[_Token]:
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None:
            raise FilterSyntaxError("Unterminated string literal", position)
        if match.lastgroup != "ws":
            tokens.append(_Token(match.lastgroup, match.group(), position))
        position = match.end()
    return tokens


class _Parser:

    def __init__(self, tokens: List[_Token], length: int):
        self.tokens = tokens
        self.index = 0
        self.length = length

    def _peek(self) -> Optional[_Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _next(self, expected: str) -> _Token:
        token = self._peek()
        if token is None:
            raise FilterSyntaxError(f"Expected {expected} but the expression ended", self.length)
        self.index += 1
        return token

    def _expect(self, kind: str, expected: str) -> _Token:
        token = self._next(expected)
        if token.kind != kind:
            raise FilterSyntaxError(f"Expected {expected} but found '{token.value}'", token.position)
        return token

    def _at_keyword(self, keyword: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "word" and token.value == keyword

    def parse(self) -> FilterExpression:
        expression = self._or()
        token = self._peek()
        if token is not None:
            raise FilterSyntaxError(f"Unexpected '{token.value}'", token.position)
        return expression

    def _or(self) -> FilterExpression:
        operands = [self._and()]
        while self._at_keyword("or"):
            self.index += 1
            operands.append(self._and())
        if len(operands) == 1:
            return operands[0]
        return LogicalExpression(operator=LogicalOperator.or_, operands=operands)

    def _and(self) -> FilterExpression:
        operands = [self._unary()]
        while self._at_keyword("and"):
            self.index += 1
            operands.append(self._unary())
        if len(operands) == 1:
            return operands[0]
        return LogicalExpression(operator=LogicalOperator.and_, operands=operands)

    def _unary(self) -> FilterExpression:
        if self._at_keyword("not"):
            self.index += 1
            return NotExpression(operand=self._unary())
        return self._primary()

    def _primary(self) -> FilterExpression:
        token = self._next("an expression")

        if token.kind == "lparen":
            expression = self._or()
            self._expect("rparen", "')'")
            return expression

        if token.kind != "word":
            raise FilterSyntaxError(f"Unexpected '{token.value}'", token.position)

        following = self._peek()
        if following is not None and following.kind == "lparen":
            return self._function(token)

        field = self._field(token)
        operator = self._next("a comparison operator")
        try:
            comparison = ComparisonOperator(operator.value)
        except ValueError:
            raise FilterSyntaxError(f"Unknown operator '{operator.value}'", operator.position)

        return Comparison(operator=comparison, field=field, value=self._literal())

    def _function(self, name: _Token) -> FunctionCall:
        try:
            function = FilterFunction(name.value)
        except ValueError:
            raise FilterSyntaxError(f"Unknown function '{name.value}'", name.position)

        self._expect("lparen", "'('")
        field = self._field(self._expect("word", "a field"))
        self._expect("comma", "','")
        argument = self._literal()
        self._expect("rparen", "')'")

        return FunctionCall(function=function, field=field, argument=argument)

    def _field(self, token: _Token) -> FieldReference:
        if not _FIELD_RE.match(token.value):
            raise FilterSyntaxError(f"Invalid field '{token.value}'", token.position)
        return FieldReference(path=token.value.split("/"))

    def _literal(self) -> Literal:
        token = self._next("a value")

        if token.kind == "string":
            return Literal(value=token.value[1:-1].replace("''", "'"))

        if token.kind != "word":
            raise FilterSyntaxError(f"Expected a value but found '{token.value}'", token.position)

        return Literal(value=literal_value(token.value))


def literal_value(word: str) -> Any:
    """Interpret an unquoted literal. Anything that is not a keyword or a number stays text (ids, timestamps)."""
    if word == "true":
        return True
    if word == "false":
        return False
    if word == "null":
        return None
    if _INT_RE.match(word):
        return int(word)
    if _FLOAT_RE.match(word):
        return float(word)
    return word


def parse_filter(text: Optional[str]) -> Optional[FilterExpression]:
    if text is None or not text.strip():
        return None
    return _Parser(tokenize(text), len(text)).parse()


def parse_field(text: str) -> FieldReference:
    text = text.strip()
    if not _FIELD_RE.match(text):
        raise FilterSyntaxError(f"Invalid field '{text}'")
    return FieldReference(path=text.split("/"))
