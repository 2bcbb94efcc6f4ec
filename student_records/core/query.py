"""
Textual predicate language used by ``RecordSession.query``.

    group IN (ROSE, DAISY)
    name = :name AND dob = '2001-04-12'
    group IN :groups ORDER BY name DESC

Fields are resolved through the entity's ``__query_fields__`` mapping and
values are coerced to the column's Python type before being bound, so the
generated SQL is always parameterized. A bound value of the wrong type
(including None) is rejected rather than converted; ``IN :param`` takes any
non-string collection (list, tuple, set).
"""
import datetime
import enum
import re
from collections.abc import Collection
from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy import Select, select

from .exceptions import InvalidQueryError

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>'(?:[^']|'')*')
      | (?P<param>:[A-Za-z_][A-Za-z0-9_]*)
      | (?P<bare>[A-Za-z0-9_][A-Za-z0-9_.\-]*)
      | (?P<op>[=(),])
    )""",
    re.VERBOSE,
)

_KEYWORDS = {"AND", "IN", "ORDER", "BY", "ASC", "DESC"}

Token = Tuple[str, str]


def tokenize(predicate: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    text = predicate.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise InvalidQueryError(
                f"Unexpected character at position {pos}: {text[pos:pos + 10]!r}",
                details={"predicate": predicate},
            )
        kind = match.lastgroup
        value = match.group(kind)
        if kind == "bare" and value.upper() in _KEYWORDS:
            kind, value = "keyword", value.upper()
        tokens.append((kind, value))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser producing SQLAlchemy clauses."""

    def __init__(self, entity_type, predicate: str, params: Mapping[str, Any]):
        self.entity_type = entity_type
        self.predicate = predicate
        self.params = params
        self.tokens = tokenize(predicate)
        self.pos = 0

    # -- token helpers -----------------------------------------------------

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            self._fail("Unexpected end of predicate")
        self.pos += 1
        return token

    def _expect(self, kind: str, value: Optional[str] = None) -> Token:
        token = self._next()
        if token[0] != kind or (value is not None and token[1] != value):
            self._fail(f"Expected {value or kind}, got {token[1]!r}")
        return token

    def _at_keyword(self, word: str) -> bool:
        return self._peek() == ("keyword", word)

    def _fail(self, message: str):
        raise InvalidQueryError(message, details={"predicate": self.predicate})

    # -- grammar -----------------------------------------------------------

    def parse(self) -> Select:
        stmt = select(self.entity_type)
        if self._peek() is not None and not self._at_keyword("ORDER"):
            conditions = [self._clause()]
            while self._at_keyword("AND"):
                self.pos += 1
                conditions.append(self._clause())
            stmt = stmt.where(*conditions)
        if self._at_keyword("ORDER"):
            self.pos += 1
            self._expect("keyword", "BY")
            column = self._column(self._expect("bare")[1])
            direction = "ASC"
            if self._at_keyword("ASC") or self._at_keyword("DESC"):
                direction = self._next()[1]
            stmt = stmt.order_by(column.desc() if direction == "DESC" else column.asc())
        if self._peek() is not None:
            self._fail(f"Unexpected token {self._peek()[1]!r}")
        return stmt

    def _clause(self):
        column = self._column(self._expect("bare")[1])
        token = self._next()
        if token == ("op", "="):
            return column == self._coerce(column, self._value())
        if token == ("keyword", "IN"):
            if self._peek() is not None and self._peek()[0] == "param":
                values = self._bind(self._next()[1])
                if isinstance(values, (str, bytes)) or not isinstance(values, Collection):
                    self._fail("IN parameter must be a collection of values")
            else:
                self._expect("op", "(")
                values = [self._value()]
                while self._peek() == ("op", ","):
                    self.pos += 1
                    values.append(self._value())
                self._expect("op", ")")
            return column.in_([self._coerce(column, value) for value in values])
        self._fail(f"Expected '=' or IN, got {token[1]!r}")

    def _value(self) -> Any:
        kind, text = self._next()
        if kind == "param":
            return self._bind(text)
        if kind == "string":
            return text[1:-1].replace("''", "'")
        if kind == "bare":
            return text
        self._fail(f"Expected a value, got {text!r}")

    def _bind(self, name: str) -> Any:
        key = name[1:]
        if key not in self.params:
            self._fail(f"Missing value for parameter {name}")
        return self.params[key]

    def _column(self, field: str):
        fields = getattr(self.entity_type, "__query_fields__", None) or {}
        attribute = fields.get(field)
        if attribute is None:
            self._fail(f"Unknown field {field!r} for {self.entity_type.__name__}")
        return getattr(self.entity_type, attribute)

    def _coerce(self, column, value: Any) -> Any:
        python_type = column.type.python_type
        try:
            if isinstance(value, python_type):
                return value
            if issubclass(python_type, enum.Enum):
                return python_type[value]
            if python_type is datetime.date:
                return datetime.date.fromisoformat(value)
            if python_type is int and isinstance(value, str):
                return int(value)
        except (KeyError, TypeError, ValueError):
            pass
        self._fail(f"Invalid value {value!r} for field {column.key!r}")


def compile_predicate(entity_type, predicate: Optional[str], params: Optional[Mapping[str, Any]] = None) -> Select:
    """Compile ``predicate`` into a SELECT over ``entity_type``."""
    return _Parser(entity_type, predicate or "", params or {}).parse()
