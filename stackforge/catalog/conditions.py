"""Inclusion conditions for skeleton files and module contributions.

A condition is a small boolean expression over the resolved service slots::

    has_auth
    services.auth == 'auth-clerk'
    services.payments in ['payments-stripe', 'payments-paddle']
    has_auth && !(has_payments || services.database != 'database-prisma')

``services.<category>`` is the id of the module filling that slot,
``has_<category>`` is true when the slot is filled.  ``&&`` binds tighter
than ``||``.  Conditions are parsed when the catalog is loaded, so a
malformed one is a catalog error rather than a generation failure.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, NoReturn, Optional

_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<op>&&|\|\||==|!=|!|\(|\)|\[|\]|,)"
    r"|(?P<string>'[^']*'|\"[^\"]*\")"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?)"
    r")"
)


class ExprKind(Enum):
    OR = auto()
    AND = auto()
    NOT = auto()
    LITERAL = auto()
    HAS = auto()
    EQUALS = auto()
    NOT_EQUALS = auto()
    MEMBER = auto()


@dataclass(frozen=True)
class Condition:
    """Parsed condition tree."""

    kind: ExprKind
    children: tuple["Condition", ...] = ()
    category: str = ""
    values: tuple[str, ...] = ()
    literal: bool = False

    def evaluate(self, services: Mapping[str, str]) -> bool:
        """Evaluate against a ``category -> module id`` mapping."""
        if self.kind is ExprKind.OR:
            return any(child.evaluate(services) for child in self.children)
        if self.kind is ExprKind.AND:
            return all(child.evaluate(services) for child in self.children)
        if self.kind is ExprKind.NOT:
            return not self.children[0].evaluate(services)
        if self.kind is ExprKind.LITERAL:
            return self.literal
        if self.kind is ExprKind.HAS:
            return self.category in services
        selected = services.get(self.category)
        if self.kind is ExprKind.EQUALS:
            return selected == self.values[0]
        if self.kind is ExprKind.NOT_EQUALS:
            return selected != self.values[0]
        return selected in self.values

    def categories(self) -> set[str]:
        """Every slot category the condition mentions."""
        found = {self.category} if self.category else set()
        for child in self.children:
            found |= child.categories()
        return found


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    text = text.rstrip()
    pos = 0
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            char = text[pos:].lstrip()[:1]
            raise ValueError(f"unexpected character {char!r} in condition {text!r}")
        kind = match.lastgroup or ""
        value = match.group(kind)
        if kind == "string":
            value = value[1:-1]
        tokens.append((kind, value))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive descent parser.

    Grammar:
        expr      := term ('||' term)*
        term      := factor ('&&' factor)*
        factor    := '!' factor | '(' expr ')' | 'true' | 'false' | statement
        statement := has_<category>
                   | services.<category> (('==' | '!=') string | 'in' '[' string (',' string)* ']')?
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def parse(self) -> Condition:
        if not self.tokens:
            raise ValueError("condition must not be empty")
        condition = self._expr()
        if self.pos < len(self.tokens):
            self._fail(f"unexpected {self.tokens[self.pos][1]!r}")
        return condition

    def _fail(self, message: str) -> NoReturn:
        raise ValueError(f"{message} in condition {self.text!r}")

    def _peek(self) -> Optional[tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, kind: str, value: Optional[str] = None) -> Optional[str]:
        token = self._peek()
        if token is None or token[0] != kind or (value is not None and token[1] != value):
            return None
        self.pos += 1
        return token[1]

    def _expect(self, kind: str, value: Optional[str] = None) -> str:
        found = self._accept(kind, value)
        if found is None:
            token = self._peek()
            got = repr(token[1]) if token else "end of input"
            self._fail(f"expected {value or kind}, got {got}")
        return found

    def _expr(self) -> Condition:
        terms = [self._term()]
        while self._accept("op", "||") is not None:
            terms.append(self._term())
        return terms[0] if len(terms) == 1 else Condition(ExprKind.OR, children=tuple(terms))

    def _term(self) -> Condition:
        factors = [self._factor()]
        while self._accept("op", "&&") is not None:
            factors.append(self._factor())
        return factors[0] if len(factors) == 1 else Condition(ExprKind.AND, children=tuple(factors))

    def _factor(self) -> Condition:
        if self._accept("op", "!") is not None:
            return Condition(ExprKind.NOT, children=(self._factor(),))
        if self._accept("op", "(") is not None:
            inner = self._expr()
            self._expect("op", ")")
            return inner
        name = self._expect("name")
        if name in ("true", "false"):
            return Condition(ExprKind.LITERAL, literal=name == "true")
        if name.startswith("has_") and "." not in name and len(name) > len("has_"):
            return Condition(ExprKind.HAS, category=name[len("has_"):])
        if not name.startswith("services."):
            self._fail(f"unknown name {name!r}")
        return self._statement(name[len("services."):])

    def _statement(self, category: str) -> Condition:
        if self._accept("op", "==") is not None:
            return Condition(ExprKind.EQUALS, category=category, values=(self._expect("string"),))
        if self._accept("op", "!=") is not None:
            return Condition(ExprKind.NOT_EQUALS, category=category, values=(self._expect("string"),))
        if self._accept("name", "in") is not None:
            self._expect("op", "[")
            values = [self._expect("string")]
            while self._accept("op", ",") is not None:
                values.append(self._expect("string"))
            self._expect("op", "]")
            return Condition(ExprKind.MEMBER, category=category, values=tuple(values))
        # bare ``services.<category>`` reads as "slot is filled"
        return Condition(ExprKind.HAS, category=category)


def parse_condition(text: str) -> Condition:
    """Parse *text*; raises ``ValueError`` when it is malformed."""
    return _Parser(text).parse()


def selected_services(modules: Iterable[Any]) -> dict[str, str]:
    """Map each filled slot category to the id of the module filling it."""
    return {module.category.value: module.id for module in modules}


def is_included(condition: Optional[str], services: Mapping[str, str]) -> bool:
    """Whether a file guarded by *condition* belongs in the project."""
    if condition is None:
        return True
    return parse_condition(condition).evaluate(services)
