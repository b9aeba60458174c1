"""Version constraint grammar.

Constraints are parsed once into a small AST and then evaluated against
:class:`~modcore.version.version.Version` values::

    disjunction  := conjunction ("||" conjunction)*
    conjunction  := term ([","] term)*
    term         := VERSION "-" VERSION        (inclusive range)
                  | OPERATOR VERSION           (>, >=, <, <=, =, ==, !=, ~, ^)
                  | VERSION                    (exact match)
                  | "*"                        (any version)

An empty constraint is the same as ``*``.
"""

from __future__ import annotations

import functools
import operator
from dataclasses import dataclass
from typing import Callable, NamedTuple, NoReturn, Union

from modcore.errors import ConstraintParseError, VersionParseError
from modcore.version.version import Version, normalize_version, parse_version

__all__ = [
    "AllOf",
    "AnyOf",
    "AnyVersion",
    "Comparison",
    "Constraint",
    "satisfies",
]

_OPERATORS = (">=", "<=", "==", "!=", ">", "<", "=", "~", "^")
_VERSION_STOP_CHARS = frozenset(",|<>=~^!")
_WILDCARDS = frozenset({"*", "x", "X"})

_COMPARATORS: dict[str, Callable[[Version, Version], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


# === AST ===


@dataclass(frozen=True)
class AnyVersion:
    """Matches every version."""

    def matches(self, version: Version) -> bool:
        return True

    def __str__(self) -> str:
        return "*"


@dataclass(frozen=True)
class Comparison:
    """A primitive ``<op> <version>`` test."""

    op: str
    version: Version

    def matches(self, version: Version) -> bool:
        return _COMPARATORS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class AllOf:
    """Conjunction; ranges, tilde and caret expand to this."""

    terms: tuple[Node, ...]

    def matches(self, version: Version) -> bool:
        return all(term.matches(version) for term in self.terms)

    def __str__(self) -> str:
        return " ".join(str(term) for term in self.terms)


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of ``||``-separated branches."""

    branches: tuple[Node, ...]

    def matches(self, version: Version) -> bool:
        return any(branch.matches(version) for branch in self.branches)

    def __str__(self) -> str:
        return " || ".join(str(branch) for branch in self.branches)


Node = Union[AnyVersion, Comparison, AllOf, AnyOf]


# === Tokenizer ===


class _Token(NamedTuple):
    kind: str  # OR, COMMA, HYPHEN, OP, VERSION
    value: str
    pos: int


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if text.startswith("||", i):
            tokens.append(_Token("OR", "||", i))
            i += 2
            continue
        if ch == ",":
            tokens.append(_Token("COMMA", ",", i))
            i += 1
            continue
        # A range hyphen must stand alone; "1.0.0-beta" is a pre-release.
        if ch == "-" and (i == 0 or text[i - 1].isspace()) and (i + 1 == n or text[i + 1].isspace()):
            tokens.append(_Token("HYPHEN", "-", i))
            i += 1
            continue
        op = next((candidate for candidate in _OPERATORS if text.startswith(candidate, i)), None)
        if op is not None:
            tokens.append(_Token("OP", op, i))
            i += len(op)
            continue
        j = i
        while j < n and not text[j].isspace() and text[j] not in _VERSION_STOP_CHARS:
            j += 1
        if j == i:
            raise ConstraintParseError(constraint=text, reason=f"unexpected character '{ch}' at position {i}")
        tokens.append(_Token("VERSION", text[i:j], i))
        i = j
    return tokens


# === Parser ===


class _Parser:
    """Recursive-descent parser over the token stream."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = _tokenize(text)
        self._pos = 0

    def parse(self) -> Node:
        node = self._disjunction()
        leftover = self._peek()
        if leftover is not None:
            self._fail(f"unexpected '{leftover.value}' at position {leftover.pos}")
        return node

    def _peek(self) -> _Token | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _advance(self) -> _Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _accept(self, kind: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == kind:
            self._pos += 1
            return True
        return False

    def _fail(self, reason: str) -> NoReturn:
        raise ConstraintParseError(constraint=self._text, reason=reason)

    def _disjunction(self) -> Node:
        branches = [self._conjunction()]
        while self._accept("OR"):
            branches.append(self._conjunction())
        return branches[0] if len(branches) == 1 else AnyOf(tuple(branches))

    def _conjunction(self) -> Node:
        terms = [self._term()]
        while True:
            token = self._peek()
            if token is None or token.kind == "OR":
                break
            self._accept("COMMA")
            terms.append(self._term())
        return terms[0] if len(terms) == 1 else AllOf(tuple(terms))

    def _term(self) -> Node:
        token = self._peek()
        if token is None:
            self._fail("expected a version")
        if token.kind == "OP":
            self._advance()
            version = self._operand(self._expect_version(after=token.value))
            return _expand(token.value, version)
        if token.kind == "VERSION":
            self._advance()
            if token.value in _WILDCARDS:
                return AnyVersion()
            lower = self._operand(token.value)
            if self._accept("HYPHEN"):
                upper = self._operand(self._expect_version(after="-"))
                return AllOf((Comparison(">=", lower), Comparison("<=", upper)))
            return Comparison("=", lower)
        self._fail(f"unexpected '{token.value}' at position {token.pos}")

    def _expect_version(self, after: str) -> str:
        token = self._peek()
        if token is None or token.kind != "VERSION" or token.value in _WILDCARDS:
            self._fail(f"expected a version after '{after}'")
        return self._advance().value

    def _operand(self, text: str) -> Version:
        normalized, _ = normalize_version(text)
        try:
            return parse_version(normalized)
        except VersionParseError as exc:
            raise ConstraintParseError(
                constraint=self._text,
                reason=f"invalid version '{text}'",
                cause=exc,
            ) from exc


def _expand(op: str, version: Version) -> Node:
    # Bounds are decided on the zero-filled operand, so ~1.2 and ~1.2.0 agree
    if op == "==":
        op = "="
    if op == "~":
        upper = version.bump_minor() if version.patch != 0 else version.bump_major()
        return AllOf((Comparison(">=", version), Comparison("<", upper)))
    if op == "^":
        if version.major > 0:
            upper = version.bump_major()
        elif version.minor > 0:
            upper = version.bump_minor()
        else:
            upper = version.bump_patch()
        return AllOf((Comparison(">=", version), Comparison("<", upper)))
    return Comparison(op, version)


# === Public API ===


@dataclass(frozen=True)
class Constraint:
    """A parsed version constraint."""

    raw: str
    node: Node

    @classmethod
    def parse(cls, text: str | None) -> Constraint:
        """Parse a constraint expression.

        Raises:
            ConstraintParseError: If the expression or one of its operands is
                malformed.
        """
        return _parse_cached((text or "").strip())

    def allows(self, version: Version) -> bool:
        return self.node.matches(version)

    def __str__(self) -> str:
        return self.raw or "*"


@functools.lru_cache(maxsize=512)
def _parse_cached(text: str) -> Constraint:
    if text in ("", "*"):
        return Constraint(raw=text, node=AnyVersion())
    return Constraint(raw=text, node=_Parser(text).parse())


def satisfies(version: Version | str, constraint: Constraint | str | None) -> bool:
    """Return whether ``version`` satisfies ``constraint``.

    Constraints are advisory predicates: a malformed constraint operand, or a
    malformed version, evaluates to ``False`` instead of raising.
    """
    try:
        parsed_version = version if isinstance(version, Version) else parse_version(version)
        parsed = constraint if isinstance(constraint, Constraint) else Constraint.parse(constraint)
    except (VersionParseError, ConstraintParseError):
        return False
    return parsed.allows(parsed_version)
