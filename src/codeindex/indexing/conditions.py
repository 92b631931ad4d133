"""
Condition language for classification rules.

Rule documents express conditions as short strings such as
``name.startsWith('use')`` or ``pathParts.includes('services')``. They are
parsed once, when a rule configuration is loaded, into small predicate objects
that evaluate against an EvalContext.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

ALL = "all"
ANY = "any"


@dataclass(frozen=True)
class EvalContext:
    """Everything a predicate may look at."""
    kind: Optional[str] = None
    name: str = ""
    path_parts: Tuple[str, ...] = ()
    file_name: str = ""
    imports: Tuple[str, ...] = ()


@dataclass(frozen=True)
class KindEquals:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return ctx.kind is not None and ctx.kind == self.value


@dataclass(frozen=True)
class NamePrefix:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return bool(ctx.name) and ctx.name.startswith(self.value)


@dataclass(frozen=True)
class NameContains:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return bool(ctx.name) and self.value in ctx.name


@dataclass(frozen=True)
class NameMatches:
    value: str
    regex: Pattern

    def evaluate(self, ctx: EvalContext) -> bool:
        return bool(ctx.name) and self.regex.search(ctx.name) is not None


@dataclass(frozen=True)
class PathContains:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return self.value in ctx.path_parts


@dataclass(frozen=True)
class FileContains:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return bool(ctx.file_name) and self.value in ctx.file_name


@dataclass(frozen=True)
class FileSuffix:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return bool(ctx.file_name) and ctx.file_name.endswith(self.value)


@dataclass(frozen=True)
class ImportContains:
    value: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return any(self.value in specifier for specifier in ctx.imports)


@dataclass(frozen=True)
class Unrecognized:
    """A condition string that could not be parsed. Never matches."""
    text: str

    def evaluate(self, ctx: EvalContext) -> bool:
        return False


Predicate = Union[
    KindEquals, NamePrefix, NameContains, NameMatches, PathContains,
    FileContains, FileSuffix, ImportContains, Unrecognized,
]

_STRING = r'''\(\s*(['"])(.*?)\1\s*\)'''

_SHAPES = (
    (re.compile(r'''^(?:func\.type|kind|type)\s*={2,3}\s*(['"])(.*?)\1$'''), KindEquals),
    (re.compile(r'^name\.startsWith' + _STRING + '$'), NamePrefix),
    (re.compile(r'^name\.includes' + _STRING + '$'), NameContains),
    (re.compile(r'^name\.matches' + _STRING + '$'), NameMatches),
    (re.compile(r'^pathParts\.includes' + _STRING + '$'), PathContains),
    (re.compile(r'^fileName\.includes' + _STRING + '$'), FileContains),
    (re.compile(r'^fileName\.endsWith' + _STRING + '$'), FileSuffix),
    (re.compile(r'^chunk\.imports\.includes' + _STRING + '$'), ImportContains),
)


def parse_condition(text) -> Predicate:
    """Parse one condition string. Unknown shapes become Unrecognized and are logged."""
    if not isinstance(text, str):
        logger.warning(f"⚠️ Ignoring non-string condition: {text!r}")
        return Unrecognized(repr(text))

    stripped = text.strip()
    for pattern, predicate_type in _SHAPES:
        match = pattern.match(stripped)
        if not match:
            continue
        value = match.group(2)
        if predicate_type is NameMatches:
            try:
                return NameMatches(value, re.compile(value, re.IGNORECASE))
            except re.error as e:
                logger.warning(f"⚠️ Invalid regex in condition {text!r}: {e}")
                return Unrecognized(text)
        return predicate_type(value)

    logger.warning(f"⚠️ Unrecognized condition: {text!r}")
    return Unrecognized(text)


def parse_conditions(conditions: Union[str, Sequence[str]]) -> Tuple[Predicate, ...]:
    if isinstance(conditions, str):
        conditions = [conditions]
    return tuple(parse_condition(condition) for condition in conditions)


def is_disjunction_shape(predicates: Sequence[Predicate]) -> bool:
    """
    Two historical rule shapes combine their conditions with OR.

    A name prefix paired with a kind check (the React hook rule), and the
    ``web`` + ``src`` path pair (the frontend bundle rule).
    """
    if len(predicates) != 2:
        return False

    types = {type(predicate) for predicate in predicates}
    if types == {NamePrefix, KindEquals}:
        return True

    values = {predicate.value for predicate in predicates if isinstance(predicate, PathContains)}
    return values == {'web', 'src'}


def resolve_combinator(predicates: Sequence[Predicate], explicit: Optional[str] = None) -> str:
    """Pick ALL or ANY for a rule's predicate list."""
    if explicit in (ALL, ANY):
        return explicit
    if is_disjunction_shape(predicates):
        return ANY
    return ALL


def evaluate(predicates: Sequence[Predicate], combinator: str, ctx: EvalContext) -> bool:
    """Evaluate a rule's predicates. An empty list never matches."""
    if not predicates:
        return False
    if combinator == ANY:
        return any(predicate.evaluate(ctx) for predicate in predicates)
    return all(predicate.evaluate(ctx) for predicate in predicates)
