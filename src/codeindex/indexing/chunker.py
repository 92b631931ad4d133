"""
Function-Level Code Chunking for JavaScript/TypeScript Projects

This module extracts functions, arrow functions, class methods and React-style
components from source text as discrete units. It approximates parsing with an
ordered set of regex matchers plus a string-aware brace scanner, so a single
malformed construct never takes down the rest of the file.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)

# Bodies shorter than this (in characters) are treated as noise
DEFAULT_MIN_BODY_SIZE = 10

QUOTE_CHARS = ('"', "'", '`')

# Names captured by the call-site matcher that are keywords or built-ins
CALL_STOPLIST = frozenset({
    'if', 'for', 'while', 'switch', 'catch', 'function', 'return', 'typeof',
    'super', 'console', 'Object', 'Array', 'JSON', 'Promise', 'require', 'import',
})

# Control keywords that look like method shorthand at the start of a line
CONTROL_KEYWORDS = frozenset({
    'if', 'for', 'while', 'switch', 'catch', 'function', 'return', 'with', 'else', 'do',
})

COMPLEXITY_KEYWORDS = ('if', 'else', 'for', 'while', 'switch', 'case', 'try', 'catch', 'async', 'await')
COMPLEXITY_OPERATORS = ('&&', '||', '?')

IMPORT_PATTERN = re.compile(
    r'''(?:import\s+(?:[\w*${}\s,]+?\s+from\s+)?|require\(\s*)['"`]([^'"`\n]+)['"`]'''
)
TYPE_PATTERN = re.compile(r'\b(?:type|interface|enum)\s+([A-Z][a-zA-Z0-9_]*)')
CALL_PATTERN = re.compile(r'([a-zA-Z_$][a-zA-Z0-9_$]*)\s*\(')
# Optional TypeScript type parameters, one level of nesting
TYPE_PARAMS = r'(?:<(?:[^<>()]|<[^<>()]*>)*>\s*)?'


class UnitKind(Enum):
    """Kinds of extracted units."""
    FUNCTION = "function"
    ARROW_FUNCTION = "arrow_function"
    METHOD = "method"
    COMPONENT = "react_component"


@dataclass(frozen=True)
class UnitContext:
    """Lightweight context gathered around a unit."""
    imports: Tuple[str, ...] = ()
    types: Tuple[str, ...] = ()
    called_functions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RawUnit:
    """A function-level span of source code, before classification."""
    name: str
    kind: str
    file_path: str
    start_line: int
    end_line: int
    code: str
    signature: str
    context: UnitContext = field(default_factory=UnitContext)

    @property
    def unit_id(self) -> str:
        return f"{self.name}:{self.file_path}:{self.start_line}"

    @property
    def is_exported(self) -> bool:
        return self.signature.startswith('export ')

    @property
    def path_parts(self) -> List[str]:
        return split_path(self.file_path)


@dataclass(frozen=True)
class Complexity:
    """Complexity score and its bucketed level."""
    score: int
    level: str


@dataclass(frozen=True)
class _Matcher:
    kind: UnitKind
    pattern: Pattern
    # Refining matchers only relabel a unit another matcher already found
    refines: bool = False


MATCHERS: Tuple[_Matcher, ...] = (
    _Matcher(
        UnitKind.FUNCTION,
        re.compile(
            r'^[ \t]*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*([a-zA-Z_$][a-zA-Z0-9_$]*)\s*'
            + TYPE_PARAMS + r'\(',
            re.M,
        ),
    ),
    _Matcher(
        UnitKind.ARROW_FUNCTION,
        re.compile(
            r'^[ \t]*(?:export\s+)?(?:const|let|var)\s+([a-zA-Z_$][a-zA-Z0-9_$]*)\s*(?::[^=\n]+)?=\s*'
            r'(?:async\s+)?' + TYPE_PARAMS + r'\([^)]*\)\s*(?::\s*[^=\n]+?)?\s*=>',
            re.M,
        ),
    ),
    _Matcher(
        UnitKind.METHOD,
        re.compile(
            r'^[ \t]*(?:(?:public|private|protected|static|async|get|set)\s+)*'
            r'([a-zA-Z_$][a-zA-Z0-9_$]*)\s*' + TYPE_PARAMS + r'\([^)]*\)\s*(?::\s*[^{;\n]+)?\{',
            re.M,
        ),
    ),
    _Matcher(
        UnitKind.COMPONENT,
        re.compile(
            r'^[ \t]*export\s+(?:default\s+)?(?:(?:async\s+)?function\s+([A-Z][a-zA-Z0-9_$]*)\s*'
            + TYPE_PARAMS + r'\('
            r'|const\s+([A-Z][a-zA-Z0-9_$]*)\s*(?::[^=\n]+)?=)',
            re.M,
        ),
        refines=True,
    ),
)


def split_path(file_path: str) -> List[str]:
    """Lower-cased path segments, accepting both separator styles."""
    return [part for part in re.split(r'[\\/]', file_path.lower()) if part]


def _skip_comment(text: str, i: int) -> int:
    """Return the index after a comment starting at i, or i if none starts there."""
    if text.startswith('//', i):
        end = text.find('\n', i)
        return len(text) if end == -1 else end
    if text.startswith('/*', i):
        end = text.find('*/', i + 2)
        return len(text) if end == -1 else end + 2
    return i


def find_closing(text: str, open_index: int, open_char: str = '{', close_char: str = '}') -> Optional[int]:
    """
    Find the end of a balanced block.

    Scans forward from the opening delimiter at ``open_index`` with a nesting
    counter. Delimiters inside string/template literals and comments are ignored.

    Returns:
        Index just past the matching closing delimiter, or None if unbalanced.
    """
    depth = 0
    quote = None
    i = open_index
    length = len(text)

    while i < length:
        char = text[i]
        if quote:
            if char == '\\':
                i += 2
                continue
            if char == quote:
                quote = None
            elif char == '\n' and quote != '`':
                # Plain string literals cannot span lines
                quote = None
        else:
            skipped = _skip_comment(text, i)
            if skipped != i:
                i = skipped
                continue
            if char in QUOTE_CHARS:
                quote = char
            elif char == open_char:
                depth += 1
            elif char == close_char:
                depth -= 1
                if depth == 0:
                    return i + 1
        i += 1

    return None


def compute_complexity(code: str) -> Complexity:
    """Count branching indicators in code. Pure function of the text."""
    score = 1
    for keyword in COMPLEXITY_KEYWORDS:
        score += len(re.findall(rf'\b{keyword}\b', code))
    for operator in COMPLEXITY_OPERATORS:
        score += code.count(operator)

    if score < 5:
        level = 'low'
    elif score < 15:
        level = 'medium'
    else:
        level = 'high'
    return Complexity(score=score, level=level)


def generate_tags(unit: RawUnit) -> List[str]:
    """Descriptive tags for a unit."""
    tags = [unit.kind]
    if unit.context.imports:
        tags.append('has-imports')
    if len(unit.context.called_functions) > 3:
        tags.append('complex-logic')
    if 'async' in unit.code:
        tags.append('async')
    if unit.is_exported:
        tags.append('exported')
    if unit.name[:1].isupper():
        tags.append('component-style')
    return tags


def _unique(values) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(values))


class FunctionChunker:
    """Extracts function-level units from JavaScript/TypeScript source text."""

    def __init__(self, min_body_size: int = DEFAULT_MIN_BODY_SIZE):
        self.min_body_size = min_body_size

    def extract(self, file_text: str, file_path: str) -> List[RawUnit]:
        """
        Extract ordered units from one file.

        Never raises: a failing match is skipped and a failing file yields no
        units. Both are logged.
        """
        try:
            return self._extract_file(file_text, file_path)
        except Exception as e:
            logger.warning(f"⚠️ Failed to extract from {file_path}: {e}")
            return []

    def _extract_file(self, file_text: str, file_path: str) -> List[RawUnit]:
        imports = self.extract_imports(file_text)
        types = self.extract_types(file_text)

        # start offset -> (kind, name, start, end, signature)
        found: Dict[int, Tuple[UnitKind, str, int, int, str]] = {}

        for matcher in MATCHERS:
            for match in matcher.pattern.finditer(file_text):
                try:
                    self._apply_match(matcher, match, file_text, found)
                except Exception as e:
                    line = file_text.count('\n', 0, match.start()) + 1
                    logger.warning(f"⚠️ Skipping match in {file_path}:{line}: {e}")

        units = []
        for start in sorted(found):
            kind, name, _, end, signature = found[start]
            code = file_text[start:end].rstrip()
            start_line = file_text.count('\n', 0, start) + 1
            body = code[len(signature):]
            units.append(RawUnit(
                name=name,
                kind=kind.value,
                file_path=file_path,
                start_line=start_line,
                end_line=start_line + code.count('\n'),
                code=code,
                signature=signature,
                context=UnitContext(
                    imports=imports,
                    types=types,
                    called_functions=self.extract_called_functions(body),
                ),
            ))
        return units

    def _apply_match(self, matcher: _Matcher, match, text: str,
                     found: Dict[int, Tuple[UnitKind, str, int, int, str]]) -> None:
        name = next(group for group in match.groups() if group)
        raw = match.group(0)
        start = match.start() + (len(raw) - len(raw.lstrip()))

        if matcher.refines:
            if start in found:
                _, existing_name, s, e, signature = found[start]
                found[start] = (matcher.kind, existing_name, s, e, signature)
            return

        if start in found:
            return
        if matcher.kind is UnitKind.METHOD and name in CONTROL_KEYWORDS:
            return

        end = self._locate_body_end(matcher.kind, match, text)
        if end is None:
            return
        if end - start < self.min_body_size:
            return

        signature = text[start:match.end()].strip()
        found[start] = (matcher.kind, name, start, end, signature)

    def _locate_body_end(self, kind: UnitKind, match, text: str) -> Optional[int]:
        """Find where the unit body ends, or None when it cannot be delimited."""
        if kind is UnitKind.METHOD:
            return find_closing(text, match.end() - 1)

        if kind is UnitKind.ARROW_FUNCTION:
            i = match.end()
            while i < len(text) and text[i] in ' \t':
                i += 1
            if i < len(text) and text[i] == '{':
                return find_closing(text, i)
            if i < len(text) and text[i] == '(':
                return find_closing(text, i, '(', ')')
            # Bodyless arrow: the rest of the source line
            line_end = text.find('\n', match.end())
            return len(text) if line_end == -1 else line_end

        # Declarations: skip the parameter list, then expect a block
        params_end = find_closing(text, match.end() - 1, '(', ')')
        if params_end is None:
            return None
        brace = text.find('{', params_end)
        semicolon = text.find(';', params_end)
        if brace == -1 or (semicolon != -1 and semicolon < brace):
            return None
        return find_closing(text, brace)

    def extract_imports(self, content: str) -> Tuple[str, ...]:
        """Module specifiers imported by the file, in source order."""
        return _unique(match.group(1) for match in IMPORT_PATTERN.finditer(content))

    def extract_types(self, content: str) -> Tuple[str, ...]:
        """Type, interface and enum names declared in the file."""
        return _unique(match.group(1) for match in TYPE_PATTERN.finditer(content))

    def extract_called_functions(self, code: str) -> Tuple[str, ...]:
        """Names called within code, minus keywords and built-ins."""
        return _unique(
            name for name in (match.group(1) for match in CALL_PATTERN.finditer(code))
            if name not in CALL_STOPLIST
        )


def extract_units(file_text: str, file_path: str, min_body_size: int = DEFAULT_MIN_BODY_SIZE) -> List[RawUnit]:
    """Convenience wrapper around FunctionChunker.extract."""
    return FunctionChunker(min_body_size).extract(file_text, file_path)


def file_basename(file_path: str) -> str:
    return PurePosixPath(file_path.replace('\\', '/')).name
