"""
Unit Classification

Turns RawUnits into ClassifiedUnits: a single purpose label chosen by the
first matching purpose rule, multi-label business domains and technical
patterns from fixed predicate banks, a complexity score and tags. Bundle labels
for a file path come from the bundle rule table.

Every function here is a pure function of its input and the RuleConfig
snapshot passed in.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .chunker import Complexity, RawUnit, UnitContext, compute_complexity, generate_tags, split_path
from .conditions import EvalContext, evaluate
from .rules import Rule, RuleConfig, RuleConfigManager


@dataclass(frozen=True)
class PurposeMatch:
    """Outcome of purpose resolution."""
    label: str
    confidence: float
    rule_name: Optional[str] = None


@dataclass
class ClassifiedUnit:
    """A RawUnit plus its classification."""
    name: str
    kind: str
    file_path: str
    start_line: int
    end_line: int
    code: str
    signature: str
    context: UnitContext
    purpose: str
    purpose_confidence: float = 0.0
    domains: Set[str] = field(default_factory=set)
    patterns: Set[str] = field(default_factory=set)
    complexity: Complexity = field(default_factory=lambda: Complexity(score=1, level='low'))
    tags: Set[str] = field(default_factory=set)

    @property
    def unit_id(self) -> str:
        return f"{self.name}:{self.file_path}:{self.start_line}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.unit_id,
            "name": self.name,
            "kind": self.kind,
            "filePath": self.file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "code": self.code,
            "signature": self.signature,
            "context": {
                "imports": list(self.context.imports),
                "types": list(self.context.types),
                "calledFunctions": list(self.context.called_functions),
            },
            "purpose": self.purpose,
            "purposeConfidence": self.purpose_confidence,
            "domains": sorted(self.domains),
            "patterns": sorted(self.patterns),
            "complexity": {"score": self.complexity.score, "level": self.complexity.level},
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClassifiedUnit':
        context = data.get("context") or {}
        complexity = data.get("complexity") or {}
        return cls(
            name=data["name"],
            kind=data["kind"],
            file_path=data["filePath"],
            start_line=int(data["startLine"]),
            end_line=int(data["endLine"]),
            code=data.get("code", ""),
            signature=data.get("signature", ""),
            context=UnitContext(
                imports=tuple(context.get("imports", ())),
                types=tuple(context.get("types", ())),
                called_functions=tuple(context.get("calledFunctions", ())),
            ),
            purpose=data["purpose"],
            purpose_confidence=float(data.get("purposeConfidence", 0.0)),
            domains=set(data.get("domains", ())),
            patterns=set(data.get("patterns", ())),
            complexity=Complexity(
                score=int(complexity.get("score", 1)),
                level=complexity.get("level", "low"),
            ),
            tags=set(data.get("tags", ())),
        )


def _unit_context(unit) -> EvalContext:
    return EvalContext(
        kind=unit.kind,
        name=(unit.name or '').lower(),
        path_parts=tuple(split_path(unit.file_path)),
        file_name=unit.file_path.lower(),
        imports=tuple(unit.context.imports),
    )


def _path_context(file_path: str) -> EvalContext:
    file_name = file_path.lower()
    return EvalContext(
        path_parts=tuple(split_path(file_path)),
        file_name=file_name,
    )


def _rule_matches(rule: Rule, ctx: EvalContext) -> bool:
    return evaluate(rule.predicates, rule.combinator, ctx)


def match_purpose(unit, config: RuleConfig) -> PurposeMatch:
    """First fully matching purpose rule, in declaration order, or the fallback."""
    ctx = _unit_context(unit)
    for rule in config.purpose_rules:
        if _rule_matches(rule, ctx):
            return PurposeMatch(rule.label, rule.confidence, rule.name)
    return PurposeMatch(config.fallback_purpose, config.fallback_confidence)


def determine_purpose(unit, config: RuleConfig) -> str:
    return match_purpose(unit, config).label


# Business domain bank: (label, predicate over (name, path, imports))
_DOMAIN_BANK: Tuple[Tuple[str, Callable[[str, str, Tuple[str, ...]], bool]], ...] = (
    ('authentication', lambda name, path, imports: 'auth' in path),
    ('ui-layer', lambda name, path, imports: 'component' in path or 'ui' in path),
    ('api-integration', lambda name, path, imports: 'service' in path or 'api' in path),
    ('testing', lambda name, path, imports: 'test' in path or 'spec' in path),
    ('desktop-runtime', lambda name, path, imports: any('tauri' in i for i in imports)),
    ('text-editing', lambda name, path, imports: any('tiptap' in i or 'prosemirror' in i for i in imports)),
    ('frontend-ui', lambda name, path, imports: any('react' in i for i in imports)),
    ('file-management', lambda name, path, imports: re.search(r'file|save|export|read|write', name) is not None),
    ('authentication', lambda name, path, imports: re.search(r'login|user|session', name) is not None),
)


def infer_domains(unit) -> Set[str]:
    """Every business domain whose predicate holds for the unit."""
    name = (unit.name or '').lower()
    path = '/'.join(split_path(unit.file_path))
    imports = tuple(unit.context.imports)
    return {label for label, predicate in _DOMAIN_BANK if predicate(name, path, imports)}


# Technical pattern bank: (label, predicate over (name, code, unit))
_PATTERN_BANK: Tuple[Tuple[str, Callable[[str, str, Any], bool]], ...] = (
    ('react-hooks', lambda name, code, unit: name.startswith('use')),
    ('async-io', lambda name, code, unit: 'async' in code or 'await' in code),
    ('event-driven', lambda name, code, unit: 'on(' in code or 'addListener' in code or name.startswith('handle')),
    ('object-oriented', lambda name, code, unit: 'new ' in code or 'class ' in code),
    ('public-api', lambda name, code, unit: unit.signature.startswith('export ')),
)


def infer_patterns(unit) -> Set[str]:
    """Every technical pattern whose predicate holds for the unit."""
    name = (unit.name or '').lower()
    code = unit.code or ''
    return {label for label, predicate in _PATTERN_BANK if predicate(name, code, unit)}


def suggest_bundle_labels(file_path: str, config: RuleConfig) -> List[str]:
    """
    Suggest bundle labels for a file.

    Collects each matching bundle rule's label and, for matched rules only,
    the labels of matching sub-rules. With no suggestion, the path-scoped
    fallback rule applies, else the default label set.
    """
    ctx = _path_context(file_path)
    suggestions: List[str] = []

    for rule in config.bundle_rules:
        if not _rule_matches(rule, ctx):
            continue
        suggestions.append(rule.label)
        for sub_rule in rule.sub_rules:
            if _rule_matches(sub_rule, ctx):
                suggestions.append(sub_rule.label)

    if not suggestions:
        fallback = config.bundle_fallback
        if fallback.path_rule is not None and _rule_matches(fallback.path_rule, ctx):
            suggestions.append(fallback.path_rule.label)
        else:
            suggestions.extend(fallback.default_labels)

    return list(dict.fromkeys(suggestions))


def semantic_type_mapping(config: RuleConfig) -> Dict[str, int]:
    """Semantic type name -> cluster id."""
    return config.semantic_type_mapping


def classify_unit(raw: RawUnit, config: RuleConfig) -> ClassifiedUnit:
    purpose = match_purpose(raw, config)
    return ClassifiedUnit(
        name=raw.name,
        kind=raw.kind,
        file_path=raw.file_path,
        start_line=raw.start_line,
        end_line=raw.end_line,
        code=raw.code,
        signature=raw.signature,
        context=raw.context,
        purpose=purpose.label,
        purpose_confidence=purpose.confidence,
        domains=infer_domains(raw),
        patterns=infer_patterns(raw),
        complexity=compute_complexity(raw.code),
        tags=set(generate_tags(raw)),
    )


class ClassificationEngine:
    """Classifier bound to a RuleConfigManager; reads one snapshot per call."""

    def __init__(self, rule_manager: RuleConfigManager):
        self.rule_manager = rule_manager

    def classify(self, raw: RawUnit) -> ClassifiedUnit:
        return classify_unit(raw, self.rule_manager.config)

    def classify_all(self, raw_units: List[RawUnit]) -> List[ClassifiedUnit]:
        config = self.rule_manager.config
        return [classify_unit(raw, config) for raw in raw_units]

    def determine_purpose(self, unit) -> str:
        return determine_purpose(unit, self.rule_manager.config)

    def infer_domains(self, unit) -> Set[str]:
        return infer_domains(unit)

    def infer_patterns(self, unit) -> Set[str]:
        return infer_patterns(unit)

    def suggest_bundle_labels(self, file_path: str) -> List[str]:
        return suggest_bundle_labels(file_path, self.rule_manager.config)

    def semantic_type_mapping(self) -> Dict[str, int]:
        return semantic_type_mapping(self.rule_manager.config)
