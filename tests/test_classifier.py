"""Tests for purpose, domain and pattern classification and bundle suggestions."""

import pytest

from codeindex.indexing.chunker import RawUnit, UnitContext
from codeindex.indexing.classifier import (
    ClassificationEngine,
    ClassifiedUnit,
    classify_unit,
    infer_domains,
    infer_patterns,
    match_purpose,
    suggest_bundle_labels,
)
from codeindex.indexing.rules import build_rule_config

from conftest import COMPONENT_SOURCE, SERVICE_SOURCE
from test_rules import minimal_document


def raw_unit(name, kind="arrow_function", file_path="src/lib/util.ts", code=None, imports=(), signature=None):
    code = code or f"const {name} = () => {{ return 1; }}"
    return RawUnit(
        name=name,
        kind=kind,
        file_path=file_path,
        start_line=1,
        end_line=1,
        code=code,
        signature=signature or f"const {name} = () =>",
        context=UnitContext(imports=tuple(imports)),
    )


class TestPurpose:
    """Tests for first-match purpose resolution."""

    def test_component_kind(self, classify):
        units = {u.name: u for u in classify(COMPONENT_SOURCE, "web/src/components/UserCard.tsx")}

        assert units["UserCard"].purpose == "React component"
        assert units["UserCard"].purpose_confidence == 0.95
        assert units["useToggle"].purpose == "React hook"

    def test_kind_equality_rule_for_custom_kind_label(self):
        config = build_rule_config(minimal_document({
            "components": {"conditions": ["kind == 'component'"], "purpose": "Component", "confidence": 0.9},
        }))

        assert match_purpose(raw_unit("Header", kind="component"), config).label == "Component"
        assert match_purpose(raw_unit("header", kind="function"), config).label == "Misc"

    def test_path_rule(self, default_config):
        unit = raw_unit("loadAll", file_path="src/services/loader.ts")

        assert match_purpose(unit, default_config).label == "Service layer logic"

    def test_first_matching_rule_wins(self, default_config):
        # serviceLayer precedes fileManagement in declaration order
        unit = raw_unit("saveFile", file_path="src/services/files.ts")

        result = match_purpose(unit, default_config)
        assert result.label == "Service layer logic"
        assert result.rule_name == "serviceLayer"

    def test_fallback_when_nothing_matches(self, default_config):
        unit = raw_unit("formatThing", file_path="src/lib/strings.ts")

        result = match_purpose(unit, default_config)
        assert (result.label, result.confidence, result.rule_name) == ("Utility function", 0.5, None)

    def test_empty_rule_table_uses_fallback(self):
        config = build_rule_config(minimal_document())

        assert match_purpose(raw_unit("anything"), config).label == "Misc"

    def test_conjunction_requires_every_condition(self, default_config):
        # dataRetrieval needs both 'get' and 'fetch' in the name
        assert match_purpose(raw_unit("getUser"), default_config).label == "Utility function"
        assert match_purpose(raw_unit("getAndFetchUser"), default_config).label == "Data retrieval"

    def test_import_condition(self, default_config):
        unit = raw_unit("applyMarks", imports=("@tiptap/core", "prosemirror-model"))

        assert match_purpose(unit, default_config).label == "Rich text editing logic"

    def test_purpose_is_pure(self, default_config):
        unit = raw_unit("updateProfile", file_path="src/lib/profile.ts")

        assert match_purpose(unit, default_config) == match_purpose(unit, default_config)


class TestDomainsAndPatterns:
    """Tests for multi-label inference."""

    def test_domains_from_path_name_and_imports(self):
        unit = raw_unit("saveSession", file_path="src/services/auth/api.ts", imports=("react",))

        assert infer_domains(unit) == {"authentication", "api-integration", "frontend-ui", "file-management"}

    def test_no_domains(self):
        assert infer_domains(raw_unit("compute", file_path="lib/math.js")) == set()

    def test_patterns(self):
        unit = raw_unit(
            "useLoader",
            code="export const useLoader = async () => { const c = new Cache(); await c.load(); }",
            signature="export const useLoader = async () =>",
        )

        assert infer_patterns(unit) == {"react-hooks", "async-io", "object-oriented", "public-api"}

    def test_event_handler_pattern(self):
        assert "event-driven" in infer_patterns(raw_unit("handleClick"))


class TestClassifyUnit:

    def test_every_unit_has_one_purpose(self, classify):
        units = classify(SERVICE_SOURCE, "src/services/userService.ts")

        assert len(units) == 2
        assert all(isinstance(u.purpose, str) and u.purpose for u in units)

    def test_classified_fields(self, classify):
        fetch = classify(SERVICE_SOURCE, "src/services/userService.ts")[0]

        assert fetch.unit_id == "fetchUserProfile:src/services/userService.ts:8"
        assert "api-integration" in fetch.domains
        assert {"async-io", "public-api"} <= fetch.patterns
        assert "exported" in fetch.tags
        assert fetch.complexity.level == "low"

    def test_dict_round_trip(self, classify):
        unit = classify(SERVICE_SOURCE, "src/services/userService.ts")[1]
        data = unit.to_dict()

        assert data["id"] == unit.unit_id
        assert data["context"]["imports"] == ["axios", "../types"]
        assert ClassifiedUnit.from_dict(data) == unit

    def test_engine_reads_active_snapshot(self, rule_manager):
        engine = ClassificationEngine(rule_manager)
        unit = raw_unit("parseDate")

        assert engine.determine_purpose(unit) == "Utility function"

        rule_manager.load_config(minimal_document({
            "parsing": {"conditions": ["name.startsWith('parse')"], "purpose": "Parsing", "confidence": 0.8},
        }))

        assert engine.determine_purpose(unit) == "Parsing"
        assert engine.classify(unit).purpose == "Parsing"


class TestBundleSuggestions:
    """Tests for bundle rules and the two-tier fallback."""

    def test_parent_and_sub_rule(self, default_config):
        labels = suggest_bundle_labels("web/src/components/Button.tsx", default_config)

        assert labels == ["frontend", "ui-components"]

    def test_web_src_disjunction(self, default_config):
        assert suggest_bundle_labels("src/index.ts", default_config) == ["frontend"]

    def test_backslash_paths_match_path_rules(self, default_config):
        labels = suggest_bundle_labels("web\\src\\components\\Button.tsx", default_config)

        assert labels == ["frontend", "ui-components"]

    def test_sub_rule_needs_parent(self, default_config):
        # 'components' alone does not reach the frontend sub-rule
        assert "ui-components" not in suggest_bundle_labels("lib/components/x.js", default_config)

    def test_file_name_rule(self):
        config = build_rule_config(minimal_document(bundle_patterns={
            "docs": {"conditions": ["fileName.endsWith('.md')"], "bundle": "docs", "confidence": 0.9},
        }))

        assert suggest_bundle_labels("guides/README.md", config) == ["docs"]

    def test_default_fallback(self, default_config):
        assert suggest_bundle_labels("scripts/run.py", default_config) == ["server", "config"]

    def test_path_fallback_precedes_default(self):
        document = minimal_document()
        document["bundleHeuristics"]["fallback"]["webFallback"] = {
            "conditions": ["pathParts.includes('web')"], "bundle": "frontend", "confidence": 0.6,
        }
        config = build_rule_config(document)

        assert suggest_bundle_labels("web/index.html", config) == ["frontend"]
        assert suggest_bundle_labels("bin/cli.js", config) == ["core"]

    def test_labels_are_deduplicated(self):
        config = build_rule_config(minimal_document(bundle_patterns={
            "a": {"conditions": ["fileName.includes('api')"], "bundle": "server", "confidence": 0.8},
            "b": {"conditions": ["pathParts.includes('bin')"], "bundle": "server", "confidence": 0.8},
        }))

        assert suggest_bundle_labels("bin/api.js", config) == ["server"]

    @pytest.mark.parametrize("path", ["web/src/components/Button.tsx", "scripts/run.py"])
    def test_engine_matches_function(self, rule_manager, default_config, path):
        engine = ClassificationEngine(rule_manager)

        assert engine.suggest_bundle_labels(path) == suggest_bundle_labels(path, default_config)
