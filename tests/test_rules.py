"""Tests for the condition language and rule configuration lifecycle."""

import copy
import json
import os
import threading

import pytest

from codeindex.indexing.conditions import (
    ALL,
    ANY,
    EvalContext,
    FileSuffix,
    ImportContains,
    KindEquals,
    NameMatches,
    NamePrefix,
    PathContains,
    Unrecognized,
    evaluate,
    parse_condition,
    parse_conditions,
    resolve_combinator,
)
from codeindex.indexing.default_rules import DEFAULT_RULES
from codeindex.indexing.errors import RuleConfigError
from codeindex.indexing.rules import RuleConfigManager, build_rule_config, default_rule_config


def minimal_document(purpose_patterns=None, bundle_patterns=None):
    return {
        "version": "2.0.0",
        "purposeHeuristics": {
            "patterns": purpose_patterns or {},
            "fallback": {"purpose": "Misc", "confidence": 0.3},
        },
        "bundleHeuristics": {
            "patterns": bundle_patterns or {},
            "fallback": {"defaultFallback": {"bundles": ["core"], "confidence": 0.4}},
        },
        "semanticTypeMapping": {
            "clusters": {"ui": {"types": ["hook", "ui_component"], "clusterId": 3}},
        },
    }


class TestParseCondition:
    """Tests for turning condition strings into predicates."""

    @pytest.mark.parametrize("text,expected", [
        ("func.type === 'react_component'", KindEquals("react_component")),
        ("kind == 'component'", KindEquals("component")),
        ("name.startsWith('use')", NamePrefix("use")),
        ("pathParts.includes('services')", PathContains("services")),
        ("fileName.endsWith('.md')", FileSuffix(".md")),
        ('chunk.imports.includes("tauri")', ImportContains("tauri")),
    ])
    def test_known_shapes(self, text, expected):
        assert parse_condition(text) == expected

    def test_regex_condition_is_case_insensitive(self):
        predicate = parse_condition("name.matches('modal|button')")

        assert isinstance(predicate, NameMatches)
        assert predicate.evaluate(EvalContext(name="openmodal"))
        assert predicate.regex.search("BUTTON")

    def test_unknown_shape_is_unrecognized_and_false(self):
        predicate = parse_condition("name.length > 3")

        assert isinstance(predicate, Unrecognized)
        assert predicate.evaluate(EvalContext(name="anything")) is False

    def test_invalid_regex_is_unrecognized(self):
        assert isinstance(parse_condition("name.matches('(unclosed')"), Unrecognized)

    def test_non_string_is_unrecognized(self):
        assert isinstance(parse_condition(42), Unrecognized)


class TestCombination:
    """Tests for conjunction by default and the two disjunction shapes."""

    def test_multiple_conditions_default_to_all(self):
        predicates = parse_conditions(["pathParts.includes('services')", "name.matches('file|save')"])
        ctx = EvalContext(name="loadthing", path_parts=("src", "services"))

        assert resolve_combinator(predicates) == ALL
        assert evaluate(predicates, ALL, ctx) is False
        assert evaluate(predicates, ALL, EvalContext(name="savefile", path_parts=("services",))) is True

    def test_prefix_and_kind_pair_is_any(self):
        predicates = parse_conditions(["name.startsWith('use')", "func.type === 'function'"])

        assert resolve_combinator(predicates) == ANY
        assert evaluate(predicates, ANY, EvalContext(kind="arrow_function", name="usetoggle"))

    def test_web_src_pair_is_any(self):
        predicates = parse_conditions(["pathParts.includes('web')", "pathParts.includes('src')"])

        assert resolve_combinator(predicates) == ANY
        assert evaluate(predicates, ANY, EvalContext(path_parts=("src", "lib")))

    def test_other_path_pair_stays_all(self):
        predicates = parse_conditions(["pathParts.includes('web')", "pathParts.includes('lib')"])

        assert resolve_combinator(predicates) == ALL

    def test_explicit_match_overrides_shape(self):
        predicates = parse_conditions(["name.startsWith('use')", "func.type === 'function'"])

        assert resolve_combinator(predicates, ALL) == ALL
        assert resolve_combinator(parse_conditions(["name.includes('a')", "name.includes('b')"]), ANY) == ANY

    def test_empty_predicates_never_match(self):
        assert evaluate((), ALL, EvalContext(name="x")) is False


class TestBuildRuleConfig:
    """Tests for all-or-nothing validation."""

    def test_default_rules_build(self):
        config = default_rule_config()

        assert config.source == "default"
        assert len(config.purpose_rules) == 15
        assert config.fallback_purpose == "Utility function"
        assert config.bundle_fallback.default_labels == ("server", "config")
        assert config.semantic_type_mapping["hook"] == 3
        assert config.semantic_type_mapping["unknown"] == 7

    def test_declaration_order_preserved(self):
        names = [rule.name for rule in default_rule_config().purpose_rules]
        assert names[:3] == ["reactComponent", "reactHook", "serviceLayer"]

    @pytest.mark.parametrize("group", ["purposeHeuristics", "bundleHeuristics", "semanticTypeMapping"])
    def test_missing_group_rejected(self, group):
        document = minimal_document()
        del document[group]

        with pytest.raises(RuleConfigError, match=group):
            build_rule_config(document)

    def test_confidence_out_of_range_rejected(self):
        document = minimal_document({"bad": {"conditions": ["name.includes('x')"], "purpose": "X", "confidence": 1.5}})

        with pytest.raises(RuleConfigError):
            build_rule_config(document)

    def test_invalid_match_field_rejected(self):
        document = minimal_document({"bad": {"conditions": ["name.includes('x')"], "purpose": "X",
                                             "confidence": 0.5, "match": "some"}})

        with pytest.raises(RuleConfigError):
            build_rule_config(document)

    def test_sub_rules_parsed(self):
        frontend = default_rule_config().bundle_rules[0]

        assert frontend.label == "frontend"
        assert frontend.combinator == ANY
        assert [sub.label for sub in frontend.sub_rules] == ["ui-components"]

    def test_non_string_cluster_types_rejected(self):
        document = minimal_document()
        document["semanticTypeMapping"]["clusters"]["ui"]["types"] = ["hook", ["nested"]]

        with pytest.raises(RuleConfigError, match="ui"):
            build_rule_config(document)

    def test_round_trip_document(self):
        config = build_rule_config(minimal_document())
        assert build_rule_config(config.to_dict()).to_dict() == config.to_dict()


class TestRuleConfigManager:
    """Tests for load, reload, update and watching."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_text(json.dumps(minimal_document()))

        manager = RuleConfigManager(path)

        assert manager.config.version == "2.0.0"
        assert manager.config.fallback_purpose == "Misc"
        assert manager.config.revision == 1

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        manager = RuleConfigManager(tmp_path / "missing.json")

        assert manager.config.source == "default"
        assert manager.config.fallback_purpose == "Utility function"

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_text("{ not json")

        assert RuleConfigManager(path).config.source == "default"

    def test_undecodable_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_bytes(b"\xff\xfe{\"version\": \"2.0.0\"}")

        assert RuleConfigManager(path).config.source == "default"

    def test_reload_publishes_new_snapshot(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_text(json.dumps(minimal_document()))
        manager = RuleConfigManager(path)
        old = manager.config

        document = minimal_document()
        document["version"] = "3.0.0"
        path.write_text(json.dumps(document))

        assert manager.reload() is True
        assert manager.config.version == "3.0.0"
        assert manager.config.revision == old.revision + 1
        assert old.version == "2.0.0"

    def test_reload_with_invalid_file_keeps_current(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_text(json.dumps(minimal_document()))
        manager = RuleConfigManager(path)
        before = manager.config

        path.write_text(json.dumps({"version": "broken"}))

        assert manager.reload() is False
        assert manager.config is before

    def test_reload_with_undecodable_file_keeps_current(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_text(json.dumps(minimal_document()))
        manager = RuleConfigManager(path)
        before = manager.config

        path.write_bytes(b"\xff\xfe{}")

        assert manager.reload() is False
        assert manager.config is before

    def test_check_for_changes_uses_mtime(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        path.write_text(json.dumps(minimal_document()))
        manager = RuleConfigManager(path)
        manager.config

        assert manager.check_for_changes() is False

        document = minimal_document()
        document["version"] = "4.0.0"
        path.write_text(json.dumps(document))
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        assert manager.check_for_changes() is True
        assert manager.config.version == "4.0.0"

    def test_update_config_persists_and_publishes(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        manager = RuleConfigManager(path)
        manager.config

        document = minimal_document({"hooks": {"conditions": ["name.startsWith('use')"],
                                               "purpose": "Hook", "confidence": 0.9}})
        config = manager.update_config(document)

        assert manager.config is config
        assert [rule.label for rule in config.purpose_rules] == ["Hook"]
        assert json.loads(path.read_text())["version"] == "2.0.0"

    def test_update_config_rejects_invalid_without_swap(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        manager = RuleConfigManager(path)
        before = manager.config

        with pytest.raises(RuleConfigError):
            manager.update_config({"purposeHeuristics": {}})

        assert manager.config is before
        assert not path.exists()

    def test_readers_see_whole_snapshots(self, tmp_path):
        path = tmp_path / "heuristics-config.json"
        manager = RuleConfigManager(path)
        seen = []

        def read():
            for _ in range(200):
                config = manager.config
                seen.append((config.version, config.fallback_purpose))

        reader = threading.Thread(target=read)
        reader.start()
        for i in range(20):
            document = copy.deepcopy(DEFAULT_RULES)
            document["version"] = f"9.{i}"
            document["purposeHeuristics"]["fallback"]["purpose"] = f"Fallback {i}"
            manager.update_config(document)
        reader.join()

        for version, fallback in seen:
            if version.startswith("9."):
                assert fallback == f"Fallback {version[2:]}"
            else:
                assert fallback == "Utility function"

    def test_watching_starts_and_stops(self, tmp_path):
        manager = RuleConfigManager(tmp_path / "heuristics-config.json", poll_interval=0.05)

        manager.start_watching()
        assert manager._watch_thread is not None and manager._watch_thread.daemon
        manager.stop_watching()
        assert manager._watch_thread is None

    def test_watching_survives_failed_check(self, tmp_path, monkeypatch):
        manager = RuleConfigManager(tmp_path / "heuristics-config.json", poll_interval=0.01)
        calls = []
        polled_twice = threading.Event()

        def failing_check():
            calls.append(1)
            if len(calls) >= 2:
                polled_twice.set()
            raise OSError("rules volume unmounted")

        monkeypatch.setattr(manager, "check_for_changes", failing_check)
        manager.start_watching()
        try:
            assert polled_twice.wait(timeout=2.0)
            assert manager._watch_thread.is_alive()
        finally:
            manager.stop_watching()
