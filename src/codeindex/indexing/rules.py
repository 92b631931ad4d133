"""
Rule Configuration for Unit Classification

This module loads, validates and hot-reloads the rule document that drives
purpose classification and bundle suggestion. Every loaded document becomes an
immutable RuleConfig snapshot; the manager publishes a new snapshot with a
single reference swap so evaluators never see a half-updated configuration.
"""

import copy
import json
import logging
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .conditions import Predicate, parse_conditions, resolve_combinator, ALL, ANY
from .default_rules import DEFAULT_RULES
from .errors import RuleConfigError

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = "./heuristics-config.json"
REQUIRED_GROUPS = ("purposeHeuristics", "bundleHeuristics", "semanticTypeMapping")


@dataclass(frozen=True)
class Rule:
    """A single classification rule."""
    name: str
    conditions: Tuple[str, ...]
    predicates: Tuple[Predicate, ...]
    label: str
    confidence: float
    combinator: str = ALL
    sub_rules: Tuple["Rule", ...] = ()


@dataclass(frozen=True)
class BundleFallback:
    """Two-tier fallback applied when no bundle rule matched."""
    path_rule: Optional[Rule] = None
    default_labels: Tuple[str, ...] = ()
    default_confidence: float = 0.0


@dataclass(frozen=True)
class RuleConfig:
    """Immutable snapshot of a validated rule document."""
    version: str
    purpose_rules: Tuple[Rule, ...]
    fallback_purpose: str
    fallback_confidence: float
    bundle_rules: Tuple[Rule, ...]
    bundle_fallback: BundleFallback
    type_clusters: Tuple[Tuple[str, int], ...]
    document: str
    source: str = "default"
    revision: int = 0

    @property
    def semantic_type_mapping(self) -> Dict[str, int]:
        return dict(self.type_clusters)

    def to_dict(self) -> Dict[str, Any]:
        return json.loads(self.document)


def _require_mapping(value: Any, where: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise RuleConfigError(f"{where} must be an object")
    return value


def _confidence(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleConfigError(f"{where}.confidence must be a number")
    if not 0.0 <= float(value) <= 1.0:
        raise RuleConfigError(f"{where}.confidence must be within [0, 1]")
    return float(value)


def _label(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RuleConfigError(f"{where} must be a non-empty string")
    return value


def _build_rule(name: str, raw: Any, label_key: str, where: str) -> Rule:
    raw = _require_mapping(raw, where)

    conditions = raw.get("conditions")
    if isinstance(conditions, str):
        conditions = [conditions]
    if not isinstance(conditions, list) or not conditions or not all(isinstance(c, str) for c in conditions):
        raise RuleConfigError(f"{where}.conditions must be a non-empty list of strings")

    explicit = raw.get("match")
    if explicit is not None and explicit not in (ALL, ANY):
        raise RuleConfigError(f"{where}.match must be '{ALL}' or '{ANY}'")

    sub_rules_raw = raw.get("subPatterns", raw.get("subRules")) or {}
    sub_rules = tuple(
        _build_rule(sub_name, sub_raw, label_key, f"{where}.subPatterns.{sub_name}")
        for sub_name, sub_raw in _require_mapping(sub_rules_raw, f"{where}.subPatterns").items()
    )

    predicates = parse_conditions(conditions)
    return Rule(
        name=name,
        conditions=tuple(conditions),
        predicates=predicates,
        label=_label(raw.get(label_key), f"{where}.{label_key}"),
        confidence=_confidence(raw.get("confidence", 0.0), where),
        combinator=resolve_combinator(predicates, explicit),
        sub_rules=sub_rules,
    )


def _build_rules(patterns: Any, label_key: str, where: str) -> Tuple[Rule, ...]:
    patterns = _require_mapping(patterns, f"{where}.patterns")
    return tuple(
        _build_rule(name, raw, label_key, f"{where}.patterns.{name}")
        for name, raw in patterns.items()
    )


def build_rule_config(document: Any, source: str = "inline") -> RuleConfig:
    """
    Validate a rule document and build its snapshot.

    Validation is all-or-nothing: any structural problem raises
    RuleConfigError and nothing is built.
    """
    document = _require_mapping(document, "rule document")
    for group in REQUIRED_GROUPS:
        if group not in document:
            raise RuleConfigError(f"Missing required field: {group}")

    purpose = _require_mapping(document["purposeHeuristics"], "purposeHeuristics")
    if "patterns" not in purpose or "fallback" not in purpose:
        raise RuleConfigError("Invalid purposeHeuristics structure")
    purpose_fallback = _require_mapping(purpose["fallback"], "purposeHeuristics.fallback")

    bundles = _require_mapping(document["bundleHeuristics"], "bundleHeuristics")
    if "patterns" not in bundles or "fallback" not in bundles:
        raise RuleConfigError("Invalid bundleHeuristics structure")
    bundle_fallback_raw = _require_mapping(bundles["fallback"], "bundleHeuristics.fallback")

    path_rule = None
    if bundle_fallback_raw.get("webFallback") is not None:
        path_rule = _build_rule("webFallback", bundle_fallback_raw["webFallback"], "bundle",
                                "bundleHeuristics.fallback.webFallback")

    default_labels: Tuple[str, ...] = ()
    default_confidence = 0.0
    if bundle_fallback_raw.get("defaultFallback") is not None:
        default_raw = _require_mapping(bundle_fallback_raw["defaultFallback"], "bundleHeuristics.fallback.defaultFallback")
        labels = default_raw.get("bundles")
        if not isinstance(labels, list) or not all(isinstance(label, str) for label in labels):
            raise RuleConfigError("bundleHeuristics.fallback.defaultFallback.bundles must be a list of strings")
        default_labels = tuple(labels)
        default_confidence = _confidence(default_raw.get("confidence", 0.0), "bundleHeuristics.fallback.defaultFallback")

    mapping = _require_mapping(document["semanticTypeMapping"], "semanticTypeMapping")
    clusters = _require_mapping(mapping.get("clusters"), "semanticTypeMapping.clusters")
    type_clusters = []
    for cluster_name, cluster in clusters.items():
        cluster = _require_mapping(cluster, f"semanticTypeMapping.clusters.{cluster_name}")
        types = cluster.get("types")
        cluster_id = cluster.get("clusterId")
        if not isinstance(types, list) or not all(isinstance(t, str) for t in types):
            raise RuleConfigError(f"Invalid cluster definition: {cluster_name}")
        if isinstance(cluster_id, bool) or not isinstance(cluster_id, int):
            raise RuleConfigError(f"Invalid cluster definition: {cluster_name}")
        type_clusters.extend((semantic_type, cluster_id) for semantic_type in types)

    return RuleConfig(
        version=str(document.get("version", "1.0.0")),
        purpose_rules=_build_rules(purpose["patterns"], "purpose", "purposeHeuristics"),
        fallback_purpose=_label(purpose_fallback.get("purpose"), "purposeHeuristics.fallback.purpose"),
        fallback_confidence=_confidence(purpose_fallback.get("confidence", 0.5), "purposeHeuristics.fallback"),
        bundle_rules=_build_rules(bundles["patterns"], "bundle", "bundleHeuristics"),
        bundle_fallback=BundleFallback(
            path_rule=path_rule,
            default_labels=default_labels,
            default_confidence=default_confidence,
        ),
        type_clusters=tuple(type_clusters),
        document=json.dumps(document, sort_keys=False),
        source=source,
    )


def default_rule_config() -> RuleConfig:
    return build_rule_config(copy.deepcopy(DEFAULT_RULES), source="default")


def read_rule_document(source: Union[str, Path, Mapping]) -> Tuple[Any, str]:
    """Turn a path, JSON text or mapping into (document, description)."""
    if isinstance(source, Mapping):
        return copy.deepcopy(dict(source)), "inline"
    if isinstance(source, str) and source.lstrip().startswith("{"):
        try:
            return json.loads(source), "inline"
        except json.JSONDecodeError as e:
            raise RuleConfigError(f"Invalid JSON: {e}") from e

    path = Path(source)
    if not path.exists():
        raise RuleConfigError(f"Rule config not found at {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8")), str(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise RuleConfigError(f"Cannot read {path}: {e}") from e


class RuleConfigManager:
    """
    Owns the active rule snapshot.

    Readers use ``config`` and keep the returned snapshot for the duration of
    an evaluation. Writers (load, reload, update) build the replacement first
    and publish it in one assignment.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = DEFAULT_RULES_PATH, poll_interval: float = 2.0):
        self.config_path = Path(config_path) if config_path else None
        self.poll_interval = poll_interval
        self.last_loaded: Optional[float] = None

        self._config: Optional[RuleConfig] = None
        self._revision = 0
        self._write_lock = threading.Lock()
        self._last_mtime: Optional[float] = None
        self._watch_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def config(self) -> RuleConfig:
        config = self._config
        if config is None:
            config = self.load_config()
        return config

    def _publish(self, config: RuleConfig) -> RuleConfig:
        with self._write_lock:
            self._revision += 1
            config = replace(config, revision=self._revision)
            self._config = config
            self.last_loaded = time.time()
        return config

    def _current_mtime(self) -> Optional[float]:
        if self.config_path is None:
            return None
        try:
            return self.config_path.stat().st_mtime
        except OSError:
            return None

    def load_config(self, source: Optional[Union[str, Path, Mapping]] = None) -> RuleConfig:
        """
        Load and activate a rule document.

        Args:
            source: A path, JSON text or mapping. Defaults to the backing file.

        Returns:
            The active snapshot. Falls back to the built-in rules on any error.
        """
        if source is None and self.config_path is None:
            return self._publish(default_rule_config())

        try:
            document, description = read_rule_document(source if source is not None else self.config_path)
            config = build_rule_config(document, source=description)
        except RuleConfigError as e:
            logger.error(f"❌ Failed to load rule config: {e}")
            logger.info("📦 Falling back to built-in rules")
            config = default_rule_config()
        else:
            logger.info(f"✅ Rule configuration loaded from {description}")

        if source is None:
            self._last_mtime = self._current_mtime()
        return self._publish(config)

    def reload(self) -> bool:
        """
        Re-read the backing file and publish it.

        An invalid file leaves the current snapshot in place.

        Returns:
            True if a new snapshot was published.
        """
        if self.config_path is None:
            return False

        self._last_mtime = self._current_mtime()
        try:
            document, description = read_rule_document(self.config_path)
            config = build_rule_config(document, source=description)
        except RuleConfigError as e:
            logger.error(f"❌ Rule config reload rejected, keeping current rules: {e}")
            return False

        self._publish(config)
        logger.info("📝 Rule config file changed, reloaded")
        return True

    def check_for_changes(self) -> bool:
        """Reload if the backing file's modification time changed."""
        mtime = self._current_mtime()
        if mtime is None or mtime == self._last_mtime:
            return False
        return self.reload()

    def update_config(self, new_config: Union[Mapping, RuleConfig]) -> RuleConfig:
        """
        Validate, persist and activate a new rule document.

        Raises:
            RuleConfigError: If the document is invalid. The active snapshot is unchanged.
        """
        document = new_config.to_dict() if isinstance(new_config, RuleConfig) else copy.deepcopy(dict(new_config))
        config = build_rule_config(document, source=str(self.config_path) if self.config_path else "inline")

        if self.config_path is not None:
            try:
                self.config_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
            except OSError as e:
                raise RuleConfigError(f"Cannot write {self.config_path}: {e}") from e
            self._last_mtime = self._current_mtime()

        config = self._publish(config)
        logger.info("📝 Rule configuration updated and saved")
        return config

    def start_watching(self, interval: Optional[float] = None) -> None:
        """Poll the backing file for changes from a daemon thread."""
        if self._watch_thread and self._watch_thread.is_alive():
            return
        interval = interval if interval is not None else self.poll_interval
        self._stop_event.clear()
        self._watch_thread = threading.Thread(target=self._watch, args=(interval,), daemon=True)
        self._watch_thread.start()

    def stop_watching(self) -> None:
        self._stop_event.set()
        if self._watch_thread and self._watch_thread.is_alive():
            self._watch_thread.join(timeout=1.0)
        self._watch_thread = None

    def _watch(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            try:
                self.check_for_changes()
            except Exception as e:
                logger.error(f"❌ Rule config check failed: {e}")
