"""
Smart Bundle Resolution

Bundles are not configured anywhere. They are derived from the labels that
classification has put on the units currently in the store, so they update
themselves whenever the store changes:

- ``smart:<purpose-slug>``: every file with a unit of that purpose
- ``smart:type-<pattern-slug>``: every file with a unit carrying that pattern
  (unit kinds such as ``react_component`` resolve the same way)
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Set

from .store import ClassifiedUnitStore

logger = logging.getLogger(__name__)

SMART_PREFIX = "smart:"
TYPE_PREFIX = "type-"


def slugify(label: str) -> str:
    """Lower-case slug: whitespace and underscores become dashes."""
    return re.sub(r'\s+', '-', label.strip().lower()).replace('_', '-')


@dataclass
class BundleDefinition:
    """Summary of one smart bundle."""
    name: str
    label: str
    source: str
    file_count: int
    description: str


class BundleResolver:
    """Resolves classification labels to file sets from the unit store."""

    def __init__(self, store: ClassifiedUnitStore):
        self.store = store

    def list_dynamic_labels(self) -> List[str]:
        """Distinct purposes, then distinct patterns, each group sorted."""
        units = self.store.all_units()
        purposes = sorted({unit.purpose for unit in units if unit.purpose})
        patterns = sorted({pattern for unit in units for pattern in unit.patterns} - set(purposes))
        return purposes + patterns

    @staticmethod
    def _files_where(units: Iterable, predicate) -> Set[str]:
        return {unit.file_path for unit in units if predicate(unit)}

    def resolve(self, label: str) -> Set[str]:
        """
        Resolve a bundle label to the set of files it covers.

        Accepts a bare label (``React component``, ``react-hooks``), a smart
        bundle name (``smart:react-component``) or a type bundle name
        (``smart:type-react-hooks``). Unknown labels resolve to an empty set.
        """
        if not isinstance(label, str) or not label.strip():
            return set()

        query = label.strip()
        type_only = False
        if query.lower().startswith(SMART_PREFIX):
            query = query[len(SMART_PREFIX):]
            # The type- marker only has meaning inside a smart bundle name
            type_only = query.lower().startswith(TYPE_PREFIX)
            if type_only:
                query = query[len(TYPE_PREFIX):]
        slug = slugify(query)
        if not slug:
            return set()

        units = self.store.all_units()

        files = self._files_where(
            units,
            lambda unit: slugify(unit.kind) == slug or any(slugify(p) == slug for p in unit.patterns)
        )
        if files or type_only:
            return files

        return self._files_where(units, lambda unit: bool(unit.purpose) and slugify(unit.purpose) == slug)

    def bundle_definitions(self) -> List[BundleDefinition]:
        """Smart bundle summaries for every label present in the store."""
        units = self.store.all_units()
        definitions = []

        for purpose in sorted({unit.purpose for unit in units if unit.purpose}):
            files = self._files_where(units, lambda unit: unit.purpose == purpose)
            definitions.append(BundleDefinition(
                name=f"{SMART_PREFIX}{slugify(purpose)}",
                label=purpose,
                source="purpose",
                file_count=len(files),
                description=f"Automatically grouped by purpose: {purpose}",
            ))

        for pattern in sorted({pattern for unit in units for pattern in unit.patterns}):
            files = self._files_where(units, lambda unit: pattern in unit.patterns)
            definitions.append(BundleDefinition(
                name=f"{SMART_PREFIX}{TYPE_PREFIX}{slugify(pattern)}",
                label=pattern,
                source="pattern",
                file_count=len(files),
                description=f"All {pattern} units across the codebase",
            ))

        logger.debug(f"📦 {len(definitions)} smart bundles")
        return [d for d in definitions if d.file_count > 0]
