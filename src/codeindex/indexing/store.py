"""
In-memory store of classified units, keyed by file path.

Units of one file keep extraction order. Re-scanning a file replaces its
previous units as a whole.
"""

import threading
from typing import Dict, List

from .classifier import ClassifiedUnit


class ClassifiedUnitStore:
    """Simple in-memory unit store for a single project."""

    def __init__(self):
        self._units: Dict[str, List[ClassifiedUnit]] = {}
        self._lock = threading.Lock()

    def replace_file(self, file_path: str, units: List[ClassifiedUnit]) -> None:
        with self._lock:
            self._units[file_path] = list(units)

    def remove_file(self, file_path: str) -> bool:
        with self._lock:
            return self._units.pop(file_path, None) is not None

    def get_units(self, file_path: str) -> List[ClassifiedUnit]:
        with self._lock:
            return list(self._units.get(file_path, ()))

    def all_units(self) -> List[ClassifiedUnit]:
        """All units, files in insertion order."""
        with self._lock:
            return [unit for units in self._units.values() for unit in units]

    def file_paths(self) -> List[str]:
        with self._lock:
            return list(self._units)

    def clear(self) -> None:
        with self._lock:
            self._units.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(units) for units in self._units.values())
