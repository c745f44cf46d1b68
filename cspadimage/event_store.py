"""
Minimal event and configuration stores.

Stand-ins for the host framework's stores: objects are kept per
(source, key) and looked up by type, the way psana's evt.get() and
env.configStore().get() resolve a requested type for a source.
"""

from typing import Any, Dict, List, Optional, Tuple
from .data_types import NDArrayType


def _type_matches(type_, value) -> bool:
    if isinstance(type_, NDArrayType):
        return type_.matches(value)
    return type(value) is type_


class Event:
    """
    Per-event object store.

    Usage:
        evt = Event()
        evt.put(raw, "CxiDs1.0:Cspad.0", "calibrated")
        raw = evt.get(NDArrayType(np.float32), "CxiDs1.0:Cspad.0", "calibrated")
    """

    def __init__(self):
        self._store: Dict[Tuple[str, str], List[Any]] = {}

    def put(self, value: Any, source: str, key: str = ""):
        """Add an object under (source, key)."""
        self._store.setdefault((source, key), []).append(value)

    def get(self, type_, source: str, key: str = "") -> Optional[Any]:
        """
        Get the object of the requested type stored under (source, key).

        Args:
            type_: Class of the object, or an NDArrayType for raw arrays
            source: Data source name
            key: Object key ("" for raw data)

        Returns:
            The first matching object, or None
        """
        for value in self._store.get((source, key), ()):
            if _type_matches(type_, value):
                return value
        return None

    def keys(self) -> List[Tuple[str, str]]:
        return list(self._store.keys())


class ConfigStore:
    """Configuration objects valid for the current run or calibration cycle."""

    def __init__(self):
        self._store: Dict[str, List[Any]] = {}

    def put(self, value: Any, source: str):
        self._store.setdefault(source, []).append(value)

    def get(self, type_, source: str) -> Optional[Any]:
        for value in self._store.get(source, ()):
            if _type_matches(type_, value):
                return value
        return None


class Env:
    """
    Job environment handed to every lifecycle call.
    """

    def __init__(self, config_store: Optional[ConfigStore] = None, run_number: int = 0):
        self.config_store = config_store if config_store is not None else ConfigStore()
        self.run_number = run_number
