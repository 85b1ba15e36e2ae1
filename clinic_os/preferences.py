"""Persistent UI preferences, namespaced per view."""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Protocol, Union

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool]


def _check_scalar(value: Any) -> None:
    if not isinstance(value, (str, int, float, bool)):
        raise TypeError(f"Preferences hold scalar values only, got {type(value).__name__}")


def namespaced_key(view_name: str, key: str) -> str:
    return f"{view_name}_{key}"


class PreferenceStore(Protocol):
    def get(self, view_name: str, key: str, default: Optional[Scalar] = None) -> Optional[Scalar]: ...

    def set(self, view_name: str, key: str, value: Scalar) -> None: ...


class InMemoryPreferenceStore:
    """Process-local store, mainly for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, Scalar]] = None):
        self._data: dict[str, Scalar] = dict(initial or {})
        self.writes = 0

    def get(self, view_name: str, key: str, default: Optional[Scalar] = None) -> Optional[Scalar]:
        return self._data.get(namespaced_key(view_name, key), default)

    def set(self, view_name: str, key: str, value: Scalar) -> None:
        _check_scalar(value)
        self._data[namespaced_key(view_name, key)] = value
        self.writes += 1

    def as_dict(self) -> dict[str, Scalar]:
        return dict(self._data)


class JsonFilePreferenceStore:
    """Store backed by a single JSON object on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Scalar]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text() or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable preferences file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, view_name: str, key: str, default: Optional[Scalar] = None) -> Optional[Scalar]:
        return self._load().get(namespaced_key(view_name, key), default)

    def set(self, view_name: str, key: str, value: Scalar) -> None:
        _check_scalar(value)
        data = self._load()
        data[namespaced_key(view_name, key)] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True))
        tmp.replace(self.path)


class PersistedSetting:
    """A single preference bound to a view component.

    Hydration reads the stored value (or the default) without writing it
    back; updates made before hydration completes are kept in memory only,
    so a component default never overwrites what the user saved.
    """

    def __init__(self, store: PreferenceStore, view_name: str, key: str, default: Scalar):
        self.store = store
        self.view_name = view_name
        self.key = key
        self.default = default
        self._value: Scalar = default
        self._initial_load = True

    def hydrate(self) -> Scalar:
        stored = self.store.get(self.view_name, self.key, None)
        if stored is not None:
            self._value = self._coerce(stored)
        self._initial_load = False
        return self._value

    @property
    def value(self) -> Scalar:
        return self._value

    def update(self, value: Scalar) -> None:
        _check_scalar(value)
        self._value = value
        if self._initial_load:
            return
        self.store.set(self.view_name, self.key, value)

    def _coerce(self, stored: Scalar) -> Scalar:
        # Browser-era stores kept everything as strings.
        if isinstance(self.default, bool) or not isinstance(stored, str):
            return stored
        if isinstance(self.default, int):
            try:
                return int(stored)
            except ValueError:
                return self.default
        if isinstance(self.default, float):
            try:
                return float(stored)
            except ValueError:
                return self.default
        return stored
