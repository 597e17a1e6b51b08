"""Narrow storage interface used to exchange relations with the data platform.

Relations are pandas DataFrames addressed by name. The in-memory store backs
the API and the tests; CSV helpers import and export relations on disk.
"""

from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import Protocol

import numpy as np
import pandas as pd

from linkage_api.src.models.errors import MalformedInputError, RelationNotFoundError


class RelationStore(Protocol):
    def read(self, name: str) -> pd.DataFrame: ...

    def write(self, name: str, frame: pd.DataFrame) -> None: ...

    def exists(self, name: str) -> bool: ...

    def drop(self, name: str) -> None: ...

    def names(self) -> list[str]: ...


class InMemoryRelationStore:
    """Thread-safe dictionary of named relations; reads return copies."""

    def __init__(self) -> None:
        self._relations: dict[str, pd.DataFrame] = {}
        self._lock = Lock()

    def read(self, name: str) -> pd.DataFrame:
        with self._lock:
            frame = self._relations.get(name)
        if frame is None:
            raise RelationNotFoundError(name)
        return frame.copy()

    def write(self, name: str, frame: pd.DataFrame) -> None:
        if not name:
            msg = "relation name must be a non-empty string"
            raise ValueError(msg)
        with self._lock:
            self._relations[name] = frame.copy()

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._relations

    def drop(self, name: str) -> None:
        with self._lock:
            if self._relations.pop(name, None) is None:
                raise RelationNotFoundError(name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._relations)

    def clear(self) -> None:
        with self._lock:
            self._relations.clear()


def save_csv(store: RelationStore, name: str, path: str | Path) -> str:
    """Write a relation to CSV with every cell stored as a JSON value.

    JSON cells keep string ids such as ``"007"`` apart from integers and keep
    member arrays intact, so :func:`load_csv` restores the same relation.
    """
    frame = store.read(name)
    for column in frame.columns:
        frame[column] = [json.dumps(value, default=_native) for value in frame[column].tolist()]
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(target, index=False)
    return str(target)


def load_csv(store: RelationStore, name: str, path: str | Path) -> pd.DataFrame:
    """Load a CSV file written by :func:`save_csv` into the store under ``name``."""
    frame = pd.read_csv(Path(path), dtype=str, keep_default_na=False)
    for column in frame.columns:
        try:
            frame[column] = [json.loads(cell) for cell in frame[column].tolist()]
        except json.JSONDecodeError as exc:
            msg = f"Column {column!r} of {path} does not hold JSON values: {exc}"
            raise MalformedInputError(msg) from exc
    store.write(name, frame)
    return frame


def _native(value: object) -> object:
    if isinstance(value, np.generic):
        return value.item()
    msg = f"Cannot store {type(value).__name__} values in a CSV relation"
    raise TypeError(msg)


relation_store = InMemoryRelationStore()
