"""Immutable in-memory view of a pairwise distance relation.

Distances are stored in a dense symmetric matrix indexed by item rank (the
position of the item in sorted order). Missing pairs are ``inf`` and the
diagonal is ``0``. Duplicate rows for the same unordered pair are accepted only
when they agree on the distance.
"""

from __future__ import annotations

import math
import numbers
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

import numpy as np
import pandas as pd

from linkage_api.src.models.data_models import DistanceRecord
from linkage_api.src.models.errors import MalformedInputError

Item = Union[int, str]
RawRecord = Union[DistanceRecord, Mapping[str, Any], Sequence[Any]]

DEFAULT_ID_COLUMNS = ("item_a", "item_b")
DEFAULT_DISTANCE_COLUMN = "distance"


@dataclass(frozen=True, slots=True, eq=False)
class DistanceSet:
    """Symmetric, possibly sparse, distance relation over a sorted item universe."""

    items: tuple[Item, ...]
    matrix: np.ndarray = field(repr=False)
    n_pairs: int
    _index: dict[Item, int] = field(repr=False)

    @classmethod
    def from_records(
        cls,
        records: Iterable[RawRecord],
        *,
        items: Iterable[Item] = (),
    ) -> DistanceSet:
        """Build a distance set from records, mappings or ``(a, b, distance)`` rows.

        Args:
            records: Distance rows. Mappings use the ``item_a``/``item_b``/``distance`` keys.
            items: Extra items that belong to the universe without any distance.

        Raises:
            MalformedInputError: a row is invalid or conflicts with an earlier row.
        """
        pairs: dict[tuple[Item, Item], float] = {}
        universe: set[Item] = set()
        for position, record in enumerate(records):
            item_a, item_b, distance = _unpack(record, position)
            a = _normalize_item(item_a, position)
            b = _normalize_item(item_b, position)
            value = _normalize_distance(distance, position)
            if a == b:
                msg = f"Row {position}: item {a!r} cannot have a distance to itself"
                raise MalformedInputError(msg)
            _check_item_kind(universe, a, position)
            _check_item_kind(universe, b, position)
            key = (a, b) if a < b else (b, a)
            previous = pairs.get(key)
            if previous is not None and previous != value:
                msg = (
                    f"Row {position}: conflicting distances for pair {key!r}, "
                    f"got {value} after {previous}"
                )
                raise MalformedInputError(msg)
            pairs[key] = value
            universe.add(a)
            universe.add(b)
        for extra in items:
            item = _normalize_item(extra, None)
            _check_item_kind(universe, item, None)
            universe.add(item)
        return cls._from_pairs(universe, pairs)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        id_column_1: str = DEFAULT_ID_COLUMNS[0],
        id_column_2: str = DEFAULT_ID_COLUMNS[1],
        distance_column: str = DEFAULT_DISTANCE_COLUMN,
    ) -> DistanceSet:
        """Build a distance set from a relation with named id and distance columns."""
        missing = [
            column
            for column in (id_column_1, id_column_2, distance_column)
            if column not in frame.columns
        ]
        if missing:
            msg = f"Distance relation is missing columns: {', '.join(missing)}"
            raise MalformedInputError(msg)
        rows = zip(
            frame[id_column_1].tolist(),
            frame[id_column_2].tolist(),
            frame[distance_column].tolist(),
        )
        return cls.from_records(rows)

    @classmethod
    def _from_pairs(
        cls, universe: set[Item], pairs: dict[tuple[Item, Item], float]
    ) -> DistanceSet:
        ordered = tuple(sorted(universe))
        index = {item: rank for rank, item in enumerate(ordered)}
        n_items = len(ordered)
        matrix = np.full((n_items, n_items), np.inf, dtype=float)
        np.fill_diagonal(matrix, 0.0)
        for (a, b), value in pairs.items():
            i, j = index[a], index[b]
            matrix[i, j] = value
            matrix[j, i] = value
        matrix.setflags(write=False)
        return cls(items=ordered, matrix=matrix, n_pairs=len(pairs), _index=index)

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item: object) -> bool:
        return item in self._index

    @property
    def is_complete(self) -> bool:
        """True when every unordered pair of distinct items has a distance."""
        n_items = len(self.items)
        return self.n_pairs == n_items * (n_items - 1) // 2

    def rank(self, item: Item) -> int:
        try:
            return self._index[item]
        except KeyError:
            msg = f"Unknown item: {item!r}"
            raise MalformedInputError(msg) from None

    def distance(self, item_a: Item, item_b: Item) -> float | None:
        """Distance between two items, or None when the pair is absent."""
        value = float(self.matrix[self.rank(item_a), self.rank(item_b)])
        return None if math.isinf(value) else value

    def pairs(self) -> Iterator[tuple[Item, Item, float]]:
        """Yield every present pair once, ``item_a < item_b``, in rank order."""
        rows, cols = np.triu_indices(len(self.items), k=1)
        values = self.matrix[rows, cols]
        present = np.isfinite(values)
        for i, j, value in zip(
            rows[present].tolist(), cols[present].tolist(), values[present].tolist()
        ):
            yield self.items[i], self.items[j], value

    def to_frame(
        self,
        id_column_1: str = DEFAULT_ID_COLUMNS[0],
        id_column_2: str = DEFAULT_ID_COLUMNS[1],
        distance_column: str = DEFAULT_DISTANCE_COLUMN,
    ) -> pd.DataFrame:
        rows = list(self.pairs())
        return pd.DataFrame(rows, columns=[id_column_1, id_column_2, distance_column])


def _unpack(record: RawRecord, position: int) -> tuple[Any, Any, Any]:
    if isinstance(record, DistanceRecord):
        return record.item_a, record.item_b, record.distance
    if isinstance(record, Mapping):
        try:
            return record["item_a"], record["item_b"], record["distance"]
        except KeyError as exc:
            msg = f"Row {position}: missing field {exc.args[0]!r}"
            raise MalformedInputError(msg) from exc
    if isinstance(record, Sequence) and not isinstance(record, str) and len(record) == 3:
        return record[0], record[1], record[2]
    msg = f"Row {position}: unsupported distance record {record!r}"
    raise MalformedInputError(msg)


def _normalize_item(value: Any, position: int | None) -> Item:
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        return value
    where = f"Row {position}: " if position is not None else ""
    msg = f"{where}item ids must be integers or strings, got {value!r}"
    raise MalformedInputError(msg)


def _normalize_distance(value: Any, position: int) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        msg = f"Row {position}: distance must be a real number, got {value!r}"
        raise MalformedInputError(msg)
    distance = float(value)
    if not math.isfinite(distance) or distance < 0:
        msg = f"Row {position}: distance must be finite and non-negative, got {distance}"
        raise MalformedInputError(msg)
    return distance


def _check_item_kind(universe: set[Item], item: Item, position: int | None) -> None:
    if not universe:
        return
    sample = next(iter(universe))
    if isinstance(sample, int) != isinstance(item, int):
        where = f"Row {position}: " if position is not None else ""
        msg = f"{where}item {item!r} does not match the id type of the relation"
        raise MalformedInputError(msg)
