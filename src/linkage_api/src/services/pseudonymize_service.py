from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Any

import pandas as pd
from loguru import logger

from linkage_api.src.models.errors import (
    PseudonymCollisionError,
    PseudonymizationError,
    UnknownPseudonymError,
)

MAPPING_COLUMNS = ["original", "pseudonym"]
_MISSING = object()


class Pseudonymizer:
    """Reversible replacement of column values by truncated SHA-256 identifiers.

    A pseudonym is derived from ``secret``, an attempt counter and the value.
    When the digest is already owned by a different value the counter is bumped
    and the digest regenerated, up to ``max_retries`` times.
    """

    def __init__(self, hash_length: int = 16, max_retries: int = 8, secret: str = "") -> None:
        if not 4 <= hash_length <= 64:
            msg = f"hash_length must be between 4 and 64, got {hash_length}"
            raise ValueError(msg)
        if max_retries < 0:
            msg = f"max_retries must be non-negative, got {max_retries}"
            raise ValueError(msg)
        self._hash_length = hash_length
        self._max_retries = max_retries
        self._secret = secret

    def pseudonym_for(self, value: Any, taken: dict[str, Any]) -> str:
        """Return a pseudonym for ``value`` that no other value in ``taken`` owns."""
        for attempt in range(self._max_retries + 1):
            digest = self._digest(value, attempt)
            owner = taken.get(digest, _MISSING)
            if owner is _MISSING or owner == value:
                return digest
            logger.bind(event="pseudonym_collision", attempt=attempt).debug(
                "Pseudonym collision, regenerating"
            )
        msg = (
            f"No collision-free pseudonym for {value!r} after "
            f"{self._max_retries + 1} attempts"
        )
        raise PseudonymCollisionError(msg)

    def build_mapping(
        self, values: Iterable[Any], mapping: pd.DataFrame | None = None,
    ) -> pd.DataFrame:
        """Extend ``mapping`` with a pseudonym for every new non-null value."""
        originals: list[Any] = []
        pseudonyms: list[str] = []
        if mapping is not None:
            originals = mapping["original"].tolist()
            pseudonyms = mapping["pseudonym"].tolist()
        taken = dict(zip(pseudonyms, originals))
        known = set(originals)
        for value in values:
            if pd.isna(value) or value in known:
                continue
            pseudonym = self.pseudonym_for(value, taken)
            taken[pseudonym] = value
            known.add(value)
            originals.append(value)
            pseudonyms.append(pseudonym)
        return pd.DataFrame({"original": originals, "pseudonym": pseudonyms}, columns=MAPPING_COLUMNS)

    def map_column(
        self, frame: pd.DataFrame, column: str, mapping: pd.DataFrame | None = None,
    ) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Replace ``column`` by pseudonyms; returns the new frame and the mapping."""
        self._require_column(frame, column)
        mapping = self.build_mapping(frame[column].tolist(), mapping)
        lookup = dict(zip(mapping["original"].tolist(), mapping["pseudonym"].tolist()))
        result = frame.copy()
        result[column] = [
            value if pd.isna(value) else lookup[value] for value in frame[column].tolist()
        ]
        logger.bind(
            event="column_pseudonymized", column=column, distinct_values=len(lookup),
        ).info("Column pseudonymized")
        return result, mapping

    def unmap_column(
        self, frame: pd.DataFrame, column: str, mapping: pd.DataFrame,
    ) -> pd.DataFrame:
        """Restore the original values of a pseudonymized column."""
        self._require_column(frame, column)
        reverse = dict(zip(mapping["pseudonym"].tolist(), mapping["original"].tolist()))
        restored = []
        for value in frame[column].tolist():
            if pd.isna(value):
                restored.append(value)
                continue
            if value not in reverse:
                msg = f"Unknown pseudonym in column {column!r}: {value!r}"
                raise UnknownPseudonymError(msg)
            restored.append(reverse[value])
        result = frame.copy()
        result[column] = restored
        return result

    def _digest(self, value: Any, attempt: int) -> str:
        payload = f"{self._secret}:{attempt}:{value}".encode()
        return hashlib.sha256(payload).hexdigest()[: self._hash_length]

    def _require_column(self, frame: pd.DataFrame, column: str) -> None:
        if column not in frame.columns:
            msg = f"Column not found: {column}"
            raise PseudonymizationError(msg)
