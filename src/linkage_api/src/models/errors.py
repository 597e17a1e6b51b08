"""Error taxonomy shared by the linkage engine, the pseudonymizer and the API."""

from __future__ import annotations


class LinkageError(ValueError):
    """Base class for every rejection raised by the clustering engine."""


class MalformedInputError(LinkageError):
    """A distance record breaks symmetry, uniqueness or non-negativity."""


class DisconnectedInputError(LinkageError):
    """Complete linkage cannot join every item under the available distances."""

    def __init__(self, message: str, remaining_clusters: int | None = None) -> None:
        super().__init__(message)
        self.remaining_clusters = remaining_clusters


class InvalidThresholdError(LinkageError):
    """The cut height is outside of the non-negative reals."""


class DegenerateInputError(LinkageError):
    """Fewer than two items were supplied."""


class PseudonymizationError(ValueError):
    """Base class for pseudonymization failures."""


class PseudonymCollisionError(PseudonymizationError):
    """No collision-free pseudonym was found within the retry budget."""


class UnknownPseudonymError(PseudonymizationError):
    """A value being restored has no entry in the mapping."""


class RelationNotFoundError(KeyError):
    """The named relation is not present in the store."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Relation not found: {self.name}"
