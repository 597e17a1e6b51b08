from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictInt, StrictStr, ValidationInfo, field_validator

ItemId = Union[StrictInt, StrictStr]


class DistanceRecord(BaseModel):
    """One row of the pairwise distance relation."""

    item_a: ItemId
    item_b: ItemId
    distance: float = Field(..., ge=0.0, allow_inf_nan=False)

    @field_validator("item_b")
    def _distinct_items(cls, value: ItemId, info: ValidationInfo) -> ItemId:
        if (info.data or {}).get("item_a") == value:
            raise ValueError("A distance record must join two distinct items")
        return value


class ChildRef(BaseModel):
    """Reference to a merge child: an original item or an earlier merge."""

    kind: Literal["leaf", "merge"]
    ref: ItemId

    @field_validator("ref")
    def _merge_ref_is_node_id(cls, value: ItemId, info: ValidationInfo) -> ItemId:
        if (info.data or {}).get("kind") == "merge":
            if not isinstance(value, int) or value < 0:
                raise ValueError("Merge references must be non-negative node ids")
        return value


class MergeEvent(BaseModel):
    """A single internal node of the dendrogram, as exposed to callers."""

    node_id: int = Field(..., ge=0)
    left: ChildRef
    right: ChildRef
    height: float = Field(..., ge=0.0)
    size: int = Field(..., ge=2)
    members: List[ItemId] = Field(default_factory=list)

    @field_validator("members")
    def _size_consistency(
        cls, members: List[ItemId], info: ValidationInfo
    ) -> List[ItemId]:
        expected_size = (info.data or {}).get("size")
        if expected_size is None or not members:
            return members
        if expected_size != len(members):
            raise ValueError("Merge size must equal the number of members")
        return members


class FlatCluster(BaseModel):
    """One cell of the partition produced by cutting the dendrogram."""

    cluster_id: int = Field(..., ge=0)
    members: List[ItemId] = Field(..., min_length=1)
    height: float = Field(..., ge=0.0)
    exemplar: ItemId

    @field_validator("exemplar")
    def _exemplar_is_member(cls, value: ItemId, info: ValidationInfo) -> ItemId:
        members = (info.data or {}).get("members")
        if members is not None and value not in members:
            raise ValueError("Exemplar must be one of the cluster members")
        return value


class CutSummary(BaseModel):
    """Aggregated statistics for a single cut."""

    total_clusters: int = Field(..., ge=0)
    total_items: int = Field(..., ge=0)
    singleton_clusters: int = Field(..., ge=0)
    singleton_ratio: float = Field(..., ge=0.0, le=1.0)
    max_height: float = Field(..., ge=0.0)
    threshold: Optional[float] = None

    @classmethod
    def from_clusters(
        cls, clusters: List[FlatCluster], threshold: Optional[float] = None
    ) -> "CutSummary":
        total_clusters = len(clusters)
        total_items = sum(len(cluster.members) for cluster in clusters)
        singletons = sum(1 for cluster in clusters if len(cluster.members) == 1)
        max_height = max((cluster.height for cluster in clusters), default=0.0)
        return cls(
            total_clusters=total_clusters,
            total_items=total_items,
            singleton_clusters=singletons,
            singleton_ratio=singletons / total_clusters if total_clusters else 0.0,
            max_height=max_height,
            threshold=threshold,
        )
