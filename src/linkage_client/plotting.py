from __future__ import annotations

from typing import TYPE_CHECKING

import plotly.graph_objects as go  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from linkage_client.api_client import Item, MergeRow

LEAF_SPACING = 10.0


def leaf_order(merges: list[MergeRow], items: list[Item]) -> list[Item]:
    """Left-to-right leaf order of the dendrogram, singletons of a trivial tree included."""
    if not merges:
        return list(items)
    by_id = {merge.node_id: merge for merge in merges}
    order: list[Item] = []
    stack: list[tuple[str, Item]] = [("merge", merges[-1].node_id)]
    while stack:
        kind, ref = stack.pop()
        if kind == "leaf":
            order.append(ref)
            continue
        merge = by_id[ref]
        stack.append(merge.right)
        stack.append(merge.left)
    return order


def link_coordinates(
    merges: list[MergeRow], items: list[Item],
) -> tuple[list[list[float]], list[list[float]], list[Item]]:
    """Return U-shaped link coordinates ``(xs, ys)`` and the leaf order."""
    order = leaf_order(merges, items)
    positions: dict[tuple[str, Item], tuple[float, float]] = {
        ("leaf", item): (LEAF_SPACING / 2 + LEAF_SPACING * idx, 0.0)
        for idx, item in enumerate(order)
    }
    xs: list[list[float]] = []
    ys: list[list[float]] = []
    for merge in merges:
        left_x, left_y = positions[merge.left]
        right_x, right_y = positions[merge.right]
        xs.append([left_x, left_x, right_x, right_x])
        ys.append([left_y, merge.height, merge.height, right_y])
        positions[("merge", merge.node_id)] = ((left_x + right_x) / 2, merge.height)
    return xs, ys, order


def build_dendrogram_figure(
    merges: list[MergeRow],
    items: list[Item],
    *,
    threshold: float | None = None,
) -> go.Figure:
    """Build a Plotly dendrogram with an optional horizontal cut line."""
    xs, ys, order = link_coordinates(merges, items)
    fig = go.Figure()
    for link_x, link_y in zip(xs, ys):
        fig.add_trace(
            go.Scatter(
                x=link_x,
                y=link_y,
                mode="lines",
                line={"color": "#4c78a8", "width": 1.5},
                hoverinfo="y",
                showlegend=False,
            ),
        )
    if threshold is not None and order:
        fig.add_hline(
            y=threshold,
            line={"color": "#e45756", "dash": "dash"},
            annotation_text=f"cut @ {threshold:g}",
        )
    fig.update_layout(
        title="Complete-linkage dendrogram",
        xaxis={
            "tickmode": "array",
            "tickvals": [LEAF_SPACING / 2 + LEAF_SPACING * idx for idx in range(len(order))],
            "ticktext": [str(item) for item in order],
            "title": "item",
        },
        yaxis={"title": "height", "rangemode": "tozero"},
        margin={"l": 20, "r": 20, "t": 40, "b": 20},
    )
    return fig
