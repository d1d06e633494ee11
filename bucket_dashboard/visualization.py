"""Plotly visualisation helpers for the bucket dashboard.

Each function accepts a DataFrame produced by :mod:`reports` and returns a
`plotly.graph_objects.Figure` that Streamlit renders via
``st.plotly_chart``. Empty inputs produce an empty figure with a
"No data to display" title rather than raising.
"""

from __future__ import annotations

from typing import Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go


def _empty_figure(message: str = "No data to display") -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title=message)
    return fig


def _color_map(df: pd.DataFrame) -> dict:
    if "Color" not in df.columns:
        return {}
    return {row["Bucket"]: row["Color"] for _, row in df.iterrows() if row["Color"]}


def create_allocation_bar(frame: pd.DataFrame, title: Optional[str] = None) -> go.Figure:
    """Render each bucket's share of income as a single stacked bar.

    Parameters
    ----------
    frame : pandas.DataFrame
        Output of :func:`reports.allocation_frame`.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Horizontal stacked bar, one segment per bucket.
    """
    if frame.empty or frame["Allocated"].sum() <= 0:
        return _empty_figure()
    df = frame.assign(Plan="Allocation")
    fig = px.bar(
        df,
        x="Allocated",
        y="Plan",
        color="Bucket",
        orientation="h",
        color_discrete_map=_color_map(frame),
        hover_data=["Kind", "Share of Income %"],
    )
    fig.update_layout(
        title=title or "Bucket allocation",
        barmode="stack",
        xaxis_title="Amount",
        yaxis_title="",
        height=220,
    )
    return fig


def create_bucket_progress_chart(summary: pd.DataFrame, title: Optional[str] = None) -> go.Figure:
    """Spent vs. allocated per bucket.

    Parameters
    ----------
    summary : pandas.DataFrame
        Output of :func:`reports.bucket_summary_frame`.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Grouped bar chart of allocated and spent amounts.
    """
    if summary.empty:
        return _empty_figure()
    fig = go.Figure()
    fig.add_trace(go.Bar(name="Allocated", x=summary["Bucket"], y=summary["Allocated"]))
    fig.add_trace(go.Bar(name="Spent", x=summary["Bucket"], y=summary["Spent"]))
    fig.update_layout(
        title=title or "Spending by bucket",
        barmode="group",
        xaxis_title="Bucket",
        yaxis_title="Amount",
    )
    return fig
