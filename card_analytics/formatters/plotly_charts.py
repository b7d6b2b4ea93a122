"""Plotly chart generators for RFM segmentation and fraud reports.

Charts are returned as JSON-serializable Plotly figure dicts so they can be
embedded in HTML dashboards, written to disk or rendered by any Plotly
frontend. Chart dimensions come from :class:`ChartConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Sequence

import plotly.graph_objects as go

from card_analytics.analyses.fraud import FraudRate
from card_analytics.analyses.segments import BandCount, SegmentCount, SegmentSummary

# Best to worst segment colours; extra segments cycle through the palette
SEGMENT_COLORS = (
    "rgb(46, 139, 87)",
    "rgb(55, 128, 191)",
    "rgb(255, 165, 0)",
    "rgb(214, 39, 40)",
)

_QUALITY_PRESETS = {
    "high": (1200, 600),
    "medium": (800, 400),
    "low": (600, 300),
}


@dataclass(frozen=True)
class ChartConfig:
    """Chart size configuration.

    Attributes
    ----------
    width:
        Chart width in pixels (default: 800)
    height:
        Chart height in pixels (default: 400)
    quality:
        Quality preset: 'high' (1200x600), 'medium' (800x400), 'low' (600x300)
    """

    width: int = 800
    height: int = 400
    quality: Literal["high", "medium", "low"] = "medium"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Chart dimensions must be positive: {self.width}x{self.height}"
            )

    @classmethod
    def from_quality(cls, quality: Literal["high", "medium", "low"]) -> ChartConfig:
        """Create config from a quality preset.

        Examples
        --------
        >>> config = ChartConfig.from_quality("high")
        >>> config.width, config.height
        (1200, 600)
        """
        if quality not in _QUALITY_PRESETS:
            raise ValueError(
                f"Unknown chart quality {quality!r}; expected one of {sorted(_QUALITY_PRESETS)}"
            )
        width, height = _QUALITY_PRESETS[quality]
        return cls(width=width, height=height, quality=quality)


def _layout(title: str, chart_config: ChartConfig | None, **extra: Any) -> dict[str, Any]:
    chart_config = chart_config or ChartConfig()
    layout = {
        "title": {"text": title, "x": 0.5, "xanchor": "center"},
        "width": chart_config.width,
        "height": chart_config.height,
    }
    layout.update(extra)
    return layout


def create_segment_distribution_pie(
    counts: Sequence[SegmentCount],
    chart_config: ChartConfig | None = None,
) -> dict[str, Any]:
    """Create a pie chart of customers per segment.

    Parameters
    ----------
    counts:
        Output of :func:`card_analytics.analyses.segments.segment_distribution`
    chart_config:
        Chart dimensions (default: 800x400)

    Returns
    -------
    dict:
        Plotly figure specification as JSON-serializable dict

    Examples
    --------
    >>> from card_analytics.analyses.segments import SegmentCount
    >>> chart = create_segment_distribution_pie([SegmentCount("Premium", 3)])
    >>> chart["data"][0]["type"]
    'pie'
    """
    pie_trace = {
        "type": "pie",
        "labels": [c.segment for c in counts],
        "values": [c.customer_count for c in counts],
        "marker": {
            "colors": [SEGMENT_COLORS[i % len(SEGMENT_COLORS)] for i in range(len(counts))]
        },
        "textinfo": "label+percent",
        "textposition": "auto",
        "hovertemplate": "%{label}<br>Customers: %{value:,}<extra></extra>",
    }
    layout = _layout(
        "Customer Segment Distribution",
        chart_config,
        showlegend=True,
        legend={"x": 0.85, "y": 0.5},
    )
    return {"data": [pie_trace], "layout": layout}


def create_band_distribution_bar(
    bands: Sequence[BandCount],
    chart_config: ChartConfig | None = None,
) -> dict[str, Any]:
    """Create a bar chart of customers per score band for one metric."""
    metric = bands[0].metric.capitalize() if bands else "Score"
    bar_trace = {
        "type": "bar",
        "x": [b.label for b in bands],
        "y": [b.customer_count for b in bands],
        "marker": {"color": "rgb(55, 128, 191)"},
        "hovertemplate": "%{x}<br>Customers: %{y:,}<extra></extra>",
    }
    layout = _layout(
        f"{metric} Band Distribution",
        chart_config,
        xaxis={"title": f"{metric} band"},
        yaxis={"title": "Customers"},
        showlegend=False,
    )
    return {"data": [bar_trace], "layout": layout}


def create_segment_summary_bar(
    summaries: Sequence[SegmentSummary],
    chart_config: ChartConfig | None = None,
) -> dict[str, Any]:
    """Create a grouped bar chart comparing segment averages.

    Average spend is drawn on a secondary axis because it is orders of
    magnitude larger than transaction counts and recency days.
    """
    segments = [s.segment for s in summaries]
    traces = [
        {
            "type": "bar",
            "name": "Avg Transactions",
            "x": segments,
            "y": [float(s.avg_frequency) for s in summaries],
            "offsetgroup": 0,
        },
        {
            "type": "bar",
            "name": "Avg Recency (days)",
            "x": segments,
            "y": [float(s.avg_recency_days) for s in summaries],
            "offsetgroup": 1,
        },
        {
            "type": "bar",
            "name": "Avg Spend",
            "x": segments,
            "y": [float(s.avg_monetary) for s in summaries],
            "yaxis": "y2",
            "offsetgroup": 2,
            "hovertemplate": "%{x}<br>Avg Spend: $%{y:,.2f}<extra></extra>",
        },
    ]
    layout = _layout(
        "Segment Profile",
        chart_config,
        barmode="group",
        xaxis={"title": "Segment"},
        yaxis={"title": "Transactions / days"},
        yaxis2={"title": "Spend ($)", "overlaying": "y", "side": "right"},
        legend={"orientation": "h", "y": -0.2},
    )
    return {"data": traces, "layout": layout}


def create_fraud_rate_bar(
    rates: Sequence[FraudRate],
    title: str = "Fraud Rate",
    chart_config: ChartConfig | None = None,
) -> dict[str, Any]:
    """Create a bar chart of fraud rate per group (category, hour, state...)."""
    bar_trace = {
        "type": "bar",
        "x": [r.group for r in rates],
        "y": [float(r.fraud_rate_pct) for r in rates],
        "customdata": [[r.total_frauds, r.total_transactions] for r in rates],
        "marker": {"color": "rgb(214, 39, 40)"},
        "hovertemplate": (
            "%{x}<br>Fraud rate: %{y:.2f}%<br>"
            "%{customdata[0]:,} of %{customdata[1]:,} transactions<extra></extra>"
        ),
    }
    layout = _layout(
        title,
        chart_config,
        xaxis={"title": "Group", "type": "category"},
        yaxis={"title": "Fraud rate (%)"},
        showlegend=False,
    )
    return {"data": [bar_trace], "layout": layout}


def build_dashboard_html(
    figures: Sequence[dict[str, Any]],
    title: str = "RFM Customer Segmentation Dashboard",
) -> str:
    """Render figure specs into one standalone HTML page.

    plotly.js is embedded once, in the first figure, so the page works
    offline.

    Parameters
    ----------
    figures:
        Plotly figure dicts, e.g. from :func:`create_segment_distribution_pie`
    title:
        Page heading

    Returns
    -------
    str:
        Complete HTML document
    """
    sections = []
    for i, fig_dict in enumerate(figures):
        fig = go.Figure(fig_dict)
        sections.append(
            fig.to_html(full_html=False, include_plotlyjs=(i == 0))
        )

    body = "\n".join(f"<div class=\"chart\">{section}</div>" for section in sections)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{title}</title>\n"
        "</head>\n<body>\n"
        f"<h1>{title}</h1>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )
