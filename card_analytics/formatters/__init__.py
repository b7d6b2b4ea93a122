"""Presentation formatters for segmentation and fraud reports.

- Markdown tables for readable text reports
- Plotly figure specs and a standalone HTML dashboard
"""

from card_analytics.formatters.markdown_tables import (
    format_active_years_table,
    format_band_distribution_table,
    format_customer_spending_table,
    format_customer_table,
    format_customer_value_table,
    format_fraud_rate_table,
    format_loyal_candidates_table,
    format_segment_distribution_table,
    format_segment_summary_table,
    format_segmentation_report,
    format_yearly_trend_table,
)
from card_analytics.formatters.plotly_charts import (
    ChartConfig,
    build_dashboard_html,
    create_band_distribution_bar,
    create_fraud_rate_bar,
    create_segment_distribution_pie,
    create_segment_summary_bar,
)

__all__ = [
    "ChartConfig",
    "build_dashboard_html",
    "create_band_distribution_bar",
    "create_fraud_rate_bar",
    "create_segment_distribution_pie",
    "create_segment_summary_bar",
    "format_active_years_table",
    "format_band_distribution_table",
    "format_customer_spending_table",
    "format_customer_table",
    "format_customer_value_table",
    "format_fraud_rate_table",
    "format_loyal_candidates_table",
    "format_segment_distribution_table",
    "format_segment_summary_table",
    "format_segmentation_report",
    "format_yearly_trend_table",
]
