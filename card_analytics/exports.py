"""Export RFM segmentation results to various formats.

This module saves a segmentation snapshot for spreadsheets, downstream
jobs and dashboards: tabular CSV, JSON with run metadata, a markdown
report and a standalone Plotly HTML dashboard.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Sequence

from card_analytics.analyses.fraud import fraud_rate_by_category
from card_analytics.analyses.segments import (
    band_distribution,
    rank_by_rfm_total,
    segment_distribution,
    segment_summary,
)
from card_analytics.foundation.config import RFMConfig
from card_analytics.foundation.rfm import CustomerRFMRecord
from card_analytics.foundation.transactions import Transaction
from card_analytics.formatters.markdown_tables import format_segmentation_report
from card_analytics.formatters.plotly_charts import (
    ChartConfig,
    build_dashboard_html,
    create_band_distribution_bar,
    create_fraud_rate_bar,
    create_segment_distribution_pie,
    create_segment_summary_bar,
)
from card_analytics.pandas.rfm import rfm_records_to_dataframe

logger = logging.getLogger(__name__)


def _prepare(output_path: str | Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def export_segmentation_csv(
    records: Sequence[CustomerRFMRecord],
    output_path: str | Path,
) -> None:
    """Export the segmentation to CSV, ordered by rfm_total descending.

    Columns follow :data:`card_analytics.foundation.rfm.RFM_RECORD_FIELDS`,
    so an empty segmentation still produces a header row.

    Examples
    --------
    >>> records = compute_segmentation(transactions, date(2020, 12, 1))
    >>> export_segmentation_csv(records, "rfm_segments.csv")
    """
    output_path = _prepare(output_path)
    df = rfm_records_to_dataframe(rank_by_rfm_total(records))
    df.to_csv(output_path, index=False)

    logger.info(f"Segmentation CSV exported to {output_path} ({len(records)} customers)")


def export_segmentation_json(
    records: Sequence[CustomerRFMRecord],
    output_path: str | Path,
    as_of_date: date,
    config: RFMConfig | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export the segmentation to JSON together with the run parameters.

    The payload records the as-of date and band configuration so that a
    snapshot can be reproduced or compared with a later run.

    Parameters
    ----------
    records:
        Segmentation output
    output_path:
        Path where the JSON file will be saved
    as_of_date:
        Reference date the segmentation was computed for
    config:
        Band configuration used (default: standard bands)
    metadata:
        Optional extra metadata (e.g., input file, data source)
    """
    output_path = _prepare(output_path)
    config = config or RFMConfig()

    payload = {
        "metadata": metadata or {},
        "as_of_date": as_of_date.isoformat(),
        "config": config.as_dict(),
        "customer_count": len(records),
        "segments": {
            count.segment: count.customer_count
            for count in segment_distribution(records, config)
        },
        "records": [record.as_dict() for record in rank_by_rfm_total(records)],
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info(f"Segmentation JSON exported to {output_path}")


def export_report_markdown(
    records: Sequence[CustomerRFMRecord],
    output_path: str | Path,
    as_of_date: date,
    config: RFMConfig | None = None,
    top_n: int = 10,
    transactions: Sequence[Transaction] | None = None,
) -> None:
    """Write the markdown segmentation report.

    Passing ``transactions`` adds the loyalty, lifetime value and fraud
    sections.
    """
    output_path = _prepare(output_path)
    report = format_segmentation_report(
        records, as_of_date, config, top_n, transactions=transactions
    )
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report)

    logger.info(f"Segmentation report exported to {output_path}")


def export_dashboard_html(
    records: Sequence[CustomerRFMRecord],
    output_path: str | Path,
    config: RFMConfig | None = None,
    transactions: Sequence[Transaction] | None = None,
    chart_config: ChartConfig | None = None,
) -> None:
    """Write a standalone HTML dashboard of the segmentation.

    Contains the segment distribution, segment profile and the three band
    distributions. When ``transactions`` are given, a fraud rate by
    merchant category chart is appended.
    """
    output_path = _prepare(output_path)
    config = config or RFMConfig()

    figures = [
        create_segment_distribution_pie(segment_distribution(records, config), chart_config),
        create_segment_summary_bar(segment_summary(records, config), chart_config),
    ]
    for metric in ("recency", "frequency", "monetary"):
        figures.append(
            create_band_distribution_bar(band_distribution(records, metric, config), chart_config)
        )
    if transactions:
        figures.append(
            create_fraud_rate_bar(
                fraud_rate_by_category(transactions),
                title="Fraud Rate by Merchant Category",
                chart_config=chart_config,
            )
        )

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(build_dashboard_html(figures))

    logger.info(f"Dashboard exported to {output_path} ({len(figures)} charts)")
