"""Command line entry point for RFM customer segmentation."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

from card_analytics.analyses.segments import rank_by_rfm_total, segment_distribution
from card_analytics.exceptions import CardAnalyticsError
from card_analytics.exports import (
    export_dashboard_html,
    export_report_markdown,
    export_segmentation_csv,
    export_segmentation_json,
)
from card_analytics.foundation.config import RFMConfig
from card_analytics.foundation.rfm import compute_segmentation
from card_analytics.foundation.transactions import ValidatedTransactions
from card_analytics.formatters.plotly_charts import ChartConfig
from card_analytics.pandas.rfm import (
    read_transactions_csv,
    read_transactions_json,
    rfm_records_to_dataframe,
)

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def _load_transactions(
    path: Path, tolerate_malformed: bool, allow_empty: bool
) -> ValidatedTransactions:
    if path.suffix.lower() == ".json":
        return read_transactions_json(
            path, tolerate_malformed=tolerate_malformed, allow_empty=allow_empty
        )
    return read_transactions_csv(
        path, tolerate_malformed=tolerate_malformed, allow_empty=allow_empty
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Segment credit card customers by Recency, Frequency and Monetary value"
    )
    parser.add_argument(
        "input",
        type=Path,
        help="Transactions file: CSV (credit card dataset columns) or JSON list of records",
    )
    parser.add_argument(
        "--as-of",
        type=_iso_date,
        help="Reference date for recency (YYYY-MM-DD); overrides the config file",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON file with as_of_date and band thresholds",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Write the segmentation to this path (.csv or .json)",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Write a markdown report with segmentation, loyalty and fraud sections",
    )
    parser.add_argument(
        "--dashboard",
        type=Path,
        help="Write a standalone Plotly HTML dashboard to this path",
    )
    parser.add_argument(
        "--chart-quality",
        choices=["high", "medium", "low"],
        default="medium",
        help="Dashboard chart size preset (default: medium)",
    )
    parser.add_argument(
        "--top-n",
        type=int,
        default=10,
        help="Customers listed per ranking in the report (default: 10)",
    )
    parser.add_argument(
        "--tolerate-malformed",
        action="store_true",
        help="Skip and count malformed records instead of failing",
    )
    parser.add_argument(
        "--fail-on-empty",
        action="store_true",
        help="Exit with an error when no valid transaction is found",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Worker processes for parallel aggregation (default: CPU count)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    return parser


def segment_cli(argv: list[str] | None = None) -> int:
    """Compute the RFM segmentation of a transactions file and export it.

    Pipeline:
    1. Loads and validates transactions (CSV or JSON)
    2. Aggregates recency, frequency and monetary value per customer
    3. Scores each metric and assigns a segment
    4. Exports CSV/JSON, a markdown report and an HTML dashboard as requested

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 for invalid input or configuration)
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.getLogger("card_analytics").setLevel(args.log_level)

    if args.top_n < 0:
        parser.error("--top-n cannot be negative")
    if args.output and args.output.suffix.lower() not in (".csv", ".json"):
        parser.error("--output must end in .csv or .json")

    try:
        config = RFMConfig.from_json(args.config) if args.config else RFMConfig()
        if args.as_of:
            config = replace(config, as_of_date=args.as_of)
        if config.as_of_date is None:
            logger.error("No as-of date given: use --as-of or set as_of_date in --config")
            return 1

        logger.info(f"Loading transactions from {args.input}")
        validated = _load_transactions(
            args.input,
            tolerate_malformed=args.tolerate_malformed,
            allow_empty=not args.fail_on_empty,
        )
        logger.info(
            f"Accepted {len(validated.transactions)} of {validated.total_records} records "
            f"({validated.rejected_records} rejected)"
        )

        records = compute_segmentation(
            validated.transactions, config=config, n_workers=args.workers
        )
    except CardAnalyticsError as exc:
        logger.error(f"Segmentation failed: {exc}")
        return 1

    as_of = config.as_of_date
    if args.output:
        if args.output.suffix.lower() == ".json":
            export_segmentation_json(
                records, args.output, as_of, config, metadata={"input": str(args.input)}
            )
        else:
            export_segmentation_csv(records, args.output)
    if args.report:
        export_report_markdown(
            records,
            args.report,
            as_of,
            config,
            top_n=args.top_n,
            transactions=validated.transactions,
        )
    if args.dashboard:
        export_dashboard_html(
            records,
            args.dashboard,
            config,
            transactions=validated.transactions,
            chart_config=ChartConfig.from_quality(args.chart_quality),
        )
    if not (args.output or args.report or args.dashboard):
        # stdout fallback enables piping in shell usage
        rfm_records_to_dataframe(rank_by_rfm_total(records)).to_csv(sys.stdout, index=False)

    summary = ", ".join(
        f"{c.segment}: {c.customer_count}" for c in segment_distribution(records, config)
    )
    logger.info(f"Segmented {len(records)} customers as of {as_of.isoformat()} ({summary})")
    return 0


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    raise SystemExit(segment_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
