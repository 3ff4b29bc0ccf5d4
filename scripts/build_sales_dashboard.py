#!/usr/bin/env python3
"""Normalize a sales report and build dashboard-ready KPI, pivot and chart files."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path

import pandas as pd

from normalize_sales_rows import NORMALIZED_COLUMNS
from sales_analytics import (
    MEASURE_LABELS,
    PIVOT_DIMENSIONS,
    PIVOT_MEASURES,
    PivotTable,
    ReportFilters,
    available_options,
    build_category_ranking,
    build_pivot,
    build_time_series,
    compute_kpi,
    filter_rows,
    format_currency,
    format_kpi,
    pivot_display_frame,
    pivot_table_labels,
)
from sales_ingest import (
    JsonSnapshotStore,
    LoadResult,
    fetch_payload_file,
    fetch_report_payload,
    initial_dataset,
    load_dataset,
)


EXPORT_COLUMNS = {
    "date": "Дата",
    "store_name": "Магазин",
    "category_name": "Категория",
    "revenue_rub": "Выручка",
    "checks": "Чеки",
    "pieces": "Штуки",
    "weight_kg": "Вес",
}

KPI_CARD_LABELS = {
    "revenue": "Выручка",
    "checks": "Чеки",
    "atv": "Ср. чек (ATV)",
    "pieces": "Штуки",
    "upt": "UPT",
    "weight": "Вес",
}

WEBHOOK_ENV = "SALES_REPORT_WEBHOOK_URL"
MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def export_rows_csv(frame: pd.DataFrame, path: Path) -> Path | None:
    """Write the spreadsheet-friendly export; UTF-8 with a BOM for Excel."""
    if frame.empty:
        return None
    path.parent.mkdir(parents=True, exist_ok=True)
    out = frame[list(EXPORT_COLUMNS)].rename(columns=EXPORT_COLUMNS)
    out.to_csv(path, index=False, encoding="utf-8-sig")
    return path


def pivot_numeric_frame(pivot: PivotTable) -> pd.DataFrame:
    header, *columns, total = pivot_table_labels(pivot, name_months=False)
    out = pd.DataFrame(pivot.values.to_numpy(), columns=columns)
    out.insert(0, header, pivot.row_keys)
    out[total] = pivot.row_totals.to_numpy()
    return out


def write_markdown_brief(
    path: Path,
    generated_at: str,
    kpi: dict,
    filters: ReportFilters,
    pivot: PivotTable,
    categories: pd.DataFrame,
) -> None:
    cards = format_kpi(kpi)
    lines = [
        "# Sales Dashboard Brief",
        "",
        f"- Generated at: `{generated_at}`",
        f"- Rows analysed: `{kpi['rows']}`",
        f"- Period: `{filters.date_from or '…'}` – `{filters.date_to or '…'}`",
        "",
        "## KPI",
        "",
    ]
    for key, label in KPI_CARD_LABELS.items():
        lines.append(f"- {label}: `{cards[key]}`")

    lines.extend(["", "## Top Categories", ""])
    for _, row in categories.iterrows():
        lines.append(f"- {row['name']}: `{format_currency(row['value'])}`")

    lines.extend(
        [
            "",
            f"## Pivot: {MEASURE_LABELS[pivot.measure]}",
            "",
            pivot_display_frame(pivot).to_csv(index=False),
        ]
    )

    path.write_text("\n".join(lines), encoding="utf-8")


def generate_dashboard_outputs(
    frame: pd.DataFrame,
    output_dir: Path,
    filters: ReportFilters | None = None,
    pivot_row: str = "category",
    pivot_col: str = "month",
    measure: str = "sum_revenue",
) -> dict:
    filters = filters or ReportFilters()

    facts_dir = output_dir / "facts"
    marts_dir = output_dir / "marts"
    export_dir = output_dir / "export"
    for path in [facts_dir, marts_dir, export_dir]:
        path.mkdir(parents=True, exist_ok=True)

    filtered = filter_rows(frame, filters)
    kpi = compute_kpi(filtered)
    pivot = build_pivot(filtered, pivot_row, pivot_col, measure)
    time_series = build_time_series(filtered)
    categories = build_category_ranking(filtered)

    fact_file = facts_dir / "normalized_rows.csv"
    frame[NORMALIZED_COLUMNS].to_csv(fact_file, index=False, encoding="utf-8")

    export_file = export_rows_csv(filtered, export_dir / "sales_report.csv")

    pivot_table = pivot_numeric_frame(pivot)
    pivot_file = marts_dir / f"pivot_{measure}.csv"
    pivot_table.to_csv(pivot_file, index=False, encoding="utf-8")

    time_series_file = marts_dir / "time_series.csv"
    time_series.to_csv(time_series_file, index=False, encoding="utf-8")

    categories_file = marts_dir / "top_categories.csv"
    categories.to_csv(categories_file, index=False, encoding="utf-8")

    kpi_file = output_dir / "kpi_summary.json"
    kpi_file.write_text(
        json.dumps(
            {"values": kpi, "display": format_kpi(kpi)}, ensure_ascii=False, indent=2
        ),
        encoding="utf-8",
    )

    excel_file = output_dir / "sales_dashboard.xlsx"
    with pd.ExcelWriter(excel_file, engine="openpyxl") as writer:
        pd.DataFrame([kpi]).to_excel(writer, sheet_name="KPI", index=False)
        pivot_table.to_excel(writer, sheet_name="Pivot", index=False)
        time_series.to_excel(writer, sheet_name="TimeSeries", index=False)
        categories.to_excel(writer, sheet_name="TopCategories", index=False)

    generated_at = datetime.now().isoformat(timespec="seconds")

    markdown_file = output_dir / "sales_dashboard_brief.md"
    write_markdown_brief(
        path=markdown_file,
        generated_at=generated_at,
        kpi=kpi,
        filters=filters,
        pivot=pivot,
        categories=categories,
    )

    manifest = {
        "generated_at": generated_at,
        "rows_total": int(len(frame)),
        "rows_filtered": kpi["rows"],
        "filters": {
            "date_from": filters.date_from,
            "date_to": filters.date_to,
            "stores": list(filters.stores),
            "categories": list(filters.categories),
            "unit_types": list(filters.unit_types),
        },
        "pivot": {
            "row_dimension": pivot.row_dimension,
            "col_dimension": pivot.col_dimension,
            "measure": pivot.measure,
            "grand_total": pivot.grand_total,
        },
        "options": available_options(frame),
        "outputs": {
            "fact_file": str(fact_file),
            "export_file": str(export_file) if export_file else None,
            "pivot_file": str(pivot_file),
            "time_series_file": str(time_series_file),
            "categories_file": str(categories_file),
            "kpi_file": str(kpi_file),
            "excel_file": str(excel_file),
            "markdown_file": str(markdown_file),
        },
        "kpi": kpi,
    }

    manifest_file = output_dir / "manifest.json"
    manifest_file.write_text(
        json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8"
    )
    manifest["outputs"]["manifest_file"] = str(manifest_file)
    return manifest


def load_report(args: argparse.Namespace, store: JsonSnapshotStore) -> LoadResult:
    if args.input:
        input_path = args.input

        def fetch() -> object:
            return fetch_payload_file(input_path)

    else:

        def fetch() -> object:
            return fetch_report_payload(args.webhook_url, timeout=args.timeout)

    if args.use_snapshot:
        return initial_dataset(fetch, store)
    return load_dataset(fetch, store)


def month_arg(value: str) -> str:
    if not MONTH_PATTERN.match(value):
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM, got {value!r}")
    return value


def month_bounds(month: str) -> tuple[str, str]:
    # Dates compare as strings, so day 31 covers every month.
    return f"{month}-01", f"{month}-31"


def parse_args() -> argparse.Namespace:
    root = Path(__file__).resolve().parents[1]
    parser = argparse.ArgumentParser(
        description="Normalize a sales report and build KPI, pivot and chart files."
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Payload file (.json, .xlsx or .csv). The webhook is used when omitted.",
    )
    parser.add_argument(
        "--webhook-url",
        default=os.environ.get(WEBHOOK_ENV, ""),
        help=f"Report webhook URL (default: ${WEBHOOK_ENV}).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30,
        help="Webhook timeout in seconds.",
    )
    parser.add_argument(
        "--snapshot-file",
        type=Path,
        default=root / "Data" / "cache" / "report_snapshot.json",
        help="JSON snapshot used when the report cannot be fetched.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=root / "Data" / "processed" / "latest",
        help="Directory for dashboard outputs.",
    )
    parser.add_argument("--date-from", default="", help="Inclusive YYYY-MM-DD.")
    parser.add_argument("--date-to", default="", help="Inclusive YYYY-MM-DD.")
    parser.add_argument(
        "--month",
        type=month_arg,
        default=None,
        help="Whole calendar month YYYY-MM; --date-from/--date-to take precedence.",
    )
    parser.add_argument(
        "--store", action="append", default=[], help="Store filter (repeatable)."
    )
    parser.add_argument(
        "--category",
        action="append",
        default=[],
        help="Category filter (repeatable).",
    )
    parser.add_argument(
        "--unit-type",
        action="append",
        default=[],
        choices=["kg", "pcs"],
        help="Unit type filter (repeatable).",
    )
    parser.add_argument(
        "--pivot-row",
        default="category",
        choices=list(PIVOT_DIMENSIONS),
        help="Pivot row dimension.",
    )
    parser.add_argument(
        "--pivot-col",
        default="month",
        choices=list(PIVOT_DIMENSIONS),
        help="Pivot column dimension.",
    )
    parser.add_argument(
        "--measure",
        default="sum_revenue",
        choices=PIVOT_MEASURES,
        help="Pivot cell measure.",
    )
    parser.add_argument(
        "--use-snapshot",
        action="store_true",
        help="Reuse the snapshot when present instead of fetching.",
    )
    parser.add_argument(
        "--clear-snapshot",
        action="store_true",
        help="Remove the stored snapshot and exit.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress generated-file logs.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    store = JsonSnapshotStore(args.snapshot_file)
    if args.clear_snapshot:
        store.clear()
        print(f"Cleared snapshot: {args.snapshot_file}")
        return

    result = load_report(args, store)
    if result.error:
        print(f"Error: {result.error}")
    if result.frame.empty:
        raise SystemExit("No sales rows available.")

    date_from, date_to = args.date_from, args.date_to
    if args.month:
        month_from, month_to = month_bounds(args.month)
        date_from = date_from or month_from
        date_to = date_to or month_to

    filters = ReportFilters(
        date_from=date_from,
        date_to=date_to,
        stores=tuple(args.store),
        categories=tuple(args.category),
        unit_types=tuple(args.unit_type),
    )
    manifest = generate_dashboard_outputs(
        result.frame,
        args.output_dir,
        filters=filters,
        pivot_row=args.pivot_row,
        pivot_col=args.pivot_col,
        measure=args.measure,
    )

    if args.quiet:
        return

    source = "snapshot" if result.from_snapshot else "fresh report"
    print(
        f"Analysed {manifest['rows_filtered']} of {manifest['rows_total']} rows "
        f"({source})."
    )
    print("Generated sales dashboard outputs:")
    for key, path in manifest["outputs"].items():
        if path:
            print(f"- {key}: {path}")


if __name__ == "__main__":
    main()
