"""Filtering, KPI totals, pivot cross-tabs and chart series over normalized rows."""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from normalize_sales_rows import NORMALIZED_COLUMNS
from sales_values import dimension_label, is_numeric_label


PIVOT_DIMENSIONS = {
    "category": "category_name",
    "store": "store_name",
    "year": "year",
    "month": "month",
    "quarter": "quarter",
    "unit_type": "unit_type",
}

SUM_MEASURES = {
    "sum_revenue": "revenue_rub",
    "sum_checks": "checks",
    "sum_pieces": "pieces",
    "sum_weight": "weight_kg",
}

RATIO_MEASURES = {
    "calc_atv": "revenue",
    "calc_upt": "pieces",
}

PIVOT_MEASURES = [*SUM_MEASURES, *RATIO_MEASURES]

MEASURE_LABELS = {
    "sum_revenue": "Выручка",
    "sum_checks": "Чеки",
    "sum_pieces": "Штуки",
    "sum_weight": "Вес",
    "calc_atv": "ATV (Ср. чек)",
    "calc_upt": "UPT",
}

DIMENSION_LABELS = {
    "category_name": "Категория",
    "store_name": "Магазин",
    "year": "Год",
    "month": "Месяц",
    "quarter": "Квартал",
    "unit_type": "Тип единицы",
}

MONTH_NAMES = [
    "Январь",
    "Февраль",
    "Март",
    "Апрель",
    "Май",
    "Июнь",
    "Июль",
    "Август",
    "Сентябрь",
    "Октябрь",
    "Ноябрь",
    "Декабрь",
]

AUX_FIELDS = {
    "revenue": "revenue_rub",
    "checks": "checks",
    "pieces": "pieces",
}

TOTAL_LABEL = "Итого"
EMPTY_CELL = "—"
TOP_CATEGORY_LIMIT = 10


@dataclass(frozen=True)
class ReportFilters:
    date_from: str = ""
    date_to: str = ""
    stores: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    unit_types: tuple[str, ...] = ()


@dataclass
class PivotTable:
    row_dimension: str
    col_dimension: str
    measure: str
    row_keys: list[str]
    col_keys: list[str]
    values: pd.DataFrame
    aux: dict[str, pd.DataFrame]
    row_totals: pd.Series
    column_totals: pd.Series
    grand_total: float


def filter_rows(frame: pd.DataFrame, filters: ReportFilters) -> pd.DataFrame:
    mask = pd.Series(True, index=frame.index)

    if filters.date_from:
        mask &= frame["date"] >= filters.date_from
    if filters.date_to:
        mask &= frame["date"] <= filters.date_to
    if filters.stores:
        mask &= frame["store_name"].isin(list(filters.stores))
    if filters.categories:
        mask &= frame["category_name"].isin(list(filters.categories))
    if filters.unit_types:
        mask &= frame["unit_type"].isin(list(filters.unit_types))

    return frame[mask].copy()


def available_options(frame: pd.DataFrame) -> dict[str, list[str]]:
    return {
        "stores": sorted(frame["store_name"].unique().tolist()),
        "categories": sorted(frame["category_name"].unique().tolist()),
    }


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def compute_kpi(frame: pd.DataFrame) -> dict[str, float]:
    """Headline totals for the filtered rows.

    ATV and UPT are ratios of the summed columns, never averages of the
    per-row ratios.
    """
    revenue = float(frame["revenue_rub"].sum())
    checks = float(frame["checks"].sum())
    pieces = float(frame["pieces"].sum())
    weight = float(frame["weight_kg"].sum())

    return {
        "rows": int(len(frame)),
        "revenue": revenue,
        "checks": checks,
        "pieces": pieces,
        "weight": weight,
        "atv": _ratio(revenue, checks),
        "upt": _ratio(pieces, checks),
    }


def format_currency(value: float) -> str:
    return f"{value:,.0f}".replace(",", " ") + " ₽"


def format_compact(value: float) -> str:
    return f"{value:,.0f}".replace(",", " ")


def format_weight(value: float) -> str:
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return text.replace(",", " ").replace(".", ",") + " кг"


def format_kpi(kpi: dict[str, float]) -> dict[str, str]:
    return {
        "revenue": format_currency(kpi["revenue"]),
        "checks": format_compact(kpi["checks"]),
        "pieces": format_compact(kpi["pieces"]),
        "weight": format_weight(kpi["weight"]),
        "atv": format_currency(kpi["atv"]),
        "upt": f"{kpi['upt']:.2f}",
    }


def resolve_dimension(dimension: str) -> str:
    if dimension in PIVOT_DIMENSIONS:
        return PIVOT_DIMENSIONS[dimension]
    if dimension in NORMALIZED_COLUMNS:
        return dimension
    raise ValueError(f"Unknown pivot dimension: {dimension}")


def _sort_column_keys(keys: list[str]) -> list[str]:
    if keys and all(is_numeric_label(key) for key in keys):
        return sorted(keys, key=float)
    return sorted(keys)


def _safe_ratio_frame(
    numerator: pd.DataFrame, denominator: pd.DataFrame
) -> pd.DataFrame:
    ratio = numerator.div(denominator)
    return ratio.where(denominator.gt(0), 0.0)


def _safe_ratio_series(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    ratio = numerator.div(denominator)
    return ratio.where(denominator.gt(0), 0.0)


def _cell_matrix(
    keyed: pd.DataFrame, column: str, row_keys: list[str], col_keys: list[str]
) -> pd.DataFrame:
    if keyed.empty:
        return pd.DataFrame(0.0, index=pd.Index(row_keys), columns=pd.Index(col_keys))

    matrix = keyed.pivot_table(
        index="row_key",
        columns="col_key",
        values=column,
        aggfunc="sum",
        fill_value=0.0,
    )
    matrix = matrix.reindex(index=row_keys, columns=col_keys, fill_value=0.0)
    matrix.index.name = None
    matrix.columns.name = None
    return matrix.astype(float)


def build_pivot(
    frame: pd.DataFrame,
    row_dimension: str = "category_name",
    col_dimension: str = "month",
    measure: str = "sum_revenue",
) -> PivotTable:
    """Cross-tab ``frame`` by two dimensions under one measure.

    Sum measures add up the raw field per cell. ``calc_atv`` and ``calc_upt``
    are computed from the summed revenue/checks/pieces of each cell, and the
    row, column and grand totals are recomputed from the summed components
    along that axis, so splitting a column never changes a row total.
    """
    if measure not in SUM_MEASURES and measure not in RATIO_MEASURES:
        raise ValueError(f"Unknown pivot measure: {measure}")

    row_field = resolve_dimension(row_dimension)
    col_field = resolve_dimension(col_dimension)

    keyed = pd.DataFrame(
        {
            "row_key": frame[row_field].map(dimension_label),
            "col_key": frame[col_field].map(dimension_label),
            "revenue_rub": frame["revenue_rub"],
            "checks": frame["checks"],
            "pieces": frame["pieces"],
            "weight_kg": frame["weight_kg"],
        }
    )

    row_keys = sorted(keyed["row_key"].unique().tolist())
    col_keys = _sort_column_keys(keyed["col_key"].unique().tolist())

    sums = {
        column: _cell_matrix(keyed, column, row_keys, col_keys)
        for column in SUM_MEASURES.values()
    }
    aux = {name: sums[source].copy() for name, source in AUX_FIELDS.items()}

    if measure in SUM_MEASURES:
        values = sums[SUM_MEASURES[measure]]
        row_totals = values.sum(axis=1)
        column_totals = values.sum(axis=0)
        grand_total = float(values.to_numpy().sum())
    else:
        numerator = aux[RATIO_MEASURES[measure]]
        checks = aux["checks"]
        values = _safe_ratio_frame(numerator, checks)
        row_totals = _safe_ratio_series(numerator.sum(axis=1), checks.sum(axis=1))
        column_totals = _safe_ratio_series(numerator.sum(axis=0), checks.sum(axis=0))
        grand_total = _ratio(
            float(numerator.to_numpy().sum()), float(checks.to_numpy().sum())
        )

    return PivotTable(
        row_dimension=row_field,
        col_dimension=col_field,
        measure=measure,
        row_keys=row_keys,
        col_keys=col_keys,
        values=values,
        aux=aux,
        row_totals=row_totals.astype(float),
        column_totals=column_totals.astype(float),
        grand_total=grand_total,
    )


def format_pivot_value(value: float, measure: str) -> str:
    if measure in {"sum_revenue", "calc_atv"}:
        return format_currency(value)
    return format_compact(value)


def _column_label(key: str, col_dimension: str) -> str:
    if col_dimension != "month" or not is_numeric_label(key):
        return key
    month = int(float(key))
    if 1 <= month <= len(MONTH_NAMES):
        return MONTH_NAMES[month - 1]
    return key


def unique_labels(labels: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    out = []
    for label in labels:
        candidate = label
        count = seen.get(label, 0)
        while candidate in seen:
            count += 1
            candidate = f"{label} ({count + 1})"
        seen[label] = count
        seen.setdefault(candidate, 0)
        out.append(candidate)
    return out


def pivot_table_labels(pivot: PivotTable, name_months: bool = True) -> list[str]:
    """Header, one label per column key, then the total label.

    A column key that repeats the header or ``Итого`` gets a ``" (2)"``
    suffix so no column is overwritten.
    """
    header = DIMENSION_LABELS.get(pivot.row_dimension, pivot.row_dimension)
    if name_months:
        columns = [_column_label(key, pivot.col_dimension) for key in pivot.col_keys]
    else:
        columns = list(pivot.col_keys)
    return unique_labels([header, *columns, TOTAL_LABEL])


def pivot_display_frame(pivot: PivotTable) -> pd.DataFrame:
    rows = []
    for row_key in pivot.row_keys:
        cells = []
        for col_key in pivot.col_keys:
            value = float(pivot.values.at[row_key, col_key])
            cells.append(
                format_pivot_value(value, pivot.measure) if value > 0 else EMPTY_CELL
            )
        total = format_pivot_value(float(pivot.row_totals[row_key]), pivot.measure)
        rows.append([row_key, *cells, total])

    return pd.DataFrame(rows, columns=pivot_table_labels(pivot))


def build_time_series(frame: pd.DataFrame) -> pd.DataFrame:
    series = (
        frame.groupby("date", sort=False)["revenue_rub"]
        .sum()
        .reset_index()
        .rename(columns={"date": "name", "revenue_rub": "value"})
    )
    return series.sort_values("name", kind="stable").reset_index(drop=True)


def build_category_ranking(
    frame: pd.DataFrame, limit: int = TOP_CATEGORY_LIMIT
) -> pd.DataFrame:
    ranking = (
        frame.groupby("category_name", sort=False)["revenue_rub"]
        .sum()
        .reset_index()
        .rename(columns={"category_name": "name", "revenue_rub": "value"})
    )
    ranking = ranking.sort_values("value", ascending=False, kind="stable")
    return ranking.head(limit).reset_index(drop=True)
