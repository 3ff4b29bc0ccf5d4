"""Map raw bilingual report rows onto the canonical sales row layout."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

import pandas as pd

from sales_values import clean_date, clean_string, parse_num


UNKNOWN_STORE = "Неизвестно"
UNCATEGORIZED = "Прочее"

# Stale by construction: rows without a year are attributed to the report's
# launch year.
DEFAULT_YEAR = 2025.0

KG_MARKERS = ("kg", "кг")

STRING_ALIASES = {
    "id": ["id"],
    "date": ["date", "Дата"],
    "store_name": ["store_name", "Магазин"],
    "category_name": ["category_name", "Категория товара"],
    "unit_raw": ["unit_raw", "Шт. в кг"],
}

NUMERIC_ALIASES = {
    "pieces_per_kg": ["pieces_per_kg"],
    "weight_kg": ["weight_kg", "Вес, кг"],
    "revenue_rub": ["revenue_rub", "Выручка, ₽", "revenue_rub_raw"],
    "checks": ["checks", "Чеки, шт."],
    "pieces": ["pieces", "Штуки", "peaces"],
    "week": ["week", "Номер недели"],
    "month": ["month", "Месяц"],
    "quarter": ["quarter", "Квартал"],
    "year": ["year", "Год"],
}

STRING_COLUMNS = [
    "id",
    "date",
    "store_name",
    "category_name",
    "unit_raw",
    "unit_type",
]

NUMERIC_COLUMNS = [
    "pieces_per_kg",
    "weight_kg",
    "revenue_rub",
    "checks",
    "pieces",
    "week",
    "month",
    "quarter",
    "year",
    "atv",
    "upt",
    "avg_price_per_kg",
    "avg_price_per_piece",
]

NORMALIZED_COLUMNS = [
    "id",
    "date",
    "store_name",
    "category_name",
    "unit_raw",
    "unit_type",
    "pieces_per_kg",
    "weight_kg",
    "revenue_rub",
    "checks",
    "pieces",
    "week",
    "month",
    "quarter",
    "year",
    "atv",
    "upt",
    "avg_price_per_kg",
    "avg_price_per_piece",
]


def _is_usable(value: object) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def resolve_payload_row(item: object) -> Mapping:
    if isinstance(item, Mapping):
        wrapped = item.get("json")
        if isinstance(wrapped, Mapping):
            return wrapped
        return item
    return {}


def first_usable(row: Mapping, aliases: list[str], default: object = None) -> object:
    for key in aliases:
        value = row.get(key)
        if _is_usable(value):
            return value
    return default


def safe_ratio(numerator: float, denominator: float) -> float:
    if denominator > 0:
        return numerator / denominator
    return 0.0


def infer_unit_type(unit_type: object, unit_raw: object) -> str:
    labels = [clean_string(unit_type).lower(), clean_string(unit_raw).lower()]
    for label in labels:
        if any(marker in label for marker in KG_MARKERS):
            return "kg"
    return "pcs"


def normalize_row(item: object, index: int) -> dict:
    row = resolve_payload_row(item)

    text = {
        field: clean_string(first_usable(row, aliases, ""))
        for field, aliases in STRING_ALIASES.items()
    }
    numbers = {
        field: parse_num(first_usable(row, aliases, 0))
        for field, aliases in NUMERIC_ALIASES.items()
    }

    revenue = numbers["revenue_rub"]
    checks = numbers["checks"]
    pieces = numbers["pieces"]
    weight = numbers["weight_kg"]

    return {
        "id": clean_string(row.get("id")) or f"row-{index}",
        "date": clean_date(first_usable(row, STRING_ALIASES["date"], "")),
        "store_name": text["store_name"] or UNKNOWN_STORE,
        "category_name": text["category_name"] or UNCATEGORIZED,
        "unit_raw": text["unit_raw"],
        "unit_type": infer_unit_type(row.get("unit_type"), text["unit_raw"]),
        "pieces_per_kg": numbers["pieces_per_kg"],
        "weight_kg": weight,
        "revenue_rub": revenue,
        "checks": checks,
        "pieces": pieces,
        "week": numbers["week"],
        "month": numbers["month"],
        "quarter": numbers["quarter"],
        "year": numbers["year"] or DEFAULT_YEAR,
        "atv": safe_ratio(revenue, checks),
        "upt": safe_ratio(pieces, checks),
        "avg_price_per_kg": safe_ratio(revenue, weight),
        "avg_price_per_piece": safe_ratio(revenue, pieces),
    }


def frame_from_records(records: Iterable[Mapping]) -> pd.DataFrame:
    out = pd.DataFrame(list(records))

    for column in NORMALIZED_COLUMNS:
        if column not in out.columns:
            out[column] = pd.NA

    for column in STRING_COLUMNS:
        out[column] = out[column].astype(object).where(out[column].notna(), "")
        out[column] = out[column].map(clean_string)

    for column in NUMERIC_COLUMNS:
        out[column] = pd.to_numeric(out[column], errors="coerce").fillna(0).astype(float)

    return out[NORMALIZED_COLUMNS].reset_index(drop=True)


def normalize_rows(items: Iterable[object]) -> pd.DataFrame:
    records = [normalize_row(item, index) for index, item in enumerate(items)]
    return frame_from_records(records)
