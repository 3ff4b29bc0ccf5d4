import pytest

from normalize_sales_rows import normalize_rows


@pytest.fixture
def raw_rows():
    """A small bilingual payload covering both key vocabularies and the wrapper."""
    return [
        {
            "id": "a1",
            "date": "2025-07-01",
            "store_name": "Центральный",
            "category_name": "Овощи",
            "unit_raw": "1 кг",
            "weight_kg": 10,
            "revenue_rub": 1000,
            "checks": 10,
            "pieces": 20,
            "month": 7,
            "quarter": 3,
            "year": 2025,
        },
        {
            "json": {
                "Дата": "2025-07-02",
                "Магазин": "Центральный",
                "Категория товара": "Фрукты",
                "Шт. в кг": "10 шт",
                "Выручка, ₽": "1 500,00 ₽",
                "Чеки, шт.": "5",
                "Штуки": "15",
                "Месяц": 7,
                "Квартал": 3,
            }
        },
        {
            "date": "2025-08-03",
            "store_name": "Северный",
            "category_name": "Овощи",
            "unit_type": "KG",
            "weight_kg": "2,5",
            "revenue_rub": 600,
            "checks": 4,
            "peaces": 6,
            "month": 8,
            "quarter": 3,
            "year": 2025,
        },
        {
            "date": "2025-08-04",
            "store_name": "Северный",
            "category_name": "Хлеб",
            "unit_raw": "шт",
            "revenue_rub": 300,
            "checks": 0,
            "pieces": 12,
            "month": 8,
            "quarter": 3,
            "year": 2025,
        },
    ]


@pytest.fixture
def dataset(raw_rows):
    return normalize_rows(raw_rows)
