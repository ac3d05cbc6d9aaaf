"""Brazilian minimum wage history and the value of claim derived from it."""

from typing import Any, Optional

from ..consolidation.consolidator import parse_date


MINIMUM_WAGE_BY_YEAR = {
    2010: 510.00,
    2011: 545.00,
    2012: 622.00,
    2013: 678.00,
    2014: 724.00,
    2015: 788.00,
    2016: 880.00,
    2017: 937.00,
    2018: 954.00,
    2019: 998.00,
    2020: 1045.00,
    2021: 1100.00,
    2022: 1212.00,
    2023: 1320.00,
    2024: 1412.00,
    2025: 1518.00,
}

DEFAULT_MINIMUM_WAGE = 1412.00

# Maternity pay covers 120 days.
BENEFIT_MONTHS = 4


def minimum_wage_for_year(year: int) -> float:
    return MINIMUM_WAGE_BY_YEAR.get(year, DEFAULT_MINIMUM_WAGE)


def value_of_claim(child_birth_date: Any) -> Optional[float]:
    """Four minimum wages of the birth year, or None if the date is unusable."""
    birth = parse_date(child_birth_date)
    if birth is None:
        return None
    return minimum_wage_for_year(birth.year) * BENEFIT_MONTHS


def format_brl(value: float) -> str:
    """Format as Brazilian currency, e.g. 5648.0 -> 'R$ 5.648,00'."""
    text = f"{value:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")
