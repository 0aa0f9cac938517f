from bidlens.dashboard.filters import (
    FacetOption,
    list_campaigns,
    list_keywords,
    list_retailers,
    list_weeks,
)
from bidlens.dashboard.performance import delta, get_performance_delta, weekly_series
from bidlens.dashboard.sql import FilterSelection, Statement, parse_week_label, sql_literal

__all__ = [
    "FacetOption",
    "FilterSelection",
    "Statement",
    "delta",
    "get_performance_delta",
    "list_campaigns",
    "list_keywords",
    "list_retailers",
    "list_weeks",
    "parse_week_label",
    "sql_literal",
    "weekly_series",
]
