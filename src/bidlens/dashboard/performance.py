from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from fastapi.concurrency import run_in_threadpool

from bidlens.config import Settings
from bidlens.dashboard.sql import FilterSelection, Predicates, Statement, filter_predicates, previous_week
from bidlens.util import to_float

if TYPE_CHECKING:
    from bidlens.warehouse import QueryResult, Warehouse


METRICS = (
    "impressions",
    "clicks",
    "conversions",
    "spend",
    "sales_rev",
    "cpc",
    "avg_rank",
    "roas",
    "ctr",
    "cpa",
    "conversion_rate",
)

# Ratios presented as percentages.
PERCENT_METRICS = frozenset({"ctr", "conversion_rate"})

_METRIC_SQL = """
  SUM(impressions) AS impressions,
  SUM(clicks) AS clicks,
  SUM(conversions) AS conversions,
  SUM(cost) AS spend,
  SUM(revenue) AS sales_rev,
  AVG(avg_cpc) AS cpc,
  AVG(avg_pos) AS avg_rank,
  SUM(revenue) / NULLIF(SUM(cost), 0) AS roas,
  SUM(clicks) / NULLIF(SUM(impressions), 0) AS ctr,
  SUM(cost) / NULLIF(SUM(conversions), 0) AS cpa,
  SUM(conversions) / NULLIF(SUM(clicks), 0) AS conversion_rate
"""


def delta(current: float | None, previous: float | None) -> float | None:
    """Percentage change from `previous` to `current`; None when either side is missing or zero."""
    if current is None or previous is None:
        return None
    if current == 0 or previous == 0:
        return None
    return (current - previous) / previous * 100


def _latest_week_sql(settings: Settings) -> str:
    return f"CAST((SELECT MAX(DATE_TRUNC('week', date)) FROM {settings.fact_table}) AS DATE)"


def _window_predicates(settings: Settings, selection: FilterSelection, *, previous: bool) -> Predicates:
    p = filter_predicates(selection, exclude="weeks")
    if selection.weeks:
        weeks = [previous_week(w) for w in selection.weeks] if previous else list(selection.weeks)
        p.add_weeks(weeks, prefix="prev_week" if previous else "week")
    elif previous:
        p.add(f"CAST(DATE_TRUNC('week', date) AS DATE) = DATE_SUB({_latest_week_sql(settings)}, 7)")
    else:
        p.add(f"CAST(DATE_TRUNC('week', date) AS DATE) = {_latest_week_sql(settings)}")
    return p


def current_week_statement(settings: Settings, selection: FilterSelection) -> Statement:
    p = _window_predicates(settings, selection, previous=False)
    sql = f"""
        WITH agg AS (
          SELECT
            campaign_id,
            keyword_id,
            MAX(account_name) AS retailer,
            {_METRIC_SQL}
          FROM {settings.fact_table}
          {p.where()}
          GROUP BY campaign_id, keyword_id
        ),
        names AS (
          SELECT keyword_id, account_name, MAX(keyword) AS keyword
          FROM {settings.dim_table}
          GROUP BY keyword_id, account_name
        )
        SELECT
          a.*,
          COALESCE(n.keyword, CAST(a.keyword_id AS STRING)) AS keyword
        FROM agg a
        LEFT JOIN names n
          ON a.keyword_id = n.keyword_id
         AND a.retailer = n.account_name
        ORDER BY a.spend DESC
    """
    return Statement(sql, p.parameters)


def previous_week_statement(settings: Settings, selection: FilterSelection) -> Statement:
    p = _window_predicates(settings, selection, previous=True)
    sql = f"""
        SELECT
          campaign_id,
          keyword_id,
          {_METRIC_SQL}
        FROM {settings.fact_table}
        {p.where()}
        GROUP BY campaign_id, keyword_id
    """
    return Statement(sql, p.parameters)


def weekly_series_statement(settings: Settings, selection: FilterSelection) -> Statement:
    p = filter_predicates(selection)
    sql = f"""
        SELECT
          DATE_TRUNC('week', date) AS week,
          {_METRIC_SQL}
        FROM {settings.fact_table}
        {p.where()}
        GROUP BY week
        ORDER BY week
    """
    return Statement(sql, p.parameters)


def _row_key(row: dict[str, Any]) -> tuple[str, str]:
    return str(row.get("campaign_id")), str(row.get("keyword_id"))


def _metric(row: dict[str, Any] | None, name: str) -> float | None:
    if row is None:
        return None
    v = to_float(row.get(name))
    if v is not None and name in PERCENT_METRICS:
        v = v * 100
    return v


def join_weeks(current: list[dict[str, Any]], previous: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Pair each current-week row with its previous-week row and attach `<metric>_delta`."""
    previous_by_key = {_row_key(r): r for r in previous}
    out: list[dict[str, Any]] = []
    for row in current:
        campaign_id, keyword_id = _row_key(row)
        prev = previous_by_key.get((campaign_id, keyword_id))
        keyword = row.get("keyword")
        item: dict[str, Any] = {
            "campaign_id": campaign_id,
            "keyword_id": keyword_id,
            "keyword": str(keyword) if keyword not in (None, "") else keyword_id,
            "retailer": row.get("retailer"),
        }
        for name in METRICS:
            value = _metric(row, name)
            item[name] = value
            item[f"{name}_delta"] = delta(value, _metric(prev, name))
        out.append(item)
    return out


async def get_performance_delta(
    warehouse: Warehouse,
    settings: Settings,
    selection: FilterSelection,
) -> list[dict[str, Any]]:
    current, previous = await asyncio.gather(
        run_in_threadpool(warehouse.execute, current_week_statement(settings, selection)),
        run_in_threadpool(warehouse.execute, previous_week_statement(settings, selection)),
    )
    return join_weeks(current.rows, previous.rows)


def weekly_series(warehouse: Warehouse, settings: Settings, selection: FilterSelection) -> QueryResult:
    return warehouse.execute(weekly_series_statement(settings, selection))
