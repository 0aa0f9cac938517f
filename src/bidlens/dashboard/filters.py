from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bidlens.config import Settings
from bidlens.dashboard.sql import FilterSelection, Statement, filter_predicates, week_label
from bidlens.util import to_day_iso

if TYPE_CHECKING:
    from bidlens.warehouse import Warehouse


logger = logging.getLogger(__name__)

RETAILER_LIMIT = 20
WEEK_LIMIT = 20
CAMPAIGN_LIMIT = 50
KEYWORD_LIMIT = 50


@dataclass(frozen=True)
class FacetOption:
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


def _option(raw_id: Any, raw_name: Any) -> FacetOption:
    option_id = str(raw_id)
    name = raw_name if raw_name not in (None, "") else option_id
    return FacetOption(id=option_id, name=str(name))


def retailers_statement(settings: Settings, selection: FilterSelection) -> Statement:
    p = filter_predicates(selection, exclude="retailers")
    sql = (
        f"SELECT DISTINCT account_name AS retailer FROM {settings.fact_table} "
        f"{p.where()} ORDER BY retailer LIMIT {RETAILER_LIMIT}"
    )
    return Statement(sql, p.parameters)


def _named_ids_statement(
    settings: Settings,
    selection: FilterSelection,
    *,
    facet: str,
    id_column: str,
    name_column: str,
    limit: int,
) -> Statement:
    # Distinct (id, retailer) pairs from the fact table, named through the
    # dimension table for the same retailer; unmatched ids keep their id.
    p = filter_predicates(selection, exclude=facet)
    sql = f"""
        SELECT
          f.{id_column} AS id,
          COALESCE(MAX(d.{name_column}), CAST(f.{id_column} AS STRING)) AS name
        FROM (
          SELECT DISTINCT {id_column}, account_name
          FROM {settings.fact_table}
          {p.where()}
        ) f
        LEFT JOIN {settings.dim_table} d
          ON f.{id_column} = d.{id_column}
         AND f.account_name = d.account_name
        GROUP BY f.{id_column}
        ORDER BY name, id
        LIMIT {limit}
    """
    return Statement(sql, p.parameters)


def campaigns_statement(settings: Settings, selection: FilterSelection) -> Statement:
    return _named_ids_statement(
        settings,
        selection,
        facet="campaigns",
        id_column="campaign_id",
        name_column="campaign_name",
        limit=CAMPAIGN_LIMIT,
    )


def keywords_statement(settings: Settings, selection: FilterSelection) -> Statement:
    return _named_ids_statement(
        settings,
        selection,
        facet="keywords",
        id_column="keyword_id",
        name_column="keyword",
        limit=KEYWORD_LIMIT,
    )


def weeks_statement(settings: Settings, selection: FilterSelection) -> Statement:
    p = filter_predicates(selection, exclude="weeks")
    sql = (
        f"SELECT DISTINCT CAST(DATE_TRUNC('week', date) AS DATE) AS week FROM {settings.fact_table} "
        f"{p.where()} ORDER BY week DESC LIMIT {WEEK_LIMIT}"
    )
    return Statement(sql, p.parameters)


def _log_unnamed(facet: str, options: list[FacetOption]) -> None:
    unnamed = [o.id for o in options if o.id == o.name]
    if unnamed:
        logger.debug("%d %s without a dimension entry, e.g. %s", len(unnamed), facet, unnamed[:3])


def list_retailers(warehouse: Warehouse, settings: Settings, selection: FilterSelection) -> list[FacetOption]:
    result = warehouse.execute(retailers_statement(settings, selection))
    return [_option(r.get("retailer"), r.get("retailer")) for r in result.rows if r.get("retailer") is not None]


def list_campaigns(warehouse: Warehouse, settings: Settings, selection: FilterSelection) -> list[FacetOption]:
    result = warehouse.execute(campaigns_statement(settings, selection))
    options = [_option(r.get("id"), r.get("name")) for r in result.rows if r.get("id") is not None]
    _log_unnamed("campaigns", options)
    return options


def list_keywords(warehouse: Warehouse, settings: Settings, selection: FilterSelection) -> list[FacetOption]:
    result = warehouse.execute(keywords_statement(settings, selection))
    options = [_option(r.get("id"), r.get("name")) for r in result.rows if r.get("id") is not None]
    _log_unnamed("keywords", options)
    return options


def list_weeks(warehouse: Warehouse, settings: Settings, selection: FilterSelection) -> list[FacetOption]:
    result = warehouse.execute(weeks_statement(settings, selection))
    out: list[FacetOption] = []
    for r in result.rows:
        day = to_day_iso(r.get("week"))
        if not day:
            continue
        out.append(FacetOption(id=day, name=week_label(day)))
    return out
