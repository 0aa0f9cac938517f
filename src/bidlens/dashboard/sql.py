from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable

from bidlens.errors import ValidationError


ALL = "all"

_MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}
_MONTH_NAMES = {v: k for k, v in _MONTHS.items()}

_ISO_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# `:name` markers; `::` casts are left alone.
_PARAM_RE = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")


def sql_literal(value: Any) -> str:
    """
    Render a value as a Databricks SQL literal.

    This is the only place user-supplied values are turned into SQL text.
    Strings are single-quoted with `'` doubled and `\\` doubled, so the
    value can never close the literal early.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    s = str(value).replace("\\", "\\\\").replace("'", "''")
    return f"'{s}'"


@dataclass(frozen=True)
class Statement:
    sql: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def inline(self) -> str:
        """SQL text with every bound parameter replaced by its escaped literal."""
        if not self.parameters:
            return self.sql

        def _sub(m: re.Match[str]) -> str:
            name = m.group(1)
            if name not in self.parameters:
                return m.group(0)
            return sql_literal(self.parameters[name])

        return _PARAM_RE.sub(_sub, self.sql)


def parse_week_label(label: str) -> str:
    """
    "Wo Jan 05 2024" -> "2024-01-05". ISO dates are accepted as-is.
    """
    s = (label or "").strip()
    if _ISO_DAY_RE.match(s):
        try:
            return date.fromisoformat(s).isoformat()
        except ValueError as e:
            raise ValidationError(f"invalid week: {label!r}") from e

    if s.startswith("Wo "):
        s = s[3:]
    parts = s.split()
    if len(parts) != 3:
        raise ValidationError(f"invalid week: {label!r}")
    month = _MONTHS.get(parts[0][:3].title())
    if month is None:
        raise ValidationError(f"invalid week: {label!r}")
    try:
        return date(int(parts[2]), month, int(parts[1])).isoformat()
    except ValueError as e:
        raise ValidationError(f"invalid week: {label!r}") from e


def week_label(day_iso: str) -> str:
    d = date.fromisoformat(day_iso)
    return f"Wo {_MONTH_NAMES[d.month]} {d.day:02d} {d.year}"


def previous_week(day_iso: str) -> str:
    return (date.fromisoformat(day_iso) - timedelta(days=7)).isoformat()


def _split_values(raw: str | None) -> tuple[str, ...]:
    s = (raw or "").strip()
    if not s or s.lower() == ALL:
        return ()
    out: list[str] = []
    for part in s.split(","):
        v = part.strip()
        if v and v not in out:
            out.append(v)
    return tuple(out)


@dataclass(frozen=True)
class FilterSelection:
    """Pinned facet values. An empty tuple means the facet is "all"."""

    retailers: tuple[str, ...] = ()
    campaigns: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    weeks: tuple[str, ...] = ()  # ISO week-start dates

    @staticmethod
    def parse(
        *,
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ) -> "FilterSelection":
        return FilterSelection(
            retailers=_split_values(retailers),
            campaigns=_split_values(campaigns),
            keywords=_split_values(keywords),
            weeks=tuple(dict.fromkeys(parse_week_label(w) for w in _split_values(weeks))),
        )


class Predicates:
    """AND-ed WHERE clauses with their bound parameters."""

    def __init__(self) -> None:
        self.clauses: list[str] = []
        self.parameters: dict[str, Any] = {}

    def _bind(self, prefix: str, values: Iterable[Any]) -> list[str]:
        markers: list[str] = []
        for v in values:
            name = f"{prefix}_{len(self.parameters)}"
            self.parameters[name] = v
            markers.append(f":{name}")
        return markers

    def add(self, clause: str) -> None:
        self.clauses.append(clause)

    def add_in(self, column: str, values: Iterable[str], *, prefix: str) -> None:
        markers = self._bind(prefix, values)
        if markers:
            self.clauses.append(f"{column} IN ({', '.join(markers)})")

    def add_weeks(self, days: Iterable[str], *, prefix: str = "week", column: str = "date") -> None:
        markers = self._bind(prefix, days)
        if markers:
            ors = " OR ".join(f"DATE_TRUNC('week', {column}) = CAST({m} AS DATE)" for m in markers)
            self.clauses.append(f"({ors})")

    def where(self) -> str:
        if not self.clauses:
            return ""
        return "WHERE " + " AND ".join(self.clauses)


def filter_predicates(selection: FilterSelection, *, exclude: str | None = None) -> Predicates:
    """
    Predicates for every pinned facet except `exclude`, so an option list
    for one facet is narrowed by the others only.
    """
    p = Predicates()
    if exclude != "retailers":
        p.add_in("account_name", selection.retailers, prefix="retailer")
    if exclude != "campaigns":
        p.add_in("campaign_id", selection.campaigns, prefix="campaign")
    if exclude != "keywords":
        p.add_in("keyword_id", selection.keywords, prefix="keyword")
    if exclude != "weeks":
        p.add_weeks(selection.weeks)
    return p
