from __future__ import annotations

import pytest

from bidlens.dashboard.sql import (
    FilterSelection,
    Statement,
    filter_predicates,
    parse_week_label,
    previous_week,
    sql_literal,
    week_label,
)
from bidlens.errors import ValidationError


def test_sql_literal_doubles_quotes() -> None:
    assert sql_literal("O'Reilly") == "'O''Reilly'"
    assert sql_literal("x' OR '1'='1") == "'x'' OR ''1''=''1'"
    assert sql_literal("a\\'b") == "'a\\\\''b'"
    assert sql_literal(None) == "NULL"
    assert sql_literal(12) == "12"
    assert sql_literal(True) == "TRUE"


def test_statement_inline_replaces_only_known_markers() -> None:
    st = Statement(
        "SELECT * FROM t WHERE a IN (:retailer_0, :retailer_1) AND b = :other AND CAST(c AS DATE)::date",
        {"retailer_0": "Bob's", "retailer_1": "Acme"},
    )
    assert st.inline() == (
        "SELECT * FROM t WHERE a IN ('Bob''s', 'Acme') AND b = :other AND CAST(c AS DATE)::date"
    )


def test_statement_inline_without_parameters_is_unchanged() -> None:
    assert Statement("SELECT 1").inline() == "SELECT 1"


def test_parse_week_label() -> None:
    assert parse_week_label("Wo Jan 05 2024") == "2024-01-05"
    assert parse_week_label("Wo Dec 9 2023") == "2023-12-09"
    assert parse_week_label(" 2024-03-04 ") == "2024-03-04"


@pytest.mark.parametrize("label", ["Wo Foo 05 2024", "Wo Jan 2024", "Wo Feb 30 2024", "2024-13-01", ""])
def test_parse_week_label_rejects_garbage(label: str) -> None:
    with pytest.raises(ValidationError):
        parse_week_label(label)


def test_week_label_and_previous_week() -> None:
    assert week_label("2024-01-05") == "Wo Jan 05 2024"
    assert previous_week("2024-01-05") == "2023-12-29"


def test_selection_parse_treats_all_and_empty_as_unfiltered() -> None:
    sel = FilterSelection.parse(retailers="all", campaigns="", keywords=None, weeks="ALL")
    assert sel == FilterSelection()

    sel = FilterSelection.parse(retailers="A, B,,A", weeks="Wo Jan 05 2024,2024-01-05")
    assert sel.retailers == ("A", "B")
    assert sel.weeks == ("2024-01-05",)


def test_filter_predicates_binds_every_pinned_facet() -> None:
    sel = FilterSelection(retailers=("A",), campaigns=("c1", "c2"), keywords=("k1",), weeks=("2024-01-01",))
    p = filter_predicates(sel)
    where = p.where()
    assert where.startswith("WHERE ")
    assert "account_name IN (:retailer_0)" in where
    assert "campaign_id IN (:campaign_1, :campaign_2)" in where
    assert "keyword_id IN (:keyword_3)" in where
    assert "(DATE_TRUNC('week', date) = CAST(:week_4 AS DATE))" in where
    assert p.parameters == {
        "retailer_0": "A",
        "campaign_1": "c1",
        "campaign_2": "c2",
        "keyword_3": "k1",
        "week_4": "2024-01-01",
    }


def test_filter_predicates_excludes_own_facet() -> None:
    sel = FilterSelection(retailers=("A",), campaigns=("c1",))
    where = filter_predicates(sel, exclude="campaigns").where()
    assert "account_name" in where
    assert "campaign_id" not in where
    assert filter_predicates(FilterSelection()).where() == ""


def test_quote_in_facet_value_stays_inside_literal() -> None:
    sel = FilterSelection(retailers=("Kroger's",))
    p = filter_predicates(sel)
    sql = Statement(f"SELECT 1 FROM t {p.where()}", p.parameters).inline()
    assert sql == "SELECT 1 FROM t WHERE account_name IN ('Kroger''s')"
