from __future__ import annotations

import logging
from contextlib import ExitStack, closing
from dataclasses import dataclass, field
from typing import Any, Callable

from bidlens.config import Settings
from bidlens.dashboard.sql import Statement
from bidlens.errors import BidlensError, ConfigurationError, ExecutionError
from bidlens.health import missing_variables


logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        return {"columns": self.columns, "rows": self.rows, "rowCount": self.row_count}


def _sql_client():
    try:
        from databricks import sql
    except ImportError as e:
        raise ExecutionError(
            "Databricks SQL client not available",
            details=f"{type(e).__name__}: {e}. Install databricks-sql-connector.",
        ) from e
    return sql


def _oauth_config(settings: Settings):
    try:
        from databricks.sdk.core import Config
    except ImportError as e:
        raise ExecutionError(
            "Databricks SDK not available for OAuth",
            details=f"{type(e).__name__}: {e}. Install databricks-sdk.",
        ) from e
    return Config(
        host=f"https://{settings.databricks_host}",
        client_id=settings.databricks_client_id,
        client_secret=settings.databricks_client_secret,
    )


def credentials_provider(settings: Settings) -> Callable[[], Any]:
    """OAuth machine-to-machine provider in the shape `sql.connect` expects."""

    def _provider():
        from databricks.sdk.core import oauth_service_principal

        return oauth_service_principal(_oauth_config(settings))

    return _provider


def auth_headers(settings: Settings) -> dict[str, str]:
    """Bearer headers for Databricks REST calls in the active auth mode."""
    require_configured(settings)
    if settings.auth_mode == "oauth":
        header_factory = credentials_provider(settings)()
        return dict(header_factory())
    return {"Authorization": f"Bearer {settings.databricks_access_token}"}


def require_configured(settings: Settings) -> None:
    missing = missing_variables(settings)
    if missing:
        raise ConfigurationError(
            "Databricks configuration is missing.",
            details=f"Missing environment variables: {', '.join(missing)}",
            missing=missing,
        )


def _connect_kwargs(settings: Settings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "server_hostname": settings.databricks_host,
        "http_path": settings.databricks_http_path,
    }
    if settings.auth_mode == "oauth":
        kwargs["credentials_provider"] = credentials_provider(settings)
    else:
        kwargs["access_token"] = settings.databricks_access_token
    return kwargs


def _result_columns(description: Any, rows: list[Any]) -> list[str]:
    if description:
        return [str(d[0]) for d in description]
    if rows:
        first = rows[0]
        if hasattr(first, "asDict"):
            return list(first.asDict().keys())
        if isinstance(first, dict):
            return list(first.keys())
    return []


def _as_dict(row: Any, columns: list[str]) -> dict[str, Any]:
    if isinstance(row, dict):
        return dict(row)
    if hasattr(row, "asDict"):
        return row.asDict()
    return dict(zip(columns, row))


class Warehouse:
    """
    Runs one statement per connection against a Databricks SQL warehouse.

    Every call opens a connection (which owns the session) and a cursor,
    and releases both before returning, whether the statement succeeded or
    not.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def execute_query(self, sql_text: str, parameters: dict[str, Any] | None = None) -> QueryResult:
        return self.execute(Statement(sql_text, dict(parameters or {})))

    def execute(self, statement: Statement) -> QueryResult:
        require_configured(self.settings)
        client = _sql_client()

        if self.settings.native_parameters:
            sql_text, params = statement.sql, (statement.parameters or None)
        else:
            sql_text, params = statement.inline(), None

        try:
            with ExitStack() as stack:
                conn = stack.enter_context(closing(client.connect(**_connect_kwargs(self.settings))))
                cursor = stack.enter_context(closing(conn.cursor()))
                if params:
                    cursor.execute(sql_text, params)
                else:
                    cursor.execute(sql_text)
                raw_rows = list(cursor.fetchall() or [])
                columns = _result_columns(cursor.description, raw_rows)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001 - driver raises its own hierarchy
            logger.error("query execution failed: %s: %s", type(e).__name__, e)
            raise ExecutionError(str(e) or "Failed to execute query", details=f"{type(e).__name__}: {e}") from e

        result = QueryResult(columns=columns, rows=[_as_dict(r, columns) for r in raw_rows])
        logger.info("query returned %d rows", result.row_count)
        return result
