from __future__ import annotations

from dataclasses import dataclass
import os
import re

from dotenv import load_dotenv

from bidlens.errors import ConfigurationError


DEFAULT_FACT_TABLE = "kna_prd_ds.sales_exec.bid_opt_master_fact_historical"
DEFAULT_DIM_TABLE = "kna_prd_ds.sales_exec.bid_opt_master_dim_historical"
DEFAULT_VOLUME_PATH = "/Volumes/kna_prd_ds/sales_exec/bid_opt"

# catalog.schema.table, each part a plain identifier
_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*){0,2}$")


def _truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env(*names: str) -> str | None:
    for name in names:
        v = os.getenv(name)
        if v is not None and v.strip():
            return v.strip()
    return None


def _normalize_host(raw: str | None) -> str:
    host = (raw or "").strip()
    for prefix in ("https://", "http://"):
        if host.lower().startswith(prefix):
            host = host[len(prefix):]
    return host.rstrip("/")


def _table_name(env_name: str, default: str) -> str:
    name = _env(env_name) or default
    if not _TABLE_NAME_RE.match(name):
        raise ConfigurationError(f"{env_name} is not a valid table name: {name!r}")
    return name


@dataclass(frozen=True)
class Settings:
    databricks_host: str
    databricks_http_path: str
    databricks_access_token: str | None
    databricks_client_id: str | None
    databricks_client_secret: str | None
    fact_table: str
    dim_table: str
    volume_path: str
    native_parameters: bool
    max_upload_bytes: int
    upload_timeout_sec: float
    web_host: str
    web_port: int
    environment: str
    log_level: str

    @property
    def auth_mode(self) -> str | None:
        # OAuth wins when both halves of the client pair are present.
        if self.databricks_client_id and self.databricks_client_secret:
            return "oauth"
        if self.databricks_access_token:
            return "token"
        return None

    @staticmethod
    def load() -> "Settings":
        load_dotenv()

        max_upload_mb = float(os.getenv("BIDLENS_MAX_UPLOAD_MB", "100"))
        native_raw = os.getenv("BIDLENS_NATIVE_PARAMS")

        return Settings(
            databricks_host=_normalize_host(_env("DATABRICKS_HOST", "DATABRICKS_SERVER_HOSTNAME")),
            databricks_http_path=_env("DATABRICKS_HTTP_PATH") or "",
            databricks_access_token=_env("DATABRICKS_ACCESS_TOKEN", "DATABRICKS_TOKEN"),
            databricks_client_id=_env("DATABRICKS_CLIENT_ID"),
            databricks_client_secret=_env("DATABRICKS_CLIENT_SECRET"),
            fact_table=_table_name("BIDLENS_FACT_TABLE", DEFAULT_FACT_TABLE),
            dim_table=_table_name("BIDLENS_DIM_TABLE", DEFAULT_DIM_TABLE),
            volume_path=(_env("BIDLENS_VOLUME_PATH") or DEFAULT_VOLUME_PATH).rstrip("/"),
            native_parameters=True if native_raw is None else _truthy(native_raw),
            max_upload_bytes=int(max_upload_mb * 1024 * 1024),
            upload_timeout_sec=float(os.getenv("BIDLENS_UPLOAD_TIMEOUT_SEC", "120")),
            web_host=os.getenv("BIDLENS_WEB_HOST", "0.0.0.0"),
            web_port=int(os.getenv("PORT", "3000")),
            environment=os.getenv("BIDLENS_ENV", "development").strip() or "development",
            log_level=os.getenv("BIDLENS_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
