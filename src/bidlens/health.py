from __future__ import annotations

from typing import Any

from bidlens.config import Settings
from bidlens.errors import CONFIG_INSTRUCTIONS
from bidlens.util import now_utc_iso


HOST_VAR = "DATABRICKS_HOST"
HTTP_PATH_VAR = "DATABRICKS_HTTP_PATH"
ACCESS_TOKEN_VAR = "DATABRICKS_ACCESS_TOKEN"
CLIENT_ID_VAR = "DATABRICKS_CLIENT_ID"
CLIENT_SECRET_VAR = "DATABRICKS_CLIENT_SECRET"


def missing_variables(settings: Settings) -> list[str]:
    """
    Names of the settings that keep the warehouse from being usable.

    Hostname and HTTP path are always required. When neither auth mode is
    complete, the token is listed along with whatever half of the OAuth
    client pair is absent.
    """
    missing: list[str] = []
    if not settings.databricks_host:
        missing.append(HOST_VAR)
    if not settings.databricks_http_path:
        missing.append(HTTP_PATH_VAR)
    if settings.auth_mode is None:
        missing.append(ACCESS_TOKEN_VAR)
        if not settings.databricks_client_id:
            missing.append(CLIENT_ID_VAR)
        if not settings.databricks_client_secret:
            missing.append(CLIENT_SECRET_VAR)
    return missing


def config_status(settings: Settings) -> dict[str, Any]:
    missing = missing_variables(settings)
    return {
        "status": "configuration_incomplete" if missing else "ok",
        "databricksConfigured": not missing,
        "configStatus": {
            "serverHostname": bool(settings.databricks_host),
            "httpPath": bool(settings.databricks_http_path),
            "accessToken": bool(settings.databricks_access_token),
            "clientId": bool(settings.databricks_client_id),
            "clientSecret": bool(settings.databricks_client_secret),
        },
        "authMode": settings.auth_mode,
        "missingVariables": missing,
        "environment": settings.environment,
        "instructions": CONFIG_INSTRUCTIONS if missing else None,
        "timestamp": now_utc_iso(),
    }
