from __future__ import annotations

from typing import Any


CONFIG_INSTRUCTIONS = "Set the missing environment variables in app.yaml or the Databricks App settings."


class BidlensError(RuntimeError):
    status_code = 500

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ConfigurationError(BidlensError):
    """Missing or incomplete settings. Raised before any network I/O."""

    def __init__(self, message: str, *, details: str | None = None, missing: list[str] | None = None):
        super().__init__(message, details=details)
        self.missing = list(missing or [])

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.missing:
            out["instructions"] = CONFIG_INSTRUCTIONS
        return out


class ExecutionError(BidlensError):
    pass


class ValidationError(BidlensError):
    status_code = 400


class UploadError(BidlensError):
    pass
