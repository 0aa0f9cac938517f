from __future__ import annotations

import asyncio
import csv
import io
import logging
import os
from typing import Any
from urllib.parse import quote

import httpx

from bidlens.config import Settings
from bidlens.errors import UploadError, ValidationError
from bidlens.warehouse import auth_headers


logger = logging.getLogger(__name__)

REQUIRED_COLUMN = "retailer"


def read_csv_header(data: bytes) -> list[str]:
    """
    Parse only the first CSV record of `data`.

    The buffer is wrapped, not decoded up front, so large uploads are not
    read past the header row.
    """
    stream = io.TextIOWrapper(io.BytesIO(data), encoding="utf-8-sig", errors="replace", newline="")
    try:
        return next(csv.reader(stream), [])
    except csv.Error as e:
        raise ValidationError(f"Invalid CSV file format: {e}") from e
    finally:
        stream.detach()


def validate_csv_upload(file_name: str | None, data: bytes, *, max_bytes: int | None = None) -> None:
    if not file_name:
        raise ValidationError("No file uploaded")
    if os.path.splitext(file_name)[1].lower() != ".csv":
        raise ValidationError("File must be a CSV file (.csv extension required)")
    if max_bytes is not None and len(data) > max_bytes:
        raise ValidationError(f"File is too large (limit {max_bytes // (1024 * 1024)} MB)")
    if REQUIRED_COLUMN not in read_csv_header(data):
        raise ValidationError(f'CSV file must contain a column named "{REQUIRED_COLUMN}"')


def _error_message(response: httpx.Response) -> str:
    try:
        payload: Any = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if payload.get("message"):
            return str(payload["message"])
    body = (response.text or "").strip()[:4000]
    return body or f"Failed to upload file to Databricks ({response.status_code} {response.reason_phrase})"


class VolumeUploader:
    """Writes files into a Unity Catalog volume through the Databricks Files API."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def target_path(self, file_name: str) -> str:
        return f"{self.settings.volume_path}/{file_name}"

    def upload_url(self, target: str) -> str:
        # Percent-encoded so `#`, `?` and `%` in a file name stay part of the path.
        return f"https://{self.settings.databricks_host}/api/2.0/fs/files{quote(target, safe='/')}"

    async def upload(self, file_name: str, data: bytes) -> dict[str, str]:
        validate_csv_upload(file_name, data, max_bytes=self.settings.max_upload_bytes)

        target = self.target_path(file_name)
        # OAuth mode exchanges a token over blocking HTTP.
        headers = await asyncio.to_thread(auth_headers, self.settings)
        headers["Content-Type"] = "application/octet-stream"
        url = self.upload_url(target)
        logger.info("uploading %d bytes to %s", len(data), target)

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                r = await client.put(
                    url,
                    content=data,
                    headers=headers,
                    params={"overwrite": "true"},
                    timeout=self.settings.upload_timeout_sec,
                )
        except httpx.HTTPError as e:
            logger.error("upload to %s failed: %s: %s", target, type(e).__name__, e)
            raise UploadError(str(e) or "Failed to upload file to Databricks") from e

        if r.status_code // 100 != 2:
            message = _error_message(r)
            logger.error("upload to %s rejected: %s %s", target, r.status_code, message)
            raise UploadError(message, details=f"HTTP {r.status_code}")

        return {"path": target}
