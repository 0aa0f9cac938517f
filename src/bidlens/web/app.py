from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
import uvicorn

from bidlens.config import Settings
from bidlens.dashboard import (
    FilterSelection,
    get_performance_delta,
    list_campaigns,
    list_keywords,
    list_retailers,
    list_weeks,
    weekly_series,
)
from bidlens.errors import BidlensError, ValidationError
from bidlens.health import config_status
from bidlens.upload import VolumeUploader
from bidlens.warehouse import Warehouse


logger = logging.getLogger(__name__)


def _unexpected(e: Exception) -> JSONResponse:
    logger.exception("dashboard request failed")
    return JSONResponse({"error": str(e) or type(e).__name__}, status_code=500)


def create_app(
    settings: Settings,
    *,
    warehouse: Warehouse | None = None,
    uploader: VolumeUploader | None = None,
) -> FastAPI:
    warehouse = warehouse or Warehouse(settings)
    uploader = uploader or VolumeUploader(settings)

    base_dir = Path(__file__).resolve().parent
    static_dir = base_dir / "static"

    app = FastAPI(title="bidlens")
    app.state.settings = settings
    app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BidlensError)
    async def bidlens_error(_request: Request, exc: BidlensError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    def _selection(
        retailers: str | None,
        campaigns: str | None,
        keywords: str | None,
        weeks: str | None,
    ) -> FilterSelection:
        return FilterSelection.parse(retailers=retailers, campaigns=campaigns, keywords=keywords, weeks=weeks)

    # --- Health ---

    @app.get("/health")
    def health():
        return config_status(settings)

    @app.get("/api/health")
    def api_health():
        return config_status(settings)

    # --- Ad-hoc SQL ---

    @app.post("/api/query")
    async def run_query(request: Request):
        try:
            payload = await request.json()
        except Exception:
            payload = None
        query = payload.get("query") if isinstance(payload, dict) else None
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Please provide a valid SQL query")

        result = await run_in_threadpool(warehouse.execute_query, query)
        return {"success": True, "data": result.to_dict()}

    # --- Upload ---

    @app.post("/api/upload")
    async def upload_file(file: UploadFile | None = File(None)):
        if file is None or not file.filename:
            raise ValidationError("No file uploaded")
        data = await file.read()
        res = await uploader.upload(file.filename, data)
        return {
            "success": True,
            "message": f"File uploaded successfully to {res['path']}",
            "path": res["path"],
        }

    # --- Dashboard filters ---

    @app.get("/api/dashboard/filters/retailers")
    def filter_retailers(
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ):
        try:
            selection = _selection(retailers, campaigns, keywords, weeks)
            options = list_retailers(warehouse, settings, selection)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001
            return _unexpected(e)
        return {"success": True, "data": [o.to_dict() for o in options]}

    @app.get("/api/dashboard/filters/campaigns")
    def filter_campaigns(
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ):
        try:
            selection = _selection(retailers, campaigns, keywords, weeks)
            options = list_campaigns(warehouse, settings, selection)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001
            return _unexpected(e)
        return {"success": True, "data": [o.to_dict() for o in options]}

    @app.get("/api/dashboard/filters/keywords")
    def filter_keywords(
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ):
        try:
            selection = _selection(retailers, campaigns, keywords, weeks)
            options = list_keywords(warehouse, settings, selection)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001
            return _unexpected(e)
        return {"success": True, "data": [o.to_dict() for o in options]}

    @app.get("/api/dashboard/filters/weeks")
    def filter_weeks(
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ):
        try:
            selection = _selection(retailers, campaigns, keywords, weeks)
            options = list_weeks(warehouse, settings, selection)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001
            return _unexpected(e)
        return {"success": True, "data": [o.to_dict() for o in options]}

    # --- Dashboard data ---

    @app.get("/api/dashboard/data")
    def dashboard_data(
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ):
        try:
            selection = _selection(retailers, campaigns, keywords, weeks)
            result = weekly_series(warehouse, settings, selection)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001
            return _unexpected(e)
        return {"success": True, "data": result.to_dict()}

    @app.get("/api/performance-data")
    async def performance_data(
        retailers: str | None = None,
        campaigns: str | None = None,
        keywords: str | None = None,
        weeks: str | None = None,
    ):
        try:
            selection = _selection(retailers, campaigns, keywords, weeks)
            rows: list[dict[str, Any]] = await get_performance_delta(warehouse, settings, selection)
        except BidlensError:
            raise
        except Exception as e:  # noqa: BLE001
            return _unexpected(e)
        return {"success": True, "data": rows}

    # --- Pages ---

    @app.get("/", include_in_schema=False)
    def index():
        return FileResponse(str(static_dir / "index.html"))

    @app.get("/dashboard", include_in_schema=False)
    def dashboard_page():
        return FileResponse(str(static_dir / "dashboard.html"))

    @app.get("/performance-data", include_in_schema=False)
    def performance_page():
        return FileResponse(str(static_dir / "performance.html"))

    return app


def _log_startup(settings: Settings) -> None:
    status = config_status(settings)
    logger.info("configuration status: %s", status["configStatus"])
    if status["missingVariables"]:
        logger.warning(
            "Databricks configuration is incomplete; set: %s",
            ", ".join(status["missingVariables"]),
        )


def run_web(settings: Settings) -> None:
    app = create_app(settings)
    _log_startup(settings)
    uvicorn.run(app, host=settings.web_host, port=settings.web_port, log_level=settings.log_level.lower())
