from __future__ import annotations

import asyncio
import threading
from dataclasses import replace

import httpx
import pytest

import bidlens.upload as upload_mod
from bidlens.config import Settings
from bidlens.errors import ConfigurationError, UploadError, ValidationError
from bidlens.upload import VolumeUploader, read_csv_header, validate_csv_upload


def _settings(**overrides) -> Settings:
    base = Settings(
        databricks_host="dbc.example.com",
        databricks_http_path="/sql/1.0/warehouses/abc",
        databricks_access_token="dapi-test",
        databricks_client_id=None,
        databricks_client_secret=None,
        fact_table="cat.sch.fact",
        dim_table="cat.sch.dim",
        volume_path="/Volumes/cat/sch/vol",
        native_parameters=True,
        max_upload_bytes=1024 * 1024,
        upload_timeout_sec=10.0,
        web_host="127.0.0.1",
        web_port=0,
        environment="test",
        log_level="INFO",
    )
    return replace(base, **overrides)


CSV = b"retailer,campaign_id,bid\nAcme,c1,1.25\n"


def test_read_csv_header_strips_bom_and_quotes() -> None:
    assert read_csv_header(b'\xef\xbb\xbf"retailer","spend"\n"A",1\n') == ["retailer", "spend"]
    assert read_csv_header(b"") == []


@pytest.mark.parametrize(
    "name,data,message",
    [
        (None, CSV, "No file uploaded"),
        ("bids.txt", CSV, "File must be a CSV file"),
        ("bids.csv", b"store,bid\nAcme,1\n", 'column named "retailer"'),
        ("bids.csv", b"Retailer,bid\n", 'column named "retailer"'),
    ],
)
def test_validate_csv_upload_rejects(name, data, message) -> None:
    with pytest.raises(ValidationError, match=message):
        validate_csv_upload(name, data)


def test_validate_csv_upload_accepts_header_only_and_upper_extension() -> None:
    validate_csv_upload("BIDS.CSV", b"retailer\n")
    validate_csv_upload("bids.csv", b"bid,retailer\n\xff\xfe,Acme\n")


def test_validate_csv_upload_size_limit() -> None:
    with pytest.raises(ValidationError, match="too large"):
        validate_csv_upload("bids.csv", CSV, max_bytes=10)


def test_upload_puts_bytes_to_volume() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    uploader = VolumeUploader(_settings(), transport=httpx.MockTransport(handler))
    res = asyncio.run(uploader.upload("bids.csv", CSV))

    assert res == {"path": "/Volumes/cat/sch/vol/bids.csv"}
    req = seen[0]
    assert req.method == "PUT"
    assert req.url.host == "dbc.example.com"
    assert req.url.path == "/api/2.0/fs/files/Volumes/cat/sch/vol/bids.csv"
    assert req.url.params["overwrite"] == "true"
    assert req.headers["Authorization"] == "Bearer dapi-test"
    assert req.headers["Content-Type"] == "application/octet-stream"
    assert req.content == CSV


@pytest.mark.parametrize(
    "response,message",
    [
        (httpx.Response(403, json={"error": {"message": "PERMISSION_DENIED: no write"}}), "PERMISSION_DENIED: no write"),
        (httpx.Response(404, json={"error": "volume not found"}), "volume not found"),
        (httpx.Response(400, json={"error_code": "BAD", "message": "bad path"}), "bad path"),
        (httpx.Response(500, text="upstream exploded"), "upstream exploded"),
        (httpx.Response(502), "Failed to upload file to Databricks (502"),
    ],
)
def test_upload_unwraps_error_message(response: httpx.Response, message: str) -> None:
    uploader = VolumeUploader(_settings(), transport=httpx.MockTransport(lambda request: response))

    with pytest.raises(UploadError) as ei:
        asyncio.run(uploader.upload("bids.csv", CSV))

    assert message in ei.value.message
    assert ei.value.details == f"HTTP {response.status_code}"
    assert ei.value.status_code == 500


def test_upload_transport_error_becomes_upload_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    uploader = VolumeUploader(_settings(), transport=httpx.MockTransport(handler))
    with pytest.raises(UploadError, match="connection refused"):
        asyncio.run(uploader.upload("bids.csv", CSV))


def test_invalid_file_never_reaches_network() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    uploader = VolumeUploader(_settings(), transport=httpx.MockTransport(handler))
    with pytest.raises(ValidationError):
        asyncio.run(uploader.upload("bids.txt", CSV))
    with pytest.raises(ValidationError):
        asyncio.run(uploader.upload("bids.csv", b"store\nAcme\n"))
    assert calls == []


def test_upload_without_credentials_is_configuration_error() -> None:
    uploader = VolumeUploader(
        _settings(databricks_access_token=None),
        transport=httpx.MockTransport(lambda request: httpx.Response(200)),
    )
    with pytest.raises(ConfigurationError):
        asyncio.run(uploader.upload("bids.csv", CSV))


@pytest.mark.parametrize(
    "name,raw",
    [
        ("report#2.csv", b"report%232.csv"),
        ("q?x=1.csv", b"q%3Fx%3D1.csv"),
        ("50%.csv", b"50%25.csv"),
        ("weekly bids.csv", b"weekly%20bids.csv"),
    ],
)
def test_upload_keeps_special_characters_in_path(name: str, raw: bytes) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    uploader = VolumeUploader(_settings(), transport=httpx.MockTransport(handler))
    res = asyncio.run(uploader.upload(name, CSV))

    req = seen[0]
    assert res == {"path": f"/Volumes/cat/sch/vol/{name}"}
    assert req.url.path == f"/api/2.0/fs/files/Volumes/cat/sch/vol/{name}"
    assert req.url.raw_path == b"/api/2.0/fs/files/Volumes/cat/sch/vol/" + raw + b"?overwrite=true"
    assert dict(req.url.params) == {"overwrite": "true"}
    assert req.url.fragment == ""


def test_oauth_headers_are_fetched_off_the_event_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    loop_thread = threading.get_ident()
    header_threads: list[int] = []

    def fake_auth_headers(settings: Settings) -> dict[str, str]:
        header_threads.append(threading.get_ident())
        assert settings.auth_mode == "oauth"
        return {"Authorization": "Bearer oauth-token"}

    monkeypatch.setattr(upload_mod, "auth_headers", fake_auth_headers)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    s = _settings(databricks_access_token=None, databricks_client_id="id", databricks_client_secret="secret")
    uploader = VolumeUploader(s, transport=httpx.MockTransport(handler))
    asyncio.run(uploader.upload("bids.csv", CSV))

    assert len(header_threads) == 1
    assert header_threads[0] != loop_thread
    assert seen[0].headers["Authorization"] == "Bearer oauth-token"
