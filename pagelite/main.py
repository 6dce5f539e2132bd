from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import JSONResponse

from pagelite.browser import open_live_document
from pagelite.config import settings
from pagelite.errors import (
    CaptureEmpty,
    CaptureUnavailable,
    ConfigurationMissing,
    InvalidSettings,
    PageLiteError,
    PersistenceFailure,
)
from pagelite.models import Destination, RemoteConfig
from pagelite.services.dispatcher import ArchiveDispatcher
from pagelite.settings_store import SettingsStore
from pagelite.storage.remote import check_connection
from pagelite.utils import is_valid_url, normalize_server_url

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)
app = FastAPI(title=settings.app_name)

ERROR_STATUS = {
    CaptureUnavailable: 502,
    CaptureEmpty: 422,
    ConfigurationMissing: 400,
    PersistenceFailure: 502,
    InvalidSettings: 400,
}


@app.on_event("startup")
async def startup():
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


def get_settings_store() -> SettingsStore:
    return SettingsStore()


def get_dispatcher(store: SettingsStore = Depends(get_settings_store)) -> ArchiveDispatcher:
    return ArchiveDispatcher(config_store=store)


def get_page_source():
    return open_live_document


@app.exception_handler(PageLiteError)
async def pagelite_error_handler(request: Request, exc: PageLiteError):
    status = ERROR_STATUS.get(type(exc), 500)
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"ok": False, "error": exc.kind, "message": exc.message}, status_code=status)


@app.post("/capture")
async def capture(
    url: str = Form(...),
    destination: Destination = Form(Destination.LOCAL),
    dispatcher: ArchiveDispatcher = Depends(get_dispatcher),
    open_page=Depends(get_page_source),
):
    if not is_valid_url(url):
        return JSONResponse(
            {"ok": False, "error": "invalid_url", "message": "Enter a valid http(s) URL"}, status_code=400
        )

    logger.info("Capturing %s (%s)", url, destination.value)
    outcome = await dispatcher.capture_and_dispatch(lambda: open_page(url), destination)
    return {
        "ok": True,
        "message": outcome.message,
        "file_name": outcome.file_name,
        "location": outcome.location,
    }


@app.get("/settings")
async def read_settings(store: SettingsStore = Depends(get_settings_store)):
    config = store.load()
    return {
        "server_url": config.server_url,
        "username": config.username,
        "password_set": bool(config.password),
    }


@app.post("/settings")
async def save_settings(
    server_url: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    store: SettingsStore = Depends(get_settings_store),
):
    config = store.save(server_url, username, password)
    return {"ok": True, "message": "Settings saved", "server_url": config.server_url}


@app.post("/settings/test")
async def test_settings(
    server_url: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    store: SettingsStore = Depends(get_settings_store),
):
    # Unsaved form values win over the stored ones
    if server_url.strip():
        config = RemoteConfig(normalize_server_url(server_url), username.strip(), password)
    else:
        config = store.load()

    result = await check_connection(config)
    return JSONResponse(
        {"ok": result.ok, "message": result.message, "status_code": result.status_code},
        status_code=200 if result.ok else 502,
    )
