"""
Archive server: the receiving end of remote-upload.

    uvicorn pagelite.server:app

Uploads land in ``{server_data_dir}/{year}/{file name}``; everything under the
data dir is browsable as nginx-style index pages.
"""
from __future__ import annotations

import logging
import secrets
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.templating import Jinja2Templates

from pagelite.config import Settings, settings as default_settings
from pagelite.utils import format_size

logger = logging.getLogger(__name__)

REALM = "PageLite"
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
GENERATED_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class IndexEntry:
    name: str
    is_dir: bool
    size: str
    modified: datetime
    year: str = ""


def _entry(path: Path, year: str = "") -> IndexEntry:
    info = path.stat()
    return IndexEntry(
        name=path.name,
        is_dir=path.is_dir(),
        size="-" if path.is_dir() else format_size(info.st_size),
        modified=datetime.fromtimestamp(info.st_mtime),
        year=year,
    )


def list_directory(directory: Path) -> list[IndexEntry]:
    """Directories first (newest year on top), then files newest first."""
    entries = []
    for child in directory.iterdir():
        try:
            entries.append(_entry(child))
        except OSError:
            continue
    dirs = sorted((e for e in entries if e.is_dir), key=lambda e: e.name, reverse=True)
    files = sorted((e for e in entries if not e.is_dir), key=lambda e: e.modified, reverse=True)
    return dirs + files


def list_all_files(data_dir: Path) -> list[IndexEntry]:
    files = []
    for year_dir in data_dir.iterdir():
        if not year_dir.is_dir():
            continue
        for child in year_dir.iterdir():
            if child.is_dir():
                continue
            try:
                files.append(_entry(child, year=year_dir.name))
            except OSError:
                continue
    return sorted(files, key=lambda e: e.modified, reverse=True)


def safe_upload_name(filename: str | None) -> str:
    # Only the base name is kept, whatever path the client sent
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    if name in {"", ".", ".."}:
        return ""
    return name


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    data_dir = Path(settings.server_data_dir)
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    security = HTTPBasic(realm=REALM)

    app = FastAPI(title=f"{settings.app_name} archive server")

    @app.on_event("startup")
    async def startup():
        if not settings.server_username or not settings.server_password:
            raise RuntimeError("PAGELITE_SERVER_USERNAME and PAGELITE_SERVER_PASSWORD must be set")
        data_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Archive server ready: user=%s, max upload %d MB, data dir %s",
                    settings.server_username, settings.server_max_upload_mb, data_dir)

    def require_auth(credentials: HTTPBasicCredentials = Depends(security)) -> str:
        user_ok = secrets.compare_digest(credentials.username.encode(), settings.server_username.encode())
        pass_ok = secrets.compare_digest(credentials.password.encode(), settings.server_password.encode())
        if not (settings.server_username and user_ok and pass_ok):
            raise HTTPException(
                status_code=401,
                detail="Incorrect username or password",
                headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
            )
        return credentials.username

    def resolve_inside(sub_path: str) -> Path | None:
        root = data_dir.resolve()
        target = (root / sub_path.strip("/")).resolve()
        if target != root and not target.is_relative_to(root):
            return None
        return target

    def render_index(request: Request, url_path: str, directory: Path):
        items = list_directory(directory)
        return templates.TemplateResponse(
            request,
            "dir_index.html",
            {
                "path": url_path,
                "items": items,
                "count": len(items),
                "generated": datetime.now().strftime(GENERATED_FORMAT),
            },
        )

    @app.post("/upload")
    async def upload(
        request: Request,
        file: UploadFile = File(...),
        title: str = Form(""),
        url: str = Form(""),
        timestamp: str = Form(""),
        user: str = Depends(require_auth),
    ):
        declared = int(request.headers.get("content-length") or 0)
        if declared > settings.server_max_upload_bytes:
            return JSONResponse(
                {"success": False, "filename": "", "message": "Upload exceeds the size limit"}, status_code=413
            )

        name = safe_upload_name(file.filename)
        if not name:
            return JSONResponse({"success": False, "filename": "", "message": "Missing file name"}, status_code=400)

        year_dir = data_dir / datetime.now().strftime("%Y")
        try:
            year_dir.mkdir(parents=True, exist_ok=True)
            dest = year_dir / name
            with dest.open("wb") as out:
                shutil.copyfileobj(file.file, out)
        except OSError as exc:
            logger.error("Saving upload %s failed: %s", name, exc)
            return JSONResponse(
                {"success": False, "filename": name, "message": f"Saving the file failed: {exc}"}, status_code=500
            )

        written = dest.stat().st_size
        if written > settings.server_max_upload_bytes:
            dest.unlink(missing_ok=True)
            return JSONResponse(
                {"success": False, "filename": "", "message": "Upload exceeds the size limit"}, status_code=413
            )

        logger.info("Stored %s (%.2f KB) from %s [%s] title=%r captured=%s",
                    name, written / 1024, user, url, title, timestamp)
        return {"success": True, "filename": f"{year_dir.name}/{name}", "message": "Upload succeeded"}

    @app.get("/")
    async def root_index(request: Request):
        return render_index(request, "/", data_dir)

    @app.get("/all/")
    @app.get("/ALL/")
    async def all_files(request: Request):
        files = list_all_files(data_dir)
        return templates.TemplateResponse(
            request,
            "all_files.html",
            {"files": files, "count": len(files), "generated": datetime.now().strftime(GENERATED_FORMAT)},
        )

    @app.get("/{sub_path:path}")
    async def browse(request: Request, sub_path: str):
        target = resolve_inside(sub_path)
        if target is None:
            raise HTTPException(status_code=404)

        if sub_path.endswith("/"):
            if target.is_dir():
                return render_index(request, f"/{sub_path}", target)
        elif target.is_file():
            return FileResponse(str(target))
        raise HTTPException(status_code=404)

    return app


app = create_app()
