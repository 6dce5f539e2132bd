import base64
from datetime import datetime

import httpx
import pytest

from conftest import FIXED_NOW, PAGE_HTML, PAGE_URL, now
from pagelite.errors import CaptureEmpty, ConfigurationMissing, PersistenceFailure
from pagelite.models import CaptureResult, Destination, LiveDocument, RemoteConfig
from pagelite.services.dispatcher import ArchiveDispatcher, derive_file_name, sanitize_filename
from pagelite.services.snapshot import SnapshotBuilder
from pagelite.settings_store import SettingsStore
from pagelite.storage.local import LocalStorageProvider
from pagelite.storage.remote import RemoteStorageProvider

SERVER = "https://archive.example.com"
RESULT = CaptureResult(html="<!DOCTYPE html>\n<html><body>hi</body></html>", title="My/Page: Title", source_url=PAGE_URL)


class RecordingServer:
    """MockTransport handler that records requests and answers with a fixed response."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {"success": True, "filename": "2026/saved.html", "message": "ok"}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, str):
            return httpx.Response(self.status, text=self.body)
        return httpx.Response(self.status, json=self.body)


def make_dispatcher(settings, tmp_path, server=None, configured=True, username="alice", password="secret"):
    store = SettingsStore(tmp_path / "settings.json")
    if configured:
        store.save(SERVER + "/", username, password)
    transport = httpx.MockTransport(server or RecordingServer())
    return ArchiveDispatcher(
        settings=settings,
        config_store=store,
        local=LocalStorageProvider(tmp_path / "downloads"),
        remote=RemoteStorageProvider(settings, transport=transport),
        builder=SnapshotBuilder(settings, transport=httpx.MockTransport(lambda r: httpx.Response(404)), now=now),
        now=now,
    )


# ── file names ───────────────────────────────────────────────────────────────

def test_file_name_from_title():
    assert derive_file_name("My/Page: Title", datetime(2026, 10, 18, 9, 5)) == "My_Page_Title_2026-10-18_09-05.html"


def test_sanitize_is_idempotent():
    once = sanitize_filename('  a \\ b / c : d * e ? f " g < h > i | j  ')
    assert once == "a_b_c_d_e_f_g_h_i_j"
    assert sanitize_filename(once) == once


def test_sanitize_is_idempotent_at_truncation_boundary():
    once = sanitize_filename("a" * 119 + " b")
    assert once == "a" * 119
    assert sanitize_filename(once) == once


def test_sanitize_collapses_whitespace_runs():
    assert sanitize_filename("hello \t\n  world") == "hello_world"


def test_empty_title_uses_placeholder():
    assert derive_file_name("", FIXED_NOW) == "page_2026-10-18_09-05.html"
    assert derive_file_name("///", FIXED_NOW) == "page_2026-10-18_09-05.html"


def test_long_title_is_truncated():
    assert len(sanitize_filename("x" * 300)) == 120


# ── request building ─────────────────────────────────────────────────────────

def test_build_request(settings, tmp_path):
    request = make_dispatcher(settings, tmp_path).build_request(RESULT, Destination.LOCAL)
    assert request.file_name == "My_Page_Title_2026-10-18_09-05.html"
    assert request.payload == RESULT.html.encode("utf-8")
    assert request.remote is None


@pytest.mark.parametrize("result", [None, CaptureResult(html="", title="t", source_url=PAGE_URL)])
@pytest.mark.asyncio
async def test_empty_capture_is_rejected(settings, tmp_path, result):
    with pytest.raises(CaptureEmpty):
        await make_dispatcher(settings, tmp_path).dispatch(result, Destination.LOCAL)


# ── local save ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_local_save_writes_payload(settings, tmp_path):
    outcome = await make_dispatcher(settings, tmp_path).dispatch(RESULT, Destination.LOCAL)

    saved = tmp_path / "downloads" / "My_Page_Title_2026-10-18_09-05.html"
    assert outcome.location == str(saved.resolve())
    assert saved.read_text(encoding="utf-8") == RESULT.html


@pytest.mark.asyncio
async def test_local_save_disambiguates_collisions(settings, tmp_path):
    dispatcher = make_dispatcher(settings, tmp_path)
    first = await dispatcher.dispatch(RESULT, Destination.LOCAL)
    second = await dispatcher.dispatch(RESULT, Destination.LOCAL)
    third = await dispatcher.dispatch(RESULT, Destination.LOCAL)

    assert first.location.endswith("My_Page_Title_2026-10-18_09-05.html")
    assert second.location.endswith("My_Page_Title_2026-10-18_09-05 (1).html")
    assert third.location.endswith("My_Page_Title_2026-10-18_09-05 (2).html")


# ── remote upload ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_remote_upload_sends_multipart_with_auth(settings, tmp_path):
    server = RecordingServer()
    outcome = await make_dispatcher(settings, tmp_path, server).dispatch(RESULT, Destination.REMOTE)

    (request,) = server.requests
    assert request.method == "POST"
    assert str(request.url) == f"{SERVER}/upload"
    assert request.headers["authorization"] == "Basic " + base64.b64encode(b"alice:secret").decode()

    body = request.content.decode("utf-8")
    assert 'name="file"; filename="My_Page_Title_2026-10-18_09-05.html"' in body
    assert RESULT.html in body
    for field in ("title", "url", "timestamp"):
        assert f'name="{field}"' in body
    assert PAGE_URL in body
    assert FIXED_NOW.isoformat() in body

    assert outcome.location == f"{SERVER}/2026/saved.html"
    assert not (tmp_path / "downloads").exists()


@pytest.mark.asyncio
async def test_remote_upload_without_password_sends_no_auth(settings, tmp_path):
    server = RecordingServer()
    await make_dispatcher(settings, tmp_path, server, password="").dispatch(RESULT, Destination.REMOTE)
    assert "authorization" not in server.requests[0].headers


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"[]", b"null", b'"ok"', b"not json"])
async def test_remote_reply_without_filename_falls_back_to_request_name(settings, tmp_path, body):
    def handler(request):
        return httpx.Response(200, content=body, headers={"content-type": "application/json"})

    outcome = await make_dispatcher(settings, tmp_path, handler).dispatch(RESULT, Destination.REMOTE)
    assert outcome.location == f"{SERVER}/My_Page_Title_2026-10-18_09-05.html"


@pytest.mark.asyncio
async def test_remote_401_surfaces_status_and_body(settings, tmp_path):
    server = RecordingServer(status=401, body="wrong username or password")
    with pytest.raises(PersistenceFailure) as info:
        await make_dispatcher(settings, tmp_path, server).dispatch(RESULT, Destination.REMOTE)

    assert info.value.status_code == 401
    assert "401" in info.value.message
    assert "wrong username or password" in info.value.message


@pytest.mark.asyncio
async def test_remote_network_error_is_persistence_failure(settings, tmp_path):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PersistenceFailure) as info:
        await make_dispatcher(settings, tmp_path, handler).dispatch(RESULT, Destination.REMOTE)
    assert info.value.status_code is None


@pytest.mark.asyncio
async def test_remote_without_server_url_aborts_before_network(settings, tmp_path):
    server = RecordingServer()
    opened = []

    async def source():
        opened.append(True)
        return LiveDocument.from_html(PAGE_HTML, PAGE_URL)

    dispatcher = make_dispatcher(settings, tmp_path, server, configured=False)
    with pytest.raises(ConfigurationMissing):
        await dispatcher.capture_and_dispatch(source, Destination.REMOTE)

    assert opened == []
    assert server.requests == []


@pytest.mark.asyncio
async def test_explicit_remote_config_overrides_store(settings, tmp_path):
    server = RecordingServer()
    dispatcher = make_dispatcher(settings, tmp_path, server, configured=False)
    await dispatcher.dispatch(RESULT, Destination.REMOTE, RemoteConfig("https://other.example.com"))
    assert str(server.requests[0].url) == "https://other.example.com/upload"


# ── end to end ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_capture_and_save_locally(settings, tmp_path):
    async def source():
        return LiveDocument.from_html(PAGE_HTML, PAGE_URL)

    outcome = await make_dispatcher(settings, tmp_path).capture_and_dispatch(source, Destination.LOCAL)

    assert outcome.file_name == "Demo_Page_2026-10-18_09-05.html"
    html = (tmp_path / "downloads" / outcome.file_name).read_text(encoding="utf-8")
    assert html.startswith("<!DOCTYPE html>\n")
    assert "<script" not in html


@pytest.mark.asyncio
async def test_capture_and_upload(settings, tmp_path):
    server = RecordingServer()

    async def source():
        return LiveDocument.from_html(PAGE_HTML, PAGE_URL)

    outcome = await make_dispatcher(settings, tmp_path, server).capture_and_dispatch(source, Destination.REMOTE)

    assert outcome.message == "Uploaded to the archive server"
    assert len(server.requests) == 1
    assert outcome.location == f"{SERVER}/2026/saved.html"
