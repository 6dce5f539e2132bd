from datetime import datetime

import pytest

from pagelite.config import Settings

FIXED_NOW = datetime(2026, 10, 18, 9, 5, 30)

PAGE_URL = "https://example.com/articles/post.html"

PAGE_HTML = """<!DOCTYPE html>
<html lang="en"><head>
<title>  Demo Page  </title>
<link rel="stylesheet" href="/css/site.css">
<link rel="stylesheet" href="missing.css">
<link rel="icon" href="/favicon.ico">
<script src="app.js"></script>
</head><body>
<noscript><img src="tracker.gif"><script>track()</script></noscript>
<img id="hero" src="img/a.png" srcset="img/a-1x.png 1x, img/a-2x.png 2x">
<img id="inline" src="data:image/png;base64,AAAA">
<video id="clip" src="movie.mp4" poster="poster.jpg"><source id="blob" src="blob:https://example.com/123"></video>
<iframe id="frame" src="//embed.example.org/widget"></iframe>
<p>Hello</p>
<script>alert(1)</script>
</body></html>"""


def now():
    return FIXED_NOW


@pytest.fixture
def settings(tmp_path):
    return Settings(
        downloads_dir=str(tmp_path / "downloads"),
        config_file=str(tmp_path / "settings.json"),
        server_data_dir=str(tmp_path / "data"),
        stylesheet_timeout_seconds=5,
        upload_timeout_seconds=5,
    )
