import asyncio
import http.client

import pytest


@pytest.fixture
def site(tmp_path):
    """A target directory with an HTML entry point and a few assets."""
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text("<html><body>Hi</body></html>")
    (root / "style.css").write_text("body { color: red; }")
    (root / "app.js").write_text("console.log('hi');")
    (root / "notes.txt").write_text("plain </body> text")
    (root / "blob.xyz123").write_bytes(b"\x00\x01\x02")
    (root / "sub").mkdir()
    (root / "sub" / "page.html").write_text("<body>Sub</body>")
    (tmp_path / "secret.txt").write_text("top secret")
    return root


def fetch(port, path, method="GET"):
    """Blocking HTTP request. Returns (status, headers, body)."""
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request(method, path)
        resp = conn.getresponse()
        return resp.status, resp.headers, resp.read()
    finally:
        conn.close()


async def wait_until(predicate, timeout=5.0):
    """Poll predicate on the event loop until it holds or timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
