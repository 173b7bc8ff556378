"""静态文件服务器的请求处理。"""

import threading
import urllib.error
import urllib.request

import pytest

from feed_tools.static_server import make_server, resolve_request_path


@pytest.fixture
def public_server(tmp_path):
    root = tmp_path / "public"
    (root / "imgs").mkdir(parents=True)
    (root / "index.html").write_text("<h1>home</h1>", encoding="utf-8")
    (root / "imgs" / "board.webp").write_bytes(b"RIFF")
    server = make_server(root, 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    yield base
    server.shutdown()
    server.server_close()


def fetch(url, method="GET"):
    req = urllib.request.Request(url, method=method)
    try:
        with urllib.request.urlopen(req, timeout=5) as r:
            return r.status, r.headers.get("Content-Type"), r.read()
    except urllib.error.HTTPError as e:
        return e.code, e.headers.get("Content-Type"), e.read()


def test_root_serves_index(public_server):
    status, ctype, body = fetch(public_server + "/")
    assert status == 200
    assert ctype == "text/html"
    assert body == b"<h1>home</h1>"


def test_mime_type_by_extension(public_server):
    status, ctype, body = fetch(public_server + "/imgs/board.webp")
    assert (status, ctype, body) == (200, "image/webp", b"RIFF")


def test_missing_file_is_404(public_server):
    assert fetch(public_server + "/nope.json")[0] == 404


def test_only_get_allowed(public_server):
    assert fetch(public_server + "/index.html", method="POST")[0] == 405


def test_traversal_outside_root_is_rejected(tmp_path):
    root = (tmp_path / "public").resolve()
    root.mkdir()
    assert resolve_request_path(root, "/%2e%2e/secret.txt") is None
    assert resolve_request_path(root, "/a/b.txt?x=1") == root / "a" / "b.txt"
