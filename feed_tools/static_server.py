#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
将 public/ 目录作为静态资源提供 HTTP 服务（开发板图片、boards.json、同步下来的资源等）。

由 `run` 以后台进程方式启动，也可单独运行：
   python -m feed_tools.static_server [目录] [端口]
   - 目录默认 public，端口默认 4874。
"""

import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlsplit

MIME_TYPES = {
    ".html": "text/html",
    ".js": "application/javascript",
    ".css": "text/css",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".txt": "text/plain",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
}


def resolve_request_path(root: Path, raw_path: str):
    """把请求路径映射到 root 下的文件；越界返回 None。"""
    pathname = unquote(urlsplit(raw_path).path)
    if pathname == "/":
        pathname = "/index.html"
    target = (root / pathname.lstrip("/")).resolve()
    try:
        target.relative_to(root)
    except ValueError:
        return None
    return target


class StaticFileHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def _plain(self, code: int, text: str):
        body = text.encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def do_GET(self):
        root = self.server.public_root  # type: ignore
        filepath = resolve_request_path(root, self.path)
        if filepath is None:
            self._plain(403, "Forbidden")
            return
        if not filepath.is_file():
            self._plain(404, "Not Found")
            return
        content_type = MIME_TYPES.get(filepath.suffix.lower(), "application/octet-stream")
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(filepath.stat().st_size))
        self.end_headers()
        if self.command == "HEAD":
            return
        try:
            with filepath.open("rb") as f:
                while True:
                    chunk = f.read(1024 * 256)
                    if not chunk:
                        break
                    self.wfile.write(chunk)
        except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
            return

    def do_HEAD(self):
        self.do_GET()

    def _not_allowed(self):
        self._plain(405, "Method Not Allowed")

    do_POST = do_PUT = do_DELETE = do_PATCH = _not_allowed


class QuietThreadingHTTPServer(ThreadingHTTPServer):
    """屏蔽客户端中途断开导致的噪声堆栈。"""

    daemon_threads = True

    def handle_error(self, request, client_address):  # pragma: no cover
        exc_type, _, _ = sys.exc_info()
        if exc_type in (ConnectionResetError, ConnectionAbortedError, BrokenPipeError):
            return
        return super().handle_error(request, client_address)


def make_server(root: Path, port: int, host: str = "127.0.0.1") -> QuietThreadingHTTPServer:
    server = QuietThreadingHTTPServer((host, port), StaticFileHandler)
    server.public_root = Path(root).resolve()  # type: ignore
    return server


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    port = 4874
    directory = "public"
    if argv and argv[-1].isdigit():
        port = int(argv.pop())
    if argv:
        directory = argv[0]
    root = Path(directory).resolve()
    root.mkdir(parents=True, exist_ok=True)
    server = make_server(root, port, host="0.0.0.0")
    print(f"静态文件服务器已启动: http://localhost:{port}", flush=True)
    print(f"服务目录: {root}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n已停止", flush=True)
    server.server_close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
