"""
serve.py — HTTP file endpoint for the dev server.

Serves the target file at "/", the bundled reload client at "/client.js",
and any other file under the target's directory. HTML responses get the
reload client injected before </body>.
"""
import mimetypes
import os
import threading
from functools import partial
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import unquote, urlsplit

# Make sure browsers accept module scripts and wasm streaming compilation
mimetypes.add_type("text/javascript", ".js")
mimetypes.add_type("text/javascript", ".mjs")
mimetypes.add_type("application/wasm", ".wasm")

DEFAULT_MIME_TYPE = "application/octet-stream"
CLIENT_ROUTE = "/client.js"
CLIENT_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "client.js")
CLIENT_TAG = b'<script src="client.js"></script>'
NOT_FOUND = "File could not be found."
NOT_ALLOWED = "Method not allowed."


def get_mime_type(path):
    """Return the Content-Type for path, falling back to a generic binary type."""
    mime, _ = mimetypes.guess_type(path)
    return mime or DEFAULT_MIME_TYPE


def inject_client(html):
    """Insert the reload client tag before the first </body>, if there is one."""
    return html.replace(b"</body>", CLIENT_TAG + b"</body>", 1)


def render_client(reload_port):
    """Read the bundled client script with the reload socket port filled in."""
    with open(CLIENT_SCRIPT, "rb") as f:
        return f.read().replace(b"__RELOAD_PORT__", str(reload_port).encode())


def resolve_path(root_dir, target_path, pathname):
    """Map a URL path to a file, or None if it would leave root_dir.

    root_dir must already be a realpath.
    """
    if pathname == "/":
        return target_path
    try:
        candidate = os.path.realpath(os.path.join(root_dir, pathname.lstrip("/")))
        if os.path.commonpath([candidate, root_dir]) != root_dir:
            return None
    except ValueError:  # embedded NUL, or a different drive on Windows
        return None
    return candidate


class ReloadHandler(BaseHTTPRequestHandler):
    """Serves the target file, the reload client and static siblings."""

    def __init__(self, *args, target_path, root_dir, client_script, **kwargs):
        # Must be set before super().__init__, which handles the request
        self.target_path = target_path
        self.root_dir = os.path.realpath(root_dir)
        self.client_script = client_script
        super().__init__(*args, **kwargs)

    def end_headers(self):
        # Always fetch fresh content after a reload
        self.send_header("Cache-Control", "no-cache")
        super().end_headers()

    def reject_method(self):
        self.send_text(HTTPStatus.METHOD_NOT_ALLOWED, NOT_ALLOWED, {"Allow": "GET"})

    do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = do_OPTIONS = reject_method

    def send_error(self, code, message=None, explain=None):
        # Verbs without a do_ method would otherwise get 501
        if code == HTTPStatus.NOT_IMPLEMENTED:
            self.reject_method()
            return
        super().send_error(code, message, explain)

    def do_GET(self):
        pathname = unquote(urlsplit(self.path).path)

        if pathname == CLIENT_ROUTE:
            self.send_body(self.client_script(), get_mime_type(CLIENT_SCRIPT))
            return

        filename = resolve_path(self.root_dir, self.target_path, pathname)
        if filename is None:
            self.send_text(HTTPStatus.NOT_FOUND, NOT_FOUND)
            return

        try:
            with open(filename, "rb") as f:
                data = f.read()
        except OSError:
            self.send_text(HTTPStatus.NOT_FOUND, NOT_FOUND)
            return

        if filename.endswith(".html"):
            data = inject_client(data)
        self.send_body(data, get_mime_type(filename))

    def send_body(self, data, content_type):
        self.send_response(HTTPStatus.OK)
        self.send_header("Cross-Origin-Embedder-Policy", "require-corp")
        self.send_header("Cross-Origin-Opener-Policy", "same-origin")
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def send_text(self, status, text, headers=None):
        body = text.encode()
        self.send_response(status)
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


class ThreadedServer(ThreadingHTTPServer):
    allow_reuse_address = True


class FileServer:
    """HTTP endpoint bound to (host, port), served from a background thread.

    Binding happens in start(); an OSError (port in use) propagates to the
    caller. close() is safe to call more than once.
    """

    def __init__(self, root_dir, target_path, client_script, host="127.0.0.1", port=3000):
        self.root_dir = root_dir
        self.target_path = target_path
        self.client_script = client_script
        self.host = host
        self.requested_port = port
        self.httpd = None
        self.thread = None

    @property
    def port(self):
        return self.httpd.server_address[1] if self.httpd else None

    @property
    def url(self):
        return f"http://{self.host}:{self.port}"

    def start(self):
        handler = partial(ReloadHandler,
                          target_path=self.target_path,
                          root_dir=self.root_dir,
                          client_script=self.client_script)
        self.httpd = ThreadedServer((self.host, self.requested_port), handler)
        self.thread = threading.Thread(target=self.httpd.serve_forever,
                                       name="reloadserve-http", daemon=True)
        self.thread.start()
        print(f"Server running at: {self.url}")

    def close(self):
        if self.httpd is None:
            return
        httpd, self.httpd = self.httpd, None
        httpd.shutdown()
        httpd.server_close()
        self.thread.join()
        self.thread = None
