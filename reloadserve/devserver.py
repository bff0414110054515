"""
devserver.py — lifecycle coordinator for the file server and reload server.

Starts both endpoints, opens the browser once both are listening, forwards
file changes to the reload server and shuts everything down on SIGINT or
SIGTERM.
"""
import asyncio
import os
import signal
import webbrowser
from dataclasses import dataclass
from typing import Callable, Optional

from .reload import ReloadServer
from .serve import FileServer, render_client
from .watch import ChangeWatcher


# ─────────────────────────────────────────────────────────────────────────────
# USER CONFIGURATION
# Defaults for the dev server. The CLI can override the address and ports
# through RELOADSERVE_HOST, RELOADSERVE_PORT and RELOADSERVE_WS_PORT.
# ─────────────────────────────────────────────────────────────────────────────
HOST            = "127.0.0.1"   # loopback only
FILE_PORT       = 3000          # HTTP file server
WS_PORT         = 1234          # WebSocket reload server
RELOAD_DEBOUNCE = 0.1           # seconds; change events inside this window coalesce
# ─────────────────────────────────────────────────────────────────────────────

SERVER_COUNT = 2
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class ServingSession:
    """State of the one dev-serving session owned by a DevServer."""

    target_path: str
    root_dir: str
    file_server: Optional[FileServer] = None
    reload_server: Optional[ReloadServer] = None
    ready_count: int = 0

    @property
    def subscribers(self):
        if self.reload_server is None:
            return {}
        return self.reload_server.subscribers


class DevServer:
    """Coordinates the file server, reload server and change watcher."""

    def __init__(self, target_file, host=HOST, file_port=FILE_PORT, ws_port=WS_PORT,
                 opener: Callable[[str], object] = webbrowser.open,
                 debounce: float = RELOAD_DEBOUNCE):
        if not os.path.isabs(target_file):
            target_file = os.path.join(os.getcwd(), target_file)
        target_file = os.path.normpath(target_file)
        self.session = ServingSession(target_path=target_file,
                                      root_dir=os.path.dirname(target_file))
        self.host = host
        self.file_port = file_port
        self.ws_port = ws_port
        self.opener = opener
        self.debounce = debounce
        self.watcher = None
        self._loop = None
        self._closed = None
        self._pending_reload = None
        self._signals = []
        self._tasks = set()

    # ─────────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self):
        """Start both servers and the watcher. Returns once both are listening.

        If a server cannot bind or the watch cannot be registered, whatever
        already started is closed and the OSError propagates.
        """
        self._loop = asyncio.get_running_loop()
        self._closed = self._loop.create_future()

        try:
            self.start_file_server()
            await self.start_reload_server()
            self.start_watcher()
            self.install_signal_handlers()
        except OSError:
            self.remove_signal_handlers()
            self.stop_watcher()
            await self.close_reload_server()
            self.close_file_server()
            raise

    async def run(self):
        """Start, then wait for shutdown. Returns the exit status."""
        await self.start()
        return await self._closed

    async def shutdown(self):
        """Close everything in order. Calling it again is a no-op."""
        if self.session.reload_server is None and self.session.file_server is None:
            return
        print("Shutting down")

        self.remove_signal_handlers()
        self.stop_watcher()
        if self._pending_reload is not None:
            self._pending_reload.cancel()
            self._pending_reload = None

        await self.close_reload_server()
        self.close_file_server()

        if self._closed is not None and not self._closed.done():
            self._closed.set_result(0)

    # ─────────────────────────────────────────────────────────────────────────
    # READINESS
    # ─────────────────────────────────────────────────────────────────────────

    def server_ready(self):
        """Count a listening server; open the browser on reaching SERVER_COUNT."""
        self.session.ready_count += 1
        if self.session.ready_count == SERVER_COUNT:
            self.open_browser()

    def server_closed(self):
        self.session.ready_count = max(0, self.session.ready_count - 1)

    def open_browser(self):
        url = self.session.file_server.url
        print(f"Opening {url}")
        self.opener(url)

    # ─────────────────────────────────────────────────────────────────────────
    # SERVERS
    # ─────────────────────────────────────────────────────────────────────────

    def client_script(self):
        """Reload client bytes, pointed at the reload server's actual port."""
        server = self.session.reload_server
        port = server.port if server is not None else self.ws_port
        return render_client(port)

    def start_file_server(self):
        self.close_file_server()  # close if already open

        server = FileServer(self.session.root_dir, self.session.target_path,
                            self.client_script, host=self.host, port=self.file_port)
        server.start()
        self.session.file_server = server
        self.server_ready()

    async def start_reload_server(self):
        await self.close_reload_server()  # close if already open

        server = ReloadServer(host=self.host, port=self.ws_port)
        await server.start()
        self.session.reload_server = server
        self.server_ready()

    def close_file_server(self):
        server = self.session.file_server
        if server is None:
            return
        self.session.file_server = None
        self.server_closed()
        server.close()

    async def close_reload_server(self):
        server = self.session.reload_server
        if server is None:
            return
        # Null the handle first so a concurrent shutdown sees it closed
        self.session.reload_server = None
        self.server_closed()
        await server.close()

    # ─────────────────────────────────────────────────────────────────────────
    # CHANGE HANDLING
    # ─────────────────────────────────────────────────────────────────────────

    def start_watcher(self):
        self.stop_watcher()
        self.watcher = ChangeWatcher(self.session.target_path, self.file_changed)
        self.watcher.start()

    def stop_watcher(self):
        if self.watcher is None:
            return
        watcher, self.watcher = self.watcher, None
        watcher.stop()

    def file_changed(self):
        """Called from the watchdog thread."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.schedule_reload)

    def schedule_reload(self):
        """Restart the debounce window; the reload fires when it expires."""
        if self.session.reload_server is None:
            return
        if self._pending_reload is not None:
            self._pending_reload.cancel()
        self._pending_reload = self._loop.call_later(self.debounce, self._fire_reload)

    def _fire_reload(self):
        self._pending_reload = None
        task = self._loop.create_task(self.reload())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def reload(self):
        """Broadcast RELOAD to every open subscriber."""
        server = self.session.reload_server
        if server is None:
            return 0
        sent = await server.trigger_reload()
        print(f"File changed, reload sent to {sent} client(s)")
        return sent

    # ─────────────────────────────────────────────────────────────────────────
    # SIGNALS
    # ─────────────────────────────────────────────────────────────────────────

    def _request_shutdown(self):
        task = self._loop.create_task(self.shutdown())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def install_signal_handlers(self):
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._request_shutdown)
            except (OSError, NotImplementedError, RuntimeError):
                # Not available on Windows or off the main thread;
                # the CLI falls back to KeyboardInterrupt
                return
            self._signals.append(sig)

    def remove_signal_handlers(self):
        signals, self._signals = self._signals, []
        for sig in signals:
            self._loop.remove_signal_handler(sig)
