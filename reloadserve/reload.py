"""
reload.py — WebSocket reload broadcaster.

Browser tabs running client.js connect here and stay subscribed until they
close. trigger_reload() sends the RELOAD signal to every open subscriber.
"""
import asyncio

import websockets
from websockets.protocol import State

RELOAD_SIGNAL = "RELOAD"
CLOSE_TIMEOUT = 1.0  # seconds a tab gets to answer the closing handshake


def _peer_ip(ws):
    peer = getattr(ws, "remote_address", None)
    return peer[0] if isinstance(peer, tuple) else str(peer)


class ReloadServer:
    """Owns the subscriber registry and the listening socket."""

    def __init__(self, host="127.0.0.1", port=1234, close_timeout=CLOSE_TIMEOUT):
        self.host = host
        self.requested_port = port
        self.close_timeout = close_timeout
        self.server = None
        # dict as an insertion-ordered set of open connections
        self.subscribers = {}

    @property
    def port(self):
        if self.server is None:
            return None
        return next(iter(self.server.sockets)).getsockname()[1]

    @property
    def url(self):
        return f"ws://{self.host}:{self.port}"

    async def start(self):
        self.server = await websockets.serve(self.handler, self.host, self.requested_port,
                                            close_timeout=self.close_timeout)
        print(f"Reload server running at: {self.url}")

    async def handler(self, ws):
        """Handle a single subscriber until its socket closes."""
        ip = _peer_ip(ws)
        self.subscribers[ws] = None
        print(f"  Socket opened from remote address: {ip}")
        try:
            # No client-to-server messages are part of the protocol
            async for _ in ws:
                pass
        except websockets.ConnectionClosedError as e:
            print(f"  Socket error from {ip}: {e}")
        finally:
            self.subscribers.pop(ws, None)
            print(f"  Socket closed from remote address: {ip}")

    async def trigger_reload(self):
        """Send RELOAD to each open subscriber. Returns how many were signalled."""
        sent = 0
        for ws in list(self.subscribers):
            if ws.state is not State.OPEN:
                continue
            try:
                await ws.send(RELOAD_SIGNAL)
            except websockets.ConnectionClosed:
                continue
            sent += 1
        return sent

    async def close(self):
        if self.server is None:
            return
        server, self.server = self.server, None

        # Handshakes run concurrently, each bounded by close_timeout
        await asyncio.gather(*(ws.close() for ws in list(self.subscribers)))
        self.subscribers.clear()

        server.close()
        await server.wait_closed()
