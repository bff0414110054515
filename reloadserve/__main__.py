"""
reloadserve — serve a file and reload the browser when it changes.

Usage:
    reloadserve path/to/index.html
    python -m reloadserve path/to/index.html

The page is served at http://127.0.0.1:3000 and reload signals are pushed
over ws://127.0.0.1:1234. Override with RELOADSERVE_HOST, RELOADSERVE_PORT
and RELOADSERVE_WS_PORT.
"""
import asyncio
import errno
import os
import sys

from . import devserver
from .devserver import DevServer

EXIT_USAGE = -1
EXIT_MISSING_FILE = -2
EXIT_STARTUP_FAILED = 1


def _env_port(name, default):
    value = os.environ.get(name)
    if not value:
        return default
    try:
        port = int(value)
    except ValueError:
        port = -1
    if not 0 <= port <= 65535:
        print(f"Invalid {name} '{value}', falling back to {default}")
        return default
    return port


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print("Please provide the name of a file to serve")
        print("Usage: reloadserve path/to/index.html")
        return EXIT_USAGE

    filename = args[0]
    if not os.path.isfile(filename):
        print(f'Requested file "{filename}" does not exist')
        return EXIT_MISSING_FILE

    host = os.environ.get("RELOADSERVE_HOST") or devserver.HOST
    file_port = _env_port("RELOADSERVE_PORT", devserver.FILE_PORT)
    ws_port = _env_port("RELOADSERVE_WS_PORT", devserver.WS_PORT)

    server = DevServer(filename, host=host, file_port=file_port, ws_port=ws_port)
    try:
        return asyncio.run(server.run())
    except OSError as e:
        print(f"Cannot start dev server: {e}")
        if e.errno == errno.EADDRINUSE:
            print(f"Is another server already using port {file_port} or {ws_port}?")
        return EXIT_STARTUP_FAILED
    except KeyboardInterrupt:
        print("\nDev server stopped.")
        return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
