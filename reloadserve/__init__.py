"""Single-file dev server with browser live reload."""
from .devserver import DevServer, ServingSession
from .reload import RELOAD_SIGNAL, ReloadServer
from .serve import FileServer, get_mime_type, inject_client

__version__ = "0.1.0"

__all__ = [
    "DevServer",
    "FileServer",
    "RELOAD_SIGNAL",
    "ReloadServer",
    "ServingSession",
    "get_mime_type",
    "inject_client",
]
