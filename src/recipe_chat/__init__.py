"""Recipe chat: a FastAPI chat endpoint backed by a local recipe agent, plus a terminal client.

Typical usage
-------------
from recipe_chat import create_app
app = create_app()

or, from the provided launchers:

python scripts/run_server.py --host 127.0.0.1 --port 8000
recipe-chat --url http://127.0.0.1:8000
"""

from __future__ import annotations

__all__ = ["create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    Forwards to :func:`recipe_chat.server.create_app`; imported lazily so the
    client side does not pull in FastAPI.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
