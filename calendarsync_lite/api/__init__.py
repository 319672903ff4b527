"""HTTP surface for calendarsync_lite."""

from .server import create_app, serve, start_server

__all__ = ["create_app", "serve", "start_server"]
