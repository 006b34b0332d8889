"""HTTP and WebSocket application for the clipboard service."""

from .app import build_app, create_app, error_response

__all__ = ["build_app", "create_app", "error_response"]
