"""
asgi.py -- ASGI entry point for KeyShelf.

Run with:  uvicorn asgi:app --reload

Kept apart from api/main.py so deployment tooling points at one stable
module path while the API package stays importable on its own.
"""

from api.main import app

__all__ = ["app"]
