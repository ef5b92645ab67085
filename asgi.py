"""
asgi.py -- ASGI entry point for Tokengate.

Run with:  uvicorn asgi:app --reload

api/main.py builds the app from environment settings; this module only
re-exports it so process managers have one stable import path.
"""

from api.main import app

__all__ = ["app"]
