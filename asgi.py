"""
asgi.py -- Application assembly for OfficeAdmin.

The ASGI servers' import target. Kept separate from api/main.py so deployment
tooling has one stable module path regardless of how the api/ package grows.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
