"""
dependencies.py — Shared FastAPI Dependencies

Hands routers the process-wide resources built in main.py's lifespan.
Tests override these through app.dependency_overrides.

Called by: routers/qbo.py
Depends on: connectors/quickbooks.py
"""

from fastapi import Request

from .connectors.quickbooks import QuickBooksClient


def get_qbo_client(request: Request) -> QuickBooksClient:
    """The QuickBooksClient created once at startup."""
    return request.app.state.qbo
