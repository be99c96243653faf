"""
Upload service for barcode extraction.

Use `create_app()` to build the FastAPI application, or run `barscan serve`.
"""

from .app import create_app

__all__ = ["create_app"]
