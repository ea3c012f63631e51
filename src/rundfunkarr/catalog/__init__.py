"""MediathekView catalog client package."""

from __future__ import annotations

from .client import CatalogClient, CatalogError
from .models import QueryResponse, ResultItem

__all__ = [
    "CatalogClient",
    "CatalogError",
    "QueryResponse",
    "ResultItem",
]
