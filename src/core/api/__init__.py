from src.core.api.base import BaseAPIClient, APIError
from src.core.api.catalog import CatalogClient

__all__ = [
    "BaseAPIClient",
    "APIError",
    "CatalogClient",
]
