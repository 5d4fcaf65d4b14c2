"""Database models and utilities."""

from .models import (
    CatalogServiceTable,
    ClientTable,
    OrderCounterTable,
    ServiceOrderEditLogTable,
    ServiceOrderLogTable,
    ServiceOrderTable,
    StatusTable,
)

__all__ = [
    "CatalogServiceTable",
    "ClientTable",
    "OrderCounterTable",
    "ServiceOrderEditLogTable",
    "ServiceOrderLogTable",
    "ServiceOrderTable",
    "StatusTable",
]
