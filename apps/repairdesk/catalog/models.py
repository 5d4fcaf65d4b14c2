from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class Client:
    """Company or person owning service orders."""

    id: str
    name: str
    created_at: datetime
    cnpj: str | None = None
    address: str | None = None
    email: str | None = None


@dataclass(slots=True, frozen=True)
class CatalogService:
    """Service that can be contracted when an order is opened."""

    id: str
    name: str
    created_at: datetime
    description: str | None = None
