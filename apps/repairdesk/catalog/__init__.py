"""Administrator-maintained reference data: statuses, clients and services."""

from .models import CatalogService, Client
from .repository import ClientRepository, StatusRepository
from .service import ClientService, StatusAdminService

__all__ = [
    "CatalogService",
    "Client",
    "ClientRepository",
    "ClientService",
    "StatusAdminService",
    "StatusRepository",
]
