from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from apps.repairdesk.catalog.models import CatalogService, Client
from apps.repairdesk.dependencies.auth import ClientManager
from apps.repairdesk.dependencies.services import ClientServiceDep
from apps.repairdesk.orders.errors import ServiceOrderError

from .errors import to_http_exception

router = APIRouter(tags=["clients"])


class ClientCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    cnpj: str | None = Field(default=None, max_length=32)
    address: str | None = Field(default=None, max_length=500)
    email: EmailStr | None = None


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    cnpj: str | None
    address: str | None
    email: str | None
    created_at: datetime


class ServiceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    created_at: datetime


def _client_response(client: Client) -> ClientResponse:
    return ClientResponse.model_validate(client)


def _service_response(service: CatalogService) -> ServiceResponse:
    return ServiceResponse.model_validate(service)


@router.get("/clients", response_model=list[ClientResponse])
async def list_clients(service: ClientServiceDep) -> list[ClientResponse]:
    try:
        clients = await service.list_clients()
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return [_client_response(client) for client in clients]


@router.post("/clients", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(payload: ClientCreateRequest, service: ClientServiceDep, _: ClientManager) -> ClientResponse:
    try:
        client = await service.create_client(
            name=payload.name, cnpj=payload.cnpj, address=payload.address, email=payload.email
        )
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return _client_response(client)


@router.get("/clients/{client_id}", response_model=ClientResponse)
async def get_client(client_id: str, service: ClientServiceDep) -> ClientResponse:
    try:
        client = await service.get_client(client_id)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return _client_response(client)


@router.get("/services", response_model=list[ServiceResponse])
async def list_services(service: ClientServiceDep) -> list[ServiceResponse]:
    try:
        services = await service.list_services()
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return [_service_response(item) for item in services]


@router.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(
    payload: ServiceCreateRequest, service: ClientServiceDep, _: ClientManager
) -> ServiceResponse:
    try:
        created = await service.create_service(name=payload.name, description=payload.description)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return _service_response(created)
