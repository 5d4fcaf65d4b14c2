import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apps.repairdesk.catalog import ClientRepository, ClientService, StatusAdminService, StatusRepository
from apps.repairdesk.core.config import Settings, get_settings
from apps.repairdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from apps.repairdesk.core.metrics import WorkflowMetrics
from apps.repairdesk.middleware import RBACMiddleware
from apps.repairdesk.notifications import (
    EmailNotificationService,
    EmailNotifier,
    HttpNotifier,
    Notifier,
    SmtpConfiguration,
    SmtpMailer,
)
from apps.repairdesk.orders import OrderStateMachine, ServiceOrderRepository, ServiceOrderService, TransitionResolver
from apps.repairdesk.orders.errors import PersistenceError
from apps.repairdesk.routes import clients, notify, orders, ping, statuses


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def build_notifier(settings: Settings, email_service: EmailNotificationService) -> Notifier:
    """Prefer the external ``/notify`` endpoint when one is configured."""

    if settings.notification_url:
        return HttpNotifier(
            settings.notification_url,
            token=settings.notification_token,
            timeout=settings.notification_timeout_seconds,
        )
    return EmailNotifier(email_service)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.order_service = None
    app.state.status_service = None
    app.state.client_service = None
    app.state.email_service = None

    db_engine = create_async_engine(_to_asyncpg_dsn(settings.database_url), future=True)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    try:
        order_repository = ServiceOrderRepository(
            session_factory,
            engine=db_engine,
            number_prefix=settings.order_number_prefix,
            number_width=settings.order_number_width,
        )
        await order_repository.ensure_schema()
        client_repository = ClientRepository(session_factory)
        status_service = StatusAdminService(StatusRepository(session_factory), order_repository)
        client_service = ClientService(client_repository)
        email_service = EmailNotificationService(
            order_repository,
            client_repository,
            SmtpMailer(SmtpConfiguration.from_settings(settings), timeout=settings.notification_timeout_seconds),
        )
        resolver = TransitionResolver(allow_unrestricted_reopen=settings.allow_admin_reopen_final)
        app.state.order_service = ServiceOrderService(
            order_repository,
            statuses=status_service,
            clients=client_service,
            notifier=build_notifier(settings, email_service),
            state_machine=OrderStateMachine(resolver=resolver),
            metrics=WorkflowMetrics(),
            notification_timeout=settings.notification_timeout_seconds,
        )
        app.state.status_service = status_service
        app.state.client_service = client_service
        app.state.email_service = email_service
    except (OSError, SQLAlchemyError, PersistenceError):
        logging.getLogger(__name__).exception("Database unavailable; order endpoints answer 503")

    try:
        yield
    finally:
        await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RBACMiddleware)
    app.include_router(ping.router)
    app.include_router(statuses.router)
    app.include_router(clients.router)
    app.include_router(orders.router)
    app.include_router(notify.router)
    return app


app = create_app()
