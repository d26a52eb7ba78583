import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.config import settings
from app.errors import InventoryError
from app.logging_config import configure_logging
from app.routers import auth, history, inventory, notifications, providers, quick_adjust, users
from app.seed_example import seed_store
from app.security.csrf import install_csrf_cookie_middleware
from app.security.sessions import SessionRegistry, install_auth_session_middleware
from app.services.catalog_service import ProductCatalog
from app.services.identity_service import LocalIdentityProvider
from app.services.inventory_store import InventoryStore
from app.services.notification_service import AlertPreferences, AlertSink, LoggingAlertSink
from app.services.quick_adjust_service import AdjustmentRankings, default_ranking_storage
from app.services.store_factory import get_inventory_store

logger = logging.getLogger(__name__)


def create_app(
    store: InventoryStore | None = None,
    *,
    alert_sink: AlertSink | None = None,
    rankings: AdjustmentRankings | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        state = app.state
        state.store = store or get_inventory_store()
        state.identity = LocalIdentityProvider(state.store, sessions)
        state.rankings = rankings or AdjustmentRankings(default_ranking_storage())
        state.alert_sink = alert_sink or LoggingAlertSink()
        state.alert_preferences = AlertPreferences.from_settings()
        state.catalog = ProductCatalog()
        if settings.seed_demo_data:
            await seed_store(state.store)
        await state.catalog.attach(state.store)
        state.scheduler = state.alert_preferences.scheduler(state.catalog, state.alert_sink)
        if state.alert_preferences.enabled:
            state.scheduler.start()
        logger.info('bar inventory started products=%s stale=%s', len(state.catalog.list()), state.catalog.stale)
        try:
            yield
        finally:
            await state.scheduler.stop()
            state.catalog.detach()

    sessions = SessionRegistry()
    app = FastAPI(title='Bar Inventory', lifespan=lifespan)
    app.state.sessions = sessions

    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        return JSONResponse({'error': exc.code, 'detail': exc.message}, status_code=exc.status_code)

    install_csrf_cookie_middleware(app)
    install_auth_session_middleware(app, sessions)

    app.include_router(auth.router)
    app.include_router(inventory.router)
    app.include_router(history.router)
    app.include_router(providers.router)
    app.include_router(users.router)
    app.include_router(quick_adjust.router)
    app.include_router(notifications.router)

    @app.get('/health')
    def health(request: Request):
        catalog = getattr(request.app.state, 'catalog', None)
        return {'status': 'ok', 'stale': bool(catalog and catalog.stale)}

    @app.get('/robots.txt', response_class=PlainTextResponse)
    def robots_txt() -> str:
        return 'User-agent: *\nDisallow: /\n'

    return app


app = create_app()
