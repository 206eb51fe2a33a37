import httpx
from fastapi import FastAPI

from app.core.config import Settings, settings
from app.core.logging import configure_logging
from app.db.kv import KeyValueStore
from app.db.session import init_db, make_engine, make_session_factory
from app.integrations.payhero_client import PayHeroClient
from app.services.currency import CurrencyConverter
from app.services.lifecycle import PaymentLifecycle
from app.services.pricing import PricingCatalog
from app.services.purchase_store import PurchaseStore

# Import routers
from app.api.billing import router as billing_router
from app.api.premium import router as premium_router

def build_lifecycle(app_settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> PaymentLifecycle:
    engine = make_engine(app_settings.database_url, echo=app_settings.db_echo)
    init_db(engine)
    kv = KeyValueStore(make_session_factory(engine))

    catalog = PricingCatalog(kv)
    # prices are loaded once at startup
    catalog.refresh()

    return PaymentLifecycle(
        catalog=catalog,
        converter=CurrencyConverter(app_settings.usd_to_ksh),
        gateway=PayHeroClient(app_settings, transport=transport),
        store=PurchaseStore(kv),
        settings=app_settings,
    )

def create_app(app_settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    app_settings = app_settings or settings
    configure_logging(app_settings.log_level)

    app = FastAPI(title=app_settings.app_name)
    app.state.lifecycle = build_lifecycle(app_settings, transport=transport)

    @app.get("/health")
    def health():
        return {"status" : "ok", "env" : app_settings.app_env}

    # Include billing routes
    app.include_router(billing_router)
    # Include premium feature routes
    app.include_router(premium_router)

    return app

app = create_app()
