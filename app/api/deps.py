from fastapi import Request

from app.services.lifecycle import PaymentLifecycle
from app.services.pricing import PricingCatalog
from app.services.purchase_store import PurchaseStore

# One lifecycle per application instance, created in create_app()

def get_lifecycle(request: Request) -> PaymentLifecycle:
    return request.app.state.lifecycle

def get_catalog(request: Request) -> PricingCatalog:
    return request.app.state.lifecycle.catalog

def get_purchase_store(request: Request) -> PurchaseStore:
    return request.app.state.lifecycle.store
