from fastapi import APIRouter, HTTPException, Depends

from app.api.deps import get_catalog, get_lifecycle, get_purchase_store
from app.core.errors import (
    InvalidAmount,
    InvalidPhoneNumber,
    InvalidPlan,
    InvalidTransition,
    PersistenceError,
    PurchaseError,
)
from app.schemas.billing import PlanOut, PurchaseOut, SamplePricesIn, SelectPlanIn, SessionOut, SubmitPaymentIn
from app.services.lifecycle import PaymentLifecycle
from app.services.pricing import PricingCatalog
from app.services.purchase_store import PurchaseStore

router = APIRouter(prefix="/billing", tags=["billing"])


def _http_error(e: PurchaseError) -> HTTPException:
    if isinstance(e, InvalidPlan):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, (InvalidPhoneNumber, InvalidAmount)):
        return HTTPException(status_code=422, detail=e.message)
    if isinstance(e, InvalidTransition):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail=e.message)
    return HTTPException(status_code=400, detail=e.message)


def _session_out(lifecycle: PaymentLifecycle) -> SessionOut:
    out = SessionOut(state=lifecycle.state.value)
    event = lifecycle.last_event
    if event:
        out.message = event.message
        out.reason = event.reason

    session = lifecycle.session
    if session:
        out.plan = session.plan.tier.value
        out.plan_name = session.plan.name
        out.price = session.plan.price
        out.ksh_amount = session.local_amount_display
        out.payment_amount = session.payment_amount
        out.phone = session.phone
        out.reference = session.reference
        out.checkout_request_id = session.request_id
    return out


# Display available account plans
@router.get("/plans", response_model=list[PlanOut])
def list_plans(
    catalog: PricingCatalog = Depends(get_catalog),
    lifecycle: PaymentLifecycle = Depends(get_lifecycle),
):
    return [
        PlanOut(
            code=plan.tier.value,
            name=plan.name,
            price=plan.price,
            local_price=lifecycle.converter.to_local(plan.price),
        )
        for plan in catalog.plans()
    ]

# Write a sample price feed (testing / demo)
@router.post("/prices/sample")
def set_sample_prices(payload: SamplePricesIn, catalog: PricingCatalog = Depends(get_catalog)):
    catalog.set_sample_prices(payload.beginner, payload.average, payload.expert)
    return catalog.current_prices()

@router.get("/session", response_model=SessionOut)
async def get_session(lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    return _session_out(lifecycle)

@router.post("/session/plan", response_model=SessionOut)
async def select_plan(payload: SelectPlanIn, lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    try:
        lifecycle.select_plan(payload.plan)
    except PurchaseError as e:
        raise _http_error(e)
    return _session_out(lifecycle)

@router.post("/session/proceed", response_model=SessionOut)
async def proceed_to_payment(lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    try:
        lifecycle.proceed_to_payment()
    except PurchaseError as e:
        raise _http_error(e)
    return _session_out(lifecycle)

@router.post("/session/back", response_model=SessionOut)
async def back_to_plan(lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    try:
        lifecycle.back_to_plan()
    except PurchaseError as e:
        raise _http_error(e)
    return _session_out(lifecycle)

# Send the STK push; confirmation keeps running after the response
@router.post("/session/submit", response_model=SessionOut)
async def submit_payment(payload: SubmitPaymentIn, lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    try:
        await lifecycle.submit_payment(payload.phone)
    except PurchaseError as e:
        raise _http_error(e)
    return _session_out(lifecycle)

@router.post("/session/retry", response_model=SessionOut)
async def retry_payment(lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    try:
        lifecycle.retry()
    except PurchaseError as e:
        raise _http_error(e)
    return _session_out(lifecycle)

@router.post("/session/cancel", response_model=SessionOut)
async def cancel_payment(lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    lifecycle.cancel()
    return _session_out(lifecycle)

# Current purchase record (gating truth)
@router.get("/purchase", response_model=PurchaseOut)
def get_purchase(store: PurchaseStore = Depends(get_purchase_store)):
    record = store.load()
    return PurchaseOut(
        has_purchased=bool(record and record.unlocks_access),
        record=record.model_dump(mode="json", by_alias=True) if record else None,
    )

@router.delete("/purchase", response_model=PurchaseOut)
def reset_purchase(store: PurchaseStore = Depends(get_purchase_store)):
    try:
        store.reset()
    except PurchaseError as e:
        raise _http_error(e)
    return PurchaseOut(has_purchased=False)

# Settle a record left pending by a confirmation timeout
@router.post("/purchase/reconcile", response_model=PurchaseOut)
async def reconcile_purchase(lifecycle: PaymentLifecycle = Depends(get_lifecycle)):
    try:
        record = await lifecycle.reconcile()
    except PurchaseError as e:
        raise _http_error(e)
    return PurchaseOut(
        has_purchased=bool(record and record.unlocks_access),
        record=record.model_dump(mode="json", by_alias=True) if record else None,
    )
