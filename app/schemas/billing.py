from pydantic import BaseModel

class PlanOut(BaseModel):
    code: str
    name: str
    price: float
    currency: str = "USD"
    local_price: float
    local_currency: str = "KES"

class SelectPlanIn(BaseModel):
    plan: str

class SubmitPaymentIn(BaseModel):
    phone: str

class SamplePricesIn(BaseModel):
    beginner: str = "2.40"
    average: str = "4.50"
    expert: str = "6.50"

class SessionOut(BaseModel):
    state: str
    message: str | None = None
    reason: str | None = None
    plan: str | None = None
    plan_name: str | None = None
    price: float | None = None
    ksh_amount: str | None = None
    payment_amount: int | None = None
    phone: str | None = None
    reference: str | None = None
    checkout_request_id: str | None = None

class PurchaseOut(BaseModel):
    has_purchased: bool
    record: dict | None = None
