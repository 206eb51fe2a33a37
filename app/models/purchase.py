from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

class PaymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"

class PurchaseRecord(BaseModel):
    """
    Outcome of the last purchase attempt, stored under "boughtaccount".
    Field aliases keep the stored JSON compatible with the camelCase keys
    already written by the purchase page.
    """
    model_config = ConfigDict(populate_by_name=True)

    plan: str
    price: float
    ksh_amount: str = Field(alias="kshAmount")
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    purchase_date: datetime = Field(alias="purchaseDate")
    # epoch milliseconds
    timestamp: int
    reference: str
    checkout_request_id: str | None = Field(default=None, alias="checkoutRequestId")
    reason: str | None = None

    @property
    def unlocks_access(self) -> bool:
        # Gating truth: only a confirmed payment unlocks the plan
        return self.payment_status == PaymentStatus.SUCCESS

    def to_storage(self) -> str:
        return self.model_dump_json(by_alias=True)
