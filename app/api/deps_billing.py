from fastapi import Depends, HTTPException

from app.api.deps import get_purchase_store
from app.models.plan import PlanTier
from app.models.purchase import PurchaseRecord
from app.services.purchase_store import PurchaseStore

def require_purchased_account(plan_codes: list[str] | None = None):
    """Gate on the persisted record: only a "success" record unlocks access."""
    def _dep(store: PurchaseStore = Depends(get_purchase_store)) -> PurchaseRecord:
        record = store.load()
        if not record or not record.unlocks_access:
            raise HTTPException(status_code=402, detail="Purchased account required")

        if plan_codes:
            allowed = {PlanTier.parse(code) for code in plan_codes}
            if PlanTier.parse(record.plan) not in allowed:
                raise HTTPException(status_code=402, detail="Account plan does not include this feature")

        return record
    return _dep
