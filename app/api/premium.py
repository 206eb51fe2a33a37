from fastapi import APIRouter, Depends
from app.api.deps_billing import require_purchased_account
from app.models.plan import PlanTier

router = APIRouter(prefix="/premium", tags=["premium"])

@router.get("/account")
def account(record = Depends(require_purchased_account())):
    # records written by older pages stored the display name ("EXPERT")
    tier = PlanTier.parse(record.plan)
    name = tier.display_name if tier else record.plan
    return {"ok": True, "message": f"Welcome to your {name} Account!", "reference": record.reference}

@router.get("/expert-feature")
def expert_feature(record = Depends(require_purchased_account(["expert"]))):
    return {"ok": True, "plan": record.plan}
