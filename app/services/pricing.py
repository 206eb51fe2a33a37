import json
import logging
import math
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import InvalidPlan
from app.db.kv import KeyValueStore, PRICE_FEED_KEY
from app.models.plan import DEFAULT_PRICES, Plan, PlanTier

logger = logging.getLogger(__name__)

# feed layout: [x, x, beginner, average, expert, ...]
FEED_INDEXES: dict[PlanTier, int] = {
    PlanTier.BEGINNER: 2,
    PlanTier.AVERAGE: 3,
    PlanTier.EXPERT: 4,
}
MIN_FEED_LENGTH = 5


def _parse_price(value: Any, default: float) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    # a zero / negative / nan entry means "not set"
    if not math.isfinite(price) or price <= 0:
        return default
    return price


def parse_feed(feed: Any) -> dict[PlanTier, float]:
    """Price table from a decoded feed. Never raises: bad input yields the defaults."""
    if not isinstance(feed, list) or len(feed) < MIN_FEED_LENGTH:
        return dict(DEFAULT_PRICES)
    return {tier: _parse_price(feed[idx], DEFAULT_PRICES[tier]) for tier, idx in FEED_INDEXES.items()}


class PricingCatalog:
    def __init__(self, store: KeyValueStore):
        self._store = store
        self._prices: dict[PlanTier, float] = dict(DEFAULT_PRICES)

    def refresh(self) -> dict[PlanTier, float]:
        """Reload the cached price feed. Parse or storage failures fall back to defaults."""
        prices = dict(DEFAULT_PRICES)
        try:
            raw = self._store.get(PRICE_FEED_KEY)
            if raw:
                prices = parse_feed(json.loads(raw))
            else:
                logger.info("No cached price feed, using default prices")
        except (ValueError, SQLAlchemyError):
            logger.exception("Error loading prices, using defaults")

        # replace wholesale
        self._prices = prices
        return dict(self._prices)

    def resolve(self, plan_id: "str | PlanTier") -> Plan:
        tier = PlanTier.parse(plan_id)
        if tier is None:
            raise InvalidPlan(f"Unknown account plan: {plan_id!r}")
        return Plan(tier=tier, price=self._prices[tier])

    def plans(self) -> list[Plan]:
        return [Plan(tier=tier, price=self._prices[tier]) for tier in PlanTier]

    def current_prices(self) -> dict[str, float]:
        return {tier.value: price for tier, price in self._prices.items()}

    def set_sample_prices(self, beginner: str = "2.40", average: str = "4.50", expert: str = "6.50") -> dict[PlanTier, float]:
        """Write a sample feed in the cached layout and reload it."""
        sample = ["value0", "value1", beginner, average, expert, "value5", "value6", "value7"]
        self._store.set(PRICE_FEED_KEY, json.dumps(sample))
        return self.refresh()
