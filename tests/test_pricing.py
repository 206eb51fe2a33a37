"""Tests for app/services/pricing.py -- cached price feed and plan resolution."""

from __future__ import annotations

import json

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import InvalidPlan
from app.db.kv import KeyValueStore, PRICE_FEED_KEY
from app.models.plan import PlanTier
from app.services.pricing import PricingCatalog, parse_feed

DEFAULTS = {PlanTier.BEGINNER: 2.40, PlanTier.AVERAGE: 4.50, PlanTier.EXPERT: 6.50}


class BrokenStore:
    def get(self, key: str) -> str | None:
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))


class TestRefresh:
    def test_defaults_without_feed(self, catalog: PricingCatalog) -> None:
        assert catalog.refresh() == DEFAULTS

    @pytest.mark.parametrize("raw", ["[]", "not json", "{}", "null", '["a", "b", "1.0", "2.0"]'])
    def test_malformed_feed_keeps_defaults(self, kv: KeyValueStore, raw: str) -> None:
        kv.set(PRICE_FEED_KEY, raw)
        catalog = PricingCatalog(kv)
        assert catalog.refresh() == DEFAULTS

    def test_reads_prices_at_indexes_2_to_4(self, kv: KeyValueStore) -> None:
        kv.set(PRICE_FEED_KEY, json.dumps(["x", "y", "3.10", "5.25", "9.99", "z"]))
        catalog = PricingCatalog(kv)
        catalog.refresh()
        assert catalog.current_prices() == {"beginner": 3.10, "average": 5.25, "expert": 9.99}

    def test_bad_entry_falls_back_for_that_tier_only(self, kv: KeyValueStore) -> None:
        kv.set(PRICE_FEED_KEY, json.dumps(["x", "y", "abc", "0", "7.00"]))
        catalog = PricingCatalog(kv)
        prices = catalog.refresh()
        assert prices == {PlanTier.BEGINNER: 2.40, PlanTier.AVERAGE: 4.50, PlanTier.EXPERT: 7.00}

    def test_reload_replaces_previous_prices(self, kv: KeyValueStore) -> None:
        catalog = PricingCatalog(kv)
        catalog.set_sample_prices("1.00", "2.00", "3.00")
        kv.set(PRICE_FEED_KEY, "[]")
        assert catalog.refresh() == DEFAULTS

    def test_storage_error_is_absorbed(self) -> None:
        catalog = PricingCatalog(BrokenStore())  # type: ignore[arg-type]
        assert catalog.refresh() == DEFAULTS

    def test_parse_feed_never_raises(self) -> None:
        assert parse_feed(None) == DEFAULTS
        assert parse_feed([None] * 5) == DEFAULTS
        assert parse_feed(["x", "y", 10**400, "4.50", "6.50"]) == DEFAULTS

    def test_huge_number_in_feed_falls_back(self, kv: KeyValueStore) -> None:
        kv.set(PRICE_FEED_KEY, "[0, 1, " + "9" * 400 + ", 4.5, 6.5]")
        assert PricingCatalog(kv).refresh() == DEFAULTS


class TestResolve:
    def test_resolves_tier_value(self, catalog: PricingCatalog) -> None:
        plan = catalog.resolve("expert")
        assert plan.tier is PlanTier.EXPERT
        assert plan.price == 6.50
        assert plan.name == "EXPERT"

    def test_resolves_display_name(self, catalog: PricingCatalog) -> None:
        assert catalog.resolve("AVERAGE SKILLED").tier is PlanTier.AVERAGE
        assert catalog.resolve(PlanTier.BEGINNER).price == 2.40

    @pytest.mark.parametrize("plan_id", ["gold", "", "BEGINNERS", None])
    def test_unknown_plan(self, catalog: PricingCatalog, plan_id: object) -> None:
        with pytest.raises(InvalidPlan):
            catalog.resolve(plan_id)  # type: ignore[arg-type]

    def test_uses_sample_prices(self, catalog: PricingCatalog) -> None:
        catalog.set_sample_prices(beginner="1.50")
        assert catalog.resolve("beginner").price == 1.50
        assert [p.tier for p in catalog.plans()] == [PlanTier.BEGINNER, PlanTier.AVERAGE, PlanTier.EXPERT]
