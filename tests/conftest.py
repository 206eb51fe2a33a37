"""Shared fixtures: in-memory storage, a scripted gateway and a sleep that records waits."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.core.config import Settings
from app.db.kv import KeyValueStore
from app.db.session import init_db, make_engine, make_session_factory
from app.integrations.payhero_client import GatewayStatus, InitiationResult, StatusResult
from app.services.currency import CurrencyConverter
from app.services.lifecycle import PaymentLifecycle
from app.services.pricing import PricingCatalog
from app.services.purchase_store import PurchaseStore

PENDING = StatusResult(GatewayStatus.PENDING)
SUCCESS = StatusResult(GatewayStatus.SUCCESS)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"database_url": "sqlite://", "log_level": "debug"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeGateway:
    """Scripted gateway. Scripts hold StatusResult items or exceptions to raise."""

    def __init__(
        self,
        initiation: InitiationResult | Exception | None = None,
        statuses: list[Any] | None = None,
        verify_statuses: list[Any] | None = None,
    ) -> None:
        self.initiation = initiation or InitiationResult(accepted=True, request_id="abc")
        self.statuses = list(statuses or [])
        self.verify_statuses = list(verify_statuses or [])
        self.initiate_calls: list[tuple[str, int, str]] = []
        self.poll_calls: list[str] = []
        self.verify_calls: list[str] = []

    @staticmethod
    def _next(script: list[Any]) -> StatusResult:
        item = script.pop(0) if script else PENDING
        if isinstance(item, Exception):
            raise item
        return item

    async def initiate(self, phone: str, amount: int, reference: str) -> InitiationResult:
        self.initiate_calls.append((phone, amount, reference))
        if isinstance(self.initiation, Exception):
            raise self.initiation
        return self.initiation

    async def poll_status(self, request_id: str) -> StatusResult:
        self.poll_calls.append(request_id)
        return self._next(self.statuses)

    async def verify_by_reference(self, reference: str) -> StatusResult:
        self.verify_calls.append(reference)
        return self._next(self.verify_statuses)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def kv() -> KeyValueStore:
    engine = make_engine("sqlite://")
    init_db(engine)
    return KeyValueStore(make_session_factory(engine))


@pytest.fixture
def catalog(kv: KeyValueStore) -> PricingCatalog:
    catalog = PricingCatalog(kv)
    catalog.refresh()
    return catalog


@pytest.fixture
def purchase_store(kv: KeyValueStore) -> PurchaseStore:
    return PurchaseStore(kv)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_lifecycle(catalog: PricingCatalog, purchase_store: PurchaseStore, sleep: RecordingSleep):
    def _make(gateway: Any, store: PurchaseStore | None = None, sleep_fn: Any = None, **overrides: Any) -> PaymentLifecycle:
        settings = make_settings(**overrides)
        return PaymentLifecycle(
            catalog=catalog,
            converter=CurrencyConverter(settings.usd_to_ksh),
            gateway=gateway,
            store=store or purchase_store,
            settings=settings,
            sleep=sleep_fn or sleep,
        )
    return _make
