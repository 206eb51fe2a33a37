import logging

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import PersistenceError
from app.db.kv import KeyValueStore, PURCHASE_RECORD_KEY
from app.models.purchase import PurchaseRecord

logger = logging.getLogger(__name__)


class PurchaseStore:
    """Owns the persisted purchase record. Everything else goes through this interface."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def persist(self, record: PurchaseRecord) -> None:
        try:
            self._store.set(PURCHASE_RECORD_KEY, record.to_storage())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save purchase record {record.reference}: {e}") from e
        logger.info("Purchase record saved: plan=%s status=%s ref=%s",
                    record.plan, record.payment_status.value, record.reference)

    def load(self) -> PurchaseRecord | None:
        try:
            raw = self._store.get(PURCHASE_RECORD_KEY)
        except SQLAlchemyError:
            logger.exception("Could not read purchase record")
            return None
        if not raw:
            return None
        try:
            return PurchaseRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed purchase record: %r", raw[:200])
            return None

    def has_purchased(self) -> bool:
        record = self.load()
        return record is not None and record.unlocks_access

    def reset(self) -> None:
        try:
            self._store.delete(PURCHASE_RECORD_KEY)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not reset purchase record: {e}") from e
        logger.info("Purchase status reset")
