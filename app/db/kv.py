from sqlalchemy.orm import Session, sessionmaker

from app.models.storage_entry import StorageEntry

PRICE_FEED_KEY = "tillfetch"
PURCHASE_RECORD_KEY = "boughtaccount"


class KeyValueStore:
    """
    Small string key-value storage on top of the storage_entries table.
    Each write replaces the whole value inside one transaction, so readers
    see either the previous or the new value.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        with self._session_factory() as db:
            entry = db.get(StorageEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as db:
            entry = db.get(StorageEntry, key)
            if entry:
                entry.value = value
            else:
                db.add(StorageEntry(key=key, value=value))
            db.commit()

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            entry = db.get(StorageEntry, key)
            if entry:
                db.delete(entry)
                db.commit()
