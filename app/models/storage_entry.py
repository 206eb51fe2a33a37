from datetime import datetime, timezone
from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class StorageEntry(Base):
    __tablename__ = "storage_entries"

    # Stable key such as "tillfetch" (price feed) or "boughtaccount" (purchase record)
    key: Mapped[str] = mapped_column(String(64), primary_key=True)

    # JSON document, replaced wholesale on every write
    value: Mapped[str] = mapped_column(Text)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
