"""ORM models backing the local key/value cache."""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class LocalStoreEntryModel(TimestampMixin, Base):
    __tablename__ = "local_store_entries"
    __table_args__ = (
        Index("ix_local_store_entries_namespace_key", "namespace", "key", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)


__all__ = ["LocalStoreEntryModel"]
