"""
Metadata store for image records: SQLAlchemy and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import Column, Float, Integer, String, create_engine, select, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class ImageStore(Protocol):
    """Interface for image metadata access."""

    def find_all(self) -> list["ImageRecord"]:
        ...

    def find_by_id(self, image_id: str) -> Optional["ImageRecord"]:
        ...

    def delete_by_id(self, image_id: str) -> bool:
        ...

    def delete_by_ids(self, image_ids: Iterable[str]) -> int:
        ...

    def delete_by_asset_ids(self, asset_ids: Iterable[str]) -> int:
        ...

    def insert(
        self, *, name: Optional[str], url: str, asset_id: Optional[str]
    ) -> "ImageRecord":
        ...

    def ping(self) -> bool:
        ...


@dataclass
class ImageRecord:
    id: str
    url: Optional[str]
    name: Optional[str] = None
    asset_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "assetId": self.asset_id,
        }


class InMemoryImageStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.images: Dict[str, ImageRecord] = {}

    def find_all(self) -> list[ImageRecord]:
        return list(self.images.values())

    def find_by_id(self, image_id: str) -> Optional[ImageRecord]:
        return self.images.get(image_id)

    def delete_by_id(self, image_id: str) -> bool:
        return self.images.pop(image_id, None) is not None

    def delete_by_ids(self, image_ids: Iterable[str]) -> int:
        deleted = 0
        for image_id in set(image_ids):
            if self.images.pop(image_id, None) is not None:
                deleted += 1
        return deleted

    def delete_by_asset_ids(self, asset_ids: Iterable[str]) -> int:
        targets = set(asset_ids)
        doomed = [
            image_id
            for image_id, record in self.images.items()
            if record.asset_id is not None and record.asset_id in targets
        ]
        for image_id in doomed:
            del self.images[image_id]
        return len(doomed)

    def insert(
        self, *, name: Optional[str], url: str, asset_id: Optional[str]
    ) -> ImageRecord:
        record = ImageRecord(
            id=uuid.uuid4().hex, name=name, url=url, asset_id=asset_id
        )
        self.images[record.id] = record
        return record

    def ping(self) -> bool:
        return True

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.images.clear()


class SqlImageStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlImageStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_record(self, row: "ImageRow") -> ImageRecord:
        return ImageRecord(
            id=row.image_id,
            name=row.name,
            url=row.url,
            asset_id=row.asset_id,
            created_at=row.created_at,
        )

    def find_all(self) -> list[ImageRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ImageRow).order_by(ImageRow.seq.asc())
            ).scalars()
            return [self._to_record(row) for row in rows]

    def find_by_id(self, image_id: str) -> Optional[ImageRecord]:
        with self.Session() as session:
            row = session.execute(
                select(ImageRow).where(ImageRow.image_id == image_id)
            ).scalar_one_or_none()
            return self._to_record(row) if row else None

    def delete_by_id(self, image_id: str) -> bool:
        with self.Session() as session:
            deleted = (
                session.query(ImageRow)
                .filter(ImageRow.image_id == image_id)
                .delete(synchronize_session=False)
            )
            session.commit()
            return bool(deleted)

    def delete_by_ids(self, image_ids: Iterable[str]) -> int:
        ids = list(image_ids)
        if not ids:
            return 0
        with self.Session() as session:
            deleted = (
                session.query(ImageRow)
                .filter(ImageRow.image_id.in_(ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted or 0

    def delete_by_asset_ids(self, asset_ids: Iterable[str]) -> int:
        ids = list(asset_ids)
        if not ids:
            return 0
        with self.Session() as session:
            deleted = (
                session.query(ImageRow)
                .filter(ImageRow.asset_id.in_(ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted or 0

    def insert(
        self, *, name: Optional[str], url: str, asset_id: Optional[str]
    ) -> ImageRecord:
        with self.Session() as session:
            row = ImageRow(
                image_id=uuid.uuid4().hex,
                name=name,
                url=url,
                asset_id=asset_id,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True


Base = declarative_base()


class ImageRow(Base):
    __tablename__ = "images"

    # Autoincrement key keeps natural insertion order for listings.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    image_id = Column("id", String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    url = Column(String, nullable=True)
    asset_id = Column(String, nullable=True, index=True)
    created_at = Column(Float, nullable=False)
