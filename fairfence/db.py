"""
Pricing data access for the hosted backend, SQL databases and an in-memory
test implementation.

The SQLAlchemy models below also describe the rest of the site's persisted
schema (users, site content, testimonials, FAQ, services, images). This
service only reads ``pricing``; the other tables are created alongside it so
local databases match what the CMS expects.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import requests
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

PRICING_COLUMNS = "id,servicetype,name,height,totallmincgst,code,created_at"
REQUEST_TIMEOUT = 30  # seconds


class PricingStoreError(Exception):
    """A pricing query failed."""


@dataclass
class PricingRecord:
    id: str
    servicetype: str
    name: str
    height: Any
    totallmincgst: Any
    code: Optional[str] = None
    created_at: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "servicetype": self.servicetype,
            "name": self.name,
            "height": self.height,
            "totallmincgst": self.totallmincgst,
            "code": self.code,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, row: dict) -> "PricingRecord":
        return cls(
            id=str(row.get("id", "")),
            servicetype=row.get("servicetype") or "",
            name=row.get("name") or "",
            height=row.get("height"),
            totallmincgst=row.get("totallmincgst"),
            code=row.get("code"),
            created_at=row.get("created_at"),
        )


class PricingStore(Protocol):
    """Read-only access to the ``pricing`` relation."""

    def fetch_all(self) -> list[PricingRecord]:
        """All rows ordered by servicetype, then height (ties broken by id)."""
        ...

    def fetch_by_type(self, fence_type: str) -> list[PricingRecord]:
        """Rows whose servicetype contains ``fence_type``, case-insensitive."""
        ...

    def ping(self) -> bool:
        ...


def _height_sort_key(height: Any) -> tuple[int, float, str]:
    try:
        return (0, float(height), "")
    except (TypeError, ValueError):
        return (1, 0.0, str(height))


def sort_pricing_records(records: list[PricingRecord]) -> list[PricingRecord]:
    return sorted(
        records,
        key=lambda r: (r.servicetype or "", _height_sort_key(r.height), r.id),
    )


Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricingRow(Base):
    __tablename__ = "pricing"

    id = Column(String, primary_key=True, default=_new_id)
    servicetype = Column(Text, nullable=False, index=True)
    code = Column(Text, nullable=False, default="")
    name = Column(Text, nullable=False)
    height = Column(Numeric(6, 2, asdecimal=False), nullable=False)
    totallmincgst = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    username = Column(Text, nullable=False, unique=True)
    password = Column(Text, nullable=False)
    role = Column(Text, default="admin")
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class SiteContentRow(Base):
    __tablename__ = "site_content"

    id = Column(String, primary_key=True, default=_new_id)
    section = Column(Text, nullable=False)
    key = Column(Text, nullable=False)
    value = Column(Text, nullable=False)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class TestimonialRow(Base):
    __tablename__ = "testimonials"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    location = Column(Text, default="")
    rating = Column(Integer, default=5)
    text = Column(Text, nullable=False)
    source = Column(Text, default="Google")
    date = Column(Text, default="")
    is_active = Column(Boolean, default=True)
    is_featured = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class FaqItemRow(Base):
    __tablename__ = "faq_items"

    id = Column(String, primary_key=True, default=_new_id)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    order_index = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class ServiceRow(Base):
    __tablename__ = "services"

    id = Column(String, primary_key=True, default=_new_id)
    service_id = Column(Text, nullable=False, unique=True)
    title = Column(Text, nullable=False)
    description = Column(Text, default="")
    features = Column(Text, default="")
    price_range = Column(Text, default="")
    is_active = Column(Boolean, default=True)
    order_index = Column(Integer, default=0)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ImageRow(Base):
    __tablename__ = "images"

    id = Column(String, primary_key=True, default=_new_id)
    filename = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    category = Column(Text, default="")
    alt = Column(Text, default="")
    size = Column(Integer, default=0)
    mime_type = Column(Text, default="")
    uploaded_by = Column(String, nullable=True)
    is_public = Column(Boolean, default=True)
    uploaded_at = Column(DateTime(timezone=True), default=_utcnow)


@dataclass
class UnavailablePricingStore:
    """Stands in for a store that could not be built; every read fails."""

    reason: str

    def fetch_all(self) -> list[PricingRecord]:
        raise PricingStoreError(self.reason)

    def fetch_by_type(self, fence_type: str) -> list[PricingRecord]:
        raise PricingStoreError(self.reason)

    def ping(self) -> bool:
        return False


@dataclass
class InMemoryPricingStore:
    """Simple in-memory pricing table for development and tests."""

    records: list[PricingRecord] = field(default_factory=list)

    def add(self, **row) -> PricingRecord:
        row.setdefault("id", uuid.uuid4().hex)
        row.setdefault("name", row.get("servicetype", ""))
        record = PricingRecord.from_dict(row)
        self.records.append(record)
        return record

    def reset(self) -> None:
        self.records.clear()

    def fetch_all(self) -> list[PricingRecord]:
        return sort_pricing_records(self.records)

    def fetch_by_type(self, fence_type: str) -> list[PricingRecord]:
        needle = fence_type.lower()
        return [
            r for r in self.fetch_all() if needle in (r.servicetype or "").lower()
        ]

    def ping(self) -> bool:
        return True


@dataclass
class SupabasePricingStore:
    """
    Reads pricing through the hosted backend's REST interface using the
    service-role key.
    """

    url: str
    service_key: str
    timeout: float = REQUEST_TIMEOUT

    @property
    def _endpoint(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/pricing"

    @property
    def _headers(self) -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Accept": "application/json",
        }

    def _get(self, params: dict) -> list[dict]:
        try:
            response = requests.get(
                self._endpoint,
                params=params,
                headers=self._headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise PricingStoreError(str(exc)) from exc
        except ValueError as exc:
            raise PricingStoreError("invalid JSON from pricing endpoint") from exc
        if not isinstance(payload, list):
            raise PricingStoreError("pricing endpoint did not return a list")
        return payload

    def fetch_all(self) -> list[PricingRecord]:
        rows = self._get(
            {
                "select": PRICING_COLUMNS,
                "order": "servicetype.asc,height.asc,id.asc",
            }
        )
        return [PricingRecord.from_dict(row) for row in rows]

    def fetch_by_type(self, fence_type: str) -> list[PricingRecord]:
        rows = self._get(
            {
                "select": PRICING_COLUMNS,
                "servicetype": f"ilike.*{fence_type}*",
                "order": "servicetype.asc,height.asc,id.asc",
            }
        )
        return [PricingRecord.from_dict(row) for row in rows]

    def ping(self) -> bool:
        try:
            self._get({"select": "id", "limit": "1"})
        except PricingStoreError:
            return False
        return True


class SqlPricingStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, create_tables: bool = True):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlPricingStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        if create_tables:
            Base.metadata.create_all(self.engine)

    def _to_record(self, row: PricingRow) -> PricingRecord:
        return PricingRecord(
            id=row.id,
            servicetype=row.servicetype,
            name=row.name,
            height=row.height,
            totallmincgst=row.totallmincgst,
            code=row.code,
            created_at=row.created_at.isoformat() if row.created_at else None,
        )

    def _query(self, stmt) -> list[PricingRecord]:
        try:
            with self.Session() as session:
                rows = session.execute(stmt).scalars().all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PricingStoreError(str(exc)) from exc

    def _ordered(self, stmt):
        return stmt.order_by(
            PricingRow.servicetype.asc(),
            PricingRow.height.asc(),
            PricingRow.id.asc(),
        )

    def fetch_all(self) -> list[PricingRecord]:
        return self._query(self._ordered(select(PricingRow)))

    def fetch_by_type(self, fence_type: str) -> list[PricingRecord]:
        stmt = select(PricingRow).where(
            PricingRow.servicetype.ilike(f"%{fence_type}%")
        )
        return self._query(self._ordered(stmt))

    def ping(self) -> bool:
        try:
            with self.Session() as session:
                session.execute(select(PricingRow.id).limit(1))
        except SQLAlchemyError:
            logger.exception("Pricing database ping failed")
            return False
        return True

    def add(self, **row) -> PricingRecord:
        with self.Session() as session:
            pricing = PricingRow(**row)
            session.add(pricing)
            session.commit()
            session.refresh(pricing)
            return self._to_record(pricing)
