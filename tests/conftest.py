from __future__ import annotations

import os

# Settings are read at import time; point them at throwaway targets first.
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta
from decimal import Decimal
import uuid

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.db.session import Base
from portal.db.models import Category, Profile
from portal.services.document_store import DocumentStore, DocumentStoreError, LocalDocumentStore
from portal.services.lifecycle import LifecycleManager


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FailingDocumentStore(DocumentStore):
    """Refuses every file whose name contains 'broken'"""

    def __init__(self, inner: DocumentStore):
        self.inner = inner

    def put(self, path: str, data: bytes) -> None:
        if "broken" in path:
            raise DocumentStoreError(f"Simulated outage for {path}")
        self.inner.put(path, data)

    def get(self, path: str) -> bytes:
        return self.inner.get(path)

    def delete(self, path: str) -> None:
        self.inner.delete(path)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(tmp_path):
    return FailingDocumentStore(LocalDocumentStore(str(tmp_path / "uploads")))


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture
def manager(db, store, clock):
    return LifecycleManager(db, store, clock=clock)


def make_profile(db, role: str, email: str, **company) -> Profile:
    profile = Profile(id=uuid.uuid4(), email=email, role=role, **company)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def admin(db):
    return make_profile(db, "admin", "admin@ports.example")


@pytest.fixture
def vendor(db):
    return make_profile(db, "vendor", "bids@acme.example", company_name="Acme Marine")


@pytest.fixture
def other_vendor(db):
    return make_profile(db, "vendor", "tenders@harbourworks.example", company_name="Harbour Works")


@pytest.fixture
def third_vendor(db):
    return make_profile(db, "vendor", "office@quayside.example", company_name="Quayside Ltd")


@pytest.fixture
def category(db):
    category = Category(name="Dredging", description="Channel and berth dredging")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def draft_rfp(manager, admin, category, clock):
    return manager.create_rfp(
        created_by=admin.id,
        title="Berth 4 maintenance dredging",
        description="Maintenance dredging of berth 4 to -12m CD",
        category_id=category.id,
        submission_deadline=clock.now + timedelta(days=7),
        estimated_value=Decimal("250000"),
    ).record


@pytest.fixture
def published_rfp(manager, draft_rfp):
    return manager.set_rfp_status(draft_rfp.id, "published")


@pytest.fixture
def bid(manager, published_rfp, vendor):
    return manager.submit_bid(published_rfp.id, vendor.id, Decimal("1000"), "We dredge fast").record
