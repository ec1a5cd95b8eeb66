"""
Centralized Test Configuration.
"""

import os

# Settings are read at import time; keep the suite off Postgres and the worker off
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RECONCILER_ENABLED", "false")

from datetime import timedelta
from types import SimpleNamespace

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.core.clock import utcnow
from backend.app.core.dependencies import get_fiscal_service, get_object_storage
from backend.app.core.jwt import create_access_token
from backend.app.db.base import Base
from backend.app.db.session import get_db
from backend.app.domain.dispatch.resource_registry import ResourceRegistry
from backend.app.domain.dispatch.trip_lifecycle import TripLifecycleManager
from backend.app.domain.dispatch.trip_store import TripStore
from backend.app.domain.invoicing.invoice_issuer import InvoiceIssuer
from backend.app.models.client import Client
from backend.app.models.driver import Driver
from backend.app.models.enums import TeamRole
from backend.app.models.route import Route
from backend.app.models.team import Team, TeamMember, TeamFiscalProfile
from backend.app.models.vehicle import Vehicle
from backend.app.services.audit import AuditLogger
from backend.app.services.authorization import SqlTeamAuthorizer
from backend.app.services.fiscal_documents import FiscalDocument
from backend.app.services.object_storage import LocalObjectStorage

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DISPATCHER_ID = 1
OUTSIDER_ID = 99


def _enable_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine.sync_engine, "connect", _enable_foreign_keys)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


class FakeFiscalService:
    """In-memory stand-in for the Facturapi client."""

    def __init__(self):
        self.created = []
        self.cancelled = []
        self.fail_with = None
        self.cancel_fail_with = None

    async def create_invoice(self, payload):
        if self.fail_with is not None:
            raise self.fail_with
        self.created.append(payload)
        number = len(self.created)
        return FiscalDocument(
            id=f"inv_{number}",
            uuid=f"0000-uuid-{number}",
            series="F",
            folio=str(number),
            pdf_url=f"https://fiscal.test/invoices/inv_{number}/pdf",
            xml_url=f"https://fiscal.test/invoices/inv_{number}/xml",
        )

    async def download(self, document_id, fmt):
        return f"{fmt}:{document_id}".encode()

    async def cancel_invoice(self, document_id, reason="01"):
        if self.cancel_fail_with is not None:
            raise self.cancel_fail_with
        self.cancelled.append((document_id, reason))
        return {"id": document_id, "status": "canceled"}


@pytest.fixture
def fiscal_service():
    return FakeFiscalService()


@pytest.fixture
def object_storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "storage"), "http://test/files")


@pytest.fixture
def make_issuer(fiscal_service, object_storage):
    def build(db, **kwargs):
        return InvoiceIssuer(
            db,
            fiscal_service=fiscal_service,
            storage=object_storage,
            audit=AuditLogger(db),
            authorizer=SqlTeamAuthorizer(db),
            **kwargs,
        )
    return build


@pytest.fixture
def make_manager(make_issuer):
    def build(db, clock=utcnow):
        return TripLifecycleManager(
            db,
            registry=ResourceRegistry(db),
            store=TripStore(db),
            authorizer=SqlTeamAuthorizer(db),
            invoice_issuer=make_issuer(db),
            audit=AuditLogger(db),
            clock=clock,
        )
    return build


async def seed_team(db, with_fiscal_profile=True, drivers=2, vehicles=2):
    """Team with one dispatcher, a client, a route, drivers and vehicles."""
    team = Team(name="Transportes del Norte")
    db.add(team)
    await db.flush()

    db.add(TeamMember(team_id=team.id, user_id=DISPATCHER_ID, role=TeamRole.OWNER))
    if with_fiscal_profile:
        db.add(TeamFiscalProfile(
            team_id=team.id,
            legal_name="Transportes del Norte SA de CV",
            tax_id="TNO010101AAA",
            tax_system="601",
            zip_code="64000",
        ))

    client = Client(
        team_id=team.id,
        name="Abarrotes La Esperanza",
        email="compras@esperanza.mx",
        tax_id="AES020202BBB",
        tax_system="601",
        zip_code="64010",
        street="Av. Juárez",
        exterior_number="100",
        city="Monterrey",
        state="Nuevo León",
    )
    route = Route(team_id=team.id, name="Monterrey - Saltillo", code="MTY-SLT")
    driver_rows = [
        Driver(team_id=team.id, name=f"Driver {i}", license_number=f"LIC-{i}")
        for i in range(1, drivers + 1)
    ]
    vehicle_rows = [
        Vehicle(team_id=team.id, plate=f"ABC-10{i}", brand="Freightliner", model="Cascadia")
        for i in range(1, vehicles + 1)
    ]
    db.add_all([client, route, *driver_rows, *vehicle_rows])
    await db.commit()

    return SimpleNamespace(
        team_id=team.id,
        client_id=client.id,
        route_id=route.id,
        driver_ids=[d.id for d in driver_rows],
        vehicle_ids=[v.id for v in vehicle_rows],
    )


@pytest.fixture
def team_seeder():
    return seed_team


@pytest.fixture
async def seeded(db_session):
    return await seed_team(db_session)


@pytest.fixture
async def seeded_without_profile(db_session):
    return await seed_team(db_session, with_fiscal_profile=False)


def build_trip_payload(seeded, driver_index=0, vehicle_index=0, start_in=timedelta(hours=2),
                       duration=timedelta(hours=4), **overrides):
    """Request body for a trip starting ``start_in`` from now."""
    start = utcnow() + start_in
    payload = {
        "team_id": seeded.team_id,
        "client_id": seeded.client_id,
        "driver_id": seeded.driver_ids[driver_index],
        "vehicle_id": seeded.vehicle_ids[vehicle_index],
        "route_id": seeded.route_id,
        "price": 1000.0,
        "start_date": start.isoformat(),
        "end_date": (start + duration).isoformat(),
        "notes": "Entregar en andén 3",
        "cargos": [
            {"name": "Pallets de agua", "weight_kg": 800},
            {"name": "Cajas de galletas", "weight_kg": 200},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def trip_payload():
    return build_trip_payload


def _bearer(user_id):
    token = create_access_token(data={"sub": f"user{user_id}", "user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return _bearer(DISPATCHER_ID)


@pytest.fixture
def outsider_headers():
    return _bearer(OUTSIDER_ID)


@pytest.fixture
async def client(session_factory, fiscal_service, object_storage):
    """Async client for testing."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fiscal_service] = lambda: fiscal_service
    app.dependency_overrides[get_object_storage] = lambda: object_storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}

