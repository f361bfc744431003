from __future__ import annotations

import os
import tempfile
from pathlib import Path

os.environ.setdefault("WARDBRIDGE_DB_FILE", str(Path(tempfile.gettempdir()) / "wardbridge-test.db"))

import pytest
import httpx
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from database import get_session
from main import app
from models import Patient, PharmacyStock, User, UserRole, Visit, WardSupply
from services.auth import hash_password
from services.beds import create_ward_with_beds

TEST_ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def _override_get_session():
    with Session(TEST_ENGINE) as session:
        yield session


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(TEST_ENGINE)
    SQLModel.metadata.create_all(TEST_ENGINE)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db_session():
    with Session(TEST_ENGINE) as session:
        yield session


@pytest.fixture
def other_session():
    with Session(TEST_ENGINE) as session:
        yield session


@pytest.fixture
def client():
    app.dependency_overrides[get_session] = _override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client():
    app.dependency_overrides[get_session] = _override_get_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_users():
    users = {
        "doctor": {
            "first_name": "Doctor",
            "email": "doctor@wardbridge.local",
            "password": "doctor123",
            "role": UserRole.DOCTOR,
            "department": "Medicine",
        },
        "doctor2": {
            "first_name": "Second",
            "email": "doctor2@wardbridge.local",
            "password": "doctor123",
            "role": UserRole.DOCTOR,
            "department": "Medicine",
        },
        "nurse": {
            "first_name": "Nurse",
            "email": "nurse@wardbridge.local",
            "password": "nurse123",
            "role": UserRole.NURSE,
            "department": "Nursing",
        },
        "ward_admin": {
            "first_name": "Ward",
            "last_name": "Admin",
            "email": "wardadmin@wardbridge.local",
            "password": "wardadmin123",
            "role": UserRole.WARD_ADMIN,
            "department": "Nursing",
        },
        "pharmacist": {
            "first_name": "Pharmacist",
            "email": "pharmacy@wardbridge.local",
            "password": "pharmacy123",
            "role": UserRole.PHARMACIST,
            "department": "Pharmacy",
        },
        "receptionist": {
            "first_name": "Reception",
            "email": "reception@wardbridge.local",
            "password": "reception123",
            "role": UserRole.RECEPTIONIST,
            "department": "Front Desk",
        },
        "admin": {
            "first_name": "Admin",
            "email": "admin@wardbridge.local",
            "password": "admin123",
            "role": UserRole.ADMIN,
            "department": "Operations",
        },
    }

    with Session(TEST_ENGINE) as session:
        for spec in users.values():
            user = User(
                first_name=spec["first_name"],
                last_name=spec.get("last_name", ""),
                email=spec["email"],
                password_hash=hash_password(spec["password"]),
                role=spec["role"],
                department=spec["department"],
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            spec["id"] = user.id

    return users


def _login(client: TestClient, email: str, password: str) -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _headers_for(client: TestClient, seeded_users, key: str) -> dict[str, str]:
    return _login(client, seeded_users[key]["email"], seeded_users[key]["password"])


@pytest.fixture
def doctor_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "doctor")


@pytest.fixture
def doctor2_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "doctor2")


@pytest.fixture
def nurse_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "nurse")


@pytest.fixture
def ward_admin_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "ward_admin")


@pytest.fixture
def pharmacist_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "pharmacist")


@pytest.fixture
def receptionist_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "receptionist")


@pytest.fixture
def admin_headers(client: TestClient, seeded_users):
    return _headers_for(client, seeded_users, "admin")


@pytest.fixture
def make_ward(seeded_users):
    """Create a ward with numbered beds; the nurse is head nurse unless told otherwise."""

    def _make(name="General Ward A", code="GWA", ward_type="general", bed_count=3, head_nurse="nurse"):
        with Session(TEST_ENGINE) as session:
            ward = create_ward_with_beds(
                session,
                name=name,
                code=code,
                ward_type=ward_type,
                bed_count=bed_count,
                head_nurse_id=seeded_users[head_nurse]["id"] if head_nurse else None,
            )
            session.commit()
            return ward.id

    return _make


@pytest.fixture
def patient_visit(seeded_users):
    with Session(TEST_ENGINE) as session:
        patient = Patient(patient_number="P2610001", first_name="Asha", last_name="Menon", age=44, gender="Female")
        session.add(patient)
        session.flush()
        visit = Visit(patient_id=patient.id, doctor_id=seeded_users["doctor"]["id"], chief_complaint="Fever")
        session.add(visit)
        session.commit()
        return patient.id, visit.id


@pytest.fixture
def make_supply(seeded_users):
    """Pharmacy stock plus a matching ward supply; returns (pharmacy_id, ward_supply_id)."""

    def _make(ward_id: int, name="Paracetamol 500mg", pharmacy_stock=100, ward_stock=5, link=True):
        with Session(TEST_ENGINE) as session:
            stock = PharmacyStock(supply_name=name if link else f"{name} (other)", current_stock=pharmacy_stock)
            supply = WardSupply(ward_id=ward_id, supply_name=name, current_stock=ward_stock)
            session.add(stock)
            session.add(supply)
            session.commit()
            return stock.id, supply.id

    return _make
