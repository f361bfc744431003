import os
from pathlib import Path

from sqlalchemy import inspect
from sqlmodel import SQLModel, Session, create_engine

DB_FILE = Path(os.getenv("WARDBRIDGE_DB_FILE", str(Path(__file__).resolve().parent / "wardbridge.db")))
DATABASE_URL = f"sqlite:///{DB_FILE}"

engine = create_engine(DATABASE_URL, echo=False, connect_args={"check_same_thread": False})


REQUIRED_COLUMNS = {
    "user_profiles": {"id", "first_name", "last_name", "email", "password_hash", "role", "is_active"},
    "patients": {"id", "patient_number", "first_name", "last_name", "age", "gender"},
    "wards": {"id", "name", "code", "ward_type", "total_beds", "available_beds", "is_active", "head_nurse_id"},
    "beds": {"id", "ward_id", "bed_number", "bed_type", "status", "current_patient_id"},
    "admissions": {
        "id",
        "admission_number",
        "patient_id",
        "visit_id",
        "ward_id",
        "bed_id",
        "attending_doctor_id",
        "assigned_doctor_id",
        "requested_by",
        "approved_by",
        "admission_status",
        "receiving_notes",
    },
    "supply_requests": {
        "id",
        "ward_id",
        "supply_id",
        "pharmacy_supply_id",
        "supply_name",
        "quantity_requested",
        "request_status",
        "approved_by",
        "delivered_quantity",
        "delivered_date",
    },
    "pharmacy_transactions": {
        "id",
        "transaction_type",
        "pharmacy_supply_id",
        "ward_supply_id",
        "supply_request_id",
        "quantity",
        "previous_stock",
        "new_stock",
        "performed_by",
    },
}


def _schema_needs_rebuild() -> bool:
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())

    for table_name, required_cols in REQUIRED_COLUMNS.items():
        if table_name not in existing_tables:
            continue
        existing_cols = {col["name"] for col in inspector.get_columns(table_name)}
        if not required_cols.issubset(existing_cols):
            return True

    return False


def create_db():
    if _schema_needs_rebuild():
        print("[DB] Schema mismatch detected. Rebuilding local SQLite schema.")
        SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
