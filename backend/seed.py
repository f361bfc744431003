import os

from sqlmodel import Session, select

from database import engine, create_db
from models import Patient, PharmacyStock, User, UserRole, Visit, Ward, WardSupply
from services.auth import hash_password
from services.beds import create_ward_with_beds

DEMO_USERS = [
    {
        "first_name": "Priya",
        "last_name": "Raman",
        "email": "doctor@wardbridge.local",
        "password": "doctor123",
        "role": UserRole.DOCTOR,
        "department": "Medicine",
    },
    {
        "first_name": "Riya",
        "last_name": "Das",
        "email": "nurse@wardbridge.local",
        "password": "nurse123",
        "role": UserRole.NURSE,
        "department": "Nursing",
    },
    {
        "first_name": "Kiran",
        "last_name": "Shetty",
        "email": "wardadmin@wardbridge.local",
        "password": "wardadmin123",
        "role": UserRole.WARD_ADMIN,
        "department": "Nursing",
    },
    {
        "first_name": "Arjun",
        "last_name": "Pillai",
        "email": "pharmacy@wardbridge.local",
        "password": "pharmacy123",
        "role": UserRole.PHARMACIST,
        "department": "Pharmacy",
    },
    {
        "first_name": "Meera",
        "last_name": "Iyer",
        "email": "reception@wardbridge.local",
        "password": "reception123",
        "role": UserRole.RECEPTIONIST,
        "department": "Front Desk",
    },
    {
        "first_name": "Sahana",
        "last_name": "Rao",
        "email": "admin@wardbridge.local",
        "password": "admin123",
        "role": UserRole.ADMIN,
        "department": "Operations",
    },
]

DEMO_WARDS = [
    {"name": "General Ward A", "code": "GWA", "ward_type": "general", "bed_count": 10},
    {"name": "General Ward B", "code": "GWB", "ward_type": "general", "bed_count": 8},
    {"name": "Intensive Care Unit", "code": "ICU", "ward_type": "icu", "bed_count": 4, "bed_type": "icu"},
]

DEMO_STOCK = [
    {"supply_name": "Paracetamol 500mg", "supply_category": "Medication", "current_stock": 500, "unit": "tablets"},
    {"supply_name": "Normal Saline 1L", "supply_category": "IV Fluids", "current_stock": 120, "unit": "bags"},
    {"supply_name": "Surgical Gloves", "supply_category": "Consumables", "current_stock": 800, "unit": "pairs"},
    {"supply_name": "Syringe 5ml", "supply_category": "Consumables", "current_stock": 300, "unit": "pieces"},
    {"supply_name": "Gauze Pads", "supply_category": "Dressings", "current_stock": 8, "unit": "packs"},
]

# Every seeded ward keeps a small float of each pharmacy item.
WARD_FLOAT = 10


def _seed_users(session: Session) -> dict[str, User]:
    users: dict[str, User] = {}
    for spec in DEMO_USERS:
        user = session.exec(select(User).where(User.email == spec["email"])).first()
        if not user:
            user = User(
                first_name=spec["first_name"],
                last_name=spec["last_name"],
                email=spec["email"],
                password_hash=hash_password(spec["password"]),
                role=spec["role"],
                department=spec["department"],
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            print(f"[SEED] Created user: {user.email} ({user.role.value})")
        users[user.email] = user
    return users


def _seed_wards(session: Session, head_nurse: User) -> list[Ward]:
    wards = []
    for spec in DEMO_WARDS:
        ward = session.exec(select(Ward).where(Ward.code == spec["code"])).first()
        if not ward:
            ward = create_ward_with_beds(session, head_nurse_id=head_nurse.id, **spec)
            session.commit()
            session.refresh(ward)
            print(f"[SEED] Created ward: {ward.name} ({ward.total_beds} beds)")
        wards.append(ward)
    return wards


def _seed_stock(session: Session, wards: list[Ward]):
    for spec in DEMO_STOCK:
        stock = session.exec(select(PharmacyStock).where(PharmacyStock.supply_name == spec["supply_name"])).first()
        if not stock:
            session.add(PharmacyStock(**spec))
            print(f"[SEED] Stocked pharmacy: {spec['supply_name']} x{spec['current_stock']}")

        for ward in wards:
            supply = session.exec(
                select(WardSupply).where(
                    WardSupply.ward_id == ward.id,
                    WardSupply.supply_name == spec["supply_name"],
                )
            ).first()
            if not supply:
                session.add(
                    WardSupply(
                        ward_id=ward.id,
                        supply_name=spec["supply_name"],
                        supply_category=spec["supply_category"],
                        current_stock=WARD_FLOAT,
                        unit=spec["unit"],
                    )
                )
    session.commit()


def _seed_patient(session: Session, doctor: User):
    if session.exec(select(Patient).where(Patient.patient_number == "P0000001")).first():
        return
    patient = Patient(patient_number="P0000001", first_name="Demo", last_name="Patient", age=58, gender="Male")
    session.add(patient)
    session.flush()
    session.add(Visit(patient_id=patient.id, doctor_id=doctor.id, chief_complaint="Shortness of breath"))
    session.commit()
    print(f"[SEED] Created patient: {patient.full_name} ({patient.patient_number})")


def run_seed(seed_patient: bool = False):
    create_db()

    with Session(engine) as session:
        users = _seed_users(session)
        wards = _seed_wards(session, users["nurse@wardbridge.local"])
        _seed_stock(session, wards)
        if seed_patient:
            _seed_patient(session, users["doctor@wardbridge.local"])

    print("Demo credentials:")
    for spec in DEMO_USERS:
        print(f"  {spec['email']} / {spec['password']}")
    print("[SEED] Seed complete.")


if __name__ == "__main__":
    run_seed(seed_patient=os.getenv("WARDBRIDGE_SEED_PATIENT", "0") == "1")
