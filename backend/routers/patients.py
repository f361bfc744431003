from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlmodel import Session, select

from database import get_session
from models import Admission, Patient, User, UserRole, Visit, VisitStatus
from responses import ok
from services.auth import get_current_user, require_roles

router = APIRouter(prefix="/patients", tags=["patients"])
visits_router = APIRouter(prefix="/visits", tags=["visits"])

requires_registration_role = require_roles(UserRole.RECEPTIONIST, UserRole.DOCTOR, UserRole.ADMIN)


class PatientRegister(BaseModel):
    first_name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(default="", max_length=80)
    age: int = Field(ge=0, le=130)
    gender: str = Field(min_length=1, max_length=32)
    phone: Optional[str] = Field(default=None, max_length=32)
    doctor_id: Optional[int] = None
    chief_complaint: str = Field(default="", max_length=2000)


class VisitStatusUpdate(BaseModel):
    status: VisitStatus


def generate_patient_number(session: Session, today: date | None = None) -> str:
    """``P<yy><mm><seq>``, the sequence counting patients already numbered this month."""
    today = today or date.today()
    prefix = f"P{today.strftime('%y%m')}"
    existing = session.exec(
        select(func.count()).select_from(Patient).where(Patient.patient_number.startswith(prefix))  # type: ignore[union-attr]
    ).one()
    return f"{prefix}{existing + 1:03d}"


def _least_loaded_doctor(session: Session) -> User | None:
    doctors = session.exec(
        select(User)
        .where(User.role == UserRole.DOCTOR, User.is_active == True)  # noqa: E712
        .order_by(User.id.asc())  # type: ignore[union-attr]
    ).all()
    if not doctors:
        return None

    midnight = datetime.combine(date.today(), datetime.min.time())
    workloads = {}
    for doctor in doctors:
        visits_today = session.exec(
            select(Visit.id).where(Visit.doctor_id == doctor.id, Visit.created_at >= midnight)
        ).all()
        workloads[doctor.id] = len(visits_today)
    return min(doctors, key=lambda doctor: workloads[doctor.id])


def _patient_row(patient: Patient) -> dict:
    data = patient.model_dump()
    data["full_name"] = patient.full_name
    return data


@router.post("/register", status_code=201)
def register_patient(
    body: PatientRegister,
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_registration_role),
):
    first_name = body.first_name.strip()
    gender = body.gender.strip()
    if not first_name:
        raise HTTPException(400, "First name cannot be empty")
    if not gender:
        raise HTTPException(400, "Gender cannot be empty")

    if body.doctor_id is not None:
        doctor = session.get(User, body.doctor_id)
        if not doctor or doctor.role != UserRole.DOCTOR:
            raise HTTPException(404, "Doctor not found")
    else:
        doctor = _least_loaded_doctor(session)

    patient = Patient(
        patient_number=generate_patient_number(session),
        first_name=first_name,
        last_name=body.last_name.strip(),
        age=body.age,
        gender=gender,
        phone=body.phone,
    )
    session.add(patient)
    try:
        session.flush()
        visit = Visit(
            patient_id=patient.id,
            doctor_id=doctor.id if doctor else None,
            chief_complaint=body.chief_complaint.strip(),
        )
        session.add(visit)
        session.commit()
        session.refresh(patient)
        session.refresh(visit)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to register patient")

    print(f"[PATIENT] Registered {patient.patient_number} ({patient.full_name})")
    return ok(
        {
            "patient": _patient_row(patient),
            "visit": visit.model_dump(),
            "assigned_doctor": doctor.full_name if doctor else None,
        },
        "Patient registered",
    )


@router.get("/search")
def search_patients(
    q: str = Query("", max_length=120),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    _current_user: User = Depends(get_current_user),
):
    term = q.strip()
    query = select(Patient)
    if term:
        pattern = f"%{term}%"
        query = query.where(
            or_(
                Patient.patient_number.ilike(pattern),  # type: ignore[union-attr]
                Patient.first_name.ilike(pattern),  # type: ignore[union-attr]
                Patient.last_name.ilike(pattern),  # type: ignore[union-attr]
                Patient.phone.ilike(pattern),  # type: ignore[union-attr]
            )
        )
    patients = session.exec(query.order_by(Patient.created_at.desc()).limit(limit)).all()  # type: ignore[union-attr]
    return ok([_patient_row(patient) for patient in patients])


@router.get("/{patient_id}")
def get_patient(
    patient_id: int,
    session: Session = Depends(get_session),
    _current_user: User = Depends(get_current_user),
):
    patient = session.get(Patient, patient_id)
    if not patient:
        raise HTTPException(404, "Patient not found")

    visits = session.exec(
        select(Visit).where(Visit.patient_id == patient_id).order_by(Visit.created_at.desc())  # type: ignore[union-attr]
    ).all()
    admissions = session.exec(
        select(Admission)
        .where(Admission.patient_id == patient_id)
        .order_by(Admission.created_at.desc())  # type: ignore[union-attr]
    ).all()
    return ok({"patient": _patient_row(patient), "visits": visits, "admissions": admissions})


@visits_router.put("/{visit_id}/status")
def update_visit_status(
    visit_id: int,
    body: VisitStatusUpdate,
    session: Session = Depends(get_session),
    _current_user: User = Depends(require_roles(UserRole.DOCTOR, UserRole.ADMIN)),
):
    visit = session.get(Visit, visit_id)
    if not visit:
        raise HTTPException(404, "Visit not found")

    visit.visit_status = body.status
    visit.updated_at = datetime.utcnow()
    if body.status == VisitStatus.COMPLETED:
        visit.consultation_end_time = visit.updated_at
    session.add(visit)
    try:
        session.commit()
        session.refresh(visit)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to update visit status")

    return ok(visit.model_dump(), f"Visit status updated to {body.status.value}")
