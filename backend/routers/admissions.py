from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session, select

from database import get_session
from models import Admission, AdmissionStatus, Bed, Patient, User, UserRole, Ward
from responses import ok
from services.admissions import AdmissionRequest, approve_admission, record_ward_doctor_update, request_admission
from services.auth import ensure_actor, require_roles

router = APIRouter(prefix="/admissions", tags=["admissions"])

requires_doctor = require_roles(UserRole.DOCTOR, UserRole.ADMIN)
requires_ward_staff = require_roles(UserRole.WARD_ADMIN, UserRole.NURSE, UserRole.ADMIN)


class AdmissionRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: int = Field(alias="patientId")
    visit_id: int = Field(alias="visitId")
    requested_by: int = Field(alias="requestedBy")
    admission_reason: str = Field(alias="admissionReason", min_length=1, max_length=2000)
    ward_type: str = Field(default="general", alias="wardType", max_length=40)
    urgency: str = Field(default="routine", max_length=20)
    consultation_data: Optional[dict[str, Any]] = Field(default=None, alias="consultationData")


class AdmissionApproveBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approved_by: int = Field(alias="approvedBy")
    bed_id: Optional[int] = Field(default=None, alias="bedId")
    assigned_doctor_id: Optional[int] = Field(default=None, alias="assignedDoctorId")


class SupplyUsed(BaseModel):
    supply_id: int
    quantity: int = Field(gt=0, le=10_000)


class WardDoctorUpdateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doctor_id: int
    receiving_notes: str = Field(default="", max_length=4000)
    general_examination: str = Field(default="", max_length=4000)
    expert_opinion_requested: Optional[bool] = None
    diagnosis: str = Field(default="", max_length=4000)
    treatment_plan: str = Field(default="", max_length=4000)
    selected_supplies: list[SupplyUsed] = Field(default_factory=list, alias="selectedSupplies")


def _names(session: Session, model, ids: set[int]) -> dict[int, Any]:
    ids = {item_id for item_id in ids if item_id is not None}
    if not ids:
        return {}
    rows = session.exec(select(model).where(model.id.in_(ids))).all()
    return {row.id: row for row in rows}


@router.post("/request", status_code=201)
async def create_admission_request(
    body: AdmissionRequestBody,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_doctor),
):
    ensure_actor(current_user, body.requested_by, "requestedBy")
    admission, ward = await request_admission(
        session,
        AdmissionRequest(
            patient_id=body.patient_id,
            visit_id=body.visit_id,
            requested_by=body.requested_by,
            admission_reason=body.admission_reason,
            ward_type=body.ward_type,
            urgency=body.urgency,
            consultation=body.consultation_data,
        ),
    )
    return ok(
        {
            "admission": admission.model_dump(mode="json"),
            "admissionNumber": admission.admission_number,
            "wardAssigned": {"id": ward.id, "name": ward.name, "type": ward.ward_type},
        },
        f"Admission request submitted. Patient will be admitted to {ward.name}.",
    )


@router.post("/{admission_id}/approve")
async def approve(
    admission_id: int,
    body: AdmissionApproveBody,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_ward_staff),
):
    ensure_actor(current_user, body.approved_by, "approvedBy")
    result = await approve_admission(
        session,
        admission_id,
        approved_by=body.approved_by,
        bed_id=body.bed_id,
        assigned_doctor_id=body.assigned_doctor_id,
    )
    return ok(
        {
            "admission_id": result.admission.id,
            "ward_name": result.ward.name,
            "bed_number": result.bed.bed_number,
        },
        "Admission approved successfully",
    )


@router.post("/{admission_id}/ward-update")
def ward_doctor_update(
    admission_id: int,
    body: WardDoctorUpdateBody,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_doctor),
):
    ensure_actor(current_user, body.doctor_id, "doctor_id")
    admission, usage = record_ward_doctor_update(
        session,
        admission_id,
        doctor_id=body.doctor_id,
        notes=body.model_dump(include={"receiving_notes", "general_examination", "diagnosis", "treatment_plan"}),
        expert_opinion_requested=body.expert_opinion_requested,
        supplies=[(item.supply_id, item.quantity) for item in body.selected_supplies],
    )
    return ok(
        {"admission": admission.model_dump(mode="json"), "supplies_used": usage},
        "Ward doctor update saved successfully",
    )


@router.get("/requests")
def list_admission_requests(
    ward_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    query = select(Admission).where(Admission.admission_status == AdmissionStatus.ACTIVE)
    if ward_id is not None:
        query = query.where(Admission.ward_id == ward_id)
    admissions = session.exec(query.order_by(Admission.created_at.desc(), Admission.id.desc())).all()  # type: ignore[union-attr]

    patients = _names(session, Patient, {a.patient_id for a in admissions})
    doctors = _names(session, User, {a.requested_by for a in admissions})
    wards = session.exec(
        select(Ward).where(Ward.is_active == True).order_by(Ward.name.asc())  # noqa: E712
    ).all()
    ward_map = {ward.id: ward for ward in wards}

    requests = []
    for admission in admissions:
        patient = patients.get(admission.patient_id)
        doctor = doctors.get(admission.requested_by)
        ward = ward_map.get(admission.ward_id)
        requests.append(
            {
                "id": admission.id,
                "admission_number": admission.admission_number,
                "admission_reason": admission.admission_reason,
                "admission_type": admission.admission_type.value,
                "admission_status": admission.admission_status.value,
                "urgency": admission.urgency,
                "created_at": admission.created_at,
                "patient": {
                    "id": admission.patient_id,
                    "name": patient.full_name if patient else None,
                    "patient_number": patient.patient_number if patient else None,
                },
                "requesting_doctor": doctor.full_name if doctor else None,
                "ward": {"id": ward.id, "name": ward.name, "ward_type": ward.ward_type} if ward else None,
            }
        )

    return ok(
        {
            "requests": requests,
            "wards": [
                {
                    "id": ward.id,
                    "name": ward.name,
                    "ward_type": ward.ward_type,
                    "total_beds": ward.total_beds,
                    "available_beds": ward.available_beds,
                    "occupied_beds": ward.total_beds - ward.available_beds,
                }
                for ward in wards
            ],
        }
    )


@router.get("/assigned")
def list_assigned_admissions(
    doctor_id: int = Query(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_doctor),
):
    ensure_actor(current_user, doctor_id, "doctor_id")
    admissions = session.exec(
        select(Admission)
        .where(
            Admission.assigned_doctor_id == doctor_id,
            Admission.admission_status.in_([AdmissionStatus.ACTIVE, AdmissionStatus.APPROVED]),  # type: ignore[union-attr]
        )
        .order_by(Admission.updated_at.desc())  # type: ignore[union-attr]
    ).all()

    patients = _names(session, Patient, {a.patient_id for a in admissions})
    wards = _names(session, Ward, {a.ward_id for a in admissions})
    beds = _names(session, Bed, {a.bed_id for a in admissions})

    rows = []
    for admission in admissions:
        patient = patients.get(admission.patient_id)
        ward = wards.get(admission.ward_id)
        bed = beds.get(admission.bed_id)
        rows.append(
            {
                **admission.model_dump(mode="json"),
                "patient_name": patient.full_name if patient else None,
                "patient_number": patient.patient_number if patient else None,
                "patient_age": patient.age if patient else None,
                "patient_gender": patient.gender if patient else None,
                "ward_name": ward.name if ward else None,
                "bed_number": bed.bed_number if bed else None,
            }
        )
    return ok(rows)
