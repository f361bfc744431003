from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, select

from models import (
    Admission,
    AdmissionStatus,
    AdmissionType,
    Bed,
    Patient,
    User,
    Visit,
    VisitStatus,
    Ward,
)
from services.beds import decrement_available_beds, occupy_bed, select_bed
from services.errors import BedUnavailable, InvalidTransition, NoCapacity, NotFound, UpdateFailed
from services.notifications import broadcast_ward_event, non_critical, notify
from services.pharmacy import consume_ward_supplies
from state_machine import validate_transition

logger = logging.getLogger("wardbridge")

URGENCY_PRIORITY = {
    "emergency": "urgent",
    "urgent": "high",
}


@dataclass
class AdmissionRequest:
    patient_id: int
    visit_id: int
    requested_by: int
    admission_reason: str
    ward_type: str = "general"
    urgency: str = "routine"
    consultation: dict | None = None


@dataclass
class ApprovalResult:
    admission: Admission
    ward: Ward
    bed: Bed


def generate_admission_number(now: datetime | None = None, epoch_ms: int | None = None) -> str:
    now = now or datetime.utcnow()
    if epoch_ms is None:
        epoch_ms = int(time.time() * 1000)
    return f"ADM-{now.year}-{str(epoch_ms)[-6:]}"


def pick_ward(session: Session, ward_type: str) -> Ward:
    """Greedy choice: the active ward of the type with the most free beds. Nothing is reserved."""
    ward = session.exec(
        select(Ward)
        .where(Ward.ward_type == ward_type, Ward.is_active == True, Ward.available_beds > 0)  # noqa: E712
        .order_by(Ward.available_beds.desc(), Ward.id.asc())  # type: ignore[union-attr]
    ).first()
    if not ward:
        raise NoCapacity(
            "No available beds in the requested ward type. "
            "Please try again later or contact administration."
        )
    return ward


async def request_admission(session: Session, body: AdmissionRequest) -> tuple[Admission, Ward]:
    patient = session.get(Patient, body.patient_id)
    if not patient:
        raise NotFound("Patient not found")
    doctor = session.get(User, body.requested_by)
    if not doctor:
        raise NotFound("Requesting doctor not found")

    ward_type = (body.ward_type or "general").strip().lower()
    urgency = (body.urgency or "routine").strip().lower()
    ward = pick_ward(session, ward_type)
    consultation = body.consultation or {}

    admission = Admission(
        admission_number=generate_admission_number(),
        patient_id=patient.id,
        visit_id=body.visit_id,
        ward_id=ward.id,
        attending_doctor_id=doctor.id,
        requested_by=doctor.id,
        admission_type=AdmissionType.EMERGENCY if urgency == "emergency" else AdmissionType.ELECTIVE,
        urgency=urgency,
        admission_status=AdmissionStatus.ACTIVE,
        admission_reason=body.admission_reason.strip(),
        diagnosis=consultation.get("diagnosis") or "",
        treatment_plan=consultation.get("treatmentPlan") or "",
    )
    try:
        session.add(admission)
        session.commit()
        session.refresh(admission)
        session.refresh(ward)
    except Exception as exc:
        session.rollback()
        logger.exception("Failed to insert admission for patient #%s", patient.id)
        raise UpdateFailed("Failed to create admission record") from exc

    print(f"[ADMISSION] Requested {admission.admission_number} for patient #{patient.id} -> {ward.name}")

    with non_critical(session, "visit:admission_requested"):
        visit = session.get(Visit, body.visit_id)
        if not visit:
            raise LookupError(f"Visit #{body.visit_id} not found")
        now = datetime.utcnow()
        visit.chief_complaint = consultation.get("chiefComplaint") or visit.chief_complaint
        visit.symptoms = consultation.get("symptoms") or visit.symptoms
        visit.examination_notes = consultation.get("physicalExamination") or visit.examination_notes
        visit.diagnosis = consultation.get("diagnosis") or visit.diagnosis
        visit.treatment_plan = consultation.get("treatmentPlan") or visit.treatment_plan
        visit.follow_up_instructions = consultation.get("followUpInstructions") or visit.follow_up_instructions
        visit.visit_status = VisitStatus.ADMISSION_REQUESTED
        visit.requires_admission = True
        visit.consultation_end_time = now
        visit.updated_at = now
        session.add(visit)

    await notify(
        session,
        recipient_id=ward.head_nurse_id,
        sender_id=doctor.id,
        title=f"New Admission Request - {patient.full_name}",
        message=(
            f"Dr. {doctor.full_name} has requested admission for patient {patient.full_name} "
            f"({patient.patient_number}) to {ward.name}.\n\n"
            f"Reason: {admission.admission_reason}\nUrgency: {urgency.upper()}\n"
            f"Admission #: {admission.admission_number}"
        ),
        notification_type="admission_request",
        priority=URGENCY_PRIORITY.get(urgency, "normal"),
        patient_id=patient.id,
        related_entity_type="admission",
        related_entity_id=admission.id,
    )

    # Side effects commit on their own and expire the loaded rows.
    session.refresh(admission)
    session.refresh(ward)
    return admission, ward


def _mark_admission_approved(
    session: Session,
    admission_id: int,
    approved_by: int,
    bed_id: int,
    assigned_doctor_id: int | None,
) -> bool:
    values = {
        "admission_status": AdmissionStatus.APPROVED,
        "bed_id": bed_id,
        "approved_by": approved_by,
        "updated_at": datetime.utcnow(),
    }
    if assigned_doctor_id is not None:
        values["assigned_doctor_id"] = assigned_doctor_id
    result = session.exec(
        update(Admission)  # type: ignore[arg-type]
        .where(Admission.id == admission_id, Admission.admission_status == AdmissionStatus.ACTIVE)
        .values(**values)
    )
    return result.rowcount == 1


async def approve_admission(
    session: Session,
    admission_id: int,
    *,
    approved_by: int,
    bed_id: int | None = None,
    assigned_doctor_id: int | None = None,
) -> ApprovalResult:
    admission = session.get(Admission, admission_id)
    if not admission:
        raise NotFound("Admission not found")
    try:
        validate_transition("admission", admission.admission_status, AdmissionStatus.APPROVED)
    except ValueError as exc:
        raise InvalidTransition(str(exc)) from exc

    ward = session.get(Ward, admission.ward_id)
    patient = session.get(Patient, admission.patient_id)
    if not ward or not patient:
        raise NotFound("Admission references a missing ward or patient")
    if assigned_doctor_id is not None and not session.get(User, assigned_doctor_id):
        raise NotFound("Assigned doctor not found")

    bed = select_bed(session, ward, bed_id)

    # Admission, bed and ward counter change together or not at all.
    try:
        if not _mark_admission_approved(session, admission_id, approved_by, bed.id, assigned_doctor_id):
            raise InvalidTransition("Admission is no longer awaiting approval")
        if not occupy_bed(session, bed.id, patient.id):
            raise BedUnavailable(f"Bed {bed.bed_number} was taken by another admission")
        decrement_available_beds(session, ward.id)
        session.commit()
    except (InvalidTransition, BedUnavailable):
        session.rollback()
        raise
    except Exception as exc:
        session.rollback()
        logger.exception("Failed to approve admission #%s with bed #%s", admission_id, bed.id)
        raise UpdateFailed("Failed to approve admission") from exc

    session.refresh(admission)
    session.refresh(bed)
    session.refresh(ward)
    print(f"[ADMISSION] Approved {admission.admission_number}: {ward.name} bed {bed.bed_number}")

    await broadcast_ward_event(
        ward.id,
        {
            "event": "bed_occupied",
            "ward_id": ward.id,
            "bed_id": bed.id,
            "bed_number": bed.bed_number,
            "admission_id": admission.id,
            "available_beds": ward.available_beds,
        },
    )
    await notify(
        session,
        recipient_id=admission.requested_by,
        sender_id=approved_by,
        title="Admission Approved",
        message=(
            f"Admission for {patient.full_name} ({patient.patient_number}) has been approved. "
            f"Ward: {ward.name}, Bed: {bed.bed_number}"
        ),
        notification_type="admission_approved",
        patient_id=patient.id,
        related_entity_type="admission",
        related_entity_id=admission.id,
    )
    if assigned_doctor_id is not None:
        await notify(
            session,
            recipient_id=assigned_doctor_id,
            sender_id=approved_by,
            title="New Patient Assigned",
            message=(
                f"{patient.full_name} ({patient.patient_number}) has been admitted to "
                f"{ward.name}, Bed {bed.bed_number}, under your care."
            ),
            notification_type="patient_assigned",
            patient_id=patient.id,
            related_entity_type="admission",
            related_entity_id=admission.id,
        )

    return ApprovalResult(admission=admission, ward=ward, bed=bed)


WARD_NOTE_FIELDS = ("receiving_notes", "general_examination", "diagnosis", "treatment_plan")


def record_ward_doctor_update(
    session: Session,
    admission_id: int,
    *,
    doctor_id: int,
    notes: dict,
    expert_opinion_requested: bool | None = None,
    supplies: list[tuple[int, int]] | None = None,
) -> tuple[Admission, list[dict]]:
    """Save the assigned doctor's ward notes, then draw any supplies used from ward stock.

    Empty note fields leave the stored value alone.
    """
    admission = session.exec(
        select(Admission).where(Admission.id == admission_id, Admission.assigned_doctor_id == doctor_id)
    ).first()
    if not admission:
        raise NotFound("Admission not found or doctor not assigned to this patient")

    for field in WARD_NOTE_FIELDS:
        value = (notes.get(field) or "").strip()
        if value:
            setattr(admission, field, value)
    if expert_opinion_requested is not None:
        admission.expert_opinion_requested = expert_opinion_requested
    admission.updated_at = datetime.utcnow()
    session.add(admission)
    try:
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.exception("Failed to save ward doctor update for admission #%s", admission_id)
        raise UpdateFailed("Failed to update admission record") from exc

    usage = []
    if supplies:
        usage = consume_ward_supplies(
            session,
            ward_id=admission.ward_id,
            admission_id=admission_id,
            used_by=doctor_id,
            items=supplies,
        )
    session.refresh(admission)
    print(f"[ADMISSION] Ward doctor update on {admission.admission_number}: {len(usage)} supply line(s)")
    return admission, usage
