from __future__ import annotations

import logging

from sqlalchemy import update
from sqlmodel import Session, select

from models import Bed, BedStatus, Patient, Ward
from services.errors import BedUnavailable, InvalidBed, NoCapacity

logger = logging.getLogger("wardbridge")


def select_bed(session: Session, ward: Ward, bed_id: int | None = None) -> Bed:
    """Pick the bed an approved admission will occupy.

    With an explicit ``bed_id`` the bed must belong to the ward and be
    available. Otherwise the lowest-numbered available bed is chosen.
    """
    if bed_id is not None:
        bed = session.exec(select(Bed).where(Bed.id == bed_id, Bed.ward_id == ward.id)).first()
        if not bed:
            raise InvalidBed(f"Bed #{bed_id} does not belong to {ward.name}")
        if bed.status != BedStatus.AVAILABLE:
            raise BedUnavailable(f"Bed {bed.bed_number} is {bed.status.value}")
        return bed

    bed = session.exec(
        select(Bed)
        .where(Bed.ward_id == ward.id, Bed.status == BedStatus.AVAILABLE)
        .order_by(Bed.bed_number.asc(), Bed.id.asc())  # type: ignore[union-attr]
        .limit(1)
    ).first()
    if not bed:
        raise NoCapacity(f"No available beds in {ward.name} ward")
    return bed


def occupy_bed(session: Session, bed_id: int, patient_id: int) -> bool:
    """Flip a bed to occupied only if it is still available. Returns False when another writer got there first."""
    result = session.exec(
        update(Bed)  # type: ignore[arg-type]
        .where(Bed.id == bed_id, Bed.status == BedStatus.AVAILABLE)
        .values(status=BedStatus.OCCUPIED, current_patient_id=patient_id)
    )
    return result.rowcount == 1


def decrement_available_beds(session: Session, ward_id: int) -> bool:
    result = session.exec(
        update(Ward)  # type: ignore[arg-type]
        .where(Ward.id == ward_id, Ward.available_beds > 0)
        .values(available_beds=Ward.available_beds - 1)
    )
    if result.rowcount != 1:
        logger.warning("Ward #%s available_beds already at 0; counter has drifted from bed rows", ward_id)
        return False
    return True


def count_available_beds(session: Session, ward_id: int) -> int:
    beds = session.exec(
        select(Bed.id).where(Bed.ward_id == ward_id, Bed.status == BedStatus.AVAILABLE)
    ).all()
    return len(beds)


def reconcile_ward_counter(session: Session, ward: Ward) -> tuple[int, int]:
    """Reset ``available_beds`` from the bed rows. Returns (previous, corrected)."""
    previous = ward.available_beds
    corrected = count_available_beds(session, ward.id)
    ward.available_beds = corrected
    session.add(ward)
    return previous, corrected


def create_ward_with_beds(
    session: Session,
    *,
    name: str,
    code: str,
    ward_type: str,
    bed_count: int,
    bed_type: str = "standard",
    head_nurse_id: int | None = None,
) -> Ward:
    ward = Ward(
        name=name,
        code=code,
        ward_type=ward_type,
        total_beds=bed_count,
        available_beds=bed_count,
        head_nurse_id=head_nurse_id,
    )
    session.add(ward)
    session.flush()
    for number in range(1, bed_count + 1):
        session.add(Bed(ward_id=ward.id, bed_number=f"{code}-{number:02d}", bed_type=bed_type))
    return ward


def ward_overview(session: Session, ward: Ward) -> dict:
    beds = session.exec(
        select(Bed).where(Bed.ward_id == ward.id).order_by(Bed.bed_number.asc())  # type: ignore[union-attr]
    ).all()

    patient_ids = [
        bed.current_patient_id
        for bed in beds
        if bed.status == BedStatus.OCCUPIED and bed.current_patient_id is not None
    ]
    patient_map: dict[int, str] = {}
    if patient_ids:
        patients = session.exec(select(Patient).where(Patient.id.in_(patient_ids))).all()  # type: ignore[union-attr]
        patient_map = {p.id: p.full_name for p in patients if p.id is not None}

    bed_rows = []
    for bed in beds:
        occupied = bed.status == BedStatus.OCCUPIED and bed.current_patient_id is not None
        bed_rows.append(
            {
                "id": bed.id,
                "bed_number": bed.bed_number,
                "bed_type": bed.bed_type,
                "bed_status": bed.status.value,
                "patient_id": bed.current_patient_id,
                "patient_name": patient_map.get(bed.current_patient_id) if occupied else None,
            }
        )

    occupied_beds = sum(1 for bed in beds if bed.status == BedStatus.OCCUPIED)
    computed_available = sum(1 for bed in beds if bed.status == BedStatus.AVAILABLE)
    return {
        "id": ward.id,
        "name": ward.name,
        "code": ward.code,
        "ward_type": ward.ward_type,
        "total_beds": ward.total_beds,
        "available_beds": ward.available_beds,
        "occupied_beds": occupied_beds,
        "computed_available_beds": computed_available,
        "counter_drift": ward.available_beds - computed_available,
        "beds": bed_rows,
    }
