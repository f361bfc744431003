from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import User, UserRole, Ward
from responses import ok
from services.auth import require_roles
from services.beds import create_ward_with_beds, reconcile_ward_counter, ward_overview

router = APIRouter(tags=["wards"])

requires_ward_staff = require_roles(UserRole.WARD_ADMIN, UserRole.NURSE, UserRole.ADMIN)
requires_ward_admin = require_roles(UserRole.WARD_ADMIN, UserRole.ADMIN)


class WardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    code: str = Field(min_length=1, max_length=20)
    ward_type: str = Field(default="general", max_length=40)
    bed_count: int = Field(ge=1, le=500)
    bed_type: str = Field(default="standard", max_length=40)
    head_nurse_id: Optional[int] = None


@router.post("/wards", status_code=201)
def create_ward(
    body: WardCreate,
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_admin),
):
    code = body.code.strip().upper()
    if session.exec(select(Ward).where(Ward.code == code)).first():
        raise HTTPException(409, f"Ward code {code} already exists")
    if body.head_nurse_id is not None:
        nurse = session.get(User, body.head_nurse_id)
        if not nurse or nurse.role not in (UserRole.NURSE, UserRole.WARD_ADMIN):
            raise HTTPException(404, "Head nurse not found")

    try:
        ward = create_ward_with_beds(
            session,
            name=body.name.strip(),
            code=code,
            ward_type=body.ward_type.strip().lower(),
            bed_count=body.bed_count,
            bed_type=body.bed_type,
            head_nurse_id=body.head_nurse_id,
        )
        session.commit()
        session.refresh(ward)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to create ward")

    return ok(ward_overview(session, ward), f"Ward {ward.name} created with {ward.total_beds} beds")


@router.get("/ward-admin/beds")
def list_ward_beds(
    ward_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    query = select(Ward).where(Ward.is_active == True)  # noqa: E712
    if ward_id is not None:
        query = query.where(Ward.id == ward_id)
    wards = session.exec(query.order_by(Ward.name.asc())).all()
    return ok([ward_overview(session, ward) for ward in wards])


@router.post("/wards/{ward_id}/reconcile")
def reconcile_ward(
    ward_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_ward_admin),
):
    ward = session.get(Ward, ward_id)
    if not ward:
        raise HTTPException(404, "Ward not found")

    previous, corrected = reconcile_ward_counter(session, ward)
    try:
        session.commit()
        session.refresh(ward)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to reconcile ward")

    if previous != corrected:
        print(f"[WARD] {ward.name} available_beds {previous} -> {corrected} (user #{current_user.id})")
    return ok(
        {"ward_id": ward.id, "previous_available_beds": previous, "available_beds": corrected},
        "Ward counter reconciled",
    )
