from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import RequestStatus, SupplyRequest, User, UserRole, Ward, WardSupply
from responses import ok
from services.auth import ensure_actor, require_roles
from services.pharmacy import adjust_ward_supply, confirm_receipt, create_supply_request, stock_status

router = APIRouter(prefix="/ward-admin", tags=["ward-supplies"])

requires_ward_staff = require_roles(UserRole.WARD_ADMIN, UserRole.NURSE, UserRole.ADMIN)

MAX_STOCK_CHANGE = 1_000_000


class WardSupplyCreate(BaseModel):
    ward_id: int
    supply_name: str = Field(min_length=1, max_length=120)
    supply_category: str = Field(default="General", max_length=60)
    current_stock: int = Field(default=0, ge=0)
    minimum_stock_level: int = Field(default=10, ge=0)
    unit: str = Field(default="units", max_length=30)


class StockChange(BaseModel):
    change: int = Field(ge=-MAX_STOCK_CHANGE, le=MAX_STOCK_CHANGE)


class SupplyRequestCreate(BaseModel):
    ward_id: int
    supply_id: int
    quantity_requested: int = Field(gt=0)
    requested_by: int
    urgency: str = Field(default="medium", max_length=20)
    request_reason: str = Field(default="", max_length=1000)
    notes: str = Field(default="", max_length=1000)


def _supply_row(supply: WardSupply) -> dict:
    data = supply.model_dump(mode="json")
    data["stock_status"] = stock_status(supply.current_stock, supply.minimum_stock_level)
    return data


@router.get("/supplies")
def list_supplies(
    ward_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    query = select(WardSupply)
    if ward_id is not None:
        query = query.where(WardSupply.ward_id == ward_id)
    supplies = session.exec(query.order_by(WardSupply.supply_name.asc(), WardSupply.id.asc())).all()  # type: ignore[union-attr]
    return ok([_supply_row(supply) for supply in supplies])


@router.post("/supplies", status_code=201)
def create_supply(
    body: WardSupplyCreate,
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    if not session.get(Ward, body.ward_id):
        raise HTTPException(404, "Ward not found")
    name = body.supply_name.strip()
    duplicate = session.exec(
        select(WardSupply).where(WardSupply.ward_id == body.ward_id, WardSupply.supply_name == name)
    ).first()
    if duplicate:
        raise HTTPException(409, f"{name} is already stocked on this ward")

    supply = WardSupply(
        ward_id=body.ward_id,
        supply_name=name,
        supply_category=body.supply_category,
        current_stock=body.current_stock,
        minimum_stock_level=body.minimum_stock_level,
        unit=body.unit,
    )
    session.add(supply)
    try:
        session.commit()
        session.refresh(supply)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to add supply")
    return ok(_supply_row(supply), "Supply added")


@router.post("/supplies/{supply_id}/update-stock")
def update_supply_stock(
    supply_id: int,
    body: StockChange,
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    supply, previous = adjust_ward_supply(session, supply_id, body.change)
    return ok(
        {
            "supply": _supply_row(supply),
            "previous_stock": previous,
            "new_stock": supply.current_stock,
            "change": body.change,
        }
    )


@router.get("/supply-requests")
def list_supply_requests(
    ward_id: Optional[int] = Query(None),
    status: Optional[RequestStatus] = Query(None),
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    query = select(SupplyRequest)
    if ward_id is not None:
        query = query.where(SupplyRequest.ward_id == ward_id)
    if status is not None:
        query = query.where(SupplyRequest.request_status == status)
    requests = session.exec(
        query.order_by(SupplyRequest.created_at.desc(), SupplyRequest.id.desc())  # type: ignore[union-attr]
    ).all()
    pending = sum(1 for r in requests if r.request_status == RequestStatus.PENDING)
    return ok(
        {
            "requests": [r.model_dump(mode="json") for r in requests],
            "total": len(requests),
            "pending": pending,
        }
    )


@router.post("/supply-requests", status_code=201)
def submit_supply_request(
    body: SupplyRequestCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_ward_staff),
):
    ensure_actor(current_user, body.requested_by, "requested_by")
    supply_request, pharmacy_stock = create_supply_request(
        session,
        ward_id=body.ward_id,
        supply_id=body.supply_id,
        quantity_requested=body.quantity_requested,
        requested_by=body.requested_by,
        urgency=body.urgency,
        request_reason=body.request_reason,
        notes=body.notes,
    )
    return ok(
        {
            "request": supply_request.model_dump(mode="json"),
            "pharmacy_stock": (
                {
                    "id": pharmacy_stock.id,
                    "current_stock": pharmacy_stock.current_stock,
                    "available": pharmacy_stock.current_stock >= body.quantity_requested,
                }
                if pharmacy_stock
                else None
            ),
        },
        "Supply request submitted",
    )


@router.post("/supply-requests/{request_id}/receive")
def receive_supply_request(
    request_id: int,
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_ward_staff),
):
    supply_request = confirm_receipt(session, request_id)
    return ok(supply_request.model_dump(mode="json"), "Delivery confirmed")
