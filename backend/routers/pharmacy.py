from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import PharmacyStock, PharmacyTransaction, RequestStatus, SupplyRequest, User, UserRole, Ward
from responses import ok
from services.auth import ensure_actor, require_roles
from services.pharmacy import (
    approve_supply_request,
    low_stock_priority,
    record_stock_change,
    recommended_reorder,
    stock_status,
)

router = APIRouter(prefix="/pharmacist", tags=["pharmacy"])

requires_pharmacist = require_roles(UserRole.PHARMACIST, UserRole.ADMIN)


class ApproveRequestBody(BaseModel):
    request_id: int
    approved_quantity: int
    pharmacist_id: int
    approval_notes: Optional[str] = Field(default=None, max_length=1000)


class StockCreate(BaseModel):
    supply_name: str = Field(min_length=1, max_length=120)
    supply_category: str = Field(default="General", max_length=60)
    current_stock: int = Field(ge=0)
    minimum_stock_level: int = Field(default=10, ge=0)
    maximum_stock_level: int = Field(default=1000, ge=0)
    unit: str = Field(default="units", max_length=30)
    cost_per_unit: float = Field(default=0.0, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=120)
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = Field(default=None, max_length=60)
    notes: Optional[str] = Field(default=None, max_length=1000)


class StockUpdate(BaseModel):
    current_stock: int = Field(ge=0)
    minimum_stock_level: Optional[int] = Field(default=None, ge=0)
    maximum_stock_level: Optional[int] = Field(default=None, ge=0)
    cost_per_unit: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=120)
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = Field(default=None, max_length=60)
    notes: Optional[str] = Field(default=None, max_length=1000)
    update_type: str = Field(default="adjustment", pattern="^(adjustment|restock|correction)$")


def _stock_row(item: PharmacyStock, today: date | None = None) -> dict:
    today = today or date.today()
    data = item.model_dump(mode="json")
    days_until_expiry = (item.expiry_date - today).days if item.expiry_date else None
    data.update(
        stock_status=stock_status(item.current_stock, item.minimum_stock_level),
        shortage_quantity=max(0, item.minimum_stock_level - item.current_stock),
        stock_percentage=round(item.current_stock / (item.maximum_stock_level or 1000) * 100),
        days_until_expiry=days_until_expiry,
        is_expired=days_until_expiry is not None and days_until_expiry < 0,
        total_value=item.current_stock * item.cost_per_unit,
    )
    return data


@router.post("/approve-request")
async def approve_request(
    body: ApproveRequestBody,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_pharmacist),
):
    ensure_actor(current_user, body.pharmacist_id, "pharmacist_id")
    result = await approve_supply_request(
        session,
        body.request_id,
        approved_quantity=body.approved_quantity,
        pharmacist_id=body.pharmacist_id,
        approval_notes=body.approval_notes,
    )
    return ok(
        {"transfer_details": result.details()},
        "Supply request approved and stock transferred successfully",
    )


@router.get("/pending-requests")
def pending_requests(
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_pharmacist),
):
    requests = session.exec(
        select(SupplyRequest)
        .where(SupplyRequest.request_status == RequestStatus.PENDING)
        .order_by(SupplyRequest.created_at.desc(), SupplyRequest.id.desc())  # type: ignore[union-attr]
    ).all()

    rows = []
    for request in requests:
        ward = session.get(Ward, request.ward_id)
        requester = session.get(User, request.requested_by)
        stock = session.get(PharmacyStock, request.pharmacy_supply_id) if request.pharmacy_supply_id else None
        available = stock.current_stock if stock else 0
        rows.append(
            {
                "id": request.id,
                "ward_id": request.ward_id,
                "ward_name": ward.name if ward else "Unknown Ward",
                "supply_name": request.supply_name,
                "quantity_requested": request.quantity_requested,
                "urgency": request.urgency,
                "request_reason": request.request_reason or "No reason provided",
                "created_at": request.created_at,
                "requested_by_name": requester.full_name if requester else "Ward Staff",
                "pharmacy_supply_id": request.pharmacy_supply_id,
                "pharmacy_stock": available,
                "unit": stock.unit if stock else "units",
                "can_fulfill": available >= request.quantity_requested,
            }
        )

    stats = {
        "total": len(rows),
        "can_fulfill": sum(1 for row in rows if row["can_fulfill"]),
        "insufficient_stock": sum(1 for row in rows if not row["can_fulfill"]),
        "urgent": sum(1 for row in rows if row["urgency"] == "urgent"),
    }
    return ok({"requests": rows, "stats": stats})


@router.get("/stock")
def list_stock(
    search: str = Query("", max_length=120),
    category: str = Query("", max_length=60),
    low_stock: bool = Query(False),
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_pharmacist),
):
    query = select(PharmacyStock).where(PharmacyStock.is_active == True)  # noqa: E712
    if search.strip():
        query = query.where(PharmacyStock.supply_name.ilike(f"%{search.strip()}%"))  # type: ignore[union-attr]
    if category.strip():
        query = query.where(PharmacyStock.supply_category == category.strip())
    if low_stock:
        query = query.where(PharmacyStock.current_stock <= PharmacyStock.minimum_stock_level)
    items = session.exec(query.order_by(PharmacyStock.supply_name.asc())).all()  # type: ignore[union-attr]

    rows = [_stock_row(item) for item in items]
    stats = {
        "total_items": len(rows),
        "low_stock_items": sum(1 for row in rows if row["stock_status"] == "low_stock"),
        "out_of_stock_items": sum(1 for row in rows if row["stock_status"] == "out_of_stock"),
        "expired_items": sum(1 for row in rows if row["is_expired"]),
        "total_value": sum(row["total_value"] for row in rows),
        "categories": sorted({row["supply_category"] for row in rows}),
    }
    return ok({"stock": rows, "stats": stats})


@router.post("/stock", status_code=201)
def create_stock(
    body: StockCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_pharmacist),
):
    name = body.supply_name.strip()
    existing = session.exec(
        select(PharmacyStock).where(PharmacyStock.supply_name == name, PharmacyStock.is_active == True)  # noqa: E712
    ).first()
    if existing:
        raise HTTPException(409, f"Stock item '{name}' already exists. Use stock update instead.")

    item = PharmacyStock(
        **body.model_dump(exclude={"supply_name"}),
        supply_name=name,
        last_restocked_date=date.today(),
    )
    session.add(item)
    try:
        session.flush()
        if item.current_stock > 0:
            session.add(
                PharmacyTransaction(
                    transaction_type="stock_addition",
                    pharmacy_supply_id=item.id,
                    quantity=item.current_stock,
                    previous_stock=0,
                    new_stock=item.current_stock,
                    performed_by=current_user.id,
                    notes=f"Initial stock added: {name}",
                )
            )
        session.commit()
        session.refresh(item)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to create stock item")

    return ok(_stock_row(item), f"Stock item '{name}' created successfully")


@router.put("/stock/{stock_id}")
def update_stock(
    stock_id: int,
    body: StockUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(requires_pharmacist),
):
    item = session.get(PharmacyStock, stock_id)
    if not item or not item.is_active:
        raise HTTPException(404, "Stock item not found")

    previous = item.current_stock
    for field, value in body.model_dump(exclude={"update_type"}, exclude_none=True).items():
        setattr(item, field, value)
    if body.current_stock > previous:
        item.last_restocked_date = date.today()
    item.updated_at = datetime.utcnow()
    session.add(item)
    try:
        record_stock_change(
            session,
            item,
            previous_stock=previous,
            new_stock=body.current_stock,
            performed_by=current_user.id,
            update_type=body.update_type,
            notes=body.notes or "",
        )
        session.commit()
        session.refresh(item)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to update stock item")

    return ok(
        {
            "item": _stock_row(item),
            "changes": {
                "stock_difference": body.current_stock - previous,
                "update_type": body.update_type,
                "previous_stock": previous,
                "new_stock": body.current_stock,
            },
        },
        f"Stock updated for '{item.supply_name}'",
    )


@router.delete("/stock/{stock_id}")
def deactivate_stock(
    stock_id: int,
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_pharmacist),
):
    item = session.get(PharmacyStock, stock_id)
    if not item or not item.is_active:
        raise HTTPException(404, "Stock item not found")
    item.is_active = False
    item.updated_at = datetime.utcnow()
    session.add(item)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to deactivate stock item")
    return ok({"id": stock_id}, f"Stock item '{item.supply_name}' deactivated")


@router.get("/low-stock")
def low_stock(
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_pharmacist),
):
    items = session.exec(
        select(PharmacyStock).where(
            PharmacyStock.is_active == True,  # noqa: E712
            PharmacyStock.current_stock <= PharmacyStock.minimum_stock_level,
        )
    ).all()

    rows = []
    for item in items:
        shortage = max(0, item.minimum_stock_level - item.current_stock)
        rows.append(
            {
                "id": item.id,
                "supply_name": item.supply_name,
                "supply_category": item.supply_category,
                "current_stock": item.current_stock,
                "minimum_stock_level": item.minimum_stock_level,
                "shortage_quantity": shortage,
                "unit": item.unit,
                "priority": low_stock_priority(item.current_stock, shortage),
                "is_out_of_stock": item.current_stock == 0,
                "recommended_reorder": recommended_reorder(item.minimum_stock_level, shortage),
            }
        )
    rows.sort(key=lambda row: row["shortage_quantity"], reverse=True)

    stats = {
        "total_low_stock": len(rows),
        "out_of_stock": sum(1 for row in rows if row["is_out_of_stock"]),
        "critical_alerts": sum(1 for row in rows if row["priority"] == "critical"),
        "high_priority": sum(1 for row in rows if row["priority"] == "high"),
        "total_shortage": sum(row["shortage_quantity"] for row in rows),
    }
    return ok({"low_stock_items": rows, "stats": stats})


@router.get("/transactions")
def transactions(
    type: str = Query("", max_length=40),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
    _current_user: User = Depends(requires_pharmacist),
):
    query = select(PharmacyTransaction)
    if type:
        query = query.where(PharmacyTransaction.transaction_type == type)
    if date_from is not None:
        query = query.where(PharmacyTransaction.created_at >= date_from)
    if date_to is not None:
        query = query.where(PharmacyTransaction.created_at <= date_to)
    rows = session.exec(
        query.order_by(PharmacyTransaction.created_at.desc(), PharmacyTransaction.id.desc())  # type: ignore[union-attr]
        .offset(offset)
        .limit(limit)
    ).all()

    items = []
    for row in rows:
        stock = session.get(PharmacyStock, row.pharmacy_supply_id)
        performer = session.get(User, row.performed_by)
        items.append(
            {
                **row.model_dump(mode="json"),
                "supply_name": stock.supply_name if stock else "Unknown",
                "unit": stock.unit if stock else "units",
                "stock_change": row.new_stock - row.previous_stock,
                "performed_by_name": performer.full_name if performer else "System",
            }
        )
    return ok({"transactions": items, "count": len(items), "offset": offset, "limit": limit})
