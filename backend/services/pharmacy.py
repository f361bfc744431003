from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import case, update
from sqlmodel import Session, select

from models import (
    PharmacyStock,
    PharmacyTransaction,
    RequestStatus,
    SupplyRequest,
    WardSupply,
)
from services.errors import (
    AlreadyProcessed,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    UpdateFailed,
    WorkflowError,
)
from services.notifications import broadcast_ward_event, non_critical, notify
from state_machine import validate_transition

logger = logging.getLogger("wardbridge")

TRANSFER_TO_WARD = "transfer_to_ward"


@dataclass
class TransferResult:
    request: SupplyRequest
    supply_name: str
    approved_quantity: int
    pharmacy_stock_remaining: int
    ward_id: int | None
    transaction: PharmacyTransaction

    def details(self) -> dict:
        return {
            "supply_name": self.supply_name,
            "approved_quantity": self.approved_quantity,
            "pharmacy_stock_remaining": self.pharmacy_stock_remaining,
            "ward_id": self.ward_id,
        }


def find_pharmacy_match(session: Session, supply_name: str) -> PharmacyStock | None:
    return session.exec(
        select(PharmacyStock)
        .where(PharmacyStock.supply_name == supply_name, PharmacyStock.is_active == True)  # noqa: E712
        .order_by(PharmacyStock.id.asc())  # type: ignore[union-attr]
    ).first()


def stock_status(current: int, minimum: int) -> str:
    if current <= minimum:
        return "out_of_stock" if current == 0 else "low_stock"
    return "adequate"


def low_stock_priority(current: int, shortage: int) -> str:
    if current == 0:
        return "critical"
    if shortage >= 20:
        return "high"
    return "medium"


def recommended_reorder(minimum: int, shortage: int) -> int:
    return max(shortage, math.ceil(minimum * 1.5))


def _mark_request_approved(
    session: Session, request_id: int, pharmacist_id: int, quantity: int, today: date
) -> bool:
    result = session.exec(
        update(SupplyRequest)  # type: ignore[arg-type]
        .where(SupplyRequest.id == request_id, SupplyRequest.request_status == RequestStatus.PENDING)
        .values(
            request_status=RequestStatus.APPROVED,
            approved_by=pharmacist_id,
            delivered_quantity=quantity,
            delivered_date=today,
            updated_at=datetime.utcnow(),
        )
    )
    return result.rowcount == 1


def _take_from_pharmacy(session: Session, stock_id: int, quantity: int) -> bool:
    result = session.exec(
        update(PharmacyStock)  # type: ignore[arg-type]
        .where(PharmacyStock.id == stock_id, PharmacyStock.current_stock >= quantity)
        .values(current_stock=PharmacyStock.current_stock - quantity, updated_at=datetime.utcnow())
    )
    return result.rowcount == 1


def _add_to_ward(session: Session, ward_supply_id: int, quantity: int, today: date) -> bool:
    result = session.exec(
        update(WardSupply)  # type: ignore[arg-type]
        .where(WardSupply.id == ward_supply_id)
        .values(
            current_stock=WardSupply.current_stock + quantity,
            last_restocked_date=today,
            updated_at=datetime.utcnow(),
        )
    )
    return result.rowcount == 1


async def approve_supply_request(
    session: Session,
    request_id: int,
    *,
    approved_quantity: int,
    pharmacist_id: int,
    approval_notes: str | None = None,
) -> TransferResult:
    """Move ``approved_quantity`` from pharmacy stock into the requesting ward.

    The status change, both stock counters and the audit row commit as one
    unit; any failure leaves the request pending and the counters untouched.
    """
    if approved_quantity <= 0:
        raise WorkflowError("approved_quantity must be a positive integer")

    supply_request = session.get(SupplyRequest, request_id)
    if not supply_request:
        raise NotFound("Request not found or already processed")
    if supply_request.request_status != RequestStatus.PENDING:
        raise AlreadyProcessed()

    ward_supply = session.get(WardSupply, supply_request.supply_id)
    pharmacy_stock = (
        session.get(PharmacyStock, supply_request.pharmacy_supply_id)
        if supply_request.pharmacy_supply_id is not None
        else None
    )
    available = pharmacy_stock.current_stock if pharmacy_stock else 0
    if available < approved_quantity:
        raise InsufficientStock(
            f"Insufficient pharmacy stock. Available: {available}, Requested: {approved_quantity}"
        )

    supply_name = supply_request.supply_name or (ward_supply.supply_name if ward_supply else "")
    ward_id = ward_supply.ward_id if ward_supply else supply_request.ward_id
    new_stock = available - approved_quantity
    today = date.today()

    print(f"[TRANSFER] {supply_name}: pharmacy {available} -> {new_stock}, ward #{ward_id} +{approved_quantity}")

    try:
        if not _mark_request_approved(session, request_id, pharmacist_id, approved_quantity, today):
            raise AlreadyProcessed()
        if not _take_from_pharmacy(session, pharmacy_stock.id, approved_quantity):
            raise InsufficientStock(
                f"Insufficient pharmacy stock. Available: {available}, Requested: {approved_quantity}"
            )
        session.refresh(pharmacy_stock)
        new_stock = pharmacy_stock.current_stock
        if not _add_to_ward(session, supply_request.supply_id, approved_quantity, today):
            raise LookupError(f"Ward supply #{supply_request.supply_id} not found")

        transaction = PharmacyTransaction(
            transaction_type=TRANSFER_TO_WARD,
            pharmacy_supply_id=pharmacy_stock.id,
            ward_supply_id=supply_request.supply_id,
            supply_request_id=request_id,
            quantity=approved_quantity,
            previous_stock=new_stock + approved_quantity,
            new_stock=new_stock,
            performed_by=pharmacist_id,
            ward_id=ward_id,
            notes=f"Stock transfer approved: {approval_notes or 'No notes'}",
        )
        session.add(transaction)
        session.commit()
    except (AlreadyProcessed, InsufficientStock):
        session.rollback()
        raise
    except Exception as exc:
        session.rollback()
        logger.exception("Stock transfer for supply request #%s failed", request_id)
        raise UpdateFailed("Failed to process approval") from exc

    session.refresh(supply_request)
    session.refresh(transaction)

    await broadcast_ward_event(
        ward_id,
        {
            "event": "supply_transferred",
            "ward_id": ward_id,
            "supply_request_id": request_id,
            "supply_name": supply_name,
            "quantity": approved_quantity,
        },
    )
    await notify(
        session,
        recipient_id=supply_request.requested_by,
        sender_id=pharmacist_id,
        title="Supply Request Approved",
        message=f"{approved_quantity} {supply_name} approved and transferred to your ward.",
        notification_type="supply_request_approved",
        related_entity_type="supply_request",
        related_entity_id=request_id,
    )

    return TransferResult(
        request=supply_request,
        supply_name=supply_name,
        approved_quantity=approved_quantity,
        pharmacy_stock_remaining=new_stock,
        ward_id=ward_id,
        transaction=transaction,
    )


def confirm_receipt(session: Session, request_id: int) -> SupplyRequest:
    supply_request = session.get(SupplyRequest, request_id)
    if not supply_request:
        raise NotFound("Supply request not found")
    try:
        validate_transition("supply_request", supply_request.request_status, RequestStatus.COMPLETED)
    except ValueError as exc:
        raise InvalidTransition(str(exc)) from exc

    supply_request.request_status = RequestStatus.COMPLETED
    supply_request.updated_at = datetime.utcnow()
    session.add(supply_request)
    try:
        session.commit()
        session.refresh(supply_request)
    except Exception as exc:
        session.rollback()
        raise UpdateFailed("Failed to update supply request") from exc
    return supply_request


def record_stock_change(
    session: Session,
    stock: PharmacyStock,
    *,
    previous_stock: int,
    new_stock: int,
    performed_by: int,
    update_type: str = "adjustment",
    notes: str = "",
) -> PharmacyTransaction | None:
    difference = new_stock - previous_stock
    if difference == 0:
        return None
    if difference > 0:
        transaction_type = "restock" if update_type == "restock" else "stock_increase"
    else:
        transaction_type = "stock_decrease"
    transaction = PharmacyTransaction(
        transaction_type=transaction_type,
        pharmacy_supply_id=stock.id,
        quantity=abs(difference),
        previous_stock=previous_stock,
        new_stock=new_stock,
        performed_by=performed_by,
        notes=notes or f"Stock {update_type}: {stock.supply_name}",
    )
    session.add(transaction)
    return transaction


def create_supply_request(
    session: Session,
    *,
    ward_id: int,
    supply_id: int,
    quantity_requested: int,
    requested_by: int,
    urgency: str = "medium",
    request_reason: str = "",
    notes: str = "",
) -> tuple[SupplyRequest, PharmacyStock | None]:
    """Insert a pending request, linked by name to the pharmacy row if one is active."""
    ward_supply = session.get(WardSupply, supply_id)
    if not ward_supply or ward_supply.ward_id != ward_id:
        raise WorkflowError("Invalid supply_id")

    pharmacy_stock = find_pharmacy_match(session, ward_supply.supply_name)
    if pharmacy_stock is None:
        logger.warning("No active pharmacy stock named '%s'; request left unlinked", ward_supply.supply_name)

    supply_request = SupplyRequest(
        ward_id=ward_id,
        supply_id=supply_id,
        pharmacy_supply_id=pharmacy_stock.id if pharmacy_stock else None,
        supply_name=ward_supply.supply_name,
        quantity_requested=quantity_requested,
        urgency=urgency or "medium",
        request_reason=request_reason,
        notes=notes,
        requested_by=requested_by,
    )
    session.add(supply_request)
    try:
        session.commit()
        session.refresh(supply_request)
    except Exception as exc:
        session.rollback()
        raise UpdateFailed("Failed to create supply request") from exc
    return supply_request, pharmacy_stock


def adjust_ward_supply(session: Session, supply_id: int, change: int) -> tuple[WardSupply, int]:
    """Apply ``change`` in one statement, flooring the result at zero. Returns (supply, previous)."""
    ward_supply = session.get(WardSupply, supply_id)
    if not ward_supply:
        raise NotFound("Supply not found")
    previous = ward_supply.current_stock

    adjusted = WardSupply.current_stock + change
    try:
        session.exec(
            update(WardSupply)  # type: ignore[arg-type]
            .where(WardSupply.id == supply_id)
            .values(
                current_stock=case((adjusted < 0, 0), else_=adjusted),
                updated_at=datetime.utcnow(),
            )
        )
        session.commit()
    except Exception as exc:
        session.rollback()
        raise UpdateFailed("Failed to update stock") from exc
    session.refresh(ward_supply)
    return ward_supply, previous


def _take_from_ward(session: Session, supply_id: int, ward_id: int, quantity: int) -> bool:
    result = session.exec(
        update(WardSupply)  # type: ignore[arg-type]
        .where(
            WardSupply.id == supply_id,
            WardSupply.ward_id == ward_id,
            WardSupply.current_stock >= quantity,
        )
        .values(current_stock=WardSupply.current_stock - quantity, updated_at=datetime.utcnow())
    )
    return result.rowcount == 1


def consume_ward_supplies(
    session: Session,
    *,
    ward_id: int,
    admission_id: int,
    used_by: int,
    items: list[tuple[int, int]],
) -> list[dict]:
    """Take ``(supply_id, quantity)`` pairs out of a ward's own stock for patient care.

    Each item stands alone: one that is unknown, belongs to another ward or
    lacks stock is skipped and reported, the rest still go through. Every
    successful decrement leaves a completed supply request as its usage record.
    """
    outcomes = []
    for supply_id, quantity in items:
        outcome = {"supply_id": supply_id, "quantity": quantity, "status": "used"}
        outcomes.append(outcome)

        try:
            taken = _take_from_ward(session, supply_id, ward_id, quantity)
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("Failed to consume ward supply #%s for admission #%s", supply_id, admission_id)
            outcome["status"] = "failed"
            continue
        if not taken:
            logger.warning(
                "Ward supply #%s skipped for admission #%s: unknown, other ward or fewer than %s in stock",
                supply_id,
                admission_id,
                quantity,
            )
            outcome["status"] = "insufficient_stock"
            continue

        ward_supply = session.get(WardSupply, supply_id)
        outcome["supply_name"] = ward_supply.supply_name
        outcome["remaining_stock"] = ward_supply.current_stock
        with non_critical(session, f"supply_usage:{supply_id}"):
            session.add(
                SupplyRequest(
                    ward_id=ward_id,
                    supply_id=supply_id,
                    supply_name=ward_supply.supply_name,
                    quantity_requested=quantity,
                    delivered_quantity=quantity,
                    delivered_date=date.today(),
                    request_status=RequestStatus.COMPLETED,
                    request_reason=f"Used for patient treatment - Admission: {admission_id}",
                    notes="Used by ward doctor for patient care",
                    requested_by=used_by,
                )
            )
    return outcomes
