from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class UserRole(str, Enum):
    DOCTOR = "doctor"
    NURSE = "nurse"
    WARD_ADMIN = "ward_admin"
    PHARMACIST = "pharmacist"
    RECEPTIONIST = "receptionist"
    ADMIN = "admin"


class BedStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class AdmissionStatus(str, Enum):
    ACTIVE = "active"
    APPROVED = "approved"
    DISCHARGED = "discharged"


class AdmissionType(str, Enum):
    EMERGENCY = "emergency"
    ELECTIVE = "elective"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"


class VisitStatus(str, Enum):
    WAITING = "waiting"
    IN_CONSULTATION = "in_consultation"
    ADMISSION_REQUESTED = "admission_requested"
    COMPLETED = "completed"


class User(SQLModel, table=True):
    __tablename__ = "user_profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str
    last_name: str = ""
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: UserRole
    department: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Patient(SQLModel, table=True):
    __tablename__ = "patients"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_number: str = Field(unique=True, index=True)
    first_name: str
    last_name: str = ""
    age: int
    gender: str
    phone: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Visit(SQLModel, table=True):
    __tablename__ = "visits"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    doctor_id: Optional[int] = Field(default=None, foreign_key="user_profiles.id")
    visit_status: VisitStatus = VisitStatus.WAITING
    chief_complaint: str = ""
    symptoms: str = ""
    examination_notes: str = ""
    diagnosis: str = ""
    treatment_plan: str = ""
    follow_up_instructions: str = ""
    requires_admission: bool = False
    consultation_end_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)


class Ward(SQLModel, table=True):
    __tablename__ = "wards"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    code: str = Field(unique=True, index=True)
    ward_type: str = Field(default="general", index=True)
    total_beds: int = 0
    # Denormalized; the bed rows are authoritative.
    available_beds: int = 0
    is_active: bool = True
    head_nurse_id: Optional[int] = Field(default=None, foreign_key="user_profiles.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Bed(SQLModel, table=True):
    __tablename__ = "beds"

    id: Optional[int] = Field(default=None, primary_key=True)
    ward_id: int = Field(foreign_key="wards.id", index=True)
    bed_number: str
    bed_type: str = "standard"
    status: BedStatus = Field(default=BedStatus.AVAILABLE, index=True)
    current_patient_id: Optional[int] = Field(default=None, foreign_key="patients.id")


class Admission(SQLModel, table=True):
    __tablename__ = "admissions"

    id: Optional[int] = Field(default=None, primary_key=True)
    admission_number: str = Field(index=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    visit_id: int = Field(foreign_key="visits.id")
    ward_id: int = Field(foreign_key="wards.id")
    bed_id: Optional[int] = Field(default=None, foreign_key="beds.id")
    attending_doctor_id: int = Field(foreign_key="user_profiles.id")
    assigned_doctor_id: Optional[int] = Field(default=None, foreign_key="user_profiles.id")
    requested_by: int = Field(foreign_key="user_profiles.id")
    approved_by: Optional[int] = Field(default=None, foreign_key="user_profiles.id")
    admission_type: AdmissionType = AdmissionType.ELECTIVE
    urgency: str = "routine"
    admission_status: AdmissionStatus = Field(default=AdmissionStatus.ACTIVE, index=True)
    admission_reason: str
    diagnosis: str = ""
    treatment_plan: str = ""
    receiving_notes: str = ""
    general_examination: str = ""
    expert_opinion_requested: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)


class PharmacyStock(SQLModel, table=True):
    __tablename__ = "pharmacy_stock"

    id: Optional[int] = Field(default=None, primary_key=True)
    supply_name: str = Field(index=True)
    supply_category: str = "General"
    current_stock: int = 0
    minimum_stock_level: int = 10
    maximum_stock_level: int = 1000
    unit: str = "units"
    cost_per_unit: float = 0.0
    supplier: Optional[str] = None
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True
    last_restocked_date: Optional[date] = None
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)


class WardSupply(SQLModel, table=True):
    __tablename__ = "ward_supplies"

    id: Optional[int] = Field(default=None, primary_key=True)
    ward_id: int = Field(foreign_key="wards.id", index=True)
    supply_name: str
    supply_category: str = "General"
    current_stock: int = 0
    minimum_stock_level: int = 10
    unit: str = "units"
    last_restocked_date: Optional[date] = None
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)


class SupplyRequest(SQLModel, table=True):
    __tablename__ = "supply_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    ward_id: int = Field(foreign_key="wards.id", index=True)
    supply_id: int = Field(foreign_key="ward_supplies.id")
    pharmacy_supply_id: Optional[int] = Field(default=None, foreign_key="pharmacy_stock.id")
    supply_name: str
    quantity_requested: int
    urgency: str = "medium"
    request_reason: str = ""
    notes: str = ""
    request_status: RequestStatus = Field(default=RequestStatus.PENDING, index=True)
    requested_by: int = Field(foreign_key="user_profiles.id")
    approved_by: Optional[int] = Field(default=None, foreign_key="user_profiles.id")
    delivered_quantity: Optional[int] = None
    delivered_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)


class PharmacyTransaction(SQLModel, table=True):
    __tablename__ = "pharmacy_transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_type: str = Field(index=True)
    pharmacy_supply_id: int = Field(foreign_key="pharmacy_stock.id", index=True)
    ward_supply_id: Optional[int] = Field(default=None, foreign_key="ward_supplies.id")
    supply_request_id: Optional[int] = Field(default=None, foreign_key="supply_requests.id")
    quantity: int
    previous_stock: int
    new_stock: int
    performed_by: int = Field(foreign_key="user_profiles.id")
    ward_id: Optional[int] = Field(default=None, foreign_key="wards.id")
    notes: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    recipient_id: int = Field(foreign_key="user_profiles.id", index=True)
    sender_id: Optional[int] = Field(default=None, foreign_key="user_profiles.id")
    title: str
    message: str
    notification_type: str = Field(index=True)
    priority: str = "normal"
    patient_id: Optional[int] = Field(default=None, foreign_key="patients.id")
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
