from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"
    CASHIER = "cashier"
    PHARMACIST = "pharmacist"


class VisitStatus(str, Enum):
    WAITING = "waiting"
    IN_CONSULTATION = "in-consultation"
    PHARMACY_QUEUE = "pharmacy-queue"
    PAYMENT_PENDING = "payment-pending"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"


class PatientData(BaseModel):
    """Fields supplied at registration; id, MR number and timestamp are assigned by the store."""
    name: str
    age: int
    phone: str
    address: str


class Patient(PatientData):
    id: str
    mr_number: str
    registered_at: datetime


class Medicine(BaseModel):
    id: str
    name: str
    price: int = Field(ge=0)
    stock: int = Field(ge=0)


class PrescriptionLine(BaseModel):
    medicine_id: str
    medicine_name: str
    dosage: str  # "3x1", "2x1", ...
    quantity: int = Field(ge=1)
    price: int = Field(ge=0)  # unit price at time of prescribing

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


class Diagnosis(BaseModel):
    notes: str
    prescriptions: List[PrescriptionLine] = []


class Visit(BaseModel):
    id: str
    patient_id: str
    doctor_name: str
    status: VisitStatus = VisitStatus.WAITING
    complaint: str
    diagnosis: Optional[Diagnosis] = None
    total_cost: int = 0
    payment_method: Optional[PaymentMethod] = None
    created_at: datetime


class QueueEntry(Visit):
    patient: Patient


class ActivityEntry(Visit):
    """A visit for the activity feed. `patient` is None when the reference is dangling."""
    patient: Optional[Patient] = None
    patient_found: bool = True


class RevenueByMethod(BaseModel):
    cash: int = 0
    transfer: int = 0


class Revenue(BaseModel):
    total: int = 0
    today: int = 0
    by_method: RevenueByMethod = RevenueByMethod()


class ClinicStats(BaseModel):
    patients: int
    visits: int
    by_status: Dict[str, int]
