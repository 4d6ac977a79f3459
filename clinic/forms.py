from typing import List

from pydantic import BaseModel, Field

from .schemas import PaymentMethod, Role


class LoginForm(BaseModel):
    role: Role


class NewPatientForm(BaseModel):
    name: str = Field(min_length=2)
    age: int = Field(ge=0)
    phone: str = Field(min_length=10)
    address: str = Field(min_length=5)
    complaint: str = Field(min_length=5)


class ExistingPatientForm(BaseModel):
    patient_id: str = Field(min_length=1)
    complaint: str = Field(min_length=5)


class PrescriptionForm(BaseModel):
    medicine_id: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class DiagnosisForm(BaseModel):
    notes: str = Field(min_length=10)
    prescriptions: List[PrescriptionForm] = []
    send_to_pharmacy: bool = False


class PaymentForm(BaseModel):
    method: PaymentMethod
