import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from . import storage as persistence
from .schemas import (
    ActivityEntry,
    ClinicStats,
    Diagnosis,
    Medicine,
    Patient,
    PatientData,
    PaymentMethod,
    QueueEntry,
    Revenue,
    RevenueByMethod,
    Role,
    Visit,
    VisitStatus,
)

logger = logging.getLogger(__name__)

CONSULTATION_FEE = 50000
DOCTOR_NAME = "Dr. Sentosa"

MEDICINES = [
    Medicine(id="1", name="Paracetamol 500mg", price=5000, stock=100),
    Medicine(id="2", name="Amoxicillin 500mg", price=12000, stock=50),
    Medicine(id="3", name="Vitamin C", price=3000, stock=200),
    Medicine(id="4", name="Ibuprofen 400mg", price=8000, stock=80),
    Medicine(id="5", name="OBH Sirup", price=25000, stock=30),
]

# Forward moves allowed for each status. Every status is listed.
NEXT_STATUSES = {
    VisitStatus.WAITING: {VisitStatus.IN_CONSULTATION, VisitStatus.PAYMENT_PENDING},
    VisitStatus.IN_CONSULTATION: {VisitStatus.PHARMACY_QUEUE, VisitStatus.PAYMENT_PENDING},
    VisitStatus.PHARMACY_QUEUE: {VisitStatus.PAYMENT_PENDING},
    VisitStatus.PAYMENT_PENDING: {VisitStatus.COMPLETED},
    VisitStatus.COMPLETED: set(),
}


def can_transition(current: VisitStatus, new: VisitStatus) -> bool:
    return new in NEXT_STATUSES[current]


class ClinicError(Exception):
    pass


class PatientNotFound(ClinicError, LookupError):
    def __init__(self, patient_id):
        super().__init__(f"Patient not found: {patient_id}")
        self.patient_id = patient_id


class VisitNotFound(ClinicError, LookupError):
    def __init__(self, visit_id):
        super().__init__(f"Visit not found: {visit_id}")
        self.visit_id = visit_id


class MedicineNotFound(ClinicError, LookupError):
    def __init__(self, medicine_id):
        super().__init__(f"Medicine not found: {medicine_id}")
        self.medicine_id = medicine_id


def _utcnow():
    return datetime.now(timezone.utc)


def _new_id():
    return uuid.uuid4().hex


def calculate_total(diagnosis: Diagnosis) -> int:
    """Consultation fee plus every prescription line at its recorded unit price."""
    return CONSULTATION_FEE + sum(p.subtotal for p in diagnosis.prescriptions)


class ClinicStore:
    """
    Session role, patients, visits and the medicine catalog.

    Every change to patients or visits is written to `storage` before the
    mutating call returns. Build one with `ClinicStore.load(storage)` to pick
    up previously saved collections.
    """

    def __init__(
        self,
        storage,
        patients: Optional[List[Patient]] = None,
        visits: Optional[List[Visit]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.current_role: Optional[Role] = None
        self._patients = list(patients or [])
        self._visits = list(visits or [])
        self._medicines = list(MEDICINES)
        self._clock = clock or _utcnow

    @classmethod
    def load(cls, storage, clock=None):
        return cls(
            storage,
            patients=persistence.load_patients(storage),
            visits=persistence.load_visits(storage),
            clock=clock,
        )

    # ---------- session ----------

    def login(self, role: Role):
        self.current_role = Role(role)

    def logout(self):
        self.current_role = None

    # ---------- read access ----------

    @property
    def patients(self) -> List[Patient]:
        return list(self._patients)

    @property
    def visits(self) -> List[Visit]:
        return list(self._visits)

    @property
    def medicines(self) -> List[Medicine]:
        return list(self._medicines)

    def get_patient(self, patient_id: str) -> Patient:
        for p in self._patients:
            if p.id == patient_id:
                return p
        raise PatientNotFound(patient_id)

    def get_visit(self, visit_id: str) -> Visit:
        visit = self._find_visit(visit_id)
        if visit is None:
            raise VisitNotFound(visit_id)
        return visit

    def find_medicine(self, medicine_id: str) -> Medicine:
        for m in self._medicines:
            if m.id == medicine_id:
                return m
        raise MedicineNotFound(medicine_id)

    def search_patients(self, term: str = "") -> List[Patient]:
        term = (term or "").strip().lower()
        if not term:
            return self.patients
        return [
            p for p in self._patients
            if term in p.name.lower() or term in p.mr_number.lower()
        ]

    # ---------- mutations ----------

    def register_patient(self, data: PatientData, is_new: bool, existing_id: Optional[str] = None) -> str:
        if not is_new and existing_id:
            return existing_id

        patient = Patient(
            **data.model_dump(),
            id=_new_id(),
            mr_number=f"RM-{len(self._patients) + 1:03d}",
            registered_at=self._clock(),
        )
        self._patients.append(patient)
        persistence.save_patients(self.storage, self._patients)
        logger.info("Registered patient %s (%s)", patient.mr_number, patient.id)
        return patient.id

    def create_visit(self, patient_id: str, complaint: str) -> str:
        visit = Visit(
            id=_new_id(),
            patient_id=patient_id,
            doctor_name=DOCTOR_NAME,
            status=VisitStatus.WAITING,
            complaint=complaint,
            total_cost=0,
            created_at=self._clock(),
        )
        self._visits.append(visit)
        self._save_visits()
        logger.info("Visit %s queued for patient %s", visit.id, patient_id)
        return visit.id

    def update_visit_status(self, visit_id: str, status: VisitStatus):
        status = VisitStatus(status)
        current = self._find_visit(visit_id)
        if current is not None and current.status != status and not can_transition(current.status, status):
            logger.warning("Visit %s moved from %s to %s", visit_id, current.status.value, status.value)
        self._update_visit(visit_id, status=status)

    def start_consultation(self, visit_id: str):
        self.update_visit_status(visit_id, VisitStatus.IN_CONSULTATION)

    def submit_diagnosis(self, visit_id: str, diagnosis: Diagnosis, via_pharmacy: bool = False):
        total_cost = calculate_total(diagnosis)
        if via_pharmacy and diagnosis.prescriptions:
            status = VisitStatus.PHARMACY_QUEUE
        else:
            status = VisitStatus.PAYMENT_PENDING

        if self._update_visit(visit_id, diagnosis=diagnosis, total_cost=total_cost, status=status):
            logger.info("Diagnosis for visit %s: total %d, now %s", visit_id, total_cost, status.value)

    def process_prescription(self, visit_id: str):
        self.update_visit_status(visit_id, VisitStatus.PAYMENT_PENDING)

    def process_payment(self, visit_id: str, method: PaymentMethod):
        method = PaymentMethod(method)
        if self._update_visit(visit_id, payment_method=method, status=VisitStatus.COMPLETED):
            logger.info("Visit %s paid by %s", visit_id, method.value)

    # ---------- queries ----------

    def get_queue(self, status: VisitStatus) -> List[QueueEntry]:
        status = VisitStatus(status)
        return [
            QueueEntry(**v.model_dump(), patient=self.get_patient(v.patient_id))
            for v in self._visits
            if v.status == status
        ]

    def recent_visits(self, limit: int = 5) -> List[ActivityEntry]:
        """Latest `limit` visits, newest first. Unknown patients are flagged, not raised."""
        if limit <= 0:
            return []
        entries = []
        for v in reversed(self._visits[-limit:]):
            try:
                patient = self.get_patient(v.patient_id)
            except PatientNotFound:
                entries.append(ActivityEntry(**v.model_dump(), patient=None, patient_found=False))
            else:
                entries.append(ActivityEntry(**v.model_dump(), patient=patient))
        return entries

    def get_revenue(self) -> Revenue:
        today = self._clock().astimezone().date()
        revenue = Revenue(by_method=RevenueByMethod())

        for v in self._visits:
            if v.status != VisitStatus.COMPLETED:
                continue
            revenue.total += v.total_cost
            if v.created_at.astimezone().date() == today:
                revenue.today += v.total_cost
            if v.payment_method == PaymentMethod.CASH:
                revenue.by_method.cash += v.total_cost
            elif v.payment_method == PaymentMethod.TRANSFER:
                revenue.by_method.transfer += v.total_cost

        return revenue

    def get_stats(self) -> ClinicStats:
        by_status = {s.value: 0 for s in VisitStatus}
        for v in self._visits:
            by_status[v.status.value] += 1
        return ClinicStats(
            patients=len(self._patients),
            visits=len(self._visits),
            by_status=by_status,
        )

    # ---------- internals ----------

    def _find_visit(self, visit_id):
        for v in self._visits:
            if v.id == visit_id:
                return v
        return None

    def _update_visit(self, visit_id, **changes) -> bool:
        for i, v in enumerate(self._visits):
            if v.id == visit_id:
                self._visits[i] = v.model_copy(update=changes)
                self._save_visits()
                return True
        return False

    def _save_visits(self):
        persistence.save_visits(self.storage, self._visits)
