import json
from datetime import datetime, timezone

from clinic.models import StorageEntry
from clinic.schemas import Diagnosis, PrescriptionLine, Visit, VisitStatus
from clinic.storage import (
    PATIENTS_KEY,
    SEED_PATIENTS,
    VISITS_KEY,
    MemoryStorage,
    SQLStorage,
    load_patients,
    load_visits,
    save_patients,
    save_visits,
)


def sample_visit():
    return Visit(
        id="v1",
        patient_id="p1",
        doctor_name="Dr. Sentosa",
        status=VisitStatus.PAYMENT_PENDING,
        complaint="demam",
        diagnosis=Diagnosis(
            notes="Demam biasa",
            prescriptions=[PrescriptionLine(
                medicine_id="1", medicine_name="Paracetamol 500mg", dosage="3x1", quantity=2, price=5000,
            )],
        ),
        total_cost=60000,
        created_at=datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc),
    )


def test_missing_keys_fall_back_to_seed():
    storage = MemoryStorage()
    assert load_patients(storage) == SEED_PATIENTS
    assert load_visits(storage) == []


def test_unparseable_json_falls_back_to_seed(caplog):
    storage = MemoryStorage({PATIENTS_KEY: "{not json", VISITS_KEY: "[{]"})

    assert load_patients(storage) == SEED_PATIENTS
    assert load_visits(storage) == []
    assert "Discarding unreadable clinic_patients" in caplog.text


def test_wrong_shape_falls_back_to_seed():
    storage = MemoryStorage({PATIENTS_KEY: json.dumps([{"name": "no id"}])})
    assert load_patients(storage) == SEED_PATIENTS


def test_seed_fallback_returns_a_fresh_list():
    patients = load_patients(MemoryStorage())
    patients.append(patients[0])
    assert len(SEED_PATIENTS) == 2


def test_round_trip():
    storage = MemoryStorage()
    save_patients(storage, SEED_PATIENTS)
    save_visits(storage, [sample_visit()])

    assert load_patients(storage) == SEED_PATIENTS
    assert load_visits(storage) == [sample_visit()]


def test_stored_layout_is_a_json_array():
    storage = MemoryStorage()
    save_visits(storage, [sample_visit()])

    stored = json.loads(storage.get(VISITS_KEY))
    assert isinstance(stored, list)
    assert stored[0]["status"] == "payment-pending"
    assert stored[0]["payment_method"] is None
    assert stored[0]["diagnosis"]["prescriptions"][0]["price"] == 5000


def test_sql_storage(app):
    with app.app_context():
        storage = SQLStorage()
        assert storage.get("missing") is None

        storage.set(VISITS_KEY, "[]")
        storage.set(VISITS_KEY, "[1]")

        assert storage.get(VISITS_KEY) == "[1]"
        assert StorageEntry.query.filter_by(key=VISITS_KEY).count() == 1
