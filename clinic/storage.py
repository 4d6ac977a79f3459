"""
Persistence for the clinic store.

The store keeps two collections, patients and visits, each serialized as a
single JSON array under a fixed key. Storage backends only need to get and
set whole values by key.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from .models import db, StorageEntry
from .schemas import Patient, Visit

logger = logging.getLogger(__name__)

PATIENTS_KEY = "clinic_patients"
VISITS_KEY = "clinic_visits"

SEED_PATIENTS = [
    Patient(
        id="p1",
        name="Budi Santoso",
        mr_number="RM-001",
        age=45,
        phone="08123456789",
        address="Jl. Merdeka No. 1",
        registered_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    ),
    Patient(
        id="p2",
        name="Siti Aminah",
        mr_number="RM-002",
        age=32,
        phone="08198765432",
        address="Jl. Mawar No. 12",
        registered_at=datetime(2024, 2, 15, tzinfo=timezone.utc),
    ),
]

_patients_adapter = TypeAdapter(List[Patient])
_visits_adapter = TypeAdapter(List[Visit])


class MemoryStorage:
    """Dict-backed storage, used for tests and scratch sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLStorage:
    """
    Storage on the `storage_entries` table. Must be used inside an
    application context.
    """

    def get(self, key: str) -> Optional[str]:
        entry = db.session.get(StorageEntry, key)
        return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        entry = db.session.get(StorageEntry, key)
        if entry is None:
            entry = StorageEntry(key=key, value=value)
            db.session.add(entry)
        else:
            entry.value = value
        db.session.commit()


def _load(storage, key, adapter, fallback):
    raw = storage.get(key)
    if raw is None:
        logger.info("No stored value for %s, using seed data", key)
        return list(fallback)
    try:
        return adapter.validate_json(raw)
    except ValidationError as e:
        logger.warning("Discarding unreadable %s (%d errors), using seed data", key, e.error_count())
        return list(fallback)


def load_patients(storage) -> List[Patient]:
    return _load(storage, PATIENTS_KEY, _patients_adapter, SEED_PATIENTS)


def load_visits(storage) -> List[Visit]:
    return _load(storage, VISITS_KEY, _visits_adapter, [])


def save_patients(storage, patients: List[Patient]) -> None:
    storage.set(PATIENTS_KEY, _patients_adapter.dump_json(patients).decode("utf-8"))


def save_visits(storage, visits: List[Visit]) -> None:
    storage.set(VISITS_KEY, _visits_adapter.dump_json(visits).decode("utf-8"))
