from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)


class StorageEntry(db.Model):
    """
    One key of the clinic's local key-value store.
    key: fixed collection name, e.g. 'clinic_patients'
    value: the whole collection, JSON encoded
    """
    __tablename__ = "storage_entries"

    key = db.Column(db.String(80), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
