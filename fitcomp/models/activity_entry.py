import uuid
from datetime import datetime, timezone

from fitcomp import db

DEFAULT_UNITS = {
    "weight": "lbs",
    "steps": "steps",
    "distance": "miles",
    "calories": "kcal",
}


def get_default_unit(activity_type):
    """Unit stored when the client does not send one"""
    return DEFAULT_UNITS.get(activity_type, "units")


class ActivityEntry(db.Model):
    __tablename__ = "activity_entries"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), nullable=False)
    activity_type = db.Column(db.String(50), nullable=False)

    value = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text)
    entry_metadata = db.Column("metadata", db.JSON, default=dict)
    source = db.Column(db.String(50), nullable=False, default="manual")

    # date_only is the UTC calendar day of `date`; window comparisons use it
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    date_only = db.Column(db.Date, nullable=False)

    # Soft delete
    deleted_at = db.Column(db.DateTime(timezone=True))
    deletion_reason = db.Column(db.String(200))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "activity_type", "date_only", name="unique_user_activity_day"
        ),
        db.Index("idx_activity_user_type_date", "user_id", "activity_type", "date"),
    )

    def __repr__(self):
        return f"<ActivityEntry {self.activity_type}={self.value} user_id={self.user_id} day={self.date_only}>"

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @property
    def is_manual(self):
        return self.source == "manual"

    def soft_delete(self, reason=None):
        """Mark entry deleted; it stops counting toward every competition"""
        self.deleted_at = datetime.now(timezone.utc)
        self.deletion_reason = reason

    def restore(self):
        self.deleted_at = None
        self.deletion_reason = None

    def to_dict(self):
        """Convert entry to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "activity_type": self.activity_type,
            "value": self.value,
            "unit": self.unit,
            "notes": self.notes,
            "source": self.source,
            "date": self.date.isoformat() if self.date else None,
            "date_only": self.date_only.isoformat() if self.date_only else None,
            "metadata": self.entry_metadata or {},
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
