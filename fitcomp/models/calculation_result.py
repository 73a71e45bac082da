import uuid
from datetime import datetime, timezone

from fitcomp import db

SUBJECT_TYPES = ("participant", "team")


class CalculationResult(db.Model):
    __tablename__ = "calculation_results"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=False
    )

    # Subject is a participant id or a team id
    subject_type = db.Column(db.String(20), nullable=False)
    subject_id = db.Column(db.String(36), nullable=False)

    calculated_score = db.Column(db.Float, default=0.0)
    calculation_method = db.Column(db.String(60))
    calculation_data = db.Column(db.JSON, default=dict)
    activity_entries_count = db.Column(db.Integer, default=0)
    rank = db.Column(db.Integer)  # null until assigned

    calculated_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "competition_id",
            "subject_type",
            "subject_id",
            name="unique_competition_subject_result",
        ),
        db.Index("idx_results_competition_rank", "competition_id", "subject_type", "rank"),
    )

    def __repr__(self):
        return f"<CalculationResult {self.subject_type}={self.subject_id} score={self.calculated_score} rank={self.rank}>"

    @property
    def starting_value(self):
        return (self.calculation_data or {}).get("starting_value")

    def to_dict(self):
        """Convert result to dictionary for API responses"""
        return {
            "id": self.id,
            "competition_id": self.competition_id,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "calculated_score": self.calculated_score,
            "calculation_method": self.calculation_method,
            "calculation_data": self.calculation_data or {},
            "activity_entries_count": self.activity_entries_count,
            "rank": self.rank,
            "calculated_at": self.calculated_at.isoformat() if self.calculated_at else None,
        }
