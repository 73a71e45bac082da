import uuid
from datetime import datetime, timezone

from fitcomp import db
from fitcomp.utils.time_utils import to_date_only

COMPETITION_MODES = ("individual", "team", "team_v2", "collaborative")
COMPETITION_STATUSES = ("draft", "scheduled", "started", "completed", "cancelled")


class Competition(db.Model):
    __tablename__ = "competitions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="draft")

    # Scoring configuration
    competition_mode = db.Column(db.String(20), nullable=False, default="individual")
    activity_type = db.Column(db.String(50), nullable=False, default="weight")
    scoring_method = db.Column(db.String(30), nullable=False, default="total_value")
    team_scoring_method = db.Column(db.String(20))  # team mode only
    ranking_direction = db.Column(db.String(4), nullable=False, default="desc")
    allow_manual_activities = db.Column(db.Boolean, default=True)
    goal_value = db.Column(db.Float)  # collaborative target

    # Nominal dates, and the authoritative window once started
    start_date = db.Column(db.DateTime(timezone=True))
    end_date = db.Column(db.DateTime(timezone=True))
    actual_start_date = db.Column(db.DateTime(timezone=True))
    actual_end_date = db.Column(db.DateTime(timezone=True))
    duration_days = db.Column(db.Integer)

    collaborative_progress = db.Column(db.Float, default=0.0)
    completed_at = db.Column(db.DateTime(timezone=True))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    participants = db.relationship(
        "CompetitionParticipant",
        backref="competition",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    teams = db.relationship(
        "CompetitionTeam",
        backref="competition",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("idx_competitions_status", "status"),
        db.Index("idx_competitions_activity_status", "activity_type", "status"),
    )

    def __repr__(self):
        return f"<Competition {self.name} ({self.competition_mode})>"

    @property
    def effective_start(self):
        return self.actual_start_date or self.start_date

    @property
    def effective_end(self):
        return self.actual_end_date or self.end_date

    def get_window(self):
        """Return (start_day, end_day) as dates; end_day is None when open"""
        return to_date_only(self.effective_start), to_date_only(self.effective_end)

    def contains_day(self, day):
        """Check whether a calendar day falls inside the effective window"""
        start_day, end_day = self.get_window()
        if start_day is None:
            return False
        if day < start_day:
            return False
        return end_day is None or day <= end_day

    def to_dict(self):
        """Convert competition to dictionary for API responses"""
        start_day, end_day = self.get_window()
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "competition_mode": self.competition_mode,
            "activity_type": self.activity_type,
            "scoring_method": self.scoring_method,
            "team_scoring_method": self.team_scoring_method,
            "ranking_direction": self.ranking_direction,
            "allow_manual_activities": self.allow_manual_activities,
            "goal_value": self.goal_value,
            "window_start": start_day.isoformat() if start_day else None,
            "window_end": end_day.isoformat() if end_day else None,
            "collaborative_progress": self.collaborative_progress,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
