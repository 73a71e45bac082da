import uuid
from datetime import datetime, timezone

from fitcomp import db


class CompetitionParticipant(db.Model):
    __tablename__ = "competition_participants"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=False
    )
    user_id = db.Column(db.String(36), nullable=False)
    team_id = db.Column(db.String(36), nullable=True)  # team mode only

    # Membership status
    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    left_at = db.Column(db.DateTime)

    # Constraints
    __table_args__ = (
        db.UniqueConstraint(
            "competition_id", "user_id", name="unique_competition_participant"
        ),
        db.Index("idx_participants_active", "competition_id", "is_active"),
        db.Index("idx_participant_user", "user_id", "is_active"),
    )

    def __repr__(self):
        return f"<CompetitionParticipant user_id={self.user_id} competition_id={self.competition_id}>"

    def deactivate(self):
        """Deactivate participation"""
        self.is_active = False
        self.left_at = datetime.now(timezone.utc)

    def reactivate(self):
        """Reactivate participation"""
        self.is_active = True
        self.left_at = None
