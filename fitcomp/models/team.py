import uuid
from datetime import datetime, timezone

from fitcomp import db


class CompetitionTeam(db.Model):
    """Team in a team_v2 competition; members live in competition_team_members"""

    __tablename__ = "competition_teams"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=False
    )
    name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    # Written by the scoring engine
    total_score = db.Column(db.Float, default=0.0)
    member_count = db.Column(db.Integer, default=0)
    rank = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    members = db.relationship(
        "CompetitionTeamMember",
        backref="team",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="CompetitionTeamMember.joined_at",
    )

    __table_args__ = (db.Index("idx_teams_competition_active", "competition_id", "is_active"),)

    def __repr__(self):
        return f"<CompetitionTeam {self.name} score={self.total_score} rank={self.rank}>"

    @property
    def active_members(self):
        return [m for m in self.members if m.is_active]

    def to_dict(self, include_members=False):
        data = {
            "id": self.id,
            "competition_id": self.competition_id,
            "name": self.name,
            "total_score": self.total_score,
            "member_count": self.member_count,
            "rank": self.rank,
        }
        if include_members:
            data["members"] = [m.to_dict() for m in self.active_members]
        return data


class CompetitionTeamMember(db.Model):
    __tablename__ = "competition_team_members"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = db.Column(
        db.String(36), db.ForeignKey("competition_teams.id"), nullable=False
    )
    user_id = db.Column(db.String(36), nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    # Written by the scoring engine
    individual_score = db.Column(db.Float, default=0.0)
    starting_value = db.Column(db.Float)
    current_value = db.Column(db.Float)
    contribution_value = db.Column(db.Float, default=0.0)

    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("team_id", "user_id", name="unique_team_member"),
        db.Index("idx_team_members_user", "user_id", "is_active"),
    )

    def __repr__(self):
        return f"<CompetitionTeamMember user_id={self.user_id} team_id={self.team_id}>"

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "individual_score": self.individual_score,
            "starting_value": self.starting_value,
            "current_value": self.current_value,
            "contribution_value": self.contribution_value,
        }
