from datetime import datetime, timezone

import pytest

from fitcomp import create_app, db
from fitcomp.models import (
    ActivityEntry,
    Competition,
    CompetitionParticipant,
    CompetitionTeam,
    CompetitionTeamMember,
)


def utc(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app("testing")

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_competition(app):
    def _make(**overrides):
        fields = {
            "name": "January Challenge",
            "status": "started",
            "competition_mode": "individual",
            "activity_type": "steps",
            "scoring_method": "total_value",
            "ranking_direction": "desc",
            "allow_manual_activities": True,
            "start_date": utc(2026, 1, 1),
            "end_date": utc(2026, 1, 31),
        }
        fields.update(overrides)
        competition = Competition(**fields)
        db.session.add(competition)
        db.session.commit()
        return competition

    return _make


@pytest.fixture
def add_participant(app):
    def _add(competition, user_id, participant_id=None, team_id=None, is_active=True):
        participant = CompetitionParticipant(
            competition_id=competition.id,
            user_id=user_id,
            team_id=team_id,
            is_active=is_active,
        )
        if participant_id:
            participant.id = participant_id
        db.session.add(participant)
        db.session.commit()
        return participant

    return _add


@pytest.fixture
def add_entry(app):
    def _add(user_id, activity_type, value, day, source="manual", deleted=False):
        if isinstance(day, datetime):
            timestamp = day
        else:
            timestamp = datetime(day.year, day.month, day.day, 12, tzinfo=timezone.utc)

        entry = ActivityEntry(
            user_id=user_id,
            activity_type=activity_type,
            value=value,
            unit="units",
            source=source,
            date=timestamp,
            date_only=timestamp.date(),
        )
        if deleted:
            entry.soft_delete("test")
        db.session.add(entry)
        db.session.commit()
        return entry

    return _add


@pytest.fixture
def make_team(app):
    def _make(competition, name, user_ids, team_id=None):
        team = CompetitionTeam(competition_id=competition.id, name=name)
        if team_id:
            team.id = team_id
        db.session.add(team)
        db.session.flush()
        for user_id in user_ids:
            db.session.add(CompetitionTeamMember(team_id=team.id, user_id=user_id))
        db.session.commit()
        return team

    return _make
