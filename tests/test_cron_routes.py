from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from fitcomp import db
from fitcomp.models import CalculationResult, Competition

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


@pytest.mark.parametrize(
    "path", ["start-competitions", "finalize-competitions", "recalculate-competitions"]
)
def test_requires_cron_secret(client, path):
    assert client.post(f"/api/cron/{path}").status_code == 401
    assert (
        client.post(
            f"/api/cron/{path}", headers={"Authorization": "Bearer test-api-token"}
        ).status_code
        == 401
    )


def test_start_competitions(client, make_competition):
    competition = make_competition(
        status="scheduled", start_date=datetime(2026, 3, 1, tzinfo=timezone.utc)
    )

    with patch(
        "fitcomp.services.competition_lifecycle.get_app_today",
        return_value=date(2026, 3, 1),
    ):
        response = client.post("/api/cron/start-competitions", headers=CRON_HEADERS)

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "started": 1, "failed": 0, "errors": []}
    assert db.session.get(Competition, competition.id).status == "started"


def test_finalize_competitions(client, make_competition, add_participant, add_entry):
    competition = make_competition()
    add_participant(competition, "user-1", participant_id="p-1")
    add_entry("user-1", "steps", 300, date(2026, 1, 20))

    with patch(
        "fitcomp.services.competition_lifecycle.get_app_today",
        return_value=date(2026, 2, 2),
    ):
        response = client.post("/api/cron/finalize-competitions", headers=CRON_HEADERS)

    body = response.get_json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["finalized"] == 1
    assert body["competitions"][0]["winner"]["subject_id"] == "p-1"
    assert db.session.get(Competition, competition.id).status == "completed"


def test_recalculate_competitions_reports_failures(
    client, make_competition, add_participant, add_entry
):
    healthy = make_competition()
    add_participant(healthy, "user-1")
    add_entry("user-1", "steps", 50, date(2026, 1, 2))
    make_competition(competition_mode="solo")

    response = client.post("/api/cron/recalculate-competitions", headers=CRON_HEADERS)

    body = response.get_json()
    assert body["success"] is False
    assert body["recalculated"] == 1
    assert body["failed"] == 1
    assert CalculationResult.query.filter_by(competition_id=healthy.id).count() == 1
