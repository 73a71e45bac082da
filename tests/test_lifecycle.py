from datetime import date, datetime, timezone

from fitcomp import db
from fitcomp.models import CalculationResult, Competition
from fitcomp.services.competition_lifecycle import (
    finalize_expired_competitions,
    get_winner,
    recalculate_started_competitions,
    start_scheduled_competitions,
)
from fitcomp.utils.time_utils import to_date_only

TODAY = date(2026, 3, 1)


def reload(competition):
    return db.session.get(Competition, competition.id)


class TestStartCompetitions:
    def test_starts_due_competition_and_seeds_baselines(
        self, app, make_competition, add_participant, add_entry
    ):
        competition = make_competition(
            status="scheduled",
            activity_type="weight",
            scoring_method="change_percentage",
            start_date=datetime(2026, 2, 28, tzinfo=timezone.utc),
            end_date=None,
            duration_days=30,
        )
        participant = add_participant(competition, "user-1")
        newcomer = add_participant(competition, "user-2")
        add_entry("user-1", "weight", 185, date(2026, 2, 1))
        add_entry("user-1", "weight", 180, date(2026, 2, 20))

        result = start_scheduled_competitions(today=TODAY)

        assert result == {"started": 1, "failed": 0, "errors": []}
        competition = reload(competition)
        assert competition.status == "started"
        assert to_date_only(competition.actual_start_date) == TODAY
        assert to_date_only(competition.actual_end_date) == date(2026, 3, 31)

        seeded = CalculationResult.query.filter_by(subject_id=participant.id).one()
        assert seeded.calculation_data["kind"] == "baseline"
        assert seeded.calculation_data["starting_value"] == 180
        assert seeded.calculated_score == 0
        assert seeded.rank is None

        empty = CalculationResult.query.filter_by(subject_id=newcomer.id).one()
        assert empty.calculation_data["starting_value"] is None

    def test_existing_starting_value_is_kept(
        self, app, make_competition, add_participant, add_entry
    ):
        competition = make_competition(
            status="scheduled",
            activity_type="weight",
            start_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
        participant = add_participant(competition, "user-1")
        db.session.add(
            CalculationResult(
                competition_id=competition.id,
                subject_type="participant",
                subject_id=participant.id,
                calculation_data={"starting_value": 200},
            )
        )
        db.session.commit()
        add_entry("user-1", "weight", 190, date(2026, 2, 25))

        start_scheduled_competitions(today=TODAY)

        result = CalculationResult.query.filter_by(subject_id=participant.id).one()
        assert result.starting_value == 200

    def test_end_date_used_without_duration(self, app, make_competition):
        competition = make_competition(
            status="scheduled",
            start_date=None,
            end_date=datetime(2026, 4, 15, tzinfo=timezone.utc),
        )

        start_scheduled_competitions(today=TODAY)

        competition = reload(competition)
        assert competition.status == "started"
        assert to_date_only(competition.actual_end_date) == date(2026, 4, 15)

    def test_future_and_non_weight_competitions(self, app, make_competition, add_participant):
        future = make_competition(
            status="scheduled", start_date=datetime(2026, 3, 5, tzinfo=timezone.utc)
        )
        steps = make_competition(
            status="scheduled",
            activity_type="steps",
            start_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
        add_participant(steps, "user-1")

        result = start_scheduled_competitions(today=TODAY)

        assert result["started"] == 1
        assert reload(future).status == "scheduled"
        assert reload(steps).status == "started"
        assert CalculationResult.query.count() == 0

    def test_collaborative_weight_is_not_seeded(self, app, make_competition, add_participant, add_entry):
        competition = make_competition(
            status="scheduled",
            competition_mode="collaborative",
            activity_type="weight",
            start_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
        add_participant(competition, "user-1")
        add_entry("user-1", "weight", 190, date(2026, 2, 25))

        start_scheduled_competitions(today=TODAY)

        assert CalculationResult.query.count() == 0


class TestFinalizeCompetitions:
    def test_finalizes_expired_competition(
        self, app, make_competition, add_participant, add_entry
    ):
        competition = make_competition(
            start_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
            end_date=datetime(2026, 2, 28, tzinfo=timezone.utc),
        )
        add_participant(competition, "user-1", participant_id="p-1")
        add_participant(competition, "user-2", participant_id="p-2")
        add_entry("user-1", "steps", 4000, date(2026, 2, 10))
        add_entry("user-2", "steps", 9000, date(2026, 2, 11))

        result = finalize_expired_competitions(today=TODAY)

        assert result["finalized"] == 1
        assert result["failed"] == 0
        assert result["competitions"][0]["winner"] == {
            "subject_type": "participant",
            "subject_id": "p-2",
            "score": 9000,
        }
        competition = reload(competition)
        assert competition.status == "completed"
        assert competition.completed_at is not None

    def test_skips_running_and_open_ended(self, app, make_competition):
        running = make_competition(end_date=datetime(2026, 3, 1, tzinfo=timezone.utc))
        open_ended = make_competition(end_date=None)

        result = finalize_expired_competitions(today=TODAY)

        assert result["finalized"] == 0
        assert reload(running).status == "started"
        assert reload(open_ended).status == "started"

    def test_unscorable_competition_is_counted_as_failed(
        self, app, make_competition, add_participant
    ):
        broken = make_competition(
            competition_mode="solo", end_date=datetime(2026, 2, 1, tzinfo=timezone.utc)
        )
        add_participant(broken, "user-1")

        result = finalize_expired_competitions(today=TODAY)

        assert result["failed"] == 1
        assert "Unknown competition mode" in result["competitions"][0]["error"]
        assert reload(broken).status == "started"

    def test_team_v2_winner(self, app, make_competition, make_team, add_entry):
        competition = make_competition(
            competition_mode="team_v2",
            start_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
            end_date=datetime(2026, 2, 20, tzinfo=timezone.utc),
        )
        make_team(competition, "Walkers", ["user-1"], team_id="team-w")
        make_team(competition, "Runners", ["user-2"], team_id="team-r")
        add_entry("user-1", "steps", 100, date(2026, 2, 5))
        add_entry("user-2", "steps", 900, date(2026, 2, 5))

        finalize_expired_competitions(today=TODAY)

        assert get_winner(reload(competition)) == {
            "subject_type": "team",
            "subject_id": "team-r",
            "score": 900,
        }


class TestRecalculateStarted:
    def test_recalculates_only_started(self, app, make_competition, add_participant, add_entry):
        started = make_competition()
        draft = make_competition(status="draft")
        add_participant(started, "user-1")
        add_participant(draft, "user-1")
        add_entry("user-1", "steps", 1200, date(2026, 1, 10))

        result = recalculate_started_competitions()

        assert result["recalculated"] == 1
        assert result["failed"] == 0
        assert [r.competition_id for r in CalculationResult.query.all()] == [started.id]

    def test_failures_do_not_stop_the_batch(self, app, make_competition, add_participant):
        make_competition(competition_mode="solo")
        no_start = make_competition(start_date=None)
        add_participant(no_start, "user-1")
        make_competition()

        result = recalculate_started_competitions()

        assert result["recalculated"] == 1
        assert result["failed"] == 2
