from datetime import date, datetime, timezone
from unittest.mock import patch

from fitcomp.services.recalculation_trigger import (
    find_competitions_for_activity,
    trigger_recalculations,
)
from fitcomp.services.scheduler_service import scheduler_service


def activity_time(day):
    return datetime(day.year, day.month, day.day, 18, tzinfo=timezone.utc)


class TestFindCompetitions:
    def test_matches_type_status_and_window(self, app, make_competition, add_participant):
        matching = make_competition(activity_type="steps")
        other_type = make_competition(activity_type="weight")
        not_started = make_competition(status="scheduled")
        finished_window = make_competition(
            start_date=datetime(2025, 11, 1, tzinfo=timezone.utc),
            end_date=datetime(2025, 11, 30, tzinfo=timezone.utc),
        )
        for competition in (matching, other_type, not_started, finished_window):
            add_participant(competition, "user-1")

        found = find_competitions_for_activity("user-1", "steps", activity_time(date(2026, 1, 15)))

        assert [c.id for c in found] == [matching.id]

    def test_inactive_participant_is_ignored(self, app, make_competition, add_participant):
        competition = make_competition()
        add_participant(competition, "user-1", is_active=False)

        assert find_competitions_for_activity("user-1", "steps", date(2026, 1, 15)) == []

    def test_open_ended_window(self, app, make_competition, add_participant):
        competition = make_competition(end_date=None)
        add_participant(competition, "user-1")

        found = find_competitions_for_activity("user-1", "steps", "2026-06-01T08:00:00Z")

        assert [c.id for c in found] == [competition.id]

    def test_day_before_start_is_outside(self, app, make_competition, add_participant):
        competition = make_competition()
        add_participant(competition, "user-1")

        assert find_competitions_for_activity("user-1", "steps", date(2025, 12, 31)) == []

    def test_team_v2_member_matches(self, app, make_competition, make_team):
        competition = make_competition(competition_mode="team_v2")
        make_team(competition, "Walkers", ["user-7"])

        found = find_competitions_for_activity("user-7", "steps", date(2026, 1, 2))

        assert [c.id for c in found] == [competition.id]

    def test_unknown_user(self, app, make_competition):
        make_competition()
        assert find_competitions_for_activity("nobody", "steps", date(2026, 1, 2)) == []


class TestTriggerRecalculations:
    def test_queues_each_matching_competition(self, app, make_competition, add_participant):
        first = make_competition()
        second = make_competition(competition_mode="collaborative")
        add_participant(first, "user-1")
        add_participant(second, "user-1")

        with patch.object(scheduler_service, "queue_recalculation") as queue:
            queued = trigger_recalculations("user-1", "steps", date(2026, 1, 3))

        assert sorted(queued) == sorted([first.id, second.id])
        assert sorted(call.args[0] for call in queue.call_args_list) == sorted(queued)

    def test_queue_errors_are_swallowed(self, app, make_competition, add_participant):
        competition = make_competition()
        add_participant(competition, "user-1")

        with patch.object(
            scheduler_service, "queue_recalculation", side_effect=RuntimeError("boom")
        ):
            queued = trigger_recalculations("user-1", "steps", date(2026, 1, 3))

        assert queued == []

    def test_nothing_to_queue(self, app):
        with patch.object(scheduler_service, "queue_recalculation") as queue:
            assert trigger_recalculations("user-1", "steps", date(2026, 1, 3)) == []

        queue.assert_not_called()
