from datetime import date

import pytest

from fitcomp.utils.calculation_data import (
    BaselineSeedData,
    CollaborativeContributionData,
    ParticipantScoreData,
    TeamParticipantScoreData,
)
from fitcomp.utils.scoring import (
    ActivityPoint,
    aggregate_team_score,
    assign_ranks,
    calculate_metrics,
    calculate_score,
    include_baseline_activity,
    value_change_percentage,
    weight_lost,
)


def points(*pairs):
    return [ActivityPoint(value=value, day=day) for value, day in pairs]


class TestMetrics:
    def test_metrics_over_ordered_activities(self):
        metrics = calculate_metrics(
            points((100, date(2026, 1, 1)), (98, date(2026, 1, 2)), (102, date(2026, 1, 3)))
        )

        assert metrics.first_value == 100
        assert metrics.last_value == 102
        assert metrics.best_value == 102
        assert metrics.total_value == 300
        assert metrics.average_value == 100
        assert metrics.count == 3

    def test_empty_activities(self):
        metrics = calculate_metrics([])
        assert metrics.total_value == 0
        assert metrics.count == 0


class TestBaseline:
    def test_prepended_when_earlier(self):
        baseline = ActivityPoint(value=210, day=date(2025, 12, 20))
        activities = points((205, date(2026, 1, 2)))

        merged = include_baseline_activity(activities, baseline)

        assert [a.value for a in merged] == [210, 205]

    def test_not_prepended_when_same_entry(self):
        baseline = ActivityPoint(value=205, day=date(2026, 1, 2))
        activities = points((205, date(2026, 1, 2)), (200, date(2026, 1, 9)))

        assert include_baseline_activity(activities, baseline) == activities

    def test_not_prepended_when_later(self):
        baseline = ActivityPoint(value=205, day=date(2026, 1, 5))
        activities = points((200, date(2026, 1, 2)))

        assert include_baseline_activity(activities, baseline) == activities

    def test_baseline_alone_without_window_entries(self):
        baseline = ActivityPoint(value=190, day=date(2025, 11, 1))
        assert include_baseline_activity([], baseline) == [baseline]

    def test_no_baseline(self):
        activities = points((1, date(2026, 1, 1)))
        assert include_baseline_activity(activities, None) == activities


class TestScore:
    @pytest.fixture
    def metrics(self):
        return calculate_metrics(
            points((100, date(2026, 1, 1)), (90, date(2026, 1, 2)), (95, date(2026, 1, 3)))
        )

    def test_change_percentage_uses_starting_value(self):
        metrics = calculate_metrics(points((100, date(2026, 1, 1)), (95, date(2026, 1, 8))))
        assert calculate_score(metrics, "change_percentage", 100) == pytest.approx(-5.0)

    def test_change_percentage_with_anchored_start(self, metrics):
        score = calculate_score(metrics, "change_percentage", starting_value=110)
        assert score == pytest.approx((95 - 110) / 110 * 100)

    def test_change_percentage_zero_start(self, metrics):
        assert calculate_score(metrics, "change_percentage", starting_value=0) == 0

    @pytest.mark.parametrize(
        "method, expected",
        [
            ("total_value", 285),
            ("cumulative", 285),
            ("best_value", 100),
            ("average_value", 95),
            ("mystery", 0),
        ],
    )
    def test_methods(self, metrics, method, expected):
        assert calculate_score(metrics, method) == pytest.approx(expected)

    def test_value_change_percentage(self):
        assert value_change_percentage(200, 150) == pytest.approx(-25.0)
        assert value_change_percentage(None, 150) == 0


class TestTeamAggregation:
    @pytest.mark.parametrize(
        "method, expected",
        [("sum", 60), ("average", 20), ("best", 30), (None, 60), ("median", 60)],
    )
    def test_aggregate(self, method, expected):
        assert aggregate_team_score([10, 20, 30], method) == pytest.approx(expected)

    def test_aggregate_empty(self):
        assert aggregate_team_score([], "best") == 0

    def test_weight_lost(self):
        score, start, current = weight_lost(
            points((200, date(2026, 1, 1)), (195, date(2026, 1, 5)), (190, date(2026, 1, 9)))
        )
        assert (score, start, current) == (10, 200, 190)

    def test_weight_lost_single_point_scores_zero(self):
        assert weight_lost(points((180, date(2026, 1, 1)))) == (0.0, 180, 180)

    def test_weight_lost_no_points(self):
        assert weight_lost([]) == (0.0, None, None)


class TestRanking:
    def rank(self, items, direction):
        ranked = assign_ranks(
            items, direction, score_key=lambda i: i["score"], id_key=lambda i: i["id"]
        )
        return [(item["id"], rank) for item, rank in ranked]

    def test_desc_highest_first(self):
        items = [{"id": "a", "score": 1}, {"id": "b", "score": 3}, {"id": "c", "score": 2}]
        assert self.rank(items, "desc") == [("b", 1), ("c", 2), ("a", 3)]

    def test_asc_lowest_first(self):
        items = [{"id": "a", "score": 1}, {"id": "b", "score": 3}, {"id": "c", "score": 2}]
        assert self.rank(items, "asc") == [("a", 1), ("c", 2), ("b", 3)]

    def test_ties_broken_by_subject_id(self):
        items = [{"id": "z", "score": 5}, {"id": "m", "score": 5}, {"id": "a", "score": 1}]

        assert self.rank(items, "desc") == [("m", 1), ("z", 2), ("a", 3)]
        assert self.rank(items, "asc") == [("a", 1), ("m", 2), ("z", 3)]

    def test_ranks_are_sequential(self):
        items = [{"id": str(i), "score": 7} for i in range(4)]
        assert [rank for _, rank in self.rank(items, "desc")] == [1, 2, 3, 4]


class TestCalculationData:
    def test_participant_data_from_metrics(self):
        metrics = calculate_metrics(points((100, date(2026, 1, 1)), (95, date(2026, 1, 8))))
        data = ParticipantScoreData.from_metrics(metrics, 100).to_dict()

        assert data["kind"] == "participant"
        assert data["value_change"] == -5
        assert data["value_change_percentage"] == pytest.approx(-5.0)

    def test_empty_carries_starting_value(self):
        data = TeamParticipantScoreData.empty(180, team_id="t1").to_dict()

        assert data["kind"] == "team_participant"
        assert data["starting_value"] == 180
        assert data["current_value"] == 180
        assert data["team_id"] == "t1"

    def test_empty_without_starting_value_stays_unanchored(self):
        data = ParticipantScoreData.empty().to_dict()
        assert data["starting_value"] is None
        assert data["current_value"] is None
        assert data["value_change"] == 0

    def test_baseline_seed_defaults_current_to_start(self):
        data = BaselineSeedData(starting_value=201.5, seeded_at="2026-01-01T00:00:00").to_dict()

        assert data["kind"] == "baseline"
        assert data["current_value"] == 201.5
        assert data["baseline"] is True

    def test_collaborative_kind(self):
        data = CollaborativeContributionData(total_contribution=10, entry_count=2).to_dict()
        assert data == {
            "kind": "collaborative",
            "total_contribution": 10,
            "entry_count": 2,
            "competition_goal": None,
        }
