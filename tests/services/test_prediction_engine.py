"""
Tests for the prediction engine and the historical duration statistics it uses.
"""

from datetime import datetime, timedelta

import pytest

from agenda_intel.models import Prediction
from agenda_intel.services.historical_stats import (
    avg_real_by_assignee_and_type,
    avg_real_by_type,
    real_duration_minutes,
)
from agenda_intel.services.prediction_engine import (
    delay_risk_by_day,
    generate_predictions,
    sort_predictions,
    task_delay_probabilities,
    to_impact,
)


@pytest.fixture
def call_history(make_task, now):
    """Two completed CALLs that took 45 min against a 30 min estimate (ratio 1.5)."""
    started = now - timedelta(days=5)
    return [
        make_task(
            status="DONE",
            type="CALL",
            estimated_minutes=30,
            created_at=started - timedelta(days=1),
            started_at=started + timedelta(days=i),
            completed_at=started + timedelta(days=i, minutes=45),
        )
        for i in range(2)
    ]


def of_type(predictions: list[Prediction], kind: str) -> list[Prediction]:
    return [p for p in predictions if p.type == kind]


class TestHistoricalStats:
    def test_real_duration_prefers_started_at(self, make_task, now) -> None:
        task = make_task(created_at=now - timedelta(hours=5), started_at=now - timedelta(hours=1), completed_at=now)
        assert real_duration_minutes(task) == 60

    def test_real_duration_falls_back_to_created_at(self, make_task, now) -> None:
        task = make_task(created_at=now - timedelta(hours=2), completed_at=now)
        assert real_duration_minutes(task) == 120

    def test_negative_duration_is_dropped(self, make_task, now) -> None:
        task = make_task(type="CALL", created_at=now, completed_at=now - timedelta(minutes=10))
        assert real_duration_minutes(task) is None
        assert avg_real_by_type([task]) == {}

    def test_avg_by_assignee_and_type(self, make_task, now) -> None:
        done = [
            make_task(type="CALL", assigned_to="alice", started_at=now, completed_at=now + timedelta(minutes=m))
            for m in (40, 60)
        ] + [make_task(type="CALL", started_at=now, completed_at=now + timedelta(minutes=20))]
        assert avg_real_by_assignee_and_type(done) == {("alice", "CALL"): 50}


class TestTypeOverrun:
    def test_call_overrun_probability(self, call_history, make_task, now) -> None:
        pending = [make_task(type="CALL", estimated_minutes=30, due_date=now + timedelta(days=7))]
        preds = of_type(generate_predictions(call_history, pending, now=now), "TYPE_OVERRUN")
        assert len(preds) == 1
        assert preds[0].probability == pytest.approx(0.75)
        assert preds[0].impact_level == "high"
        assert [a.id for a in preds[0].affected_tasks] == [pending[0].id]

    def test_one_prediction_per_type_covering_all_pending(self, call_history, make_task, now) -> None:
        pending = [make_task(type="CALL", due_date=now + timedelta(days=d)) for d in (5, 6, 7)]
        pending.append(make_task(type="ADMIN", due_date=now + timedelta(days=5)))
        preds = of_type(generate_predictions(call_history, pending, now=now), "TYPE_OVERRUN")
        assert len(preds) == 1
        assert len(preds[0].affected_tasks) == 3

    def test_no_history_no_signal(self, make_task, now) -> None:
        pending = [make_task(type="CALL", due_date=now + timedelta(days=1))]
        assert generate_predictions([], pending, now=now) == []

    def test_below_threshold_not_reported(self, make_task, now) -> None:
        done = [make_task(type="CALL", estimated_minutes=30, started_at=now, completed_at=now + timedelta(minutes=33))]
        pending = [make_task(type="CALL", due_date=now + timedelta(days=7))]
        assert of_type(generate_predictions(done, pending, now=now), "TYPE_OVERRUN") == []

    def test_zero_estimate_history_is_certain_overrun(self, make_task, now) -> None:
        done = [make_task(type="CALL", estimated_minutes=0, started_at=now, completed_at=now + timedelta(minutes=20))]
        pending = [make_task(type="CALL", due_date=now + timedelta(days=7))]
        preds = of_type(generate_predictions(done, pending, now=now), "TYPE_OVERRUN")
        assert len(preds) == 1
        assert preds[0].probability == 1.0
        assert preds[0].impact_level == "high"
        assert "zero-minute estimate" in preds[0].description

    def test_negative_estimate_history_ignored(self, make_task, now) -> None:
        done = [make_task(type="CALL", estimated_minutes=-5, started_at=now, completed_at=now + timedelta(minutes=20))]
        pending = [make_task(type="CALL", due_date=now + timedelta(days=7))]
        assert of_type(generate_predictions(done, pending, now=now), "TYPE_OVERRUN") == []


class TestDaySaturation:
    def test_three_tasks_over_capacity(self, make_task, now) -> None:
        due = datetime(2026, 3, 13, 9)
        pending = [make_task(due_date=due + timedelta(hours=i), estimated_minutes=m) for i, m in enumerate((200, 200, 150))]
        preds = generate_predictions([], pending, now=now)
        assert len(preds) == 1
        assert preds[0].type == "DAY_SATURATION"
        assert preds[0].probability == pytest.approx(0.573, abs=1e-3)
        assert preds[0].impact_level == "medium"
        assert len(preds[0].affected_tasks) == 3
        assert "2026-03-13" in preds[0].description

    def test_at_capacity_is_fine(self, make_task, now) -> None:
        due = datetime(2026, 3, 13, 9)
        pending = [make_task(due_date=due, estimated_minutes=240), make_task(due_date=due, estimated_minutes=240)]
        assert generate_predictions([], pending, now=now) == []

    def test_missing_estimate_uses_type_average_then_fallback(self, call_history, make_task, now) -> None:
        due = datetime(2026, 3, 20, 9)
        # 11 CALLs at the 45 min type average plus one ADMIN at the 30 min fallback: 525 min
        pending = [make_task(type="CALL", due_date=due) for _ in range(11)]
        pending.append(make_task(type="ADMIN", due_date=due))
        preds = of_type(generate_predictions(call_history, pending, now=now), "DAY_SATURATION")
        assert len(preds) == 1
        assert preds[0].probability == pytest.approx(0.5 + (525 / 480 - 1) * 0.5)
        assert "525 min" in preds[0].description

    def test_groups_by_due_day(self, make_task, now) -> None:
        pending = [
            make_task(due_date=datetime(2026, 3, 13, 9), estimated_minutes=300),
            make_task(due_date=datetime(2026, 3, 14, 9), estimated_minutes=300),
        ]
        assert generate_predictions([], pending, now=now) == []


class TestClientRisk:
    def test_repeat_cancellations(self, make_task, now) -> None:
        cancelled = [make_task(status="CANCELLED", client_id="globex") for _ in range(2)]
        pending = [
            make_task(client_id="globex", due_date=now + timedelta(days=3)),
            make_task(client_id="acme", due_date=now + timedelta(days=3)),
        ]
        preds = generate_predictions([], pending, cancelled, now=now)
        assert len(preds) == 1
        assert preds[0].type == "CLIENT_RISK"
        assert preds[0].probability == 0.6
        assert preds[0].impact_level == "medium"
        assert [a.id for a in preds[0].affected_tasks] == [pending[0].id]

    def test_single_cancellation_ignored(self, make_task, now) -> None:
        cancelled = [make_task(status="CANCELLED", client_id="globex")]
        pending = [make_task(client_id="globex", due_date=now + timedelta(days=3))]
        assert generate_predictions([], pending, cancelled, now=now) == []


class TestDeadlineBreach:
    def test_due_soon_with_overrunning_type(self, call_history, make_task, now) -> None:
        task = make_task(type="CALL", estimated_minutes=30, due_date=now + timedelta(days=1))
        preds = of_type(generate_predictions(call_history, [task], now=now), "DEADLINE_BREACH")
        assert len(preds) == 1
        assert preds[0].probability == pytest.approx(0.65)
        assert preds[0].impact_level == "medium"
        assert preds[0].affected_tasks[0].id == task.id

    @pytest.mark.parametrize("offset", [timedelta(days=3), timedelta(hours=-1)])
    def test_outside_two_day_horizon(self, call_history, make_task, now, offset) -> None:
        task = make_task(type="CALL", estimated_minutes=30, due_date=now + offset)
        assert of_type(generate_predictions(call_history, [task], now=now), "DEADLINE_BREACH") == []

    def test_zero_estimate_due_soon_is_certain_breach(self, call_history, make_task, now) -> None:
        task = make_task(type="CALL", estimated_minutes=0, due_date=now + timedelta(hours=6))
        preds = of_type(generate_predictions(call_history, [task], now=now), "DEADLINE_BREACH")
        assert len(preds) == 1
        assert preds[0].probability == 1.0
        assert preds[0].impact_level == "high"

    def test_zero_estimate_not_in_per_task_delay(self, call_history, make_task, now) -> None:
        task = make_task(type="CALL", estimated_minutes=0, due_date=now + timedelta(hours=6))
        assert task_delay_probabilities([task], avg_real_by_type(call_history)) == {}


class TestDelayProbability:
    def test_aggregate_is_high_with_mean_probability(self, call_history, make_task, now) -> None:
        pending = [
            make_task(type="CALL", estimated_minutes=30, due_date=now + timedelta(days=5)),
            make_task(type="CALL", estimated_minutes=20, due_date=now + timedelta(days=6)),
        ]
        probs = task_delay_probabilities(pending, avg_real_by_type(call_history))
        assert probs[pending[0].id] == pytest.approx(0.5)
        assert probs[pending[1].id] == pytest.approx(0.3 + 1.25 * 0.4)
        preds = of_type(generate_predictions(call_history, pending, now=now), "DELAY_PROBABILITY")
        assert len(preds) == 1
        assert preds[0].impact_level == "high"
        assert preds[0].probability == pytest.approx((0.5 + 0.8) / 2)

    def test_low_probability_tasks_excluded(self, make_task, now) -> None:
        # ratio 1.25 -> 0.4 per-task probability, below the reporting threshold
        done = [make_task(type="CALL", estimated_minutes=40, started_at=now, completed_at=now + timedelta(minutes=50))]
        pending = [make_task(type="CALL", estimated_minutes=40, due_date=now + timedelta(days=5))]
        assert of_type(generate_predictions(done, pending, now=now), "DELAY_PROBABILITY") == []


class TestOrdering:
    def test_impact_then_probability(self) -> None:
        def p(kind, prob, impact):
            return Prediction(type=kind, title="", description="", probability=prob, impact_level=impact)

        ordered = sort_predictions([
            p("CLIENT_RISK", 0.6, "medium"),
            p("DAY_SATURATION", 0.9, "high"),
            p("DAY_SATURATION", 0.3, "low"),
            p("DELAY_PROBABILITY", 0.55, "high"),
            p("DAY_SATURATION", 0.65, "medium"),
        ])
        assert [(x.impact_level, x.probability) for x in ordered] == [
            ("high", 0.9), ("high", 0.55), ("medium", 0.65), ("medium", 0.6), ("low", 0.3),
        ]

    def test_to_impact(self) -> None:
        assert to_impact(0.7) == "high"
        assert to_impact(0.4) == "medium"
        assert to_impact(0.39) == "low"


class TestDelayRiskByDay:
    def test_days_over_capacity_sorted(self, make_task) -> None:
        pending = [
            make_task(due_date=datetime(2026, 3, 15, 9), estimated_minutes=720),
            make_task(due_date=datetime(2026, 3, 12, 9), estimated_minutes=500),
            make_task(due_date=datetime(2026, 3, 13, 9), estimated_minutes=100),
        ]
        days = delay_risk_by_day([], pending)
        assert [d["day"] for d in days] == ["2026-03-12", "2026-03-15"]
        assert days[0]["probability"] == 0.52
        assert days[1]["probability"] == 0.75
        assert "capacity" in days[0]["reason"]

    def test_zero_capacity_reports_every_day(self, make_task) -> None:
        pending = [make_task(due_date=datetime(2026, 3, 12, 9), estimated_minutes=10)]
        days = delay_risk_by_day([], pending, capacity_minutes=-5)
        assert days == [{"day": "2026-03-12", "probability": 1.0, "reason": days[0]["reason"]}]
