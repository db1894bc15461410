"""Tests for the incremental aggregators."""

from datetime import date, datetime, timedelta, timezone

from engine.aggregators import (
    aggregate_actions,
    aggregate_categories,
    aggregate_daily,
    aggregate_hourly,
    count_action,
)
from models.events import ActionKind
from models.rollups import ActionRollup, CategoryRollup, DailyRollup, HourlyRollup

from factories import at, make_event


class TestActionAggregator:
    def test_adds_batch_onto_prior(self):
        events = [
            make_event(at(9), ActionKind.SERVED, "apple"),
            make_event(at(9), ActionKind.RAN_OUT, "banana"),
            make_event(at(9), ActionKind.SERVED, "apple"),
            make_event(at(9), ActionKind.REFILLED, "banana"),
            make_event(at(9), ActionKind.HEARTBEAT, "orange"),
            make_event(at(9), ActionKind.STARTING, "orange"),
        ]
        prior = ActionRollup(served=35, ran_out=3, heartbeat=666, starting=123, refilled=2, offline=0)

        result = aggregate_actions(events, prior)

        assert result.served == 37
        assert result.ran_out == 4
        assert result.heartbeat == 667
        assert result.starting == 124
        assert result.refilled == 3
        assert result.offline == 0

    def test_no_prior_starts_at_zero(self):
        result = aggregate_actions([make_event(at(1), ActionKind.OFFLINE)], None)
        assert result.offline == 1
        assert sum(result.counts().values()) == 1

    def test_stamps_computed_at(self):
        now = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        prior = ActionRollup(computed_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert aggregate_actions([], prior, now=now).computed_at == now

    def test_prior_is_not_mutated(self):
        prior = ActionRollup(served=5)
        aggregate_actions([make_event(at(1))], prior)
        assert prior.served == 5

    def test_counts_are_monotonic_across_runs(self):
        rollup = None
        batches = [
            [make_event(at(1), kind) for kind in ActionKind],
            [make_event(at(2), ActionKind.SERVED)] * 3,
            [],
        ]
        for batch in batches:
            previous = rollup or ActionRollup.zero()
            rollup = aggregate_actions(batch, rollup)
            for kind in ActionKind:
                assert rollup.count(kind) >= previous.count(kind)
        assert rollup.served == 4

    def test_count_action(self):
        events = [make_event(at(1)), make_event(at(1), ActionKind.RAN_OUT), make_event(at(2))]
        assert count_action(events, ActionKind.SERVED) == 2
        assert count_action(events, ActionKind.RAN_OUT) == 1


class TestHourlyAggregator:
    def test_only_matching_action_counts(self):
        """
        Buckets untouched by the batch are carried forward, not dropped: the
        RanOut hour keeps its prior 5 in the Served rollup. Rollups only ever
        grow, so a run never erases counts an earlier run wrote.
        """
        h, h2 = 10, 8
        events = [
            make_event(at(h), ActionKind.SERVED),
            make_event(at(h, 5), ActionKind.SERVED),
            make_event(at(h2), ActionKind.RAN_OUT),
        ]
        prior = HourlyRollup(counts={h: 10, h2: 5})

        served = aggregate_hourly(events, ActionKind.SERVED, prior)
        assert served.counts[h] == 12
        assert served.counts[h2] == 5

        ran_out = aggregate_hourly(events, ActionKind.RAN_OUT, prior)
        assert ran_out.counts[h2] == 6
        assert ran_out.counts[h] == 10

    def test_new_hour_starts_at_zero(self):
        result = aggregate_hourly([make_event(at(3))], ActionKind.SERVED, HourlyRollup(counts={9: 1}))
        assert result.counts == {3: 1, 9: 1}

    def test_buckets_by_utc_hour(self):
        local = datetime(2024, 5, 14, 8, 0, tzinfo=timezone(timedelta(hours=2)))
        result = aggregate_hourly([make_event(local)], ActionKind.SERVED, None)
        assert result.counts == {6: 1}

    def test_batch_without_matches_returns_prior(self):
        prior = HourlyRollup(counts={4: 7})
        result = aggregate_hourly([make_event(at(4), ActionKind.HEARTBEAT)], ActionKind.SERVED, prior)
        assert result == prior

    def test_disabled_flag_is_carried(self):
        prior = HourlyRollup(enabled=False, counts={})
        assert aggregate_hourly([make_event(at(4))], ActionKind.SERVED, prior).enabled is False


class TestDailyAggregator:
    def test_only_matching_action_counts(self):
        """Dates with no matching event keep their prior count."""
        yesterday, before = at(12, day=13), at(12, day=12)
        events = [
            make_event(yesterday, ActionKind.SERVED),
            make_event(yesterday + timedelta(hours=1), ActionKind.SERVED),
            make_event(before, ActionKind.RAN_OUT),
        ]
        prior = DailyRollup(counts={yesterday.date(): 20, before.date(): 15})

        served = aggregate_daily(events, ActionKind.SERVED, prior)
        assert served.counts == {date(2024, 5, 13): 22, date(2024, 5, 12): 15}

        ran_out = aggregate_daily(events, ActionKind.RAN_OUT, prior)
        assert ran_out.counts == {date(2024, 5, 13): 20, date(2024, 5, 12): 16}

    def test_empty_prior(self):
        result = aggregate_daily([make_event(at(23, 59))], ActionKind.SERVED, None)
        assert result.counts == {date(2024, 5, 14): 1}


class TestCategoryAggregator:
    def test_counts_every_action(self):
        events = [
            make_event(at(1), ActionKind.SERVED, "apple"),
            make_event(at(1), ActionKind.SERVED, "banana"),
            make_event(at(1), ActionKind.RAN_OUT, "apple"),
        ]
        prior = CategoryRollup(counts={"apple": 77, "banana": 66})
        result = aggregate_categories(events, prior)
        assert result.counts == {"apple": 79, "banana": 67}

    def test_unknown_ingredient_starts_at_zero(self):
        prior = CategoryRollup(counts={"apple": 1})
        result = aggregate_categories([make_event(at(1), ingredient="Popcorn")], prior)
        assert result.counts == {"apple": 1, "Popcorn": 1}
        assert prior.counts == {"apple": 1}

    def test_order_independent(self):
        events = [make_event(at(i % 24), ingredient=f"i{i % 3}") for i in range(10)]
        forward = aggregate_categories(events, None)
        backward = aggregate_categories(list(reversed(events)), None)
        assert forward == backward
