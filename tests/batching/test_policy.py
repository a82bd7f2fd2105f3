"""Tests for the batch policy evaluator."""

import pytest
from conftest import NOW, make_events

from eventdigest.batching.models import Event
from eventdigest.batching.policy import BatchPolicy
from eventdigest.core.errors import ConfigError


class TestCountThreshold:
    """Count rule applies on every trigger."""

    def test_empty_batch_never_flushes(self):
        policy = BatchPolicy()
        assert policy.should_flush([], is_scheduled_sweep=False, now=NOW) is False
        assert policy.should_flush([], is_scheduled_sweep=True, now=NOW) is False

    def test_below_threshold_on_event_path_does_not_flush(self):
        policy = BatchPolicy(count_threshold=20)
        assert policy.should_flush(make_events(19), is_scheduled_sweep=False, now=NOW) is False

    def test_at_threshold_flushes_regardless_of_trigger(self):
        policy = BatchPolicy(count_threshold=20)
        events = make_events(20)
        assert policy.should_flush(events, is_scheduled_sweep=False, now=NOW) is True
        assert policy.should_flush(events, is_scheduled_sweep=True, now=NOW) is True

    def test_above_threshold_flushes(self):
        policy = BatchPolicy(count_threshold=20)
        assert policy.should_flush(make_events(22), now=NOW) is True


class TestAgeThreshold:
    """Age rule applies only on a scheduled sweep."""

    def test_stale_single_event_flushes_on_sweep(self):
        policy = BatchPolicy(count_threshold=20, max_age_seconds=7200)
        events = [Event("e1", "redline", NOW - 8000, "github", {})]
        assert policy.should_flush(events, is_scheduled_sweep=True, now=NOW) is True

    def test_stale_event_does_not_flush_on_event_path(self):
        policy = BatchPolicy(count_threshold=20, max_age_seconds=7200)
        events = [Event("e1", "redline", NOW - 8000, "github", {})]
        assert policy.should_flush(events, is_scheduled_sweep=False, now=NOW) is False

    def test_exact_age_boundary_flushes(self):
        policy = BatchPolicy(max_age_seconds=7200)
        events = [Event("e1", "redline", NOW - 7200, "github", {})]
        assert policy.should_flush(events, is_scheduled_sweep=True, now=NOW) is True

    def test_fresh_events_do_not_flush_on_sweep(self):
        policy = BatchPolicy(max_age_seconds=7200)
        events = make_events(3, start=NOW - 60)
        assert policy.should_flush(events, is_scheduled_sweep=True, now=NOW) is False

    def test_oldest_event_found_regardless_of_order(self):
        policy = BatchPolicy(max_age_seconds=7200)
        events = [
            Event("new", "redline", NOW - 10, "github", {}),
            Event("old", "redline", NOW - 9000, "trello", {}),
            Event("mid", "redline", NOW - 100, "github", {}),
        ]
        assert policy.should_flush(events, is_scheduled_sweep=True, now=NOW) is True

    def test_zero_max_age_flushes_any_batch_on_sweep(self):
        policy = BatchPolicy(max_age_seconds=0)
        events = [Event("e1", "redline", NOW, "github", {})]
        assert policy.should_flush(events, is_scheduled_sweep=True, now=NOW) is True


class TestPolicyConfig:
    """Invalid thresholds are rejected at construction."""

    def test_count_threshold_below_one_rejected(self):
        with pytest.raises(ConfigError):
            BatchPolicy(count_threshold=0)

    def test_negative_max_age_rejected(self):
        with pytest.raises(ConfigError):
            BatchPolicy(max_age_seconds=-1)

    def test_defaults(self):
        policy = BatchPolicy()
        assert policy.count_threshold == 20
        assert policy.max_age_seconds == 7200
