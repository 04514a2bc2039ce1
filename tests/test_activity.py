from concurrent.futures import ThreadPoolExecutor

from core.activity import ActivityTracker


class FakeClock:
    def __init__(self, now=10_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _tracker(**kwargs):
    clock = FakeClock()
    return ActivityTracker(window_seconds=300, clock=clock, **kwargs), clock


class TestActivityTracker:
    def test_first_check_permits_and_marks_pending(self):
        tracker, _ = _tracker()

        assert tracker.should_update_activity("u1") is True
        status = tracker.get_activity_status("u1")
        assert status.is_pending is True
        assert status.last_update == 10_000.0

    def test_second_check_inside_window_is_refused(self):
        tracker, clock = _tracker()
        tracker.should_update_activity("u1")
        clock.now += 299

        assert tracker.should_update_activity("u1") is False
        assert tracker.get_activity_status("u1").last_update == 10_000.0

    def test_check_after_window_is_permitted(self):
        tracker, clock = _tracker()
        tracker.should_update_activity("u1")
        tracker.mark_activity_updated("u1")
        clock.now += 300

        assert tracker.should_update_activity("u1") is True
        assert tracker.get_activity_status("u1").is_pending is True

    def test_users_are_independent(self):
        tracker, _ = _tracker()
        assert tracker.should_update_activity("u1") is True
        assert tracker.should_update_activity("u2") is True
        assert tracker.tracked_users_count() == 2

    def test_mark_updated_clears_pending(self):
        tracker, _ = _tracker()
        tracker.should_update_activity("u1")
        tracker.mark_activity_updated("u1")
        assert tracker.get_activity_status("u1").is_pending is False

    def test_mark_updated_for_unknown_user_is_noop(self):
        tracker, _ = _tracker()
        tracker.mark_activity_updated("ghost")
        assert tracker.tracked_users_count() == 0

    def test_status_for_unknown_user(self):
        tracker, clock = _tracker()
        status = tracker.get_activity_status("ghost")
        assert status.last_update is None
        assert status.is_pending is False
        assert status.next_update_available == clock.now
        assert status.seconds_until_next_update == 0

    def test_next_update_available(self):
        tracker, clock = _tracker()
        tracker.should_update_activity("u1")
        clock.now += 100
        status = tracker.get_activity_status("u1")
        assert status.next_update_available == 10_300.0
        assert status.seconds_until_next_update == 200

    def test_clear_user_and_clear_all(self):
        tracker, _ = _tracker()
        tracker.should_update_activity("u1")
        tracker.should_update_activity("u2")

        tracker.clear_user_activity("u1")
        assert tracker.should_update_activity("u1") is True

        tracker.clear_all_activity()
        assert tracker.tracked_users_count() == 0

    def test_sweep_forgets_expired_users(self):
        tracker, clock = _tracker()
        tracker.should_update_activity("old")
        clock.now += 200
        tracker.should_update_activity("recent")
        clock.now += 150

        assert tracker.sweep() == 1
        assert tracker.tracked_users_count() == 1
        assert tracker.get_activity_status("old").last_update is None

    def test_full_tracker_sweeps_before_refusing(self):
        tracker, clock = _tracker(max_users=2)
        tracker.should_update_activity("a")
        tracker.should_update_activity("b")

        assert tracker.should_update_activity("c") is False
        clock.now += 300
        assert tracker.should_update_activity("c") is True
        assert tracker.tracked_users_count() == 1

    def test_activity_summary(self):
        tracker, clock = _tracker()
        tracker.should_update_activity("u1")
        clock.now += 120

        summary = tracker.activity_summary()

        assert summary["total_tracked_users"] == 1
        assert summary["throttle_window_minutes"] == 5
        assert summary["users"][0]["minutes_since_last_update"] == 2.0

    def test_concurrent_checks_permit_exactly_one_write(self):
        tracker, _ = _tracker()

        with ThreadPoolExecutor(max_workers=50) as pool:
            results = list(pool.map(lambda _: tracker.should_update_activity("u1"), range(50)))

        assert results.count(True) == 1
        assert tracker.tracked_users_count() == 1
        assert tracker.get_activity_status("u1").is_pending is True
