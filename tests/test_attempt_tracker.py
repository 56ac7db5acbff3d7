from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

from escalation_desk.services.attempt_tracker import SessionAttemptTracker


def test_count_is_max_of_stored_and_observed():
    tracker = SessionAttemptTracker()

    first = tracker.record_and_evaluate("s1", 2)
    resent = tracker.record_and_evaluate("s1", 1)

    assert first.total_attempts == 2
    assert resent.total_attempts == 2
    assert resent.attempts_remaining == 1
    assert tracker.query("s1").attempts == 2


def test_escalates_at_threshold_and_clears_session():
    tracker = SessionAttemptTracker()
    tracker.record_and_evaluate("s1", 1)
    tracker.record_and_evaluate("s1", 2)

    result = tracker.record_and_evaluate("s1", 3)

    assert result.escalate is True
    assert result.total_attempts == 3
    assert result.attempts_remaining == 0
    status = tracker.query("s1")
    assert status.attempts == 0
    assert status.attempts_remaining == 3
    assert status.can_escalate is False


def test_below_threshold_does_not_escalate():
    tracker = SessionAttemptTracker()

    result = tracker.record_and_evaluate("s1", 2)

    assert result.escalate is False
    assert result.attempts_remaining == 1


def test_new_streak_reaccumulates_after_escalation():
    tracker = SessionAttemptTracker()
    assert tracker.record_and_evaluate("s1", 5).escalate is True

    again = tracker.record_and_evaluate("s1", 1)

    assert again.escalate is False
    assert again.total_attempts == 1


def test_negative_observation_is_ignored():
    tracker = SessionAttemptTracker()

    result = tracker.record_and_evaluate("s1", -4)

    assert result.total_attempts == 0
    assert result.attempts_remaining == 3


def test_reset_is_idempotent():
    tracker = SessionAttemptTracker()
    tracker.record_and_evaluate("s1", 2)

    tracker.reset("s1")
    tracker.reset("s1")
    tracker.reset("never-seen")

    assert tracker.query("s1").attempts == 0
    assert tracker.tracked_sessions() == 0


def test_query_has_no_side_effects():
    tracker = SessionAttemptTracker()

    tracker.query("ghost")

    assert tracker.tracked_sessions() == 0


def test_custom_threshold():
    tracker = SessionAttemptTracker(threshold=5)

    assert tracker.record_and_evaluate("s1", 4).escalate is False
    assert tracker.record_and_evaluate("s1", 5).escalate is True


def test_concurrent_resends_do_not_inflate_count():
    tracker = SessionAttemptTracker()
    workers = 32
    barrier = Barrier(workers)

    def resend(_):
        barrier.wait()
        return tracker.record_and_evaluate("s1", 2).escalate

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(resend, range(workers)))

    assert not any(results)
    assert tracker.query("s1").attempts == 2


def test_parallel_sessions_are_independent():
    tracker = SessionAttemptTracker()
    sessions = [f"s{index}" for index in range(20)]

    def escalate(session_id):
        tracker.record_and_evaluate(session_id, 1)
        tracker.record_and_evaluate(session_id, 2)
        return tracker.record_and_evaluate(session_id, 3).escalate

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(escalate, sessions))

    assert all(results)
    assert tracker.tracked_sessions() == 0
