from datetime import timedelta

import pytest

from quizhub import cleanup
from quizhub.errors import ValidationError
from quizhub.models import QuizAttempt


def _attempt(db, quiz_id, user, start, completed=False, end=None, percentage=0):
    attempt = QuizAttempt(
        quiz_id=quiz_id,
        user_id=user.id,
        start_time=start,
        end_time=end,
        is_completed=completed,
        percentage=percentage,
    )
    db.add(attempt)
    db.commit()
    return attempt


def test_elapsed_minutes_are_floored(helpers):
    assert cleanup.elapsed_minutes(helpers.T0, helpers.T0 + timedelta(seconds=119)) == 1
    assert cleanup.elapsed_minutes(helpers.T0, helpers.T0) == 0


class TestExpiredSweep:
    def test_deletes_only_past_limit_plus_grace(self, db, factory, helpers):
        quiz = factory.quiz(time_limit=30)
        now = helpers.T0 + helpers.minutes(120)
        _attempt(db, quiz.id, factory.user(), now - helpers.minutes(61))
        kept = _attempt(db, quiz.id, factory.user(), now - helpers.minutes(60))
        kept_id = kept.id

        assert cleanup.cleanup_expired_attempts(db, now=now, grace_minutes=30) == 1
        remaining = db.query(QuizAttempt).all()
        assert [a.id for a in remaining] == [kept_id]

    def test_partial_minutes_do_not_count(self, db, factory, helpers):
        quiz = factory.quiz(time_limit=30)
        now = helpers.T0 + helpers.minutes(120)
        _attempt(db, quiz.id, factory.user(), now - timedelta(minutes=60, seconds=59))

        assert cleanup.cleanup_expired_attempts(db, now=now, grace_minutes=30) == 0

    def test_orphans_are_removed(self, db, factory, helpers):
        _attempt(db, 9999, factory.user(), helpers.T0)

        assert cleanup.cleanup_expired_attempts(db, now=helpers.T0) == 1
        assert db.query(QuizAttempt).count() == 0

    def test_unlimited_quizzes_and_completed_attempts_are_untouched(self, db, factory, helpers):
        unlimited = factory.quiz(time_limit=0)
        limited = factory.quiz(time_limit=5)
        user = factory.user()
        _attempt(db, unlimited.id, user, helpers.T0 - timedelta(days=3))
        _attempt(
            db,
            limited.id,
            user,
            helpers.T0 - timedelta(days=3),
            completed=True,
            end=helpers.T0 - timedelta(days=3),
        )

        assert cleanup.cleanup_expired_attempts(db, now=helpers.T0) == 0
        assert db.query(QuizAttempt).count() == 2

    def test_second_run_is_a_no_op(self, db, factory, helpers):
        quiz = factory.quiz(time_limit=10)
        _attempt(db, quiz.id, factory.user(), helpers.T0 - timedelta(hours=2))

        assert cleanup.cleanup_expired_attempts(db, now=helpers.T0) == 1
        assert cleanup.cleanup_expired_attempts(db, now=helpers.T0) == 0

    def test_failure_on_one_attempt_does_not_stop_the_sweep(self, db, factory, helpers, monkeypatch):
        quiz = factory.quiz(time_limit=10)
        _attempt(db, quiz.id, factory.user(), helpers.T0 - timedelta(hours=2))
        _attempt(db, quiz.id, factory.user(), helpers.T0 - timedelta(hours=2))

        real_commit = db.commit
        failures = []

        def flaky_commit():
            if not failures:
                failures.append(True)
                raise RuntimeError("database is locked")
            real_commit()

        monkeypatch.setattr(db, "commit", flaky_commit)

        assert cleanup.cleanup_expired_attempts(db, now=helpers.T0) == 1
        assert db.query(QuizAttempt).count() == 1


class TestOldCompletedPurge:
    def test_deletes_completed_attempts_past_retention(self, db, factory, helpers):
        quiz = factory.quiz()
        old_end = helpers.T0 - timedelta(days=400)
        recent_end = helpers.T0 - timedelta(days=100)
        _attempt(db, quiz.id, factory.user(), old_end, completed=True, end=old_end)
        _attempt(db, quiz.id, factory.user(), recent_end, completed=True, end=recent_end)
        # незавершённые этим проходом не трогаются
        _attempt(db, quiz.id, factory.user(), old_end)

        assert cleanup.cleanup_old_completed_attempts(db, 365, now=helpers.T0) == 1
        assert db.query(QuizAttempt).count() == 2

    def test_retention_floor(self, db, factory, helpers):
        quiz = factory.quiz()
        end = helpers.T0 - timedelta(days=400)
        _attempt(db, quiz.id, factory.user(), end, completed=True, end=end)

        with pytest.raises(ValidationError, match="30 days"):
            cleanup.cleanup_old_completed_attempts(db, 10, now=helpers.T0)
        assert db.query(QuizAttempt).count() == 1

    def test_thirty_days_is_allowed(self, db, factory, helpers):
        quiz = factory.quiz()
        end = helpers.T0 - timedelta(days=31)
        _attempt(db, quiz.id, factory.user(), end, completed=True, end=end)

        assert cleanup.cleanup_old_completed_attempts(db, 30, now=helpers.T0) == 1


class TestManualCleanup:
    def test_rejected_floor_deletes_nothing(self, db, factory, helpers):
        quiz = factory.quiz(time_limit=10)
        _attempt(db, quiz.id, factory.user(), helpers.T0 - timedelta(hours=5))

        with pytest.raises(ValidationError):
            cleanup.perform_manual_cleanup(
                db, cleanup_expired=True, cleanup_old=True, old_attempts_days=10, now=helpers.T0
            )
        assert db.query(QuizAttempt).count() == 1

    def test_runs_selected_passes_and_reports_statistics(self, db, factory, helpers):
        quiz = factory.quiz(time_limit=10)
        _attempt(db, quiz.id, factory.user(), helpers.T0 - timedelta(hours=5))
        old_end = helpers.T0 - timedelta(days=500)
        _attempt(db, quiz.id, factory.user(), old_end, completed=True, end=old_end, percentage=40)
        _attempt(db, quiz.id, factory.user(), helpers.T0, completed=True, end=helpers.T0, percentage=80)

        result = cleanup.perform_manual_cleanup(db, cleanup_old=True, now=helpers.T0)

        assert result["expired_cleaned"] == 1
        assert result["old_cleaned"] == 1
        assert result["statistics"] == {
            "total_attempts": 1,
            "completed_attempts": 1,
            "incomplete_attempts": 0,
            "average_score": 80.0,
        }


def test_statistics_on_empty_database(db):
    assert cleanup.get_attempt_statistics(db) == {
        "total_attempts": 0,
        "completed_attempts": 0,
        "incomplete_attempts": 0,
        "average_score": 0.0,
    }


def test_statistics_average_only_counts_completed(db, factory, helpers):
    quiz = factory.quiz()
    _attempt(db, quiz.id, factory.user(), helpers.T0, completed=True, end=helpers.T0, percentage=50)
    _attempt(db, quiz.id, factory.user(), helpers.T0, completed=True, end=helpers.T0, percentage=100)
    _attempt(db, quiz.id, factory.user(), helpers.T0, percentage=0)

    stats = cleanup.get_attempt_statistics(db)

    assert stats["total_attempts"] == 3
    assert stats["completed_attempts"] == 2
    assert stats["incomplete_attempts"] == 1
    assert stats["average_score"] == pytest.approx(75.0)
