"""
Tests for ScrapeSession and ProcessingLog models

Tests lifecycle transitions, counter deltas and append-only logs.
"""

import pytest

from models.processing_log import ProcessingLog
from models.scrape_session import ScrapeSession
from scraping.errors import InvalidSessionTransition
from scraping.results import Outcome


def make_session(**kwargs):
    values = dict(agency="hse", record_type="case", max_pages=5)
    values.update(kwargs)
    return ScrapeSession(**values)


# =============================================================================
# Lifecycle Tests
# =============================================================================

class TestLifecycle:
    """Status transitions."""

    def test_new_session_is_pending(self):
        session = make_session()
        assert session.status == "pending"
        assert session.records_found == 0
        assert len(session.session_id) == 16

    def test_start_sets_started_at(self):
        session = make_session()
        session.start()
        assert session.status == "running"
        assert session.started_at is not None
        assert session.is_running

    def test_complete_records_reason(self):
        session = make_session()
        session.start()
        session.complete("max_pages_reached")

        assert session.status == "completed"
        assert session.stop_reason == "max_pages_reached"
        assert session.completed_at is not None
        assert session.is_terminal

    def test_fail_keeps_error_message(self):
        session = make_session()
        session.start()
        session.fail(RuntimeError("boom"), reason="exception")

        assert session.status == "failed"
        assert session.error_message == "boom"

    def test_pending_can_be_stopped(self):
        session = make_session()
        session.stop()
        assert session.status == "stopped"
        assert session.stop_reason == "stopped_by_user"

    def test_same_status_is_noop(self):
        session = make_session()
        session.start()
        started = session.started_at
        session.start()
        assert session.started_at == started

    @pytest.mark.parametrize("terminal", ["complete", "stop"])
    def test_terminal_never_reopens(self, terminal):
        session = make_session()
        session.start()
        getattr(session, terminal)()

        with pytest.raises(InvalidSessionTransition):
            session.start()

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidSessionTransition) as exc:
            make_session().complete()
        assert exc.value.current == "pending"
        assert exc.value.requested == "completed"


# =============================================================================
# Counter Tests
# =============================================================================

class TestCounters:
    """Counter deltas and derived values."""

    def test_apply_outcome_counts(self):
        session = make_session()
        for outcome in (Outcome.CREATED, Outcome.CREATED, Outcome.UPDATED, Outcome.EXISTING, Outcome.ERROR):
            session.apply_outcome(outcome)

        assert session.records_found == 5
        assert session.records_created == 2
        assert session.records_updated == 1
        assert session.records_existing == 1
        assert session.records_failed == 1
        assert session.errors_count == 1
        assert session.records_processed == session.records_found

    def test_apply_outcome_accepts_value(self):
        session = make_session()
        session.apply_outcome("created")
        assert session.records_created == 1

    def test_existing_streak_resets(self):
        session = make_session()
        session.apply_outcome(Outcome.EXISTING)
        session.apply_outcome(Outcome.EXISTING)
        assert session.consecutive_existing == 2

        session.apply_outcome(Outcome.CREATED)
        assert session.consecutive_existing == 0

    def test_fetch_errors(self):
        session = make_session()
        session.record_fetch_error("HTTP 500")
        session.record_fetch_error("HTTP 502")

        assert session.errors_count == 2
        assert session.records_failed == 0
        assert session.error_message == "HTTP 502"

    def test_record_and_fetch_errors_share_errors_count(self):
        session = make_session()
        session.record_fetch_error("HTTP 500")
        session.apply_outcome(Outcome.ERROR)

        assert session.errors_count == 2
        assert session.records_failed == 1

    def test_record_batch_all_existing(self):
        session = make_session()
        session.record_batch(found=3, existing=3)
        assert session.existing_batches == 1
        assert session.pages_processed == 1

        session.record_batch(found=3, existing=2)
        assert session.existing_batches == 0

    def test_empty_batch_is_not_all_existing(self):
        session = make_session()
        session.record_batch(found=0, existing=0)
        assert session.existing_batches == 0

    def test_cursor_only_moves_forward(self):
        session = make_session()
        session.advance_to(3)
        session.advance_to(3)
        session.advance_to(4)

        with pytest.raises(ValueError):
            session.advance_to(2)
        assert session.current_page == 4

    def test_success_rate(self):
        session = make_session()
        assert session.success_rate == 0.0

        session.apply_outcome(Outcome.CREATED)
        session.apply_outcome(Outcome.EXISTING)
        session.apply_outcome(Outcome.EXISTING)
        assert session.success_rate == 33.33

    def test_summary_keys(self):
        summary = make_session().summary()
        assert set(summary) == {
            "session_id", "status", "duration_seconds", "pages_processed",
            "records_found", "records_created", "records_updated",
            "records_existing", "errors_count", "success_rate",
        }


# =============================================================================
# Persistence Tests
# =============================================================================

class TestPersistence:
    """Round trips through the database."""

    def test_lookup_and_active(self, db_session):
        running = make_session()
        running.start()
        done = make_session()
        done.start()
        done.complete()
        db_session.add_all([running, done])
        db_session.commit()

        assert ScrapeSession.get_by_session_id(running.session_id) is running
        assert ScrapeSession.active() == [running]

    def test_to_dict_serializes_dates(self, db_session):
        from datetime import date

        session = make_session(date_from=date(2024, 1, 1), date_to=date(2024, 1, 31))
        session.start()
        db_session.add(session)
        db_session.commit()

        data = session.to_dict()
        assert data["date_from"] == "2024-01-01"
        assert data["status"] == "running"
        assert data["started_at"] is not None

    def test_processing_log_is_append_only(self, db_session):
        log = ProcessingLog(session_id="abc", agency="hse", record_type="case", batch_or_page=1)
        db_session.add(log)
        db_session.commit()

        log.items_found = 5
        with pytest.raises(RuntimeError, match="append-only"):
            db_session.commit()
        db_session.rollback()

    def test_processing_log_order(self, db_session):
        for page in (1, 2, 3):
            db_session.add(ProcessingLog(session_id="abc", agency="hse", record_type="case", batch_or_page=page))
        db_session.add(ProcessingLog(session_id="other", agency="hse", record_type="case", batch_or_page=1))
        db_session.commit()

        rows = ProcessingLog.for_session("abc")
        assert [row.batch_or_page for row in rows] == [1, 2, 3]
        assert rows[0].to_dict()["scraped_items"] == []
