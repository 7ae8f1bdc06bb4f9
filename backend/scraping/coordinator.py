"""
Scrape Coordinator - drives one strategy through one session.

Pipeline (per run):
1. Registry lookup (unknown pair -> StrategyNotFoundError)
2. Load active scraping config (fallback defaults on miss)
3. Refuse when the scrape type is disabled
4. Validate params (failure -> InvalidParams, no session)
5. Create the session (running), commit, emit
6. Hand off to a daemon worker thread and return the session id

Worker loop (run_session):
    for unit in strategy.iter_units(params):
        check stop conditions
        rate-limit -> fetch -> process each record -> processing log row

Every counter change is committed as it happens so observers see
per-record progress. Records are processed strictly in fetch order.

Usage:
    coordinator = ScrapeCoordinator()
    session_id = coordinator.start_session("hse", "case", {"start_page": 1, "max_pages": 5})
    coordinator.get_progress(session_id)
"""
import logging
import threading
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.database import db
from models.processing_log import ProcessingLog
from models.scrape_session import COMPLETED, FAILED, PENDING, RUNNING, STOPPED, ScrapeSession

from . import events
from .base import PAGE
from .errors import InvalidParams, ScrapingDisabled, SessionNotFound, StrategyNotFoundError
from .registry import StrategyNotFound, get_strategy
from .results import FetchError, FetchResult, Outcome, ProcessResult
from .settings import effective_max_pages, load_scraping_settings
from .store import SQLAlchemyRecordStore

logger = logging.getLogger(__name__)

STOP_MAX_PAGES = "max_pages_reached"
STOP_MAX_ERRORS = "max_consecutive_errors"
STOP_ALL_EXISTING = "all_records_existing"
STOP_EXISTING_THRESHOLD = "consecutive_existing_threshold"
STOP_COMPLETED = "completed"


class ScrapeCoordinator:
    """Starts, runs, stops and reports on scraping sessions."""

    def __init__(
        self,
        db_session=None,
        event_sink=None,
        rate_limiter=None,
        fetchers: Optional[Dict] = None,
        stores: Optional[Dict] = None,
        app=None,
    ):
        """
        Args:
            db_session: SQLAlchemy session. Defaults to db.session, which is
                        scoped per app context so worker threads get their own.
            event_sink: Progress sink (defaults to Redis when REDIS_URL is set)
            rate_limiter: Rate limiter (defaults to the process-wide one)
            fetchers: {(agency, record_type): Fetcher} overrides
            stores: {(agency, record_type): RecordStore} overrides
            app: Flask app for worker threads (defaults to current_app)
        """
        self.db_session = db_session if db_session is not None else db.session
        self.event_sink = event_sink if event_sink is not None else events.default_event_sink()
        self._rate_limiter = rate_limiter
        self.fetchers = fetchers or {}
        self.stores = stores or {}
        self.app = app
        self._workers: Dict[str, threading.Thread] = {}
        self._workers_lock = threading.Lock()

    @property
    def rate_limiter(self):
        if self._rate_limiter is None:
            from .rate_limiter import get_scraper_rate_limiter
            self._rate_limiter = get_scraper_rate_limiter()
        return self._rate_limiter

    # =========================================================================
    # Public API
    # =========================================================================

    def start_session(
        self,
        agency: str,
        record_type: str,
        raw_params: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
        scrape_type: str = "manual",
        background: bool = True,
        stop_on_existing: bool = True,
    ) -> str:
        """
        Validate, create a running session and start the worker.

        Raises:
            StrategyNotFoundError: no strategy for (agency, record_type)
            ScrapingDisabled: configuration disables this scrape type
            InvalidParams: strategy rejected raw_params (no session created)

        Returns:
            session_id (the run continues in the background unless
            background=False, in which case it has finished)
        """
        strategy_cls = get_strategy(agency, record_type)
        if isinstance(strategy_cls, StrategyNotFound):
            raise StrategyNotFoundError(strategy_cls.agency, strategy_cls.record_type)

        settings = load_scraping_settings(self.db_session)
        if not settings.scraping_enabled(scrape_type):
            raise ScrapingDisabled(f"{scrape_type} scraping is disabled in configuration '{settings.name}'")

        validated = strategy_cls.validate_params(raw_params)
        if not validated.ok:
            logger.info(f"Rejected {strategy_cls.display_name()} params: {validated.error}")
            raise InvalidParams(validated.error)

        params = validated.params
        session = ScrapeSession(
            agency=strategy_cls.AGENCY,
            record_type=strategy_cls.RECORD_TYPE,
            params={**params.model_dump(mode="json"), "stop_on_existing": stop_on_existing},
            triggered_by=actor or scrape_type,
            **params.session_fields(),
        )
        if strategy_cls.PAGINATION == PAGE:
            session.max_pages = effective_max_pages(settings, params.max_pages)
        session.start()
        self.db_session.add(session)
        self.db_session.commit()

        session_id = session.session_id
        logger.info(
            f"Created scrape session {session_id} for {strategy_cls.display_name()} "
            f"(actor={session.triggered_by})"
        )
        events.safe_emit(self.event_sink, events.SESSION_CREATED, {"session": session.to_dict()})

        if background:
            self._spawn_worker(session_id, settings)
        else:
            self.run_session(session_id, settings=settings)
        return session_id

    def scrape_page_range(
        self,
        agency: str,
        record_type: str,
        start_page: int,
        end_page: int,
        actor: Optional[str] = None,
        extra_params: Optional[Dict[str, Any]] = None,
        background: bool = True,
    ) -> str:
        """
        Scrape an explicit page range. The duplicate-exhaustion stop is off:
        the whole range is processed even if it only holds known records.
        """
        if not isinstance(start_page, int) or not isinstance(end_page, int) or end_page < start_page:
            raise InvalidParams("end_page must be an integer on or after start_page")

        raw_params = dict(extra_params or {})
        raw_params.update({"start_page": start_page, "max_pages": end_page - start_page + 1})
        return self.start_session(
            agency,
            record_type,
            raw_params,
            actor=actor,
            background=background,
            stop_on_existing=False,
        )

    def stop_session(self, session_id: str, reason: str = "stopped_by_user") -> ScrapeSession:
        """
        Cooperative cancel. The worker observes it at the next unit boundary.
        Stopping an already finished session is a no-op.
        """
        session = self.get_session(session_id)
        if session.is_terminal:
            logger.info(f"Session {session_id} already {session.status}, nothing to stop")
            return session

        matched = self.db_session.query(ScrapeSession).filter(
            ScrapeSession.session_id == session_id,
            ScrapeSession.status.in_([PENDING, RUNNING]),
        ).update(
            {
                ScrapeSession.status: STOPPED,
                ScrapeSession.stop_reason: reason,
                ScrapeSession.completed_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        self.db_session.commit()
        self.db_session.refresh(session)
        if not matched:
            logger.info(f"Session {session_id} finished as {session.status} before the stop landed")
            return session

        logger.info(f"Stop requested for session {session_id}")
        events.safe_emit(self.event_sink, events.SESSION_UPDATED, {"session": session.to_dict()})
        return session

    def get_session(self, session_id: str) -> ScrapeSession:
        session = self.db_session.query(ScrapeSession).filter_by(session_id=session_id).first()
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def get_progress(self, session_id: str) -> Dict[str, Any]:
        """Strategy-formatted progress for a session."""
        session = self.get_session(session_id)
        strategy_cls = get_strategy(session.agency, session.record_type)
        if isinstance(strategy_cls, StrategyNotFound):
            return {"percentage": 0.0, "status": session.status}
        return strategy_cls.format_progress(session)

    def active_sessions(self) -> List[ScrapeSession]:
        return self.db_session.query(ScrapeSession).filter(
            ScrapeSession.status.in_([PENDING, RUNNING])
        ).order_by(ScrapeSession.created_at.desc()).all()

    def wait(self, session_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until the session's worker thread finishes.

        Returns:
            True if no worker is running for the session any more
        """
        with self._workers_lock:
            worker = self._workers.get(session_id)
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                return False
        # Worker committed in its own session; drop our stale copies
        self.db_session.expire_all()
        return True

    # =========================================================================
    # Worker
    # =========================================================================

    def _spawn_worker(self, session_id: str, settings):
        app = self.app
        if app is None:
            try:
                from flask import current_app
                app = current_app._get_current_object()
            except RuntimeError:
                app = None

        def _work(flask_app):
            try:
                if flask_app is not None:
                    with flask_app.app_context():
                        self.run_session(session_id, settings=settings)
                else:
                    self.run_session(session_id, settings=settings)
            except Exception as e:
                logger.exception(f"Scrape worker for {session_id} crashed: {e}")
            finally:
                with self._workers_lock:
                    self._workers.pop(session_id, None)

        thread = threading.Thread(
            target=_work,
            args=(app,),
            name=f"scrape-{session_id}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers[session_id] = thread
        thread.start()

    def run_session(self, session_id: str, settings=None) -> ScrapeSession:
        """
        Run a session to completion in the calling thread.

        Never leaves the session running: unexpected errors mark it failed.

        Returns:
            The finalized ScrapeSession
        """
        session = self.get_session(session_id)
        if session.is_terminal:
            logger.info(f"Session {session_id} is already {session.status}")
            return session

        if settings is None:
            settings = load_scraping_settings(self.db_session)

        strategy_cls = get_strategy(session.agency, session.record_type)
        if isinstance(strategy_cls, StrategyNotFound):
            session.fail(strategy_cls.message, reason="strategy_not_found")
            self.db_session.commit()
            return session

        validated = strategy_cls.validate_params(session.params)
        if not validated.ok:
            session.fail(validated.error, reason="invalid_params")
            self.db_session.commit()
            return session

        params = validated.params
        stop_on_existing = (session.params or {}).get("stop_on_existing", True)
        strategy = self._build_strategy(strategy_cls, settings)

        if session.status == PENDING:
            session.start()
            self.db_session.commit()

        logger.info("=" * 70)
        logger.info(f"SCRAPE SESSION {session_id} - STARTING")
        logger.info("=" * 70)
        logger.info(f"  Strategy:    {strategy.display_name()}")
        logger.info(f"  Params:      {params.model_dump(mode='json')}")
        logger.info(f"  Max pages:   {session.max_pages}")
        logger.info(f"  Config:      {settings.name}")
        logger.info(f"  Triggered:   {session.triggered_by}")
        logger.info("=" * 70)

        try:
            for unit in strategy.iter_units(params):
                if self._check_stop_conditions(session, settings, stop_on_existing):
                    break
                self._process_unit(strategy, session, params, unit, settings)
            else:
                self._check_stop_conditions(session, settings, stop_on_existing)

            if session.status == RUNNING:
                self._finalize(session, COMPLETED, STOP_COMPLETED)

        except Exception as e:
            logger.exception(f"Scrape session {session_id} failed: {e}")
            self.db_session.rollback()
            self._finalize(session, FAILED, "exception", error_message=str(e))

        self._log_finish(session, strategy)
        events.safe_emit(self.event_sink, events.SESSION_FINISHED, {"session": session.to_dict()})
        return session

    def _build_strategy(self, strategy_cls, settings):
        key = (strategy_cls.AGENCY, strategy_cls.RECORD_TYPE)
        store = self.stores.get(key) or SQLAlchemyRecordStore(strategy_cls.MODEL, self.db_session)
        return strategy_cls(
            fetcher=self.fetchers.get(key),
            store=store,
            settings=settings,
            rate_limiter=self.rate_limiter,
        )

    def _check_stop_conditions(self, session: ScrapeSession, settings, stop_on_existing: bool) -> bool:
        """Apply the first matching stop condition. Returns True to stop."""
        # Pick up a stop requested from another session/thread
        self.db_session.refresh(session)

        if session.status != RUNNING:
            logger.info(f"Session {session.session_id} is {session.status}, stopping")
            return True

        if session.errors_count >= settings.max_consecutive_errors:
            logger.error(
                f"Session {session.session_id}: {session.errors_count} errors "
                f"(limit {settings.max_consecutive_errors})"
            )
            message = f"Stopped after {session.errors_count} errors"
            if session.error_message:
                message = f"{message}: {session.error_message}"
            self._finalize(session, FAILED, STOP_MAX_ERRORS, error_message=message)
            return True

        if stop_on_existing and session.existing_batches > 0:
            logger.info(f"Session {session.session_id}: every record in the last batch already existed")
            self._finalize(session, COMPLETED, STOP_ALL_EXISTING)
            return True

        if stop_on_existing and session.consecutive_existing >= settings.consecutive_existing_threshold:
            logger.info(
                f"Session {session.session_id}: {session.consecutive_existing} existing records "
                f"in a row (threshold {settings.consecutive_existing_threshold})"
            )
            self._finalize(session, COMPLETED, STOP_EXISTING_THRESHOLD)
            return True

        if session.max_pages and session.pages_processed >= session.max_pages:
            logger.info(f"Session {session.session_id}: reached max pages ({session.max_pages})")
            self._finalize(session, COMPLETED, STOP_MAX_PAGES)
            return True

        return False

    def _finalize(self, session: ScrapeSession, status: str, reason: str, error_message: str = None) -> bool:
        """
        Move a running session to a terminal status.

        The UPDATE only matches a row that is still running, so a stop
        committed from another thread is never overwritten.

        Returns:
            True if this call finalized the session
        """
        values = {
            ScrapeSession.status: status,
            ScrapeSession.stop_reason: reason,
            ScrapeSession.completed_at: datetime.utcnow(),
        }
        if error_message is not None:
            values[ScrapeSession.error_message] = error_message

        matched = self.db_session.query(ScrapeSession).filter_by(
            session_id=session.session_id, status=RUNNING,
        ).update(values, synchronize_session=False)
        self.db_session.commit()
        self.db_session.refresh(session)

        if not matched:
            logger.info(f"Session {session.session_id} is already {session.status}, not marking {status}")
        return bool(matched)

    def _fetch(self, strategy, params, unit, settings) -> FetchResult:
        try:
            self.rate_limiter.wait(strategy.AGENCY, settings)
        except Exception as e:
            return FetchResult.failure(FetchError.other(f"rate limiter: {e}"))
        return strategy.fetch(params, unit)

    def _process_unit(self, strategy, session: ScrapeSession, params, unit, settings):
        """Fetch one unit, process its records in order, write one log row."""
        if strategy.PAGINATION == PAGE:
            session.advance_to(unit)
            self.db_session.commit()

        result = self._fetch(strategy, params, unit, settings)

        if not result.ok:
            logger.warning(f"Session {session.session_id} unit {unit}: fetch failed ({result.error.kind}): {result.error}")
            session.record_fetch_error(str(result.error))
            session.pages_processed += 1
            self.db_session.commit()
            self._write_log(session, unit, Counter(), [], [f"fetch {result.error.kind}: {result.error}"])
            self._emit_update(session, strategy, settings)
            return

        records = result.records
        session.expect_records(len(records))
        self.db_session.commit()
        logger.info(f"Session {session.session_id} unit {unit}: {len(records)} records")

        counts = Counter()
        summaries = []
        errors = []
        for raw in records:
            try:
                outcome = strategy.process_one(raw, session)
            except Exception as e:
                outcome = ProcessResult.error(f"unexpected error: {e}")

            session.apply_outcome(outcome.outcome)
            self.db_session.commit()
            self._emit_update(session, strategy, settings)

            counts[outcome.outcome] += 1
            summaries.append(self._summarize(strategy, raw, outcome))
            if not outcome.ok:
                errors.append(f"{outcome.regulator_id or 'unknown'}: {outcome.reason}")

        session.record_batch(found=len(records), existing=counts[Outcome.EXISTING])
        self.db_session.commit()
        self._write_log(session, unit, counts, summaries, errors)

    def _summarize(self, strategy, raw, outcome: ProcessResult) -> Dict[str, Any]:
        try:
            summary = strategy.summarize(raw) if isinstance(raw, dict) else {}
        except Exception:
            summary = {}
        summary = {k: (v if v is None or isinstance(v, (str, int, float, bool)) else str(v)) for k, v in summary.items()}
        summary.setdefault("regulator_id", outcome.regulator_id)
        summary["outcome"] = outcome.outcome.value
        return summary

    def _write_log(self, session: ScrapeSession, unit, counts: Counter, summaries, errors):
        log = ProcessingLog(
            session_id=session.session_id,
            agency=session.agency,
            record_type=session.record_type,
            batch_or_page=unit if isinstance(unit, int) else session.pages_processed,
            items_found=sum(counts.values()),
            items_created=counts[Outcome.CREATED],
            items_updated=counts[Outcome.UPDATED],
            items_existing=counts[Outcome.EXISTING],
            items_failed=counts[Outcome.ERROR],
            scraped_items=summaries,
            creation_errors=errors,
        )
        self.db_session.add(log)
        self.db_session.commit()
        events.safe_emit(self.event_sink, events.LOG_CREATED, {"log": log.to_dict()})

    def _emit_update(self, session, strategy, settings):
        if not settings.real_time_progress_enabled:
            return
        events.safe_emit(
            self.event_sink,
            events.SESSION_UPDATED,
            {"session": session.to_dict(), "progress": strategy.format_progress(session)},
        )

    def _log_finish(self, session: ScrapeSession, strategy):
        log = logger.info if session.status != "failed" else logger.error
        log("=" * 70)
        log(f"SCRAPE SESSION {session.session_id} - {session.status.upper()}")
        log("=" * 70)
        log(f"  Strategy:    {strategy.display_name()}")
        log(f"  Reason:      {session.stop_reason}")
        log(f"  Duration:    {session.duration_seconds:.1f}s")
        log(f"  Pages:       {session.pages_processed}")
        log("  Totals:")
        log(f"    Found:     {session.records_found}")
        log(f"    Created:   {session.records_created}")
        log(f"    Updated:   {session.records_updated}")
        log(f"    Existing:  {session.records_existing}")
        log(f"    Failed:    {session.records_failed}")
        log(f"    Errors:    {session.errors_count}")
        if session.error_message:
            log(f"  Last error:  {session.error_message}")
        log("=" * 70)
