"""
Scraping API Routes

Provides endpoints for:
- Available strategies (agency x record type)
- Starting a scrape session (runs in the background)
- Session status, progress and processing logs
- Cooperative stop
- Active scraping configuration
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from models.processing_log import ProcessingLog
from scraping.errors import InvalidParams, ScrapingDisabled, SessionNotFound, StrategyNotFoundError

logger = logging.getLogger(__name__)

scraping_bp = Blueprint('scraping', __name__)


def get_coordinator():
    """Per-app coordinator (tests may pre-seed app.extensions)."""
    from scraping.coordinator import ScrapeCoordinator

    coordinator = current_app.extensions.get('scrape_coordinator')
    if coordinator is None:
        coordinator = ScrapeCoordinator(app=current_app._get_current_object())
        current_app.extensions['scrape_coordinator'] = coordinator
    return coordinator


@scraping_bp.route("/strategies", methods=["GET"])
def list_strategies():
    """List registered strategies."""
    from scraping.registry import describe_strategies

    strategies = describe_strategies()
    return jsonify({"count": len(strategies), "data": strategies})


@scraping_bp.route("/sessions", methods=["POST"])
def start_session():
    """
    Start a scrape session.

    Body (JSON):
        - agency: 'hse' or 'environment_agency' (alias 'ea')
        - record_type: 'case' or 'notice'
        - params: strategy params (start_page/max_pages/database/country
                  or date_from/date_to/action_types)
        - actor: who triggered the run (optional)

    Returns:
        202 with session_id; 400 invalid params; 404 unknown strategy;
        403 scraping disabled
    """
    body = request.get_json(silent=True) or {}
    agency = body.get("agency")
    record_type = body.get("record_type")
    if not agency or not record_type:
        return jsonify({"error": "agency and record_type are required"}), 400

    try:
        session_id = get_coordinator().start_session(
            agency,
            record_type,
            body.get("params") or {},
            actor=body.get("actor") or "api",
        )
    except StrategyNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InvalidParams as e:
        return jsonify({"error": e.reason}), 400
    except ScrapingDisabled as e:
        return jsonify({"error": str(e)}), 403

    logger.info(f"POST /api/scraping/sessions started {session_id}")
    return jsonify({"session_id": session_id, "status": "running"}), 202


@scraping_bp.route("/sessions", methods=["GET"])
def list_sessions():
    """
    List sessions.

    Query params:
        - status: 'active' (pending/running) or a concrete status (optional)
        - limit: Max results (default 50)
    """
    from models.scrape_session import ScrapeSession

    status = request.args.get("status")
    limit = request.args.get("limit", 50, type=int)

    if status == "active":
        sessions = get_coordinator().active_sessions()[:limit]
    else:
        query = ScrapeSession.query
        if status:
            query = query.filter(ScrapeSession.status == status)
        sessions = query.order_by(ScrapeSession.created_at.desc()).limit(limit).all()

    return jsonify({"count": len(sessions), "data": [s.to_dict() for s in sessions]})


@scraping_bp.route("/sessions/<session_id>", methods=["GET"])
def get_session(session_id):
    """Session state, summary and strategy-formatted progress."""
    coordinator = get_coordinator()
    try:
        session = coordinator.get_session(session_id)
        progress = coordinator.get_progress(session_id)
    except SessionNotFound as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({
        "session": session.to_dict(),
        "summary": session.summary(),
        "progress": progress,
    })


@scraping_bp.route("/sessions/<session_id>/stop", methods=["POST"])
def stop_session(session_id):
    """Request a cooperative stop."""
    try:
        session = get_coordinator().stop_session(session_id)
    except SessionNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"session": session.to_dict()})


@scraping_bp.route("/sessions/<session_id>/logs", methods=["GET"])
def get_session_logs(session_id):
    """Processing log rows for a session, in batch order."""
    logs = ProcessingLog.for_session(session_id)
    return jsonify({"count": len(logs), "data": [log.to_dict() for log in logs]})


@scraping_bp.route("/config", methods=["GET"])
def get_config():
    """Effective scraping settings plus per-agency rate limits."""
    from scraping.rate_limiter import get_scraper_rate_limiter
    from scraping.registry import STRATEGIES
    from scraping.settings import load_scraping_settings

    settings = load_scraping_settings()
    limiter = get_scraper_rate_limiter()
    agencies = sorted({agency for agency, _ in STRATEGIES})

    return jsonify({
        "settings": settings.to_dict(),
        "rate_limits": {agency: limiter.get_rate_limit_info(agency, settings) for agency in agencies},
    })
