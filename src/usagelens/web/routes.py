"""Route handlers — maps URLs to reader operations and JSON responses."""

from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, current_app, jsonify, request

from usagelens.datasource import (
    active_data_source,
    get_import_meta,
    has_imported_data,
    set_data_source,
)
from usagelens.reader import StatsReader, reader_for_config

bp = Blueprint("api", __name__, url_prefix="/api")


def _reader() -> StatsReader:
    return reader_for_config(
        current_app.config["USAGELENS"],
        current_app.config["RECONCILIATION_CACHE"],
    )


@bp.route("/stats")
def stats():
    """Dashboard totals: snapshot reconciled with recent activity."""
    return jsonify(asdict(_reader().get_dashboard_stats()))


@bp.route("/projects")
def projects():
    return jsonify([asdict(p) for p in _reader().get_projects()])


@bp.route("/sessions")
def sessions():
    """Session list; ?q= searches, ?projectId= filters, else paginates."""
    reader = _reader()
    query = request.args.get("q")
    project_id = request.args.get("projectId")
    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)

    if query:
        found = reader.search_sessions(query, limit=limit)
    elif project_id:
        found = reader.get_project_sessions(project_id)
    else:
        found = reader.get_sessions(limit=limit, offset=offset)
    return jsonify([asdict(s) for s in found])


@bp.route("/sessions/<session_id>")
def session_detail(session_id):
    detail = _reader().get_session_detail(session_id)
    if detail is None:
        return jsonify({"error": "Session not found"}), 404
    return jsonify(asdict(detail))


@bp.route("/data-source")
def data_source():
    config = current_app.config["USAGELENS"]
    return jsonify({
        "active": active_data_source(config),
        "has_imported_data": has_imported_data(config),
        "import_meta": get_import_meta(config),
    })


@bp.route("/data-source", methods=["POST"])
def switch_data_source():
    """Select the live or imported corpus and persist the choice."""
    config = current_app.config["USAGELENS"]
    payload = request.get_json(silent=True) or {}
    try:
        set_data_source(config, payload.get("source", ""), current_app.config["CONFIG_PATH"])
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"active": active_data_source(config)})
