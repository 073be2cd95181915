"""Flask app factory — creates and configures the stats API application."""

from __future__ import annotations

from flask import Flask, jsonify

from usagelens.cache import SingleSlotCache
from usagelens.config import UsageLensConfig
from usagelens.reader import make_cache
from usagelens.snapshot import SnapshotError


def create_app(config: UsageLensConfig, cache: SingleSlotCache | None = None) -> Flask:
    """Create the Flask app with config values and registered routes.

    Args:
        config: UsageLensConfig with claude_dir, import_dir, data_source, etc.
        cache: reconciliation cache shared by all requests; one is built
            from config.cache_ttl_seconds when omitted.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)

    app.config["USAGELENS"] = config
    app.config["RECONCILIATION_CACHE"] = cache if cache is not None else make_cache(config)
    app.config["CONFIG_PATH"] = None

    from usagelens.web.routes import bp

    app.register_blueprint(bp)

    @app.errorhandler(SnapshotError)
    def snapshot_error(exc):
        app.logger.error("Stats snapshot unreadable: %s", exc)
        return jsonify({"error": str(exc)}), 500

    return app
