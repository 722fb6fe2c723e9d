#!/usr/bin/env python3
"""
MACWATCH Flask API
==================

Pull-based metrics and status endpoint.

Routes:
- /metrics: Prometheus text exposition of all counters
- /api/health: liveness check
- /api/status: capture / queue / store status
- /api/bindings: current identity -> MAC bindings
- /api/alerts: recent non-unchanged outcomes
"""

from datetime import datetime

from flask import Flask, Response, jsonify, request
from loguru import logger


PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def create_app(config: dict, orchestrator=None) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Application configuration dict
        orchestrator: MacwatchOrchestrator instance

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.config["DEBUG"] = config.get("general", {}).get("debug", False)

    app.orchestrator = orchestrator
    app.config_data = config

    register_routes(app)

    logger.info("Flask app created successfully")
    return app


def register_routes(app: Flask):
    """Register all API routes."""

    @app.route("/metrics")
    def metrics():
        """Counters in Prometheus text format."""
        if not app.orchestrator:
            return Response("", status=503, mimetype="text/plain")
        body = app.orchestrator.metrics.render()
        return Response(body, content_type=PROMETHEUS_CONTENT_TYPE)

    @app.route("/api/health")
    def health_check():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "service": "MACWATCH",
            "version": app.config_data.get("general", {}).get("version", "1.0.0"),
            "timestamp": datetime.now().isoformat()
        })

    @app.route("/api/status")
    def get_status():
        """Get system status."""
        if app.orchestrator:
            status = app.orchestrator.get_status()
        else:
            status = {
                "running": False,
                "mode": "not_initialized"
            }

        return jsonify({
            "success": True,
            "data": status,
            "timestamp": datetime.now().isoformat()
        })

    @app.route("/api/bindings")
    def get_bindings():
        """Current bindings, optionally filtered by interface scope or prefix."""
        if not app.orchestrator:
            return jsonify({"success": False, "error": "Not initialized"}), 503

        bindings = app.orchestrator.store.snapshot()
        prefix = request.args.get("prefix")
        if prefix:
            bindings = {k: v for k, v in bindings.items() if k.startswith(prefix)}

        return jsonify({
            "success": True,
            "data": [{"identity": k, "mac": v} for k, v in sorted(bindings.items())],
            "count": len(bindings)
        })

    @app.route("/api/alerts")
    def get_alerts():
        """Recent alert-worthy outcomes."""
        if not app.orchestrator:
            return jsonify({"success": False, "error": "Not initialized"}), 503

        limit = request.args.get("limit", 50, type=int)
        alerts = app.orchestrator.engine.get_recent_outcomes(limit=limit)
        return jsonify({
            "success": True,
            "data": alerts,
            "count": len(alerts)
        })
