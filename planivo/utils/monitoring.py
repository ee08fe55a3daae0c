# planivo/utils/monitoring.py

from datetime import datetime, timezone

from flask import Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from planivo.models import db


class HealthChecker:
    """Database reachability check backing the health endpoint"""

    def __init__(self, app=None):
        self.app = app

    def check_database(self):
        try:
            db.session.execute(text("SELECT 1"))
            return {"status": "ok"}
        except SQLAlchemyError as e:
            db.session.rollback()
            if self.app is not None:
                self.app.logger.error(f"Database health check failed: {str(e)}")
            return {"status": "error", "error": str(e)}

    def get_health_status(self):
        database = self.check_database()
        status = "ok" if database["status"] == "ok" else "error"
        return {
            "status": status,
            "database": database["status"],
            "version": self.app.config.get("APP_VERSION") if self.app is not None else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def init_monitoring(app):
    """Register the health endpoint and, when MONITORING_ENABLED, the Prometheus endpoint"""
    checker = HealthChecker(app)

    @app.route(app.config.get("HEALTH_CHECK_ENDPOINT", "/health"), endpoint="health")
    def health():
        payload = checker.get_health_status()
        return jsonify(payload), 200 if payload["status"] == "ok" else 503

    if app.config.get("MONITORING_ENABLED", False):

        @app.route(app.config.get("METRICS_ENDPOINT", "/metrics"), endpoint="metrics")
        def metrics():
            return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

        app.logger.info("Prometheus metrics exposed")

    return checker
