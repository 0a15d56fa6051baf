"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from pbac.api.routes import register_routes
from pbac.audit import SqlAuditLog
from pbac.config import CONTEXT_MAX_AGE_SECONDS
from pbac.database import init_engine
from pbac.engine import DecisionEngine
from pbac.logging_setup import configure_logging
from pbac.stores import SqlPrincipalStore, SqlResourceStore


def build_engine(db_engine) -> DecisionEngine:
    """Decision engine backed by the SQL stores and audit table."""
    return DecisionEngine(
        resources=SqlResourceStore(db_engine),
        principals=SqlPrincipalStore(db_engine),
        audit=SqlAuditLog(db_engine),
    )


def create_app(decision_engine=None, db_engine=None):
    """Build and return a fully configured Flask application."""
    configure_logging()
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if decision_engine is None:
        try:
            print("[init] Initializing database connection...")
            db_engine = db_engine or init_engine()

            print("[init] Building decision engine...")
            decision_engine = build_engine(db_engine)

            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    app.extensions["pbac"] = decision_engine

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, decision_engine, db_engine)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("PBAC Decision API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Context max age: {CONTEXT_MAX_AGE_SECONDS} seconds")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/authorize")
    print(f"  - POST http://{host}:{port}/api/authorize/batch")
    print(f"  - POST http://{host}:{port}/api/filters")
    print(f"  - GET  http://{host}:{port}/api/me/permissions")
    print(f"  - GET  http://{host}:{port}/api/security/report")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
