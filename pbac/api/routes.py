"""
Flask route handlers for the decision API.
"""

import sys
import traceback

from flask import g, jsonify, request

from pbac.api.auth import (
    authorization_required,
    current_principal,
    request_business_context,
    token_required,
)
from pbac.config import MAX_BATCH_IDS
from pbac.database import check_connection
from pbac.models import Action, AuthorizationRequest
from pbac.resources import RESOURCE_TYPES

_ACTIONS = {a.value for a in Action}
_REPORT_PERMISSION = "audit:read"


def _json_body():
    if not request.is_json:
        return None, (jsonify({"error": "Content-Type must be application/json"}), 400)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, (jsonify({"error": "Request body must be a JSON object"}), 400)
    return data, None


def _target(data):
    """Validate resource_type / action of a request body."""
    resource_type = str(data.get("resource_type", "")).strip().lower()
    action = str(data.get("action", "")).strip().lower()
    if not resource_type or not action:
        return None, (jsonify({"error": "resource_type and action are required"}), 400)
    if action not in _ACTIONS:
        return None, (jsonify({"error": f"Unknown action '{action}'"}), 400)
    return (resource_type, action), None


def register_routes(app, decision_engine, db_engine=None):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "PBAC Decision API",
            "version": "1.0.0",
            "status": "running",
            "resource_types": sorted(RESOURCE_TYPES),
            "endpoints": {
                "authorize": "/api/authorize",
                "batch": "/api/authorize/batch",
                "filters": "/api/filters",
                "permissions": "/api/me/permissions",
                "report": "/api/security/report",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": db_engine is None or check_connection(db_engine), "audit": False}
        try:
            decision_engine.audit.recent(1)
            checks["audit"] = True
        except Exception as e:
            print(f"[WARN] Audit log unavailable: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Decisions ────────────────────────────────────────────────────

    @app.route("/api/authorize", methods=["POST"])
    @token_required
    def authorize():
        data, error = _json_body()
        if error:
            return error
        target, error = _target(data)
        if error:
            return error
        resource_id = str(data.get("resource_id", "")).strip()
        if not resource_id:
            return jsonify({"error": "resource_id is required"}), 400

        business_context = data.get("business_context") or {}
        if not isinstance(business_context, dict):
            return jsonify({"error": "business_context must be an object"}), 400

        resource_type, action = target
        result = decision_engine.evaluate_request(AuthorizationRequest(
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            principal=g.principal,
            business_context=request_business_context(business_context),
        ))
        return jsonify(result.to_dict()), 200

    @app.route("/api/authorize/batch", methods=["POST"])
    @token_required
    def authorize_batch():
        data, error = _json_body()
        if error:
            return error
        target, error = _target(data)
        if error:
            return error

        resource_ids = data.get("resource_ids")
        if not isinstance(resource_ids, list) or not resource_ids:
            return jsonify({"error": "resource_ids must be a non-empty list"}), 400
        if len(resource_ids) > MAX_BATCH_IDS:
            return jsonify({"error": f"At most {MAX_BATCH_IDS} resource_ids per request"}), 400

        business_context = data.get("business_context") or {}
        if not isinstance(business_context, dict):
            return jsonify({"error": "business_context must be an object"}), 400

        resource_type, action = target
        batch = decision_engine.evaluate_batch(
            resource_type,
            [str(rid) for rid in resource_ids],
            action,
            g.principal,
            request_business_context(business_context),
        )
        return jsonify(batch.to_dict()), 200

    @app.route("/api/filters", methods=["POST"])
    def query_filter():
        data, error = _json_body()
        if error:
            return error
        resource_type = str(data.get("resource_type", "")).strip().lower()
        permission = str(data.get("permission", "")).strip()
        if not resource_type or not permission:
            return jsonify({"error": "resource_type and permission are required"}), 400

        principal = None
        if "Authorization" in request.headers:
            principal, error = current_principal()
            if error:
                return error

        artifact = decision_engine.build_filter(principal, resource_type, permission)
        return jsonify(artifact.to_dict()), 200

    # ── Introspection ────────────────────────────────────────────────

    @app.route("/api/me/permissions", methods=["GET"])
    @token_required
    def my_permissions():
        summary = decision_engine.permissions_of(g.principal.id)
        return jsonify(summary.to_dict()), 200

    @app.route("/api/security/report", methods=["GET"])
    @token_required
    def security_report():
        caller = decision_engine.permissions_of(g.principal.id)
        granted = set(caller.permissions)
        if caller.restrictions or not ({_REPORT_PERMISSION, "*"} & granted):
            return jsonify({"error": "Forbidden"}), 403

        try:
            report = decision_engine.security_report(request.args.get("principal_id") or None)
        except Exception as e:
            print(f"[ERROR] Security report error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Failed to build security report"}), 500
        return jsonify(report.to_dict()), 200

    # ── Guarded resource views ───────────────────────────────────────

    @app.route("/api/appointments/<resource_id>/access", methods=["GET", "POST"])
    @authorization_required("appointment", "read")
    def appointment_access(resource_id):
        return jsonify({"resource_id": resource_id, **g.authorization.to_dict()}), 200

    @app.route("/api/appointments/<resource_id>/cancellation", methods=["POST"])
    @authorization_required("appointment", "cancel")
    def appointment_cancellation(resource_id):
        return jsonify({
            "resource_id": resource_id,
            "cancellable": True,
            "conditions": list(g.authorization.conditions),
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
