"""
Bearer-token handling and the view interceptor for the Flask API.

Tokens are issued by the identity provider (HS256, shared secret). This module
only decodes them into a Principal; it never authenticates credentials.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import current_app, g, jsonify, request

from pbac.config import JWT_ALGORITHM, NOT_FOUND_OR_DENIED, SECRET_KEY
from pbac.models import Principal
from pbac.rules import TIMING_CONTEXT_KEYS


def generate_token(principal_id: str, role: str, status: str = "active",
                   session_id: Optional[str] = None, expires_minutes: int = 60) -> str:
    """Mint a token the way the identity provider does (local development and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": principal_id,
        "role": role,
        "status": status,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    if session_id:
        payload["sid"] = session_id
    return jwt.encode(payload, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a token and return its claims (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def principal_from_claims(claims: Dict[str, Any]) -> Principal:
    """Principal for this request, stamped with the current time."""
    return Principal(
        id=claims.get("sub"),
        role=claims.get("role"),
        status=claims.get("status", "active"),
        decision_timestamp=datetime.now(timezone.utc),
        session_id=claims.get("sid"),
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def current_principal():
    """Returns ``(principal, error_response)``; exactly one of them is None."""
    if "Authorization" not in request.headers:
        return None, (jsonify({"error": "Authentication token is missing"}), 401)
    token = bearer_token()
    if not token:
        return None, (jsonify({"error": "Invalid authorization header format"}), 401)
    claims = verify_token(token)
    if not claims:
        return None, (jsonify({"error": "Invalid or expired token"}), 401)
    return principal_from_claims(claims), None


def token_required(f):
    """Reject requests without a valid bearer token; sets ``g.principal``."""
    @wraps(f)
    def decorated(*args, **kwargs):
        principal, error = current_principal()
        if error:
            return error
        g.principal = principal
        return f(*args, **kwargs)

    return decorated


def decision_engine():
    return current_app.extensions["pbac"]


def request_business_context(value: Any) -> Optional[Dict[str, Any]]:
    """Business context from a request body, without client-supplied timing."""
    if not isinstance(value, dict):
        return None
    return {k: v for k, v in value.items() if k not in TIMING_CONTEXT_KEYS}


def denial_response(reason: Optional[str]):
    """Map a denial to the generic response an end user sees."""
    if reason == NOT_FOUND_OR_DENIED:
        return jsonify({"error": "Not found"}), 404
    return jsonify({"error": "Forbidden"}), 403


def authorization_required(resource_type: str, action: str, id_arg: str = "resource_id"):
    """
    Evaluate ``resource_type:action`` on the id taken from the view's
    ``id_arg`` keyword before the view runs.

    The granted result is available to the view as ``g.authorization``.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            principal, error = current_principal()
            if error:
                return error
            g.principal = principal

            body = request.get_json(silent=True) or {}
            business_context = body.get("business_context") if isinstance(body, dict) else None

            result = decision_engine().evaluate(
                resource_type,
                str(kwargs.get(id_arg)),
                action,
                principal,
                request_business_context(business_context),
            )
            if not result.authorized:
                return denial_response(result.reason)

            g.authorization = result
            return f(*args, **kwargs)

        return decorated

    return decorator
