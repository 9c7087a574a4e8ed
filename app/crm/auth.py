from __future__ import annotations

import re
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from app.crm.audit import record_event
from app.crm.db import db_session
from app.crm.errors import AuthenticationError, DuplicateEmailError, FieldError, ValidationError
from app.crm.models import User
from app.crm.utils import request_payload

bp = Blueprint("auth", __name__)

_TOKEN_SALT = "crm-auth"
_PASSWORD_MIN_LEN = 6
_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({"uid": user.id})


def _user_from_token(token: str) -> User:
    try:
        data = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE_SECONDS"])
    except SignatureExpired as e:
        raise AuthenticationError("Token expired.") from e
    except BadSignature as e:
        raise AuthenticationError("Invalid token.") from e
    uid = data.get("uid") if isinstance(data, dict) else None
    if not isinstance(uid, int):
        raise AuthenticationError("Invalid token.")
    user = db_session().get(User, uid)
    if not user or not user.is_active:
        raise AuthenticationError("Invalid token.")
    return user


def authenticate(token: str) -> int:
    """Verify a bearer token and return the user id it identifies."""
    return _user_from_token(token).id


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_user() -> None:
    """
    Loads g.current_user from the bearer token (None when absent or invalid).
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_error = None

    token = _bearer_token()
    if not token:
        return
    try:
        g.current_user = _user_from_token(token)
    except AuthenticationError as e:
        g.auth_error = e


def require_user(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user:
            raise getattr(g, "auth_error", None) or AuthenticationError()
        return fn(*args, **kwargs)

    return wrapped


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _login_attempts() -> dict[str, list[datetime]]:
    # Per-process, per-app counters keyed by client IP.
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=current_app.config["LOGIN_RATE_WINDOW_SECONDS"])
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= current_app.config["LOGIN_RATE_LIMIT"]


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def _auth_response(user: User, message: str, status: int):
    return jsonify({"message": message, "token": issue_token(user), "user": user.to_dict()}), status


def validate_registration(payload: dict[str, Any]) -> list[FieldError]:
    errs: list[FieldError] = []
    for key in ("first_name", "last_name", "email", "password", "password_confirm"):
        if not str(payload.get(key) or "").strip():
            errs.append(FieldError(key, "All fields are required."))
    if errs:
        return errs
    password = str(payload.get("password"))
    if password != str(payload.get("password_confirm")):
        errs.append(FieldError("password_confirm", "Passwords do not match."))
    if len(password) < _PASSWORD_MIN_LEN:
        errs.append(FieldError("password", f"Password must be at least {_PASSWORD_MIN_LEN} characters."))
    if not _EMAIL_RE.fullmatch(str(payload.get("email")).strip()):
        errs.append(FieldError("email", "Invalid email format."))
    return errs


@bp.post("/register")
def register():
    payload = request_payload()
    errs = validate_registration(payload)
    if errs:
        raise ValidationError(errs)

    email = str(payload["email"]).strip().lower()
    s = db_session()
    if s.query(User).filter(User.email == email).one_or_none():
        raise DuplicateEmailError("Email already registered.")

    try:
        with s.begin_nested():
            user = User(
                first_name=str(payload["first_name"]).strip(),
                last_name=str(payload["last_name"]).strip(),
                email=email,
                password_hash=generate_password_hash(str(payload["password"])),
                is_active=True,
            )
            s.add(user)
            s.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent registration for the same email.
        raise DuplicateEmailError("Email already registered.") from e

    record_event(s, actor_id=user.id, action="user.register", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Registered user %s (request_id=%s)", user.id, getattr(g, "request_id", None))
    return _auth_response(user, "Registration successful", 201)


@bp.post("/login")
def login():
    payload = request_payload()
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if not email or not password:
        raise ValidationError(
            [FieldError(k, "Email and password are required.") for k, v in (("email", email), ("password", password)) if not v]
        )

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait and try again."}), 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor_id=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email[:128],
                metadata={"email": email},
            )
            s.commit()
            raise AuthenticationError("Invalid email or password.")

        _login_attempts().pop(ip, None)
        record_event(s, actor_id=user.id, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return _auth_response(user, "Login successful", 200)
    except AuthenticationError:
        raise
    except Exception:
        current_app.logger.exception("Login crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.get("/me")
@require_user
def me():
    return jsonify({"user": current_user().to_dict()})
