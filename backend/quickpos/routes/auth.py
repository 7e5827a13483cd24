# backend/quickpos/routes/auth.py
"""
Authentication API routes

- POST /register: self-registration (staff accounts, never admin)
- POST /login: email + password -> bearer session token
- POST /logout: revoke the presented token
- GET /me: current user
"""

from flask import Blueprint, request, g, current_app

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError, UserExistsError
from ..decorators import require_auth
from ..responses import ok, fail


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, token: str) -> dict:
    return {"token": token, "user": user.to_ref() | {"isAdmin": user.is_admin}}


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password") or "",
            phone=data.get("phone"),
            address=data.get("address"),
        )
    except (PasswordValidationError, UserExistsError, ValueError) as e:
        return fail(str(e), 400)

    _, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info("User registered: %s", user.email)
    return ok(status=201, **_session_payload(user, token))


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return fail("Email and password are required", 400)

    user = auth_service.authenticate(email, password)
    if not user:
        current_app.logger.info("Failed login for %s", email)
        return fail("Invalid credentials", 401)

    _, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return ok(**_session_payload(user, token))


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok(g.current_user.to_dict())
