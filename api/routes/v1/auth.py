"""
api/routes/v1/auth.py -- Registration, login and session endpoints.

Routes:
  POST /api/v1/auth/register   -- create a principal (when self-registration is on)
  POST /api/v1/auth/login      -- password login; sets JWT cookie, returns token
  POST /api/v1/auth/logout     -- clears cookie; 200
  GET  /api/v1/auth/me         -- current principal and role (requires auth)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  A new principal holds no role. Roles are assigned through /roles only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, LoginResponse, PrincipalResponse, RegisterRequest
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:  public, only while SELF_REGISTRATION_ENABLED
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:        requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/register", response_model=PrincipalResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> PrincipalResponse:
    """Create a principal with no role.

    The first principal becomes administrator only by calling
    POST /roles/initialize; registration never assigns a role.
    """
    settings = get_settings()
    if not settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    if len(body.password) < settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "invalid_input",
                "message": f"Password must be at least {settings.min_password_length} characters.",
            },
        )

    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(User(email=body.email, hashed_password=hash_password(body.password)))
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists."},
        ) from exc

    created = user_store.get_by_id(user_id)
    return PrincipalResponse(
        user_id=created.id,
        email=created.email,
        role=user_store.get_role(created.id).value,
        created_at=created.created_at or "",
    )


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for unknown email and wrong password
    ("bad_credentials") to avoid leaking which emails are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    user_store.update_last_login(user.id)
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=get_settings().token_expire_seconds,
            email=user.email,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me", response_model=PrincipalResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> PrincipalResponse:
    """Return identity and current role for the authenticated principal."""
    return PrincipalResponse(
        user_id=current_user.id,
        email=current_user.email,
        role=request.app.state.roles.get_role(current_user).value,
        created_at=current_user.created_at or "",
    )
