"""
api/routes/v1/secrets.py -- Secret record endpoints.

Routes:
  POST   /api/v1/secrets               -- store a new API key
  GET    /api/v1/secrets               -- caller's keys (?provider_id= to scope)
  POST   /api/v1/secrets/{id}/reveal   -- plaintext for transient display
  DELETE /api/v1/secrets/{id}          -- soft-delete (owner only)

Security:
  Reveal is a POST so the plaintext never lands in an access log URL or a
  browser history entry, and its response carries Cache-Control: no-store.
  Listing responses carry the display prefix only.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.models import RevealResponse, SecretCreate, SecretResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.post("/secrets", response_model=SecretResponse, status_code=201)
def create_secret(
    request: Request,
    body: SecretCreate,
    current_user: User = Depends(get_current_user),
) -> SecretResponse:
    record = request.app.state.vault.create_secret(current_user, body.provider_id, body.label, body.key)
    return SecretResponse.from_domain(record)


@router.get("/secrets", response_model=list[SecretResponse])
def list_secrets(
    request: Request,
    provider_id: Optional[str] = Query(default=None, max_length=36),
    current_user: User = Depends(get_current_user),
) -> list[SecretResponse]:
    records = request.app.state.vault.list_secrets(current_user, provider_id=provider_id)
    return [SecretResponse.from_domain(r) for r in records]


@router.post("/secrets/{secret_id}/reveal", response_model=RevealResponse)
def reveal_secret(
    request: Request,
    secret_id: str,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Return the plaintext if the caller owns the key or it is shared with them."""
    revealed = request.app.state.vault.reveal_secret(current_user, secret_id)
    resp = JSONResponse(content=RevealResponse.from_domain(revealed).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    resp.headers["Pragma"] = "no-cache"
    return resp


@router.delete("/secrets/{secret_id}", status_code=204)
def delete_secret(request: Request, secret_id: str, current_user: User = Depends(get_current_user)) -> Response:
    request.app.state.vault.delete_secret(current_user, secret_id)
    return Response(status_code=204)
