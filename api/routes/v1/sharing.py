"""
api/routes/v1/sharing.py -- Sharing graph endpoints.

Routes:
  POST   /api/v1/secrets/{id}/shares               -- share with a member (administrator + owner)
  DELETE /api/v1/secrets/{id}/shares/{grantee_id}  -- revoke; idempotent
  GET    /api/v1/shared-secrets                    -- keys shared with the calling member
  GET    /api/v1/sharing                           -- administrator sharing overview
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import ShareGrantResponse, SharedSecretResponse, ShareRequest, SharingOverviewResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.post("/secrets/{secret_id}/shares", response_model=ShareGrantResponse, status_code=201)
def share_secret(
    request: Request,
    secret_id: str,
    body: ShareRequest,
    current_user: User = Depends(get_current_user),
) -> ShareGrantResponse:
    grant = request.app.state.sharing.share_secret(current_user, secret_id, body.grantee_id)
    return ShareGrantResponse.from_domain(grant)


@router.delete("/secrets/{secret_id}/shares/{grantee_id}", status_code=204)
def unshare_secret(
    request: Request,
    secret_id: str,
    grantee_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    request.app.state.sharing.unshare_secret(current_user, secret_id, grantee_id)
    return Response(status_code=204)


@router.get("/shared-secrets", response_model=list[SharedSecretResponse])
def list_shared_with_me(
    request: Request, current_user: User = Depends(get_current_user)
) -> list[SharedSecretResponse]:
    return [SharedSecretResponse.from_domain(s) for s in request.app.state.sharing.list_shared_with(current_user)]


@router.get("/sharing", response_model=SharingOverviewResponse)
def sharing_overview(request: Request, current_user: User = Depends(get_current_user)) -> SharingOverviewResponse:
    return SharingOverviewResponse.from_domain(request.app.state.sharing.sharing_overview(current_user))
