"""
api/routes/v1/catalog.py -- Provider and tier endpoints.

Routes:
  GET    /api/v1/providers          -- caller's live providers
  POST   /api/v1/providers          -- create (administrator)
  GET    /api/v1/providers/{id}     -- one provider (owner)
  PATCH  /api/v1/providers/{id}     -- partial update (owner)
  DELETE /api/v1/providers/{id}     -- soft-delete (owner)
  GET    /api/v1/tiers              -- all tiers by sort order
  POST   /api/v1/tiers              -- create (administrator)
  POST   /api/v1/tiers/seed         -- default S/A/B/C/D tiers (administrator)
  GET    /api/v1/tiers/{id}
  PUT    /api/v1/tiers/{id}         -- replace (administrator, owner)
  DELETE /api/v1/tiers/{id}         -- 409 while a live provider uses it
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import ProviderCreate, ProviderResponse, ProviderUpdate, TierCreate, TierResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@router.get("/providers", response_model=list[ProviderResponse])
def list_providers(request: Request, current_user: User = Depends(get_current_user)) -> list[ProviderResponse]:
    return [ProviderResponse.from_domain(p) for p in request.app.state.catalog.list_providers(current_user)]


@router.post("/providers", response_model=ProviderResponse, status_code=201)
def create_provider(
    request: Request,
    body: ProviderCreate,
    current_user: User = Depends(get_current_user),
) -> ProviderResponse:
    provider = request.app.state.catalog.create_provider(current_user, body.model_dump())
    return ProviderResponse.from_domain(provider)


@router.get("/providers/{provider_id}", response_model=ProviderResponse)
def get_provider(request: Request, provider_id: str, current_user: User = Depends(get_current_user)) -> ProviderResponse:
    return ProviderResponse.from_domain(request.app.state.catalog.get_provider(current_user, provider_id))


@router.patch("/providers/{provider_id}", response_model=ProviderResponse)
def update_provider(
    request: Request,
    provider_id: str,
    body: ProviderUpdate,
    current_user: User = Depends(get_current_user),
) -> ProviderResponse:
    """Only the fields present in the body are changed."""
    provider = request.app.state.catalog.update_provider(
        current_user, provider_id, body.model_dump(exclude_unset=True)
    )
    return ProviderResponse.from_domain(provider)


@router.delete("/providers/{provider_id}", status_code=204)
def delete_provider(request: Request, provider_id: str, current_user: User = Depends(get_current_user)) -> Response:
    request.app.state.catalog.delete_provider(current_user, provider_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


@router.get("/tiers", response_model=list[TierResponse])
def list_tiers(request: Request, current_user: User = Depends(get_current_user)) -> list[TierResponse]:
    return [TierResponse.from_domain(t) for t in request.app.state.catalog.list_tiers(current_user)]


@router.post("/tiers", response_model=TierResponse, status_code=201)
def create_tier(request: Request, body: TierCreate, current_user: User = Depends(get_current_user)) -> TierResponse:
    return TierResponse.from_domain(request.app.state.catalog.create_tier(current_user, body.model_dump()))


# Declared before /tiers/{tier_id} routes so "seed" is never read as an id.
@router.post("/tiers/seed", response_model=list[TierResponse], status_code=201)
def seed_default_tiers(request: Request, current_user: User = Depends(get_current_user)) -> list[TierResponse]:
    return [TierResponse.from_domain(t) for t in request.app.state.catalog.seed_default_tiers(current_user)]


@router.get("/tiers/{tier_id}", response_model=TierResponse)
def get_tier(request: Request, tier_id: str, current_user: User = Depends(get_current_user)) -> TierResponse:
    return TierResponse.from_domain(request.app.state.catalog.get_tier(current_user, tier_id))


@router.put("/tiers/{tier_id}", response_model=TierResponse)
def update_tier(
    request: Request,
    tier_id: str,
    body: TierCreate,
    current_user: User = Depends(get_current_user),
) -> TierResponse:
    return TierResponse.from_domain(request.app.state.catalog.update_tier(current_user, tier_id, body.model_dump()))


@router.delete("/tiers/{tier_id}", status_code=204)
def delete_tier(request: Request, tier_id: str, current_user: User = Depends(get_current_user)) -> Response:
    request.app.state.catalog.delete_tier(current_user, tier_id)
    return Response(status_code=204)
