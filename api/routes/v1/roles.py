"""
api/routes/v1/roles.py -- Role bootstrap and member management.

Routes:
  POST   /api/v1/roles/initialize          -- first caller becomes administrator
  GET    /api/v1/roles/me                  -- caller's role
  GET    /api/v1/roles/members             -- all role assignments (administrator)
  POST   /api/v1/roles/members             -- add a member by email (administrator)
  DELETE /api/v1/roles/members/{role_id}   -- remove a role (administrator)

Authorization lives in vault.roles.RoleService; handlers only translate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import AddMemberRequest, RoleAssignmentResponse, RoleResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.post("/roles/initialize", response_model=RoleAssignmentResponse, status_code=201)
def initialize_administrator(
    request: Request, current_user: User = Depends(get_current_user)
) -> RoleAssignmentResponse:
    """Make the caller the tenant administrator. 409 once any role exists."""
    assignment = request.app.state.roles.initialize_administrator(current_user)
    return RoleAssignmentResponse.from_domain(assignment)


@router.get("/roles/me", response_model=RoleResponse)
def get_role(request: Request, current_user: User = Depends(get_current_user)) -> RoleResponse:
    return RoleResponse(role=request.app.state.roles.get_role(current_user).value)


@router.get("/roles/members", response_model=list[RoleAssignmentResponse])
def list_members(request: Request, current_user: User = Depends(get_current_user)) -> list[RoleAssignmentResponse]:
    return [RoleAssignmentResponse.from_domain(a) for a in request.app.state.roles.list_members(current_user)]


@router.post("/roles/members", response_model=RoleAssignmentResponse, status_code=201)
def add_member(
    request: Request,
    body: AddMemberRequest,
    current_user: User = Depends(get_current_user),
) -> RoleAssignmentResponse:
    assignment = request.app.state.roles.add_member(current_user, body.email)
    return RoleAssignmentResponse.from_domain(assignment)


@router.delete("/roles/members/{role_id}", status_code=204)
def remove_member(request: Request, role_id: str, current_user: User = Depends(get_current_user)) -> Response:
    """Remove a role. The removed principal's incoming share grants go with it."""
    request.app.state.roles.remove_member(current_user, role_id)
    return Response(status_code=204)
