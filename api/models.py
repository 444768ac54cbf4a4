"""
API request and response models for KeyShelf REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in vault/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two through the from_domain() factories below.

No response model here carries a secret handle. The only model that carries
plaintext is RevealResponse.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import RoleAssignment
from vault.models import (
    Provider,
    RevealedSecret,
    SecretRecord,
    SharedSecretSummary,
    ShareGrant,
    SharingOverview,
    Tier,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _normalize_email(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Minimum password length is a runtime setting, so the route checks it;
    the model only caps the length.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    email: str


class PrincipalResponse(BaseModel):
    """A principal as returned by register and /auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: str
    created_at: str = ""


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class AddMemberRequest(BaseModel):
    email: str = Field(max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str


class RoleAssignmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: int
    role: str
    email: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_domain(cls, assignment: RoleAssignment) -> "RoleAssignmentResponse":
        return cls(
            id=assignment.id,
            user_id=assignment.user_id,
            role=assignment.role.value,
            email=assignment.email,
            created_at=assignment.created_at or "",
        )


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


class SecretCreate(BaseModel):
    """Request body for POST /api/v1/secrets.

    label and key are trimmed and checked for emptiness by the vault service
    so a blank value is reported as invalid_input, not a schema error.
    """

    provider_id: str = Field(max_length=36)
    label: str = Field(max_length=255)
    key: str = Field(max_length=4096, repr=False)


class SecretResponse(BaseModel):
    """A secret record as listed. Prefix only."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    provider_name: Optional[str] = None
    label: str
    key_prefix: str
    created_at: str = ""

    @classmethod
    def from_domain(cls, record: SecretRecord) -> "SecretResponse":
        return cls(
            id=record.id,
            provider_id=record.provider_id,
            provider_name=record.provider_name,
            label=record.label,
            key_prefix=record.key_prefix,
            created_at=record.created_at,
        )


class RevealResponse(BaseModel):
    """Plaintext for transient display. Clients drop it after display_seconds."""

    model_config = ConfigDict(frozen=True)

    id: str
    key: str = Field(repr=False)
    display_seconds: int

    @classmethod
    def from_domain(cls, revealed: RevealedSecret) -> "RevealResponse":
        return cls(id=revealed.secret_id, key=revealed.plaintext, display_seconds=revealed.display_seconds)


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


class ShareRequest(BaseModel):
    grantee_id: int


class ShareGrantResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    api_key_id: str
    shared_with_user_id: int
    shared_by_user_id: int

    @classmethod
    def from_domain(cls, grant: ShareGrant) -> "ShareGrantResponse":
        return cls(
            id=grant.id,
            api_key_id=grant.api_key_id,
            shared_with_user_id=grant.shared_with_user_id,
            shared_by_user_id=grant.shared_by_user_id,
        )


class SharedSecretResponse(BaseModel):
    """One row of GET /shared-secrets."""

    model_config = ConfigDict(frozen=True)

    api_key_id: str
    label: str
    key_prefix: str
    created_at: str
    provider_id: str
    provider_name: str
    website_url: Optional[str] = None
    provider_remarks: Optional[str] = None
    tier_id: Optional[str] = None
    tier_name: Optional[str] = None
    tier_label: Optional[str] = None
    tier_color: Optional[str] = None
    tier_sort_order: Optional[int] = None
    shared_by_user_id: int
    shared_at: str

    @classmethod
    def from_domain(cls, summary: SharedSecretSummary) -> "SharedSecretResponse":
        return cls(
            api_key_id=summary.api_key_id,
            label=summary.api_key_label,
            key_prefix=summary.key_prefix,
            created_at=summary.key_created_at,
            provider_id=summary.provider_id,
            provider_name=summary.provider_name,
            website_url=summary.website_url,
            provider_remarks=summary.provider_remarks,
            tier_id=summary.tier_id,
            tier_name=summary.tier_name,
            tier_label=summary.tier_label,
            tier_color=summary.tier_color,
            tier_sort_order=summary.tier_sort_order,
            shared_by_user_id=summary.shared_by_user_id,
            shared_at=summary.shared_at,
        )


class SharingSecretRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    key_prefix: str
    created_at: str
    shared_with: list[int] = Field(default_factory=list)


class SharingProviderRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    secrets: list[SharingSecretRow] = Field(default_factory=list)


class SharingOverviewResponse(BaseModel):
    """Response for GET /api/v1/sharing (administrator sharing page)."""

    model_config = ConfigDict(frozen=True)

    providers: list[SharingProviderRow]
    members: list[RoleAssignmentResponse]

    @classmethod
    def from_domain(cls, overview: SharingOverview) -> "SharingOverviewResponse":
        return cls(
            providers=[
                SharingProviderRow(
                    id=p.id,
                    name=p.name,
                    secrets=[
                        SharingSecretRow(
                            id=e.record.id,
                            label=e.record.label,
                            key_prefix=e.record.key_prefix,
                            created_at=e.record.created_at,
                            shared_with=e.shared_with,
                        )
                        for e in p.secrets
                    ],
                )
                for p in overview.providers
            ],
            members=[RoleAssignmentResponse.from_domain(m) for m in overview.members],
        )


# ---------------------------------------------------------------------------
# Providers and tiers
# ---------------------------------------------------------------------------


class TierCreate(BaseModel):
    """Request body for POST /tiers and PUT /tiers/{id}."""

    name: str = Field(max_length=100)
    label: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    color: Optional[str] = Field(default=None, max_length=100)
    sort_order: int = Field(default=0, ge=0, le=1000)


class TierResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    label: str
    description: Optional[str] = None
    color: str
    sort_order: int
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_domain(cls, tier: Tier) -> "TierResponse":
        return cls(
            id=tier.id,
            name=tier.name,
            label=tier.label,
            description=tier.description,
            color=tier.color,
            sort_order=tier.sort_order,
            created_at=tier.created_at,
            updated_at=tier.updated_at,
        )


class ProviderCreate(BaseModel):
    name: str = Field(max_length=255)
    website_url: Optional[str] = Field(default=None, max_length=2048)
    main_thread_url: Optional[str] = Field(default=None, max_length=2048)
    recharge_url: Optional[str] = Field(default=None, max_length=2048)
    recharge_url_2: Optional[str] = Field(default=None, max_length=2048)
    tier_id: Optional[str] = Field(default=None, max_length=36)
    remarks: Optional[str] = Field(default=None, max_length=5000)
    requires_daily_login: bool = False


class ProviderUpdate(BaseModel):
    """PATCH body; only the fields sent are changed."""

    name: Optional[str] = Field(default=None, max_length=255)
    website_url: Optional[str] = Field(default=None, max_length=2048)
    main_thread_url: Optional[str] = Field(default=None, max_length=2048)
    recharge_url: Optional[str] = Field(default=None, max_length=2048)
    recharge_url_2: Optional[str] = Field(default=None, max_length=2048)
    tier_id: Optional[str] = Field(default=None, max_length=36)
    remarks: Optional[str] = Field(default=None, max_length=5000)
    requires_daily_login: Optional[bool] = None


class ProviderResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    website_url: Optional[str] = None
    main_thread_url: Optional[str] = None
    recharge_url: Optional[str] = None
    recharge_url_2: Optional[str] = None
    tier_id: Optional[str] = None
    tier: Optional[TierResponse] = None
    remarks: Optional[str] = None
    requires_daily_login: bool = False
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_domain(cls, provider: Provider) -> "ProviderResponse":
        return cls(
            id=provider.id,
            name=provider.name,
            website_url=provider.website_url,
            main_thread_url=provider.main_thread_url,
            recharge_url=provider.recharge_url,
            recharge_url_2=provider.recharge_url_2,
            tier_id=provider.tier_id,
            tier=TierResponse.from_domain(provider.tier) if provider.tier is not None else None,
            remarks=provider.remarks,
            requires_daily_login=provider.requires_daily_login,
            created_at=provider.created_at,
            updated_at=provider.updated_at,
        )


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
