"""
TATAME API Schemas - Pydantic models for FastAPI endpoints.

Request bodies are validated here; responses mostly pass store dicts
through, so only the envelopes that clients rely on are modelled.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from tatame.provisioning import BlogOptions, SiteCreationOptions, VPSCredentials, VpsSetupOptions
from tatame.shared.errors import ValidationError
from tatame.shared.utils import is_valid_domain, is_valid_email


# ============================================================================
# Enums
# ============================================================================


class FeatureStatusValue(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    MAINTENANCE = "maintenance"
    DEPRECATED = "deprecated"


class BulkAction(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"
    DELETE = "delete"


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    status: str
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ============================================================================
# Accounts
# ============================================================================


class RegisterRequest(BaseModel):
    email: str = Field("", max_length=254)
    password: str = Field("", max_length=128)
    name: str = Field("", max_length=100)


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


# ============================================================================
# Features
# ============================================================================


class FeatureCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    category: str = Field(..., min_length=1)
    icon: str = "Settings"
    route: str | None = None
    permissions: list[str] = Field(default_factory=lambda: ["aluno"])
    config: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    version: str = "1.0.0"
    deletable: bool = True


class FeatureUpdateRequest(BaseModel):
    """Only the fields that are sent are applied."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    icon: str | None = None
    route: str | None = None
    permissions: list[str] | None = None
    config: dict[str, Any] | None = None
    dependencies: list[str] | None = None
    version: str | None = None
    deletable: bool | None = None
    maintenance_message: str | None = None
    reason: str | None = Field(None, max_length=500)

    def updates(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"reason"})


class FeatureStatusRequest(BaseModel):
    status: FeatureStatusValue
    message: str | None = Field(None, max_length=200)


class FeatureToggleRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class FeatureMaintenanceRequest(BaseModel):
    message: str | None = Field(None, max_length=200)


class FeatureDeleteRequest(BaseModel):
    confirmation_code: str
    reason: str | None = Field(None, max_length=500)


class FeatureBulkRequest(BaseModel):
    feature_ids: list[str] = Field(default_factory=list)
    action: BulkAction
    reason: str | None = Field(None, max_length=500)


# ============================================================================
# Provisioning
# ============================================================================


class VPSCredentialsModel(BaseModel):
    host: str = Field(..., min_length=1)
    port: int = Field(22, ge=1, le=65535)
    username: str = Field(..., min_length=1)
    auth_method: Literal["password", "privateKey"] = "password"
    password: str | None = None
    private_key: str | None = None

    def to_credentials(self) -> VPSCredentials:
        creds = VPSCredentials(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            private_key=self.private_key,
            auth_method=self.auth_method,
        )
        creds.validate()
        return creds


class CheckVpsRequest(BaseModel):
    credentials: VPSCredentialsModel


class CreateSiteRequest(BaseModel):
    credentials: VPSCredentialsModel
    domain: str = Field(..., min_length=3)
    admin_email: str = Field(..., min_length=3)
    admin_user: str = "admin"
    template_url: str = ""
    php_version: str = "8.1"
    enable_cache: bool = True
    enable_ssl: bool = True
    enable_redis: bool = True

    def to_options(self, user_id: str) -> SiteCreationOptions:
        if not is_valid_domain(self.domain):
            raise ValidationError(f"Invalid domain: {self.domain}")
        if not is_valid_email(self.admin_email):
            raise ValidationError(f"Invalid admin email: {self.admin_email}")
        return SiteCreationOptions(
            user_id=user_id,
            credentials=self.credentials.to_credentials(),
            domain=self.domain,
            admin_email=self.admin_email,
            admin_user=self.admin_user,
            template_url=self.template_url,
            php_version=self.php_version,
            enable_cache=self.enable_cache,
            enable_ssl=self.enable_ssl,
            enable_redis=self.enable_redis,
        )


class VpsSetupRequest(BaseModel):
    credentials: VPSCredentialsModel

    def to_options(self, user_id: str) -> VpsSetupOptions:
        return VpsSetupOptions(user_id=user_id, credentials=self.credentials.to_credentials())


class CreateBlogRequest(BaseModel):
    credentials: VPSCredentialsModel
    domain: str = Field(..., min_length=3)

    def to_options(self, user_id: str) -> BlogOptions:
        return BlogOptions(user_id=user_id, credentials=self.credentials.to_credentials(), domain=self.domain)


class JobAcceptedResponse(BaseModel):
    job_id: str
    kind: str
    status: str = "running"
    message: str = ""


# ============================================================================
# WordPress sites
# ============================================================================


class AddSiteRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    url: str
    username: str = Field(..., min_length=1)
    application_password: str = Field(..., min_length=1)
    is_default: bool = False


# ============================================================================
# Courses
# ============================================================================


class CourseCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    slug: str | None = None
    thumbnail: str | None = None
    is_published: bool = False


class ModuleCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    position: int | None = None


class LessonCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    duration_minutes: float = Field(0, ge=0)
    lesson_type: str = "video"
    position: int | None = None


# ============================================================================
# Progress
# ============================================================================


class WatchTimeRequest(BaseModel):
    # checked by the tracker so non-numbers get its 400 message
    position: Any = None
    duration: Any = None


# ============================================================================
# Email templates
# ============================================================================


class TemplatePreviewRequest(BaseModel):
    data: dict[str, Any] | None = None


class TemplateTestRequest(BaseModel):
    to: str = Field(..., min_length=3)
    data: dict[str, Any] | None = None


# ============================================================================
# Catalog
# ============================================================================


class PluginValidationRequest(BaseModel):
    slugs: list[str] = Field(default_factory=list)
