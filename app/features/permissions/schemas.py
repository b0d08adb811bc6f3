"""
Pydantic schemas for the role/permission catalog and access checks.
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    resource: str = Field(..., min_length=1, max_length=100, description="Resource type (e.g., 'organizations')")
    action: str = Field(..., min_length=1, max_length=50, description="Action (e.g., 'read', 'create', 'assign')")
    description: str | None = Field(None, max_length=1000)

    @field_validator("resource", "action")
    @classmethod
    def lowercase_token(cls, v: str) -> str:
        v = v.strip().lower()
        if ":" in v:
            raise ValueError("Resource and action must not contain ':'")
        return v


class PermissionCreate(PermissionBase):
    """Schema for creating a permission. The name defaults to resource:action."""
    name: str | None = Field(None, max_length=100)


class PermissionUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)


class PermissionResponse(PermissionBase):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    description: str | None = Field(None, max_length=1000)

    @field_validator("name")
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError("Role name must contain only alphanumeric characters, underscores, and hyphens")
        return v


class RoleCreate(RoleBase):
    is_system: bool = False


class RoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = Field(None, max_length=1000)


class RoleResponse(RoleBase):
    id: str
    is_system: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RoleWithPermissions(RoleResponse):
    permissions: list[PermissionResponse] = Field(default_factory=list)


# ============================================================================
# Assignment Schemas
# ============================================================================

class ReplaceRolePermissions(BaseModel):
    permission_ids: list[str] = Field(default_factory=list)


class ReplaceProfileRoles(BaseModel):
    role_ids: list[str] = Field(default_factory=list)


class AssignRoleToUser(BaseModel):
    user_id: str
    role_id: str


class AssignRolesToUser(BaseModel):
    role_ids: list[str] = Field(default_factory=list)


class RoleAssignmentEntry(BaseModel):
    """One role grant on a profile, as recorded on the link row."""
    role_id: str
    role_name: str
    assigned_at: datetime
    assigned_by_id: str | None = None


# ============================================================================
# Access Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    resource: str
    action: str
    profile_id: str | None = Field(None, description="Check a profile instead of the session user")


class PermissionCheckResponse(BaseModel):
    allowed: bool
    resource: str
    action: str


class EffectivePermissionsResponse(BaseModel):
    """Effective access of one subject."""
    subject_id: str
    permissions: list[str]
    roles: list[str]
