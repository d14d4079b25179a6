# atlas_core/modules/people/models.py
from pydantic import BaseModel, BeforeValidator, Field, ConfigDict, field_validator
from typing import Annotated, List, Optional
from datetime import datetime

from atlas_core.core.permissions import ModuleKey, Role

# Raw role spellings accepted on writes
ALLOWED_RAW_ROLES = ("ADMIN", "GERENCIA", "COORDINADOR", "LIDER", "ASESOR", "PROMOTOR", "LOGISTICA")

MIN_PASSWORD_LENGTH = 6


def _strip_or_none(value):
    if isinstance(value, str):
        return value.strip() or None
    return value


TrimmedStr = Annotated[Optional[str], BeforeValidator(_strip_or_none)]


# --- Auth ---

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email.")
    password: str = Field(..., min_length=1)


class SessionInfo(BaseModel):
    ok: bool = True
    person_id: str
    role: Role
    raw_role: str
    name: str
    home: str
    modules: List[ModuleKey]
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    local: Optional[str] = None


# --- People ---

class PersonAPI(BaseModel):
    """A `people` row as exposed by the API (no secrets)."""
    model_config = ConfigDict(extra="ignore")

    id: str
    full_name: Optional[str] = None
    fenix_role: Optional[str] = None
    privilege_level: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    active: bool = True
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    local: Optional[str] = None
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None
    created_at: Optional[datetime] = None


class BranchInput(BaseModel):
    """Branch assignment, given as a site id or a legacy free-text label."""
    site_id: TrimmedStr = None
    branch_id: TrimmedStr = None
    branch_label: TrimmedStr = None
    local: TrimmedStr = None


class UserCreateAPI(BranchInput):
    full_name: str = ""
    fenix_role: str = "USER"
    privilege_level: int = 1
    username: TrimmedStr = None
    email: TrimmedStr = None
    password: Optional[str] = None
    phone: TrimmedStr = None
    vehicle_type: TrimmedStr = None

    @field_validator("full_name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return str(value or "").strip()

    @field_validator("fenix_role", mode="before")
    @classmethod
    def _upper_role(cls, value):
        return str(value or "USER").strip().upper() or "USER"


class UserUpdateAPI(BranchInput):
    full_name: Optional[str] = None
    fenix_role: Optional[str] = None
    role: Optional[str] = None
    privilege_level: Optional[float] = None
    username: Optional[str] = None
    email: Optional[str] = None
    active: Optional[bool] = None
    phone: TrimmedStr = None
    vehicle_type: TrimmedStr = None


class UserActionAPI(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    new_password: Optional[str] = Field(None, alias="newPassword")


class UserListResponse(BaseModel):
    ok: bool = True
    data: List[PersonAPI]
    page: int
    page_size: int
    total: int
