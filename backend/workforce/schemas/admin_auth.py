from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from workforce.models.enums import AdminRole, AdminStatus
from workforce.schemas.base import ApiModel


class AdminRead(ApiModel):
    id: int
    email: str
    name: Optional[str] = None
    role: AdminRole
    status: AdminStatus
    org_id: Optional[str] = None
    totp_enabled: bool = False
    last_login_at: Optional[datetime] = None
    permissions: list[str] = []


class AdminLoginRequest(ApiModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=256)


class MfaVerifyRequest(ApiModel):
    mfa_token: str
    code: str = Field(min_length=6, max_length=16)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(min_length=16)


class LogoutRequest(ApiModel):
    refresh_token: Optional[str] = None


class TokenPairRead(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    admin: AdminRead


class LoginResult(ApiModel):
    mfa_required: bool = False
    mfa_token: Optional[str] = None
    tokens: Optional[TokenPairRead] = None


class MfaSetupRead(ApiModel):
    secret: str
    provisioning_uri: str


class MfaEnableRequest(ApiModel):
    code: str = Field(min_length=6, max_length=6)


class BackupCodesRead(ApiModel):
    backup_codes: list[str]
