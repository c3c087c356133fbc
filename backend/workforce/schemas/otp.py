from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from workforce.schemas.base import ApiModel


class OtpSent(ApiModel):
    session_token: str
    expires_in: int
    message: str = "Verification code sent"


class OtpVerifyRequest(ApiModel):
    session_token: str = Field(min_length=1, max_length=128)
    code: str = Field(max_length=16)


class OtpVerified(ApiModel):
    verified: bool = True
    email: str


class OtpStatusRead(ApiModel):
    verified: bool
    pending: bool
    can_resend: bool
    resend_in: int
    expires_at: Optional[datetime] = None
    attempts_remaining: Optional[int] = None
