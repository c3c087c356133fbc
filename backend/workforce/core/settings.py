from __future__ import annotations

import json
from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, EnvSettingsSource, SettingsConfigDict


class _FallbackEnvSettingsSource(EnvSettingsSource):
    """Allow ALLOW_ORIGINS to be comma-separated instead of strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise


class _FallbackDotEnvSettingsSource(DotEnvSettingsSource):
    """Allow ALLOW_ORIGINS to be comma-separated instead of strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise


_DEFAULT_ORIGINS = [
    "http://localhost",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Workforce Attendance API"
    project_version: str = "1.0.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", description="Logging level")
    default_org_id: str = Field(
        default="org_default",
        description="Organisation used when a user record carries none",
        validation_alias=AliasChoices("DEFAULT_ORG_ID", "ORG_ID"),
    )

    # Database
    database_url: str = Field(
        default="postgresql+psycopg2://postgres@localhost:5432/workforce",
        description="SQLAlchemy database URL",
    )
    db_pool_size: int = Field(default=5, description="Base DB connection pool size")
    db_max_overflow: int = Field(default=10, description="Additional DB connections beyond pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a DB connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle DB connections after N seconds")

    # Auth / JWT
    jwt_secret: str = Field(default="change_me", description="JWT signing secret")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    # Admin sessions
    admin_access_token_minutes: int = Field(default=15, description="Admin access token lifetime (minutes)")
    admin_refresh_token_days: int = Field(default=7, description="Admin refresh token lifetime (days)")
    admin_mfa_token_minutes: int = Field(default=5, description="MFA challenge token lifetime (minutes)")
    admin_max_login_attempts: int = Field(default=5, description="Failed logins before the account locks")
    admin_lockout_minutes: int = Field(default=30, description="Lockout duration after too many failures")

    # End-user session cookie
    session_cookie_name: str = Field(default="__session", description="Cookie carrying the user session")
    session_cookie_days: int = Field(default=5, description="User session cookie lifetime (days)")

    # Identity provider
    identity_provider: str = Field(
        default="local",
        description="Identity token verifier: local, firebase",
        validation_alias=AliasChoices("IDENTITY_PROVIDER", "AUTH_PROVIDER"),
    )
    firebase_project_id: str | None = Field(
        default=None,
        description="Firebase project id used as ID token audience",
        validation_alias=AliasChoices("FIREBASE_PROJECT_ID"),
    )
    firebase_certs_url: str = Field(
        default="https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com",
        description="Public certificates for Firebase ID token signatures",
    )

    # Realtime broadcast store
    firebase_database_url: str | None = Field(
        default=None,
        description="Firebase Realtime Database URL; broadcast is disabled when unset",
        validation_alias=AliasChoices("FIREBASE_DATABASE_URL", "BROADCAST_URL"),
    )
    firebase_database_secret: str | None = Field(
        default=None,
        description="Auth token appended to Realtime Database REST calls",
        validation_alias=AliasChoices("FIREBASE_DATABASE_SECRET", "BROADCAST_AUTH"),
    )
    broadcast_timeout_seconds: float = Field(default=5.0, description="Timeout for broadcast store HTTP calls")

    # Attendance rules
    default_shift_start: str = Field(default="08:00", description="Shift start when a user has no schedule")
    default_shift_end: str = Field(default="17:00", description="Shift end when a user has no schedule")
    late_grace_minutes: int = Field(default=15, description="Minutes after shift start before a check-in is late")
    timezone: str = Field(
        default="UTC",
        description="Timezone used for work dates and shift comparisons",
        validation_alias=AliasChoices("APP_TIMEZONE", "TIMEZONE"),
    )
    geofence_enabled: bool = Field(default=False, description="Reject check-ins outside the geofence")
    geofence_latitude: float = Field(default=0.0, description="Geofence center latitude")
    geofence_longitude: float = Field(default=0.0, description="Geofence center longitude")
    geofence_radius_meters: float = Field(default=500.0, description="Geofence radius in meters")

    # Email OTP
    otp_expiry_minutes: int = Field(default=5, description="OTP code lifetime (minutes)")
    otp_resend_cooldown_seconds: int = Field(default=60, description="Seconds before a code can be resent")
    otp_max_resends: int = Field(default=3, description="Resends allowed per OTP session")
    otp_max_verify_attempts: int = Field(default=5, description="Wrong codes allowed before the session is burned")

    # Email delivery
    email_provider: str = Field(
        default="disabled",
        description="Email provider: resend, postmark, smtp, disabled",
        validation_alias=AliasChoices("EMAIL_PROVIDER"),
    )
    email_api_key: str | None = Field(
        default=None,
        description="API key for Resend/Postmark",
        validation_alias=AliasChoices("EMAIL_API_KEY"),
    )
    email_from: str | None = Field(
        default=None,
        description="From address for outbound email",
        validation_alias=AliasChoices("EMAIL_FROM"),
    )
    smtp_host: str | None = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_username: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use TLS for SMTP")

    # Face verification
    face_provider: str = Field(
        default="none",
        description="Face similarity provider: none, azure",
        validation_alias=AliasChoices("FACE_PROVIDER", "FACE_RECOGNITION_PROVIDER"),
    )
    face_match_threshold: float = Field(default=0.8, description="Similarity at or above which faces match")
    face_max_image_bytes: int = Field(default=5 * 1024 * 1024, description="Maximum decoded image size")
    azure_face_endpoint: str | None = Field(
        default=None,
        description="Azure Face API endpoint",
        validation_alias=AliasChoices("AZURE_FACE_ENDPOINT"),
    )
    azure_face_key: str | None = Field(
        default=None,
        description="Azure Face API subscription key",
        validation_alias=AliasChoices("AZURE_FACE_KEY"),
    )
    face_http_timeout_seconds: float = Field(default=15.0, description="Timeout for face provider calls")

    # CORS
    allow_origins: List[str] = Field(default_factory=lambda: list(_DEFAULT_ORIGINS))

    @field_validator("allow_origins", mode="before")
    @classmethod
    def parse_allow_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if isinstance(value, str) and value.strip():
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return list(_DEFAULT_ORIGINS)

    @field_validator("identity_provider", "face_provider", "email_provider")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return (value or "").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _FallbackEnvSettingsSource(settings_cls),
            _FallbackDotEnvSettingsSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
