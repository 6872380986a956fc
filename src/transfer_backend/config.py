from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, final

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [x.strip() for x in value.split(",") if x.strip()]


@dataclass(frozen=True)
class WebDAVConfig:
    """Connection parameters for the remote blob store.

    Passed explicitly into the storage adapter; nothing below the HTTP layer
    reads the global settings object.
    """

    endpoint: str
    username: str
    password: str

    def is_complete(self) -> bool:
        return bool(self.endpoint.strip() and self.username.strip() and self.password.strip())


@final
class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )
    app_name: str = "Transfer Backend"
    api_prefix: str = "/api/v1"

    # Environment (ENVIRONMENT): development | production
    environment: str = "development"
    log_level: str = "INFO"

    # Local share index
    database_url: str = "sqlite:///./transfer.db"

    # Base used for share links: {public_base_url}/share/{share_id}?code=...
    public_base_url: str = "http://localhost:31031"

    cors_allow_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "CORS_ORIGINS"),
    )

    # Remote blob store (WebDAV)
    webdav_url: str = ""
    webdav_username: str = ""
    webdav_password: str = ""
    webdav_request_timeout_seconds: float = 60.0

    # webdav | local. "local" keeps blobs on disk (development only).
    blob_store_backend: str = "webdav"
    blob_store_local_dir: str = ".data/blobs"

    max_upload_size_bytes: int = 100 * 1024 * 1024

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":  # pyright: ignore[reportUnusedFunction]
        if self.environment.strip().lower() != "production":
            return self

        errors: list[str] = []

        public_url = self.public_base_url.strip().lower()
        if not public_url or "localhost" in public_url or "127.0.0.1" in public_url:
            errors.append("PUBLIC_BASE_URL must point at the public host in production")

        cors_v = self.cors_allow_origins.strip()
        if not cors_v or cors_v == "*":
            errors.append("CORS_ALLOW_ORIGINS must be explicit (not '*') in production")

        if self.blob_store_backend.strip().lower() == "local":
            errors.append("BLOB_STORE_BACKEND=local must not be used in production")

        # A partial WebDAV config would otherwise surface as "not configured" at request time.
        webdav_fields = {
            "WEBDAV_URL": self.webdav_url.strip(),
            "WEBDAV_USERNAME": self.webdav_username.strip(),
            "WEBDAV_PASSWORD": self.webdav_password.strip(),
        }
        if any(not v for v in webdav_fields.values()):
            missing = ",".join([k for k, v in webdav_fields.items() if not v])
            errors.append(f"WebDAV config incomplete in production; missing: {missing}")

        if errors:
            raise ValueError("Invalid production settings: " + "; ".join(errors))
        return self

    def webdav_config(self) -> WebDAVConfig | None:
        cfg = WebDAVConfig(
            endpoint=self.webdav_url,
            username=self.webdav_username,
            password=self.webdav_password,
        )
        return cfg if cfg.is_complete() else None

    def cors_origins_list(self) -> list[str]:
        v = self.cors_allow_origins.strip()
        if not v:
            return []
        if v == "*":
            return ["*"]
        return _split_csv(v)

    def security_warnings(self) -> list[str]:
        warnings: list[str] = []
        if self.cors_allow_origins.strip() == "*":
            warnings.append("CORS_ALLOW_ORIGINS='*' is permissive")
        if self.blob_store_backend.strip().lower() == "local":
            warnings.append("BLOB_STORE_BACKEND=local stores share payloads on this host")
        elif self.webdav_config() is None:
            warnings.append("WebDAV is not configured; share operations will fail")
        if self.webdav_url.strip().lower().startswith("http://"):
            warnings.append("WEBDAV_URL uses plain http; credentials are sent in cleartext")
        return warnings


settings = Settings()
