"""Pydantic models describing the mailfetch runtime configuration."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.records import FetchOptions


class ValidationError(ValueError):
    """Raised when configuration data does not satisfy the schema."""


class ImapSettings(BaseModel):
    """Server connection parameters."""

    model_config = ConfigDict(extra="forbid")

    host: str = Field(min_length=1)
    port: Optional[int] = Field(default=None, gt=0, lt=65536)
    username: str
    password: Optional[str] = None
    password_env: Optional[str] = None
    oauth2_token: Optional[str] = None
    ssl: bool = True
    starttls: bool = False
    timeout: Optional[float] = Field(default=30.0, gt=0)
    folder: str = "INBOX"

    @model_validator(mode="after")
    def _validate_transport(self) -> "ImapSettings":
        if self.ssl and self.starttls:
            raise ValidationError("starttls requires ssl to be disabled")
        return self


class FetchSettings(BaseModel):
    """Defaults applied by the batch fetcher and the CLI."""

    model_config = ConfigDict(extra="forbid")

    include_headers: bool = True
    include_body: bool = True
    include_attachments: bool = True
    limit: Optional[int] = Field(default=None, ge=0)

    def options(self) -> FetchOptions:
        return FetchOptions(
            include_headers=self.include_headers,
            include_body=self.include_body,
            include_attachments=self.include_attachments,
        )


class IdleSettings(BaseModel):
    """Timing of the push loop, in seconds."""

    model_config = ConfigDict(extra="forbid")

    keep_alive_s: float = Field(default=1680.0, gt=0)
    error_backoff_s: float = Field(default=5.0, ge=0)
    heartbeat_interval_s: Optional[float] = Field(default=None, gt=0)
    wait_slice_s: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _validate_slice(self) -> "IdleSettings":
        if self.wait_slice_s > self.keep_alive_s:
            raise ValidationError("wait_slice_s must not exceed keep_alive_s")
        return self


class RuntimeConfig(BaseModel):
    """Root configuration loaded from ``config.yaml``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    imap: ImapSettings
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    idle: IdleSettings = Field(default_factory=IdleSettings)

    @model_validator(mode="after")
    def _validate_version(self) -> "RuntimeConfig":
        if self.version != 1:
            raise ValidationError("config.yaml version must be 1")
        return self
