"""Pydantic models for the BTN client.

Provides the wire models exchanged with the BTN server (camelCase aliases
are wire-significant) and the validated configuration models.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

ABILITY_RULE = "rule"
ABILITY_SUBMIT = "submit"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ---------------------------------------------------------------------------
# Server capabilities
# ---------------------------------------------------------------------------


class AbilityRule(BaseModel):
    """Rule endpoint advertised by the server."""

    endpoint: str = Field(..., description="Absolute URL of the rule document")


class AbilitySubmit(BaseModel):
    """Submission endpoint and pacing advertised by the server."""

    endpoint: str = Field(..., description="Absolute URL pings are POSTed to")
    per_batch_size: int = Field(
        ...,
        ge=1,
        alias="perBatchSize",
        description="Number of pings per batch",
    )
    batch_period: int = Field(
        default=0,
        ge=0,
        alias="batchPeriod",
        description="Delay after each POST in milliseconds",
    )

    model_config = {"populate_by_name": True}

    @property
    def batch_period_seconds(self) -> float:
        return self.batch_period / 1000.0


class BtnConfig(BaseModel):
    """Server-advertised capabilities and endpoints."""

    ability: set[str] = Field(
        default_factory=set,
        description="Capability tags; unknown tags are ignored",
    )
    ability_rule: AbilityRule | None = Field(None, alias="abilityRule")
    ability_submit: AbilitySubmit | None = Field(None, alias="abilitySubmit")

    model_config = {"populate_by_name": True, "frozen": True}

    @model_validator(mode="after")
    def validate_endpoints(self) -> BtnConfig:
        """Require endpoint details for every advertised capability we use."""
        if ABILITY_RULE in self.ability and self.ability_rule is None:
            msg = "ability 'rule' advertised without abilityRule"
            raise ValueError(msg)
        if ABILITY_SUBMIT in self.ability and self.ability_submit is None:
            msg = "ability 'submit' advertised without abilitySubmit"
            raise ValueError(msg)
        return self

    def has_ability(self, tag: str) -> bool:
        """Check whether the server advertises ``tag``."""
        return tag in self.ability


class BtnRule(BaseModel):
    """Rule document published by the server.

    Only ``version`` is interpreted here; every other field is kept as-is
    for the ban engine.
    """

    version: str | None = Field(None, description="Revision of the document")

    model_config = {"extra": "allow", "frozen": True}

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> str | None:
        """Accept numeric revisions."""
        if v is None:
            return None
        return str(v)

    @property
    def document(self) -> dict[str, Any]:
        """Full document, including fields this client does not model."""
        return self.model_dump()


# ---------------------------------------------------------------------------
# Ping wire model
# ---------------------------------------------------------------------------


class PeerAddress(BaseModel):
    """Peer endpoint."""

    ip: str = Field(..., description="Peer IP address")
    port: int = Field(..., description="Peer port number")

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


class PeerInfo(BaseModel):
    """Snapshot of one connected peer."""

    address: PeerAddress
    peer_id: str | None = Field(None, alias="peerId")
    client_name: str | None = Field(None, alias="clientName")
    flag: str | None = Field(None, description="Downloader specific peer flags")
    progress: float = 0.0
    downloaded: int = 0
    rt_download_speed: int = Field(default=0, alias="rtDownloadSpeed")
    uploaded: int = 0
    rt_upload_speed: int = Field(default=0, alias="rtUploadSpeed")

    model_config = {"populate_by_name": True}


class TorrentInfo(BaseModel):
    """Pseudonymized torrent descriptor."""

    hash: str = Field(..., description="Salted SHA-256 of the infohash")
    size: int = Field(default=0, description="Bytes; drivers may report -1 while metadata is missing")
    progress: float = 0.0


class PeerConnection(BaseModel):
    """A peer seen on a torrent."""

    torrent: TorrentInfo
    peer: PeerInfo


class ClientPing(BaseModel):
    """Report of the peers connected to one downloader."""

    submit_id: str = Field(..., alias="submitId")
    populate_at: int = Field(..., alias="populateAt", description="ms since epoch")
    downloader: str
    peers: list[PeerConnection] = Field(default_factory=list)
    bans: int = Field(default=0, ge=0)
    batch_index: int = Field(default=0, ge=0, alias="batchIndex")
    batch_size: int = Field(default=0, ge=0, alias="batchSize")

    model_config = {"populate_by_name": True}

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with wire field names."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Write JSON lines to the log file",
    )
    log_format: str = Field(
        default="%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s",
        description="Log format string",
    )


class BtnSettings(BaseModel):
    """BTN network configuration."""

    enabled: bool = Field(default=False, description="Enable the BTN client")
    submit: bool = Field(default=True, description="Submit peer snapshots")
    app_id: str = Field(default="", description="Application id issued by the server")
    app_secret: str = Field(default="", description="Application secret")
    config_url: str = Field(
        default="",
        description="Bootstrap URL returning the server capabilities",
    )
    cache_file: str = Field(
        default="~/.btnclient/btn.cache",
        description="Rule cache file",
    )
    config_refresh_interval: float = Field(
        default=600.0,
        ge=10.0,
        le=86400.0,
        description="Capability refresh interval in seconds",
    )
    rule_update_interval: float = Field(
        default=600.0,
        ge=10.0,
        le=86400.0,
        description="Rule fetch interval in seconds",
    )
    submit_interval: float = Field(
        default=600.0,
        ge=10.0,
        le=86400.0,
        description="Ping submission interval in seconds",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Total timeout of one HTTP attempt in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Transport retries per request",
    )
    retry_base_delay: float = Field(default=1.0, ge=0.0, le=60.0)
    retry_max_delay: float = Field(default=30.0, ge=0.0, le=600.0)
    user_agent: str = Field(default="btn-client/0.1.0")

    @field_validator("config_url")
    @classmethod
    def validate_config_url(cls, v: str) -> str:
        """Only http(s) bootstrap URLs are usable."""
        v = v.strip()
        if v and not v.startswith(("http://", "https://")):
            msg = f"config_url must be an http(s) URL, got {v!r}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_enabled(self) -> BtnSettings:
        """An enabled client needs somewhere to bootstrap from."""
        if self.enabled and not self.config_url:
            msg = "btn.config_url is required when btn.enabled is true"
            raise ValueError(msg)
        return self

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_file).expanduser()


class Config(BaseModel):
    """Main configuration model."""

    btn: BtnSettings = Field(
        default_factory=BtnSettings,
        description="BTN network configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
