"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
HUB_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:140.0) "
    "Gecko/20100101 Firefox/140.0"
)


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class HttpConfig(BaseModel):
    """Transport and retry settings for every outgoing page request."""

    timeout_seconds: float = Field(
        default=8.0, gt=0, description="Per-request timeout in seconds."
    )
    max_retries: int = Field(
        default=1, ge=0, description="Retries after a network error or timeout."
    )
    retry_delay_seconds: float = Field(
        default=0.8, ge=0, description="Fixed delay between attempts."
    )
    max_response_bytes: int = Field(
        default=2 * 1024 * 1024,
        gt=0,
        description="Hard cap on buffered response bytes.",
    )
    max_redirects: int = Field(
        default=10, ge=0, description="Redirect hops followed per request."
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT, description="Default User-Agent."
    )
    hub_user_agent: str = Field(
        default=HUB_USER_AGENT,
        description="User-Agent for hosts matching proxy_bypass_fragments.",
    )
    proxy_url: Optional[str] = Field(
        default=None, description="Upstream HTTP proxy for routed requests."
    )
    proxy_by_default: bool = Field(
        default=False,
        description="Route all non-bypassed hosts through proxy_url.",
    )
    proxy_bypass_fragments: tuple[str, ...] = Field(
        default=("hubcloud", "hubdrive", "hubcdn"),
        description="Host fragments that never use the proxy unless forced.",
    )


class SolverConfig(BaseModel):
    """Challenge-solving service (FlareSolverr v1 API)."""

    url: Optional[str] = Field(
        default=None, description="Solver base URL. Unset = solver disabled."
    )
    timeout_seconds: float = Field(
        default=45.0, description="maxTimeout passed to the solver."
    )
    proxy_url: Optional[str] = Field(
        default=None, description="Proxy the solver may route through."
    )
    session_prefix: str = Field(default="resolvarr", description="Session id prefix.")
    session_ttl_seconds: float = Field(
        default=600.0, description="Freshness window of cached solver sessions."
    )
    max_concurrent: int = Field(default=2, ge=1, description="Parallel solves.")
    queue_max_depth: int = Field(
        default=10, ge=0, description="Callers allowed to wait for a slot."
    )
    slot_timeout_seconds: float = Field(
        default=30.0, description="Max wait for a solver slot."
    )
    failure_threshold: int = Field(
        default=3, ge=1, description="Failures before the circuit opens."
    )
    reset_seconds: float = Field(
        default=120.0, description="Open-circuit cooldown before a probe."
    )
    slow_threshold_seconds: float = Field(
        default=30.0, description="Solves slower than this count as slow."
    )

    @field_validator("timeout_seconds")
    @classmethod
    def _floor_timeout(cls, v: float) -> float:
        # Browser solving rarely finishes in under 30s.
        return max(v, 30.0)

    @property
    def enabled(self) -> bool:
        return bool(self.url)


class ChallengeConfig(BaseModel):
    """Cross-process challenge lock and credential cache."""

    lock_dir: Path = Field(
        default=Path("/tmp/resolvarr-challenge"),
        description="Directory for lock markers and local credential files.",
    )
    lock_ttl_seconds: float = Field(
        default=120.0, description="Marker age after which a lock is abandoned."
    )
    lock_wait_seconds: float = Field(
        default=20.0, description="Max wait for another process's solve."
    )
    lock_poll_seconds: float = Field(default=0.5, description="Lock poll interval.")
    credential_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Credential lifetime. 0 = reuse until a challenge reappears.",
    )
    credential_service: str = Field(
        default="challenge_credential",
        description="Service name of credentials in the persistent store.",
    )

    @field_validator("lock_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Path:
        return _normalize_path(v)


class ExtractionConfig(BaseModel):
    """Bounds for extraction, validation and recursion."""

    max_buttons: int = Field(default=15, ge=1, description="Raw candidates per page.")
    max_validations: int = Field(
        default=10, ge=1, description="Candidates kept for validation."
    )
    validation_timeout_seconds: float = Field(
        default=3.0, description="Range-probe timeout."
    )
    validation_concurrency: int = Field(default=10, ge=1)
    max_redirect_hops: int = Field(
        default=3, description="Hops followed when unwrapping redirect hosts."
    )
    cache_ttl_seconds: int = Field(
        default=300, ge=0, description="Extraction result cache TTL. 0 = off."
    )
    max_recursion_depth: int = Field(default=3, ge=1)
    visited_ttl_seconds: float = Field(
        default=300.0, description="Revisit suppression window."
    )


class CacheConfig(BaseSettings):
    """Persistent cache store (backend-agnostic)."""

    enabled: bool = Field(
        default=False,
        description="Use the persistent store; off = local-file/in-memory fallback.",
    )
    backend: Literal["diskcache", "redis"] = Field(
        default="diskcache",
        description="Cache backend: 'diskcache' (SQLite) or 'redis'",
    )
    directory: Path = Field(
        default=Path("./.cache/resolvarr"),
        alias="dir",
        description="Diskcache SQLite DB path",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (only when backend=redis)",
    )
    ttl_seconds: int = Field(default=3600, description="Default TTL (seconds)")
    max_concurrent: int = Field(
        default=10, description="Max parallel cache ops (semaphore limit)"
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
        populate_by_name=True,
    )


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Sections: http, solver, challenge, extraction, cache, logging.
    Environment variables are handled by EnvOverrides(BaseSettings) so that
    load.py controls precedence (defaults < YAML < ENV < CLI).
    """

    app_name: str = Field(default="resolvarr", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    http: HttpConfig = Field(default_factory=HttpConfig)
    solver: SolverConfig = Field(default_factory=SolverConfig)
    challenge: ChallengeConfig = Field(default_factory=ChallengeConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    load.py reads RESOLVARR_* variables, keeps the ones that are set and
    maps them onto config sections before validating AppConfig.

    Supported env var examples (flat, explicit):
    - RESOLVARR_LOG_LEVEL
    - RESOLVARR_SOLVER_URL
    - RESOLVARR_PROXY_URL
    - RESOLVARR_LOCK_DIR
    - RESOLVARR_CACHE_BACKEND, RESOLVARR_CACHE_REDIS_URL
    """

    model_config = SettingsConfigDict(
        env_prefix="RESOLVARR_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_max_retries: Optional[int] = None
    proxy_url: Optional[str] = None

    solver_url: Optional[str] = None
    solver_timeout_seconds: Optional[float] = None
    solver_proxy_url: Optional[str] = None

    lock_dir: Optional[Path] = None
    credential_ttl_seconds: Optional[int] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_enabled: Optional[bool] = None
    cache_backend: Optional[Literal["diskcache", "redis"]] = None
    cache_dir: Optional[Path] = None
    cache_redis_url: Optional[str] = None

    @field_validator("lock_dir", "cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
