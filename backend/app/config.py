import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable, List

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_STUN_URL = "stun:stun.l.google.com:19302"


class IceServer(BaseModel):
    """Representation of a WebRTC ICE server configuration."""

    urls: list[str] = Field(default_factory=list, description="ICE server URLs")
    username: str | None = Field(default=None, description="Optional TURN username")
    credential: str | None = Field(default=None, description="Optional TURN credential")

    @field_validator("urls", mode="before")
    @classmethod
    def ensure_list(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple, set)):
            return [str(item) for item in value]
        return [] if value in (None, Ellipsis) else [str(value)]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Amora API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )

    database_url_override: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="Full SQLAlchemy URL; takes precedence over the DB_* parts.",
    )
    database_user: str = Field(default="amora", validation_alias="DB_USER")
    database_password: str = Field(default="amora", validation_alias="DB_PASSWORD")
    database_host: str = Field(default="db", validation_alias="DB_HOST")
    database_port: int = Field(default=3306, validation_alias="DB_PORT")
    database_name: str = Field(default="amora", validation_alias="DB_NAME")

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Plan mapping. A subscription whose price id matches one of these is on
    # the corresponding tier.
    stripe_price_premium: str | None = Field(default=None, env="STRIPE_PRICE_PREMIUM")
    stripe_price_elite: str | None = Field(default=None, env="STRIPE_PRICE_ELITE")

    message_max_length: int = Field(default=4000, env="MESSAGE_MAX_LENGTH")
    message_history_default_limit: int = Field(default=30, env="MESSAGE_HISTORY_DEFAULT_LIMIT")
    message_history_max_limit: int = Field(default=100, env="MESSAGE_HISTORY_MAX_LIMIT")
    notifications_default_limit: int = Field(default=20, env="NOTIFICATIONS_DEFAULT_LIMIT")
    notifications_max_limit: int = Field(default=50, env="NOTIFICATIONS_MAX_LIMIT")

    realtime_send_enabled: bool = Field(
        default=False,
        env="REALTIME_SEND_ENABLED",
        description="Accept chat:send over the websocket in addition to the HTTP endpoint.",
    )
    message_rate_window_seconds: float = Field(default=15.0, env="MESSAGE_RATE_WINDOW_SECONDS")
    message_rate_max: int = Field(default=8, env="MESSAGE_RATE_MAX")
    call_cooldown_seconds: float = Field(
        default=30 * 60,
        env="CALL_COOLDOWN_SECONDS",
        description="Minimum delay between realtime calls from one user to the same callee.",
    )
    call_request_cooldown_seconds: float = Field(
        default=30 * 60,
        env="CALL_REQUEST_COOLDOWN_SECONDS",
        description="Minimum delay between HTTP call requests for the same pair.",
    )
    call_ring_timeout_seconds: float = Field(default=45.0, env="CALL_RING_TIMEOUT_SECONDS")
    call_min_account_age_hours: int = Field(default=48, env="CALL_MIN_ACCOUNT_AGE_HOURS")
    call_requires_match: bool = Field(
        default=False,
        env="CALL_REQUIRES_MATCH",
        description="Only allow call requests between mutual matches.",
    )
    realtime_redis_url: str | None = Field(
        default=None,
        env="REALTIME_REDIS_URL",
        description="Share call cooldowns through Redis instead of process memory.",
    )
    realtime_outbox_size: int = Field(default=256, env="REALTIME_OUTBOX_SIZE")

    websocket_receive_timeout_seconds: float = Field(
        default=30, env="WEBSOCKET_RECEIVE_TIMEOUT_SECONDS"
    )
    websocket_ping_interval_seconds: float = Field(
        default=25, env="WEBSOCKET_PING_INTERVAL_SECONDS"
    )

    webrtc_ice_servers: Annotated[list[IceServer], NoDecode] = Field(
        default_factory=list,
        env="WEBRTC_ICE_SERVERS",
        description="List of ICE (STUN/TURN) servers available to WebRTC peers.",
    )
    webrtc_stun_servers: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        env="WEBRTC_STUN_SERVERS",
        description="Additional STUN endpoints exposed to clients.",
    )
    webrtc_turn_servers: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        env="WEBRTC_TURN_SERVERS",
        description="TURN endpoints exposed to clients.",
    )
    webrtc_turn_username: str | None = Field(default=None, env="WEBRTC_TURN_USERNAME")
    webrtc_turn_credential: str | None = Field(default=None, env="WEBRTC_TURN_CREDENTIAL")

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator(
        "webrtc_ice_servers",
        "webrtc_stun_servers",
        "webrtc_turn_servers",
        mode="before",
    )
    @classmethod
    def parse_iterable_field(cls, value: Any) -> list[Any] | Any:
        if value in (None, "", Ellipsis):
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, (list, tuple, set)):
                    return list(parsed)
            except json.JSONDecodeError:
                return [item.strip() for item in value.split(",") if item.strip()]
            return [str(value)]
        if isinstance(value, (list, tuple, set)):
            return list(value)
        return [value]

    def ice_servers(self) -> list[IceServer]:
        def coerce_server(entry: Any) -> IceServer | None:
            if isinstance(entry, IceServer):
                return entry
            if isinstance(entry, dict):
                return IceServer.model_validate(entry)
            if isinstance(entry, str):
                return IceServer(urls=[entry])
            if isinstance(entry, Iterable):
                return IceServer(urls=[str(item) for item in entry])
            return None

        servers = [server for server in map(coerce_server, self.webrtc_ice_servers) if server]
        stun = [str(url) for url in self.webrtc_stun_servers] or [DEFAULT_STUN_URL]
        servers.insert(0, IceServer(urls=stun))
        if self.webrtc_turn_servers:
            servers.append(
                IceServer(
                    urls=[str(url) for url in self.webrtc_turn_servers],
                    username=self.webrtc_turn_username,
                    credential=self.webrtc_turn_credential,
                )
            )
        return servers

    @property
    def webrtc_ice_servers_payload(self) -> list[dict[str, Any]]:
        return [server.model_dump(mode="json", exclude_none=True) for server in self.ice_servers()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
