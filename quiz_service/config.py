import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str:
    val = os.getenv(name, default)
    if val is None or val.strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val.strip()


def _parse_origins(raw: str) -> list[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./quiz_service.db"
    certificate_service_url: str | None = None
    certificate_timeout: float = 10.0
    clock_tick_seconds: float = 1.0
    session_ttl_seconds: float = 1800.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8004


def get_settings() -> Settings:
    cert_url = (os.getenv("CERTIFICATE_SERVICE_URL") or "").strip().rstrip("/")
    return Settings(
        database_url=_get_env("QUIZ_DATABASE_URL", "sqlite:///./quiz_service.db"),
        certificate_service_url=cert_url or None,
        certificate_timeout=float(_get_env("CERTIFICATE_TIMEOUT_SECONDS", "10")),
        clock_tick_seconds=float(_get_env("QUIZ_CLOCK_TICK_SECONDS", "1.0")),
        session_ttl_seconds=float(_get_env("QUIZ_SESSION_TTL_SECONDS", "1800")),
        cors_origins=_parse_origins(os.getenv("CORS_ORIGINS", "*")),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        port=int(_get_env("PORT", "8004")),
    )
