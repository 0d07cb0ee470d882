import os
from pathlib import Path
from dataclasses import dataclass

from dotenv import load_dotenv

# .env from the working directory (where the service is started)
env_path = Path.cwd() / ".env"
load_dotenv(env_path)


QUOTA_MODE_LEGACY = "legacy"
QUOTA_MODE_TRANSACTIONAL = "transactional"
SUPPORTED_QUOTA_MODES = {QUOTA_MODE_LEGACY, QUOTA_MODE_TRANSACTIONAL}

DEFAULT_FUNCTIONS_BASE_URL = "https://us-central1-fluzio-13af2.cloudfunctions.net"


@dataclass
class Config:
    # Document store
    db_path: str
    # HTTP API
    api_host: str
    api_port: int
    admin_api_key: str  # Guards privileged routes; empty disables them
    # Hosted privileged functions (verification, counter reset)
    functions_base_url: str
    functions_timeout_sec: float
    # Recommendations
    recommendation_pool_size: int
    recommendation_max_results: int
    recommendation_enforce_geo_scope: bool
    # Subscription quotas
    quota_mode: str
    subscription_reset_enabled: bool
    subscription_reset_interval_sec: int


def clean_env_value(value: str | None, default: str = "") -> str:
    """Strip whitespace and wrapping quotes from an env value."""
    if value is None:
        return default
    return value.strip().strip('"').strip("'")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean env value."""
    if value is None:
        return default
    value = clean_env_value(value).lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    return default


def parse_int(value: str | None, default: int | None = None) -> int | None:
    """Parse an int env value, falling back to default on empty/invalid input."""
    if value is None:
        return default
    value = clean_env_value(value)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    value = clean_env_value(value)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_quota_mode(value: str | None) -> str:
    """Unknown modes fall back to the legacy read-then-write behaviour."""
    mode = clean_env_value(value, QUOTA_MODE_LEGACY).lower()
    if mode in SUPPORTED_QUOTA_MODES:
        return mode
    return QUOTA_MODE_LEGACY


def load_config() -> Config:
    """Build configuration from the current process environment."""
    return Config(
        db_path=clean_env_value(os.getenv("DB_PATH")) or str(Path.cwd() / "state.db"),
        api_host=clean_env_value(os.getenv("API_HOST"), "0.0.0.0") or "0.0.0.0",
        api_port=parse_int(os.getenv("API_PORT"), 8080),
        admin_api_key=clean_env_value(os.getenv("ADMIN_API_KEY")),
        functions_base_url=(
            clean_env_value(os.getenv("FUNCTIONS_BASE_URL")) or DEFAULT_FUNCTIONS_BASE_URL
        ).rstrip("/"),
        functions_timeout_sec=parse_float(os.getenv("FUNCTIONS_TIMEOUT_SEC"), 15.0),
        recommendation_pool_size=max(1, parse_int(os.getenv("RECOMMENDATION_POOL_SIZE"), 100)),
        recommendation_max_results=max(1, parse_int(os.getenv("RECOMMENDATION_MAX_RESULTS"), 20)),
        recommendation_enforce_geo_scope=parse_bool(os.getenv("RECOMMENDATION_ENFORCE_GEO_SCOPE"), False),
        quota_mode=parse_quota_mode(os.getenv("QUOTA_MODE")),
        subscription_reset_enabled=parse_bool(os.getenv("SUBSCRIPTION_RESET_ENABLED"), False),
        subscription_reset_interval_sec=max(60, parse_int(os.getenv("SUBSCRIPTION_RESET_INTERVAL_SEC"), 3600)),
    )


CFG = load_config()


def is_admin_api_enabled(cfg: Config | None = None) -> bool:
    """Privileged HTTP routes are enabled only with a non-empty key."""
    return bool((cfg or CFG).admin_api_key)


def is_quota_transactional(cfg: Config | None = None) -> bool:
    return (cfg or CFG).quota_mode == QUOTA_MODE_TRANSACTIONAL
