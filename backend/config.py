import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).parent

DEMO_MODE = "demo"
LIVE_MODE = "live"


def _env_bool(name: str) -> Optional[bool]:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return None
    return value in ("1", "true", "yes", "on")


class Settings(BaseModel):
    environment: str = "development"
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "worldcup2026"
    cors_origins: str = "*"
    log_level: str = "DEBUG"
    port: int = 3050

    nowpayments_api_url: str = "https://api.nowpayments.io/v1"
    nowpayments_api_key: str = ""
    nowpayments_ipn_secret: str = ""
    nowpayments_timeout: float = Field(default=30.0, gt=0)
    donation_wallet_address: str = ""
    donation_mode: str = Field(default=DEMO_MODE, pattern="^(demo|live)$")

    ipn_require_signature: bool = False
    ipn_enforce_status_order: bool = True
    teams_cache_ttl: float = Field(default=300.0, ge=0)

    @property
    def demo_mode(self) -> bool:
        return self.donation_mode == DEMO_MODE

    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]


def load_settings() -> Settings:
    """Build settings from backend/.env and the process environment.

    Unset variables fall back to development defaults. The donation mode
    follows the environment (live in production, demo elsewhere) unless
    DONATION_MODE says otherwise, and unsigned webhooks are refused in
    live mode unless IPN_REQUIRE_SIGNATURE says otherwise.
    """
    load_dotenv(ROOT_DIR / '.env')
    environment = os.environ.get("ENVIRONMENT", "development").strip() or "development"
    production = environment == "production"

    donation_mode = os.environ.get("DONATION_MODE", "").strip().lower() or (LIVE_MODE if production else DEMO_MODE)
    require_signature = _env_bool("IPN_REQUIRE_SIGNATURE")
    if require_signature is None:
        require_signature = donation_mode == LIVE_MODE
    enforce_order = _env_bool("IPN_ENFORCE_STATUS_ORDER")

    values = {
        "environment": environment,
        "mongo_url": os.environ.get("MONGO_URL", "mongodb://localhost:27017"),
        "db_name": os.environ.get("DB_NAME", "worldcup2026"),
        "cors_origins": os.environ.get("CORS_ORIGINS", "*"),
        "log_level": os.environ.get("LOG_LEVEL", "ERROR" if production else "DEBUG").upper(),
        "port": os.environ.get("PORT", "3050"),
        "nowpayments_api_url": os.environ.get("NOWPAYMENTS_API_URL", "https://api.nowpayments.io/v1").rstrip("/"),
        "nowpayments_api_key": os.environ.get("NOWPAYMENTS_API_KEY", ""),
        "nowpayments_ipn_secret": os.environ.get("NOWPAYMENTS_IPN_SECRET", ""),
        "nowpayments_timeout": os.environ.get("NOWPAYMENTS_TIMEOUT", "30"),
        "donation_wallet_address": os.environ.get("DONATION_WALLET_ADDRESS", ""),
        "donation_mode": donation_mode,
        "ipn_require_signature": require_signature,
        "ipn_enforce_status_order": True if enforce_order is None else enforce_order,
        "teams_cache_ttl": os.environ.get("TEAMS_CACHE_TTL", "300"),
    }
    return Settings(**values)
