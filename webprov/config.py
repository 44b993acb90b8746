"""
Configuration module for the Web Provisioner
"""

import os
from pathlib import Path


def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def _read_version_from_repo(default: str = "dev") -> str:
    try:
        # repo root: webprov/.. (two parents up)
        version_file = Path(__file__).resolve().parents[1] / "VERSION"
        v = version_file.read_text(encoding="utf-8").strip()
        if v:
            return v
    except OSError:
        pass
    return os.getenv("APP_VERSION", default)

API_VERSION = _read_version_from_repo()

# Database configuration
SQLITE_PATH = os.getenv("SQLITE_PATH", "./webprov.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{SQLITE_PATH}")
AUTO_MIGRATE = env_bool("AUTO_MIGRATE", False)

# API configuration
API_PREFIX = "/v1"
API_KEY = os.getenv("API_KEY", "")
APP_PORT = int(os.getenv("APP_PORT", "3000"))

# Generation service (v0 Platform API)
V0_API_URL = os.getenv("V0_API_URL", "https://api.v0.dev/v1")
V0_API_KEY = os.getenv("V0_API_KEY", "")

# Deployment service (Vercel REST API)
VERCEL_API_URL = os.getenv("VERCEL_API_URL", "https://api.vercel.com")
VERCEL_API_KEY = os.getenv("VERCEL_API_KEY", "")
VERCEL_TEAM_ID = os.getenv("VERCEL_TEAM_ID", "")

REMOTE_TIMEOUT_SECONDS = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "30"))

# Provisioning pipeline
DOMAIN_SUFFIX = os.getenv("DOMAIN_SUFFIX", "trady.finance")
RESERVED_SUBDOMAINS = frozenset(
    s.strip() for s in os.getenv("RESERVED_SUBDOMAINS", "app,engine,waha").split(",") if s.strip()
)
OWNER_MAX_LENGTH = 20
CHAT_SYSTEM_PROMPT = "You are a great frontend developer"
CHAT_MODEL_CONFIG = {
    "modelId": os.getenv("V0_MODEL_ID", "v0-1.5-sm"),
    "imageGenerations": False,
    "thinking": False,
}

# Webhook configuration
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "5"))

# Queue and worker configuration
WORKER_POOL_SIZE = int(os.getenv("WORKER_POOL_SIZE", "2"))
QUEUE_MAX_ATTEMPTS = int(os.getenv("QUEUE_MAX_ATTEMPTS", "3"))
QUEUE_BACKOFF_BASE_SECONDS = float(os.getenv("QUEUE_BACKOFF_BASE_SECONDS", "2"))
QUEUE_POLL_INTERVAL_SECONDS = float(os.getenv("QUEUE_POLL_INTERVAL_SECONDS", "1"))
QUEUE_STALL_TIMEOUT_SECONDS = float(os.getenv("QUEUE_STALL_TIMEOUT_SECONDS", "300"))
QUEUE_SWEEP_INTERVAL_SECONDS = float(os.getenv("QUEUE_SWEEP_INTERVAL_SECONDS", "30"))
QUEUE_CLEAN_GRACE_SECONDS = int(os.getenv("QUEUE_CLEAN_GRACE_SECONDS", str(24 * 60 * 60)))
