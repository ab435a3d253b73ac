"""Configuration loader for Poster Gateway with environment-specific support"""

import os
from pathlib import Path

from dotenv import load_dotenv

server_dir = Path(__file__).parent.parent.parent
env_path = server_dir / ".env"

# Load .env file if it exists. For local development only.
if env_path.exists():
    load_dotenv(env_path)


def _first_env(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty environment variable among names."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Configuration dictionary - set once at initialization
config = {
    # Identity provider (Supabase Auth). The NEXT_PUBLIC_/VITE_ names are still
    # accepted so the frontend's .env can be shared with the gateway.
    "supabase_url": _first_env(
        "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL", "VITE_SUPABASE_URL"
    ),
    "supabase_anon_key": _first_env(
        "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"
    ),
    "oauth_provider": os.getenv("OAUTH_PROVIDER", "google"),
    "oauth_prompt": os.getenv("OAUTH_PROMPT", "select_account"),
    "provider_timeout_seconds": float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
    # Allow-list store
    "allowlist_table": os.getenv("ALLOWLIST_TABLE", "allowed_users"),
    "allowlist_timeout_seconds": float(os.getenv("ALLOWLIST_TIMEOUT_SECONDS", "5")),
    "allowlist_cache_ttl": int(os.getenv("ALLOWLIST_CACHE_TTL", "60")),
    # Cookies
    "session_secret_key": os.getenv("SESSION_SECRET_KEY"),
    "cookie_secure": _env_bool("COOKIE_SECURE", True),
    "session_cookie_max_age": int(os.getenv("SESSION_COOKIE_MAX_AGE", "604800")),
    # Tenants
    "studio_origin": _first_env(
        "STUDIO_ORIGIN", "NEXT_PUBLIC_STUDIO_ORIGIN", default="https://studio.example.com"
    ),
    "studio_host_patterns": os.getenv(
        "STUDIO_HOST_PATTERNS", "studio.example.com,studio.,studio-*"
    ),
    "studio_path_prefix": os.getenv("STUDIO_PATH_PREFIX", "/studio"),
    "poster_origin": _first_env(
        "POSTER_ORIGIN", "NEXT_PUBLIC_POSTER_ORIGIN", default="https://poster.example.com"
    ),
    "poster_host_patterns": os.getenv(
        "POSTER_HOST_PATTERNS", "poster.example.com,poster.,poster-*"
    ),
    "poster_path_prefix": os.getenv("POSTER_PATH_PREFIX", "/edit"),
    # Server
    "port": int(os.getenv("PORT", "8000")),
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "environment": os.getenv("ENVIRONMENT", "development"),
}
