"""
Configuration management with schema validation.
Single source of truth for map-intelligente settings.

Settings come from (lowest to highest priority):
    1. Model defaults
    2. Optional YAML file (MAP_SETTINGS_FILE, default config/settings.yaml)
    3. Environment variables (.env is loaded first)
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .exceptions import ConfigError

DEFAULT_SETTINGS_FILE = Path("config") / "settings.yaml"

# Secret sources, first non-empty wins
SECRET_ENV_VARS = ("MAP_AUTH_SECRET", "MAP_PASSWORD_ADMIN", "MAP_PASSWORD_USER", "MAP_PASSWORD")


class AppSettings(BaseModel):
    name: str = "map-intelligente"
    version: str = "1.0.0"
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


class AuthSettings(BaseModel):
    secret: str = ""
    admin_password: str = ""
    user_password: str = ""
    cookie_name: str = "map-auth"
    token_ttl_days: int = 7
    bcrypt_rounds: int = 10


class PolicySettings(BaseModel):
    cache_ttl_seconds: float = 60.0
    default_user_pages: List[str] = Field(default_factory=lambda: ["/"])
    admin_only_paths: List[str] = Field(default_factory=lambda: ["/admin"])
    global_pages_key: str = "user_allowed_pages"


class StoreSettings(BaseModel):
    backend: str = "json"  # json or supabase
    data_dir: str = "data"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    timeout_seconds: Optional[float] = None


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file_path: Optional[str] = None
    max_bytes: int = 10485760
    backup_count: int = 5


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} and ${VAR:default} in config values"""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            var_expr = value[2:-1]
            if ":" in var_expr:
                var_name, default = var_expr.split(":", 1)
                return os.getenv(var_name.strip(), default.strip())
            return os.getenv(var_expr, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to read settings file {path}: {e}")
    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return _substitute_env_vars(raw)


def resolve_secret(auth: Dict[str, Any]) -> str:
    """First non-empty signing secret: env sources in order, then the settings file value."""
    for var in SECRET_ENV_VARS:
        value = os.getenv(var)
        if value:
            return value
    return str(auth.get("secret") or "")


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    app = data.setdefault("app", {})
    auth = data.setdefault("auth", {})
    store = data.setdefault("store", {})
    log = data.setdefault("logging", {})

    if os.getenv("ENVIRONMENT"):
        app["environment"] = os.getenv("ENVIRONMENT")

    auth["secret"] = resolve_secret(auth)
    if os.getenv("MAP_PASSWORD_ADMIN"):
        auth["admin_password"] = os.getenv("MAP_PASSWORD_ADMIN")
    user_password = os.getenv("MAP_PASSWORD_USER") or os.getenv("MAP_PASSWORD")
    if user_password:
        auth["user_password"] = user_password

    if os.getenv("MAP_DATA_DIR"):
        store["data_dir"] = os.getenv("MAP_DATA_DIR")
    if os.getenv("SUPABASE_URL"):
        store["supabase_url"] = os.getenv("SUPABASE_URL")
        store.setdefault("backend", "supabase")
    supabase_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if supabase_key:
        store["supabase_key"] = supabase_key

    if os.getenv("LOG_LEVEL"):
        log["level"] = os.getenv("LOG_LEVEL")
    return data


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load and validate settings from .env, optional YAML file and environment."""
    load_dotenv()
    settings_path = Path(path or os.getenv("MAP_SETTINGS_FILE") or DEFAULT_SETTINGS_FILE)
    data = _apply_env_overrides(_read_yaml(settings_path))
    try:
        return Settings(**data)
    except ValueError as e:
        raise ConfigError(f"Invalid settings: {e}")
