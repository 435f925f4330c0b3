"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. Explicit path (``--config`` CLI flag or DATAPORTRAIT_CONFIG_PATH)
2. ./dataportrait.yaml (working directory)
3. ~/.dataportrait/config.yaml (user home)

Environment variables override YAML: DATAPORTRAIT_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
The deployment variables GETGATHER_URL, APP_HOST, SENTRY_DSN,
ALLOW_FACE_UPLOAD, MAXMIND_ACCOUNT_ID and MAXMIND_LICENSE_KEY are honoured
when their config keys are unset.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_ENV_PREFIX = "DATAPORTRAIT_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure.

    Args:
        data: Dict, list, or scalar value to process.

    Returns:
        Same structure with all string values resolved.
    """
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"
    trust_proxy: bool = True
    session_cookie: str = "dp_session"
    allowed_origins: list[str] = []


class ConnectorConfig(BaseModel):
    """Data-connector (getgather) session settings."""

    getgather_url: str = ""
    app_host: str = ""
    app_name: str = "data-portrait"
    tool_timeout_seconds: float = 6000.0
    http_timeout_seconds: float = 30.0
    max_retries: int = 3
    idle_ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 600.0
    incognito: bool = True
    brands_file: str | None = None
    hidden_brands: list[str] = ["officedepot"]

    @field_validator("getgather_url", "app_host")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class SignInConfig(BaseModel):
    """Polling behaviour while waiting for sign-in completion."""

    poll_interval_seconds: float = 1.0
    poll_backoff: float = 1.5
    poll_max_interval_seconds: float = 10.0
    poll_max_wait_seconds: float = 600.0
    resource_poll_delay_seconds: float = 3.0


class AggregationConfig(BaseModel):
    """Order merge settings."""

    # Brands whose "orders" are timestamped events that may legitimately repeat
    dedup_excluded_brands: list[str] = ["Garmin"]
    session_ttl_seconds: float = 3600.0


class FeatureConfig(BaseModel):
    """Flags exposed to the UI via GET /api/config."""

    allow_face_upload: bool = False
    sentry_dsn: str = ""


class GeolocationConfig(BaseModel):
    """MaxMind GeoIP2 web service credentials for the x-location header.

    Lookups are disabled while ``maxmind_account_id`` or
    ``maxmind_license_key`` is unset.
    """

    maxmind_account_id: int = 0
    maxmind_license_key: str = ""
    maxmind_host: str = "geoip.maxmind.com"
    timeout_seconds: float = 3.0

    @property
    def enabled(self) -> bool:
        return bool(self.maxmind_account_id and self.maxmind_license_key)


class AppConfig(BaseModel):
    """Top-level configuration for Data Portrait."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    connector: ConnectorConfig = Field(default_factory=ConnectorConfig)
    signin: SignInConfig = Field(default_factory=SignInConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    features: FeatureConfig = Field(default_factory=FeatureConfig)
    geolocation: GeolocationConfig = Field(default_factory=GeolocationConfig)


# Deployment env vars mapped onto (section, field)
_LEGACY_ENV_VARS = {
    "GETGATHER_URL": ("connector", "getgather_url"),
    "APP_HOST": ("connector", "app_host"),
    "SENTRY_DSN": ("features", "sentry_dsn"),
    "ALLOW_FACE_UPLOAD": ("features", "allow_face_upload"),
    "MAXMIND_ACCOUNT_ID": ("geolocation", "maxmind_account_id"),
    "MAXMIND_LICENSE_KEY": ("geolocation", "maxmind_license_key"),
}


def _coerce_env_value(value: str) -> Any:
    """Coerce to int, float or bool; else keep as string."""
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _coerce_for_field(section: str, field_name: str, value: str) -> Any:
    """Coerce an env string using the target field's annotation."""
    section_model = AppConfig.model_fields[section].annotation
    annotation = section_model.model_fields[field_name].annotation
    if getattr(annotation, "__origin__", None) is list:
        return [item.strip() for item in value.split(",") if item.strip()]
    if annotation is str:
        return value
    return _coerce_env_value(value)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply DATAPORTRAIT_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix. For example,
    ``DATAPORTRAIT_SIGNIN_POLL_MAX_WAIT_SECONDS`` maps to section
    ``signin``, field ``poll_max_wait_seconds``. List-typed fields accept
    comma-separated values.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    for env_key, (section, field_name) in _LEGACY_ENV_VARS.items():
        value = os.environ.get(env_key)
        if value is None or value == "":
            continue
        section_data = data.setdefault(section, {})
        if isinstance(section_data, dict) and field_name not in section_data:
            section_data[field_name] = _coerce_for_field(section, field_name, value)

    known_sections = sorted(AppConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        suffix = key[len(_ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        section_model = AppConfig.model_fields[matched_section].annotation
        if matched_field not in section_model.model_fields:
            continue
        section_data = data.setdefault(matched_section, {})
        if not isinstance(section_data, dict):
            continue
        section_data[matched_field] = _coerce_for_field(matched_section, matched_field, value)
    return data


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "dataportrait.yaml",
        Path.cwd() / "dataportrait.yml",
        Path.home() / ".dataportrait" / "config.yaml",
        Path.home() / ".dataportrait" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: str | None = None) -> AppConfig:
    """Load configuration from YAML with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, uses
            DATAPORTRAIT_CONFIG_PATH or searches standard locations.

    Returns:
        Validated AppConfig. Defaults (plus env overrides) when no file
        is found.

    Raises:
        FileNotFoundError: If an explicit config path does not exist.
    """
    explicit = config_path or os.environ.get("DATAPORTRAIT_CONFIG_PATH")
    if explicit:
        path: Path | None = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {explicit}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return AppConfig(**data)
