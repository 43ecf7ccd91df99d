"""Settings loader with environment variable, JSON plugin file and Docker secrets integration."""
from __future__ import annotations
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scimgw.core.merge import merge
from scimgw.core.secrets import get_password, process_external_config

DEFAULT_CONFIG_FILE = "config/plugin-loki.json"

# attributes handled as type-keyed multi-values (one entry per "type")
DEFAULT_MULTI_VALUE_TYPES = [
    "emails",
    "phoneNumbers",
    "ims",
    "photos",
    "addresses",
    "entitlements",
    "roles",
    "x509Certificates",
]


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            print(f"[settings] ✓ Loaded {env_var} from environment (fallback)")
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Plugin
    plugin_name: str = "plugin-loki"
    config_file: str = DEFAULT_CONFIG_FILE

    # Store
    persistence: bool = False
    dbname: str = "loki.db"

    # Attributes (empty list: every attribute is supported)
    supported_attributes: list[str] = field(default_factory=list)
    multi_value_types: list[str] = field(default_factory=lambda: list(DEFAULT_MULTI_VALUE_TYPES))
    page_size_limit: int = 500

    # SCIM bearer token (empty: no authentication)
    bearer_token: str = ""

    @property
    def db_path(self) -> Path:
        """Database file, located next to the plugin configuration file."""
        return Path(self.config_file).parent / self.dbname


def _env_bool(var_name: str, default: bool) -> bool:
    value = os.environ.get(var_name)
    if value is None:
        return default
    return value.strip().lower() == "true"


def _read_endpoint_config(config_file: Path, plugin_name: str) -> dict[str, Any]:
    """Return the ``endpoint`` section of the plugin file with external references resolved."""
    if not config_file.exists():
        print(f"[settings] No plugin configuration at {config_file}, using defaults")
        return {}
    raw = json.loads(config_file.read_text(encoding="utf-8"))
    endpoint = raw.get("endpoint") or {}
    return process_external_config(plugin_name, endpoint, "endpoint")


def _resolve_bearer_token(config_file: Path) -> str:
    """Bearer token priority: /run/secrets > SCIM_STATIC_TOKEN > plugin file (encrypted)."""
    token = _load_secret_from_file("scim_static_token", "SCIM_STATIC_TOKEN")
    if token:
        return token
    if config_file.exists():
        return get_password("scimgateway.auth.bearerToken", config_file) or ""
    return ""


def load_settings() -> AppConfig:
    """Load application settings from environment, /run/secrets and the plugin file.

    The ``endpoint`` section of the plugin file is merged over the defaults,
    so list settings (``multiValueTypes``) extend the default list.
    """
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    config_file = Path(os.environ.get("SCIMGW_CONFIG_FILE", DEFAULT_CONFIG_FILE))
    plugin_name = config_file.stem

    endpoint = merge(
        {
            "persistence": False,
            "dbname": "loki.db",
            "supportedAttributes": [],
            "multiValueTypes": list(DEFAULT_MULTI_VALUE_TYPES),
            "pageSizeLimit": 500,
        },
        _read_endpoint_config(config_file, plugin_name),
    )

    persistence = _env_bool("SCIMGW_PERSISTENCE", endpoint["persistence"] is True)
    dbname = os.environ.get("SCIMGW_DBNAME", endpoint["dbname"] or "loki.db")
    bearer_token = _resolve_bearer_token(config_file)

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; plugin={plugin_name}; persistence={persistence}; "
          f"token={'***' if bearer_token else 'NONE'}")

    if not bearer_token and not demo_mode:
        print("[settings] WARNING: No SCIM bearer token configured, API is unauthenticated")

    return AppConfig(
        demo_mode=demo_mode,
        plugin_name=plugin_name,
        config_file=str(config_file),
        persistence=persistence,
        dbname=dbname,
        supported_attributes=list(endpoint["supportedAttributes"] or []),
        multi_value_types=list(endpoint["multiValueTypes"] or []),
        page_size_limit=int(endpoint["pageSizeLimit"] or 500),
        bearer_token=bearer_token,
    )
