"""
Configuration for Record Sync

Settings are layered, later layers winning:

1. Built-in defaults
2. A YAML file (path argument or RECORDSYNC_CONFIG)
3. Environment variables (DB_HOST, DB_PORT, ... see ENV_VARS)
4. Database credentials from HashiCorp Vault, when vault.enabled is set

Example YAML:

    store: postgres
    database:
      host: db.internal
      name: recordsync
      schema: billing
    logging:
      level: INFO
      json: true
    vault:
      enabled: true
      url: https://vault.internal:8200
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from hvac.exceptions import VaultError

from recordsync.exceptions import ConfigError
from recordsync.utils.vault_client import VaultClient

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("postgres", "memory")

# Environment variable -> (section, key) in the YAML layout
ENV_VARS = {
    "DB_HOST": ("database", "host"),
    "DB_PORT": ("database", "port"),
    "DB_NAME": ("database", "name"),
    "DB_USER": ("database", "user"),
    "DB_PASSWORD": ("database", "password"),
    "DB_SCHEMA": ("database", "schema"),
    "RECORDSYNC_STORE": (None, "store"),
    "METRICS_PORT": ("metrics", "port"),
    "JSON_LOGGING": ("logging", "json"),
    "LOG_LEVEL": ("logging", "level"),
    "EXPORT_DIR": ("export", "directory"),
    "VAULT_ENABLED": ("vault", "enabled"),
}


@dataclass
class DatabaseConfig:
    """PostgreSQL connection settings."""

    host: str = "localhost"
    port: int = 5432
    database: str = "recordsync"
    user: str = "postgres"
    password: str = "postgres"
    db_schema: str = "public"
    batch_size: int = 1000

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for PostgresStore."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "db_schema": self.db_schema,
            "batch_size": self.batch_size,
        }


@dataclass
class VaultConfig:
    """Where to look up database credentials in Vault."""

    enabled: bool = False
    url: Optional[str] = None
    token: Optional[str] = None
    mount_point: str = "secret"
    credentials: str = "postgres"
    verify_ssl: bool = True


@dataclass
class Settings:
    """Resolved record sync settings."""

    store: str = "postgres"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    metrics_port: Optional[int] = None
    json_logging: bool = False
    log_level: str = "INFO"
    export_dir: str = "."


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    vault_client: Optional[VaultClient] = None
) -> Settings:
    """
    Build settings from defaults, YAML, environment and Vault.

    Args:
        path: YAML file; falls back to RECORDSYNC_CONFIG, then none
        env: Environment mapping (defaults to os.environ)
        vault_client: Client to use for the Vault layer instead of a new one

    Returns:
        Settings

    Raises:
        ConfigError: If the file is unreadable or a value is invalid
    """
    env = os.environ if env is None else env
    path = path or env.get("RECORDSYNC_CONFIG")

    raw = load_yaml(path) if path else {}
    apply_env(raw, env)

    settings = build_settings(raw)

    if settings.vault.enabled:
        apply_vault_credentials(settings, vault_client)

    logger.debug(
        f"Loaded settings: store={settings.store}, "
        f"database={settings.database.host}:{settings.database.port}/{settings.database.database}"
    )
    return settings


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML config file into a dict.

    Raises:
        ConfigError: If the file is missing, unparseable or not a mapping
    """
    path = Path(path)

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

    logger.info(f"Loaded config file {path}")
    return data


def apply_env(raw: Dict[str, Any], env: Mapping[str, str]) -> None:
    """Overlay environment variables onto a raw YAML-shaped dict."""
    for var, (section, key) in ENV_VARS.items():
        value = env.get(var)
        if value is None or value == "":
            continue

        if section is None:
            raw[key] = value
            continue

        target = raw.setdefault(section, {})
        if not isinstance(target, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")
        target[key] = value

    if env.get("VAULT_ADDR"):
        raw.setdefault("vault", {}).setdefault("url", env["VAULT_ADDR"])
    if env.get("VAULT_TOKEN"):
        raw.setdefault("vault", {}).setdefault("token", env["VAULT_TOKEN"])


def build_settings(raw: Dict[str, Any]) -> Settings:
    """
    Convert a raw dict into validated Settings.

    Raises:
        ConfigError: If a value has the wrong type or is out of range
    """
    database = _section(raw, "database")
    logging_cfg = _section(raw, "logging")
    metrics = _section(raw, "metrics")
    export = _section(raw, "export")
    vault = _section(raw, "vault")

    store = str(raw.get("store", "postgres")).lower()
    if store not in STORE_BACKENDS:
        raise ConfigError(f"Invalid store: {store}. Must be one of {list(STORE_BACKENDS)}")

    defaults = DatabaseConfig()
    db_config = DatabaseConfig(
        host=str(database.get("host", defaults.host)),
        port=_parse_int("database.port", database.get("port", defaults.port)),
        database=str(database.get("name", defaults.database)),
        user=str(database.get("user", defaults.user)),
        password=str(database.get("password", defaults.password)),
        db_schema=str(database.get("schema", defaults.db_schema)),
        batch_size=_parse_int("database.batch_size", database.get("batch_size", defaults.batch_size)),
    )

    vault_config = VaultConfig(
        enabled=_parse_bool("vault.enabled", vault.get("enabled", False)),
        url=vault.get("url"),
        token=vault.get("token"),
        mount_point=str(vault.get("mount_point", "secret")),
        credentials=str(vault.get("credentials", "postgres")),
        verify_ssl=_parse_bool("vault.verify_ssl", vault.get("verify_ssl", True)),
    )

    metrics_port = metrics.get("port")
    if metrics_port is not None:
        metrics_port = _parse_int("metrics.port", metrics_port)

    log_level = str(logging_cfg.get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Invalid log level: {log_level}")

    return Settings(
        store=store,
        database=db_config,
        vault=vault_config,
        metrics_port=metrics_port,
        json_logging=_parse_bool("logging.json", logging_cfg.get("json", False)),
        log_level=log_level,
        export_dir=str(export.get("directory", ".")),
    )


def apply_vault_credentials(settings: Settings, client: Optional[VaultClient] = None) -> None:
    """
    Replace database connection values with those stored in Vault.

    Raises:
        ConfigError: If Vault cannot be reached or holds no credentials
    """
    vault = settings.vault

    try:
        client = client or VaultClient(
            vault_url=vault.url,
            vault_token=vault.token,
            verify_ssl=vault.verify_ssl,
            mount_point=vault.mount_point
        )
        credentials = client.get_database_credentials(vault.credentials)
    except (VaultError, ValueError) as e:
        logger.error(f"Failed to load database credentials from Vault: {e}")
        raise ConfigError(f"Vault credential lookup failed: {e}") from e

    if not credentials:
        raise ConfigError(f"No database credentials found in Vault under '{vault.credentials}'")

    for attribute, value in credentials.items():
        if attribute == "port":
            value = _parse_int("vault port", value)
        setattr(settings.database, attribute, value)

    logger.info(f"Applied database credentials from Vault ({vault.credentials})")


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def _parse_int(name: str, value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None

    if parsed <= 0:
        raise ConfigError(f"{name} must be positive, got {parsed}")
    return parsed


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value

    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off", ""):
        return False

    raise ConfigError(f"{name} must be a boolean, got {value!r}")
