"""Per-app configuration loader for hldeploy."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hldeploy.errors import ConfigurationError, InputValidationError
from hldeploy.models import AppConfig, HealthConfig, MigrationConfig
from hldeploy.services.validation import parse_duration, validate_app_name

DEFAULT_ROOT = os.path.join("~", "prj", "apps")
CONFIG_FILE_NAME = "homelab.yml"


def resolve_root(root: Optional[str] = None) -> str:
    value = root or os.environ.get("HL_ROOT") or DEFAULT_ROOT
    return os.path.abspath(os.path.expanduser(value))


class ConfigLoader:
    """Loads and validates ``<root>/<app>/homelab.yml`` into an AppConfig."""

    SUPPORTED_KEYS = {
        "app",
        "image",
        "domain",
        "servicePort",
        "resolver",
        "network",
        "platforms",
        "health",
        "migrations",
        "secrets",
    }
    REQUIRED_KEYS = ("app", "image", "domain", "servicePort", "health")
    HEALTH_KEYS = {"url", "interval", "timeout"}
    MIGRATION_KEYS = {"command", "env"}

    def __init__(self, root: Optional[str] = None):
        self.root = resolve_root(root)

    def app_dir(self, app: str) -> str:
        return os.path.join(self.root, app)

    def config_path(self, app: str) -> str:
        return os.path.join(self.app_dir(app), CONFIG_FILE_NAME)

    def load(self, app: str) -> AppConfig:
        try:
            validate_app_name(app)
        except InputValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

        config_path = self.config_path(app)
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigurationError(f"Invalid config file '{config_path}': {exc}") from exc

        if not isinstance(parsed, dict):
            raise ConfigurationError(f"Config file '{config_path}' must contain a YAML mapping at the root.")

        try:
            return self._build(parsed, app_dir=self.app_dir(app))
        except InputValidationError as exc:
            raise ConfigurationError(f"Invalid config file '{config_path}': {exc}") from exc

    def _build(self, data: Dict[str, Any], app_dir: str) -> AppConfig:
        self._check_keys(data, self.SUPPORTED_KEYS, "")
        missing = [key for key in self.REQUIRED_KEYS if key not in data]
        if missing:
            raise ConfigurationError(f"Missing required configuration keys: {', '.join(missing)}")

        service_port = data["servicePort"]
        if isinstance(service_port, bool) or not isinstance(service_port, int) or service_port <= 0:
            raise ConfigurationError("servicePort must be a positive integer.")

        return AppConfig(
            app=self._string(data, "app"),
            image=self._string(data, "image"),
            domain=self._string(data, "domain"),
            service_port=service_port,
            resolver=self._string(data, "resolver", "myresolver"),
            network=self._string(data, "network", "traefik_proxy"),
            platforms=self._string(data, "platforms", "linux/amd64"),
            health=self._health(data["health"]),
            migrations=self._migrations(data.get("migrations")),
            secrets=tuple(self._string_list(data.get("secrets", []), "secrets")),
            app_dir=app_dir,
        )

    def _health(self, value: Any) -> HealthConfig:
        if not isinstance(value, dict):
            raise ConfigurationError("health must be a mapping.")
        self._check_keys(value, self.HEALTH_KEYS, "health.")
        url = value.get("url")
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ConfigurationError("health.url must be an http(s) URL.")

        return HealthConfig(
            url=url,
            interval_ms=parse_duration(value.get("interval", "2s")),
            timeout_ms=parse_duration(value.get("timeout", "45s")),
        )

    def _migrations(self, value: Any) -> MigrationConfig:
        if value is None:
            return MigrationConfig()
        if not isinstance(value, dict):
            raise ConfigurationError("migrations must be a mapping.")
        self._check_keys(value, self.MIGRATION_KEYS, "migrations.")

        command = self._string_list(value.get("command", ["bin/rails", "db:migrate"]), "migrations.command")
        if not command:
            raise ConfigurationError("migrations.command must not be empty.")

        env = value.get("env", {}) or {}
        if not isinstance(env, dict):
            raise ConfigurationError("migrations.env must be a mapping of strings.")

        return MigrationConfig(
            command=tuple(command),
            env={str(key): str(item) for key, item in env.items()},
        )

    @staticmethod
    def _check_keys(data: Dict[str, Any], supported, prefix: str):
        unknown = sorted(set(data.keys()) - supported)
        if unknown:
            unknown_list = ", ".join(f"{prefix}{key}" for key in unknown)
            raise ConfigurationError(f"Unknown configuration keys: {unknown_list}")

    @staticmethod
    def _string(data: Dict[str, Any], key: str, default: Optional[str] = None) -> str:
        value = data.get(key, default)
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(f"{key} must be a non-empty string.")
        return value.strip()

    @staticmethod
    def _string_list(value: Any, label: str):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigurationError(f"{label} must be a list of strings.")
        return value
