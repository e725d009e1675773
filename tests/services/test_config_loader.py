import pytest

from hldeploy.errors import ConfigurationError
from hldeploy.services.config_loader import ConfigLoader, resolve_root

RECIPES_CONFIG = """\
app: recipes
image: registry.example/recipes
domain: recipes.example.com
servicePort: 8080
health:
  url: http://recipes:8080/healthz
  interval: 2s
  timeout: 45s
migrations:
  command: ["bin/rails", "db:migrate"]
  env:
    RAILS_ENV: production
"""


def _write_config(root, app, content):
    app_dir = root / app
    app_dir.mkdir(parents=True, exist_ok=True)
    (app_dir / "homelab.yml").write_text(content, encoding="utf-8")
    return app_dir


def test_config_loader_loads_homelab_yml(tmp_path):
    app_dir = _write_config(tmp_path, "recipes", RECIPES_CONFIG)

    config = ConfigLoader(root=str(tmp_path)).load("recipes")

    assert config.app == "recipes"
    assert config.image == "registry.example/recipes"
    assert config.service_port == 8080
    assert config.health.url == "http://recipes:8080/healthz"
    assert config.health.interval_ms == 2000
    assert config.health.timeout_ms == 45000
    assert config.migrations.command == ("bin/rails", "db:migrate")
    assert config.migrations.env == {"RAILS_ENV": "production"}
    assert config.app_dir == str(app_dir)
    assert config.env_file == str(app_dir / ".env")


def test_config_loader_applies_defaults(tmp_path):
    _write_config(
        tmp_path,
        "theme",
        "app: theme\nimage: registry.example/theme\ndomain: theme.example.com\n"
        "servicePort: 3000\nhealth:\n  url: http://theme:3000/up\n",
    )

    config = ConfigLoader(root=str(tmp_path)).load("theme")

    assert config.network == "traefik_proxy"
    assert config.platforms == "linux/amd64"
    assert config.resolver == "myresolver"
    assert config.health.interval_ms == 2000
    assert config.health.timeout_ms == 45000
    assert config.migrations.command == ("bin/rails", "db:migrate")
    assert config.migrations.env == {}
    assert config.secrets == ()


def test_config_loader_reports_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="Config file not found"):
        ConfigLoader(root=str(tmp_path)).load("missing")


def test_config_loader_rejects_unknown_keys(tmp_path):
    _write_config(tmp_path, "recipes", RECIPES_CONFIG + "unknownKey: true\n")

    with pytest.raises(ConfigurationError, match="Unknown configuration keys: unknownKey"):
        ConfigLoader(root=str(tmp_path)).load("recipes")


def test_config_loader_rejects_missing_required_keys(tmp_path):
    _write_config(tmp_path, "recipes", "app: recipes\nimage: registry.example/recipes\n")

    with pytest.raises(ConfigurationError, match="domain, servicePort, health"):
        ConfigLoader(root=str(tmp_path)).load("recipes")


def test_config_loader_wraps_bad_duration(tmp_path):
    _write_config(tmp_path, "recipes", RECIPES_CONFIG.replace("interval: 2s", "interval: 2 seconds"))

    with pytest.raises(ConfigurationError, match="Bad duration"):
        ConfigLoader(root=str(tmp_path)).load("recipes")


def test_config_loader_rejects_non_mapping_root(tmp_path):
    _write_config(tmp_path, "recipes", "- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="YAML mapping"):
        ConfigLoader(root=str(tmp_path)).load("recipes")


def test_config_loader_rejects_invalid_app_name(tmp_path):
    with pytest.raises(ConfigurationError, match="Invalid app name"):
        ConfigLoader(root=str(tmp_path)).load("../recipes")


def test_resolve_root_prefers_argument_then_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("HL_ROOT", str(tmp_path / "from-env"))

    assert resolve_root(str(tmp_path / "explicit")) == str(tmp_path / "explicit")
    assert resolve_root() == str(tmp_path / "from-env")
