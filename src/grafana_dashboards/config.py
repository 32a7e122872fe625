"""
Configuration loading for grafana-dashboards.

Priority order (highest → lowest):
  1. Command-line flags
  2. Environment variables (GRAFANA_URL, GRAFANA_API_KEY, GRAFANA_USER,
     GRAFANA_PASSWORD, GRAFANA_SSL_VERIFY, GRAFANA_TIMEOUT)
  3. macOS Keychain  (grafana-dashboards / grafana-url, grafana-api-key,
     grafana-password)
  4. ~/.config/grafana-dashboards/config.yaml
  5. Built-in defaults

Authentication is either an API key / service-account token (Bearer) or a
username + password pair (HTTP basic). An API key always wins.

Never write secrets back to any file from this module.
"""
from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from grafana_dashboards.keychain import retrieve_secret

log = structlog.get_logger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "grafana-dashboards" / "config.yaml"
DEFAULT_FOLDER_TITLE = "Resource Consumption Analysis"
DEFAULT_DASHBOARD_DIR = Path(__file__).resolve().parent / "dashboards"

_KEYCHAIN_URL_ACCOUNT = "grafana-url"
_KEYCHAIN_API_KEY_ACCOUNT = "grafana-api-key"
_KEYCHAIN_PASSWORD_ACCOUNT = "grafana-password"

_FALSE_VALUES = ("false", "0", "no", "off")


class ConfigError(RuntimeError):
    """Raised when the configuration cannot be resolved."""


class AuthMode(str, Enum):
    API_KEY = "api-key"
    BASIC = "basic"


class Settings(BaseModel):
    """Runtime configuration resolved once per invocation."""

    model_config = ConfigDict(frozen=True)

    grafana_url: str
    auth_mode: AuthMode
    api_key: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    folder_title: str = DEFAULT_FOLDER_TITLE
    dashboard_dir: Path = DEFAULT_DASHBOARD_DIR
    overwrite: bool = True
    insecure: bool = False
    namespace_filter: Optional[str] = None
    workload_kinds: Optional[str] = None
    timeout: Optional[float] = None

    @field_validator("grafana_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v[:-1] if v.endswith("/") else v

    @model_validator(mode="after")
    def check_credentials(self) -> "Settings":
        if self.auth_mode is AuthMode.API_KEY and not self.api_key:
            raise ValueError("api-key auth requires an API key")
        if self.auth_mode is AuthMode.BASIC and not (self.username and self.password):
            raise ValueError("basic auth requires both username and password")
        return self

    def __repr__(self) -> str:
        return (
            f"Settings(url={self.grafana_url!r}, auth={self.auth_mode.value}, "
            f"folder={self.folder_title!r}, overwrite={self.overwrite}, "
            f"insecure={self.insecure})"
        )

    __str__ = __repr__


def load_yaml_config(path: Optional[Path] = None) -> dict:  # type: ignore[type-arg]
    """Load optional YAML config file, returning an empty dict if absent."""
    config_file = path or DEFAULT_CONFIG_FILE
    if config_file.exists():
        with config_file.open() as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{config_file} must contain a YAML mapping")
        log.info("config.yaml_loaded", path=str(config_file))
        return data
    return {}


def _first(*values: Any) -> Any:
    """Return the first value that is neither ``None`` nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _text(value: Any) -> Optional[str]:
    """YAML scalars such as ``folder: 2024`` load as numbers; settings hold text."""
    return None if value is None else str(value)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in _FALSE_VALUES


def resolve_settings(
    cli_values: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
) -> Settings:
    """Merge CLI flags, environment, Keychain, YAML file and defaults.

    *cli_values* uses the argparse destinations (``url``, ``api_key``,
    ``user``, ``password``, ``folder``, ``dashboard_dir``, ``overwrite``,
    ``insecure``, ``namespace_filter``, ``workload_kinds``); missing keys and
    ``None`` mean "not given".

    Raises ``ConfigError`` if the URL or credentials cannot be found in any
    source, or if a value cannot be used (a bad timeout, say).
    """
    env = os.environ if environ is None else environ
    yaml_cfg = load_yaml_config(config_file)
    cli = dict(cli_values)

    # --- Grafana URL ---
    url = (
        cli.get("url")
        or env.get("GRAFANA_URL")
        or retrieve_secret(_KEYCHAIN_URL_ACCOUNT)
        or _text(yaml_cfg.get("grafana_url"))
    )
    if not url:
        raise ConfigError(
            "Grafana URL is required. Use -u/--url, set GRAFANA_URL, store it in "
            f"Keychain (account '{_KEYCHAIN_URL_ACCOUNT}'), or add 'grafana_url' to "
            f"{config_file or DEFAULT_CONFIG_FILE}."
        )

    # --- Credentials ---
    api_key = (
        cli.get("api_key")
        or env.get("GRAFANA_API_KEY")
        or retrieve_secret(_KEYCHAIN_API_KEY_ACCOUNT)
        or _text(yaml_cfg.get("api_key"))
    )
    username = _first(cli.get("user"), env.get("GRAFANA_USER"), _text(yaml_cfg.get("user")))
    password = None
    if not api_key and username:
        password = (
            cli.get("password")
            or env.get("GRAFANA_PASSWORD")
            or retrieve_secret(_KEYCHAIN_PASSWORD_ACCOUNT)
            or _text(yaml_cfg.get("password"))
        )

    if api_key:
        auth_mode = AuthMode.API_KEY
        username = None
    elif username and password:
        auth_mode = AuthMode.BASIC
    else:
        raise ConfigError(
            "Authentication required. Use one of:\n"
            "  - API key: -k/--api-key or GRAFANA_API_KEY env variable\n"
            "  - Basic auth: --user and --password or GRAFANA_USER/GRAFANA_PASSWORD env variables"
        )

    # --- Optional settings ---
    overwrite = cli.get("overwrite")
    if overwrite is None:
        overwrite = _parse_bool(yaml_cfg.get("overwrite", True))

    if cli.get("insecure"):
        insecure = True
    elif env.get("GRAFANA_SSL_VERIFY"):
        insecure = not _parse_bool(env["GRAFANA_SSL_VERIFY"])
    else:
        insecure = _parse_bool(yaml_cfg.get("insecure", False))

    timeout_raw = _first(env.get("GRAFANA_TIMEOUT"), yaml_cfg.get("timeout"))
    try:
        timeout = float(timeout_raw) if timeout_raw is not None else None
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid timeout value: {timeout_raw!r}") from exc

    dashboard_dir = _first(cli.get("dashboard_dir"), yaml_cfg.get("dashboard_dir"))

    try:
        settings = Settings(
            grafana_url=str(url),
            auth_mode=auth_mode,
            api_key=api_key,
            username=username,
            password=password,
            folder_title=_first(cli.get("folder"), _text(yaml_cfg.get("folder"))) or DEFAULT_FOLDER_TITLE,
            dashboard_dir=Path(str(dashboard_dir)).expanduser() if dashboard_dir else DEFAULT_DASHBOARD_DIR,
            overwrite=overwrite,
            insecure=insecure,
            namespace_filter=_first(cli.get("namespace_filter"), _text(yaml_cfg.get("namespace_filter"))),
            workload_kinds=_first(cli.get("workload_kinds"), _text(yaml_cfg.get("workload_kinds"))),
            timeout=timeout,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    if settings.insecure:
        log.warning("config.insecure_tls", url=settings.grafana_url)
    log.info("config.resolved", settings=repr(settings))
    return settings
