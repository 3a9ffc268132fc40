# backend/trailwander/config_loader.py
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from collections.abc import Mapping
from typing import Any, Optional

log = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
CONFIG_DIR = REPO_ROOT / "config"
CONFIG_PATH = CONFIG_DIR / "appconfig.json"
_SECRETS_PATH = CONFIG_DIR / "secrets.json"

_SEARCH_DEFAULT_LIMIT_KEY = "search_default_limit"
_SEARCH_DEFAULT_LIMIT = 10
_SEARCH_MAX_LIMIT_KEY = "search_max_limit"
_SEARCH_MAX_LIMIT = 100
_DEFAULT_UNIT_KEY = "default_unit"
_NOMINATIM_URL_KEY = "nominatim_url"
_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
_NOMINATIM_USER_AGENT_KEY = "nominatim_user_agent"
_NOMINATIM_USER_AGENT = "trail-wanderer/1.0"


def _read_json_file(path: Path) -> dict:
    """Read JSON from disk, returning an empty mapping on failure."""
    if not path.exists():
        log.debug("%s not present; using defaults", path)
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        log.warning("Could not read %s; falling back to defaults", path, exc_info=True)
        return {}
    if not isinstance(data, dict):
        log.warning("%s does not hold a JSON object; ignoring it", path)
        return {}
    return data


def load_app_config() -> dict:
    """Return the raw JSON configuration for the application."""
    return _read_json_file(CONFIG_PATH)


def _coerce_positive_number(value: Any, fallback: int) -> int:
    """Convert unknown input into a positive integer."""
    try:
        numeric = float(value)
    except Exception:
        return int(fallback)
    if numeric < 1:
        return int(fallback)
    return int(numeric)


def _cfg_value(cfg: Optional[Mapping[str, Any]], key: str) -> Any:
    if cfg is None:
        cfg = load_app_config()
    if not isinstance(cfg, Mapping):
        return None
    if key in cfg:
        return cfg.get(key)
    # Flask config keeps the uppercase variants.
    return cfg.get(key.upper())


def get_search_default_limit(cfg: Optional[Mapping[str, Any]] = None) -> int:
    return _coerce_positive_number(_cfg_value(cfg, _SEARCH_DEFAULT_LIMIT_KEY), _SEARCH_DEFAULT_LIMIT)


def get_search_max_limit(cfg: Optional[Mapping[str, Any]] = None) -> int:
    """Largest page size a search may ask for; larger requests are clamped."""
    return _coerce_positive_number(_cfg_value(cfg, _SEARCH_MAX_LIMIT_KEY), _SEARCH_MAX_LIMIT)


def get_default_unit(cfg: Optional[Mapping[str, Any]] = None) -> str:
    raw_value = _cfg_value(cfg, _DEFAULT_UNIT_KEY)
    if isinstance(raw_value, str) and raw_value.strip().capitalize() in ("Imperial", "Metric"):
        return raw_value.strip().capitalize()
    if raw_value is not None:
        log.warning("default_unit %r in %s is not Imperial/Metric; using Imperial", raw_value, CONFIG_PATH)
    return "Imperial"


def get_nominatim_settings(cfg: Optional[Mapping[str, Any]] = None) -> tuple[str, str]:
    """Return ``(url, user_agent)`` for the OpenStreetMap lookup."""
    url = _cfg_value(cfg, _NOMINATIM_URL_KEY)
    agent = _cfg_value(cfg, _NOMINATIM_USER_AGENT_KEY)
    url_text = str(url).strip() if url else ""
    agent_text = str(agent).strip() if agent else ""
    return url_text or _NOMINATIM_URL, agent_text or _NOMINATIM_USER_AGENT


def load_secret_key() -> Optional[str]:
    """Flask session key: SECRET_KEY env first, then secrets.json."""
    env_value = os.getenv("SECRET_KEY")
    if env_value:
        return env_value
    secrets = _read_json_file(_SECRETS_PATH)
    value = secrets.get("secret_key") if isinstance(secrets, Mapping) else None
    if isinstance(value, str) and value:
        return value
    return None


def initialize_app_config(app: Any) -> None:
    """Populate a Flask app instance with values derived from appconfig.json."""
    cfg = load_app_config()
    if isinstance(cfg, Mapping):
        app.config.update(cfg)
    app.config["SEARCH_DEFAULT_LIMIT"] = get_search_default_limit(cfg)
    app.config["SEARCH_MAX_LIMIT"] = get_search_max_limit(cfg)
    app.config["DEFAULT_UNIT"] = get_default_unit(cfg)
    nominatim_url, nominatim_agent = get_nominatim_settings(cfg)
    app.config["NOMINATIM_URL"] = nominatim_url
    app.config["NOMINATIM_USER_AGENT"] = nominatim_agent
    secret = load_secret_key()
    if secret:
        app.config["SECRET_KEY"] = secret
    elif not app.config.get("SECRET_KEY"):
        log.error("No SECRET_KEY in env or %s; user sessions will not work", _SECRETS_PATH)
