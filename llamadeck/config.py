"""
Config store for llamadeck.

AppConfig is persisted as a single YAML document. Stored data is partial:
whatever is on disk is merged over the defaults, so missing keys, unknown
keys and unreadable files all degrade to default values. None of the store
operations raise; failures are logged and defaults are used instead.

${ENV_VAR} references in string values are resolved on load, and .env is
loaded once at import. Saving keeps a stored ${ENV_VAR} reference in place
for any field whose value is unchanged since load.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import replace
from pathlib import Path

import yaml
from dotenv import load_dotenv

from llamadeck.models import AppConfig

load_dotenv()

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path.home() / ".llamadeck" / "config.yaml"


def default_config_path() -> Path:
    """$LLAMADECK_CONFIG if set, else ~/.llamadeck/config.yaml."""
    env_path = os.environ.get("LLAMADECK_CONFIG")
    return Path(env_path).expanduser() if env_path else _DEFAULT_CONFIG_PATH


_ENV_REF = re.compile(r"\$\{(\w+)\}")


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return _ENV_REF.sub(replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def _keep_env_refs(new, loaded, raw):
    """Put raw ${ENV_VAR} strings back wherever new still equals the loaded value."""
    if isinstance(new, dict):
        if not isinstance(loaded, dict) or not isinstance(raw, dict):
            return new
        return {
            k: _keep_env_refs(v, loaded.get(k), raw[k]) if k in raw else v
            for k, v in new.items()
        }
    if isinstance(raw, str) and _ENV_REF.search(raw) and new == loaded:
        return raw
    return new


def apply_env_overrides(cfg: AppConfig) -> AppConfig:
    """
    Return a copy of cfg with LLAMADECK_URL / LLAMADECK_LOG_LEVEL applied.
    Overrides are never written back to the store.
    """
    overrides = {}
    if os.environ.get("LLAMADECK_URL"):
        overrides["service_url"] = os.environ["LLAMADECK_URL"]
    if os.environ.get("LLAMADECK_LOG_LEVEL"):
        overrides["log_level"] = os.environ["LLAMADECK_LOG_LEVEL"]
    return replace(cfg, **overrides) if overrides else cfg


class ConfigStore:
    """YAML-backed persistent AppConfig."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else default_config_path()

    def _read_raw(self) -> dict:
        """The stored document as written, env references unresolved."""
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning("Config at %s is not a mapping, ignoring", self.path)
            return {}
        return data

    def load_config(self) -> AppConfig:
        """Stored values merged over defaults. Never raises."""
        try:
            return AppConfig.from_dict(_walk_and_resolve(self._read_raw()))
        except Exception as e:
            logger.warning("Failed to load app config from %s: %s", self.path, e)
            return AppConfig()

    def save_config(self, cfg: AppConfig) -> None:
        data = cfg.to_dict()
        try:
            raw = self._read_raw()
            if raw:
                loaded = AppConfig.from_dict(_walk_and_resolve(raw)).to_dict()
                data = _keep_env_refs(data, loaded, raw)
        except Exception as e:
            logger.warning("Could not re-read %s before saving: %s", self.path, e)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        except Exception as e:
            logger.error(
                "Failed to save app config: %s (path=%s, writable=%s)",
                e, self.path, os.access(self.path.parent, os.W_OK),
            )

    def reset_config(self) -> AppConfig:
        """Drop stored data and return defaults."""
        try:
            self.path.unlink(missing_ok=True)
        except Exception as e:
            logger.warning("Failed to remove app config at %s: %s", self.path, e)
        return AppConfig()

    def update_config(self, **updates) -> AppConfig:
        """Shallow-merge updates into the stored config and save it."""
        current = self.load_config()
        known = {k: v for k, v in updates.items() if hasattr(current, k)}
        updated = replace(current, **known)
        self.save_config(updated)
        return updated
