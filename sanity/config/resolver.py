"""Effective remote-service configuration.

Two layers are merged field by field:

1. Persisted per-user overrides (the ``settings`` table). An empty value
   means "no override".
2. Environment defaults: process environment variables, layered over an
   optional YAML file named by ``SANITY_CONFIG``.

The merge itself (:func:`merge_settings`) is a pure function of the two
snapshots.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

import yaml

from sanity.errors import ConfigurationError

if TYPE_CHECKING:
    from sanity.db.stores import SettingsStore


class SettingKeys:
    APPMIXER_BASE_URL = "appmixer_base_url"
    APPMIXER_USERNAME = "appmixer_username"
    APPMIXER_PASSWORD = "appmixer_password"
    GITHUB_REPO_OWNER = "github_repo_owner"
    GITHUB_REPO_NAME = "github_repo_name"
    GITHUB_REPO_BRANCH = "github_repo_branch"
    GITHUB_TOKEN = "github_token"
    MODULES_API_URL = "modules_api_url"

    EXECUTION_SERVER = (APPMIXER_BASE_URL, APPMIXER_USERNAME, APPMIXER_PASSWORD)
    SOURCE_CONTROL = (GITHUB_REPO_OWNER, GITHUB_REPO_NAME, GITHUB_REPO_BRANCH, GITHUB_TOKEN)


ENV_VARS: dict[str, str] = {
    SettingKeys.APPMIXER_BASE_URL: "APPMIXER_BASE_URL",
    SettingKeys.APPMIXER_USERNAME: "APPMIXER_USERNAME",
    SettingKeys.APPMIXER_PASSWORD: "APPMIXER_PASSWORD",
    SettingKeys.GITHUB_REPO_OWNER: "GITHUB_REPO_OWNER",
    SettingKeys.GITHUB_REPO_NAME: "GITHUB_REPO_NAME",
    SettingKeys.GITHUB_REPO_BRANCH: "GITHUB_REPO_BRANCH",
    SettingKeys.GITHUB_TOKEN: "GITHUB_TOKEN",
    SettingKeys.MODULES_API_URL: "SANITY_MODULES_API_URL",
}

BUILTIN_DEFAULTS: dict[str, str] = {
    SettingKeys.GITHUB_REPO_OWNER: "clientIO",
    SettingKeys.GITHUB_REPO_NAME: "appmixer-connectors",
    SettingKeys.GITHUB_REPO_BRANCH: "dev",
    SettingKeys.MODULES_API_URL: (
        "https://hbca2f6qck.execute-api.eu-central-1.amazonaws.com/prod/modules"
    ),
}

# YAML section/field -> setting key
_YAML_FIELDS: dict[tuple[str, str], str] = {
    ("execution_server", "base_url"): SettingKeys.APPMIXER_BASE_URL,
    ("execution_server", "username"): SettingKeys.APPMIXER_USERNAME,
    ("execution_server", "password"): SettingKeys.APPMIXER_PASSWORD,
    ("source_control", "owner"): SettingKeys.GITHUB_REPO_OWNER,
    ("source_control", "repo"): SettingKeys.GITHUB_REPO_NAME,
    ("source_control", "branch"): SettingKeys.GITHUB_REPO_BRANCH,
    ("source_control", "token"): SettingKeys.GITHUB_TOKEN,
    ("catalog", "modules_api_url"): SettingKeys.MODULES_API_URL,
}


@dataclass(frozen=True)
class ExecutionServerConfig:
    base_url: str
    username: str
    password: str

    @property
    def designer_url(self) -> str:
        """Base URL of the flow designer UI (``api.`` host swapped for ``my.``)."""
        return self.base_url.replace("api.", "my.", 1)


@dataclass(frozen=True)
class SourceControlConfig:
    owner: str
    repo: str
    branch: str
    token: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def load_defaults(
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> dict[str, str]:
    """Build the environment-default snapshot.

    Precedence: environment variable > YAML file > built-in default.
    """
    environ = os.environ if environ is None else environ
    defaults = dict(BUILTIN_DEFAULTS)

    path = config_path or environ.get("SANITY_CONFIG")
    if path:
        defaults.update(_read_yaml_defaults(Path(path)))

    for key, var in ENV_VARS.items():
        value = (environ.get(var) or "").strip()
        if value:
            defaults[key] = value
    return defaults


def _read_yaml_defaults(path: Path) -> dict[str, str]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {path}")

    values: dict[str, str] = {}
    for (section, name), key in _YAML_FIELDS.items():
        value = (data.get(section) or {}).get(name)
        if value:
            values[key] = str(value).strip()
    return values


def merge_settings(
    overrides: Mapping[str, str],
    defaults: Mapping[str, str],
    keys: tuple[str, ...],
) -> dict[str, str]:
    """Overlay ``overrides`` on ``defaults`` for ``keys``; blank overrides fall back."""
    merged: dict[str, str] = {}
    for key in keys:
        override = (overrides.get(key) or "").strip()
        merged[key] = override or (defaults.get(key) or "").strip()
    return merged


class ConfigResolver:
    """Resolves the effective configuration for a user."""

    def __init__(
        self,
        settings: "SettingsStore | None" = None,
        defaults: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.defaults = dict(load_defaults() if defaults is None else defaults)

    def _overrides(self, user: str | None, keys: tuple[str, ...]) -> dict[str, str]:
        if not user or self.settings is None:
            return {}
        return self.settings.get_many(user, keys)

    def execution_server(self, user: str | None = None) -> ExecutionServerConfig:
        keys = SettingKeys.EXECUTION_SERVER
        values = merge_settings(self._overrides(user, keys), self.defaults, keys)
        missing = [k for k in keys if not values[k]]
        if missing:
            raise ConfigurationError(
                "Execution server credentials not configured",
                detail={"missing": missing},
            )
        return ExecutionServerConfig(
            base_url=values[SettingKeys.APPMIXER_BASE_URL].rstrip("/"),
            username=values[SettingKeys.APPMIXER_USERNAME],
            password=values[SettingKeys.APPMIXER_PASSWORD],
        )

    def source_control(self, user: str | None = None) -> SourceControlConfig:
        keys = SettingKeys.SOURCE_CONTROL
        values = merge_settings(self._overrides(user, keys), self.defaults, keys)
        required = keys[:3]
        missing = [k for k in required if not values[k]]
        if missing:
            raise ConfigurationError(
                "Source-control repository not configured",
                detail={"missing": missing},
            )
        return SourceControlConfig(
            owner=values[SettingKeys.GITHUB_REPO_OWNER],
            repo=values[SettingKeys.GITHUB_REPO_NAME],
            branch=values[SettingKeys.GITHUB_REPO_BRANCH],
            token=values[SettingKeys.GITHUB_TOKEN],
        )

    def modules_api_url(self) -> str:
        return self.defaults.get(SettingKeys.MODULES_API_URL) or BUILTIN_DEFAULTS[
            SettingKeys.MODULES_API_URL
        ]

    def is_execution_server_configured(self, user: str | None = None) -> bool:
        try:
            self.execution_server(user)
        except ConfigurationError:
            return False
        return True

    # -- safe summaries (no secrets) ---------------------------------------

    def execution_server_info(self, user: str | None = None) -> dict:
        keys = SettingKeys.EXECUTION_SERVER
        overrides = self._overrides(user, keys)
        values = merge_settings(overrides, self.defaults, keys)
        return {
            "base_url": values[SettingKeys.APPMIXER_BASE_URL],
            "username": values[SettingKeys.APPMIXER_USERNAME],
            "has_env_credentials": all(self.defaults.get(k) for k in keys),
            "has_custom_credentials": all((overrides.get(k) or "").strip() for k in keys),
            "defaults": {
                "base_url": self.defaults.get(SettingKeys.APPMIXER_BASE_URL, ""),
                "username": self.defaults.get(SettingKeys.APPMIXER_USERNAME, ""),
            },
        }

    def source_control_info(self, user: str | None = None) -> dict:
        keys = SettingKeys.SOURCE_CONTROL
        overrides = self._overrides(user, keys)
        values = merge_settings(overrides, self.defaults, keys)
        return {
            "owner": values[SettingKeys.GITHUB_REPO_OWNER],
            "repo": values[SettingKeys.GITHUB_REPO_NAME],
            "branch": values[SettingKeys.GITHUB_REPO_BRANCH],
            "has_env_token": bool(self.defaults.get(SettingKeys.GITHUB_TOKEN)),
            "has_custom_token": bool((overrides.get(SettingKeys.GITHUB_TOKEN) or "").strip()),
            "defaults": {
                "owner": self.defaults.get(SettingKeys.GITHUB_REPO_OWNER, ""),
                "repo": self.defaults.get(SettingKeys.GITHUB_REPO_NAME, ""),
                "branch": self.defaults.get(SettingKeys.GITHUB_REPO_BRANCH, ""),
            },
        }
