from __future__ import annotations
"""Alias configuration models and persistence."""
from dataclasses import dataclass, replace
import json
import logging
import os
from pathlib import Path
import re
from typing import Mapping, Optional

import keyring
from keyring.errors import KeyringError

from .errors import AliasNotFoundError, ConfigurationError

LOGGER = logging.getLogger(__name__)

CONFIG_VERSION = "10"
CONFIG_FILE_NAME = "config.json"
DEFAULT_CONFIG_DIR = Path.home() / ".pys3c"
ENV_ALIAS_PREFIX = "PYS3C_HOST_"
DEFAULT_ACCESS_KEY = "YOUR-ACCESS-KEY-HERE"
DEFAULT_SECRET_KEY = "YOUR-SECRET-KEY-HERE"

_VALID_ALIAS = re.compile(r"^[a-zA-Z][a-zA-Z0-9-_]*$")
_ENV_URL_WITH_TOKEN = re.compile(r"^(https?://)(.*?):(.*?):(.*)@(.*?)$")
_ENV_URL = re.compile(r"^(https?://)(.*?):(.*)@(.*?)$")


@dataclass
class AliasConfig:
    """Connection details of one named endpoint."""

    url: str
    access_key: str = ""
    secret_key: str = ""
    session_token: Optional[str] = None
    api: str = "S3v4"
    path: str = "auto"
    license: Optional[str] = None
    api_key: Optional[str] = None
    src: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "url": self.url,
            "accessKey": self.access_key,
            "secretKey": self.secret_key,
            "sessionToken": self.session_token,
            "api": self.api,
            "path": self.path,
            "license": self.license,
            "apiKey": self.api_key,
            "src": self.src,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "AliasConfig":
        return cls(
            url=str(data["url"]),
            access_key=str(data.get("accessKey") or ""),
            secret_key=str(data.get("secretKey") or ""),
            session_token=data.get("sessionToken") or None,  # type: ignore[arg-type]
            api=str(data.get("api") or "S3v4"),
            path=str(data.get("path") or "auto"),
            license=data.get("license") or None,  # type: ignore[arg-type]
            api_key=data.get("apiKey") or None,  # type: ignore[arg-type]
            src=data.get("src") or None,  # type: ignore[arg-type]
        )


DEFAULT_ALIASES = {
    "local": AliasConfig(url="http://localhost:9000", path="auto"),
    "s3": AliasConfig(
        url="https://s3.amazonaws.com",
        access_key=DEFAULT_ACCESS_KEY,
        secret_key=DEFAULT_SECRET_KEY,
        path="dns",
    ),
}


def clean_alias(alias: str) -> str:
    return alias.rstrip("/\\")


def is_valid_alias(alias: str) -> bool:
    return bool(_VALID_ALIAS.match(alias))


def parse_env_url(value: str) -> Optional[AliasConfig]:
    """Parse ``https://ACCESS:SECRET[:TOKEN]@host`` into an alias."""

    match = _ENV_URL_WITH_TOKEN.match(value)
    if match:
        scheme, access_key, secret_key, token, host = match.groups()
        return AliasConfig(
            url=f"{scheme}{host}",
            access_key=access_key,
            secret_key=secret_key,
            session_token=token,
            src="env",
        )
    match = _ENV_URL.match(value)
    if match:
        scheme, access_key, secret_key, host = match.groups()
        return AliasConfig(url=f"{scheme}{host}", access_key=access_key, secret_key=secret_key, src="env")
    return None


class KeychainStore:
    """Encapsulates OS keychain access for alias secrets."""

    def __init__(self, service_name: str = "pys3c"):
        self._service_name = service_name

    def get_secret(self, alias: str) -> str:
        if not alias:
            return ""
        try:
            return keyring.get_password(self._service_name, alias) or ""
        except KeyringError:
            LOGGER.debug("Keychain lookup failed for alias '%s'", alias, exc_info=True)
            return ""

    def set_secret(self, alias: str, secret_key: str) -> None:
        if not alias:
            return
        if not secret_key:
            self.delete_secret(alias)
            return
        try:
            keyring.set_password(self._service_name, alias, secret_key)
        except KeyringError as exc:
            raise ConfigurationError(f"Unable to store secret for '{alias}' in the keychain: {exc}") from exc

    def delete_secret(self, alias: str) -> None:
        if not alias:
            return
        try:
            keyring.delete_password(self._service_name, alias)
        except KeyringError:
            LOGGER.debug("No keychain entry removed for alias '%s'", alias)


class AliasStorage:
    """JSON-backed store of aliases, keyed by alias name.

    Loaded lazily once per instance; pass the same instance to everything that
    needs alias lookups.
    """

    def __init__(
        self,
        config_dir: str | Path | None = None,
        *,
        keychain: KeychainStore | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._dir = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR
        self._path = self._dir / CONFIG_FILE_NAME
        self._keychain = keychain or KeychainStore()
        self._environ = os.environ if environ is None else environ
        self._aliases: dict[str, AliasConfig] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, AliasConfig]:
        if self._aliases is None:
            self._aliases = self._read_file()
            for name, default in DEFAULT_ALIASES.items():
                self._aliases.setdefault(name, replace(default))
        return dict(self._aliases)

    def get(self, alias: str) -> AliasConfig:
        """Resolve ``alias`` from the environment first, then the config file.

        Raises:
            AliasNotFoundError: when the alias is unknown.
        """

        name = clean_alias(alias)
        env_value = self._environ.get(f"{ENV_ALIAS_PREFIX}{name}")
        if env_value:
            config = parse_env_url(env_value)
            if config is None:
                raise ConfigurationError(f"Unable to parse {ENV_ALIAS_PREFIX}{name}")
            return config
        aliases = self.load()
        if name not in aliases:
            raise AliasNotFoundError(name)
        config = aliases[name]
        if not config.secret_key:
            config = replace(config, secret_key=self._keychain.get_secret(name))
        return config

    def set(self, alias: str, config: AliasConfig, *, use_keychain: bool = False) -> AliasConfig:
        name = clean_alias(alias)
        if not is_valid_alias(name):
            raise ConfigurationError(f"Alias '{alias}' is not valid (letters, digits, '-' and '_' only)")
        stored = config
        if use_keychain:
            self._keychain.set_secret(name, config.secret_key)
            stored = replace(config, secret_key="")
        aliases = self.load()
        aliases[name] = stored
        self._save(aliases)
        return config

    def remove(self, alias: str) -> None:
        name = clean_alias(alias)
        aliases = self.load()
        if name not in aliases:
            raise AliasNotFoundError(name)
        removed = aliases.pop(name)
        if not removed.secret_key:
            self._keychain.delete_secret(name)
        self._save(aliases)

    def export(self, alias: str) -> str:
        return json.dumps(self.get(alias).to_dict())

    def import_json(self, alias: str, payload: str) -> AliasConfig:
        try:
            data = json.loads(payload)
            config = AliasConfig.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
            raise ConfigurationError(f"Unable to import alias '{alias}': {exc}") from exc
        return self.set(alias, config)

    def _read_file(self) -> dict[str, AliasConfig]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Unable to load config '{self._path}': {exc}") from exc

        aliases: dict[str, AliasConfig] = {}
        for name, entry in (data.get("aliases") or {}).items():
            try:
                aliases[name] = AliasConfig.from_dict(entry)
            except (KeyError, TypeError, AttributeError):
                LOGGER.warning("Skipping malformed alias '%s' in %s", name, self._path)
        return aliases

    def _save(self, aliases: dict[str, AliasConfig]) -> None:
        payload = {
            "version": CONFIG_VERSION,
            "aliases": {name: aliases[name].to_dict() for name in sorted(aliases)},
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Unable to update config '{self._path}': {exc}") from exc
        self._aliases = dict(aliases)
