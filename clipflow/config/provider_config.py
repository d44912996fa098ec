from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from clipflow.config.settings_store import GROK_API_KEY_KEY, GROK_ENDPOINT_KEY, SettingsStore
from clipflow.exceptions import ProviderConfigValidationError, ValidationKind
from clipflow.utils.endpoint import normalize_endpoint
from clipflow.utils.events import ChangeNotifier
from clipflow.utils.logging_setup import setup_logger

logger = setup_logger(__name__)

ENV_ENDPOINT = "GROK_API_ENDPOINT"
ENV_API_KEY = "GROK_API_KEY"

SOURCE_ENVIRONMENT = "environment"
SOURCE_RUNTIME = "runtime"


@dataclass(frozen=True)
class ProviderConfig:
    endpoint: str
    api_key: str

    def __repr__(self) -> str:
        return f"ProviderConfig(endpoint={self.endpoint!r}, api_key='***')"


def validate_provider_config(endpoint: Optional[str], api_key: Optional[str]) -> ProviderConfig:
    """Build a ProviderConfig or raise ProviderConfigValidationError."""
    normalized = normalize_endpoint(endpoint or "")
    key = (api_key or "").strip()
    if not key:
        raise ProviderConfigValidationError(
            ValidationKind.MISSING_CREDENTIAL,
            "API key is required",
        )
    return ProviderConfig(endpoint=normalized, api_key=key)


class ProviderConfigStore:
    """
    Resolves the remote provider configuration.

    Environment variables win over settings saved at runtime; an invalid
    source is skipped, so the first *valid* one is used. save() and clear()
    notify subscribers synchronously after the settings are written.
    """

    def __init__(self, settings: SettingsStore, environ: Optional[Mapping[str, str]] = None):
        self.settings = settings
        self._environ = environ
        self._changes = ChangeNotifier("provider-config")

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def _from_environment(self) -> Optional[ProviderConfig]:
        endpoint = self.environ.get(ENV_ENDPOINT, "")
        api_key = self.environ.get(ENV_API_KEY, "")
        if not endpoint and not api_key:
            return None
        try:
            return validate_provider_config(endpoint, api_key)
        except ProviderConfigValidationError as exc:
            logger.warning(f"Ignoring environment provider config: {exc}")
            return None

    def _from_runtime(self) -> Optional[ProviderConfig]:
        endpoint = self.settings.get_str(GROK_ENDPOINT_KEY)
        api_key = self.settings.get_str(GROK_API_KEY_KEY)
        if not endpoint and not api_key:
            return None
        try:
            return validate_provider_config(endpoint, api_key)
        except ProviderConfigValidationError as exc:
            logger.warning(f"Ignoring saved provider config: {exc}")
            return None

    def load(self) -> Optional[ProviderConfig]:
        return self._from_environment() or self._from_runtime()

    def config_source(self) -> Optional[str]:
        if self._from_environment() is not None:
            return SOURCE_ENVIRONMENT
        if self._from_runtime() is not None:
            return SOURCE_RUNTIME
        return None

    def is_configured(self) -> bool:
        return self.load() is not None

    def save(self, endpoint: str, api_key: str) -> ProviderConfig:
        config = validate_provider_config(endpoint, api_key)
        self.settings.set(GROK_ENDPOINT_KEY, config.endpoint)
        self.settings.set(GROK_API_KEY_KEY, config.api_key)
        logger.info(f"Saved provider endpoint {config.endpoint}")
        self._changes.notify()
        return config

    def clear(self) -> None:
        self.settings.delete(GROK_ENDPOINT_KEY)
        self.settings.delete(GROK_API_KEY_KEY)
        logger.info("Cleared runtime provider configuration")
        self._changes.notify()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)
